"""FastAPI routes for the Ordering domain: checkout, confirmation, order lists."""

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse

from container import Services, get_services
from ordering.api.schemas import (
    BuyerOrdersResponse,
    CheckoutRequest,
    CheckoutResponse,
    ErrorResponse,
    OrderConfirmationResponse,
    OrderItemSchema,
    OrderSchema,
    OrderWithItemsSchema,
    SellerSalesResponse,
)
from ordering.reconciliation.reader import MISSING_SESSION_MESSAGE, OrderFound
from ordering.reconciliation.views import BuyerOrdersView, SellerSalesView, StaticViewerSession
from shared.errors import PaymentProviderError, ValidationError

VIEWER_HEADER = "X-Viewer-Id"

# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post(
    "",
    response_model=CheckoutResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
def create_checkout(body: CheckoutRequest, request: Request, services: Services = Depends(get_services)):
    """Open a hosted checkout session for the submitted cart."""
    lines = [line.to_cart_line() for line in body.items]
    try:
        redirect = services.checkout.initiate(lines, user_id=body.user_id, headers=request.headers)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc), "fields": exc.messages})
    except PaymentProviderError as exc:
        return JSONResponse(status_code=502, content={"error": str(exc)})
    return CheckoutResponse(url=redirect.redirect_url, session_id=redirect.session_id)


@checkout_router.get("/success", response_model=OrderConfirmationResponse)
async def checkout_success(
    sid: str | None = Query(default=None),
    services: Services = Depends(get_services),
):
    """Reconcile the redirect with the order written by the payment callback."""
    if not sid:
        return JSONResponse(status_code=400, content={"status": "missing_session", "message": MISSING_SESSION_MESSAGE})

    result = await services.reconciliation.await_order(sid)
    if isinstance(result, OrderFound):
        return OrderConfirmationResponse(
            status="found",
            order=OrderSchema.from_order(result.order),
            items=[OrderItemSchema.from_item(item) for item in result.items],
            subtotal_minor_units=result.subtotal,
        )
    return JSONResponse(
        status_code=202,
        content=OrderConfirmationResponse(status="processing", message=result.message).model_dump(mode="json"),
    )


# ---------------------------------------------------------------------------
# Order list Routers
# ---------------------------------------------------------------------------
orders_router = APIRouter(prefix="/orders", tags=["orders"])
seller_router = APIRouter(prefix="/seller", tags=["seller"])


@orders_router.get("", response_model=BuyerOrdersResponse, responses={401: {"model": ErrorResponse}})
async def list_orders(
    x_viewer_id: str | None = Header(default=None),
    services: Services = Depends(get_services),
):
    """Orders placed by the viewer, newest first."""
    view = BuyerOrdersView(StaticViewerSession(x_viewer_id), services.reader)
    await view.start()
    if view.state.error:
        status = 401 if view.state.viewer_id is None else 503
        return JSONResponse(status_code=status, content={"error": view.state.error})

    return BuyerOrdersResponse(
        orders=[
            OrderWithItemsSchema(
                order=OrderSchema.from_order(entry.order),
                items=[OrderItemSchema.from_item(item) for item in entry.items],
                subtotal_minor_units=entry.subtotal,
            )
            for entry in view.state.orders
        ]
    )


@seller_router.get("/sales", response_model=SellerSalesResponse, responses={401: {"model": ErrorResponse}})
async def list_seller_sales(
    x_viewer_id: str | None = Header(default=None),
    services: Services = Depends(get_services),
):
    """Orders containing the viewer's items, with only the viewer's lines."""
    view = SellerSalesView(StaticViewerSession(x_viewer_id), services.reader)
    await view.start()
    if view.state.error:
        status = 401 if view.state.viewer_id is None else 503
        return JSONResponse(status_code=status, content={"error": view.state.error})

    sales = view.state.sales
    return SellerSalesResponse(
        orders=[
            OrderWithItemsSchema(
                order=OrderSchema.from_order(group.order),
                items=[OrderItemSchema.from_item(item) for item in group.items],
                subtotal_minor_units=group.seller_subtotal,
            )
            for group in sales.groups
        ],
        unattached_items=[OrderItemSchema.from_item(item) for item in sales.unattached_items],
        access_restricted=sales.access_restricted,
    )
