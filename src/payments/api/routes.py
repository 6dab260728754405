"""FastAPI routes for the Payments domain: the provider's webhook callback."""

import asyncio

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from container import Services, get_services
from payments.api.schemas import WebhookAcknowledgementResponse, WebhookRejectionResponse

# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post(
    "/webhook",
    response_model=WebhookAcknowledgementResponse,
    responses={400: {"model": WebhookRejectionResponse}},
)
async def process_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None),
    services: Services = Depends(get_services),
):
    """Verify and process a payment provider event."""
    payload = await request.body()
    ack = await asyncio.to_thread(services.callbacks.handle, payload, stripe_signature)

    if ack.status_code >= 400:
        return JSONResponse(status_code=ack.status_code, content={"error": ack.body})
    return WebhookAcknowledgementResponse(outcome=ack.outcome.value, order_id=ack.order_id)
