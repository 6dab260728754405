"""Payment callback processing: provider event in, Order out.

The provider delivers events out-of-band and at least once. The handler
acknowledges everything except an event it cannot authenticate: a rejected
callback is redelivered, which is what we want for a bad signature and
exactly what we do not want for a business-logic failure (the retry would
never succeed and could repeat side effects the idempotency key does not
cover).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from ordering.attribution import SellerAttributionResolver
from ordering.order.order import split_name
from ordering.order.placement import (
    OrderLine,
    OrderPlacement,
    PlacementOutcome,
    PlaceOrder,
    ShippingIdentity,
    UnreadableLine,
)
from payments.gateway.port import PaymentGateway, ProviderEvent
from shared.errors import SignatureVerificationError

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
DEFAULT_CURRENCY = "gbp"


class CallbackOutcome(Enum):
    REJECTED = "rejected"
    IGNORED = "ignored"
    CREATED = "created"
    DUPLICATE = "duplicate"
    ERROR = "error"


@dataclass(frozen=True)
class Acknowledgement:
    status_code: int
    body: str
    outcome: CallbackOutcome
    order_id: str | None = None


# ---------------------------------------------------------------------------
# Provider payload helpers
# ---------------------------------------------------------------------------
def _blank_to_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def shipping_identity(session: dict[str, Any]) -> ShippingIdentity:
    """Shipping details first, customer details as the per-field fallback."""
    shipping = session.get("shipping_details") or (session.get("collected_information") or {}).get("shipping_details") or {}
    customer = session.get("customer_details") or {}
    ship_address = shipping.get("address") or {}
    customer_address = customer.get("address") or {}

    def address(field: str) -> str | None:
        return ship_address.get(field) or customer_address.get(field) or None

    first_name, last_name = split_name(shipping.get("name") or customer.get("name"))
    return ShippingIdentity(
        first_name=first_name,
        last_name=last_name,
        phone=shipping.get("phone") or customer.get("phone") or None,
        address_line1=address("line1"),
        address_line2=address("line2"),
        city=address("city"),
        state=address("state"),
        postal_code=address("postal_code"),
        country=address("country"),
    )


def order_line(line_item: dict[str, Any], resolver: SellerAttributionResolver) -> OrderLine:
    """Build an order line from an expanded provider line item.

    Attribution comes from the metadata frozen on the price's product record;
    the slug lookup only fills in a seller that was missing at checkout time.
    """
    price = line_item.get("price") or {}
    product = price.get("product")
    if not isinstance(product, dict):
        product = {}
    metadata = product.get("metadata") or {}
    images = product.get("images") or []

    slug = _blank_to_none(metadata.get("slug"))
    quantity = line_item.get("quantity")
    unit_amount = price.get("unit_amount")

    return OrderLine(
        title=product.get("name") or line_item.get("description") or "Item",
        quantity=1 if quantity is None else quantity,
        unit_price_minor_units=0 if unit_amount is None else unit_amount,
        seller_id=resolver.resolve(_blank_to_none(metadata.get("seller_id")), slug),
        product_id=_blank_to_none(metadata.get("product_id")),
        product_slug=slug,
        image_url=images[0] if images else None,
    )


def read_line(line_item: Any, resolver: SellerAttributionResolver) -> OrderLine | UnreadableLine:
    """``order_line`` for one item of a batch; a malformed item becomes an ``UnreadableLine``."""
    try:
        return order_line(line_item, resolver)
    except (AttributeError, TypeError, ValueError, KeyError, IndexError) as exc:
        description = line_item.get("description") if isinstance(line_item, dict) else None
        title = description if isinstance(description, str) and description else "Item"
        logger.warning("Unreadable provider line item", title=title, error=repr(exc))
        return UnreadableLine(title=title, error=repr(exc))


def place_order_command(session: dict[str, Any], line_items: list[dict[str, Any]], resolver: SellerAttributionResolver) -> PlaceOrder:
    totals = session.get("total_details") or {}
    metadata = session.get("metadata") or {}
    return PlaceOrder(
        external_session_id=session["id"],
        external_payment_reference=_blank_to_none(session.get("payment_intent")),
        user_id=_blank_to_none(metadata.get("user_id")),
        amount_minor_units=session.get("amount_total") or 0,
        subtotal_minor_units=session.get("amount_subtotal"),
        shipping_minor_units=totals.get("amount_shipping") or 0,
        discount_minor_units=totals.get("amount_discount") or 0,
        currency=(session.get("currency") or DEFAULT_CURRENCY).lower(),
        shipping=shipping_identity(session),
        lines=[read_line(item, resolver) for item in line_items],
    )


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
class PaymentCallbackHandler:
    def __init__(self, gateway: PaymentGateway, placement: OrderPlacement, resolver: SellerAttributionResolver) -> None:
        self.gateway = gateway
        self.placement = placement
        self.resolver = resolver

    def handle(self, raw_body: bytes | str, signature: str | None) -> Acknowledgement:
        if not signature:
            logger.warning("Payment callback without signature header")
            return Acknowledgement(400, "Missing signature", CallbackOutcome.REJECTED)

        try:
            event = self.gateway.construct_event(raw_body, signature)
        except SignatureVerificationError as exc:
            logger.warning("Payment callback signature verification failed", error=str(exc))
            return Acknowledgement(400, "Bad signature", CallbackOutcome.REJECTED)

        try:
            return self._process(event)
        except Exception:
            # Acknowledge anyway: the provider must not retry a failure it cannot fix
            logger.exception("Payment callback processing failed", event_id=event.id, event_type=event.type)
            return Acknowledgement(200, "ok", CallbackOutcome.ERROR)

    def _process(self, event: ProviderEvent) -> Acknowledgement:
        if event.type != CHECKOUT_COMPLETED:
            logger.debug("Ignoring payment callback", event_id=event.id, event_type=event.type)
            return Acknowledgement(200, "ok", CallbackOutcome.IGNORED)

        session = event.data
        session_id = session["id"]
        logger.info("Checkout session completed", event_id=event.id, session_id=session_id)

        line_items = self.gateway.list_line_items(session_id)
        command = place_order_command(session, line_items, self.resolver)
        result = self.placement.place(command)

        if result.outcome is PlacementOutcome.DUPLICATE:
            return Acknowledgement(200, "ok", CallbackOutcome.DUPLICATE)
        if result.is_partial:
            logger.warning(
                "Order recorded with missing lines",
                order_id=result.order_id,
                skipped=len(result.skipped_lines),
                recorded=len(result.item_ids),
            )
        return Acknowledgement(200, "ok", CallbackOutcome.CREATED, order_id=result.order_id)
