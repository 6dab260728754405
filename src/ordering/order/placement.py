"""Order placement: the idempotent write behind the payment callback.

The order row is inserted in its own transaction. Redelivery of the same
checkout session hits the unique constraint on ``external_session_id``;
that violation is the only duplicate detection, so concurrent deliveries
racing each other are settled by the store rather than by a prior read.

Each order line is then inserted in its own transaction. A line that cannot
be recorded is logged and skipped: an order with a missing line is better
than an order that never appears.
"""

import warnings
from dataclasses import dataclass, field
from enum import Enum

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ordering.order.order import SESSION_CONSTRAINT, Order, OrderItem, OrderStatus
from shared.db import Database
from shared.errors import PartialItemizationWarning

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderLine:
    title: str
    quantity: int
    unit_price_minor_units: int
    seller_id: str | None = None
    product_id: str | None = None
    product_slug: str | None = None
    image_url: str | None = None


@dataclass(frozen=True)
class UnreadableLine:
    """A provider line item that could not be turned into an ``OrderLine``."""

    title: str
    error: str


@dataclass(frozen=True)
class ShippingIdentity:
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class PlaceOrder:
    """Record a paid checkout session as an Order with its lines."""

    external_session_id: str
    amount_minor_units: int
    currency: str
    lines: list[OrderLine | UnreadableLine]
    external_payment_reference: str | None = None
    user_id: str | None = None
    subtotal_minor_units: int | None = None
    shipping_minor_units: int = 0
    discount_minor_units: int = 0
    shipping: ShippingIdentity = field(default_factory=ShippingIdentity)


class PlacementOutcome(Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"


@dataclass
class PlacementResult:
    outcome: PlacementOutcome
    order_id: str | None = None
    item_ids: list[str] = field(default_factory=list)
    skipped_lines: list[OrderLine | UnreadableLine] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped_lines)


class OrderPlacement:
    def __init__(self, database: Database) -> None:
        self.database = database

    def place(self, command: PlaceOrder) -> PlacementResult:
        """Insert the order once, then append its lines one by one."""
        try:
            order_id = self._insert_order(command)
        except IntegrityError as exc:
            if not self._is_session_conflict(exc):
                raise
            logger.info("Order already recorded for session", external_session_id=command.external_session_id)
            return PlacementResult(outcome=PlacementOutcome.DUPLICATE)

        logger.info(
            "Order created",
            order_id=order_id,
            external_session_id=command.external_session_id,
            amount_minor_units=command.amount_minor_units,
        )

        result = PlacementResult(outcome=PlacementOutcome.CREATED, order_id=order_id)
        for line in command.lines:
            if isinstance(line, UnreadableLine):
                self._skip(result, line, line.error)
                continue
            try:
                result.item_ids.append(self._insert_line(order_id, line))
            except (SQLAlchemyError, ValueError, TypeError) as exc:
                self._skip(result, line, str(exc))
        return result

    @staticmethod
    def _skip(result: PlacementResult, line: OrderLine | UnreadableLine, error: str) -> None:
        result.skipped_lines.append(line)
        logger.error(
            "Order item could not be recorded",
            order_id=result.order_id,
            title=line.title,
            product_slug=getattr(line, "product_slug", None),
            error=error,
        )
        warnings.warn(
            f"Order {result.order_id} is missing line '{line.title}': {error}",
            PartialItemizationWarning,
            stacklevel=3,
        )

    def _insert_order(self, command: PlaceOrder) -> str:
        shipping = command.shipping
        with self.database.session() as session:
            order = Order(
                external_session_id=command.external_session_id,
                external_payment_reference=command.external_payment_reference,
                user_id=command.user_id,
                status=OrderStatus.PAID.value,
                amount_minor_units=command.amount_minor_units,
                subtotal_minor_units=command.subtotal_minor_units,
                shipping_minor_units=command.shipping_minor_units,
                discount_minor_units=command.discount_minor_units,
                currency=command.currency,
                first_name=shipping.first_name,
                last_name=shipping.last_name,
                phone=shipping.phone,
                address_line1=shipping.address_line1,
                address_line2=shipping.address_line2,
                city=shipping.city,
                state=shipping.state,
                postal_code=shipping.postal_code,
                country=shipping.country,
            )
            session.add(order)
            session.flush()
            return order.id

    def _insert_line(self, order_id: str, line: OrderLine) -> str:
        with self.database.session() as session:
            item = OrderItem(
                order_id=order_id,
                seller_id=line.seller_id,
                product_id=line.product_id,
                product_slug=line.product_slug,
                title=line.title,
                image_url=line.image_url,
                quantity=int(line.quantity),
                unit_price_minor_units=int(line.unit_price_minor_units),
            )
            session.add(item)
            session.flush()
            return item.id

    @staticmethod
    def _is_session_conflict(exc: IntegrityError) -> bool:
        # SQLite reports the column, PostgreSQL the constraint name
        message = str(exc.orig)
        return SESSION_CONSTRAINT in message or "UNIQUE constraint failed: orders.external_session_id" in message
