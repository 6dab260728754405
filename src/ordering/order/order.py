"""Order and OrderItem: the durable record of a completed payment.

Orders are created only by the payment callback, exactly once per checkout
session: ``external_session_id`` carries a unique constraint and is the
idempotency key for callback redelivery. Once written, an order is never
updated; order items are appended in separate transactions and reference
their order by id.

Amounts are integer minor units of ``currency``.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shared.db import Base

SESSION_CONSTRAINT = "uq_orders_external_session_id"


class OrderStatus(Enum):
    PAID = "paid"


def _new_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


def split_name(full_name: str | None) -> tuple[str | None, str | None]:
    """Split at the first whitespace run; a single token has no last name."""
    parts = (full_name or "").split(None, 1)
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1].strip()


_CURRENCY_SYMBOLS = {"gbp": "£", "usd": "$", "eur": "€"}


def format_minor_units(amount: int | None, currency: str | None = "gbp") -> str:
    """Render ``1999`` as ``£19.99`` (unknown currencies get a code suffix)."""
    value = amount or 0
    sign = "-" if value < 0 else ""
    major, minor = divmod(abs(value), 100)
    code = (currency or "gbp").lower()
    symbol = _CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{major:,}.{minor:02d}"
    return f"{sign}{major:,}.{minor:02d} {code.upper()}"


@dataclass(frozen=True)
class ShipTo:
    full_name: str
    phone: str | None
    lines: list[str]


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------
class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("external_session_id", name=SESSION_CONSTRAINT),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    external_session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    external_payment_reference: Mapped[str | None] = mapped_column(String(255))
    user_id: Mapped[str | None] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(50), default=OrderStatus.PAID.value)

    amount_minor_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subtotal_minor_units: Mapped[int | None] = mapped_column(Integer)
    shipping_minor_units: Mapped[int] = mapped_column(Integer, default=0)
    discount_minor_units: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="gbp")

    first_name: Mapped[str | None] = mapped_column(String(255))
    last_name: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    address_line1: Mapped[str | None] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255))
    city: Mapped[str | None] = mapped_column(String(100))
    state: Mapped[str | None] = mapped_column(String(100))
    postal_code: Mapped[str | None] = mapped_column(String(20))
    country: Mapped[str | None] = mapped_column(String(2))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    # -------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------
    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def address_line(self) -> str:
        parts = [self.address_line1, self.address_line2, self.city, self.state, self.postal_code, self.country]
        return ", ".join(p for p in parts if p)

    def ship_to(self) -> ShipTo:
        city_state = ", ".join(p for p in (self.city, self.state) if p)
        locality = " ".join(p for p in (city_state, self.postal_code) if p).strip()
        lines = [line for line in (self.address_line1, self.address_line2, locality, self.country) if line and line.strip()]
        return ShipTo(full_name=self.full_name or "—", phone=self.phone, lines=lines)

    # -------------------------------------------------------------------
    # Amount reconciliation
    # -------------------------------------------------------------------
    def itemization_delta(self, items: list["OrderItem"]) -> int:
        """Charged amount minus the sum of recorded lines."""
        return self.amount_minor_units - sum(item.line_total for item in items)

    def is_itemization_consistent(self, items: list["OrderItem"]) -> bool:
        """Lines account for the charge, up to the declared shipping and discount."""
        tolerance = (self.shipping_minor_units or 0) + (self.discount_minor_units or 0)
        return abs(self.itemization_delta(items)) <= tolerance

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_session_id": self.external_session_id,
            "external_payment_reference": self.external_payment_reference,
            "user_id": self.user_id,
            "status": self.status,
            "amount_minor_units": self.amount_minor_units,
            "subtotal_minor_units": self.subtotal_minor_units,
            "shipping_minor_units": self.shipping_minor_units,
            "discount_minor_units": self.discount_minor_units,
            "currency": self.currency,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "created_at": self.created_at,
        }


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price_minor_units >= 0", name="ck_order_items_price_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    seller_id: Mapped[str | None] = mapped_column(String(255), index=True)
    product_id: Mapped[str | None] = mapped_column(String(255))
    product_slug: Mapped[str | None] = mapped_column(String(255))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(1024))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_minor_units: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)

    @property
    def line_total(self) -> int:
        return (self.quantity or 0) * (self.unit_price_minor_units or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "product_id": self.product_id,
            "product_slug": self.product_slug,
            "title": self.title,
            "image_url": self.image_url,
            "quantity": self.quantity,
            "unit_price_minor_units": self.unit_price_minor_units,
            "created_at": self.created_at,
        }
