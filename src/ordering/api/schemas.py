"""Pydantic request/response schemas for the Ordering API.

These are external contracts, kept separate from the cart lines and ORM
rows they are converted from.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ordering.cart.cart import CartLine
from ordering.order.order import Order, OrderItem, format_minor_units


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CartLineSchema(BaseModel):
    item_id: str
    name: str
    # Non-integer amounts are accepted here and rejected by cart validation
    unit_price_minor_units: int | float
    quantity: int | float = 1
    seller_id: str | None = None
    image: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_cart_line(self) -> CartLine:
        return CartLine(
            item_id=self.item_id,
            name=self.name,
            unit_price_minor_units=self.unit_price_minor_units,
            quantity=self.quantity,
            seller_id=self.seller_id,
            image=self.image,
            metadata=self.metadata,
        )


class CheckoutRequest(BaseModel):
    items: list[CartLineSchema] = Field(default_factory=list)
    user_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {
                            "item_id": "p1",
                            "name": "Linen tea towel",
                            "unit_price_minor_units": 1000,
                            "quantity": 2,
                            "metadata": {"product_id": "p1", "slug": "linen-tea-towel"},
                        }
                    ],
                    "user_id": "u-1",
                }
            ]
        }
    }


class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class ErrorResponse(BaseModel):
    error: str
    fields: dict[str, list[str]] | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class OrderItemSchema(BaseModel):
    id: str
    order_id: str
    seller_id: str | None = None
    product_id: str | None = None
    product_slug: str | None = None
    title: str
    image_url: str | None = None
    quantity: int
    unit_price_minor_units: int
    created_at: datetime | None = None

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemSchema":
        return cls(**item.to_dict())


class ShipToSchema(BaseModel):
    full_name: str
    phone: str | None = None
    lines: list[str] = Field(default_factory=list)


class OrderSchema(BaseModel):
    id: str
    external_session_id: str
    external_payment_reference: str | None = None
    user_id: str | None = None
    status: str
    amount_minor_units: int
    subtotal_minor_units: int | None = None
    shipping_minor_units: int = 0
    discount_minor_units: int = 0
    currency: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    created_at: datetime | None = None
    amount_display: str
    address_line: str
    ship_to: ShipToSchema

    @classmethod
    def from_order(cls, order: Order) -> "OrderSchema":
        ship_to = order.ship_to()
        return cls(
            **order.to_dict(),
            amount_display=format_minor_units(order.amount_minor_units, order.currency),
            address_line=order.address_line,
            ship_to=ShipToSchema(full_name=ship_to.full_name, phone=ship_to.phone, lines=ship_to.lines),
        )


class OrderWithItemsSchema(BaseModel):
    order: OrderSchema
    items: list[OrderItemSchema]
    subtotal_minor_units: int


class OrderConfirmationResponse(BaseModel):
    status: str
    message: str | None = None
    order: OrderSchema | None = None
    items: list[OrderItemSchema] = Field(default_factory=list)
    subtotal_minor_units: int | None = None


class BuyerOrdersResponse(BaseModel):
    orders: list[OrderWithItemsSchema]


class SellerSalesResponse(BaseModel):
    orders: list[OrderWithItemsSchema]
    unattached_items: list[OrderItemSchema]
    access_restricted: bool
