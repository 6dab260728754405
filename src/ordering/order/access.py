"""Row-level visibility of orders and order items.

Mirrors the policies the store enforces per caller: a buyer sees their own
orders and all of their lines; a seller sees the lines attributed to them
and, depending on policy, the parent orders of those lines. Reading a parent
order directly and reaching it through a join from a child row can be
governed separately; when the join is the stricter of the two, a joined read
comes back short even though the rows exist.
"""

from dataclasses import dataclass

from sqlalchemy import ColumnElement, or_, select

from ordering.order.order import Order, OrderItem


@dataclass(frozen=True)
class AccessPolicy:
    sellers_can_read_orders: bool = True
    sellers_can_embed_orders: bool = True

    def readable_orders(self, viewer_id: str) -> ColumnElement[bool]:
        owned = Order.user_id == viewer_id
        if not self.sellers_can_read_orders:
            return owned
        sold = Order.id.in_(select(OrderItem.order_id).where(OrderItem.seller_id == viewer_id))
        return or_(owned, sold)

    def embeddable_orders(self, viewer_id: str) -> ColumnElement[bool]:
        if self.sellers_can_embed_orders:
            return self.readable_orders(viewer_id)
        return Order.user_id == viewer_id

    def readable_items(self, viewer_id: str) -> ColumnElement[bool]:
        bought = OrderItem.order_id.in_(select(Order.id).where(Order.user_id == viewer_id))
        return or_(OrderItem.seller_id == viewer_id, bought)
