"""Order read boundary.

``OrderQueries`` runs the reads against the store, applying the access
policy for the viewing user. ``OrderReader`` is its asynchronous face for
the reconciliation reader and the order list views; each read runs in a
worker thread with its own session.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field

from sqlalchemy import func, select

from ordering.order.access import AccessPolicy
from ordering.order.order import Order, OrderItem
from shared.db import Database


@dataclass
class OrderWithItems:
    order: Order
    items: list[OrderItem] = field(default_factory=list)

    @property
    def subtotal(self) -> int:
        return sum(item.line_total for item in self.items)


@dataclass
class SaleLine:
    """A seller's order item and, when visible, the order it belongs to."""

    item: OrderItem
    order: Order | None = None


class OrderQueries:
    def __init__(self, database: Database, policy: AccessPolicy | None = None) -> None:
        self.database = database
        self.policy = policy or AccessPolicy()

    def order_for_session(self, external_session_id: str) -> Order | None:
        # Knowing the checkout session id is what entitles the payer to this read
        with self.database.session() as session:
            return session.scalar(select(Order).where(Order.external_session_id == external_session_id))

    def items_for_order(self, order_id: str) -> list[OrderItem]:
        with self.database.session() as session:
            stmt = select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.created_at.desc())
            return list(session.scalars(stmt))

    def orders_for_user(self, viewer_id: str) -> list[OrderWithItems]:
        with self.database.session() as session:
            orders = list(
                session.scalars(
                    select(Order)
                    .where(Order.user_id == viewer_id, self.policy.readable_orders(viewer_id))
                    .order_by(Order.created_at.desc())
                )
            )
            if not orders:
                return []
            items = session.scalars(
                select(OrderItem)
                .where(OrderItem.order_id.in_([o.id for o in orders]), self.policy.readable_items(viewer_id))
                .order_by(OrderItem.created_at)
            )
            grouped: dict[str, OrderWithItems] = {o.id: OrderWithItems(order=o) for o in orders}
            for item in items:
                grouped[item.order_id].items.append(item)
            return list(grouped.values())

    def joined_sales_for_seller(self, seller_id: str) -> list[SaleLine]:
        """Seller's items inner-joined to their orders, most recent first."""
        with self.database.session() as session:
            rows = session.execute(
                select(OrderItem, Order)
                .join(Order, OrderItem.order_id == Order.id)
                .where(OrderItem.seller_id == seller_id, self.policy.embeddable_orders(seller_id))
                .order_by(OrderItem.created_at.desc())
            )
            return [SaleLine(item=item, order=order) for item, order in rows]

    def count_items_for_seller(self, seller_id: str) -> int:
        with self.database.session() as session:
            return session.scalar(select(func.count(OrderItem.id)).where(OrderItem.seller_id == seller_id)) or 0

    def items_for_seller(self, seller_id: str) -> list[OrderItem]:
        with self.database.session() as session:
            stmt = select(OrderItem).where(OrderItem.seller_id == seller_id).order_by(OrderItem.created_at.desc())
            return list(session.scalars(stmt))

    def orders_by_ids(self, viewer_id: str, order_ids: Iterable[str]) -> dict[str, Order]:
        ids = list(dict.fromkeys(order_ids))
        if not ids:
            return {}
        with self.database.session() as session:
            orders = session.scalars(select(Order).where(Order.id.in_(ids), self.policy.readable_orders(viewer_id)))
            return {order.id: order for order in orders}


class OrderReader:
    """Awaitable reads over ``OrderQueries``."""

    def __init__(self, queries: OrderQueries) -> None:
        self.queries = queries

    async def order_for_session(self, external_session_id: str) -> Order | None:
        return await asyncio.to_thread(self.queries.order_for_session, external_session_id)

    async def items_for_order(self, order_id: str) -> list[OrderItem]:
        return await asyncio.to_thread(self.queries.items_for_order, order_id)

    async def orders_for_user(self, viewer_id: str) -> list[OrderWithItems]:
        return await asyncio.to_thread(self.queries.orders_for_user, viewer_id)

    async def joined_sales_for_seller(self, seller_id: str) -> list[SaleLine]:
        return await asyncio.to_thread(self.queries.joined_sales_for_seller, seller_id)

    async def count_items_for_seller(self, seller_id: str) -> int:
        return await asyncio.to_thread(self.queries.count_items_for_seller, seller_id)

    async def items_for_seller(self, seller_id: str) -> list[OrderItem]:
        return await asyncio.to_thread(self.queries.items_for_seller, seller_id)

    async def orders_by_ids(self, viewer_id: str, order_ids: Iterable[str]) -> dict[str, Order]:
        return await asyncio.to_thread(self.queries.orders_by_ids, viewer_id, list(order_ids))
