"""Buyer and seller order lists.

Both views load asynchronously for whoever the viewer session says is signed
in. A load can be overtaken by a newer one (an auth-state change, a manual
refresh), so every load takes a generation token and re-checks it after each
await; a stale load never writes its results.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ordering.order.order import Order, OrderItem
from ordering.order.queries import OrderWithItems, SaleLine
from ordering.reconciliation.generation import RequestGeneration

logger = structlog.get_logger(__name__)

BUYER_SIGNED_OUT_MESSAGE = "Please sign in to view your orders."
SELLER_SIGNED_OUT_MESSAGE = "Please sign in to view seller sales."
LOAD_FAILED_MESSAGE = "We couldn't load your orders right now. Please try again."


class ViewerSession(Protocol):
    @property
    def viewer_id(self) -> str | None: ...

    async def restore(self) -> str | None: ...


class StaticViewerSession:
    """Viewer identity supplied by the caller, e.g. from a request header."""

    def __init__(self, viewer_id: str | None = None) -> None:
        self._viewer_id = viewer_id

    @property
    def viewer_id(self) -> str | None:
        return self._viewer_id

    async def restore(self) -> str | None:
        return self._viewer_id

    def sign_in(self, viewer_id: str) -> None:
        self._viewer_id = viewer_id

    def sign_out(self) -> None:
        self._viewer_id = None


class BuyerOrderSource(Protocol):
    async def orders_for_user(self, viewer_id: str) -> list[OrderWithItems]: ...


class SellerSalesSource(Protocol):
    async def joined_sales_for_seller(self, seller_id: str) -> list[SaleLine]: ...

    async def count_items_for_seller(self, seller_id: str) -> int: ...

    async def items_for_seller(self, seller_id: str) -> list[OrderItem]: ...

    async def orders_by_ids(self, viewer_id: str, order_ids: list[str]) -> dict[str, Order]: ...


# ---------------------------------------------------------------------------
# Seller read strategy
# ---------------------------------------------------------------------------
@dataclass
class SaleGroup:
    order: Order
    items: list[OrderItem] = field(default_factory=list)

    @property
    def seller_subtotal(self) -> int:
        return sum(item.line_total for item in self.items)


@dataclass
class SalesReadout:
    groups: list[SaleGroup] = field(default_factory=list)
    # Items whose parent order the seller is not allowed to see
    unattached_items: list[OrderItem] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def access_restricted(self) -> bool:
        return bool(self.unattached_items)

    @property
    def item_count(self) -> int:
        return sum(len(g.items) for g in self.groups) + len(self.unattached_items)


def group_sales(lines: list[SaleLine], used_fallback: bool = False) -> SalesReadout:
    groups: dict[str, SaleGroup] = {}
    unattached: list[OrderItem] = []
    for line in lines:
        if line.order is None:
            unattached.append(line.item)
            continue
        group = groups.setdefault(line.order.id, SaleGroup(order=line.order))
        group.items.append(line.item)

    ordered = sorted(groups.values(), key=lambda g: g.order.created_at, reverse=True)
    return SalesReadout(groups=ordered, unattached_items=unattached, used_fallback=used_fallback)


async def read_and_stitch(source: SellerSalesSource, seller_id: str) -> list[SaleLine]:
    """Read the seller's items, then their orders by id, and pair them up."""
    items = await source.items_for_seller(seller_id)
    orders = await source.orders_by_ids(seller_id, [item.order_id for item in items])
    return [SaleLine(item=item, order=orders.get(item.order_id)) for item in items]


async def load_seller_sales(source: SellerSalesSource, seller_id: str) -> SalesReadout:
    """Joined read first; stitch when the join comes back short or fails."""
    try:
        joined = await source.joined_sales_for_seller(seller_id)
    except SQLAlchemyError as exc:
        logger.warning("Joined sales read failed, stitching", seller_id=seller_id, error=str(exc))
        return group_sales(await read_and_stitch(source, seller_id), used_fallback=True)

    known = await source.count_items_for_seller(seller_id)
    if len(joined) >= known:
        return group_sales(joined)

    logger.warning("Joined sales read came back short, stitching", seller_id=seller_id, joined=len(joined), known=known)
    readout = group_sales(await read_and_stitch(source, seller_id), used_fallback=True)
    if readout.access_restricted:
        logger.info(
            "Some sold items have orders hidden from the seller",
            seller_id=seller_id,
            hidden=len(readout.unattached_items),
        )
    return readout


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
@dataclass
class BuyerOrdersState:
    loading: bool = False
    viewer_id: str | None = None
    orders: list[OrderWithItems] = field(default_factory=list)
    error: str | None = None


@dataclass
class SellerSalesState:
    loading: bool = False
    viewer_id: str | None = None
    sales: SalesReadout = field(default_factory=SalesReadout)
    error: str | None = None

    @property
    def access_restricted(self) -> bool:
        return self.sales.access_restricted


class _GenerationalView(ABC):
    signed_out_message = ""

    def __init__(self, session: ViewerSession) -> None:
        self.session = session
        self.generation = RequestGeneration()

    async def start(self) -> None:
        # Reads before the session is restored would run as a signed-out viewer
        await self.session.restore()
        await self.load()

    def on_auth_state_change(self) -> asyncio.Task:
        return asyncio.create_task(self.load())

    def _stale(self, token: int) -> bool:
        if self.generation.is_current(token):
            return False
        logger.debug("Discarding superseded load", view=type(self).__name__, token=token)
        return True

    @abstractmethod
    async def load(self) -> None:
        """Read for the current viewer and publish the result unless superseded."""


class BuyerOrdersView(_GenerationalView):
    signed_out_message = BUYER_SIGNED_OUT_MESSAGE

    def __init__(self, session: ViewerSession, source: BuyerOrderSource) -> None:
        super().__init__(session)
        self.source = source
        self.state = BuyerOrdersState()

    async def load(self) -> None:
        token = self.generation.begin()
        viewer_id = self.session.viewer_id
        if viewer_id is None:
            self.state = BuyerOrdersState(error=self.signed_out_message)
            return

        self.state = BuyerOrdersState(loading=True, viewer_id=viewer_id, orders=self.state.orders)
        try:
            orders = await self.source.orders_for_user(viewer_id)
        except SQLAlchemyError:
            logger.exception("Loading buyer orders failed", viewer_id=viewer_id)
            if not self._stale(token):
                self.state = BuyerOrdersState(viewer_id=viewer_id, error=LOAD_FAILED_MESSAGE)
            return

        if self._stale(token):
            return
        self.state = BuyerOrdersState(viewer_id=viewer_id, orders=orders)


class SellerSalesView(_GenerationalView):
    signed_out_message = SELLER_SIGNED_OUT_MESSAGE

    def __init__(self, session: ViewerSession, source: SellerSalesSource) -> None:
        super().__init__(session)
        self.source = source
        self.state = SellerSalesState()

    async def load(self) -> None:
        token = self.generation.begin()
        seller_id = self.session.viewer_id
        if seller_id is None:
            self.state = SellerSalesState(error=self.signed_out_message)
            return

        self.state = SellerSalesState(loading=True, viewer_id=seller_id, sales=self.state.sales)
        try:
            sales = await load_seller_sales(self.source, seller_id)
        except SQLAlchemyError:
            logger.exception("Loading seller sales failed", seller_id=seller_id)
            if not self._stale(token):
                self.state = SellerSalesState(viewer_id=seller_id, error=LOAD_FAILED_MESSAGE)
            return

        if self._stale(token):
            return
        self.state = SellerSalesState(viewer_id=seller_id, sales=sales)
