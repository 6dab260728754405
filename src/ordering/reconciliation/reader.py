"""Order reconciliation after the payer is redirected back from checkout.

The redirect can beat the payment callback, so the order may not exist yet.
The reader polls a bounded number of times with a fixed delay and, if the
order still is not there, reports it as processing. That is a normal state,
not a failure: the redirect itself shows the payment went through, and the
order will show up in the order history once the callback lands.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from ordering.cart.cart import CartStore
from ordering.order.order import Order, OrderItem
from ordering.reconciliation.generation import RequestGeneration

logger = structlog.get_logger(__name__)

DEFAULT_ATTEMPTS = 6
DEFAULT_DELAY_SECONDS = 1.2

PROCESSING_MESSAGE = (
    "Your payment went through and your order is still being processed. "
    "It will appear in your order history shortly."
)
MISSING_SESSION_MESSAGE = "Missing checkout session id (sid)."


class OrderSource(Protocol):
    async def order_for_session(self, external_session_id: str) -> Order | None: ...

    async def items_for_order(self, order_id: str) -> list[OrderItem]: ...


@dataclass(frozen=True)
class OrderFound:
    order: Order
    items: list[OrderItem]
    attempts: int = 1

    @property
    def subtotal(self) -> int:
        return sum(item.line_total for item in self.items)


@dataclass(frozen=True)
class NotYetAvailable:
    external_session_id: str
    attempts: int
    message: str = PROCESSING_MESSAGE


class OrderReconciliationReader:
    def __init__(
        self,
        source: OrderSource,
        attempts: int = DEFAULT_ATTEMPTS,
        delay: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.source = source
        self.attempts = attempts
        self.delay = delay
        self.sleep = sleep

    @property
    def window(self) -> float:
        """Total time spent waiting before giving up."""
        return self.delay * (self.attempts - 1)

    async def await_order(self, external_session_id: str) -> OrderFound | NotYetAvailable:
        for attempt in range(1, self.attempts + 1):
            order = await self._find(external_session_id, attempt)
            if order is not None:
                items = await self._items(order)
                logger.info("Order reconciled", order_id=order.id, session_id=external_session_id, attempts=attempt)
                return OrderFound(order=order, items=items, attempts=attempt)
            if attempt < self.attempts:
                await self.sleep(self.delay)

        logger.info("Order not yet materialized", session_id=external_session_id, attempts=self.attempts)
        return NotYetAvailable(external_session_id=external_session_id, attempts=self.attempts)

    async def _find(self, external_session_id: str, attempt: int) -> Order | None:
        try:
            return await self.source.order_for_session(external_session_id)
        except SQLAlchemyError as exc:
            logger.warning("Order lookup failed", session_id=external_session_id, attempt=attempt, error=str(exc))
            return None

    async def _items(self, order: Order) -> list[OrderItem]:
        try:
            return await self.source.items_for_order(order.id)
        except SQLAlchemyError as exc:
            logger.warning("Order items lookup failed", order_id=order.id, error=str(exc))
            return []


# ---------------------------------------------------------------------------
# Confirmation page state
# ---------------------------------------------------------------------------
class ConfirmationStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    FOUND = "found"
    PROCESSING = "processing"
    MISSING_SESSION = "missing_session"


@dataclass
class ConfirmationState:
    status: ConfirmationStatus = ConfirmationStatus.IDLE
    session_id: str | None = None
    order: Order | None = None
    items: list[OrderItem] = field(default_factory=list)
    message: str | None = None


class OrderConfirmation:
    """Tracks the order behind a checkout redirect as a cancellable task.

    Each ``track`` call starts a new generation; a task from an older
    generation can finish but can never write its result into ``state``.
    """

    def __init__(self, reader: OrderReconciliationReader, cart: CartStore | None = None) -> None:
        self.reader = reader
        self.cart = cart
        self.state = ConfirmationState()
        self.generation = RequestGeneration()
        self._task: asyncio.Task | None = None

    def track(self, session_id: str | None) -> asyncio.Task | None:
        token = self.generation.begin()
        self._cancel_task()

        if not session_id:
            self.state = ConfirmationState(status=ConfirmationStatus.MISSING_SESSION, message=MISSING_SESSION_MESSAGE)
            return None

        self.state = ConfirmationState(status=ConfirmationStatus.LOADING, session_id=session_id)
        if self.cart is not None:
            # Returning from checkout means the cart has been paid for
            self.cart.clear()

        self._task = asyncio.create_task(self._run(token, session_id))
        return self._task

    def cancel(self) -> None:
        self.generation.invalidate()
        self._cancel_task()

    async def _run(self, token: int, session_id: str) -> None:
        result = await self.reader.await_order(session_id)
        if not self.generation.is_current(token):
            logger.debug("Discarding superseded reconciliation result", session_id=session_id)
            return

        if isinstance(result, OrderFound):
            self.state = ConfirmationState(
                status=ConfirmationStatus.FOUND,
                session_id=session_id,
                order=result.order,
                items=result.items,
            )
        else:
            self.state = ConfirmationState(
                status=ConfirmationStatus.PROCESSING,
                session_id=session_id,
                message=result.message,
            )

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
