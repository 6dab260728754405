"""Tests for reconciling the checkout redirect with the recorded order."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from ordering.cart.cart import CartLine, CartStore
from ordering.order.order import Order, OrderItem
from ordering.reconciliation.reader import (
    MISSING_SESSION_MESSAGE,
    PROCESSING_MESSAGE,
    ConfirmationStatus,
    NotYetAvailable,
    OrderConfirmation,
    OrderFound,
    OrderReconciliationReader,
)


class EventuallyVisible:
    """Order source whose order appears after ``visible_after`` lookups."""

    def __init__(self, visible_after=0, order_id="o-1", session_id="sess_1", failures=0):
        self.visible_after = visible_after
        self.failures = failures
        self.lookups = 0
        self.order = Order(id=order_id, external_session_id=session_id, amount_minor_units=2000, currency="gbp")
        self.items = [OrderItem(id="i-1", order_id=order_id, title="Towel", quantity=2, unit_price_minor_units=1000)]

    async def order_for_session(self, external_session_id):
        self.lookups += 1
        if self.failures:
            self.failures -= 1
            raise OperationalError("SELECT", {}, Exception("connection reset"))
        if self.lookups > self.visible_after and external_session_id == self.order.external_session_id:
            return self.order
        return None

    async def items_for_order(self, order_id):
        return list(self.items)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class TestOrderReconciliationReader:
    async def test_order_already_present(self):
        sleep = RecordingSleep()
        reader = OrderReconciliationReader(EventuallyVisible(), attempts=6, delay=1.2, sleep=sleep)

        result = await reader.await_order("sess_1")

        assert isinstance(result, OrderFound)
        assert result.order.id == "o-1"
        assert result.subtotal == 2000
        assert result.attempts == 1
        assert sleep.delays == []

    async def test_order_appears_on_a_later_attempt(self):
        sleep = RecordingSleep()
        source = EventuallyVisible(visible_after=3)
        reader = OrderReconciliationReader(source, attempts=6, delay=1.2, sleep=sleep)

        result = await reader.await_order("sess_1")

        assert isinstance(result, OrderFound)
        assert result.attempts == 4
        assert sleep.delays == [1.2, 1.2, 1.2]

    async def test_gives_up_without_raising(self):
        sleep = RecordingSleep()
        source = EventuallyVisible(visible_after=100)
        reader = OrderReconciliationReader(source, attempts=6, delay=1.2, sleep=sleep)

        result = await reader.await_order("sess_1")

        assert isinstance(result, NotYetAvailable)
        assert result.attempts == 6
        assert result.message == PROCESSING_MESSAGE
        assert source.lookups == 6
        # No sleep after the final attempt
        assert len(sleep.delays) == 5

    async def test_lookup_errors_count_as_misses(self):
        source = EventuallyVisible(failures=2)
        reader = OrderReconciliationReader(source, attempts=3, delay=0, sleep=RecordingSleep())
        result = await reader.await_order("sess_1")
        assert isinstance(result, OrderFound)
        assert result.attempts == 3

    async def test_window(self):
        reader = OrderReconciliationReader(EventuallyVisible(), attempts=6, delay=1.2)
        assert reader.window == pytest.approx(6.0)

    def test_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            OrderReconciliationReader(EventuallyVisible(), attempts=0)

    async def test_cancellation_propagates(self):
        started = asyncio.Event()

        async def slow_sleep(delay):
            started.set()
            await asyncio.Event().wait()

        reader = OrderReconciliationReader(EventuallyVisible(visible_after=100), attempts=3, sleep=slow_sleep)
        task = asyncio.create_task(reader.await_order("sess_1"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_against_store(self, services, gateway):
        redirect = services.checkout.initiate(
            [CartLine(item_id="p1", name="Towel", unit_price_minor_units=1000, quantity=2)], user_id="u-1"
        )
        missing = await services.reconciliation.await_order(redirect.session_id)
        assert isinstance(missing, NotYetAvailable)

        services.callbacks.handle(gateway.completion_event(redirect.session_id), gateway.signature)

        found = await services.reconciliation.await_order(redirect.session_id)
        assert isinstance(found, OrderFound)
        assert found.order.amount_minor_units == 2000
        assert [item.quantity for item in found.items] == [2]


class TestOrderConfirmation:
    async def test_missing_session_id(self):
        confirmation = OrderConfirmation(OrderReconciliationReader(EventuallyVisible(), sleep=RecordingSleep()))
        assert confirmation.track(None) is None
        assert confirmation.state.status is ConfirmationStatus.MISSING_SESSION
        assert confirmation.state.message == MISSING_SESSION_MESSAGE

    async def test_found(self):
        confirmation = OrderConfirmation(OrderReconciliationReader(EventuallyVisible(), sleep=RecordingSleep()))
        task = confirmation.track("sess_1")
        assert confirmation.state.status is ConfirmationStatus.LOADING

        await task

        assert confirmation.state.status is ConfirmationStatus.FOUND
        assert confirmation.state.order.id == "o-1"
        assert len(confirmation.state.items) == 1

    async def test_processing(self):
        reader = OrderReconciliationReader(EventuallyVisible(visible_after=100), attempts=2, sleep=RecordingSleep())
        confirmation = OrderConfirmation(reader)
        await confirmation.track("sess_1")
        assert confirmation.state.status is ConfirmationStatus.PROCESSING
        assert confirmation.state.message == PROCESSING_MESSAGE

    async def test_cart_cleared_on_redirect_back(self):
        cart = CartStore()
        cart.add_item(CartLine(item_id="p1", name="Towel", unit_price_minor_units=1000))
        confirmation = OrderConfirmation(OrderReconciliationReader(EventuallyVisible(), sleep=RecordingSleep()), cart=cart)

        await confirmation.track("sess_1")

        assert cart.lines == []

    async def test_newer_track_supersedes_older(self):
        release = asyncio.Event()

        class Gate(EventuallyVisible):
            async def order_for_session(self, external_session_id):
                if external_session_id == "sess_old":
                    await release.wait()
                    return Order(id="o-old", external_session_id="sess_old", amount_minor_units=1, currency="gbp")
                return await super().order_for_session(external_session_id)

        confirmation = OrderConfirmation(OrderReconciliationReader(Gate(), sleep=RecordingSleep()))
        old_task = confirmation.track("sess_old")
        new_task = confirmation.track("sess_1")
        release.set()
        await new_task
        await asyncio.gather(old_task, return_exceptions=True)

        assert old_task.cancelled()
        assert confirmation.state.session_id == "sess_1"
        assert confirmation.state.order.id == "o-1"

    async def test_stale_result_is_not_committed(self):
        release = asyncio.Event()

        class Gate(EventuallyVisible):
            async def order_for_session(self, external_session_id):
                await release.wait()
                return await super().order_for_session(external_session_id)

        confirmation = OrderConfirmation(OrderReconciliationReader(Gate(), sleep=RecordingSleep()))
        task = confirmation.track("sess_1")
        # Invalidate without cancelling the task: the result must still be dropped
        confirmation.generation.invalidate()
        release.set()
        await task

        assert confirmation.state.status is ConfirmationStatus.LOADING

    async def test_cancel(self):
        confirmation = OrderConfirmation(
            OrderReconciliationReader(EventuallyVisible(visible_after=100), attempts=3, sleep=asyncio.sleep, delay=10)
        )
        task = confirmation.track("sess_1")
        confirmation.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.cancelled()
        assert confirmation.state.status is ConfirmationStatus.LOADING
