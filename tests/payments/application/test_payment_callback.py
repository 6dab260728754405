"""Tests for the payment callback: provider event in, exactly one order out."""

import json

import pytest
from sqlalchemy import func, select

from ordering.cart.cart import CartLine
from ordering.checkout.initiation import CheckoutInitiator
from ordering.order.order import Order, OrderItem
from ordering.order.placement import OrderPlacement
from payments.gateway.fake_adapter import TEST_SIGNATURE
from payments.payment.webhook import CallbackOutcome, PaymentCallbackHandler
from shared.errors import PartialItemizationWarning

SHIPPING = {
    "name": "Ada Lovelace",
    "phone": "+44 20 7946 0000",
    "address": {"line1": "1 High St", "city": "London", "postal_code": "N1 1AA", "country": "GB"},
}


@pytest.fixture()
def handler(gateway, database, resolver):
    return PaymentCallbackHandler(gateway, OrderPlacement(database), resolver)


def _checkout(gateway, resolver, settings, lines=None, user_id="u-1"):
    lines = lines or [
        CartLine(
            item_id="p1",
            name="Linen towel",
            unit_price_minor_units=1000,
            quantity=2,
            seller_id="s1",
            metadata={"product_id": "p1", "slug": "linen-towel"},
        )
    ]
    return CheckoutInitiator(gateway, resolver, settings).initiate(lines, user_id=user_id)


def _orders(database):
    with database.session() as session:
        return list(session.scalars(select(Order)))


def _item_count(database):
    with database.session() as session:
        return session.scalar(select(func.count()).select_from(OrderItem))


class TestSignature:
    def test_missing_signature_is_rejected(self, handler, gateway):
        ack = handler.handle(gateway.completion_event("sess_1"), None)
        assert ack.status_code == 400
        assert ack.outcome is CallbackOutcome.REJECTED
        assert ack.body == "Missing signature"

    def test_bad_signature_is_rejected(self, handler, gateway, database):
        ack = handler.handle(gateway.completion_event("sess_1"), "forged")
        assert ack.status_code == 400
        assert ack.body == "Bad signature"
        assert _orders(database) == []


class TestCompletedCheckout:
    def test_creates_order_with_items(self, handler, gateway, resolver, settings, database):
        redirect = _checkout(gateway, resolver, settings)

        ack = handler.handle(gateway.completion_event(redirect.session_id, shipping_details=SHIPPING), TEST_SIGNATURE)

        assert ack.status_code == 200
        assert ack.outcome is CallbackOutcome.CREATED
        [order] = _orders(database)
        assert order.id == ack.order_id
        assert order.external_session_id == "sess_1"
        assert order.amount_minor_units == 2000
        assert order.user_id == "u-1"
        assert order.external_payment_reference == "pi_sess_1"
        assert (order.first_name, order.last_name) == ("Ada", "Lovelace")
        assert order.postal_code == "N1 1AA"

        with database.session() as session:
            [item] = session.scalars(select(OrderItem))
        assert item.quantity == 2
        assert item.unit_price_minor_units == 1000
        assert item.seller_id == "s1"
        assert item.product_slug == "linen-towel"
        assert order.is_itemization_consistent([item])

    def test_redelivery_creates_no_second_order(self, handler, gateway, resolver, settings, database):
        redirect = _checkout(gateway, resolver, settings)
        event = gateway.completion_event(redirect.session_id)

        first = handler.handle(event, TEST_SIGNATURE)
        second = handler.handle(event, TEST_SIGNATURE)

        assert first.outcome is CallbackOutcome.CREATED
        assert second.status_code == 200
        assert second.outcome is CallbackOutcome.DUPLICATE
        assert len(_orders(database)) == 1
        assert _item_count(database) == 1

    def test_line_items_are_refetched_from_provider(self, handler, gateway, resolver, settings, database):
        redirect = _checkout(gateway, resolver, settings)
        handler.handle(gateway.completion_event(redirect.session_id), TEST_SIGNATURE)

        assert {"method": "list_line_items", "session_id": "sess_1"} in gateway.calls

    def test_seller_attributed_by_slug_when_metadata_blank(self, handler, gateway, resolver, settings, database, catalogue):
        lines = [
            CartLine(
                item_id="p2",
                name="Mug",
                unit_price_minor_units=1200,
                metadata={"product_id": "p2", "slug": "mug"},
            )
        ]
        redirect = _checkout(gateway, resolver, settings, lines=lines)
        # Listing appears only after checkout started
        catalogue.register_listing("p2", "mug", "s2")

        handler.handle(gateway.completion_event(redirect.session_id), TEST_SIGNATURE)

        with database.session() as session:
            [item] = session.scalars(select(OrderItem))
        assert item.seller_id == "s2"

    def test_unattributable_item_is_kept_without_seller(self, handler, gateway, resolver, settings, database):
        lines = [CartLine(item_id="p3", name="Card", unit_price_minor_units=300)]
        redirect = _checkout(gateway, resolver, settings, lines=lines)

        handler.handle(gateway.completion_event(redirect.session_id), TEST_SIGNATURE)

        with database.session() as session:
            [item] = session.scalars(select(OrderItem))
        assert item.seller_id is None

    def test_partial_itemization(self, handler, gateway, resolver, settings, database):
        redirect = _checkout(gateway, resolver, settings)
        good = gateway.list_line_items(redirect.session_id)[0]
        bad = json.loads(json.dumps(good))
        bad["quantity"] = 0
        gateway.set_line_items(redirect.session_id, [good, bad])

        with pytest.warns(PartialItemizationWarning):
            ack = handler.handle(gateway.completion_event(redirect.session_id, amount_total=4000), TEST_SIGNATURE)

        assert ack.outcome is CallbackOutcome.CREATED
        [order] = _orders(database)
        assert _item_count(database) == 1
        with database.session() as session:
            items = list(session.scalars(select(OrderItem)))
        assert not order.is_itemization_consistent(items)

    def test_malformed_line_metadata_still_creates_order(self, handler, gateway, resolver, settings, database):
        lines = [
            CartLine(item_id="p1", name="Linen towel", unit_price_minor_units=1000, seller_id="s1", metadata={"slug": "linen-towel"}),
            CartLine(item_id="p2", name="Mug", unit_price_minor_units=1200, seller_id="s2", metadata={"slug": "mug"}),
        ]
        redirect = _checkout(gateway, resolver, settings, lines=lines)
        good, bad = gateway.list_line_items(redirect.session_id)
        bad = json.loads(json.dumps(bad))
        bad["price"]["product"]["metadata"] = ["not", "a", "dict"]
        gateway.set_line_items(redirect.session_id, [good, bad])

        with pytest.warns(PartialItemizationWarning):
            ack = handler.handle(gateway.completion_event(redirect.session_id), TEST_SIGNATURE)

        assert ack.status_code == 200
        assert ack.outcome is CallbackOutcome.CREATED
        [order] = _orders(database)
        assert order.id == ack.order_id
        with database.session() as session:
            [item] = session.scalars(select(OrderItem))
        assert item.product_slug == "linen-towel"
        assert item.seller_id == "s1"

    def test_anonymous_checkout_has_no_user(self, handler, gateway, resolver, settings, database):
        redirect = _checkout(gateway, resolver, settings, user_id=None)
        handler.handle(gateway.completion_event(redirect.session_id), TEST_SIGNATURE)
        [order] = _orders(database)
        assert order.user_id is None


class TestOtherEvents:
    def test_other_event_types_are_acknowledged(self, handler, gateway, database):
        event = gateway.completion_event("sess_9", event_type="payment_intent.created")
        ack = handler.handle(event, TEST_SIGNATURE)
        assert ack.status_code == 200
        assert ack.outcome is CallbackOutcome.IGNORED
        assert _orders(database) == []

    def test_processing_failure_is_acknowledged(self, handler, gateway, resolver, settings, database):
        redirect = _checkout(gateway, resolver, settings)
        event = gateway.completion_event(redirect.session_id)
        gateway.configure(should_succeed=False, failure_reason="Provider is down")

        ack = handler.handle(event, TEST_SIGNATURE)

        assert ack.status_code == 200
        assert ack.outcome is CallbackOutcome.ERROR
        assert _orders(database) == []

    def test_session_without_id_is_acknowledged(self, handler, database):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}})
        ack = handler.handle(payload, TEST_SIGNATURE)
        assert ack.status_code == 200
        assert ack.outcome is CallbackOutcome.ERROR
