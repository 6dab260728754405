"""Integration tests for the checkout and order list endpoints."""

import pytest
from fastapi.testclient import TestClient

from app import create_app
from ordering.order.access import AccessPolicy


@pytest.fixture()
def client(services):
    return TestClient(create_app(services))


def _cart(price=1000, quantity=2, seller_id="s1"):
    return [
        {
            "item_id": "p1",
            "name": "Linen towel",
            "unit_price_minor_units": price,
            "quantity": quantity,
            "seller_id": seller_id,
            "metadata": {"product_id": "p1", "slug": "linen-towel"},
        }
    ]


def _pay(client, gateway, user_id="b1", items=None):
    """Check out and deliver the provider's completion callback."""
    response = client.post("/checkout", json={"items": items or _cart(), "user_id": user_id})
    session_id = response.json()["session_id"]
    client.post(
        "/payments/webhook",
        content=gateway.completion_event(session_id),
        headers={"Stripe-Signature": gateway.signature},
    )
    return session_id


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestCheckoutEndpoint:
    def test_returns_redirect(self, client, gateway):
        response = client.post("/checkout", json={"items": _cart(), "user_id": "b1"})

        assert response.status_code == 200
        assert response.json() == {"url": "https://checkout.fake/pay/sess_1", "session_id": "sess_1"}
        assert gateway.sessions["sess_1"].metadata == {"user_id": "b1"}

    def test_empty_cart(self, client, gateway):
        response = client.post("/checkout", json={"items": []})

        assert response.status_code == 400
        assert response.json()["error"] == "cart: Cart is empty"
        assert gateway.calls == []

    def test_fractional_price(self, client):
        response = client.post("/checkout", json={"items": _cart(price=9.99)})
        assert response.status_code == 400
        assert "p1" in response.json()["fields"]

    def test_provider_failure(self, client, gateway):
        gateway.configure(should_succeed=False, failure_reason="Provider is down")
        response = client.post("/checkout", json={"items": _cart()})
        assert response.status_code == 502
        assert response.json() == {"error": "Provider is down"}


class TestCheckoutSuccessEndpoint:
    def test_missing_sid(self, client):
        response = client.get("/checkout/success")
        assert response.status_code == 400
        assert response.json()["message"] == "Missing checkout session id (sid)."

    def test_order_not_yet_recorded(self, client):
        client.post("/checkout", json={"items": _cart()})
        response = client.get("/checkout/success", params={"sid": "sess_1"})

        assert response.status_code == 202
        assert response.json()["status"] == "processing"

    def test_order_found(self, client, gateway):
        session_id = _pay(client, gateway)

        response = client.get("/checkout/success", params={"sid": session_id})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "found"
        assert body["order"]["amount_minor_units"] == 2000
        assert body["order"]["amount_display"] == "£20.00"
        assert body["subtotal_minor_units"] == 2000
        assert [item["quantity"] for item in body["items"]] == [2]


class TestOrderListEndpoints:
    def test_buyer_must_identify(self, client):
        response = client.get("/orders")
        assert response.status_code == 401
        assert response.json()["error"] == "Please sign in to view your orders."

    def test_buyer_orders(self, client, gateway):
        _pay(client, gateway, user_id="b1")
        _pay(client, gateway, user_id="b2")

        response = client.get("/orders", headers={"X-Viewer-Id": "b1"})

        assert response.status_code == 200
        [entry] = response.json()["orders"]
        assert entry["order"]["user_id"] == "b1"
        assert entry["subtotal_minor_units"] == 2000

    def test_seller_sales(self, client, gateway):
        _pay(client, gateway, user_id="b1")

        response = client.get("/seller/sales", headers={"X-Viewer-Id": "s1"})

        assert response.status_code == 200
        body = response.json()
        assert len(body["orders"]) == 1
        assert body["orders"][0]["items"][0]["seller_id"] == "s1"
        assert body["access_restricted"] is False

    def test_seller_must_identify(self, client):
        response = client.get("/seller/sales")
        assert response.status_code == 401


class TestRestrictedSellerAccess:
    @pytest.fixture()
    def services(self, settings, gateway, database):
        from container import build_services

        policy = AccessPolicy(sellers_can_read_orders=False, sellers_can_embed_orders=False)
        return build_services(settings, gateway=gateway, database=database, policy=policy, create_schema=False)

    def test_items_without_visible_orders(self, client, gateway):
        _pay(client, gateway, user_id="b1")

        body = client.get("/seller/sales", headers={"X-Viewer-Id": "s1"}).json()

        assert body["orders"] == []
        assert body["access_restricted"] is True
        assert [item["title"] for item in body["unattached_items"]] == ["Linen towel"]
