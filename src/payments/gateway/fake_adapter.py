"""Configurable fake payment gateway for development and testing.

This adapter simulates a hosted checkout provider without any external calls.
It can be configured at runtime to succeed or fail, making it useful for:
- Manual API testing against a local server
- Automated tests with predictable session ids and payloads
- Development without real gateway credentials

Sessions and their line items are kept in memory and can be turned into
provider-shaped completion events with ``completion_event()``.
"""

import json
from itertools import count
from typing import Any
from uuid import uuid4

from payments.gateway.port import (
    CHECKOUT_SESSION_ID_PLACEHOLDER,
    CheckoutSessionRequest,
    CreatedSession,
    PaymentGateway,
    ProviderEvent,
)
from shared.errors import PaymentProviderError, SignatureVerificationError

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self, signature: str = TEST_SIGNATURE, checkout_host: str = "https://checkout.fake") -> None:
        self.signature = signature
        self.checkout_host = checkout_host
        self.should_succeed: bool = True
        self.failure_reason: str = "Payment provider unavailable"
        self.calls: list[dict] = []
        self.sessions: dict[str, CheckoutSessionRequest] = {}
        self._line_items: dict[str, list[dict[str, Any]]] = {}
        self._ids = count(1)

    def configure(self, should_succeed: bool, failure_reason: str = "Payment provider unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    # -------------------------------------------------------------------
    # PaymentGateway
    # -------------------------------------------------------------------
    def create_checkout_session(self, request: CheckoutSessionRequest) -> CreatedSession:
        self.calls.append({"method": "create_checkout_session", "request": request})

        if not self.should_succeed:
            raise PaymentProviderError(self.failure_reason)

        session_id = f"sess_{next(self._ids)}"
        self.sessions[session_id] = request
        self._line_items[session_id] = [self._line_item_record(session_id, i, item) for i, item in enumerate(request.line_items)]
        return CreatedSession(session_id=session_id, url=f"{self.checkout_host}/pay/{session_id}")

    def construct_event(self, payload: bytes | str, signature: str) -> ProviderEvent:
        self.calls.append({"method": "construct_event", "signature": signature})

        if not signature or signature != self.signature:
            raise SignatureVerificationError("No signatures found matching the expected signature for payload")
        try:
            body = json.loads(payload)
        except ValueError as exc:
            raise SignatureVerificationError(f"Invalid payload: {exc}") from exc
        return ProviderEvent(
            id=body.get("id", ""),
            type=body.get("type", ""),
            data=(body.get("data") or {}).get("object") or {},
        )

    def list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        self.calls.append({"method": "list_line_items", "session_id": session_id})

        if not self.should_succeed:
            raise PaymentProviderError(self.failure_reason)
        return [dict(item) for item in self._line_items.get(session_id, [])]

    # -------------------------------------------------------------------
    # Simulation helpers
    # -------------------------------------------------------------------
    def set_line_items(self, session_id: str, line_items: list[dict[str, Any]]) -> None:
        """Replace what the provider will report for a session."""
        self._line_items[session_id] = line_items

    def success_url_for(self, session_id: str) -> str:
        return self.sessions[session_id].success_url.replace(CHECKOUT_SESSION_ID_PLACEHOLDER, session_id)

    def completion_event(
        self,
        session_id: str,
        amount_total: int | None = None,
        shipping_details: dict[str, Any] | None = None,
        customer_details: dict[str, Any] | None = None,
        event_type: str = "checkout.session.completed",
        event_id: str | None = None,
    ) -> str:
        """Build the JSON body the provider would post for a finished session."""
        request = self.sessions.get(session_id)
        subtotal = sum(item.unit_amount * item.quantity for item in request.line_items) if request else 0
        shipping = request.shipping_option.amount if request else 0
        currency = request.line_items[0].currency if request and request.line_items else "gbp"

        session_object = {
            "id": session_id,
            "object": "checkout.session",
            "amount_subtotal": subtotal,
            "amount_total": subtotal + shipping if amount_total is None else amount_total,
            "total_details": {"amount_shipping": shipping, "amount_discount": 0, "amount_tax": 0},
            "currency": currency,
            "payment_intent": f"pi_{session_id}",
            "payment_status": "paid",
            "metadata": dict(request.metadata) if request else {},
            "customer_details": customer_details,
            "shipping_details": shipping_details,
        }
        return json.dumps(
            {
                "id": event_id or f"evt_{uuid4().hex[:16]}",
                "object": "event",
                "type": event_type,
                "data": {"object": session_object},
            }
        )

    @staticmethod
    def _line_item_record(session_id: str, index: int, item) -> dict[str, Any]:
        return {
            "id": f"li_{session_id}_{index}",
            "object": "item",
            "description": item.name,
            "quantity": item.quantity,
            "amount_subtotal": item.unit_amount * item.quantity,
            "amount_total": item.unit_amount * item.quantity,
            "currency": item.currency,
            "price": {
                "id": f"price_{session_id}_{index}",
                "unit_amount": item.unit_amount,
                "currency": item.currency,
                "product": {
                    "id": f"prod_{session_id}_{index}",
                    "name": item.name,
                    "images": [item.image] if item.image else [],
                    "metadata": dict(item.metadata),
                },
            },
        }
