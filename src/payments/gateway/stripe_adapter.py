"""Stripe payment gateway adapter.

Uses the stripe-python ``StripeClient`` to:
- Create hosted Checkout Sessions with per-line product metadata
- List a session's line items with price and product expanded
- Verify webhook signatures using the endpoint's signing secret

Provider errors are translated into ``PaymentProviderError`` and
``SignatureVerificationError`` so callers never depend on the SDK.
"""

from typing import Any

import stripe
import structlog

from payments.gateway.port import (
    CheckoutSessionRequest,
    CreatedSession,
    PaymentGateway,
    ProviderEvent,
)
from shared.errors import PaymentProviderError, SignatureVerificationError

logger = structlog.get_logger(__name__)

LINE_ITEM_PAGE_SIZE = 100


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, webhook_secret: str, client: stripe.StripeClient | None = None) -> None:
        self.webhook_secret = webhook_secret
        self.client = client or stripe.StripeClient(api_key)

    def create_checkout_session(self, request: CheckoutSessionRequest) -> CreatedSession:
        params = self.session_params(request)
        try:
            session = self.client.v1.checkout.sessions.create(params=params)
        except stripe.StripeError as exc:
            logger.error("Checkout session creation failed", error=str(exc), error_type=type(exc).__name__)
            raise PaymentProviderError(exc.user_message or str(exc)) from exc

        if not session.url:
            raise PaymentProviderError("Missing checkout URL")

        logger.info("Checkout session created", session_id=session.id)
        return CreatedSession(session_id=session.id, url=session.url)

    def construct_event(self, payload: bytes | str, signature: str) -> ProviderEvent:
        try:
            event = self.client.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise SignatureVerificationError(str(exc)) from exc
        except ValueError as exc:
            raise SignatureVerificationError(f"Invalid payload: {exc}") from exc

        body = event.to_dict()
        return ProviderEvent(
            id=body.get("id", ""),
            type=body.get("type", ""),
            data=(body.get("data") or {}).get("object") or {},
        )

    def list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        try:
            page = self.client.v1.checkout.sessions.line_items.list(
                session_id,
                params={"limit": LINE_ITEM_PAGE_SIZE, "expand": ["data.price.product"]},
            )
            return [item.to_dict() for item in page.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise PaymentProviderError(exc.user_message or str(exc)) from exc

    @staticmethod
    def session_params(request: CheckoutSessionRequest) -> dict[str, Any]:
        """Translate a provider-neutral request into Checkout Session params."""
        option = request.shipping_option
        params: dict[str, Any] = {
            "mode": "payment",
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "line_items": [
                {
                    "price_data": {
                        "currency": item.currency,
                        "unit_amount": item.unit_amount,
                        "product_data": {
                            "name": item.name,
                            **({"images": [item.image]} if item.image else {}),
                            "metadata": dict(item.metadata),
                        },
                    },
                    "quantity": item.quantity,
                }
                for item in request.line_items
            ],
            "phone_number_collection": {"enabled": request.collect_phone},
            "shipping_address_collection": {"allowed_countries": list(request.shipping_countries)},
            "shipping_options": [
                {
                    "shipping_rate_data": {
                        "type": "fixed_amount",
                        "fixed_amount": {"amount": option.amount, "currency": option.currency},
                        "display_name": option.display_name,
                        "delivery_estimate": {
                            "minimum": {"unit": "business_day", "value": option.min_business_days},
                            "maximum": {"unit": "business_day", "value": option.max_business_days},
                        },
                    }
                }
            ],
            "billing_address_collection": "required" if request.billing_address_required else "auto",
        }
        if request.metadata:
            params["metadata"] = dict(request.metadata)
        return params
