"""Checkout session initiation: cart lines in, hosted payment redirect out.

Validation happens before any external call. Seller attribution is resolved
best-effort and frozen into per-line metadata on the provider's price
records, where the payment callback reads it back.

Session creation is a single call and is never retried here: a repeated
create is not idempotent on the provider side and would open a second
session. Retrying is the payer's decision (pressing "pay" again).
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog

from ordering.attribution import SellerAttributionResolver
from ordering.cart.cart import CartLine
from ordering.checkout.urls import cancel_url, resolve_base_url, success_url
from payments.gateway.port import CheckoutLineItem, CheckoutSessionRequest, PaymentGateway, ShippingOption
from shared.config import Settings
from shared.errors import ValidationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CheckoutRedirect:
    redirect_url: str
    session_id: str


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def validate_cart(lines: Sequence[CartLine]) -> None:
    if not lines:
        raise ValidationError({"cart": ["Cart is empty"]})

    problems: dict[str, list[str]] = {}
    for line in lines:
        if not _is_positive_int(line.unit_price_minor_units):
            problems.setdefault(line.item_id, []).append("Unit price must be a positive integer amount")
        if not _is_positive_int(line.quantity):
            problems.setdefault(line.item_id, []).append("Quantity must be at least 1")
    if problems:
        raise ValidationError(problems)


class CheckoutInitiator:
    def __init__(self, gateway: PaymentGateway, resolver: SellerAttributionResolver, settings: Settings) -> None:
        self.gateway = gateway
        self.resolver = resolver
        self.settings = settings

    def initiate(
        self,
        lines: Sequence[CartLine],
        user_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> CheckoutRedirect:
        """Create a hosted checkout session for ``lines``.

        Raises:
            ValidationError: empty cart or an unpriced/unquantified line.
            PaymentProviderError: the provider refused to create the session.
        """
        validate_cart(lines)

        base_url = resolve_base_url(self.settings, headers)
        request = CheckoutSessionRequest(
            line_items=[self._line_item(line) for line in lines],
            success_url=success_url(base_url),
            cancel_url=cancel_url(base_url),
            shipping_option=ShippingOption(
                display_name=self.settings.shipping_display_name,
                amount=self.settings.shipping_amount_minor_units,
                currency=self.settings.currency,
                min_business_days=self.settings.delivery_estimate_days[0],
                max_business_days=self.settings.delivery_estimate_days[1],
            ),
            shipping_countries=self.settings.shipping_countries,
            collect_phone=True,
            billing_address_required=True,
            metadata={"user_id": str(user_id)} if user_id else {},
        )

        session = self.gateway.create_checkout_session(request)
        logger.info(
            "Checkout session created",
            session_id=session.session_id,
            line_count=len(lines),
            user_id=user_id,
        )
        return CheckoutRedirect(redirect_url=session.url, session_id=session.session_id)

    def _line_item(self, line: CartLine) -> CheckoutLineItem:
        seller_id = self.resolver.resolve_line(line)
        return CheckoutLineItem(
            name=line.name,
            unit_amount=line.unit_price_minor_units,
            quantity=line.quantity,
            currency=self.settings.currency,
            image=line.image,
            metadata={
                "product_id": line.product_id,
                "slug": line.slug or "",
                "seller_id": seller_id or "",
            },
        )
