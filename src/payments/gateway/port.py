"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
This enables swapping between FakeGateway (dev/test) and StripeGateway
(production) without changing the checkout or callback code.

Adapters speak in plain dataclasses and provider-shaped dicts; nothing
outside ``payments.gateway`` imports a provider SDK.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

CHECKOUT_SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


@dataclass(frozen=True)
class CheckoutLineItem:
    """One priced line of a hosted checkout session."""

    name: str
    unit_amount: int
    quantity: int
    currency: str
    image: str | None = None
    # Attached to the product/price record, not the session
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ShippingOption:
    display_name: str
    amount: int
    currency: str
    min_business_days: int = 2
    max_business_days: int = 5


@dataclass(frozen=True)
class CheckoutSessionRequest:
    line_items: list[CheckoutLineItem]
    success_url: str
    cancel_url: str
    shipping_option: ShippingOption
    shipping_countries: tuple[str, ...] = ("GB",)
    collect_phone: bool = True
    billing_address_required: bool = True
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CreatedSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class ProviderEvent:
    """A verified callback event; ``data`` is the provider object it concerns."""

    id: str
    type: str
    data: dict[str, Any]


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_checkout_session(self, request: CheckoutSessionRequest) -> CreatedSession:
        """Create a hosted checkout session. Raises PaymentProviderError."""
        ...

    @abstractmethod
    def construct_event(self, payload: bytes | str, signature: str) -> ProviderEvent:
        """Verify and decode a callback. Raises SignatureVerificationError."""
        ...

    @abstractmethod
    def list_line_items(self, session_id: str) -> list[dict[str, Any]]:
        """Fetch the session's line items with price and product expanded."""
        ...
