"""Payment gateway factory.

``build_gateway(settings)`` constructs the adapter named by configuration:
- FakeGateway for development and testing
- StripeGateway for production

The instance is handed to the checkout and callback components explicitly;
there is no process-wide gateway.
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import PaymentGateway
from shared.config import Settings
from shared.errors import ConfigurationError


def build_gateway(settings: Settings) -> PaymentGateway:
    """Return a new gateway for ``settings.payment_gateway``."""
    if settings.payment_gateway == "fake":
        if settings.is_production:
            raise ConfigurationError("FakeGateway cannot be used in production")
        return FakeGateway()

    if settings.payment_gateway == "stripe":
        from payments.gateway.stripe_adapter import StripeGateway

        return StripeGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
        )

    raise ConfigurationError(f"Unknown payment gateway '{settings.payment_gateway}'")
