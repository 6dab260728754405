"""Environment-driven settings for the storefront services."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from shared.errors import ConfigurationError

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


def _csv(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    env: str = "development"
    database_url: str = "sqlite:///storefront.db"

    # Redirect base URL resolution
    public_site_url: str | None = None
    platform_url: str | None = None
    strict_base_url: bool = False

    # Payment provider
    payment_gateway: str = "fake"
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None

    # Checkout session shape
    currency: str = "gbp"
    shipping_countries: tuple[str, ...] = ("GB",)
    shipping_display_name: str = "Standard delivery"
    shipping_amount_minor_units: int = 0
    delivery_estimate_days: tuple[int, int] = (2, 5)

    # Order reconciliation polling
    reconcile_attempts: int = 6
    reconcile_delay_seconds: float = 1.2

    cors_origins: tuple[str, ...] = field(default=("*",))

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Raises ``ConfigurationError`` when the environment is internally
        inconsistent, e.g. ``STRICT_BASE_URL`` without ``PUBLIC_SITE_URL``.
        """
        env = os.environ if environ is None else environ

        settings = cls(
            env=(env.get("STOREFRONT_ENV") or env.get("ENVIRONMENT") or "development").lower(),
            database_url=env.get("DATABASE_URL", cls.database_url),
            public_site_url=env.get("PUBLIC_SITE_URL") or None,
            platform_url=env.get("PLATFORM_URL") or None,
            strict_base_url=_flag(env.get("STRICT_BASE_URL")),
            payment_gateway=(env.get("PAYMENT_GATEWAY") or "fake").lower(),
            stripe_secret_key=env.get("STRIPE_SECRET_KEY") or None,
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET") or None,
            currency=(env.get("CURRENCY") or "gbp").lower(),
            shipping_countries=tuple(c.upper() for c in _csv(env.get("SHIPPING_COUNTRIES"), ("GB",))),
            shipping_amount_minor_units=int(env.get("SHIPPING_AMOUNT", "0")),
            reconcile_attempts=int(env.get("RECONCILE_ATTEMPTS", "6")),
            reconcile_delay_seconds=float(env.get("RECONCILE_DELAY_SECONDS", "1.2")),
            cors_origins=_csv(env.get("CORS_ORIGINS"), ("*",)),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        problems = []
        if self.strict_base_url and not self.public_site_url:
            problems.append("STRICT_BASE_URL is set but PUBLIC_SITE_URL is missing")
        if self.payment_gateway not in ("fake", "stripe"):
            problems.append(f"Unknown PAYMENT_GATEWAY '{self.payment_gateway}'")
        if self.payment_gateway == "stripe" and not (self.stripe_secret_key and self.stripe_webhook_secret):
            problems.append("Stripe gateway requires STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET")
        if self.reconcile_attempts < 1:
            problems.append("RECONCILE_ATTEMPTS must be at least 1")
        if self.shipping_amount_minor_units < 0:
            problems.append("SHIPPING_AMOUNT cannot be negative")
        if problems:
            raise ConfigurationError("; ".join(problems))
