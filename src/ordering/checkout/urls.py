"""Redirect base URL resolution for hosted checkout.

One authoritative order: configured public URL, request ``Origin``, request
``Host``, platform-provided URL, localhost. Anything past the configured URL
is a guess, so it is logged; ``STRICT_BASE_URL`` turns the missing
configuration into a startup failure instead (see ``Settings.validate``).
"""

from collections.abc import Mapping

import structlog

from payments.gateway.port import CHECKOUT_SESSION_ID_PLACEHOLDER
from shared.config import Settings

logger = structlog.get_logger(__name__)

LOCAL_DEFAULT = "http://localhost:3000"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    for key, value in headers.items():
        if key.lower() == name:
            return value.strip() or None
    return None


def resolve_base_url(settings: Settings, headers: Mapping[str, str] | None = None) -> str:
    headers = headers or {}

    if settings.public_site_url:
        return settings.public_site_url.rstrip("/")

    origin = _header(headers, "origin")
    if origin:
        source, base = "origin", origin
    elif host := _header(headers, "host"):
        scheme = "http" if host.startswith(("localhost", "127.0.0.1")) else "https"
        source, base = "host", f"{scheme}://{host}"
    elif settings.platform_url:
        platform = settings.platform_url
        source, base = "platform", platform if "://" in platform else f"https://{platform}"
    else:
        source, base = "default", LOCAL_DEFAULT

    logger.warning("PUBLIC_SITE_URL not configured; redirect base inferred", source=source, base_url=base)
    return base.rstrip("/")


def success_url(base_url: str) -> str:
    return f"{base_url}/checkout/success?sid={CHECKOUT_SESSION_ID_PLACEHOLDER}"


def cancel_url(base_url: str) -> str:
    return f"{base_url}/checkout"
