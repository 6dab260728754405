"""Seller attribution: which seller should see a purchased line.

Resolution order: attribution already carried by the line, then a catalogue
lookup by product slug, then None. A missing seller is tolerated everywhere;
it only hides the line from seller-facing sales views.

Two call sites: checkout (best effort, from the cart line) and the payment
callback (authoritative, from the metadata frozen on the provider's price
record when the session was created).
"""

from typing import Protocol

import structlog

from ordering.cart.cart import CartLine

logger = structlog.get_logger(__name__)


class SellerLookup(Protocol):
    def seller_for_slug(self, slug: str) -> str | None: ...


class SellerAttributionResolver:
    def __init__(self, lookup: SellerLookup) -> None:
        self.lookup = lookup

    def resolve(self, seller_id: str | None, slug: str | None) -> str | None:
        if seller_id:
            return str(seller_id)
        if not slug:
            return None

        resolved = self.lookup.seller_for_slug(slug)
        if resolved is None:
            logger.info("Seller attribution unresolved", slug=slug)
        return resolved

    def resolve_line(self, line: CartLine) -> str | None:
        return self.resolve(line.seller_id, line.slug)
