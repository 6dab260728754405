"""Product listings as seen by checkout: the slug → seller directory.

Catalogue management lives elsewhere; checkout only needs to find which
seller owns a product slug, so this module keeps a narrow read model and
a registration helper used to seed it.
"""

from uuid import uuid4

import structlog
from sqlalchemy import String, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from shared.db import Base, Database

logger = structlog.get_logger(__name__)


class ProductListing(Base):
    __tablename__ = "product_listings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    product_id: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    seller_id: Mapped[str | None] = mapped_column(String(255))
    title: Mapped[str | None] = mapped_column(String(255))


class CatalogueLookup:
    """Read access to product listings."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def seller_for_slug(self, slug: str) -> str | None:
        """Return the seller owning ``slug``, or None when unknown.

        Store errors are logged and reported as "not found"; a missing seller
        only degrades attribution, it never blocks checkout.
        """
        if not slug:
            return None
        try:
            with self.database.session() as session:
                return session.scalar(select(ProductListing.seller_id).where(ProductListing.slug == slug))
        except SQLAlchemyError as exc:
            logger.error("Seller lookup by slug failed", slug=slug, error=str(exc))
            return None

    def register_listing(self, product_id: str, slug: str, seller_id: str | None, title: str | None = None) -> str:
        with self.database.session() as session:
            listing = ProductListing(product_id=product_id, slug=slug, seller_id=seller_id, title=title)
            session.add(listing)
            session.flush()
            return listing.id
