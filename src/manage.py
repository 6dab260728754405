"""Storefront database management CLI.

Creates and drops the tables of every bounded context in the database named
by ``DATABASE_URL``.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
    python src/manage.py add-listing --product-id p1 --slug linen-towel --seller-id s1
"""

import argparse
import sys

from catalogue.listing import CatalogueLookup
from shared.config import Settings
from shared.db import Database, drop_db, setup_db
from shared.logging import configure_logging


def _database(settings: Settings) -> Database:
    # Registers the order tables on the shared metadata
    import ordering.order.order  # noqa: F401

    return Database(settings.database_url)


def setup_databases(settings: Settings) -> None:
    """Create the storefront schema."""
    database = _database(settings)
    print(f"Creating storefront schema in {database.engine.url!r}...")
    setup_db(database)
    database.dispose()
    print("Done.")


def drop_databases(settings: Settings) -> None:
    """Drop the storefront schema."""
    database = _database(settings)
    print(f"Dropping storefront schema in {database.engine.url!r}...")
    drop_db(database)
    database.dispose()
    print("Done.")


def add_listing(settings: Settings, product_id: str, slug: str, seller_id: str | None, title: str | None) -> str:
    """Register a product listing so checkout can attribute its seller by slug."""
    database = _database(settings)
    setup_db(database)
    listing_id = CatalogueLookup(database).register_listing(product_id, slug, seller_id, title=title)
    database.dispose()
    print(f"Listing {listing_id} registered for '{slug}'.")
    return listing_id


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Storefront database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    listing_parser = subparsers.add_parser("add-listing", help="Register a product listing")
    listing_parser.add_argument("--product-id", required=True)
    listing_parser.add_argument("--slug", required=True)
    listing_parser.add_argument("--seller-id", default=None)
    listing_parser.add_argument("--title", default=None)

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging(log_dir=None)

    if args.command == "setup-db":
        setup_databases(settings)
    elif args.command == "drop-db":
        drop_databases(settings)
    elif args.command == "add-listing":
        add_listing(settings, args.product_id, args.slug, args.seller_id, args.title)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
