import os
from pathlib import Path

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Pytest hook to run before collecting tests.

    Selects the storefront environment so logging and settings pick the test profile.
    """
    os.environ["STOREFRONT_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture()
def settings():
    from shared.config import Settings

    return Settings(
        env="test",
        database_url="sqlite://",
        public_site_url="https://shop.example",
        reconcile_attempts=3,
        reconcile_delay_seconds=0,
    )


@pytest.fixture()
def database():
    """In-memory database with the full schema, dropped after every test."""
    import catalogue.listing  # noqa: F401
    import ordering.order.order  # noqa: F401
    from shared.db import Database, drop_db, setup_db

    db = Database("sqlite://")
    setup_db(db)

    yield db

    drop_db(db)
    db.dispose()


@pytest.fixture()
def gateway():
    from payments.gateway.fake_adapter import FakeGateway

    return FakeGateway()


@pytest.fixture()
def catalogue(database):
    from catalogue.listing import CatalogueLookup

    return CatalogueLookup(database)


@pytest.fixture()
def resolver(catalogue):
    from ordering.attribution import SellerAttributionResolver

    return SellerAttributionResolver(catalogue)


@pytest.fixture()
def services(settings, gateway, database):
    from container import build_services

    return build_services(settings, gateway=gateway, database=database, create_schema=False)
