"""Service wiring for the storefront.

Every component receives its collaborators explicitly. ``build_services``
assembles one set from ``Settings``; tests build their own with an
in-memory database and a fake gateway.
"""

from dataclasses import dataclass

from fastapi import Request

from catalogue.listing import CatalogueLookup
from ordering.attribution import SellerAttributionResolver
from ordering.checkout.initiation import CheckoutInitiator
from ordering.order.access import AccessPolicy
from ordering.order.placement import OrderPlacement
from ordering.order.queries import OrderQueries, OrderReader
from ordering.reconciliation.reader import OrderReconciliationReader
from payments.gateway import build_gateway
from payments.gateway.port import PaymentGateway
from payments.payment.webhook import PaymentCallbackHandler
from shared.config import Settings
from shared.db import Database, setup_db


@dataclass
class Services:
    settings: Settings
    database: Database
    gateway: PaymentGateway
    catalogue: CatalogueLookup
    resolver: SellerAttributionResolver
    checkout: CheckoutInitiator
    placement: OrderPlacement
    callbacks: PaymentCallbackHandler
    queries: OrderQueries
    reader: OrderReader
    reconciliation: OrderReconciliationReader


def build_services(
    settings: Settings,
    gateway: PaymentGateway | None = None,
    database: Database | None = None,
    policy: AccessPolicy | None = None,
    create_schema: bool = True,
) -> Services:
    database = database or Database(settings.database_url)
    if create_schema:
        setup_db(database)

    gateway = gateway or build_gateway(settings)
    catalogue = CatalogueLookup(database)
    resolver = SellerAttributionResolver(catalogue)
    placement = OrderPlacement(database)
    queries = OrderQueries(database, policy)
    reader = OrderReader(queries)

    return Services(
        settings=settings,
        database=database,
        gateway=gateway,
        catalogue=catalogue,
        resolver=resolver,
        checkout=CheckoutInitiator(gateway, resolver, settings),
        placement=placement,
        callbacks=PaymentCallbackHandler(gateway, placement, resolver),
        queries=queries,
        reader=reader,
        reconciliation=OrderReconciliationReader(
            reader,
            attempts=settings.reconcile_attempts,
            delay=settings.reconcile_delay_seconds,
        ),
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the services attached to the app."""
    return request.app.state.services
