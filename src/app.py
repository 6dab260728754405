"""Storefront FastAPI application.

Serves checkout, the payment provider's webhook, the post-checkout
confirmation and the buyer/seller order lists. Services are built once per
app and reached from routes through ``container.get_services``.

Usage:
    uvicorn app:create_app --factory --app-dir src --host 0.0.0.0 --port 8000
"""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from container import Services, build_services
from ordering.api.routes import checkout_router, orders_router, seller_router
from payments.api.routes import payment_router
from shared.config import Settings
from shared.logging import add_context, clear_context, configure_logging

logger = structlog.get_logger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the app around ``services``, or around services from the environment."""
    settings = services.settings if services is not None else Settings.from_env()
    configure_logging(log_dir=None if settings.env == "test" else "logs")
    services = services or build_services(settings)

    app = FastAPI(
        title="Storefront API",
        description="Checkout, payment callbacks and order reconciliation",
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Bind a request id to every log line emitted while serving the request."""
        clear_context()
        add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(checkout_router)
    app.include_router(orders_router)
    app.include_router(seller_router)
    app.include_router(payment_router)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "environment": settings.env,
                "payment_gateway": settings.payment_gateway,
            }
        )

    logger.info("Storefront app created", env=settings.env, payment_gateway=settings.payment_gateway)
    return app
