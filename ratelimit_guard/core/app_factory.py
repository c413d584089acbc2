"""Application factory for the FastAPI app.

Centralizes app construction (logging, counter store, guard, middleware,
handlers, routers) so tests can build isolated apps with their own store.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ratelimit_guard.adapters.counter_store.base import AbstractCounterStore
from ratelimit_guard.adapters.counter_store.factory import create_counter_store
from ratelimit_guard.api.routes import account_router, health_router
from ratelimit_guard.core.config import Settings, settings
from ratelimit_guard.core.exception_handlers import setup_exception_handlers
from ratelimit_guard.core.logging import configure_logging
from ratelimit_guard.core.middleware import request_id_middleware
from ratelimit_guard.core.openapi import apply_openapi_customizations
from ratelimit_guard.core.rate_limit import install_rate_limiting


def create_app(
    *,
    store: AbstractCounterStore | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Counter store to share between guards; built from settings
            when omitted.
        app_settings: Settings to use instead of the global instance.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    cfg = app_settings or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    counter_store = store if store is not None else create_counter_store(cfg.store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        counter_store.close()

    app = FastAPI(
        title="Rate Limit Guard",
        description=(
            "Per-identity fixed-window rate limiting for FastAPI routes, backed "
            "by an in-process or Redis counter store."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )

    install_rate_limiting(
        app,
        counter_store,
        app_settings=cfg.app,
        timeout_seconds=cfg.store.timeout_seconds,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(account_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
