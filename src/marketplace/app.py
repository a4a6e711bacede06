"""Application entry point for the marketplace offer service.

Configures:
- **structlog** with JSON rendering (production) or colored console (development)
- **Sentry** error reporting when a DSN is configured
- **SQLite** store, listing lifecycle, and offer engine shared by all requests
- **Live channel** registry and dispatcher backing the ``/ws`` endpoint
- **Prometheus** ``/metrics`` and request-id middleware
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from marketplace.api import live_router, register_error_handlers, router
from marketplace.config import Settings, get_settings
from marketplace.health import register_health_routes
from marketplace.listings import ListingLifecycle
from marketplace.notifications import ConnectionRegistry, NotificationDispatcher
from marketplace.observability.metrics import setup_metrics
from marketplace.observability.middleware import SERVICE_NAME, RequestIdMiddleware
from marketplace.observability.sentry import get_sentry_processor, init_sentry
from marketplace.offers import OfferEngine
from marketplace.store import MarketplaceStore, open_database

logger = structlog.get_logger()


def configure_logging(production: bool = False, sentry: bool = False) -> None:
    """Configure structlog for production (JSON) or development (console).

    Production mode (*production=True*): JSON rendering at INFO level.
    Development mode: colored console rendering at DEBUG level.

    Args:
        production: Enable production mode if ``True``.
        sentry: Forward ERROR-level events to Sentry if ``True``.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if sentry:
        shared_processors.append(get_sentry_processor())

    if production:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
        log_level = logging.INFO
    else:
        renderer = structlog.dev.ConsoleRenderer()
        log_level = logging.DEBUG

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Build the store and the controllers that share it.

    Args:
        settings: Application settings; loaded with ``get_settings`` if omitted.

    Returns:
        Services dict with keys ``store``, ``registry``, ``dispatcher``,
        ``lifecycle``, ``engine`` and ``_settings``.
    """
    if settings is None:
        settings = get_settings()

    db_path = settings.database_path
    if not settings.in_memory:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    store = MarketplaceStore(open_database(db_path))
    logger.info("Marketplace database initialized", path=str(db_path))

    registry = ConnectionRegistry()
    dispatcher = NotificationDispatcher(registry)
    lifecycle = ListingLifecycle(
        store,
        dispatcher=dispatcher,
        auto_reject_message=settings.auto_reject_message,
    )
    engine = OfferEngine(store, lifecycle, dispatcher=dispatcher)

    return {
        "store": store,
        "registry": registry,
        "dispatcher": dispatcher,
        "lifecycle": lifecycle,
        "engine": engine,
        "_settings": settings,
    }


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Close the database connection on shutdown."""
    logger.info("FastAPI application starting")
    yield
    store = app.state.services.get("store")
    if store is not None:
        store.close()
        logger.info("Marketplace database connection closed")


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with REST routes, live channel and probes.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Marketplace Offers", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings") or get_settings()
    fastapi_app.add_middleware(RequestIdMiddleware)
    register_error_handlers(fastapi_app)
    register_health_routes(fastapi_app)
    fastapi_app.include_router(router)
    fastapi_app.include_router(live_router)
    setup_metrics(fastapi_app)
    return fastapi_app


def main() -> None:
    """Main entry point: configure logging and Sentry, then serve the API."""
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        environment=settings.environment,
    )
    configure_logging(production=settings.production, sentry=sentry_enabled)
    logger.info("Application starting", sentry=sentry_enabled)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    uvicorn.run(fastapi_app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
