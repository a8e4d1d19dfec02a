"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ipdashboard import __version__
from ipdashboard.api.aebf import create_aebf_router
from ipdashboard.api.middleware import setup_middleware
from ipdashboard.api.routes import create_routes
from ipdashboard.cache import CacheConfig, CacheService
from ipdashboard.core.config import Settings
from ipdashboard.core.config import settings as default_settings
from ipdashboard.core.database import Database
from ipdashboard.core.exceptions import DashboardError, DatabaseError
from ipdashboard.observability import (
    LogEvents,
    configure_logging,
    get_logger,
    setup_telemetry,
    shutdown_telemetry,
)
from ipdashboard.observability.health import HealthChecker
from ipdashboard.observability.requests import RequestMetrics

logger = logging.getLogger(__name__)
events = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan (startup/shutdown).

    Startup sequence:
        1. Connect the database pool (skipped when DATABASE_URL is empty)
        2. Connect the cache store (failure leaves the API serving uncached)
        3. Build the health checker over both

    Shutdown sequence:
        1. Close the cache store and cancel its reconnect task
        2. Close the database pool
        3. Shutdown telemetry
    """
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.service_name}...")

    database: Database | None = app.state.database
    if database is None and settings.database_url:
        database = Database(settings.database_url, max_size=settings.database_pool_size)
    if database is not None and database.pool is None:
        try:
            await database.connect()
            events.info(LogEvents.DATABASE_CONNECTED)
        except DatabaseError as e:
            # Keep serving; readiness and deep health report the failure
            events.error(LogEvents.DATABASE_ERROR, error=e.message)
    app.state.database = database

    cache_service: CacheService | None = app.state.cache_service
    if cache_service is None:
        cache_service = CacheService(CacheConfig.from_settings(settings))
    await cache_service.init()
    app.state.cache_service = cache_service

    app.state.health_checker = HealthChecker(
        database=database,
        cache_service=cache_service,
        settings=settings,
        request_metrics=app.state.request_metrics,
    )

    events.info(LogEvents.SERVER_STARTED, service=settings.service_name)

    yield

    logger.info(f"Shutting down {settings.service_name}...")
    await cache_service.shutdown()
    if database is not None:
        await database.disconnect()
    shutdown_telemetry()
    events.info(LogEvents.SERVER_SHUTDOWN)


def create_app(
    settings: Settings | None = None,
    cache_service: CacheService | None = None,
    database: Database | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Application settings (default: environment)
        cache_service: Pre-built cache service (default: built from settings)
        database: Pre-built database (default: built from DATABASE_URL)

    Returns:
        Configured FastAPI app
    """
    settings = settings or default_settings
    configure_logging(settings.log_level, settings.log_format or None)

    app = FastAPI(
        title="IPDashboard Backend",
        description="AEBF reporting API with request-keyed response caching",
        version=__version__,
        lifespan=lifespan,
    )

    request_metrics = RequestMetrics()
    app.state.settings = settings
    app.state.request_metrics = request_metrics
    app.state.cache_service = cache_service
    app.state.database = database
    app.state.health_checker = None

    # Setup OpenTelemetry instrumentation
    setup_telemetry(app)

    # Setup middleware
    setup_middleware(app, settings, request_metrics)

    # Register routes
    app.include_router(create_routes(), prefix="/api")
    app.include_router(create_aebf_router(), prefix="/api")

    @app.exception_handler(DashboardError)
    async def dashboard_exception_handler(
        request: Request, exc: DashboardError
    ) -> JSONResponse:
        """Map domain errors to a 500 carrying the error code."""
        logger.error(f"{exc.code}: {exc.message}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": exc.code, "detail": exc.message},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unhandled exceptions."""
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)},
        )

    return app
