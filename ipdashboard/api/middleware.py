"""Middleware for FastAPI application."""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from ipdashboard.core.config import Settings
from ipdashboard.observability.logging import bind_context, clear_context
from ipdashboard.observability.requests import RequestMetrics, RequestMetricsMiddleware

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests and responses with a per-request id."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log request and response details."""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        bind_context(request_id=request_id)

        try:
            logger.info(
                f"{request.method} {request.url.path} - "
                f"Client: {request.client.host if request.client else 'unknown'}"
            )

            response = await call_next(request)

            latency = time.time() - start_time
            logger.info(
                f"{request.method} {request.url.path} - "
                f"Status: {response.status_code} - Latency: {latency:.3f}s"
            )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_context()


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Configure CORS middleware."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache", "X-Cache-Key", "X-Response-Time", "X-Request-ID"],
    )


def setup_middleware(
    app: FastAPI, settings: Settings, request_metrics: RequestMetrics
) -> None:
    """Configure all middleware in correct order.

    Middleware Order (applied bottom-to-top):
        1. CORS - handles cross-origin requests
        2. Logging - records request/response
        3. Request metrics - counts requests, stamps X-Response-Time
    """
    app.add_middleware(
        RequestMetricsMiddleware,
        metrics=request_metrics,
        slow_threshold_ms=settings.slow_request_threshold_ms,
    )
    app.add_middleware(LoggingMiddleware)

    # CORS (outermost)
    setup_cors(app, settings)

    logger.info("All middleware configured successfully")
