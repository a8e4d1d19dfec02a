"""In-process request accounting for the health and metrics endpoints."""

import logging
import threading
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ipdashboard.observability.logging import LogEvents, get_logger
from ipdashboard.observability.metrics import record_http_request

logger = logging.getLogger(__name__)
events = get_logger(__name__)

TOP_ENDPOINTS = 10


def format_uptime(seconds: float, with_seconds: bool = False) -> str:
    """Render seconds as ``"3h 25m"`` (or ``"3h 25m 7s"``)."""
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if with_seconds:
        return f"{hours}h {minutes}m {secs}s"
    return f"{hours}h {minutes}m"


class RequestMetrics:
    """Request totals, per-endpoint counts and errors by status code."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self.started_at = clock()
        self.total_requests = 0
        self.total_errors = 0
        self.by_endpoint: Counter[str] = Counter()
        self.errors_by_status: Counter[str] = Counter()

    @property
    def uptime_seconds(self) -> int:
        return int(self._clock() - self.started_at)

    def record(self, method: str, path: str, status_code: int) -> None:
        with self._lock:
            self.total_requests += 1
            self.by_endpoint[f"{method} {path}"] += 1
            if status_code >= 400:
                self.total_errors += 1
                self.errors_by_status[str(status_code)] += 1

    def error_rate(self) -> float:
        """Errors as a percentage of all requests."""
        if not self.total_requests:
            return 0.0
        return round(self.total_errors / self.total_requests * 100, 2)

    def top_endpoints(self, limit: int = TOP_ENDPOINTS) -> list[dict[str, Any]]:
        with self._lock:
            ranked = self.by_endpoint.most_common(limit)
        return [{"endpoint": endpoint, "count": count} for endpoint, count in ranked]

    def reset(self) -> None:
        with self._lock:
            self.total_requests = 0
            self.total_errors = 0
            self.by_endpoint.clear()
            self.errors_by_status.clear()
        logger.info("Request statistics reset")

    def summary(self) -> dict[str, Any]:
        return {
            "total": self.total_requests,
            "errors": self.total_errors,
            "error_rate": self.error_rate(),
            "by_endpoint": self.top_endpoints(),
        }


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Count every request, stamp ``X-Response-Time`` and flag slow ones."""

    def __init__(
        self,
        app: ASGIApp,
        metrics: RequestMetrics,
        slow_threshold_ms: float = 1000,
    ):
        super().__init__(app)
        self.metrics = metrics
        self.slow_threshold_ms = slow_threshold_ms

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self.metrics.record(request.method, request.url.path, 500)
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(request.method, request.url.path, response.status_code)
        record_http_request(request.method, response.status_code, duration_ms)
        response.headers["X-Response-Time"] = f"{duration_ms:.0f}ms"

        if duration_ms > self.slow_threshold_ms:
            events.warning(
                LogEvents.SLOW_REQUEST,
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms),
            )
        return response
