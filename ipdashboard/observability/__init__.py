"""Logging, OpenTelemetry and health reporting for IPDashboard.

Instrumented Components:
    - FastAPI requests (auto-instrumentation)
    - Redis and asyncpg operations (auto-instrumentation)
    - Response cache hits, misses and invalidations
    - HTTP request counts and latency

Health checks live in ``ipdashboard.observability.health`` and request
accounting in ``ipdashboard.observability.requests``.
"""

from ipdashboard.observability.logging import (
    LogEvents,
    configure_logging,
    get_logger,
)
from ipdashboard.observability.metrics import (
    get_meter,
    get_metrics_summary,
    record_cache_hit,
    record_cache_invalidation,
    record_cache_miss,
    record_http_request,
)
from ipdashboard.observability.setup import setup_telemetry, shutdown_telemetry

__all__ = [
    "setup_telemetry",
    "shutdown_telemetry",
    "configure_logging",
    "get_logger",
    "LogEvents",
    "get_meter",
    "get_metrics_summary",
    "record_cache_hit",
    "record_cache_miss",
    "record_cache_invalidation",
    "record_http_request",
]
