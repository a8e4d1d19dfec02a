"""OpenTelemetry metrics for the IPDashboard backend.

Metrics:
    - ipdashboard.cache.hits: Counter of response cache hits
    - ipdashboard.cache.misses: Counter of response cache misses
    - ipdashboard.cache.invalidations: Counter of keys removed by invalidation
    - ipdashboard.http.requests: Counter of HTTP requests by method/status
    - ipdashboard.http.latency: Histogram of request latency in milliseconds
"""

import logging
from typing import Any

from opentelemetry import metrics

from ipdashboard.core.config import settings

logger = logging.getLogger(__name__)

# Global meter instance
_meter: metrics.Meter | None = None

# Metric instruments (created on first access)
_cache_hits_counter: metrics.Counter | None = None
_cache_misses_counter: metrics.Counter | None = None
_cache_invalidations_counter: metrics.Counter | None = None
_http_requests_counter: metrics.Counter | None = None
_http_latency_histogram: metrics.Histogram | None = None


def _metrics_enabled() -> bool:
    return settings.otel_enabled and settings.otel_metrics_enabled


def get_meter(name: str = "ipdashboard") -> metrics.Meter:
    """Get OpenTelemetry meter instance.

    Args:
        name: Meter name

    Returns:
        Meter instance (no-op if telemetry disabled)
    """
    global _meter
    if _meter is None:
        _meter = metrics.get_meter(name)
    return _meter


def _ensure_instruments() -> None:
    """Lazy initialization of metric instruments."""
    global _cache_hits_counter
    global _cache_misses_counter
    global _cache_invalidations_counter
    global _http_requests_counter
    global _http_latency_histogram

    meter = get_meter()

    if _cache_hits_counter is None:
        _cache_hits_counter = meter.create_counter(
            name="ipdashboard.cache.hits",
            description="Number of response cache hits",
            unit="1",
        )

    if _cache_misses_counter is None:
        _cache_misses_counter = meter.create_counter(
            name="ipdashboard.cache.misses",
            description="Number of response cache misses",
            unit="1",
        )

    if _cache_invalidations_counter is None:
        _cache_invalidations_counter = meter.create_counter(
            name="ipdashboard.cache.invalidations",
            description="Number of cache keys removed by invalidation",
            unit="1",
        )

    if _http_requests_counter is None:
        _http_requests_counter = meter.create_counter(
            name="ipdashboard.http.requests",
            description="Number of HTTP requests handled",
            unit="1",
        )

    if _http_latency_histogram is None:
        _http_latency_histogram = meter.create_histogram(
            name="ipdashboard.http.latency",
            description="HTTP request latency",
            unit="ms",
        )


def record_cache_hit() -> None:
    """Record cache hit metric."""
    if not _metrics_enabled():
        return

    _ensure_instruments()

    if _cache_hits_counter:
        _cache_hits_counter.add(1)


def record_cache_miss() -> None:
    """Record cache miss metric."""
    if not _metrics_enabled():
        return

    _ensure_instruments()

    if _cache_misses_counter:
        _cache_misses_counter.add(1)


def record_cache_invalidation(pattern: str, deleted: int) -> None:
    """Record keys removed by a pattern invalidation."""
    if not _metrics_enabled():
        return

    _ensure_instruments()

    if _cache_invalidations_counter:
        _cache_invalidations_counter.add(deleted, {"pattern": pattern})


def record_http_request(method: str, status_code: int, latency_ms: float) -> None:
    """Record one handled HTTP request."""
    if not _metrics_enabled():
        return

    _ensure_instruments()

    attributes = {"method": method, "status": str(status_code)}
    if _http_requests_counter:
        _http_requests_counter.add(1, attributes)
    if _http_latency_histogram:
        _http_latency_histogram.record(latency_ms, attributes)


def get_metrics_summary() -> dict[str, Any]:
    """Get telemetry configuration summary for the metrics endpoint."""
    return {
        "otel_enabled": settings.otel_enabled,
        "metrics_enabled": settings.otel_metrics_enabled,
        "service_name": settings.otel_service_name,
        "exporter_endpoint": settings.otel_exporter_otlp_endpoint,
    }
