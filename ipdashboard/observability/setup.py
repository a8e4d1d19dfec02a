"""OpenTelemetry setup and teardown.

Exports traces and metrics over OTLP when ``OTEL_ENABLED`` is set and
auto-instruments FastAPI, Redis and asyncpg. Does nothing otherwise.
"""

import logging

from fastapi import FastAPI
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.asyncpg import AsyncPGInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ipdashboard import __version__
from ipdashboard.core.config import settings

logger = logging.getLogger(__name__)

_instrumented = False


def _otlp_headers() -> dict[str, str] | None:
    if not settings.otel_exporter_otlp_headers:
        return None
    return dict(
        item.split("=", 1)
        for item in settings.otel_exporter_otlp_headers.split(",")
        if "=" in item
    )


def setup_telemetry(app: FastAPI | None = None) -> None:
    """Initialize OpenTelemetry providers and instrumentation (idempotent).

    Args:
        app: FastAPI application to instrument
    """
    global _instrumented

    if not settings.otel_enabled:
        logger.info("OpenTelemetry disabled by configuration")
        return

    if _instrumented:
        logger.debug("OpenTelemetry already initialized")
        return

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )
    headers = _otlp_headers()
    endpoint = settings.otel_exporter_otlp_endpoint

    if settings.otel_traces_enabled:
        trace_provider = TracerProvider(resource=resource)
        trace_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, headers=headers))
        )
        trace.set_tracer_provider(trace_provider)
        logger.info(f"OpenTelemetry tracing initialized: {endpoint}")

    if settings.otel_metrics_enabled:
        reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(endpoint=endpoint, headers=headers),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(
            MeterProvider(resource=resource, metric_readers=[reader])
        )
        logger.info(f"OpenTelemetry metrics initialized: {endpoint}")

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
    RedisInstrumentor().instrument()
    AsyncPGInstrumentor().instrument()

    _instrumented = True
    logger.info("OpenTelemetry instrumentation enabled (fastapi, redis, asyncpg)")


def shutdown_telemetry() -> None:
    """Flush pending spans and metrics, then shut the providers down."""
    if not settings.otel_enabled or not _instrumented:
        return

    for provider in (trace.get_tracer_provider(), metrics.get_meter_provider()):
        shutdown = getattr(provider, "shutdown", None)
        if callable(shutdown):
            shutdown()

    logger.info("OpenTelemetry shutdown complete")
