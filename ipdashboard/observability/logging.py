"""Structured logging configuration for the IPDashboard backend.

Modules log through ``logging.getLogger(__name__)``; this module routes the
standard library loggers through structlog so output is JSON in production
(for log aggregators) and colored console output in development.

Configuration:
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_FORMAT: json, console (default: json in production, console in dev)
    - ENVIRONMENT: development, production (affects format default)

Usage:
    >>> from ipdashboard.observability.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info(LogEvents.CACHE_INVALIDATED, pattern="aebf:*", deleted=12)
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from ipdashboard.core.config import settings

_configured = False
_handler: logging.Handler | None = None


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    force: bool = False,
) -> None:
    """Configure structured logging for the application.

    Called once at application startup; later calls are no-ops unless
    ``force`` is set.

    Args:
        level: Log level. Default from settings.log_level.
        log_format: Output format (json, console). Default based on environment.
        force: Reconfigure even if already configured.
    """
    global _configured, _handler
    if _configured and not force:
        return

    level = (level or settings.log_level).upper()
    if not log_format:
        log_format = settings.log_format or (
            "json" if settings.is_production else "console"
        )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    # Standard library records (logging.getLogger) go through the same chain
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    _handler = handler
    root.setLevel(getattr(logging, level, logging.INFO))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger bound lazily to the current configuration."""
    logger: structlog.stdlib.BoundLogger = structlog.stdlib.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables (e.g. request_id) to subsequent log calls."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables at the end of a request."""
    structlog.contextvars.clear_contextvars()


class LogEvents:
    """Standard event names for structured logging."""

    # Cache events
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    CACHE_STORED = "cache_stored"
    CACHE_ERROR = "cache_error"
    CACHE_INVALIDATED = "cache_invalidated"
    CACHE_SKIPPED = "cache_skipped"
    STORE_CONNECTED = "store_connected"
    STORE_UNAVAILABLE = "store_unavailable"
    CIRCUIT_BREAKER_OPENED = "circuit_breaker_opened"
    CIRCUIT_BREAKER_CLOSED = "circuit_breaker_closed"
    CIRCUIT_BREAKER_HALF_OPEN = "circuit_breaker_half_open"

    # API events
    REQUEST_COMPLETED = "request_completed"
    SLOW_REQUEST = "slow_request"

    # Health events
    HEALTH_CHECK_FAILED = "health_check_failed"
    DATABASE_CONNECTED = "database_connected"
    DATABASE_ERROR = "database_error"

    # Lifecycle events
    SERVER_STARTED = "server_started"
    SERVER_SHUTDOWN = "server_shutdown"
