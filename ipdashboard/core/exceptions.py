"""Exception hierarchy for the IPDashboard backend.

Cache-path failures (store unavailable, serialization) are recovered
locally and never reach API consumers. Pattern errors propagate to the
caller because they indicate a programming error at the call site.
"""

from typing import Any


class DashboardError(Exception):
    """Base exception for all IPDashboard errors."""

    code: str = "DASHBOARD_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CacheError(DashboardError):
    """Cache layer failure."""

    code: str = "CACHE_ERROR"


class StoreUnavailableError(CacheError):
    """Backing store unreachable, timed out, or circuit open."""

    code: str = "STORE_UNAVAILABLE"


class CacheSerializationError(CacheError):
    """Response body could not be serialized for caching."""

    code: str = "CACHE_SERIALIZATION_FAILED"


class PatternSyntaxError(CacheError, ValueError):
    """Invalidation pattern is malformed."""

    code: str = "PATTERN_SYNTAX_ERROR"


class DatabaseError(DashboardError):
    """Database operation failed (connection, query, transaction)."""

    code: str = "DATABASE_ERROR"


class ConfigurationError(DashboardError, ValueError):
    """Configuration error (invalid settings).

    Also a ValueError so pydantic validators can raise it directly.
    """

    code: str = "CONFIGURATION_ERROR"
