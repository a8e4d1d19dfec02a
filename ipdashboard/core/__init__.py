"""Core configuration, database access and exceptions."""

from ipdashboard.core.config import Settings, settings
from ipdashboard.core.exceptions import (
    CacheError,
    CacheSerializationError,
    ConfigurationError,
    DashboardError,
    DatabaseError,
    PatternSyntaxError,
    StoreUnavailableError,
)

__all__ = [
    "Settings",
    "settings",
    "DashboardError",
    "CacheError",
    "StoreUnavailableError",
    "CacheSerializationError",
    "PatternSyntaxError",
    "DatabaseError",
    "ConfigurationError",
]
