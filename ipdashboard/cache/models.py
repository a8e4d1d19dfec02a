"""Cache configuration, entry and statistics models."""

from __future__ import annotations

import time
from enum import IntEnum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from ipdashboard.core.config import Settings


class CacheTTL(IntEnum):
    """TTL tiers in seconds, chosen per route by the call site."""

    SHORT = 60
    MEDIUM = 300
    LONG = 1800
    VERY_LONG = 3600


class CacheConfig(BaseModel):
    """Configuration for the response cache.

    Attributes:
        enabled: Whether caching is enabled
        backend: Store implementation (redis or memory)
        redis_url: Redis connection URL
        namespace: Physical key namespace inside the store
        connect_timeout: Seconds allowed for the initial connection
        operation_timeout: Seconds allowed for any single store operation
        reconnect_interval: Seconds between background reconnect attempts
        memory_maxsize: Max entries held by the in-memory store
        key_count_limit: Upper bound when counting keys in the store
        circuit_breaker_threshold: Failures before opening circuit
        circuit_breaker_timeout: Seconds before attempting recovery
    """

    enabled: bool = Field(default=True, description="Enable/disable caching")
    backend: Literal["redis", "memory"] = Field(
        default="redis", description="Cache store backend"
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    namespace: str = Field(default="ipdashboard", description="Key namespace")
    connect_timeout: float = Field(default=2.0, gt=0, description="Connect timeout")
    operation_timeout: float = Field(
        default=0.5, gt=0, description="Per-operation timeout (seconds)"
    )
    reconnect_interval: float = Field(
        default=30.0, gt=0, description="Reconnect interval (seconds)"
    )
    memory_maxsize: int = Field(default=1024, ge=1, description="In-memory capacity")
    key_count_limit: int = Field(default=100_000, ge=1, description="Key count cap")
    circuit_breaker_threshold: int = Field(
        default=5, ge=1, description="Failures before opening circuit"
    )
    circuit_breaker_timeout: float = Field(
        default=60.0, gt=0, description="Circuit breaker timeout (seconds)"
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> CacheConfig:
        """Build cache configuration from application settings."""
        return cls(
            enabled=settings.cache_enabled,
            backend=settings.cache_backend,
            redis_url=settings.redis_url,
            namespace=settings.cache_namespace,
            connect_timeout=settings.cache_connect_timeout,
            operation_timeout=settings.cache_operation_timeout,
            reconnect_interval=settings.cache_reconnect_interval,
            memory_maxsize=settings.cache_memory_maxsize,
            key_count_limit=settings.cache_key_count_limit,
            circuit_breaker_threshold=settings.cache_circuit_breaker_threshold,
            circuit_breaker_timeout=settings.cache_circuit_breaker_timeout,
        )


class CacheEntry(BaseModel):
    """One cached response body.

    Entries are written whole and never partially updated; a later write
    to the same key replaces the entry.
    """

    key: str
    value: str = Field(..., description="Serialized JSON response body")
    ttl_seconds: int = Field(..., gt=0)
    created_at: float = Field(default_factory=time.time)

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds


class CacheStats(BaseModel):
    """Cache performance statistics.

    Attributes:
        hits: Number of successful cache hits
        misses: Number of cache misses
        errors: Number of cache operation errors
        keys: Current key count (None when the store cannot report it)
        hit_rate: hits / (hits + misses), 0.0 before any lookup
        avg_latency_ms: Mean lookup latency over recent samples
        connected: Whether the store is currently reachable
        backend: Store implementation name
        circuit_state: Current circuit breaker state
    """

    hits: int = Field(default=0, description="Cache hits")
    misses: int = Field(default=0, description="Cache misses")
    errors: int = Field(default=0, description="Cache errors")
    keys: int | None = Field(default=None, description="Keys currently stored")
    hit_rate: float = Field(
        default=0.0, serialization_alias="hitRate", description="Hit rate (0.0-1.0)"
    )
    avg_latency_ms: float = Field(default=0.0, description="Mean lookup latency")
    connected: bool = Field(default=False, description="Store connectivity")
    backend: str = Field(default="none", description="Store backend")
    circuit_state: str = Field(
        default="closed", description="Circuit breaker state (closed/open/half_open)"
    )
