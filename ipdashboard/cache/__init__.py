"""HTTP response cache for the dashboard API.

Responses of read endpoints are stored under a key derived from the request
(method, path, sorted query, canonical body) with a TTL tier chosen by the
route. Mutating routes invalidate key families by glob pattern. The store is
optional: when Redis is down the API serves every request uncached.

Usage:
    >>> from ipdashboard.cache import CacheConfig, CacheService, MemoryStore
    >>>
    >>> cache = CacheService(CacheConfig(backend="memory"))
    >>> await cache.init()
    >>> await cache.set("aebf:FP:GET:/api/aebf/budget-years:division=FP", body, 3600)
    >>> await cache.invalidate("aebf:*")
"""

from ipdashboard.cache.keys import derive_key, derive_request_key
from ipdashboard.cache.models import CacheConfig, CacheEntry, CacheStats, CacheTTL
from ipdashboard.cache.patterns import KeyPattern, compile_pattern
from ipdashboard.cache.routing import (
    CachedRoute,
    CachePolicy,
    cache_response,
    get_cache_service,
    invalidate_cache,
)
from ipdashboard.cache.service import CacheService
from ipdashboard.cache.stats import StatsCollector
from ipdashboard.cache.stores import (
    CacheCircuitBreaker,
    CacheStore,
    MemoryStore,
    RedisStore,
    create_store,
)

__all__ = [
    "CacheService",
    "CacheConfig",
    "CacheEntry",
    "CacheStats",
    "CacheTTL",
    "CacheCircuitBreaker",
    "CacheStore",
    "MemoryStore",
    "RedisStore",
    "create_store",
    "StatsCollector",
    "KeyPattern",
    "compile_pattern",
    "derive_key",
    "derive_request_key",
    "CachedRoute",
    "CachePolicy",
    "cache_response",
    "get_cache_service",
    "invalidate_cache",
]
