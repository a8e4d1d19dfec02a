"""Response cache service with fail-safe design."""

import logging
import time

from ipdashboard.cache.models import CacheConfig, CacheStats, CacheTTL
from ipdashboard.cache.patterns import compile_pattern
from ipdashboard.cache.stats import StatsCollector
from ipdashboard.cache.stores import CacheStore, create_store
from ipdashboard.observability.logging import LogEvents, get_logger
from ipdashboard.observability.metrics import record_cache_invalidation

logger = logging.getLogger(__name__)
events = get_logger(__name__)


class CacheService:
    """Owns one store and one stats collector for the lifetime of the app.

    The cache is an optional optimization: when the store is unreachable
    every lookup is a miss, writes and invalidations are no-ops, and
    requests are served from the database as if the cache were cold.
    """

    def __init__(
        self,
        config: CacheConfig,
        store: CacheStore | None = None,
        stats: StatsCollector | None = None,
    ):
        """Initialize cache service.

        Args:
            config: Cache configuration
            store: Store backend (default: built from config)
            stats: Stats collector (default: a fresh one)
        """
        self.config = config
        self.store = store if store is not None else create_store(config)
        self.stats = stats if stats is not None else StatsCollector()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def init(self) -> bool:
        """Connect the store. Returns whether it is usable right now."""
        if not self.config.enabled:
            logger.info("Cache service disabled by configuration")
            return False

        connected = await self.store.connect()
        if connected:
            events.info(LogEvents.STORE_CONNECTED, backend=self.store.name)
        else:
            events.warning(LogEvents.STORE_UNAVAILABLE, backend=self.store.name)
        return connected

    async def shutdown(self) -> None:
        """Close the store and stop its background tasks."""
        await self.store.close()
        logger.info("Cache service closed")

    def is_connected(self) -> bool:
        return self.config.enabled and self.store.is_connected()

    async def get(self, key: str) -> str | None:
        """Look up a cached body, recording hit/miss and latency.

        Returns:
            Stored JSON body, or None on miss or when the store is down
        """
        if not self.config.enabled:
            return None

        failures = self.store.failures
        start = time.perf_counter()
        value = await self.store.get(key)
        self.stats.record_latency(time.perf_counter() - start)

        if value is None:
            if self.store.failures != failures:
                self.stats.record_error()
            self.stats.record_miss()
            logger.debug(f"Cache miss: {key}")
            return None

        self.stats.record_hit()
        logger.debug(f"Cache hit: {key}")
        return value

    async def set(
        self, key: str, value: str, ttl: int | CacheTTL = CacheTTL.MEDIUM
    ) -> bool:
        """Store a serialized body. Failures are logged, never raised."""
        if not self.config.enabled:
            return False

        failures = self.store.failures
        stored = await self.store.set_with_ttl(key, value, int(ttl))
        if stored:
            logger.debug(f"Cached {key} (ttl={int(ttl)}s)")
        elif self.store.failures != failures:
            self.stats.record_error()
        return stored

    async def invalidate(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Args:
            pattern: ``*``, an exact key, ``prefix:*`` or a pattern with
                interior ``*`` wildcards

        Returns:
            Number of keys deleted (0 when the store is unavailable)

        Raises:
            PatternSyntaxError: If the pattern is malformed
        """
        matcher = compile_pattern(pattern)
        if not self.config.enabled:
            return 0

        deleted = await self.store.delete_by_pattern(matcher)
        events.info(LogEvents.CACHE_INVALIDATED, pattern=pattern, deleted=deleted)
        record_cache_invalidation(pattern, deleted)
        return deleted

    async def get_stats(self) -> CacheStats:
        """Current statistics, with the key count sourced from the store."""
        keys = await self.store.key_count() if self.is_connected() else None
        return self.stats.snapshot(
            keys=keys,
            connected=self.is_connected(),
            backend=self.store.name if self.config.enabled else "disabled",
            circuit_state=self.store.circuit_state,
        )
