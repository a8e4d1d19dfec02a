"""Cache store adapters.

Both stores expose the same capability set and never raise out of
``get``/``set_with_ttl``/``delete_by_pattern``: an unavailable store reads
as a miss and writes/deletes become no-ops, so the rest of the system
experiences cache-down exactly like cache-cold.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from cachetools import TLRUCache
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ipdashboard.cache.models import CacheConfig, CacheEntry
from ipdashboard.cache.patterns import KeyPattern
from ipdashboard.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheStore(ABC):
    """Capability set shared by all cache backends."""

    name: str = "abstract"
    failures: int = 0

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connectivity. Returns False (never raises) on failure."""

    @abstractmethod
    async def close(self) -> None:
        """Release resources and stop background tasks."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Stored value for key, or None on miss/unavailable."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        """Store value with TTL. Returns False when the write did not happen."""

    @abstractmethod
    async def delete_by_pattern(self, pattern: KeyPattern) -> int:
        """Delete matching keys. Returns the number deleted."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the store is currently usable."""

    async def key_count(self) -> int | None:
        """Number of stored keys, or None when it cannot be reported cheaply."""
        return None

    @property
    def circuit_state(self) -> str:
        return "closed"


class MemoryStore(CacheStore):
    """Process-local store with per-entry TTL and bounded size.

    Backed by ``cachetools.TLRUCache``; ``timer`` can be replaced by a fake
    clock in tests.
    """

    name = "memory"

    def __init__(
        self,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._timer = timer
        self._cache: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, entry, now: now + entry.ttl_seconds,
            timer=timer,
        )
        self._connected = False

    async def connect(self) -> bool:
        self._connected = True
        logger.info(f"In-memory cache store ready (maxsize={self._cache.maxsize})")
        return True

    async def close(self) -> None:
        self._cache.clear()
        self._connected = False

    async def get(self, key: str) -> str | None:
        if not self._connected:
            return None
        entry = self._cache.get(key)
        return entry.value if entry is not None else None

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        if not self._connected:
            return False
        self._cache[key] = CacheEntry(key=key, value=value, ttl_seconds=ttl_seconds)
        return True

    async def delete_by_pattern(self, pattern: KeyPattern) -> int:
        if not self._connected:
            return 0
        self._cache.expire()
        matched = [key for key in list(self._cache.keys()) if pattern.matches(key)]
        for key in matched:
            self._cache.pop(key, None)
        return len(matched)

    def is_connected(self) -> bool:
        return self._connected

    async def key_count(self) -> int | None:
        if not self._connected:
            return None
        self._cache.expire()
        return len(self._cache)


class CacheCircuitBreaker:
    """Circuit breaker for store failures with automatic recovery.

    States:
        closed: Normal operation, store requests allowed
        open: Circuit tripped, store bypassed entirely
        half_open: Testing recovery, requests allowed until next outcome

    Pattern:
        closed -> (failures >= threshold) -> open
        open -> (timeout expired) -> half_open
        half_open -> (success) -> closed
        half_open -> (failure) -> open
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening circuit
            timeout: Seconds before attempting recovery from open state
            clock: Time source (monotonic seconds)
        """
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failure_count = 0
        self.state = "closed"
        self.last_failure_time: float | None = None
        self._clock = clock

    def on_success(self) -> None:
        """Record successful operation."""
        if self.state != "closed":
            logger.info("Circuit breaker recovered, closing circuit")
        self.state = "closed"
        self.failure_count = 0

    def on_failure(self) -> None:
        """Record failed operation and potentially open circuit."""
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == "half_open" or self.failure_count >= self.failure_threshold:
            if self.state != "open":
                logger.warning(
                    f"Circuit breaker opened after {self.failure_count} failures"
                )
            self.state = "open"

    def can_attempt(self) -> bool:
        """Check if a store operation should be attempted."""
        if self.state == "open":
            if (
                self.last_failure_time is not None
                and self._clock() - self.last_failure_time >= self.timeout
            ):
                logger.info("Circuit breaker timeout expired, entering half-open state")
                self.state = "half_open"
                return True
            return False

        return True

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        self.state = "closed"
        self.failure_count = 0
        self.last_failure_time = None


class RedisStore(CacheStore):
    """Shared store on Redis with timeouts, circuit breaker and reconnect.

    Every logical key is stored as ``{namespace}:{key}`` so that deleting
    ``*`` only touches this service's keys. Any Redis error or timeout is
    treated as "unavailable for this operation".
    """

    name = "redis"

    def __init__(self, config: CacheConfig, client: Redis | None = None):
        self.config = config
        self.namespace = f"{config.namespace}:"
        self.redis: Redis | None = client
        self.circuit_breaker = CacheCircuitBreaker(
            failure_threshold=config.circuit_breaker_threshold,
            timeout=config.circuit_breaker_timeout,
        )
        self._connected = False
        self._reconnect_task: asyncio.Task[None] | None = None
        self._closing = False

    def _client(self) -> Redis:
        if self.redis is None:
            self.redis = Redis.from_url(
                self.config.redis_url,
                socket_timeout=self.config.operation_timeout,
                socket_connect_timeout=self.config.connect_timeout,
                decode_responses=True,
            )
        return self.redis

    def _physical(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def _logical(self, key: str) -> str:
        return key[len(self.namespace):]

    async def _ping(self) -> None:
        try:
            await asyncio.wait_for(
                self._client().ping(), timeout=self.config.connect_timeout
            )
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            raise StoreUnavailableError(
                f"Redis unreachable at {self.config.redis_url}: {e}"
            ) from e

    async def connect(self) -> bool:
        self._closing = False
        try:
            await self._ping()
        except StoreUnavailableError as e:
            logger.warning(f"{e.message}; response caching disabled until reconnect")
            self._connected = False
            self._start_reconnect()
            return False

        self._connected = True
        self.circuit_breaker.reset()
        logger.info(f"Redis cache store connected: {self.config.redis_url}")
        return True

    def _start_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._connected and not self._closing:
            await asyncio.sleep(self.config.reconnect_interval)
            try:
                await self._ping()
            except StoreUnavailableError as e:
                logger.debug(f"Reconnect attempt failed: {e.message}")
                continue
            self._connected = True
            self.circuit_breaker.reset()
            logger.info("Redis cache store reconnected")

    async def close(self) -> None:
        self._closing = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None
        if self.redis is not None:
            await self.redis.aclose()
            logger.info("Redis cache store closed")
        self._connected = False

    def is_connected(self) -> bool:
        return self._connected and self.circuit_breaker.state != "open"

    @property
    def circuit_state(self) -> str:
        return self.circuit_breaker.state

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: float | None = None,
    ) -> T:
        """Run one store call under the timeout and circuit breaker.

        Raises:
            StoreUnavailableError: If the store is down, the circuit is open,
                the call timed out or Redis reported an error
        """
        if not self._connected:
            raise StoreUnavailableError("Redis not connected")
        if not self.circuit_breaker.can_attempt():
            raise StoreUnavailableError("Circuit breaker open")

        try:
            result = await asyncio.wait_for(
                call(), timeout=timeout or self.config.operation_timeout
            )
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            self.failures += 1
            self.circuit_breaker.on_failure()
            raise StoreUnavailableError(
                f"Redis {operation} failed: {e!r}", details={"operation": operation}
            ) from e

        self.circuit_breaker.on_success()
        return result

    async def get(self, key: str) -> str | None:
        try:
            value: Any = await self._run(
                "get", lambda: self._client().get(self._physical(key))
            )
        except StoreUnavailableError as e:
            logger.warning(f"Cache lookup skipped: {e.message}")
            return None
        return value if value is None or isinstance(value, str) else str(value)

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            await self._run(
                "set",
                lambda: self._client().set(self._physical(key), value, ex=ttl_seconds),
            )
        except StoreUnavailableError as e:
            logger.warning(f"Cache write skipped: {e.message}")
            return False
        return True

    async def _scan(self, glob: str, limit: int | None = None) -> list[str]:
        keys: list[str] = []
        async for key in self._client().scan_iter(
            match=self._physical(glob), count=500
        ):
            keys.append(key)
            if limit is not None and len(keys) >= limit:
                break
        return keys

    async def delete_by_pattern(self, pattern: KeyPattern) -> int:
        async def _delete() -> int:
            candidates = await self._scan(pattern.glob)
            matched = [k for k in candidates if pattern.matches(self._logical(k))]
            if not matched:
                return 0
            deleted = 0
            for start in range(0, len(matched), 500):
                deleted += await self._client().delete(*matched[start:start + 500])
            return deleted

        try:
            # SCAN walks the whole keyspace
            return await self._run(
                "delete_by_pattern", _delete, timeout=self.config.operation_timeout * 10
            )
        except StoreUnavailableError as e:
            logger.warning(f"Cache invalidation skipped: {e.message}")
            return 0

    async def key_count(self) -> int | None:
        try:
            keys = await self._run(
                "key_count",
                lambda: self._scan("*", limit=self.config.key_count_limit),
                timeout=self.config.operation_timeout * 10,
            )
        except StoreUnavailableError:
            return None
        return len(keys)


def create_store(config: CacheConfig) -> CacheStore:
    """Build the configured store backend."""
    if config.backend == "memory":
        return MemoryStore(maxsize=config.memory_maxsize)
    return RedisStore(config)
