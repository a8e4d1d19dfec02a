"""Unit tests for cache store adapters."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError, TimeoutError

from ipdashboard.cache import CacheConfig, MemoryStore, RedisStore, create_store
from ipdashboard.cache.patterns import compile_pattern
from ipdashboard.cache.stores import CacheCircuitBreaker


def _scan_results(*keys):
    """scan_iter replacement yielding the given keys."""

    async def scan_iter(*args, **kwargs):
        for key in keys:
            yield key

    return MagicMock(side_effect=scan_iter)


@pytest.fixture
def redis_config():
    """Redis configuration with short timeouts."""
    return CacheConfig(
        backend="redis",
        namespace="ipd",
        operation_timeout=0.05,
        connect_timeout=0.05,
        reconnect_interval=0.01,
        circuit_breaker_threshold=3,
        circuit_breaker_timeout=60,
    )


@pytest.fixture
def redis_client():
    """Mocked redis.asyncio client."""
    client = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    return client


@pytest.fixture
async def redis_store(redis_config, redis_client):
    """Connected RedisStore over the mocked client."""
    store = RedisStore(redis_config, client=redis_client)
    await store.connect()
    yield store
    await store.close()


class TestMemoryStore:
    """Test suite for MemoryStore."""

    async def test_set_then_get(self, memory_store):
        await memory_store.connect()
        assert await memory_store.set_with_ttl("k", '{"a":1}', 60)
        assert await memory_store.get("k") == '{"a":1}'

    async def test_unknown_key_is_none(self, memory_store):
        await memory_store.connect()
        assert await memory_store.get("missing") is None

    async def test_entry_expires_after_ttl(self, memory_store, fake_clock):
        """Entries disappear once their TTL has elapsed."""
        await memory_store.connect()
        await memory_store.set_with_ttl("k", "v", 60)

        fake_clock.advance(59)
        assert await memory_store.get("k") == "v"

        fake_clock.advance(2)
        assert await memory_store.get("k") is None

    async def test_ttls_are_per_entry(self, memory_store, fake_clock):
        await memory_store.connect()
        await memory_store.set_with_ttl("short", "s", 60)
        await memory_store.set_with_ttl("long", "l", 3600)

        fake_clock.advance(120)

        assert await memory_store.get("short") is None
        assert await memory_store.get("long") == "l"

    async def test_overwrite_replaces_whole_entry(self, memory_store):
        await memory_store.connect()
        await memory_store.set_with_ttl("k", "first", 60)
        await memory_store.set_with_ttl("k", "second", 60)
        assert await memory_store.get("k") == "second"

    async def test_delete_by_pattern(self, memory_store):
        await memory_store.connect()
        await memory_store.set_with_ttl("aebf:GET:/a:division=FP", "1", 60)
        await memory_store.set_with_ttl("aebf:GET:/a:division=HC", "2", 60)
        await memory_store.set_with_ttl("other:GET:/b:", "3", 60)

        deleted = await memory_store.delete_by_pattern(compile_pattern("aebf:*division=FP*"))

        assert deleted == 1
        assert await memory_store.get("aebf:GET:/a:division=FP") is None
        assert await memory_store.get("aebf:GET:/a:division=HC") == "2"
        assert await memory_store.get("other:GET:/b:") == "3"

    async def test_key_count_excludes_expired(self, memory_store, fake_clock):
        await memory_store.connect()
        await memory_store.set_with_ttl("a", "1", 60)
        await memory_store.set_with_ttl("b", "2", 600)

        fake_clock.advance(61)

        assert await memory_store.key_count() == 1

    async def test_bounded_size(self, fake_clock):
        store = MemoryStore(maxsize=2, timer=fake_clock)
        await store.connect()
        for i in range(5):
            await store.set_with_ttl(f"k{i}", str(i), 60)
        assert await store.key_count() == 2

    async def test_unconnected_store_is_noop(self, memory_store):
        """Before connect() the store reads as empty and ignores writes."""
        assert not memory_store.is_connected()
        assert await memory_store.set_with_ttl("k", "v", 60) is False
        assert await memory_store.get("k") is None
        assert await memory_store.key_count() is None

    async def test_close_clears(self, memory_store):
        await memory_store.connect()
        await memory_store.set_with_ttl("k", "v", 60)
        await memory_store.close()
        assert not memory_store.is_connected()


class TestCircuitBreaker:
    """Test circuit breaker state transitions."""

    def test_opens_after_threshold(self, fake_clock):
        breaker = CacheCircuitBreaker(failure_threshold=3, timeout=60, clock=fake_clock)
        breaker.on_failure()
        breaker.on_failure()
        assert breaker.state == "closed"
        assert breaker.can_attempt()

        breaker.on_failure()

        assert breaker.state == "open"
        assert not breaker.can_attempt()

    def test_success_resets_failure_count(self, fake_clock):
        breaker = CacheCircuitBreaker(failure_threshold=3, clock=fake_clock)
        breaker.on_failure()
        breaker.on_failure()
        breaker.on_success()
        breaker.on_failure()
        assert breaker.state == "closed"

    def test_half_open_after_timeout(self, fake_clock):
        breaker = CacheCircuitBreaker(failure_threshold=1, timeout=60, clock=fake_clock)
        breaker.on_failure()
        assert not breaker.can_attempt()

        fake_clock.advance(60)

        assert breaker.can_attempt()
        assert breaker.state == "half_open"

    def test_half_open_success_closes(self, fake_clock):
        breaker = CacheCircuitBreaker(failure_threshold=1, timeout=10, clock=fake_clock)
        breaker.on_failure()
        fake_clock.advance(10)
        breaker.can_attempt()

        breaker.on_success()

        assert breaker.state == "closed"
        assert breaker.failure_count == 0

    def test_half_open_failure_reopens(self, fake_clock):
        breaker = CacheCircuitBreaker(failure_threshold=5, timeout=10, clock=fake_clock)
        for _ in range(5):
            breaker.on_failure()
        fake_clock.advance(10)
        assert breaker.can_attempt()

        breaker.on_failure()

        assert breaker.state == "open"
        assert not breaker.can_attempt()

    def test_reset(self, fake_clock):
        breaker = CacheCircuitBreaker(failure_threshold=1, clock=fake_clock)
        breaker.on_failure()
        breaker.reset()
        assert breaker.state == "closed"
        assert breaker.last_failure_time is None


class TestRedisStore:
    """Test suite for RedisStore with a mocked client."""

    async def test_connect_pings(self, redis_store, redis_client):
        redis_client.ping.assert_awaited()
        assert redis_store.is_connected()

    async def test_keys_are_namespaced(self, redis_store, redis_client):
        redis_client.get = AsyncMock(return_value='{"a":1}')

        value = await redis_store.get("aebf:GET:/x:")

        assert value == '{"a":1}'
        redis_client.get.assert_awaited_once_with("ipd:aebf:GET:/x:")

    async def test_set_uses_ttl(self, redis_store, redis_client):
        redis_client.set = AsyncMock(return_value=True)

        assert await redis_store.set_with_ttl("k", "v", 300)

        redis_client.set.assert_awaited_once_with("ipd:k", "v", ex=300)

    async def test_connection_error_is_miss(self, redis_store, redis_client):
        redis_client.get = AsyncMock(side_effect=ConnectionError("Connection refused"))

        assert await redis_store.get("k") is None
        assert redis_store.failures == 1

    async def test_timeout_error_is_failed_write(self, redis_store, redis_client):
        redis_client.set = AsyncMock(side_effect=TimeoutError("Operation timed out"))

        assert await redis_store.set_with_ttl("k", "v", 60) is False

    async def test_slow_call_times_out(self, redis_store, redis_client):
        """Operations are bounded by the operation timeout."""

        async def slow_get(*args, **kwargs):
            await asyncio.sleep(1)
            return "late"

        redis_client.get = AsyncMock(side_effect=slow_get)

        assert await redis_store.get("k") is None
        assert redis_store.failures == 1

    async def test_circuit_opens_and_skips_store(self, redis_store, redis_client):
        redis_client.get = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(3):
            await redis_store.get("k")

        assert redis_store.circuit_state == "open"
        assert not redis_store.is_connected()

        redis_client.get.reset_mock()
        assert await redis_store.get("k") is None
        redis_client.get.assert_not_awaited()

    async def test_delete_by_pattern_scans_namespace(self, redis_store, redis_client):
        redis_client.scan_iter = _scan_results(
            "ipd:aebf:GET:/a:division=FP", "ipd:aebf:GET:/b:division=FP"
        )
        redis_client.delete = AsyncMock(return_value=2)

        deleted = await redis_store.delete_by_pattern(compile_pattern("aebf:*"))

        assert deleted == 2
        assert redis_client.scan_iter.call_args.kwargs["match"] == "ipd:aebf:*"
        redis_client.delete.assert_awaited_once_with(
            "ipd:aebf:GET:/a:division=FP", "ipd:aebf:GET:/b:division=FP"
        )
        redis_client.flushdb.assert_not_called()

    async def test_delete_all_stays_in_namespace(self, redis_store, redis_client):
        redis_client.scan_iter = _scan_results()
        redis_client.delete = AsyncMock(return_value=0)

        deleted = await redis_store.delete_by_pattern(compile_pattern("*"))

        assert deleted == 0
        assert redis_client.scan_iter.call_args.kwargs["match"] == "ipd:*"
        redis_client.delete.assert_not_awaited()

    async def test_delete_filters_exact_matches(self, redis_store, redis_client):
        """Keys SCAN returns that do not match the compiled pattern are kept."""
        redis_client.scan_iter = _scan_results("ipd:a:x", "ipd:a:y")
        redis_client.delete = AsyncMock(return_value=1)

        await redis_store.delete_by_pattern(compile_pattern("a:x"))

        redis_client.delete.assert_awaited_once_with("ipd:a:x")

    async def test_delete_failure_returns_zero(self, redis_store, redis_client):
        redis_client.scan_iter = MagicMock(side_effect=ConnectionError("down"))

        assert await redis_store.delete_by_pattern(compile_pattern("*")) == 0

    async def test_key_count(self, redis_store, redis_client):
        redis_client.scan_iter = _scan_results("ipd:a", "ipd:b", "ipd:c")
        assert await redis_store.key_count() == 3

    async def test_key_count_capped(self, redis_config, redis_client):
        config = redis_config.model_copy(update={"key_count_limit": 2})
        store = RedisStore(config, client=redis_client)
        await store.connect()
        redis_client.scan_iter = _scan_results("ipd:a", "ipd:b", "ipd:c")

        assert await store.key_count() == 2
        await store.close()

    async def test_unreachable_at_startup(self, redis_config, redis_client):
        """A failed connect leaves the store unavailable without raising."""
        redis_client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        store = RedisStore(redis_config.model_copy(update={"reconnect_interval": 60}), client=redis_client)

        assert await store.connect() is False
        assert not store.is_connected()
        assert await store.get("k") is None
        assert await store.set_with_ttl("k", "v", 60) is False
        assert await store.key_count() is None

        await store.close()
        redis_client.get.assert_not_awaited()

    async def test_background_reconnect(self, redis_config, redis_client):
        redis_client.ping = AsyncMock(side_effect=[ConnectionError("refused"), True])
        store = RedisStore(redis_config, client=redis_client)

        assert await store.connect() is False
        for _ in range(50):
            if store.is_connected():
                break
            await asyncio.sleep(0.01)

        assert store.is_connected()
        await store.close()

    async def test_close_cancels_reconnect(self, redis_config, redis_client):
        redis_client.ping = AsyncMock(side_effect=ConnectionError("refused"))
        store = RedisStore(redis_config.model_copy(update={"reconnect_interval": 60}), client=redis_client)
        await store.connect()
        task = store._reconnect_task

        await store.close()

        assert task is not None and task.done()
        redis_client.aclose.assert_awaited_once()


class TestCreateStore:
    """Test store factory."""

    def test_memory_backend(self):
        store = create_store(CacheConfig(backend="memory", memory_maxsize=5))
        assert isinstance(store, MemoryStore)

    def test_redis_backend(self):
        store = create_store(CacheConfig(backend="redis"))
        assert isinstance(store, RedisStore)
        assert store.namespace == "ipdashboard:"
