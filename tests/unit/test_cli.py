"""Unit tests for the command-line interface."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from ipdashboard import __version__
from ipdashboard.cache import CacheConfig, CacheService, MemoryStore, RedisStore
from ipdashboard.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def seeded_store():
    """Memory store that keeps its entries across the CLI's init/shutdown."""

    class PersistentStore(MemoryStore):
        async def close(self):
            self._connected = False

    return PersistentStore(maxsize=64)


def service_factory(store):
    config = CacheConfig(backend="memory", namespace="cli")
    return lambda: CacheService(config, store=store)


def unreachable_factory():
    config = CacheConfig(backend="redis", reconnect_interval=60, connect_timeout=0.05)
    client = AsyncMock()
    client.ping = AsyncMock(side_effect=ConnectionError("refused"))
    return lambda: CacheService(config, store=RedisStore(config, client=client))


async def seed(store, *keys):
    await store.connect()
    for key in keys:
        await store.set_with_ttl(key, "{}", 300)


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestCacheStats:
    """Test the cache-stats command."""

    def test_text_output(self, runner, seeded_store):
        with patch("ipdashboard.cli.main.build_cache_service", service_factory(seeded_store)):
            result = runner.invoke(cli, ["cache-stats"])

        assert result.exit_code == 0
        assert "Backend:   memory" in result.output
        assert "Connected: True" in result.output
        assert "Keys:      0" in result.output

    def test_json_output(self, runner, seeded_store):
        with patch("ipdashboard.cli.main.build_cache_service", service_factory(seeded_store)):
            result = runner.invoke(cli, ["cache-stats", "--json"])

        data = json.loads(result.output)
        assert data["backend"] == "memory"
        assert data["hits"] == 0

    def test_unavailable(self, runner):
        with patch("ipdashboard.cli.main.build_cache_service", unreachable_factory()):
            result = runner.invoke(cli, ["cache-stats"])

        assert result.exit_code == 1
        assert "Cache store unavailable" in result.output


class TestCacheClear:
    """Test the cache-clear command."""

    def test_clear_pattern(self, runner, seeded_store):
        asyncio.run(seed(seeded_store, "aebf:GET:/a:", "aebf:GET:/b:", "other:GET:/c:"))

        with patch("ipdashboard.cli.main.build_cache_service", service_factory(seeded_store)):
            result = runner.invoke(cli, ["cache-clear", "--pattern", "aebf:*"])

        assert result.exit_code == 0
        assert "Deleted 2 cache entries matching 'aebf:*'" in result.output

    def test_clear_all_requires_confirmation(self, runner, seeded_store):
        with patch("ipdashboard.cli.main.build_cache_service", service_factory(seeded_store)):
            result = runner.invoke(cli, ["cache-clear"], input="n\n")

        assert result.exit_code == 1
        assert "Aborted" in result.output

    def test_clear_all_confirmed(self, runner, seeded_store):
        with patch("ipdashboard.cli.main.build_cache_service", service_factory(seeded_store)):
            result = runner.invoke(cli, ["cache-clear", "--yes"])

        assert result.exit_code == 0
        assert "Deleted 0 cache entries matching '*'" in result.output

    def test_bad_pattern(self, runner, seeded_store):
        with patch("ipdashboard.cli.main.build_cache_service", service_factory(seeded_store)):
            result = runner.invoke(cli, ["cache-clear", "-p", "aebf:[x]"])

        assert result.exit_code == 2
        assert "--pattern" in result.output

    def test_unavailable(self, runner):
        with patch("ipdashboard.cli.main.build_cache_service", unreachable_factory()):
            result = runner.invoke(cli, ["cache-clear", "-p", "aebf:*"])

        assert result.exit_code == 1
        assert "Cache store unavailable" in result.output
