"""Pytest configuration and fixtures for IPDashboard tests."""

import asyncio
from collections import Counter
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from ipdashboard.cache import CacheConfig, CacheService, MemoryStore
from ipdashboard.core.config import Settings


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAebfRepository:
    """In-memory stand-in for AebfRepository that counts every call."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()
        self.years: dict[str, list[int]] = {"FP": [2026, 2025], "HC": [2025]}
        self.fail_with: Exception | None = None
        # Per-division latency for budget_years, to interleave concurrent requests
        self.delays: dict[str, float] = {}

    def _track(self, name: str) -> None:
        self.calls[name] += 1
        if self.fail_with is not None:
            raise self.fail_with

    async def budget_years(self, division: str) -> list[int]:
        self._track("budget_years")
        await asyncio.sleep(self.delays.get(division, 0))
        return list(self.years.get(division, []))

    async def budget(
        self,
        division: str,
        year: int | None = None,
        month: int | None = None,
        search: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> dict[str, Any]:
        self._track("budget")
        records = [{"division": division, "year": year or 2025, "month": month or 1}]
        return {
            "records": records,
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "total": 1,
                "totalPages": 1,
            },
        }

    async def actual(
        self, division: str, year: int | None = None, month: int | None = None
    ) -> list[dict[str, Any]]:
        self._track("actual")
        return [{"division": division, "year": year, "month": month, "values": 10.5}]

    async def filter_options(
        self, division: str, record_type: str | None = None
    ) -> dict[str, list[Any]]:
        self._track("filter_options")
        return {"year": [2025, 2026], "month": list(range(1, 13))}

    async def budget_product_groups(
        self, division: str, budget_year: int, sales_rep: str | None = None
    ) -> list[dict[str, Any]]:
        self._track("budget_product_groups")
        return [{"productGroup": "Shrink Film", "AMOUNT": 1200.0, "KGS": 300.0, "MORM": 80.0}]

    async def replace_budget(self, division, budget_year, records, uploaded_by, mode="replace") -> int:
        self._track("replace_budget")
        self.years.setdefault(division, []).insert(0, budget_year)
        return len(records)

    async def approve_estimate(self, division, year, records, approved_by) -> int:
        self._track("approve_estimate")
        return len(records)

    async def clear_estimates(self, division: str, year: int) -> int:
        self._track("clear_estimates")
        return 7


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fake clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def memory_config() -> CacheConfig:
    """Cache configuration using the in-memory store."""
    return CacheConfig(enabled=True, backend="memory", namespace="test")


@pytest.fixture
def memory_store(fake_clock) -> MemoryStore:
    """In-memory store driven by the fake clock."""
    return MemoryStore(maxsize=128, timer=fake_clock)


@pytest.fixture
async def cache_service(memory_config, memory_store):
    """Initialized cache service over the fake-clock memory store."""
    service = CacheService(memory_config, store=memory_store)
    await service.init()
    yield service
    await service.shutdown()


@pytest.fixture
def test_settings() -> Settings:
    """Settings for a development app with no database and memory cache."""
    return Settings(
        environment="development",
        database_url="",
        cache_backend="memory",
        cache_namespace="test",
        otel_enabled=False,
        log_level="WARNING",
    )


@pytest.fixture
def fake_repository() -> FakeAebfRepository:
    """Call-counting AEBF repository."""
    return FakeAebfRepository()


def make_psutil(memory_percent: float = 42.0, load1: float = 0.5, cores: int = 4) -> MagicMock:
    """psutil stand-in with fixed, configurable readings."""
    fake = MagicMock()
    fake.virtual_memory.return_value = SimpleNamespace(
        percent=memory_percent,
        available=8 * 1024**3,
        total=16 * 1024**3,
    )
    fake.Process.return_value.memory_info.return_value = SimpleNamespace(
        rss=120 * 1024**2, vms=480 * 1024**2
    )
    fake.cpu_count.return_value = cores
    fake.getloadavg.return_value = (load1, 0.4, 0.3)
    return fake


@pytest.fixture
def fake_psutil():
    """Patch psutil in the health module with healthy readings."""
    fake = make_psutil()
    with patch("ipdashboard.observability.health.psutil", fake):
        yield fake
