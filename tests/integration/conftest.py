"""Fixtures for full-application tests."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from ipdashboard.api.aebf import get_repository
from ipdashboard.api.app import create_app
from ipdashboard.cache import CacheService
from ipdashboard.core.exceptions import DatabaseError


@pytest.fixture(autouse=True)
def _patch_psutil(fake_psutil):
    """Deterministic memory/cpu readings for every health call."""
    return fake_psutil


def _mock_database(fail: bool = False) -> MagicMock:
    """Connected database double; ``fail`` makes every ping raise."""
    database = MagicMock()
    database.pool = object()
    if fail:
        database.ping = AsyncMock(side_effect=DatabaseError("Database ping failed: timeout"))
    else:
        database.ping = AsyncMock(return_value=datetime(2026, 1, 5, tzinfo=timezone.utc))
    database.pool_stats.return_value = {"size": 2, "idle": 2}
    database.disconnect = AsyncMock()
    return database


@pytest.fixture
def app_factory(test_settings, memory_config, memory_store, fake_repository):
    """Build an app over the memory store and fake repository."""

    def build(settings=None, cache_service=None, database=None):
        app = create_app(
            settings=settings or test_settings,
            cache_service=cache_service or CacheService(memory_config, store=memory_store),
            database=database,
        )
        app.dependency_overrides[get_repository] = lambda: fake_repository
        return app

    return build


@pytest.fixture
def client(app_factory):
    with TestClient(app_factory()) as test_client:
        yield test_client


@pytest.fixture
def mock_database():
    """Factory for database doubles: ``mock_database(fail=True)``."""
    return _mock_database
