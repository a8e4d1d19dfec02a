"""Component health checks and aggregation.

Components:
    memory       degraded above 90% system memory use
    cpu          degraded when 1-minute load exceeds 0.8 x cores
    database     SELECT NOW() round trip; unavailable without a pool
    cache        healthy when the store is connected, else unavailable
    disk         informational
    application  informational (environment, request totals, uptime)

The overall status is ``healthy`` unless a component is degraded or
unhealthy (``degraded``). It is ``unhealthy`` only when a configured
critical component is unhealthy or the check itself fails.
"""

import logging
import os
import platform
import sys
import tempfile
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, Literal

import psutil
from pydantic import BaseModel, ConfigDict, Field

from ipdashboard.cache.service import CacheService
from ipdashboard.core.config import Settings
from ipdashboard.core.database import Database
from ipdashboard.core.exceptions import DatabaseError
from ipdashboard.observability.logging import LogEvents, get_logger
from ipdashboard.observability.requests import RequestMetrics, format_uptime

logger = logging.getLogger(__name__)
events = get_logger(__name__)

HealthStatus = Literal["healthy", "degraded", "unhealthy", "unavailable"]

MEMORY_THRESHOLD_PERCENT = 90.0
LOAD_PER_CORE_THRESHOLD = 0.8

HTTP_STATUS = {"healthy": 200, "degraded": 207, "unhealthy": 503}


class ComponentHealth(BaseModel):
    """Status of one component plus free-form details."""

    model_config = ConfigDict(extra="allow")

    status: HealthStatus


class HealthSnapshot(BaseModel):
    """Result of a deep health check. Recomputed per request."""

    status: Literal["healthy", "degraded", "unhealthy"]
    timestamp: str
    uptime: int = Field(..., description="Seconds since process start")
    components: dict[str, ComponentHealth] = Field(default_factory=dict)
    error: str | None = None


def http_status_for(status: str) -> int:
    """HTTP code for an overall status: 200, 207 or 503."""
    return HTTP_STATUS.get(status, 503)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mb(num_bytes: float) -> int:
    return round(num_bytes / 1024 / 1024)


class HealthChecker:
    """Runs the component checks against the app's collaborators."""

    def __init__(
        self,
        database: Database | None,
        cache_service: CacheService | None,
        settings: Settings,
        request_metrics: RequestMetrics,
    ):
        self.database = database
        self.cache_service = cache_service
        self.settings = settings
        self.request_metrics = request_metrics

    async def check(self) -> HealthSnapshot:
        """Deep health check. Never raises."""
        uptime = self.request_metrics.uptime_seconds
        try:
            components = await self._run_components()
        except Exception as e:
            events.error(LogEvents.HEALTH_CHECK_FAILED, error=str(e))
            return HealthSnapshot(
                status="unhealthy", timestamp=_utcnow(), uptime=uptime, error=str(e)
            )

        return HealthSnapshot(
            status=self.aggregate(components),
            timestamp=_utcnow(),
            uptime=uptime,
            components=components,
        )

    async def _run_components(self) -> dict[str, ComponentHealth]:
        checks: dict[str, Callable[[], Awaitable[ComponentHealth]]] = {
            "memory": self.check_memory,
            "cpu": self.check_cpu,
            "database": self.check_database,
            "cache": self.check_cache,
            "disk": self.check_disk,
            "application": self.check_application,
        }
        return {name: await check() for name, check in checks.items()}

    def aggregate(self, components: dict[str, ComponentHealth]) -> str:
        """Overall status from component statuses."""
        critical = self.settings.critical_components
        statuses = {name: c.status for name, c in components.items()}

        if any(statuses.get(name) == "unhealthy" for name in critical):
            return "unhealthy"
        if any(s in ("degraded", "unhealthy") for s in statuses.values()):
            return "degraded"
        return "healthy"

    async def check_memory(self) -> ComponentHealth:
        vm = psutil.virtual_memory()
        rss = psutil.Process().memory_info().rss
        return ComponentHealth(
            status="healthy" if vm.percent < MEMORY_THRESHOLD_PERCENT else "degraded",
            rss=f"{_mb(rss)}MB",
            system_usage=f"{vm.percent:.1f}%",
            available=f"{_mb(vm.available)}MB",
        )

    async def check_cpu(self) -> ComponentHealth:
        cores = psutil.cpu_count() or 1
        load1, load5, load15 = psutil.getloadavg()
        healthy = load1 < cores * LOAD_PER_CORE_THRESHOLD
        return ComponentHealth(
            status="healthy" if healthy else "degraded",
            cores=cores,
            load_average={
                "1min": f"{load1:.2f}",
                "5min": f"{load5:.2f}",
                "15min": f"{load15:.2f}",
            },
            model=platform.processor() or "unknown",
        )

    async def check_database(self) -> ComponentHealth:
        if self.database is None or self.database.pool is None:
            return ComponentHealth(
                status="unavailable", message="No database pool configured"
            )

        try:
            server_time = await self.database.ping()
        except DatabaseError as e:
            events.warning(LogEvents.DATABASE_ERROR, error=e.message)
            return ComponentHealth(status="unhealthy", error=e.message)

        stats = self.database.pool_stats()
        return ComponentHealth(
            status="healthy",
            server_time=server_time.isoformat(),
            total_connections=stats.get("size", 0),
            idle_connections=stats.get("idle", 0),
        )

    async def check_cache(self) -> ComponentHealth:
        if self.cache_service is None:
            return ComponentHealth(status="unavailable", message="Cache not configured")

        stats = await self.cache_service.get_stats()
        if stats.connected:
            return ComponentHealth(status="healthy", **stats.model_dump())
        return ComponentHealth(
            status="unavailable",
            message="Cache store not available (serving uncached)",
            **stats.model_dump(),
        )

    async def check_disk(self) -> ComponentHealth:
        return ComponentHealth(
            status="healthy", platform=sys.platform, tmpdir=tempfile.gettempdir()
        )

    async def check_application(self) -> ComponentHealth:
        metrics = self.request_metrics
        return ComponentHealth(
            status="healthy",
            environment=self.settings.environment,
            python_version=platform.python_version(),
            pid=os.getpid(),
            total_requests=metrics.total_requests,
            total_errors=metrics.total_errors,
            error_rate=f"{metrics.error_rate():.2f}%",
            uptime=format_uptime(metrics.uptime_seconds),
        )

    async def readiness(self) -> tuple[bool, str | None]:
        """Whether the service can take traffic, and why not."""
        if self.database is None or self.database.pool is None:
            return True, None
        try:
            await self.database.ping()
        except DatabaseError as e:
            return False, e.message
        return True, None

    async def metrics(self) -> dict[str, Any]:
        """Payload for the metrics endpoint."""
        uptime = self.request_metrics.uptime_seconds
        memory = psutil.Process().memory_info()
        vm = psutil.virtual_memory()

        if self.cache_service is not None:
            stats = await self.cache_service.get_stats()
            cache: dict[str, Any] = stats.model_dump(by_alias=True)
        else:
            cache = {"connected": False, "backend": "none"}

        return {
            "timestamp": _utcnow(),
            "uptime": {
                "seconds": uptime,
                "formatted": format_uptime(uptime, with_seconds=True),
            },
            "requests": self.request_metrics.summary(),
            "errors": {
                "total": self.request_metrics.total_errors,
                "by_status": dict(self.request_metrics.errors_by_status),
            },
            "memory": {"rss_mb": _mb(memory.rss), "vms_mb": _mb(memory.vms)},
            "system": {
                "platform": sys.platform,
                "arch": platform.machine(),
                "python_version": platform.python_version(),
                "cpus": psutil.cpu_count() or 1,
                "total_memory_gb": round(vm.total / 1024**3, 1),
                "available_memory_gb": round(vm.available / 1024**3, 1),
                "load_average": list(psutil.getloadavg()),
            },
            "cache": cache,
        }
