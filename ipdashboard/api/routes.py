"""Health, metrics and cache administration routes."""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from ipdashboard.api.validation import (
    ErrorResponse,
    InvalidateResponse,
    LiveResponse,
    ReadyResponse,
    ShallowHealthResponse,
)
from ipdashboard.cache import CacheService, CacheStats
from ipdashboard.core.exceptions import PatternSyntaxError
from ipdashboard.observability.health import HealthChecker, http_status_for
from ipdashboard.observability.metrics import get_metrics_summary
from ipdashboard.observability.requests import RequestMetrics

logger = logging.getLogger(__name__)


def _health_checker(request: Request) -> HealthChecker:
    checker: HealthChecker | None = getattr(request.app.state, "health_checker", None)
    if checker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting",
        )
    return checker


def _cache_service(request: Request) -> CacheService:
    service: CacheService | None = getattr(request.app.state, "cache_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cache service not configured",
        )
    return service


async def _deep_health(request: Request) -> JSONResponse:
    snapshot = await _health_checker(request).check()
    return JSONResponse(
        status_code=http_status_for(snapshot.status),
        content=snapshot.model_dump(mode="json", exclude_none=True),
    )


def create_routes() -> APIRouter:
    """Create the monitoring and cache admin routes (mounted under ``/api``).

    Returns:
        Configured APIRouter
    """
    api_router = APIRouter(tags=["monitoring"])

    # GET /health - Shallow liveness, or the deep check with ?deep=true
    @api_router.get(
        "/health",
        response_model=ShallowHealthResponse,
        responses={207: {"description": "Degraded (deep check)"}, 503: {}},
    )
    async def health(
        request: Request, deep: bool = Query(False)
    ) -> ShallowHealthResponse | JSONResponse:
        """Quick health check."""
        if deep:
            return await _deep_health(request)

        metrics: RequestMetrics = request.app.state.request_metrics
        return ShallowHealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=metrics.uptime_seconds,
            service=request.app.state.settings.service_name,
        )

    # GET /health/deep - Every component, 200/207/503
    @api_router.get(
        "/health/deep",
        responses={207: {"description": "Degraded"}, 503: {"description": "Unhealthy"}},
    )
    async def health_deep(request: Request) -> JSONResponse:
        """Deep health check with all components."""
        return await _deep_health(request)

    # GET /metrics - Uptime, request counts, memory, system and cache stats
    @api_router.get("/metrics")
    async def metrics(request: Request) -> dict[str, Any]:
        """System and cache metrics."""
        payload = await _health_checker(request).metrics()
        payload["telemetry"] = get_metrics_summary()
        return payload

    # GET /ready - Readiness probe
    @api_router.get(
        "/ready",
        response_model=ReadyResponse,
        responses={503: {"description": "Database unreachable"}},
    )
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe: database reachable, or no database configured."""
        is_ready, error = await _health_checker(request).readiness()
        if is_ready:
            return JSONResponse(content={"ready": True})
        logger.error(f"Readiness check failed: {error}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ready": False, "error": error},
        )

    # GET /live - Liveness probe
    @api_router.get("/live", response_model=LiveResponse)
    async def live() -> LiveResponse:
        """Liveness probe."""
        return LiveResponse(alive=True)

    # GET /cache/stats - Cache statistics
    @api_router.get("/cache/stats", response_model=CacheStats, tags=["cache"])
    async def cache_stats(request: Request) -> CacheStats:
        """Hit/miss counters, key count and store connectivity."""
        return await _cache_service(request).get_stats()

    # DELETE /cache?pattern= - Pattern invalidation
    @api_router.delete(
        "/cache",
        response_model=InvalidateResponse,
        responses={400: {"model": ErrorResponse}},
        tags=["cache"],
    )
    async def clear_cache(
        request: Request, pattern: str = Query("*", description="Glob pattern")
    ) -> InvalidateResponse:
        """Invalidate cached responses matching a pattern (default: all)."""
        service = _cache_service(request)
        try:
            deleted = await service.invalidate(pattern)
        except PatternSyntaxError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail=e.message
            ) from e
        logger.info(f"Admin cache invalidation {pattern!r}: {deleted} keys removed")
        return InvalidateResponse(pattern=pattern, deleted=deleted)

    return api_router
