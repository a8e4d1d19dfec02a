"""Per-route response caching for FastAPI.

Usage::

    router = APIRouter(prefix="/aebf", route_class=CachedRoute)

    @router.get("/budget-years")
    @cache_response(ttl=CacheTTL.VERY_LONG)
    async def budget_years(division: str) -> dict: ...

The route class wraps FastAPI's request handler: on a hit the endpoint is
never called; on a miss the endpoint runs and a successful JSON body is
written to the store in a background task after the response is sent.
"""

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.background import BackgroundTasks

from ipdashboard.cache.keys import derive_request_key
from ipdashboard.cache.models import CacheTTL
from ipdashboard.cache.patterns import compile_pattern
from ipdashboard.cache.service import CacheService
from ipdashboard.core.config import settings as default_settings
from ipdashboard.core.exceptions import CacheSerializationError
from ipdashboard.observability.logging import LogEvents, get_logger

logger = logging.getLogger(__name__)
events = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# (request, parsed body) -> key segment, or None for an unscoped key
KeyScope = Callable[[Request, Any], str | None]

POLICY_ATTR = "__cache_policy__"
CACHE_HEADER = "X-Cache"
CACHE_KEY_HEADER = "X-Cache-Key"


@dataclass(frozen=True)
class CachePolicy:
    """Cache behaviour declared by one endpoint."""

    ttl: int = CacheTTL.MEDIUM
    enabled: bool = True
    key_prefix: str | None = None
    methods: frozenset[str] = field(default_factory=lambda: frozenset({"GET"}))
    key_scope: KeyScope | None = None


def cache_response(
    ttl: int | CacheTTL = CacheTTL.MEDIUM,
    enabled: bool = True,
    key_prefix: str | None = None,
    methods: Iterable[str] = ("GET",),
    key_scope: KeyScope | None = None,
) -> Callable[[F], F]:
    """Attach a cache policy to an endpoint served by ``CachedRoute``.

    Args:
        ttl: Seconds a stored response stays valid
        enabled: Set False to keep the declaration but bypass the cache
        key_prefix: Key family (default: first path segment after ``/api``)
        methods: HTTP methods eligible for caching; add "POST" for
            read-only POST reports
        key_scope: Callable returning a segment (e.g. a division code)
            placed after the prefix, so writes can invalidate one scope
            with a ``prefix:SCOPE:*`` pattern
    """
    policy = CachePolicy(
        ttl=int(ttl),
        enabled=enabled,
        key_prefix=key_prefix,
        methods=frozenset(m.upper() for m in methods),
        key_scope=key_scope,
    )

    def decorator(func: F) -> F:
        setattr(func, POLICY_ATTR, policy)
        return func

    return decorator


def default_key_prefix(path: str) -> str:
    """First path segment after the ``/api`` mount, e.g. ``aebf``."""
    segments = [s for s in path.split("/") if s]
    if segments and segments[0] == "api":
        segments = segments[1:]
    return segments[0] if segments else "root"


def get_cache_service(request: Request) -> CacheService | None:
    """FastAPI dependency: the app's cache service, if one was started."""
    return getattr(request.app.state, "cache_service", None)


Invalidator = Callable[[str], Awaitable[int]]


def invalidate_cache(request: Request) -> Invalidator:
    """FastAPI dependency returning an awaitable pattern invalidator.

    Mutating routes await it after their write commits and before they
    respond. Without a cache service the pattern is still validated and
    the call returns 0.
    """
    service = get_cache_service(request)

    async def invalidate(pattern: str) -> int:
        if service is None:
            compile_pattern(pattern)
            return 0
        return await service.invalidate(pattern)

    return invalidate


def _cacheable_body(response: Response) -> str:
    """The response body as text when it may be stored.

    Raises:
        CacheSerializationError: If the body is missing or not JSON
    """
    raw = getattr(response, "body", None)
    if not isinstance(raw, (bytes, bytearray)):
        raise CacheSerializationError("Streaming response cannot be cached")
    try:
        text = raw.decode("utf-8")
        json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise CacheSerializationError(f"Response body is not JSON: {e}") from e
    return text


def _reports_failure(text: str) -> bool:
    data = json.loads(text)
    return isinstance(data, dict) and data.get("success") is False


async def _read_json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


class CachedRoute(APIRoute):
    """APIRoute that serves and stores responses for endpoints carrying a
    ``cache_response`` policy. Routes without a policy behave exactly like
    a plain APIRoute.
    """

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        original_handler = super().get_route_handler()
        policy: CachePolicy | None = getattr(self.endpoint, POLICY_ATTR, None)
        if policy is None or not policy.enabled:
            return original_handler

        prefix = policy.key_prefix or default_key_prefix(self.path_format)
        # Only the declared status is stored, so a hit replays it unchanged
        status_code = self.status_code or 200

        async def cached_handler(request: Request) -> Response:
            service = get_cache_service(request)
            if (
                service is None
                or not service.enabled
                or request.method.upper() not in policy.methods
            ):
                return await original_handler(request)

            body = None
            if request.method.upper() not in ("GET", "HEAD"):
                body = await _read_json_body(request)
            scope = policy.key_scope(request, body) if policy.key_scope else None
            key = derive_request_key(
                request, body=body, prefix=f"{prefix}:{scope}" if scope else prefix
            )

            try:
                cached = await service.get(key)
            except Exception as e:
                logger.warning(f"Cache lookup failed for {key}: {e}")
                cached = None

            if cached is not None:
                hit = _hit_response(cached, key, request, status_code)
                if hit is not None:
                    return hit

            response = await original_handler(request)
            response.headers[CACHE_HEADER] = "MISS"
            if _show_key(request):
                response.headers[CACHE_KEY_HEADER] = key

            if response.status_code == status_code and response.status_code < 400:
                _schedule_store(response, service, key, policy.ttl)
            return response

        return cached_handler


def _show_key(request: Request) -> bool:
    app_settings = getattr(request.app.state, "settings", default_settings)
    return app_settings.is_development


def _hit_response(
    cached: str, key: str, request: Request, status_code: int = 200
) -> JSONResponse | None:
    try:
        data = json.loads(cached)
    except ValueError:
        logger.warning(f"Discarding undecodable cache entry {key}")
        return None

    if isinstance(data, dict):
        data = {**data, "cached": True}
    headers = {CACHE_HEADER: "HIT"}
    if _show_key(request):
        headers[CACHE_KEY_HEADER] = key
    return JSONResponse(content=data, status_code=status_code, headers=headers)


def _schedule_store(
    response: Response, service: CacheService, key: str, ttl: int
) -> None:
    try:
        text = _cacheable_body(response)
    except CacheSerializationError as e:
        logger.debug(f"Not caching {key}: {e.message}")
        return

    if _reports_failure(text):
        events.debug(LogEvents.CACHE_SKIPPED, key=key, reason="success=false")
        return

    async def store() -> None:
        try:
            await service.set(key, text, ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    tasks = BackgroundTasks()
    if response.background is not None:
        tasks.add_task(response.background)
    tasks.add_task(store)
    response.background = tasks
