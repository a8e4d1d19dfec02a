"""Deterministic cache keys derived from request shape.

Key layout::

    {prefix}:{METHOD}:{path}:{sorted-query}[:{body}]

Query parameters are sorted by name so that ``?b=2&a=1`` and ``?a=1&b=2``
share a key. Bodies are serialized as key-sorted compact JSON; long bodies
are replaced by their SHA-256 digest to keep keys bounded.
"""

import hashlib
import json
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote

from starlette.requests import Request

MAX_INLINE_BODY = 256
UNSERIALIZABLE = "<unserializable>"


def _placeholder(value: Any) -> str:
    return f"<unserializable:{type(value).__name__}>"


def canonical_query(items: Iterable[tuple[str, str]]) -> str:
    """Serialize query pairs in name order.

    Repeated names keep their original relative order, since
    ``?month=1&month=2`` and ``?month=2&month=1`` may mean different things
    to a handler.
    """
    pairs = sorted(items, key=lambda item: item[0])
    return "&".join(f"{quote(str(k), safe='')}={quote(str(v), safe='')}" for k, v in pairs)


def canonical_body(body: Any) -> str:
    """Stable JSON for a parsed request body. Never raises."""
    try:
        return json.dumps(
            body,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            default=_placeholder,
        )
    except (TypeError, ValueError):
        # Circular references and non-sortable mixed key types
        return UNSERIALIZABLE


def derive_key(
    method: str,
    path: str,
    query_items: Iterable[tuple[str, str]] = (),
    body: Any = None,
    prefix: str | None = None,
) -> str:
    """Build the cache key for a request.

    Args:
        method: HTTP method (case-insensitive)
        path: Request path including any mount prefix
        query_items: (name, value) pairs, order irrelevant
        body: Parsed JSON body for cacheable non-GET requests
        prefix: Optional key family prefix, e.g. ``"aebf"``

    Returns:
        Cache key string
    """
    parts = [method.upper(), path, canonical_query(query_items)]
    if prefix:
        parts.insert(0, prefix)

    if body is not None:
        serialized = canonical_body(body)
        if len(serialized) > MAX_INLINE_BODY:
            digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
            serialized = f"sha256={digest}"
        parts.append(serialized)

    return ":".join(parts)


def derive_request_key(
    request: Request, body: Any = None, prefix: str | None = None
) -> str:
    """Cache key for a Starlette request."""
    return derive_key(
        request.method,
        request.url.path,
        request.query_params.multi_items(),
        body=body,
        prefix=prefix,
    )
