"""Process-wide cache counters read by the health and metrics surface."""

import threading
from collections import deque

from ipdashboard.cache.models import CacheStats
from ipdashboard.observability.metrics import record_cache_hit, record_cache_miss

LATENCY_WINDOW = 100


class StatsCollector:
    """Hit/miss/error counters plus a rolling window of lookup latencies.

    Counters only grow until ``reset()``. Updates take a lock so that no
    increment is lost when the app is driven from more than one thread
    (e.g. a TestClient portal alongside the server loop).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._errors = 0
        self._latencies: deque[float] = deque(maxlen=LATENCY_WINDOW)

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1
        record_cache_hit()

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1
        record_cache_miss()

    def record_error(self) -> None:
        with self._lock:
            self._errors += 1

    def record_latency(self, seconds: float) -> None:
        with self._lock:
            self._latencies.append(seconds)

    def reset(self) -> None:
        """Zero all counters (operator/test action)."""
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._errors = 0
            self._latencies.clear()

    @property
    def hits(self) -> int:
        return self._hits

    @property
    def misses(self) -> int:
        return self._misses

    @property
    def errors(self) -> int:
        return self._errors

    def snapshot(
        self,
        keys: int | None = None,
        connected: bool = False,
        backend: str = "none",
        circuit_state: str = "closed",
    ) -> CacheStats:
        """Consistent copy of the counters as a CacheStats model."""
        with self._lock:
            hits, misses, errors = self._hits, self._misses, self._errors
            latencies = list(self._latencies)

        total = hits + misses
        avg_ms = sum(latencies) / len(latencies) * 1000 if latencies else 0.0
        return CacheStats(
            hits=hits,
            misses=misses,
            errors=errors,
            keys=keys,
            hit_rate=hits / total if total else 0.0,
            avg_latency_ms=round(avg_ms, 3),
            connected=connected,
            backend=backend,
            circuit_state=circuit_state,
        )
