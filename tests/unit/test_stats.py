"""Unit tests for the cache stats collector."""

from concurrent.futures import ThreadPoolExecutor

from ipdashboard.cache.stats import LATENCY_WINDOW, StatsCollector


class TestStatsCollector:
    """Test suite for StatsCollector."""

    def test_initial_snapshot(self):
        stats = StatsCollector().snapshot()

        assert stats.hits == 0
        assert stats.misses == 0
        assert stats.errors == 0
        assert stats.hit_rate == 0.0
        assert stats.avg_latency_ms == 0.0
        assert stats.keys is None

    def test_hit_rate(self):
        collector = StatsCollector()
        for _ in range(3):
            collector.record_hit()
        collector.record_miss()

        assert collector.snapshot().hit_rate == 0.75

    def test_errors_counted_separately(self):
        collector = StatsCollector()
        collector.record_error()
        collector.record_miss()

        stats = collector.snapshot()
        assert stats.errors == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.0

    def test_average_latency_in_ms(self):
        collector = StatsCollector()
        collector.record_latency(0.002)
        collector.record_latency(0.004)

        assert collector.snapshot().avg_latency_ms == 3.0

    def test_latency_window_is_bounded(self):
        """Only the most recent samples contribute to the average."""
        collector = StatsCollector()
        for _ in range(LATENCY_WINDOW):
            collector.record_latency(1.0)
        for _ in range(LATENCY_WINDOW):
            collector.record_latency(0.001)

        assert collector.snapshot().avg_latency_ms == 1.0

    def test_snapshot_carries_store_fields(self):
        stats = StatsCollector().snapshot(
            keys=4, connected=True, backend="redis", circuit_state="half_open"
        )
        assert stats.keys == 4
        assert stats.connected is True
        assert stats.backend == "redis"
        assert stats.circuit_state == "half_open"

    def test_reset(self):
        collector = StatsCollector()
        collector.record_hit()
        collector.record_error()
        collector.record_latency(0.5)

        collector.reset()

        stats = collector.snapshot()
        assert (stats.hits, stats.misses, stats.errors) == (0, 0, 0)
        assert stats.avg_latency_ms == 0.0

    def test_concurrent_updates_are_not_lost(self):
        """Counters stay exact under concurrent increments."""
        collector = StatsCollector()

        def bump(_):
            for _ in range(500):
                collector.record_hit()
                collector.record_miss()

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(bump, range(8)))

        assert collector.hits == 4000
        assert collector.misses == 4000
