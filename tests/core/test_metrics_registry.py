from __future__ import annotations

from produce_sync.core.metrics import MetricsRegistry, TimingStats, measure_time, metrics_registry


def test_counters_and_timings_snapshot() -> None:
    registry = MetricsRegistry()
    registry.increment("sync.cycles")
    registry.increment("queue.enqueued")
    registry.increment("queue.enqueued", 2)
    registry.increment("orders.replayed", 0)
    registry.record_timing("latency.sync_cycle_ms", 10.0)
    registry.record_timing("latency.sync_cycle_ms", 30.0)

    snapshot = registry.snapshot()

    assert registry.counter("queue.enqueued") == 3
    assert registry.counter("orders.replayed") == 0
    assert list(snapshot["counters"]) == ["queue.enqueued", "sync.cycles"]
    assert snapshot["timings_ms"]["latency.sync_cycle_ms"] == {"count": 2, "last": 30.0, "avg": 20.0, "max": 30.0}


def test_timing_stats_start_empty() -> None:
    stats = TimingStats()

    assert stats.to_dict() == {"count": 0, "last": 0.0, "avg": 0.0, "max": 0.0}

    stats.add(4.0)
    stats.add(2.0)

    assert stats.to_dict() == {"count": 2, "last": 2.0, "avg": 3.0, "max": 4.0}


def test_measure_time_records_even_on_error() -> None:
    @measure_time("latency.test_measure_ms")
    def explode() -> None:
        raise RuntimeError("boom")

    before = metrics_registry.snapshot()["timings_ms"].get("latency.test_measure_ms", {}).get("count", 0)
    try:
        explode()
    except RuntimeError:
        pass

    assert metrics_registry.snapshot()["timings_ms"]["latency.test_measure_ms"]["count"] == before + 1
