"""
Metrics registry tests.
"""

from compliance_agent.observability.metrics import RECENT_SAMPLES, Histogram, MetricsRegistry


def test_counters_and_snapshot():
    registry = MetricsRegistry()
    registry.inc_counter("operations.create.success")
    registry.inc_counter("operations.create.success", 2)

    assert registry.count("operations.create.success") == 3
    assert registry.count("never.seen") == 0
    assert registry.snapshot()["counters"] == {"operations.create.success": 3}


def test_histogram_summary():
    histogram = Histogram()
    for value in range(1, 101):
        histogram.observe(float(value))

    snapshot = histogram.snapshot()
    assert snapshot["count"] == 100
    assert snapshot["avg"] == 50.5
    assert snapshot["p95"] == 96.0
    assert snapshot["max"] == 100.0


def test_histogram_window_is_bounded():
    histogram = Histogram()
    for value in range(RECENT_SAMPLES + 10):
        histogram.observe(float(value))

    assert len(histogram.recent) == RECENT_SAMPLES
    assert histogram.count == RECENT_SAMPLES + 10


def test_empty_histogram():
    assert Histogram().snapshot() == {"count": 0, "avg": 0.0, "p95": None, "max": None}
