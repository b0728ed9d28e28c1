"""In-process metrics for the agent.

Counters track outcomes (operations, policy decisions, audit writes) and
histograms track latencies. Histograms keep a bounded window of recent
samples so the snapshot can report a p95 without unbounded memory.
"""

from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any

RECENT_SAMPLES = 1024


@dataclass
class Counter:
    value: float = 0.0

    def inc(self, amount: float = 1.0) -> None:
        self.value += amount


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    maximum: float | None = None
    recent: deque = field(default_factory=lambda: deque(maxlen=RECENT_SAMPLES))

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.recent.append(value)
        if self.maximum is None or value > self.maximum:
            self.maximum = value

    def percentile(self, fraction: float) -> float | None:
        if not self.recent:
            return None
        ordered = sorted(self.recent)
        return ordered[min(len(ordered) - 1, int(fraction * len(ordered)))]

    def snapshot(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "avg": self.total / self.count if self.count else 0.0,
            "p95": self.percentile(0.95),
            "max": self.maximum,
        }


class MetricsRegistry:
    """Thread-safe registry for counters and latency histograms."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.counters: dict[str, Counter] = {}
        self.histograms: dict[str, Histogram] = {}

    def inc_counter(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self.counters.setdefault(name, Counter()).inc(amount)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self.histograms.setdefault(name, Histogram()).observe(value)

    def count(self, name: str) -> float:
        """Current value of a counter, zero if it was never incremented."""
        with self._lock:
            counter = self.counters.get(name)
            return counter.value if counter else 0.0

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": {name: counter.value for name, counter in sorted(self.counters.items())},
                "histograms": {name: hist.snapshot() for name, hist in sorted(self.histograms.items())},
            }


metrics = MetricsRegistry()
