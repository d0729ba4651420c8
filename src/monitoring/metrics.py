"""
Metrics collection for WizardDAO.

Thread-safe collector for:
- Counters: submissions, fulfillments, claims, rejections by category
- Gauges: total shares, pending requests, held balance
- Histograms: entry point and HTTP request latency

Metrics are exposed in Prometheus text format at /metrics.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

METRIC_PREFIX = "wizard"


@dataclass
class HistogramBucket:
    """A histogram bucket for tracking value distributions."""

    le: float  # Less than or equal to
    count: int = 0


@dataclass
class Histogram:
    """Latency histogram with millisecond buckets."""

    name: str
    buckets: list[HistogramBucket] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.buckets:
            default_bounds = [1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000]
            self.buckets = [HistogramBucket(le=b) for b in default_bounds]
            self.buckets.append(HistogramBucket(le=float("inf")))

    def observe(self, value: float) -> None:
        """Record an observation."""
        self.sum += value
        self.count += 1
        for bucket in self.buckets:
            if value <= bucket.le:
                bucket.count += 1


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Collects counters, gauges, and histograms with optional labels.
    """

    def __init__(self, prefix: str = METRIC_PREFIX):
        self.prefix = prefix
        self._lock = threading.RLock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)
        self._start_time = time.time()

    def _labels_key(self, labels: dict[str, str] | None) -> str:
        """Convert labels dict to a hashable key."""
        if not labels:
            return ""
        return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))

    # Counter operations

    def increment(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        """Increment a counter."""
        with self._lock:
            key = self._labels_key(labels)
            self._counters[name][key] += value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        """Get current counter value."""
        with self._lock:
            key = self._labels_key(labels)
            return self._counters[name].get(key, 0)

    # Gauge operations

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        """Set a gauge value."""
        with self._lock:
            key = self._labels_key(labels)
            self._gauges[name][key] = value

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Get current gauge value."""
        with self._lock:
            key = self._labels_key(labels)
            return self._gauges[name].get(key, 0.0)

    # Histogram operations

    def timing(self, name: str, value_ms: float, labels: dict[str, str] | None = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            key = self._labels_key(labels)
            if key not in self._histograms[name]:
                self._histograms[name][key] = Histogram(name=name)
            self._histograms[name][key].observe(value_ms)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Context manager for timing code blocks."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.timing(name, elapsed_ms, labels)

    # Engine helpers

    def record_rejection(self, entry_point: str, category: str) -> None:
        """Count a rejected entry point call by error category."""
        self.increment("rejections_total", labels={"entry_point": entry_point, "category": category})

    def record_engine_state(self, total_shares: int, pending_requests: int, balance: int) -> None:
        """Refresh the engine gauges (share and balance values in whole units)."""
        self.set_gauge("total_shares", total_shares / 10**18)
        self.set_gauge("pending_requests", pending_requests)
        self.set_gauge("pool_balance", balance / 10**18)

    # Export methods

    def get_all(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        with self._lock:
            result = {
                "uptime_seconds": time.time() - self._start_time,
                "counters": {},
                "gauges": {},
                "histograms": {},
            }

            for name, values in self._counters.items():
                if len(values) == 1 and "" in values:
                    result["counters"][name] = values[""]
                else:
                    result["counters"][name] = dict(values)

            for name, values in self._gauges.items():
                if len(values) == 1 and "" in values:
                    result["gauges"][name] = values[""]
                else:
                    result["gauges"][name] = dict(values)

            for name, histograms in self._histograms.items():
                result["histograms"][name] = {}
                for key, hist in histograms.items():
                    label_key = key if key else "_total"
                    result["histograms"][name][label_key] = {
                        "count": hist.count,
                        "sum": hist.sum,
                        "avg": hist.sum / hist.count if hist.count > 0 else 0,
                    }

            return result

    def _series(self, lines: list[str], metric_name: str, kind: str, values: dict[str, Any]) -> None:
        lines.append(f"# TYPE {metric_name} {kind}")
        for key, value in values.items():
            if key:
                lines.append(f"{metric_name}{{{key}}} {value}")
            else:
                lines.append(f"{metric_name} {value}")
        lines.append("")

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        p = self.prefix

        with self._lock:
            uptime = time.time() - self._start_time
            lines.append(f"# HELP {p}_uptime_seconds Time since application start")
            lines.append(f"# TYPE {p}_uptime_seconds gauge")
            lines.append(f"{p}_uptime_seconds {uptime:.2f}")
            lines.append("")

            for name, values in self._counters.items():
                self._series(lines, f"{p}_{name}", "counter", values)

            for name, values in self._gauges.items():
                self._series(lines, f"{p}_{name}", "gauge", values)

            for name, histograms in self._histograms.items():
                metric_name = f"{p}_{name}"
                lines.append(f"# TYPE {metric_name} histogram")
                for key, hist in histograms.items():
                    for bucket in hist.buckets:
                        le_val = "+Inf" if bucket.le == float("inf") else bucket.le
                        labels = f'{key},le="{le_val}"' if key else f'le="{le_val}"'
                        lines.append(f"{metric_name}_bucket{{{labels}}} {bucket.count}")

                    suffix = f"{{{key}}}" if key else ""
                    lines.append(f"{metric_name}_sum{suffix} {hist.sum:.2f}")
                    lines.append(f"{metric_name}_count{suffix} {hist.count}")
                lines.append("")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()
