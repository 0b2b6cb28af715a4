"""
Metrics — In-process counters, gauges and histograms.

Exposed at ``GET /metrics`` in Prometheus text format. Each
ScalerContext owns one registry; nothing here is process-global.

## Usage

    registry = MetricsRegistry()

    registry.increment("watch_events_total", labels={"type": "ADDED"})
    registry.set_gauge("mirror_objects", 12)
    registry.timing("scale_duration_seconds", 0.042)

    output = registry.export_prometheus()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

LabelKey = Tuple[Tuple[str, str], ...]


def _labels_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    if not labels:
        return ()
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


@dataclass
class MetricPoint:
    """A single exported sample."""

    name: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


class Counter:
    """A monotonically increasing counter."""

    kind = "counter"

    def __init__(self, name: str, help_text: str = ""):
        self.name = name
        self.help_text = help_text
        self._values: Dict[LabelKey, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        if value < 0:
            raise ValueError("counters only go up")
        with self._lock:
            self._values[_labels_key(labels)] += value

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._values.get(_labels_key(labels), 0)

    def total(self) -> float:
        with self._lock:
            return sum(self._values.values())

    def export(self) -> List[MetricPoint]:
        with self._lock:
            return [MetricPoint(self.name, v, dict(k)) for k, v in self._values.items()]


class Gauge(Counter):
    """A value that can go up and down."""

    kind = "gauge"

    def inc(self, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._values[_labels_key(labels)] += value

    def dec(self, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        self.inc(-value, labels)

    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._values[_labels_key(labels)] = value


class Histogram:
    """Cumulative-bucket histogram for durations."""

    kind = "histogram"
    DEFAULT_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, float("inf"))

    def __init__(self, name: str, help_text: str = "", buckets: Optional[Tuple[float, ...]] = None):
        self.name = name
        self.help_text = help_text
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._counts: Dict[LabelKey, List[int]] = {}
        self._sums: Dict[LabelKey, float] = defaultdict(float)
        self._totals: Dict[LabelKey, int] = defaultdict(int)
        self._lock = Lock()

    def observe(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _labels_key(labels)
        with self._lock:
            counts = self._counts.setdefault(key, [0] * len(self.buckets))
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    counts[i] += 1
            self._sums[key] += value
            self._totals[key] += 1

    def count(self, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._totals.get(_labels_key(labels), 0)

    def export(self) -> List[MetricPoint]:
        points = []
        with self._lock:
            for key, counts in self._counts.items():
                labels = dict(key)
                for bound, cumulative in zip(self.buckets, counts):
                    le = "+Inf" if bound == float("inf") else str(bound)
                    points.append(MetricPoint(f"{self.name}_bucket", cumulative, {**labels, "le": le}))
                points.append(MetricPoint(f"{self.name}_sum", self._sums[key], labels))
                points.append(MetricPoint(f"{self.name}_count", self._totals[key], labels))
        return points


class MetricsRegistry:
    """
    Named metrics with a common prefix.

    Lookups create on first use, so callers never need to pre-register.
    """

    def __init__(self, prefix: str = "scaler"):
        self.prefix = prefix
        self._metrics: Dict[str, Any] = {}
        self._lock = Lock()
        self._register_common_metrics()

    def _register_common_metrics(self) -> None:
        # Synchronizer
        self.counter("watch_events_total", "Watch events applied to the mirror")
        self.counter("watch_events_stale_total", "Watch events dropped as older than the mirror")
        self.counter("watch_restarts_total", "Watch resubscriptions")
        self.counter("relist_total", "Full relists applied to the mirror")
        self.counter("relist_errors_total", "Full relists that failed")
        self.gauge("mirror_objects", "Deployments currently mirrored")
        self.gauge("cache_synced", "1 once the initial sync barrier has completed")

        # Mutation path
        self.counter("scale_requests_total", "Scale writes by outcome")
        self.histogram("scale_duration_seconds", "Scale write latency")

        # HTTP
        self.counter("http_requests_total", "HTTP requests by method and status")

    def _get_or_create(self, cls, name: str, help_text: str):
        full_name = f"{self.prefix}_{name}"
        with self._lock:
            metric = self._metrics.get(full_name)
            if metric is None:
                metric = cls(full_name, help_text)
                self._metrics[full_name] = metric
            elif type(metric) is not cls:
                raise TypeError(f"metric {full_name} already registered as {metric.kind}")
            return metric

    def counter(self, name: str, help_text: str = "") -> Counter:
        return self._get_or_create(Counter, name, help_text)

    def gauge(self, name: str, help_text: str = "") -> Gauge:
        return self._get_or_create(Gauge, name, help_text)

    def histogram(self, name: str, help_text: str = "") -> Histogram:
        return self._get_or_create(Histogram, name, help_text)

    # Convenience methods
    def increment(self, name: str, value: float = 1, labels: Optional[Dict[str, str]] = None) -> None:
        self.counter(name).inc(value, labels)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.gauge(name).set(value, labels)

    def timing(self, name: str, seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.histogram(name).observe(seconds, labels)

    def export_prometheus(self) -> str:
        lines = []
        with self._lock:
            metrics = list(self._metrics.values())
        for metric in metrics:
            lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for point in metric.export():
                lines.append(f"{point.name}{self._format_labels(point.labels)} {_format_value(point.value)}")
        return "\n".join(lines) + "\n"

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(pairs) + "}"


def _format_value(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))
