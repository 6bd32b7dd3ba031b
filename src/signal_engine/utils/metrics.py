"""
Runtime Metrics Collection

Thread-safe counters, gauges and timers for:
- Fragments ingested / rejected per source
- Decisions per action
- Market data provider failures
- Decision latency
"""

import logging
import statistics
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class MetricSummary:
    """Statistical summary of timer values."""
    count: int
    min: float
    max: float
    mean: float
    median: float
    p95: float


class MetricsCollector:
    """Thread-safe metrics collection system."""

    def __init__(self, max_history: int = 1000):
        self._counters: Dict[str, float] = defaultdict(float)
        self._gauges: Dict[str, float] = {}
        self._timers: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=max_history))
        self._lock = threading.RLock()

        logger.debug(f"MetricsCollector initialized (max_history={max_history})")

    def increment(self, metric_name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None):
        """Increment a counter metric."""
        with self._lock:
            self._counters[self._build_metric_name(metric_name, tags)] += value

    def gauge(self, metric_name: str, value: float, tags: Optional[Dict[str, str]] = None):
        """Set a gauge metric value."""
        with self._lock:
            self._gauges[self._build_metric_name(metric_name, tags)] = value

    def timer(self, metric_name: str, duration: float, tags: Optional[Dict[str, str]] = None):
        """Record a timing metric (seconds)."""
        with self._lock:
            self._timers[self._build_metric_name(metric_name, tags)].append(duration)

    def counter(self, metric_name: str, tags: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._counters.get(self._build_metric_name(metric_name, tags), 0.0)

    def _build_metric_name(self, metric_name: str, tags: Optional[Dict[str, str]] = None) -> str:
        """Build full metric name with tags."""
        if not tags:
            return metric_name

        tag_string = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{metric_name}[{tag_string}]"

    def get_summary(self, metric_name: str, tags: Optional[Dict[str, str]] = None) -> Optional[MetricSummary]:
        """Statistical summary of a timer metric."""
        with self._lock:
            values = list(self._timers.get(self._build_metric_name(metric_name, tags), ()))

        if not values:
            return None

        ordered = sorted(values)
        return MetricSummary(
            count=len(values),
            min=ordered[0],
            max=ordered[-1],
            mean=statistics.mean(values),
            median=statistics.median(values),
            p95=ordered[min(len(ordered) - 1, int(round(0.95 * (len(ordered) - 1))))],
        )

    def get_current_values(self) -> Dict[str, Any]:
        """Current values of all metrics."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "timers": {k: list(v)[-10:] for k, v in self._timers.items()},
            }
