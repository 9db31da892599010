"""
Latency metrics.

Bounded latency history with rolling average and nearest-rank percentiles,
used for hook pipeline and engine metric snapshots.
"""

from collections import deque
from typing import Any, Deque, Dict

_NS_PER_MS = 1_000_000


class LatencyTracker:
    """
    Rolling latency statistics.

    The average covers every sample ever recorded; percentiles, min and max
    cover the most recent ``history_size`` samples.
    """

    def __init__(self, history_size: int = 1000):
        if history_size <= 0:
            raise ValueError("history_size must be positive")
        self._samples: Deque[int] = deque(maxlen=history_size)
        self._count = 0
        self._average_ns = 0.0

    def record(self, duration_ns: int) -> None:
        self._count += 1
        self._average_ns += (duration_ns - self._average_ns) / self._count
        self._samples.append(duration_ns)

    @property
    def count(self) -> int:
        return self._count

    @property
    def average_ns(self) -> float:
        return self._average_ns

    def percentile_ns(self, percentile: float) -> int:
        """Nearest-rank percentile over the retained samples (0 when empty)."""
        if not self._samples:
            return 0
        ordered = sorted(self._samples)
        index = int(len(ordered) * (percentile / 100))
        return ordered[min(index, len(ordered) - 1)]

    def snapshot(self) -> Dict[str, Any]:
        """Side-effect free readout in milliseconds."""
        if not self._samples:
            return {"count": self._count, "average_ms": 0.0, "min_ms": 0.0, "max_ms": 0.0,
                    "p50_ms": 0.0, "p95_ms": 0.0, "p99_ms": 0.0}

        return {
            "count": self._count,
            "average_ms": round(self._average_ns / _NS_PER_MS, 3),
            "min_ms": round(min(self._samples) / _NS_PER_MS, 3),
            "max_ms": round(max(self._samples) / _NS_PER_MS, 3),
            "p50_ms": round(self.percentile_ns(50) / _NS_PER_MS, 3),
            "p95_ms": round(self.percentile_ns(95) / _NS_PER_MS, 3),
            "p99_ms": round(self.percentile_ns(99) / _NS_PER_MS, 3),
        }
