"""STRATA — Compression Metrics.

In-process counters for retention runs: successes and failures, catch-up
versus regular runs, and latency over the most recent runs.
"""

import threading
from collections import Counter, deque
from typing import Dict, Optional

from pydantic import BaseModel

# Duration samples kept for average / P95
MAX_DURATION_SAMPLES = 100


class CompressionMetricsSnapshot(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    catch_up_count: int = 0
    regular_count: int = 0
    failures_by_type: Dict[str, int] = {}
    average_ms: Optional[float] = None
    p95_ms: Optional[int] = None
    last_run: Optional[dict] = None


class CompressionMetrics:
    """Thread-safe; fed by the compactor and by the scheduler's failure path."""

    def __init__(self, max_samples: int = MAX_DURATION_SAMPLES):
        self._lock = threading.Lock()
        self._durations: deque = deque(maxlen=max_samples)
        self._failures: Counter = Counter()
        self.success_count = 0
        self.catch_up_count = 0
        self.regular_count = 0
        self.last_run: Optional[dict] = None

    def record_run(self, total_ms: int, was_catch_up: bool, summary: Optional[dict] = None) -> None:
        with self._lock:
            self.success_count += 1
            if was_catch_up:
                self.catch_up_count += 1
            else:
                self.regular_count += 1
            self._durations.append(total_ms)
            self.last_run = summary

    def record_failure(self, error_type: str) -> None:
        with self._lock:
            self._failures[error_type] += 1

    def average_ms(self) -> Optional[float]:
        with self._lock:
            if not self._durations:
                return None
            return sum(self._durations) / len(self._durations)

    def p95_ms(self) -> Optional[int]:
        with self._lock:
            if not self._durations:
                return None
            ordered = sorted(self._durations)
            return ordered[min(int(len(ordered) * 0.95), len(ordered) - 1)]

    def snapshot(self) -> CompressionMetricsSnapshot:
        average, p95 = self.average_ms(), self.p95_ms()
        with self._lock:
            return CompressionMetricsSnapshot(
                success_count=self.success_count,
                failure_count=sum(self._failures.values()),
                catch_up_count=self.catch_up_count,
                regular_count=self.regular_count,
                failures_by_type=dict(self._failures),
                average_ms=average,
                p95_ms=p95,
                last_run=self.last_run,
            )
