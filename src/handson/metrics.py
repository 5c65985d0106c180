"""Prometheus text-format metrics for the streaming pipeline.

Tracked metrics:
- handson_frames_total (counter)
- handson_frames_dropped_total (counter, frames with no usable pose)
- handson_match_attempts_total (counter, by result)
- handson_completions_total (counter, by statistic key)
- handson_frame_latency_seconds (histogram)
- handson_active_connections (gauge)
"""

from __future__ import annotations

import threading
import time
from collections import Counter


class _Histogram:
    """Cumulative histogram with fixed upper bounds."""

    def __init__(self, buckets: list[float]):
        self.buckets = sorted(buckets)
        self.bucket_counts = [0] * len(self.buckets)
        self.count = 0
        self.sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float):
        with self._lock:
            self.count += 1
            self.sum += value
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self.bucket_counts[i] += 1
                    break

    def render(self, name: str, help_text: str) -> list[str]:
        lines = [f"# HELP {name} {help_text}", f"# TYPE {name} histogram"]
        with self._lock:
            cumulative = 0
            for bound, n in zip(self.buckets, self.bucket_counts):
                cumulative += n
                lines.append(f'{name}_bucket{{le="{bound}"}} {cumulative}')
            lines.append(f'{name}_bucket{{le="+Inf"}} {self.count}')
            lines.append(f"{name}_sum {self.sum:.6f}")
            lines.append(f"{name}_count {self.count}")
        return lines


class MetricsCollector:
    """Thread-safe counters rendered in Prometheus exposition format."""

    def __init__(self):
        self._lock = threading.Lock()
        self._frames_total = 0
        self._frames_dropped = 0
        self._matches: Counter = Counter()
        self._completions: Counter = Counter()
        self._active_connections = 0
        self._latency = _Histogram([0.005, 0.010, 0.020, 0.033, 0.050, 0.100, 0.250])
        self._start_time = time.time()

    def record_frame(self, latency_seconds: float):
        with self._lock:
            self._frames_total += 1
        self._latency.observe(latency_seconds)

    def record_drop(self):
        with self._lock:
            self._frames_dropped += 1

    def record_match(self, passed: bool):
        with self._lock:
            self._matches["pass" if passed else "fail"] += 1

    def record_completion(self, statistic_key: str):
        with self._lock:
            self._completions[statistic_key] += 1

    def set_connections(self, count: int):
        self._active_connections = count

    @property
    def frames_total(self) -> int:
        return self._frames_total

    @property
    def completion_counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._completions)

    @staticmethod
    def _scalar(name: str, kind: str, help_text: str, value) -> list[str]:
        return [f"# HELP {name} {help_text}", f"# TYPE {name} {kind}", f"{name} {value}"]

    def render(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        lines: list[str] = []
        lines += self._scalar(
            "handson_uptime_seconds", "gauge", "Time since collector start",
            f"{time.time() - self._start_time:.1f}",
        )

        with self._lock:
            lines += self._scalar(
                "handson_frames_total", "counter", "Frames processed", self._frames_total,
            )
            lines += self._scalar(
                "handson_frames_dropped_total", "counter",
                "Frames without a complete pose for the active gesture", self._frames_dropped,
            )

            lines.append("# HELP handson_match_attempts_total Template comparisons by result")
            lines.append("# TYPE handson_match_attempts_total counter")
            for result, count in sorted(self._matches.items()):
                lines.append(f'handson_match_attempts_total{{result="{result}"}} {count}')

            lines.append("# HELP handson_completions_total Completed repetitions by statistic key")
            lines.append("# TYPE handson_completions_total counter")
            for key, count in sorted(self._completions.items()):
                lines.append(f'handson_completions_total{{key="{key}"}} {count}')

        lines += self._latency.render(
            "handson_frame_latency_seconds", "Frame processing latency in seconds",
        )
        lines += self._scalar(
            "handson_active_connections", "gauge", "Current WebSocket connections",
            self._active_connections,
        )
        return "\n".join(lines) + "\n"
