"""Per-stage timing for the streaming pipeline.

Each frame passes through pose extraction, fingerprinting + matching, and
presentation. The profiler keeps a rolling window of timings per stage so
the server and CLI can report where frame time goes.
"""

from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional


@dataclass
class StageStats:
    """Timing statistics for one stage over the current window."""
    name: str
    avg_ms: float
    min_ms: float
    max_ms: float
    p95_ms: float
    call_count: int


class _StageWindow:
    def __init__(self, size: int):
        self.samples: deque[float] = deque(maxlen=size)
        self.calls = 0

    def add(self, elapsed_ms: float):
        self.samples.append(elapsed_ms)
        self.calls += 1

    def clear(self):
        self.samples.clear()
        self.calls = 0


class PipelineProfiler:
    """Rolling-window stage timer.

    Usage:
        profiler = PipelineProfiler()

        with profiler.stage("extraction"):
            poses = await extractor.extract(image)

        print(profiler.summary())
    """

    STAGES = ("extraction", "matching", "presentation", "frame")

    def __init__(self, window_size: int = 120):
        self.window_size = window_size
        self.enabled = True
        self._stages: dict[str, _StageWindow] = {
            name: _StageWindow(window_size) for name in self.STAGES
        }

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block as stage ``name``.

        Blocks that raise (including cancellation) are not recorded.
        """
        start = time.perf_counter()
        yield
        self.record(name, (time.perf_counter() - start) * 1000.0)

    def record(self, name: str, elapsed_ms: float):
        if not self.enabled:
            return
        window = self._stages.get(name)
        if window is None:
            window = self._stages[name] = _StageWindow(self.window_size)
        window.add(elapsed_ms)

    def get_stage_stats(self, name: str) -> Optional[StageStats]:
        window = self._stages.get(name)
        if window is None or not window.samples:
            return None

        ordered = sorted(window.samples)
        n = len(ordered)
        return StageStats(
            name=name,
            avg_ms=sum(ordered) / n,
            min_ms=ordered[0],
            max_ms=ordered[-1],
            p95_ms=ordered[min(n - 1, int(n * 0.95))],
            call_count=window.calls,
        )

    def summary(self) -> dict[str, dict]:
        """Stats for every stage that has run, rounded for display."""
        out = {}
        for name in self._stages:
            stats = self.get_stage_stats(name)
            if stats is not None:
                out[name] = {
                    "avg_ms": round(stats.avg_ms, 3),
                    "p95_ms": round(stats.p95_ms, 3),
                    "max_ms": round(stats.max_ms, 3),
                    "calls": stats.call_count,
                }
        return out

    def reset(self):
        for window in self._stages.values():
            window.clear()
