"""Repetition counting toward a completion threshold."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

logger = logging.getLogger("handson.counter")

DEFAULT_MAX_REPETITIONS = 50


class CounterState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    COMPLETED = "completed"


class RepetitionCounter:
    """Counts matching frames up to ``maximum`` and fires completion once.

    Every passing match adds ``step`` to the count. Failing matches leave the
    count alone. Reaching ``maximum`` moves the counter to COMPLETED and runs
    the completion callbacks; after that, matches are ignored until
    ``reset()`` puts it back to IDLE.
    """

    def __init__(self, maximum: int = DEFAULT_MAX_REPETITIONS, step: float = 1.0):
        if maximum <= 0:
            raise ValueError("maximum must be positive")
        self.maximum = maximum
        self.step = step
        self._count = 0.0
        self._state = CounterState.IDLE
        self._callbacks: list[Callable[[], None]] = []

    def on_complete(self, callback: Callable[[], None]):
        """Register a callback run on the completing update."""
        self._callbacks.append(callback)

    def update(self, passed: bool) -> bool:
        """Feed one match outcome. Returns True only when completion fires."""
        if self._state is CounterState.COMPLETED or not passed:
            return False

        self._state = CounterState.ACCUMULATING
        self._count = min(float(self.maximum), self._count + self.step)

        if self._count < self.maximum:
            return False

        self._state = CounterState.COMPLETED
        logger.debug("Repetition complete at %.0f", self._count)
        for cb in self._callbacks:
            cb()
        return True

    def reset(self):
        self._count = 0.0
        self._state = CounterState.IDLE

    @property
    def count(self) -> float:
        return self._count

    @property
    def state(self) -> CounterState:
        return self._state

    @property
    def has_completed(self) -> bool:
        return self._state is CounterState.COMPLETED

    @property
    def progress(self) -> float:
        """Fraction of the way to completion, in [0, 1]."""
        return self._count / self.maximum
