"""Outputs of the streaming pipeline: presentation and persisted statistics."""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from handson.keypoints import CONFIDENCE_THRESHOLD, Pose, build_connections

try:
    import cv2
except ImportError:
    cv2 = None

logger = logging.getLogger("handson.sinks")


@dataclass(frozen=True)
class CompletionEvent:
    """Fired once when a repetition of the active gesture completes."""
    gesture: str
    repetitions: float
    statistic_key: str
    session_id: int
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "gesture": self.gesture,
            "repetitions": self.repetitions,
            "statistic_key": self.statistic_key,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
        }


class PresentationSink(Protocol):
    def show(self, image: Any, poses: list[Pose]) -> None:
        """Display a processed frame with its detected poses."""
        ...

    def update_progress(self, count: float, maximum: int) -> None:
        """Current repetition count for the progress indicator."""
        ...

    def completed(self, event: CompletionEvent) -> None:
        """One-shot celebration for a completed repetition."""
        ...


class StatisticsSink(Protocol):
    def increment(self, key: str) -> None:
        ...


class CounterStatistics:
    """In-memory key/value counter store."""

    def __init__(self):
        self._counts: Counter = Counter()
        self._lock = threading.Lock()

    def increment(self, key: str):
        with self._lock:
            self._counts[key] += 1
        logger.info("%s total is now %d", key, self._counts[key])

    def get(self, key: str) -> int:
        with self._lock:
            return self._counts[key]

    @property
    def counts(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


class LoggingPresentation:
    """Headless presentation that reports progress through the log."""

    def __init__(self, every: int = 10):
        self._every = every
        self._last_logged: Optional[float] = None
        self.frames_shown = 0
        self.completions: list[CompletionEvent] = []

    def show(self, image: Any, poses: list[Pose]):
        self.frames_shown += 1

    def update_progress(self, count: float, maximum: int):
        if count == self._last_logged:
            return
        if count == 0 or count >= maximum or int(count) % self._every == 0:
            logger.info("Progress %.0f/%d", count, maximum)
            self._last_logged = count

    def completed(self, event: CompletionEvent):
        self.completions.append(event)
        logger.info("Completed %r (%s)", event.gesture, event.statistic_key)


class OpenCVPresentation:
    """Draws the hand skeleton and a progress ring in an OpenCV window.

    ``render`` is separate from ``show`` so the drawing can be used without
    a display.
    """

    RING_COLOR = (180, 105, 255)  # pink, BGR
    LINE_COLOR = (0, 200, 0)

    def __init__(self, window: str = "HandsOn", threshold: float = CONFIDENCE_THRESHOLD):
        if cv2 is None:
            raise ImportError(
                "opencv-python is required. Install with: pip install opencv-python"
            )
        self.window = window
        self.threshold = threshold
        self._count = 0.0
        self._maximum = 1
        self._banner: Optional[str] = None
        self.quit_requested = False

    def render(self, image_rgb, poses: list[Pose]):
        frame = cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR)
        h, w = frame.shape[:2]

        for pose in poses:
            for conn in build_connections(pose, self.threshold):
                p1 = (int(conn.start[0] * w), int(conn.start[1] * h))
                p2 = (int(conn.end[0] * w), int(conn.end[1] * h))
                cv2.line(frame, p1, p2, self.LINE_COLOR, 3)

        center, radius = (w - 60, 60), 40
        cv2.circle(frame, center, radius, (90, 60, 120), 8)
        sweep = int(360 * self._count / self._maximum)
        if sweep > 0:
            cv2.ellipse(frame, center, (radius, radius), -90, 0, sweep, self.RING_COLOR, 8)

        if self._banner:
            cv2.putText(frame, self._banner, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.9, (0, 255, 255), 2)
        return frame

    def show(self, image: Any, poses: list[Pose]):
        cv2.imshow(self.window, self.render(image, poses))
        if cv2.waitKey(1) & 0xFF == ord("q"):
            self.quit_requested = True

    def update_progress(self, count: float, maximum: int):
        self._count = count
        self._maximum = maximum
        if count == 0:
            self._banner = None

    def completed(self, event: CompletionEvent):
        self._banner = f"{event.gesture} complete!"

    def close(self):
        cv2.destroyWindow(self.window)
