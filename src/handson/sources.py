"""Frame and pose sources consumed by the streaming pipeline.

The pipeline only depends on the two protocols defined here. The concrete
classes wrap OpenCV capture and MediaPipe Hands; both libraries block, so
their calls run on a dedicated worker thread and the event loop only awaits
the result.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Iterable, Optional, Protocol

import numpy as np

from handson.keypoints import JointKey, Keypoint, Pose

try:
    import cv2
except ImportError:
    cv2 = None

try:
    import mediapipe as mp
except ImportError:
    mp = None

logger = logging.getLogger("handson.sources")


class CameraPosition(Enum):
    FRONT = "front"
    BACK = "back"

    def flipped(self) -> CameraPosition:
        return CameraPosition.BACK if self is CameraPosition.FRONT else CameraPosition.FRONT


@dataclass
class Frame:
    """A captured image with its monotonic sequence number."""
    id: int
    image: Any


class FrameSource(Protocol):
    def frames(self, position: CameraPosition) -> AsyncIterator[Frame]:
        """Ordered, possibly endless stream of frames from one camera."""
        ...


class PoseExtractor(Protocol):
    async def extract(self, image: Any) -> list[Pose]:
        """Detect zero or more hand poses in ``image``."""
        ...


class IterableFrameSource:
    """Serves frames from an in-memory sequence of images, ignoring position."""

    def __init__(self, images: Iterable[Any], interval: float = 0.0):
        self._images = images
        self._interval = interval

    async def frames(self, position: CameraPosition) -> AsyncIterator[Frame]:
        for frame_id, image in enumerate(self._images):
            yield Frame(id=frame_id, image=image)
            # Yield control so other tasks can run between frames.
            await asyncio.sleep(self._interval)


class CameraFrameSource:
    """Reads RGB frames from a local camera with OpenCV.

    Front and back positions map to two device indices. Front-camera frames
    are mirrored so the preview behaves like a mirror.
    """

    def __init__(
        self,
        front_index: int = 0,
        back_index: int = 1,
        width: Optional[int] = None,
        height: Optional[int] = None,
        mirror_front: bool = True,
    ):
        if cv2 is None:
            raise ImportError(
                "opencv-python is required. Install with: pip install opencv-python"
            )
        self.front_index = front_index
        self.back_index = back_index
        self.width = width
        self.height = height
        self.mirror_front = mirror_front
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="handson-camera")

    def _open(self, position: CameraPosition):
        index = self.front_index if position is CameraPosition.FRONT else self.back_index
        capture = cv2.VideoCapture(index)
        if self.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        if not capture.isOpened():
            capture.release()
            raise RuntimeError(f"Could not open camera {index} ({position.value})")
        logger.info("Opened camera %d (%s)", index, position.value)
        return capture

    def _read(self, capture, mirror: bool) -> Optional[np.ndarray]:
        ok, frame = capture.read()
        if not ok:
            return None
        if mirror:
            frame = cv2.flip(frame, 1)
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    async def frames(self, position: CameraPosition) -> AsyncIterator[Frame]:
        loop = asyncio.get_running_loop()
        capture = await loop.run_in_executor(self._executor, self._open, position)
        mirror = self.mirror_front and position is CameraPosition.FRONT
        counter = itertools.count()
        try:
            while True:
                image = await loop.run_in_executor(self._executor, self._read, capture, mirror)
                if image is None:
                    await asyncio.sleep(0.01)
                    continue
                yield Frame(id=next(counter), image=image)
        finally:
            # Queued behind any read still running on the worker thread.
            self._executor.submit(capture.release)
            logger.info("Released camera (%s)", position.value)

    def close(self):
        self._executor.shutdown(wait=False)


class MediaPipePoseExtractor:
    """Extracts 2D hand poses with MediaPipe Hands.

    MediaPipe reports no per-landmark confidence, so every keypoint of a
    hand carries that hand's handedness score.
    """

    def __init__(
        self,
        max_hands: int = 1,
        min_detection_confidence: float = 0.7,
        min_tracking_confidence: float = 0.5,
        static_image_mode: bool = False,
    ):
        if mp is None:
            raise ImportError(
                "mediapipe is required. Install with: pip install mediapipe"
            )
        self.max_hands = max_hands
        self._hands = mp.solutions.hands.Hands(
            static_image_mode=static_image_mode,
            max_num_hands=max_hands,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="handson-pose")

    def detect(self, image_rgb: np.ndarray) -> list[Pose]:
        """Synchronous detection on an RGB image (H, W, 3), uint8."""
        results = self._hands.process(image_rgb)
        if not results.multi_hand_landmarks:
            return []

        handedness = results.multi_handedness or []
        poses = []
        for i, hand_landmarks in enumerate(results.multi_hand_landmarks):
            score = handedness[i].classification[0].score if i < len(handedness) else 1.0
            poses.append(Pose({
                JointKey.from_index(j): Keypoint(location=(lm.x, lm.y), confidence=float(score))
                for j, lm in enumerate(hand_landmarks.landmark)
            }))
        return poses

    async def extract(self, image: np.ndarray) -> list[Pose]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.detect, image)

    def close(self):
        """Release MediaPipe resources."""
        self._hands.close()
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
