"""Pose recording and replay.

Recordings let the pipeline run without a camera or a pose model:
reproducible tests, headless CI, and authoring templates from a session
where someone holds a gesture.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterator, Optional

import numpy as np

from handson.keypoints import NUM_JOINTS, JointKey, Keypoint, Pose
from handson.sources import CameraPosition, Frame

FORMAT_VERSION = 1


@dataclass
class RecordedFrame:
    """One frame of a recording."""
    timestamp: float  # seconds from recording start
    poses: list[Pose]


class PoseRecorder:
    """Collects the poses of successive frames.

    Usage:
        recorder = PoseRecorder()
        recorder.start()
        recorder.add_frame(poses)   # once per frame
        recorder.stop()
        recorder.save("session.json")

    Also usable directly as a pipeline report consumer:
    ``pipeline.on_report(lambda item: recorder.add_frame(item.poses))``.
    """

    def __init__(self):
        self._frames: list[RecordedFrame] = []
        self._start_time: Optional[float] = None
        self._recording = False

    def start(self):
        self._frames = []
        self._start_time = time.monotonic()
        self._recording = True

    def stop(self) -> int:
        """Stop recording. Returns the number of frames captured."""
        self._recording = False
        return len(self._frames)

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        if not self._frames:
            return 0.0
        return self._frames[-1].timestamp

    def add_frame(self, poses: list[Pose]):
        if not self._recording:
            return
        self._frames.append(RecordedFrame(
            timestamp=time.monotonic() - self._start_time,
            poses=list(poses),
        ))

    def save(self, path: str | Path):
        """Save as JSON, or as compressed numpy arrays when the suffix is ``.npz``."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix == ".npz":
            self._save_compact(path)
            return

        data = {
            "version": FORMAT_VERSION,
            "frame_count": len(self._frames),
            "duration": self.duration,
            "frames": [
                {"timestamp": f.timestamp, "poses": [p.to_dict() for p in f.poses]}
                for f in self._frames
            ],
        }
        with open(path, "w") as f:
            json.dump(data, f)

    def _save_compact(self, path: Path):
        # (frames, max_poses, joints, [x, y, confidence]); NaN marks a missing joint.
        max_poses = max((len(f.poses) for f in self._frames), default=0)
        poses = np.full((len(self._frames), max(max_poses, 1), NUM_JOINTS, 3), np.nan, dtype=np.float32)
        for i, frame in enumerate(self._frames):
            for j, pose in enumerate(frame.poses):
                for joint, kp in pose.keypoints.items():
                    poses[i, j, joint.index] = (kp.x, kp.y, kp.confidence)

        np.savez_compressed(
            path,
            timestamps=np.array([f.timestamp for f in self._frames], dtype=np.float64),
            poses=poses,
            pose_counts=np.array([len(f.poses) for f in self._frames], dtype=np.int32),
        )


def _pose_from_row(row: np.ndarray) -> Pose:
    keypoints = {}
    for index, (x, y, confidence) in enumerate(row):
        if np.isnan(x) or np.isnan(y):
            continue
        keypoints[JointKey.from_index(index)] = Keypoint(
            location=(float(x), float(y)), confidence=float(confidence),
        )
    return Pose(keypoints)


class PosePlayer:
    """Replays a recording, either as plain frames or as a pipeline source."""

    def __init__(self, frames: list[RecordedFrame]):
        self._frames = frames

    @classmethod
    def load(cls, path: str | Path) -> PosePlayer:
        path = Path(path)
        if path.suffix == ".npz":
            return cls._load_compact(path)

        with open(path) as f:
            data = json.load(f)

        return cls([
            RecordedFrame(
                timestamp=entry["timestamp"],
                poses=[Pose.from_dict(p) for p in entry.get("poses", [])],
            )
            for entry in data["frames"]
        ])

    @classmethod
    def _load_compact(cls, path: Path) -> PosePlayer:
        data = np.load(path, allow_pickle=False)
        timestamps = data["timestamps"]
        poses = data["poses"]
        counts = data["pose_counts"]
        return cls([
            RecordedFrame(
                timestamp=float(timestamps[i]),
                poses=[_pose_from_row(poses[i, j]) for j in range(int(counts[i]))],
            )
            for i in range(len(timestamps))
        ])

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        if not self._frames:
            return 0.0
        return self._frames[-1].timestamp

    def play(self) -> Iterator[RecordedFrame]:
        return iter(self._frames)

    def get_frame(self, index: int) -> Optional[RecordedFrame]:
        if 0 <= index < len(self._frames):
            return self._frames[index]
        return None

    def poses(self) -> Iterator[Pose]:
        """Primary pose of every frame that has one."""
        for frame in self._frames:
            if frame.poses:
                yield frame.poses[0]


class ReplayFrameSource:
    """Frame source whose "images" are recorded frames.

    Pair it with ``RecordedPoseExtractor``, which hands back each frame's
    recorded poses. Camera position is ignored.
    """

    def __init__(self, player: PosePlayer, realtime: bool = False, speed: float = 1.0):
        self.player = player
        self.realtime = realtime
        self.speed = speed

    async def frames(self, position: CameraPosition) -> AsyncIterator[Frame]:
        start = time.monotonic()
        for frame_id, recorded in enumerate(self.player.play()):
            if self.realtime:
                delay = recorded.timestamp / self.speed - (time.monotonic() - start)
                await asyncio.sleep(max(0.0, delay))
            else:
                await asyncio.sleep(0)
            yield Frame(id=frame_id, image=recorded)


class RecordedPoseExtractor:
    async def extract(self, image: RecordedFrame) -> list[Pose]:
        return list(image.poses)
