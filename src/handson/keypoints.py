"""Hand joint vocabulary, per-frame poses, and skeleton connections."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

import numpy as np

# Joints below this confidence are treated as not detected.
CONFIDENCE_THRESHOLD = 0.2


class JointKey(Enum):
    """Tracked hand landmarks.

    Declaration order matches the MediaPipe Hands landmark indices, so
    ``JointKey.from_index(i)`` maps a raw landmark row to its joint.
    """
    WRIST = "wrist"
    THUMB_CMC = "thumb_cmc"
    THUMB_MP = "thumb_mp"
    THUMB_IP = "thumb_ip"
    THUMB_TIP = "thumb_tip"
    INDEX_MCP = "index_mcp"
    INDEX_PIP = "index_pip"
    INDEX_DIP = "index_dip"
    INDEX_TIP = "index_tip"
    MIDDLE_MCP = "middle_mcp"
    MIDDLE_PIP = "middle_pip"
    MIDDLE_DIP = "middle_dip"
    MIDDLE_TIP = "middle_tip"
    RING_MCP = "ring_mcp"
    RING_PIP = "ring_pip"
    RING_DIP = "ring_dip"
    RING_TIP = "ring_tip"
    LITTLE_MCP = "little_mcp"
    LITTLE_PIP = "little_pip"
    LITTLE_DIP = "little_dip"
    LITTLE_TIP = "little_tip"

    @classmethod
    def from_index(cls, index: int) -> JointKey:
        return _JOINTS_BY_INDEX[index]

    @property
    def index(self) -> int:
        return _INDEX_BY_JOINT[self]


_JOINTS_BY_INDEX = list(JointKey)
_INDEX_BY_JOINT = {joint: i for i, joint in enumerate(_JOINTS_BY_INDEX)}

NUM_JOINTS = len(_JOINTS_BY_INDEX)


@dataclass(frozen=True)
class Keypoint:
    """A detected joint: normalized 2D location plus detection confidence."""
    location: tuple[float, float]
    confidence: float = 1.0

    @property
    def x(self) -> float:
        return self.location[0]

    @property
    def y(self) -> float:
        return self.location[1]


@dataclass
class Pose:
    """All joints detected for one hand in one frame.

    Joints the extractor did not find are simply absent from ``keypoints``.
    """
    keypoints: dict[JointKey, Keypoint] = field(default_factory=dict)

    def get(self, joint: JointKey) -> Optional[Keypoint]:
        return self.keypoints.get(joint)

    def is_confident(self, joint: JointKey, threshold: float = CONFIDENCE_THRESHOLD) -> bool:
        kp = self.keypoints.get(joint)
        return kp is not None and kp.confidence >= threshold

    def __contains__(self, joint: JointKey) -> bool:
        return joint in self.keypoints

    def __iter__(self) -> Iterator[JointKey]:
        return iter(self.keypoints)

    def __len__(self) -> int:
        return len(self.keypoints)

    @classmethod
    def from_landmarks(
        cls,
        landmarks: np.ndarray,
        confidence: float = 1.0,
    ) -> Pose:
        """Build a pose from a (21, 2) or (21, 3) landmark array.

        Only x and y are kept. Rows that are NaN are skipped so recorded
        frames can mark joints as missing.
        """
        landmarks = np.asarray(landmarks, dtype=np.float64)
        keypoints = {}
        for i, row in enumerate(landmarks[:NUM_JOINTS]):
            if np.isnan(row[0]) or np.isnan(row[1]):
                continue
            keypoints[JointKey.from_index(i)] = Keypoint(
                location=(float(row[0]), float(row[1])),
                confidence=confidence,
            )
        return cls(keypoints)

    def to_landmarks(self) -> np.ndarray:
        """Inverse of ``from_landmarks``: (21, 2) array with NaN for missing joints."""
        out = np.full((NUM_JOINTS, 2), np.nan, dtype=np.float64)
        for joint, kp in self.keypoints.items():
            out[joint.index] = kp.location
        return out

    def to_dict(self) -> dict:
        return {
            joint.value: {"location": list(kp.location), "confidence": kp.confidence}
            for joint, kp in self.keypoints.items()
        }

    @classmethod
    def from_dict(cls, data: dict) -> Pose:
        return cls({
            JointKey(name): Keypoint(
                location=(float(entry["location"][0]), float(entry["location"][1])),
                confidence=float(entry.get("confidence", 1.0)),
            )
            for name, entry in data.items()
        })


# Wireframe lines for drawing a hand skeleton.
JOINT_PAIRS: list[tuple[JointKey, JointKey]] = [
    # Thumb
    (JointKey.WRIST, JointKey.THUMB_CMC),
    (JointKey.THUMB_CMC, JointKey.THUMB_MP),
    (JointKey.THUMB_MP, JointKey.THUMB_IP),
    (JointKey.THUMB_IP, JointKey.THUMB_TIP),
    # Index
    (JointKey.WRIST, JointKey.INDEX_MCP),
    (JointKey.INDEX_MCP, JointKey.INDEX_PIP),
    (JointKey.INDEX_PIP, JointKey.INDEX_DIP),
    (JointKey.INDEX_DIP, JointKey.INDEX_TIP),
    # Middle
    (JointKey.WRIST, JointKey.MIDDLE_MCP),
    (JointKey.MIDDLE_MCP, JointKey.MIDDLE_PIP),
    (JointKey.MIDDLE_PIP, JointKey.MIDDLE_DIP),
    (JointKey.MIDDLE_DIP, JointKey.MIDDLE_TIP),
    # Ring
    (JointKey.WRIST, JointKey.RING_MCP),
    (JointKey.RING_MCP, JointKey.RING_PIP),
    (JointKey.RING_PIP, JointKey.RING_DIP),
    (JointKey.RING_DIP, JointKey.RING_TIP),
    # Little
    (JointKey.WRIST, JointKey.LITTLE_MCP),
    (JointKey.LITTLE_MCP, JointKey.LITTLE_PIP),
    (JointKey.LITTLE_PIP, JointKey.LITTLE_DIP),
    (JointKey.LITTLE_DIP, JointKey.LITTLE_TIP),
    # Knuckle line across the palm
    (JointKey.THUMB_CMC, JointKey.INDEX_MCP),
    (JointKey.INDEX_MCP, JointKey.MIDDLE_MCP),
    (JointKey.MIDDLE_MCP, JointKey.RING_MCP),
    (JointKey.RING_MCP, JointKey.LITTLE_MCP),
]


@dataclass(frozen=True)
class Connection:
    """A line segment between two detected joints."""
    start: tuple[float, float]
    end: tuple[float, float]


def build_connections(
    pose: Pose, threshold: float = CONFIDENCE_THRESHOLD
) -> list[Connection]:
    """Return the skeleton lines whose endpoints are both confidently detected."""
    connections = []
    for a, b in JOINT_PAIRS:
        if not (pose.is_confident(a, threshold) and pose.is_confident(b, threshold)):
            continue
        connections.append(Connection(pose.keypoints[a].location, pose.keypoints[b].location))
    return connections
