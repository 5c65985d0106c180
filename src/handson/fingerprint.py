"""Pairwise-distance fingerprints of hand joint layouts."""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from handson.keypoints import CONFIDENCE_THRESHOLD, JointKey, Pose


def fingerprint_length(num_joints: int) -> int:
    """Number of distances in the fingerprint of ``num_joints`` points."""
    return num_joints * (num_joints - 1) // 2


def compute_fingerprint(points) -> np.ndarray:
    """Compute all pairwise Euclidean distances between 2D points.

    Pairs ``(i, j)`` with ``i < j`` are emitted in row-major order (all
    partners of point 0 first, then point 1, ...), which is the order
    template reference vectors are stored in. Callers must pass points in
    the template's joint order; nothing here can check that.

    Args:
        points: Sequence of K (x, y) points, or an array of shape (K, 2).

    Returns:
        Array of shape (K*(K-1)/2,), float64.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    i, j = np.triu_indices(len(pts), k=1)
    return np.linalg.norm(pts[i] - pts[j], axis=1)


def extract_points(
    pose: Pose,
    joints: Sequence[JointKey],
    min_confidence: float = CONFIDENCE_THRESHOLD,
) -> Optional[np.ndarray]:
    """Collect the locations of ``joints`` from ``pose`` in the given order.

    Returns:
        Array of shape (K, 2), or None when any joint is missing or below
        ``min_confidence``.
    """
    points = np.empty((len(joints), 2), dtype=np.float64)
    for row, joint in enumerate(joints):
        kp = pose.keypoints.get(joint)
        if kp is None or kp.confidence < min_confidence:
            return None
        points[row] = kp.location
    return points


def pose_fingerprint(
    pose: Pose,
    joints: Sequence[JointKey],
    min_confidence: float = CONFIDENCE_THRESHOLD,
) -> Optional[np.ndarray]:
    """Fingerprint of ``pose`` restricted to ``joints``, or None if incomplete."""
    points = extract_points(pose, joints, min_confidence)
    if points is None:
        return None
    return compute_fingerprint(points)
