"""Tests for pairwise-distance fingerprints."""

import numpy as np
import pytest

from handson.fingerprint import (
    compute_fingerprint, extract_points, fingerprint_length, pose_fingerprint,
)
from handson.keypoints import JointKey, Keypoint, Pose


class TestComputeFingerprint:
    def test_right_triangle(self):
        fp = compute_fingerprint([(0, 0), (3, 0), (0, 4)])
        np.testing.assert_allclose(fp, [3.0, 4.0, 5.0])

    def test_row_major_order(self):
        # (0,1) (0,2) (0,3) (1,2) (1,3) (2,3)
        fp = compute_fingerprint([(0, 0), (1, 0), (3, 0), (6, 0)])
        np.testing.assert_allclose(fp, [1, 3, 6, 2, 5, 3])

    def test_length(self):
        for k in (2, 10, 20, 21):
            pts = np.random.rand(k, 2)
            assert len(compute_fingerprint(pts)) == fingerprint_length(k)
        assert fingerprint_length(10) == 45
        assert fingerprint_length(20) == 190

    def test_translation_invariant(self):
        pts = np.random.rand(6, 2)
        np.testing.assert_allclose(compute_fingerprint(pts), compute_fingerprint(pts + 0.3))

    def test_single_point_is_empty(self):
        assert compute_fingerprint([(0.5, 0.5)]).shape == (0,)

    def test_dtype(self):
        assert compute_fingerprint([(0, 0), (1, 1)]).dtype == np.float64


class TestPoseFingerprint:
    def _pose(self):
        return Pose({
            JointKey.WRIST: Keypoint((0.0, 0.0)),
            JointKey.THUMB_TIP: Keypoint((3.0, 0.0)),
            JointKey.INDEX_TIP: Keypoint((0.0, 4.0), confidence=0.1),
        })

    def test_joint_order_follows_argument(self):
        pose = self._pose()
        fp = pose_fingerprint(pose, [JointKey.THUMB_TIP, JointKey.WRIST], min_confidence=0.0)
        np.testing.assert_allclose(fp, [3.0])
        points = extract_points(pose, [JointKey.THUMB_TIP, JointKey.WRIST])
        np.testing.assert_allclose(points, [[3.0, 0.0], [0.0, 0.0]])

    def test_missing_joint(self):
        assert pose_fingerprint(self._pose(), [JointKey.WRIST, JointKey.LITTLE_TIP]) is None

    def test_low_confidence_joint(self):
        joints = [JointKey.WRIST, JointKey.INDEX_TIP]
        assert pose_fingerprint(self._pose(), joints) is None
        assert pose_fingerprint(self._pose(), joints, min_confidence=0.05) == pytest.approx([4.0])
