"""Template matching by mean absolute deviation of fingerprints."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Optional

import numpy as np

from handson.fingerprint import pose_fingerprint
from handson.keypoints import CONFIDENCE_THRESHOLD, Pose
from handson.templates import GestureTemplate

logger = logging.getLogger("handson.matcher")

# Reported deviation when the live and reference vectors cannot be compared.
WORST_DEVIATION = 1.0


class FingerprintLengthWarning(UserWarning):
    """A live fingerprint and a template's reference vector differ in length.

    This points at a catalog authoring bug (wrong joint list or truncated
    distances), not at anything the camera did.
    """


@dataclass(frozen=True)
class MatchResult:
    passed: bool
    mean_absolute_deviation: float


def match(live: np.ndarray, template: GestureTemplate) -> MatchResult:
    """Compare a live fingerprint against ``template``.

    Never raises: vectors of different (or zero) length give a failed match
    with deviation ``WORST_DEVIATION`` and a ``FingerprintLengthWarning``.
    No hand-size normalization is applied; the tolerance is per template.
    """
    live = np.asarray(live, dtype=np.float64).reshape(-1)
    reference = template.reference_distances

    if len(live) != len(reference) or len(live) == 0:
        message = (
            f"Fingerprint length {len(live)} does not match template "
            f"{template.name!r} ({len(reference)} distances)"
        )
        logger.warning(message)
        warnings.warn(message, FingerprintLengthWarning, stacklevel=2)
        return MatchResult(passed=False, mean_absolute_deviation=WORST_DEVIATION)

    deviation = float(np.mean(np.abs(live - reference)))
    return MatchResult(
        passed=deviation <= template.tolerance,
        mean_absolute_deviation=deviation,
    )


class GestureMatcher:
    """Matches poses against gesture templates.

    Frames where a required joint is missing or below ``min_confidence``
    cannot be fingerprinted; ``match_pose`` returns None for them and the
    caller drops the frame.
    """

    def __init__(self, min_confidence: float = CONFIDENCE_THRESHOLD):
        self.min_confidence = min_confidence

    def match(self, live: np.ndarray, template: GestureTemplate) -> MatchResult:
        return match(live, template)

    def match_pose(self, pose: Pose, template: GestureTemplate) -> Optional[MatchResult]:
        live = pose_fingerprint(pose, template.required_joints, self.min_confidence)
        if live is None:
            return None
        return match(live, template)
