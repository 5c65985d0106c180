"""HandsOn - sign-language hand shape practice from a live pose stream."""

__version__ = "0.1.0"

from handson.keypoints import JointKey, Keypoint, Pose, build_connections
from handson.fingerprint import compute_fingerprint
from handson.templates import GestureCategory, GestureTemplate, TemplateCatalog
from handson.matcher import GestureMatcher, MatchResult, match
from handson.counter import CounterState, RepetitionCounter
from handson.channel import BroadcastChannel
from handson.sources import CameraPosition, Frame
from handson.sinks import CompletionEvent, CounterStatistics, LoggingPresentation
from handson.pipeline import (
    FrameEnvelope, PipelineSession, StreamFailure, StreamingPipeline, UnknownGestureError,
)
from handson.recorder import PoseRecorder, PosePlayer
from handson.config import HandsOnConfig, load_config
