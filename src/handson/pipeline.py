"""Streaming pipeline: camera frames → poses → matching → repetition progress.

Two asyncio tasks run per pipeline:

1. Acquisition + classification: awaits each frame and its poses, publishes
   the poses on the reporting channel, matches the primary pose against the
   active gesture's template, advances the repetition counter, and hands the
   frame and progress to the presentation sink.
2. Reporting: drains the channel and feeds registered report consumers, so a
   consumer with its own cadence never sits inside the frame loop.

``start()`` (and ``flip_camera()``) cancels the running acquisition task and
begins a fresh session. The reporting task survives restarts.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from handson.channel import BroadcastChannel, Subscription
from handson.config import HandsOnConfig
from handson.counter import DEFAULT_MAX_REPETITIONS, RepetitionCounter
from handson.keypoints import Pose
from handson.matcher import GestureMatcher, MatchResult
from handson.metrics import MetricsCollector
from handson.profiler import PipelineProfiler
from handson.sinks import CompletionEvent, PresentationSink, StatisticsSink
from handson.sources import CameraPosition, FrameSource, PoseExtractor
from handson.templates import GestureTemplate, TemplateCatalog

logger = logging.getLogger("handson.pipeline")


class StreamFailure(RuntimeError):
    """The frame source or pose extractor failed; the session has ended."""


class UnknownGestureError(KeyError):
    """The requested gesture has no template in the catalog."""


@dataclass
class FrameEnvelope:
    """One captured frame with the poses found in it."""
    id: int
    image: Any
    poses: list[Pose]


@dataclass
class TemporalPoses:
    """Poses of one frame, as carried on the reporting channel."""
    id: int
    poses: list[Pose]


@dataclass
class PipelineSession:
    """State of one run of the acquisition task.

    Replaced wholesale on restart; only the pipeline mutates it, and only
    from the event loop.
    """
    session_id: int
    active_gesture: str
    camera_position: CameraPosition
    counter: RepetitionCounter
    task: Optional[asyncio.Task] = None
    frames_seen: int = 0
    frames_dropped: int = 0
    match_attempts: int = 0
    matches_passed: int = 0
    last_match: Optional[MatchResult] = None
    error: Optional[StreamFailure] = None

    @property
    def repetition_count(self) -> float:
        return self.counter.count

    @property
    def has_completed(self) -> bool:
        return self.counter.has_completed

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


@dataclass
class PipelineStats:
    """Runtime statistics for the current session."""
    fps: float
    avg_latency_ms: float
    total_frames: int
    dropped_frames: int
    match_attempts: int
    completions: int
    repetition_count: float
    profiler_summary: dict = field(default_factory=dict)


ReportCallback = Callable[[TemporalPoses], Union[None, Awaitable[None]]]


class StreamingPipeline:
    """Runs gesture repetition counting over a live pose stream.

    Usage:
        pipeline = StreamingPipeline(CameraFrameSource(), MediaPipePoseExtractor(),
                                     presentation=LoggingPresentation())
        async with pipeline:
            await pipeline.start("B")
            await pipeline.wait()
    """

    def __init__(
        self,
        frame_source: FrameSource,
        pose_extractor: PoseExtractor,
        catalog: Optional[TemplateCatalog] = None,
        presentation: Optional[PresentationSink] = None,
        statistics: Optional[StatisticsSink] = None,
        matcher: Optional[GestureMatcher] = None,
        max_repetitions: int = DEFAULT_MAX_REPETITIONS,
        default_gesture: str = "B",
        camera_position: CameraPosition = CameraPosition.FRONT,
        channel_size: int = 8,
        metrics: Optional[MetricsCollector] = None,
        enable_profiling: bool = True,
    ):
        self.frame_source = frame_source
        self.pose_extractor = pose_extractor
        self.catalog = catalog or TemplateCatalog.with_defaults()
        self.presentation = presentation
        self.statistics = statistics
        self.matcher = matcher or GestureMatcher()
        self.max_repetitions = max_repetitions
        self.default_gesture = default_gesture
        self.camera_position = camera_position
        self.channel_size = channel_size
        self.metrics = metrics
        self.profiler = PipelineProfiler()
        self.profiler.enabled = enable_profiling

        self.session: Optional[PipelineSession] = None
        self._session_ids = 0
        self._completions = 0
        self._frame_times: deque = deque(maxlen=60)
        self._channel: BroadcastChannel[TemporalPoses] = BroadcastChannel(channel_size)
        self._reporting_task: Optional[asyncio.Task] = None
        self._start_lock = asyncio.Lock()
        self._report_callbacks: list[ReportCallback] = []
        self._complete_callbacks: list[Callable[[CompletionEvent], None]] = []

    @classmethod
    def from_config(
        cls,
        config: HandsOnConfig,
        frame_source: FrameSource,
        pose_extractor: PoseExtractor,
        **kwargs,
    ) -> StreamingPipeline:
        """Build a pipeline whose catalog and limits come from ``config``."""
        if config.templates_file:
            catalog = TemplateCatalog.from_file(config.templates_file)
        else:
            catalog = TemplateCatalog.with_defaults()
        return cls(
            frame_source,
            pose_extractor,
            catalog=catalog,
            matcher=GestureMatcher(min_confidence=config.keypoint_confidence),
            max_repetitions=config.max_repetitions,
            default_gesture=config.default_gesture,
            camera_position=CameraPosition(config.camera_position),
            channel_size=config.channel_size,
            **kwargs,
        )

    # --- Registration ---

    def on_report(self, callback: ReportCallback):
        """Register a consumer run by the reporting task for every frame's poses."""
        self._report_callbacks.append(callback)

    def on_complete(self, callback: Callable[[CompletionEvent], None]):
        """Register a listener for completed repetitions."""
        self._complete_callbacks.append(callback)

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription[TemporalPoses]:
        """Open an extra reader on the pose channel."""
        return self._channel.subscribe(maxsize)

    # --- Session control ---

    def template_for(self, gesture: str) -> GestureTemplate:
        template = self.catalog.lookup(gesture)
        if template is None:
            raise UnknownGestureError(gesture)
        return template

    async def start(
        self,
        gesture: Optional[str] = None,
        camera_position: Optional[CameraPosition] = None,
    ) -> PipelineSession:
        """Cancel any running acquisition and start a fresh session.

        Overlapping calls run one after another, so only the session started
        last keeps a running acquisition task.
        """
        async with self._start_lock:
            return await self._restart(gesture, camera_position)

    async def flip_camera(self) -> PipelineSession:
        """Switch between front and back cameras and restart from zero."""
        async with self._start_lock:
            return await self._restart(None, self.camera_position.flipped())

    async def _restart(
        self,
        gesture: Optional[str],
        camera_position: Optional[CameraPosition],
    ) -> PipelineSession:
        previous = self.session
        if gesture is None:
            gesture = previous.active_gesture if previous else self.default_gesture
        self.template_for(gesture)

        if camera_position is not None:
            self.camera_position = camera_position

        await self._cancel_acquisition()

        if self._channel.closed:
            self._channel = BroadcastChannel(self.channel_size)
        self._ensure_reporting()

        self._session_ids += 1
        counter = RepetitionCounter(maximum=self.max_repetitions)
        session = PipelineSession(
            session_id=self._session_ids,
            active_gesture=gesture,
            camera_position=self.camera_position,
            counter=counter,
        )
        counter.on_complete(functools.partial(self._on_complete, session))
        self.session = session
        self._frame_times.clear()

        session.task = asyncio.create_task(
            self._acquire(session), name=f"handson-acquire-{session.session_id}"
        )
        session.task.add_done_callback(self._on_acquisition_done)
        logger.info(
            "Session %d started: gesture=%r camera=%s",
            session.session_id, gesture, self.camera_position.value,
        )
        self._publish_progress(session)
        return session

    def select_gesture(self, gesture: str):
        """Change the active gesture of the running session; progress restarts."""
        self.template_for(gesture)
        session = self._require_session()
        session.active_gesture = gesture
        session.counter.reset()
        logger.info("Session %d: active gesture now %r", session.session_id, gesture)
        self._publish_progress(session)

    def retry(self):
        """Reset progress toward the current gesture."""
        session = self._require_session()
        session.counter.reset()
        self._publish_progress(session)

    async def wait(self):
        """Wait until the current session ends.

        Follows restarts: if the session is replaced while waiting, waits on
        the replacement. Returns quietly when the session was cancelled or
        the frame source ran out.

        Raises:
            StreamFailure: If the session ended because its source failed.
        """
        while self.session is not None and self.session.task is not None:
            session = self.session
            await asyncio.wait([session.task])
            if self.session is not session:
                continue
            if session.error is not None:
                raise session.error
            if not session.task.cancelled() and session.task.exception() is not None:
                raise session.task.exception()
            return

    async def stop(self):
        """Cancel acquisition, close the channel, and let reporting drain."""
        async with self._start_lock:
            await self._cancel_acquisition()
        self._channel.close()
        if self._reporting_task is not None:
            await asyncio.wait([self._reporting_task])
            self._reporting_task = None
        logger.info("Pipeline stopped")

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.stop()

    # --- Acquisition + classification ---

    async def _acquire(self, session: PipelineSession):
        frames = self.frame_source.frames(session.camera_position)
        iterator = frames.__aiter__()
        try:
            while True:
                try:
                    frame = await iterator.__anext__()
                except StopAsyncIteration:
                    break
                except Exception as e:
                    raise self._fail(session, "frame source", e) from e

                t_start = time.perf_counter()
                try:
                    with self.profiler.stage("extraction"):
                        poses = await self.pose_extractor.extract(frame.image)
                except Exception as e:
                    raise self._fail(session, "pose extractor", e) from e

                envelope = FrameEnvelope(id=frame.id, image=frame.image, poses=poses)
                session.frames_seen += 1
                await self._channel.publish(TemporalPoses(id=envelope.id, poses=envelope.poses))

                with self.profiler.stage("matching"):
                    self._classify(session, envelope)

                with self.profiler.stage("presentation"):
                    self._present(session, envelope)

                elapsed = time.perf_counter() - t_start
                self._frame_times.append(elapsed)
                self.profiler.record("frame", elapsed * 1000.0)
                if self.metrics:
                    self.metrics.record_frame(elapsed)

            logger.info("Session %d: frame source exhausted", session.session_id)
        except asyncio.CancelledError:
            logger.debug("Session %d cancelled", session.session_id)
            raise
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    def _fail(self, session: PipelineSession, stage: str, error: Exception) -> StreamFailure:
        session.error = StreamFailure(f"Session {session.session_id} {stage} failed: {error}")
        return session.error

    def _notify(self, what: str, fn: Callable, *args):
        """Run a sink call; a failing sink is logged and the session goes on."""
        try:
            fn(*args)
        except Exception as e:
            logger.error("%s failed: %s", what, e)

    def _classify(self, session: PipelineSession, envelope: FrameEnvelope) -> Optional[MatchResult]:
        """Match the frame's primary pose; frames without a usable pose are dropped."""
        result = None
        if envelope.poses:
            template = self.template_for(session.active_gesture)
            result = self.matcher.match_pose(envelope.poses[0], template)

        if result is None:
            session.frames_dropped += 1
            if self.metrics:
                self.metrics.record_drop()
            return None

        session.match_attempts += 1
        session.last_match = result
        if result.passed:
            session.matches_passed += 1
        if self.metrics:
            self.metrics.record_match(result.passed)

        session.counter.update(result.passed)
        return result

    def _on_complete(self, session: PipelineSession):
        template = self.template_for(session.active_gesture)
        event = CompletionEvent(
            gesture=template.name,
            repetitions=session.counter.count,
            statistic_key=template.statistic_key,
            session_id=session.session_id,
            timestamp=time.time(),
        )
        self._completions += 1
        logger.info("Session %d: repetition of %r complete", session.session_id, template.name)

        if self.statistics:
            self._notify("Statistics sink", self.statistics.increment, event.statistic_key)
        if self.metrics:
            self.metrics.record_completion(event.statistic_key)
        if self.presentation:
            self._notify("Presentation", self.presentation.completed, event)
        for cb in self._complete_callbacks:
            self._notify("Completion listener", cb, event)

    def _present(self, session: PipelineSession, envelope: FrameEnvelope):
        if self.presentation is None:
            return
        self._notify("Presentation", self.presentation.show, envelope.image, envelope.poses)
        self._publish_progress(session)

    def _publish_progress(self, session: PipelineSession):
        if self.presentation:
            self._notify(
                "Presentation", self.presentation.update_progress,
                session.counter.count, session.counter.maximum,
            )

    def _on_acquisition_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Acquisition task ended with error: %s", exc)

    async def _cancel_acquisition(self):
        task = self.session.task if self.session else None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait([task])

    def _require_session(self) -> PipelineSession:
        if self.session is None:
            raise RuntimeError("Pipeline has not been started")
        return self.session

    # --- Reporting ---

    def _ensure_reporting(self):
        if self._reporting_task is not None and not self._reporting_task.done():
            return
        subscription = self._channel.subscribe()
        self._reporting_task = asyncio.create_task(
            self._report(subscription), name="handson-report"
        )

    async def _report(self, subscription: Subscription[TemporalPoses]):
        async for item in subscription:
            for cb in self._report_callbacks:
                try:
                    result = cb(item)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error("Report consumer failed on frame %d: %s", item.id, e)
        logger.debug("Reporting task drained")

    # --- Stats ---

    @property
    def reporting(self) -> bool:
        return self._reporting_task is not None and not self._reporting_task.done()

    @property
    def stats(self) -> PipelineStats:
        if self._frame_times:
            avg_latency = sum(self._frame_times) / len(self._frame_times)
            fps = 1.0 / avg_latency if avg_latency > 0 else 0.0
        else:
            avg_latency = 0.0
            fps = 0.0

        session = self.session
        return PipelineStats(
            fps=fps,
            avg_latency_ms=avg_latency * 1000,
            total_frames=session.frames_seen if session else 0,
            dropped_frames=session.frames_dropped if session else 0,
            match_attempts=session.match_attempts if session else 0,
            completions=self._completions,
            repetition_count=session.repetition_count if session else 0.0,
            profiler_summary=self.profiler.summary(),
        )
