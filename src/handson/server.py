"""WebSocket presentation server.

Runs the streaming pipeline against the server's camera and pushes
progress and completion events to connected clients as JSON. Clients
choose the gesture, flip the camera, and retry through the REST API.

Usage:
    handson serve
    # or
    uvicorn handson.server:app --host 0.0.0.0 --port 8765
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse

from handson import __version__
from handson.config import HandsOnConfig, load_config
from handson.keypoints import Pose
from handson.metrics import MetricsCollector
from handson.pipeline import StreamingPipeline, UnknownGestureError
from handson.sinks import CompletionEvent, CounterStatistics

logger = logging.getLogger("handson.server")


class ServerState:
    def __init__(self):
        self.clients: set[WebSocket] = set()
        self.config: HandsOnConfig = HandsOnConfig()
        self.pipeline: Optional[StreamingPipeline] = None
        self.statistics = CounterStatistics()
        self.metrics = MetricsCollector()
        self.autostart = True
        self.last_completion: Optional[dict] = None


state = ServerState()
_pending: set[asyncio.Task] = set()


async def broadcast(message: dict):
    """Send a message to every connected client, dropping dead sockets."""
    if not state.clients:
        return
    dead = set()
    payload = json.dumps(message)
    for ws in state.clients:
        try:
            await ws.send_text(payload)
        except Exception:
            dead.add(ws)
    state.clients -= dead


def _schedule(message: dict):
    task = asyncio.get_running_loop().create_task(broadcast(message))
    _pending.add(task)
    task.add_done_callback(_pending.discard)


class WebSocketPresentation:
    """Presentation sink that forwards progress to WebSocket clients.

    Frames are not streamed; clients render their own camera preview.
    """

    def __init__(self, stats_every: int = 30):
        self._stats_every = stats_every
        self._frames = 0
        self._last_count: Optional[float] = None

    def show(self, image: Any, poses: list[Pose]):
        self._frames += 1
        if self._frames % self._stats_every == 0 and state.pipeline:
            stats = state.pipeline.stats
            _schedule({
                "type": "stats",
                "fps": round(stats.fps, 1),
                "latency_ms": round(stats.avg_latency_ms, 1),
                "hands_detected": len(poses),
            })

    def update_progress(self, count: float, maximum: int):
        if count == self._last_count:
            return
        self._last_count = count
        session = state.pipeline.session if state.pipeline else None
        _schedule({
            "type": "progress",
            "gesture": session.active_gesture if session else None,
            "count": count,
            "maximum": maximum,
        })

    def completed(self, event: CompletionEvent):
        state.last_completion = event.to_dict()
        _schedule({"type": "completed", **event.to_dict()})


def _session_info() -> dict:
    session = state.pipeline.session if state.pipeline else None
    if session is None:
        return {"running": False}
    return {
        "running": session.running,
        "session_id": session.session_id,
        "gesture": session.active_gesture,
        "camera": session.camera_position.value,
        "count": session.repetition_count,
        "maximum": session.counter.maximum,
        "completed": session.has_completed,
    }


async def _start_camera_pipeline():
    from handson.sources import CameraFrameSource, MediaPipePoseExtractor

    config = state.config
    try:
        source = CameraFrameSource(
            front_index=config.front_camera_index,
            back_index=config.back_camera_index,
            width=config.camera_width,
            height=config.camera_height,
            mirror_front=config.mirror_front,
        )
        extractor = MediaPipePoseExtractor(
            max_hands=config.max_hands,
            min_detection_confidence=config.min_detection_confidence,
            min_tracking_confidence=config.min_tracking_confidence,
        )
    except ImportError as e:
        logger.error("Camera pipeline unavailable: %s", e)
        return

    state.pipeline = StreamingPipeline.from_config(
        config, source, extractor,
        presentation=WebSocketPresentation(),
        statistics=state.statistics,
        metrics=state.metrics,
    )
    await state.pipeline.start()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if state.autostart and state.pipeline is None:
        await _start_camera_pipeline()
    yield
    if state.pipeline:
        await state.pipeline.stop()


app = FastAPI(title="HandsOn", version=__version__, lifespan=lifespan)


# --- API endpoints ---

@app.get("/api/status")
async def api_status():
    pipeline = state.pipeline
    return {
        **_session_info(),
        "clients": len(state.clients),
        "statistics": state.statistics.counts,
        "last_completion": state.last_completion,
        "fps": round(pipeline.stats.fps, 1) if pipeline else 0.0,
    }


@app.get("/api/templates")
async def list_templates():
    if state.pipeline is None:
        return {"templates": []}
    return {
        "templates": [
            {
                "name": t.name,
                "category": t.category.value,
                "tolerance": t.tolerance,
                "joints": [j.value for j in t.required_joints],
            }
            for t in state.pipeline.catalog
        ]
    }


def _require_pipeline() -> StreamingPipeline:
    if state.pipeline is None or state.pipeline.session is None:
        raise HTTPException(status_code=409, detail="Pipeline is not running")
    return state.pipeline


@app.post("/api/gesture/{name}")
async def select_gesture(name: str):
    pipeline = _require_pipeline()
    try:
        pipeline.select_gesture(name)
    except UnknownGestureError:
        raise HTTPException(status_code=404, detail=f"Unknown gesture: {name}")
    return _session_info()


@app.post("/api/flip")
async def flip_camera():
    pipeline = _require_pipeline()
    await pipeline.flip_camera()
    return _session_info()


@app.post("/api/retry")
async def retry():
    pipeline = _require_pipeline()
    pipeline.retry()
    return _session_info()


@app.get("/metrics")
async def metrics():
    state.metrics.set_connections(len(state.clients))
    return PlainTextResponse(
        state.metrics.render(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    state.clients.add(ws)
    logger.info("Client connected (%d total)", len(state.clients))

    try:
        await ws.send_json({
            "type": "connected",
            "templates": state.pipeline.catalog.names if state.pipeline else [],
            "session": _session_info(),
        })

        while True:
            try:
                msg = await asyncio.wait_for(ws.receive_text(), timeout=30)
                data = json.loads(msg)
                if data.get("type") == "ping":
                    await ws.send_json({"type": "pong", "server_time": time.time()})
                elif data.get("type") == "status":
                    await ws.send_json({"type": "status", "session": _session_info()})
            except asyncio.TimeoutError:
                await ws.send_json({"type": "ping"})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.debug("WebSocket error: %s", e)
    finally:
        state.clients.discard(ws)
        logger.info("Client disconnected (%d total)", len(state.clients))


def configure(config: Optional[HandsOnConfig] = None):
    state.config = config or load_config()
