"""HandsOn CLI.

Usage:
    handson run           Practice a gesture with the live camera
    handson replay        Run a pose recording through the pipeline
    handson record        Record poses from the camera
    handson capture       Author a template from a recording
    handson templates     List the template catalog
    handson serve         Start the WebSocket server
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from handson.config import HandsOnConfig, load_config

app = typer.Typer(
    name="handson",
    help="🤟 Practice sign-language hand shapes against reference templates.",
    add_completion=False,
)


def _setup(config_path: Optional[str], **overrides) -> HandsOnConfig:
    config = load_config(config_path, **overrides)
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return config


@app.command()
def run(
    gesture: Optional[str] = typer.Argument(None, help="Gesture to practice (default from config)"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    camera: Optional[str] = typer.Option(None, help="Camera position: front or back"),
    templates: Optional[str] = typer.Option(None, help="Template catalog file"),
    display: bool = typer.Option(True, help="Show an OpenCV preview window"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Count repetitions of a gesture from the live camera."""
    from handson.pipeline import StreamFailure, StreamingPipeline, UnknownGestureError
    from handson.sinks import CounterStatistics, LoggingPresentation, OpenCVPresentation
    from handson.sources import CameraFrameSource, MediaPipePoseExtractor

    config = _setup(config_path, camera_position=camera, templates_file=templates, log_level=log_level)

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
    presentation = OpenCVPresentation() if display else LoggingPresentation()
    statistics = CounterStatistics()
    pipeline = StreamingPipeline.from_config(
        config, source, extractor, presentation=presentation, statistics=statistics,
    )

    async def main():
        async with pipeline:
            await pipeline.start(gesture)
            if display:
                # The window reports 'q' through the sink; poll for it.
                while pipeline.session.running and not presentation.quit_requested:
                    await asyncio.sleep(0.05)
                if pipeline.session.error:
                    raise pipeline.session.error
            else:
                await pipeline.wait()

    typer.echo(f"🎥 Practicing {gesture or config.default_gesture!r} (Ctrl+C to stop)")
    try:
        asyncio.run(main())
    except UnknownGestureError as e:
        typer.echo(f"❌ Unknown gesture: {e.args[0]}", err=True)
        raise typer.Exit(1)
    except StreamFailure as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        extractor.close()
        source.close()
        if display:
            presentation.close()

    typer.echo(f"\n✅ Done. Statistics: {statistics.counts or 'none'}")


@app.command()
def replay(
    recording: str = typer.Argument(..., help="Path to a .json or .npz pose recording"),
    gesture: Optional[str] = typer.Option(None, help="Gesture to match (default from config)"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    templates: Optional[str] = typer.Option(None, help="Template catalog file"),
    realtime: bool = typer.Option(False, help="Replay at the original timing"),
    speed: float = typer.Option(1.0, help="Playback speed multiplier"),
):
    """Run a recorded session through the matching pipeline."""
    from handson.pipeline import StreamingPipeline, UnknownGestureError
    from handson.recorder import PosePlayer, RecordedPoseExtractor, ReplayFrameSource
    from handson.sinks import CounterStatistics, LoggingPresentation

    config = _setup(config_path, templates_file=templates)
    path = Path(recording)
    if not path.exists():
        typer.echo(f"❌ Recording not found: {recording}", err=True)
        raise typer.Exit(1)

    player = PosePlayer.load(path)
    typer.echo(f"▶️  Replaying {path.name} ({player.frame_count} frames, {player.duration:.1f}s)")

    statistics = CounterStatistics()
    pipeline = StreamingPipeline.from_config(
        config,
        ReplayFrameSource(player, realtime=realtime, speed=speed),
        RecordedPoseExtractor(),
        presentation=LoggingPresentation(),
        statistics=statistics,
    )

    async def main():
        async with pipeline:
            session = await pipeline.start(gesture)
            await pipeline.wait()
            return session

    try:
        session = asyncio.run(main())
    except UnknownGestureError as e:
        typer.echo(f"❌ Unknown gesture: {e.args[0]}", err=True)
        raise typer.Exit(1)

    typer.echo(f"\n📊 Gesture {session.active_gesture!r}:")
    typer.echo(f"   Frames:        {session.frames_seen} ({session.frames_dropped} dropped)")
    typer.echo(f"   Matches:       {session.matches_passed}/{session.match_attempts}")
    typer.echo(f"   Progress:      {session.repetition_count:.0f}/{session.counter.maximum}")
    typer.echo(f"   Completions:   {statistics.counts or 'none'}")


@app.command()
def record(
    output: str = typer.Option("recording.json", "-o", help="Output file (.json or .npz)"),
    duration: float = typer.Option(10.0, help="Recording duration in seconds"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    camera: Optional[str] = typer.Option(None, help="Camera position: front or back"),
):
    """Record hand poses from the camera."""
    from handson.recorder import PoseRecorder
    from handson.sources import CameraFrameSource, CameraPosition, MediaPipePoseExtractor

    config = _setup(config_path, camera_position=camera)
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
    recorder = PoseRecorder()

    async def main():
        recorder.start()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration
        async for frame in source.frames(CameraPosition(config.camera_position)):
            recorder.add_frame(await extractor.extract(frame.image))
            if loop.time() >= deadline:
                break

    typer.echo(f"🎥 Recording for {duration:.0f}s...")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    finally:
        recorder.stop()
        extractor.close()
        source.close()

    recorder.save(output)
    typer.echo(f"💾 Saved {recorder.frame_count} frames ({recorder.duration:.1f}s) to {output}")


@app.command()
def capture(
    recording: str = typer.Argument(..., help="Recording of someone holding the gesture"),
    name: str = typer.Option(..., help="Gesture name"),
    joints: str = typer.Option("all", help="Comma-separated joint names, or 'all'"),
    tolerance: float = typer.Option(0.025, help="Match tolerance (mean absolute deviation)"),
    catalog: str = typer.Option("templates.yaml", help="Catalog file to add the template to"),
):
    """Author a template from a recorded session and add it to a catalog file."""
    from handson.keypoints import JointKey
    from handson.recorder import PosePlayer
    from handson.templates import GestureTemplate, TemplateCatalog

    joint_keys = list(JointKey) if joints == "all" else [JointKey(j.strip()) for j in joints.split(",")]
    player = PosePlayer.load(recording)

    try:
        template = GestureTemplate.from_poses(name, joint_keys, player.poses(), tolerance=tolerance)
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    path = Path(catalog)
    target = TemplateCatalog.from_file(path) if path.exists() else TemplateCatalog()
    try:
        target.register(template)
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    target.save_to_file(path)

    typer.echo(f"✅ Template {name!r}: {len(joint_keys)} joints, "
               f"{len(template.reference_distances)} distances → {catalog}")


@app.command("templates")
def list_templates(
    catalog: Optional[str] = typer.Option(None, help="Catalog file (default: packaged templates)"),
):
    """List gesture templates."""
    from handson.templates import TemplateCatalog

    cat = TemplateCatalog.from_file(catalog) if catalog else TemplateCatalog.with_defaults()
    for t in cat:
        typer.echo(f"   {t.name:15s} {t.category.value:7s} joints={len(t.required_joints):2d}  "
                   f"tolerance={t.tolerance}")
    typer.echo(f"\n{len(cat)} templates")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    log_level: Optional[str] = typer.Option(None, help="Log level"),
):
    """Start the WebSocket progress server."""
    import uvicorn
    from handson.server import app as fastapi_app, configure

    config = _setup(config_path, host=host, port=port, log_level=log_level)
    configure(config)
    typer.echo(f"🚀 Starting HandsOn server on {config.host}:{config.port}")
    uvicorn.run(fastapi_app, host=config.host, port=config.port, log_level=config.log_level)


def main():
    app()


if __name__ == "__main__":
    main()
