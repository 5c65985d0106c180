"""Tests for the typer CLI."""

import json

import pytest
from typer.testing import CliRunner

import handson.sources
from handson.cli import app
from handson.sources import Frame

runner = CliRunner()


class FakeCamera:
    def __init__(self, **kwargs):
        self.closed = False

    async def frames(self, position):
        yield Frame(id=0, image=None)

    def close(self):
        self.closed = True


class FakeExtractor:
    created = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        FakeExtractor.created.append(self)

    async def extract(self, image):
        return []

    def close(self):
        pass


@pytest.fixture
def fake_camera(monkeypatch, tmp_path):
    FakeExtractor.created = []
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(handson.sources, "CameraFrameSource", FakeCamera)
    monkeypatch.setattr(handson.sources, "MediaPipePoseExtractor", FakeExtractor)
    return tmp_path


class TestRecord:
    def test_passes_confidence_settings_to_extractor(self, fake_camera, monkeypatch):
        monkeypatch.setenv("HANDSON_MIN_DETECTION_CONFIDENCE", "0.4")
        monkeypatch.setenv("HANDSON_MIN_TRACKING_CONFIDENCE", "0.3")
        output = fake_camera / "r.json"

        result = runner.invoke(app, ["record", "-o", str(output), "--duration", "0"])

        assert result.exit_code == 0, result.output
        assert len(FakeExtractor.created) == 1
        kwargs = FakeExtractor.created[0].kwargs
        assert kwargs["min_detection_confidence"] == 0.4
        assert kwargs["min_tracking_confidence"] == 0.3
        assert json.loads(output.read_text())["frame_count"] == 1

    def test_default_confidences(self, fake_camera):
        result = runner.invoke(app, ["record", "-o", str(fake_camera / "r.json"), "--duration", "0"])

        assert result.exit_code == 0, result.output
        kwargs = FakeExtractor.created[0].kwargs
        assert kwargs["min_detection_confidence"] == 0.7
        assert kwargs["min_tracking_confidence"] == 0.5
