"""HandsOn configuration.

Values come from, in increasing priority: dataclass defaults, a YAML file,
``HANDSON_<FIELD>`` environment variables, and explicit keyword overrides.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger("handson.config")

ENV_PREFIX = "HANDSON_"
DEFAULT_CONFIG_PATH = Path("handson.yml")


@dataclass
class HandsOnConfig:
    # Capture
    front_camera_index: int = 0
    back_camera_index: int = 1
    camera_position: str = "front"
    camera_width: int = 640
    camera_height: int = 480
    mirror_front: bool = True
    # Pose extraction
    max_hands: int = 1
    min_detection_confidence: float = 0.7
    min_tracking_confidence: float = 0.5
    keypoint_confidence: float = 0.2
    # Matching and counting
    templates_file: Optional[str] = None
    default_gesture: str = "B"
    max_repetitions: int = 50
    channel_size: int = 8
    # Server
    host: str = "0.0.0.0"
    port: int = 8765
    log_level: str = "info"

    def __post_init__(self):
        if self.camera_position not in ("front", "back"):
            raise ValueError(f"camera_position must be 'front' or 'back', got {self.camera_position!r}")
        if self.max_repetitions <= 0:
            raise ValueError("max_repetitions must be positive")
        if self.channel_size <= 0:
            raise ValueError("channel_size must be positive")

    def to_dict(self) -> dict:
        return asdict(self)


def _coerce(value: str, target):
    """Convert an environment string to the type of the field's default."""
    if isinstance(target, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(target, int):
        return int(value)
    if isinstance(target, float):
        return float(value)
    return value


def load_config(path: str | Path | None = None, env: Optional[dict] = None, **overrides) -> HandsOnConfig:
    """Build a config from file, environment, and overrides.

    Unknown keys in the file are ignored with a warning. A missing file is
    only an error when ``path`` was given explicitly.
    """
    values: dict = {}
    known = {f.name for f in fields(HandsOnConfig)}

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning("Ignoring unknown config key %r in %s", key, config_path)
    elif path:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    defaults = HandsOnConfig()
    env = os.environ if env is None else env
    for name in known:
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None:
            values[name] = _coerce(raw, getattr(defaults, name))

    values.update({k: v for k, v in overrides.items() if v is not None and k in known})
    return HandsOnConfig(**values)
