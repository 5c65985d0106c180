"""Gesture templates: named reference fingerprints with per-gesture tolerances.

Adding a gesture means adding one entry to the catalog file; the matching
code path is the same for every template.

File format (YAML, or JSON when the suffix is ``.json``)::

    templates:
      - name: A
        category: letter      # optional, derived from the name when omitted
        tolerance: 0.025
        joints: [thumb_tip, index_mcp, ...]
        distances: [0.2077, 0.1836, ...]
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import Iterable, Iterator, Optional

import numpy as np
import yaml

from handson.fingerprint import fingerprint_length, pose_fingerprint
from handson.keypoints import CONFIDENCE_THRESHOLD, JointKey, Pose

logger = logging.getLogger("handson.templates")

DEFAULT_TEMPLATES = "templates.yaml"


class GestureCategory(Enum):
    LETTER = "letter"
    PHRASE = "phrase"

    @property
    def statistic_key(self) -> str:
        return "Letters" if self is GestureCategory.LETTER else "Words"

    @classmethod
    def for_name(cls, name: str) -> GestureCategory:
        return cls.LETTER if len(name.strip()) == 1 else cls.PHRASE


@dataclass(frozen=True)
class GestureTemplate:
    """Reference fingerprint for one gesture.

    ``reference_distances`` holds the pairwise distances between
    ``required_joints`` in fingerprint order, so its length is always
    K*(K-1)/2 for K joints.
    """

    name: str
    required_joints: tuple[JointKey, ...]
    reference_distances: np.ndarray = field(compare=False, repr=False)
    tolerance: float = 0.025
    category: Optional[GestureCategory] = None

    def __post_init__(self):
        joints = tuple(JointKey(j) if not isinstance(j, JointKey) else j for j in self.required_joints)
        object.__setattr__(self, "required_joints", joints)

        distances = np.array(self.reference_distances, dtype=np.float64).reshape(-1)
        distances.flags.writeable = False
        object.__setattr__(self, "reference_distances", distances)

        if self.category is None:
            object.__setattr__(self, "category", GestureCategory.for_name(self.name))
        elif not isinstance(self.category, GestureCategory):
            object.__setattr__(self, "category", GestureCategory(self.category))

        if not self.name:
            raise ValueError("Template name must not be empty")
        if len(joints) < 2:
            raise ValueError(f"Template {self.name!r} needs at least two joints")
        if len(set(joints)) != len(joints):
            raise ValueError(f"Template {self.name!r} lists a joint more than once")
        expected = fingerprint_length(len(joints))
        if len(distances) != expected:
            raise ValueError(
                f"Template {self.name!r}: {len(joints)} joints need {expected} "
                f"distances, got {len(distances)}"
            )
        if self.tolerance <= 0:
            raise ValueError(f"Template {self.name!r}: tolerance must be positive")

    @property
    def statistic_key(self) -> str:
        """Persisted-statistic key bumped when a repetition of this gesture completes."""
        return self.category.statistic_key

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "category": self.category.value,
            "tolerance": self.tolerance,
            "joints": [j.value for j in self.required_joints],
            "distances": [float(d) for d in self.reference_distances],
        }

    @classmethod
    def from_dict(cls, data: dict) -> GestureTemplate:
        return cls(
            name=str(data["name"]),
            required_joints=tuple(JointKey(j) for j in data["joints"]),
            reference_distances=data["distances"],
            tolerance=float(data.get("tolerance", 0.025)),
            category=data.get("category"),
        )

    @classmethod
    def from_poses(
        cls,
        name: str,
        joints: Iterable[JointKey],
        poses: Iterable[Pose],
        tolerance: float = 0.025,
        min_confidence: float = CONFIDENCE_THRESHOLD,
        category: Optional[GestureCategory] = None,
    ) -> GestureTemplate:
        """Author a template from sample poses of someone holding the gesture.

        The reference vector is the mean fingerprint over all poses that
        contain every joint. Poses missing a joint are skipped.

        Raises:
            ValueError: If none of the poses has all the joints.
        """
        joints = tuple(joints)
        samples = []
        for pose in poses:
            fp = pose_fingerprint(pose, joints, min_confidence)
            if fp is not None:
                samples.append(fp)

        if not samples:
            raise ValueError(f"No sample pose contains all joints for {name!r}")

        logger.info("Built template %r from %d sample poses", name, len(samples))
        return cls(
            name=name,
            required_joints=joints,
            reference_distances=np.mean(samples, axis=0),
            tolerance=tolerance,
            category=category,
        )


class TemplateCatalog:
    """Read-only-after-load mapping from gesture name to template."""

    def __init__(self, templates: Iterable[GestureTemplate] = ()):
        self._templates: dict[str, GestureTemplate] = {}
        for template in templates:
            self.register(template)

    def register(self, template: GestureTemplate):
        """Add a template. Names must be unique."""
        if template.name in self._templates:
            raise ValueError(f"Duplicate template name: {template.name!r}")
        self._templates[template.name] = template

    def lookup(self, name: str) -> Optional[GestureTemplate]:
        return self._templates.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._templates)

    def load_from_file(self, path: str | Path):
        """Load templates from a YAML or JSON catalog file."""
        path = Path(path)
        with open(path) as f:
            data = json.load(f) if path.suffix == ".json" else yaml.safe_load(f)
        self._load_entries(data, source=str(path))

    def _load_entries(self, data: Optional[dict], source: str):
        entries = (data or {}).get("templates", [])
        for entry in entries:
            self.register(GestureTemplate.from_dict(entry))
        logger.debug("Loaded %d templates from %s", len(entries), source)

    def save_to_file(self, path: str | Path):
        """Write all templates to a YAML or JSON catalog file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {"templates": [t.to_dict() for t in self._templates.values()]}
        with open(path, "w") as f:
            if path.suffix == ".json":
                json.dump(data, f, indent=2)
            else:
                yaml.safe_dump(data, f, sort_keys=False)

    @classmethod
    def from_file(cls, path: str | Path) -> TemplateCatalog:
        catalog = cls()
        catalog.load_from_file(path)
        return catalog

    @classmethod
    def with_defaults(cls) -> TemplateCatalog:
        """Catalog built from the template file shipped with the package."""
        catalog = cls()
        text = resources.files("handson.data").joinpath(DEFAULT_TEMPLATES).read_text()
        catalog._load_entries(yaml.safe_load(text), source=DEFAULT_TEMPLATES)
        return catalog

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[GestureTemplate]:
        return iter(self._templates.values())

    def __contains__(self, name: str) -> bool:
        return name in self._templates
