"""
Detector Output Types

A Detection is one frame's raw observation from the external detector:
a normalized bounding box (0-1, origin top-left), a coarse classification
and a confidence score. Detections are immutable and consumed once per
frame by the tracker.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from ..errors import InvalidDetectionError


class Classification(Enum):
    """Coarse object classes produced by the detector."""

    PLAYER = "player"
    REFEREE = "referee"
    BALL = "ball"
    OTHER = "other"

    @classmethod
    def parse(cls, value) -> "Classification":
        """Accept an enum member or its string value; unknown labels map to OTHER."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in normalized frame coordinates.

    Attributes:
        x: Left edge
        y: Top edge
        width: Box width
        height: Box height
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "BoundingBox":
        return cls(cx - width / 2.0, cy - height / 2.0, width, height)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    def recentered(self, cx: float, cy: float) -> "BoundingBox":
        """Same size, new centre."""
        return BoundingBox.from_center(cx, cy, self.width, self.height)

    def iou(self, other: "BoundingBox") -> float:
        """Intersection-over-Union with another box (0 when disjoint)."""
        ix = min(self.max_x, other.max_x) - max(self.x, other.x)
        iy = min(self.max_y, other.max_y) - max(self.y, other.y)
        if ix <= 0 or iy <= 0:
            return 0.0

        intersection = ix * iy
        union = self.area + other.area - intersection
        if union <= 0:
            return 0.0
        return intersection / union

    def to_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True, eq=False)
class Detection:
    """
    Single detector observation.

    Attributes:
        bbox: Normalized bounding box
        classification: Coarse object class
        confidence: Detector score in [0, 1]
        appearance: Optional fixed-size colour histogram for re-identification
    """

    bbox: BoundingBox
    classification: Classification = Classification.PLAYER
    confidence: float = 1.0
    appearance: Optional[np.ndarray] = None

    def __post_init__(self):
        values = self.bbox.to_tuple()
        if not all(math.isfinite(v) for v in values):
            raise InvalidDetectionError(f"Non-finite bounding box: {values}")
        if self.bbox.width < 0 or self.bbox.height < 0:
            raise InvalidDetectionError(f"Negative box size: {values}")
        if not isinstance(self.classification, Classification):
            object.__setattr__(self, "classification", Classification.parse(self.classification))
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))

    @classmethod
    def from_dict(cls, data: dict) -> "Detection":
        """
        Build from a detector record.

        Expected keys: x, y, width, height (normalized), plus optional
        label/classification, confidence and histogram.
        """
        bbox = BoundingBox(
            float(data["x"]), float(data["y"]), float(data["width"]), float(data["height"])
        )
        label = data.get("classification", data.get("label", "player"))
        histogram = data.get("histogram")
        return cls(
            bbox=bbox,
            classification=Classification.parse(label),
            confidence=float(data.get("confidence", 1.0)),
            appearance=np.asarray(histogram, dtype=np.float32) if histogram is not None else None,
        )

    @property
    def center(self) -> Tuple[float, float]:
        return self.bbox.center
