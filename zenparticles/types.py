"""
Type definitions shared by the gesture extractor and the particle engine.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Protocol, runtime_checkable

import numpy as np


WRIST = 0
FINGERTIPS = (4, 8, 12, 16, 20)
LANDMARKS_PER_HAND = 21
MAX_HANDS = 2


class MalformedDetectionError(ValueError):
    """Raised when a detection result does not describe 0-2 well-formed hands."""


class ShapeTargetError(RuntimeError):
    """Raised when the shape provider fails or returns an unusable target cloud."""


class ShapeType(Enum):
    """Stable internal tag for each procedural shape."""
    SPHERE = "sphere"
    HEART = "heart"
    FLOWER = "flower"
    SATURN = "saturn"
    MEDITATE = "meditate"
    FIREWORKS = "fireworks"
    DNA = "dna"
    GALAXY = "galaxy"
    TORNADO = "tornado"
    LOTUS = "lotus"
    INFINITY = "infinity"
    PHOENIX = "phoenix"
    WAVE = "wave"


# Display text only; never used for dispatch.
SHAPE_LABELS = {
    ShapeType.SPHERE: "Sphere",
    ShapeType.HEART: "Heart",
    ShapeType.FLOWER: "Flower",
    ShapeType.SATURN: "Saturn",
    ShapeType.MEDITATE: "Meditate",
    ShapeType.FIREWORKS: "Fireworks",
    ShapeType.DNA: "DNA",
    ShapeType.GALAXY: "Galaxy",
    ShapeType.TORNADO: "Tornado",
    ShapeType.LOTUS: "Lotus",
    ShapeType.INFINITY: "Infinity",
    ShapeType.PHOENIX: "Phoenix",
    ShapeType.WAVE: "Wave",
}


@dataclass
class HandLandmarkFrame:
    """
    One detection cycle: zero, one or two hands.

    Each hand is a (21, 2) float array of normalized image coordinates.
    Any z column from the detector is dropped on construction.
    """
    hands: List[np.ndarray] = field(default_factory=list)
    handedness: List[str] = field(default_factory=list)

    @property
    def hand_count(self) -> int:
        return len(self.hands)


@dataclass(frozen=True)
class GestureSignal:
    """Smoothed control values published by the extractor, read by the engine."""
    expansion: float = 0.5
    tension: float = 0.0
    is_present: bool = False
    center_x: float = 0.0
    center_y: float = 0.0
    rotation: float = 0.0
    twist: float = 0.0
    velocity: float = 0.0
    grabbing: bool = False


NEUTRAL_SIGNAL = GestureSignal()


@dataclass
class RenderTransform:
    """Object-level transform the renderer applies to the whole cloud."""
    scale: float = 1.0
    pitch: float = 0.0  # rotation around x, radians
    yaw: float = 0.0  # rotation around y, radians
    point_size: float = 0.15


# generate(shape, count) -> float32 array of length count * 3
ShapeProvider = Callable[[ShapeType, int], np.ndarray]


@runtime_checkable
class LandmarkSource(Protocol):
    """Delivers hand detections keyed to a monotonic video clock."""

    def current_time_ms(self) -> float:
        """Timestamp of the newest available video frame."""
        ...

    def detect(self, timestamp_ms: float) -> Optional[HandLandmarkFrame]:
        """Run detection on the frame at ``timestamp_ms``."""
        ...


@runtime_checkable
class RenderSink(Protocol):
    """Consumes the particle buffer after each engine tick."""

    def draw(self, positions: np.ndarray, transform: RenderTransform) -> None:
        """Draw ``positions`` (read-only, length 3N) with ``transform``."""
        ...
