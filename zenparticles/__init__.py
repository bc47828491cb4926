"""
ZenParticles

Turns noisy per-frame hand landmarks into smoothed gesture signals and uses
them to drive a morphing particle cloud with a clap-triggered explosion.
"""

__version__ = "0.1.0"

from .types import (
    GestureSignal,
    HandLandmarkFrame,
    MalformedDetectionError,
    NEUTRAL_SIGNAL,
    RenderTransform,
    SHAPE_LABELS,
    ShapeTargetError,
    ShapeType,
)
from .config import load_config, Cfg
from .gestures import GestureExtractor, SmoothingState
from .particles import ParticleEngine, ParticleSystemState
from .shapes import generate
from .runtime import ParticleSession, SignalCell
from .renderer_mock import MockRenderer
from .landmarks import make_frame

__all__ = [
    "GestureSignal",
    "HandLandmarkFrame",
    "MalformedDetectionError",
    "NEUTRAL_SIGNAL",
    "RenderTransform",
    "SHAPE_LABELS",
    "ShapeTargetError",
    "ShapeType",
    "load_config",
    "Cfg",
    "GestureExtractor",
    "SmoothingState",
    "ParticleEngine",
    "ParticleSystemState",
    "generate",
    "ParticleSession",
    "SignalCell",
    "MockRenderer",
    "make_frame",
]
