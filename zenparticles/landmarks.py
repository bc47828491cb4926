"""
Hand landmark validation and geometry helpers.

Everything here works on normalized image coordinates (x right, y down, 0..1).
"""
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .types import (
    FINGERTIPS,
    LANDMARKS_PER_HAND,
    MAX_HANDS,
    WRIST,
    HandLandmarkFrame,
    MalformedDetectionError,
)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def _point_xy(point) -> Tuple[float, float]:
    if hasattr(point, "x") and hasattr(point, "y"):
        return float(point.x), float(point.y)
    if isinstance(point, dict):
        return float(point["x"]), float(point["y"])
    if isinstance(point, (list, tuple, np.ndarray)) and len(point) >= 2:
        return float(point[0]), float(point[1])
    raise MalformedDetectionError(f"Unsupported landmark format: {point!r}")


def hand_array(points: Sequence) -> np.ndarray:
    """
    Convert one hand's landmarks into a (21, 2) float array.

    Accepts MediaPipe landmark objects, dicts with x/y keys, or sequences of
    2 or 3 numbers. The z coordinate is discarded.

    Raises:
        MalformedDetectionError: wrong landmark count, bad format or non-finite values
    """
    try:
        count = len(points)
    except TypeError as e:
        raise MalformedDetectionError(f"Hand is not a sequence: {e}") from e
    if count != LANDMARKS_PER_HAND:
        raise MalformedDetectionError(
            f"Expected {LANDMARKS_PER_HAND} landmarks per hand, got {count}"
        )

    try:
        arr = np.array([_point_xy(p) for p in points], dtype=float)
    except MalformedDetectionError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedDetectionError(f"Unreadable landmark: {e}") from e

    if not np.all(np.isfinite(arr)):
        raise MalformedDetectionError("Landmark coordinates must be finite")
    return arr


def make_frame(hands: Sequence[Sequence], handedness: Optional[List[str]] = None) -> HandLandmarkFrame:
    """
    Build a validated HandLandmarkFrame from raw per-hand landmark lists.

    Raises:
        MalformedDetectionError: more than two hands or any malformed hand
    """
    if len(hands) > MAX_HANDS:
        raise MalformedDetectionError(f"At most {MAX_HANDS} hands supported, got {len(hands)}")
    arrays = [hand_array(h) for h in hands]
    return HandLandmarkFrame(hands=arrays, handedness=list(handedness or []))


def validate_frame(frame: HandLandmarkFrame) -> HandLandmarkFrame:
    """
    Re-check a frame that may have been assembled by hand.

    Each hand is converted to a float array in place, so nested lists are
    accepted and everything downstream can index ``hand[i, j]``.

    Raises:
        MalformedDetectionError: wrong hand count, wrong shape, non-numeric
            or non-finite coordinates
    """
    if not isinstance(frame, HandLandmarkFrame):
        raise MalformedDetectionError(f"Expected HandLandmarkFrame, got {type(frame).__name__}")
    try:
        count = len(frame.hands)
    except TypeError as e:
        raise MalformedDetectionError(f"Hands are not a sequence: {e}") from e
    if count > MAX_HANDS:
        raise MalformedDetectionError(f"At most {MAX_HANDS} hands supported, got {count}")

    arrays = []
    for hand in frame.hands:
        try:
            arr = np.asarray(hand, dtype=float)
        except (TypeError, ValueError) as e:
            raise MalformedDetectionError(f"Unreadable hand landmarks: {e}") from e
        if arr.ndim != 2 or arr.shape[0] != LANDMARKS_PER_HAND or arr.shape[1] < 2:
            raise MalformedDetectionError(f"Bad hand array shape {arr.shape}")
        if not np.all(np.isfinite(arr[:, :2])):
            raise MalformedDetectionError("Landmark coordinates must be finite")
        arrays.append(arr)

    frame.hands = arrays
    return frame


def wrist(hand: np.ndarray) -> Tuple[float, float]:
    return float(hand[WRIST, 0]), float(hand[WRIST, 1])


def distance(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def mean_fingertip_distance(hand: np.ndarray) -> float:
    """Average 2D distance from the five fingertips to the wrist."""
    deltas = hand[list(FINGERTIPS), :2] - hand[WRIST, :2]
    return float(np.mean(np.hypot(deltas[:, 0], deltas[:, 1])))


def remap01(value: float, low: float, high: float) -> float:
    """Map ``value`` from [low, high] onto [0, 1], clamped. Works for low > high."""
    span = high - low
    if abs(span) <= 1e-9:
        return 0.0
    return clamp01((value - low) / span)


def hand_tension(hand: np.ndarray, open_distance: float, fist_distance: float) -> float:
    """
    Closure of one hand in [0, 1].

    An open hand (fingertips ``open_distance`` from the wrist) scores 0,
    a fist (``fist_distance``) scores 1.
    """
    return remap01(mean_fingertip_distance(hand), open_distance, fist_distance)


def wrist_center(hands: Sequence[np.ndarray]) -> Tuple[float, float]:
    """Mean wrist position of the given hands."""
    xs = [float(h[WRIST, 0]) for h in hands]
    ys = [float(h[WRIST, 1]) for h in hands]
    return sum(xs) / len(xs), sum(ys) / len(ys)


def to_control_space(x: float, y: float) -> Tuple[float, float]:
    """
    Mirror horizontally and rescale a normalized point onto [-1, 1] x [-1, 1].
    """
    cx = (1.0 - x) * 2.0 - 1.0
    cy = -((1.0 - y) * 2.0 - 1.0)
    return clamp(cx, -1.0, 1.0), clamp(cy, -1.0, 1.0)
