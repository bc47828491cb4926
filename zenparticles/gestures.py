"""
Gesture feature extraction: raw hand landmarks in, smoothed control signals out.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .config import Cfg
from .landmarks import (
    clamp,
    clamp01,
    distance,
    hand_tension,
    remap01,
    to_control_space,
    validate_frame,
    wrist,
    wrist_center,
)
from .types import GestureSignal, HandLandmarkFrame, MalformedDetectionError, NEUTRAL_SIGNAL

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def lerp(current: float, target: float, rate: float) -> float:
    return current + (target - current) * rate


@dataclass
class SmoothingState:
    """Smoothed outputs plus the raw history needed for velocity-type features."""
    expansion: float = NEUTRAL_SIGNAL.expansion
    tension: float = NEUTRAL_SIGNAL.tension
    center_x: float = NEUTRAL_SIGNAL.center_x
    center_y: float = NEUTRAL_SIGNAL.center_y
    rotation: float = NEUTRAL_SIGNAL.rotation
    twist: float = NEUTRAL_SIGNAL.twist
    velocity: float = NEUTRAL_SIGNAL.velocity

    # raw normalized-space history, cleared whenever continuity is lost
    prev_center: Optional[Point] = None
    prev_center_ms: Optional[float] = None
    prev_hand_count: int = 0
    prev_wrists: Optional[Tuple[Point, Point]] = None
    # mirrored control-space center x of the last tracked frame; kept through absence
    prev_control_x: float = 0.0

    last_frame_ms: Optional[float] = None


class GestureExtractor:
    """
    Converts one detection result per video frame into a GestureSignal.

    Features:
    - Two-hand expansion, rotation and twist
    - Per-hand tension with a two-fist grab flag
    - Mirrored hand center and a burst velocity for clap detection
    - Exponential smoothing, with a slower decay to neutral when hands vanish
    - Repeated timestamps are ignored; malformed frames count as "no hands"
    """

    def __init__(self, cfg: Cfg):
        """Initialize the extractor with configuration."""
        self.cfg = cfg.gestures
        self.state = SmoothingState()
        self.signal: GestureSignal = NEUTRAL_SIGNAL

    def reset(self) -> None:
        self.state = SmoothingState()
        self.signal = NEUTRAL_SIGNAL

    def update(self, frame: Optional[HandLandmarkFrame], timestamp_ms: float) -> GestureSignal:
        """
        Process one detection cycle.

        Args:
            frame: Detected hands, or None when detection produced nothing
            timestamp_ms: Video timestamp of the frame in milliseconds

        Returns:
            The current GestureSignal. Unchanged if ``timestamp_ms`` did not advance.
        """
        s = self.state
        if s.last_frame_ms is not None and timestamp_ms <= s.last_frame_ms:
            return self.signal
        s.last_frame_ms = timestamp_ms

        if frame is not None:
            try:
                validate_frame(frame)
            except MalformedDetectionError as e:
                logger.warning(f"⚠️ Malformed detection at {timestamp_ms:.0f}ms treated as no hands: {e}")
                frame = None

        if frame is None or frame.hand_count == 0:
            self.signal = self._decay()
        else:
            self.signal = self._track(frame.hands, timestamp_ms)
        return self.signal

    def _decay(self) -> GestureSignal:
        """Drift every field toward its neutral value."""
        g = self.cfg
        s = self.state
        s.expansion = lerp(s.expansion, NEUTRAL_SIGNAL.expansion, g.absence_decay)
        s.tension = lerp(s.tension, 0.0, g.absence_decay)
        s.center_x = lerp(s.center_x, 0.0, g.absence_decay)
        s.center_y = lerp(s.center_y, 0.0, g.absence_decay)
        s.rotation = lerp(s.rotation, 0.0, g.absence_decay)
        s.twist = lerp(s.twist, 0.0, g.absence_decay)
        s.velocity = lerp(s.velocity, 0.0, g.velocity_absence_decay)

        s.prev_center = None
        s.prev_center_ms = None
        s.prev_hand_count = 0
        s.prev_wrists = None

        return self._snapshot(is_present=False, grabbing=False)

    def _track(self, hands: List[np.ndarray], timestamp_ms: float) -> GestureSignal:
        g = self.cfg
        s = self.state

        # A change in hand count moves the wrist centroid without any real motion.
        if len(hands) != s.prev_hand_count:
            s.prev_center = None
            s.prev_center_ms = None
            s.prev_wrists = None
        s.prev_hand_count = len(hands)

        raw_expansion = NEUTRAL_SIGNAL.expansion
        raw_rotation = 0.0
        raw_twist = 0.0

        if len(hands) == 2:
            w1, w2 = wrist(hands[0]), wrist(hands[1])
            raw_expansion = remap01(
                distance(w1, w2), g.expansion_min_distance, g.expansion_max_distance
            )
            raw_rotation, raw_twist = self._two_hand_motion(w1, w2)
            s.prev_wrists = (w1, w2)

        tensions = [
            hand_tension(h, g.tension_open_distance, g.tension_fist_distance) for h in hands
        ]
        raw_tension = sum(tensions) / len(tensions)
        grabbing = len(hands) == 2 and all(t > g.grab_threshold for t in tensions)

        center = wrist_center(hands)
        self._update_velocity(center, timestamp_ms)
        raw_cx, raw_cy = to_control_space(*center)
        s.prev_control_x = raw_cx

        s.expansion = lerp(s.expansion, raw_expansion, g.smoothing)
        s.tension = lerp(s.tension, raw_tension, g.smoothing)
        s.center_x = lerp(s.center_x, raw_cx, g.smoothing)
        s.center_y = lerp(s.center_y, raw_cy, g.smoothing)
        s.rotation = lerp(s.rotation, raw_rotation, g.smoothing * g.rotation_rate_factor)
        s.twist = lerp(s.twist, raw_twist, g.smoothing * g.twist_rate_factor)

        return self._snapshot(is_present=True, grabbing=grabbing)

    def _two_hand_motion(self, w1: Point, w2: Point) -> Tuple[float, float]:
        """
        Rotation and twist from frame-to-frame wrist motion.

        Rotation needs the hands moving vertically in opposite directions.
        Twist is a rough proxy: vertical velocity difference plus the first
        wrist's x (image space) measured against the previous frame's
        mirrored center x (control space).
        """
        g = self.cfg
        prev = self.state.prev_wrists
        if prev is None:
            return 0.0, 0.0

        vy1 = w1[1] - prev[0][1]
        vy2 = w2[1] - prev[1][1]
        dx1 = w1[0] - self.state.prev_control_x

        rotation = 0.0
        if vy1 * vy2 < 0:
            rotation = clamp((vy2 - vy1) * g.rotation_sensitivity, -1.0, 1.0)

        twist = clamp01((abs(vy1 - vy2) + abs(dx1)) * g.twist_sensitivity)
        return rotation, twist

    def _update_velocity(self, center: Point, timestamp_ms: float) -> None:
        g = self.cfg
        s = self.state
        if s.prev_center is not None and s.prev_center_ms is not None:
            dt = (timestamp_ms - s.prev_center_ms) / 1000.0
            # Long gaps (dropped frames) would read as a huge jump
            if 0.0 < dt < g.max_frame_gap_s:
                raw_velocity = distance(center, s.prev_center) / dt
                burst = min(1.0, raw_velocity * g.velocity_gain)
                s.velocity = clamp01(lerp(s.velocity, burst, g.velocity_rate))
        s.prev_center = center
        s.prev_center_ms = timestamp_ms

    def _snapshot(self, is_present: bool, grabbing: bool) -> GestureSignal:
        s = self.state
        return GestureSignal(
            expansion=s.expansion,
            tension=s.tension,
            is_present=is_present,
            center_x=s.center_x,
            center_y=s.center_y,
            rotation=s.rotation,
            twist=s.twist,
            velocity=s.velocity,
            grabbing=grabbing,
        )
