"""
Particle state engine: morphs a large point cloud toward its target shape and
runs the clap-triggered explosion impulse.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .config import Cfg
from .types import GestureSignal, RenderTransform, ShapeTargetError

logger = logging.getLogger(__name__)

FALLBACK_DIRECTION = np.array([0.0, 1.0, 0.0], dtype=np.float32)
MIN_RADIUS = 1e-4


@dataclass
class ParticleSystemState:
    """Engine-owned buffers. All three arrays have length 3N."""
    positions: np.ndarray
    targets: np.ndarray
    explosion_velocities: np.ndarray
    explosion_active: bool = False
    current_scale: float = 1.0
    rotation_velocity: float = 0.0
    pulse_phase: float = 0.0
    transform: RenderTransform = field(default_factory=RenderTransform)

    @property
    def count(self) -> int:
        return self.positions.shape[0] // 3


def check_targets(targets, expected_len: int) -> np.ndarray:
    """
    Validate a provider result and return it as a fresh float32 buffer.

    Raises:
        ShapeTargetError: wrong length or non-finite values
    """
    try:
        arr = np.array(targets, dtype=np.float32).reshape(-1)
    except (TypeError, ValueError) as e:
        raise ShapeTargetError(f"Target cloud is not numeric: {e}") from e
    if arr.shape[0] != expected_len:
        raise ShapeTargetError(f"Target cloud has {arr.shape[0]} values, expected {expected_len}")
    if not np.all(np.isfinite(arr)):
        raise ShapeTargetError("Target cloud contains non-finite values")
    return arr


class ParticleEngine:
    """
    Advances ParticleSystemState once per render tick.

    Each tick blends scale and orientation toward the gesture-driven targets,
    then moves every particle toward its (optionally pulled-in) target, either
    with tension jitter or superposed on the decaying explosion velocity.
    """

    def __init__(self, cfg: Cfg, initial_targets: np.ndarray, rng: Optional[np.random.Generator] = None):
        """
        Args:
            cfg: Configuration; ``cfg.particles`` holds every engine constant
            initial_targets: First target cloud, length ``3 * cfg.particles.count``
            rng: Random generator for jitter and impulse magnitudes
        """
        self.cfg = cfg.particles
        self.rng = rng if rng is not None else np.random.default_rng()

        n3 = self.cfg.count * 3
        targets = check_targets(initial_targets, n3)
        self.state = ParticleSystemState(
            positions=targets.copy(),
            targets=targets,
            explosion_velocities=np.zeros(n3, dtype=np.float32),
            current_scale=self.cfg.rest_scale,
            transform=RenderTransform(scale=self.cfg.rest_scale, point_size=self.cfg.point_size),
        )

    @property
    def transform(self) -> RenderTransform:
        return self.state.transform

    def set_targets(self, targets: np.ndarray) -> None:
        """
        Swap in a new target cloud. Positions are untouched so the change morphs.

        Raises:
            ShapeTargetError: the cloud does not match the particle count; the
                previous targets stay in place
        """
        self.state.targets = check_targets(targets, self.state.positions.shape[0])

    def check_burst(self, signal: GestureSignal) -> bool:
        """
        Fire the explosion on a clap: fast hands, close together, none running.

        Returns:
            True if an explosion was triggered by this call
        """
        c = self.cfg
        if self.state.explosion_active:
            return False
        if signal.velocity > c.burst_velocity_threshold and signal.expansion < c.burst_expansion_threshold:
            self.trigger_explosion()
            return True
        return False

    def trigger_explosion(self) -> None:
        """Give every particle an outward radial impulse. No-op while one is running."""
        s = self.state
        if s.explosion_active:
            return

        pos = s.positions.reshape(-1, 3)
        radius = np.linalg.norm(pos, axis=1)
        degenerate = radius < MIN_RADIUS
        directions = np.empty_like(pos)
        directions[~degenerate] = pos[~degenerate] / radius[~degenerate, None]
        directions[degenerate] = FALLBACK_DIRECTION

        magnitude = self.rng.uniform(self.cfg.explosion_impulse_min, self.cfg.explosion_impulse_max, pos.shape[0])
        s.explosion_velocities[:] = (directions * magnitude[:, None]).reshape(-1)
        s.explosion_active = True
        logger.info(f"💥 Explosion triggered ({pos.shape[0]} particles, {int(degenerate.sum())} at origin)")

    def tick(self, signal: GestureSignal) -> None:
        """Advance the simulation by one render frame."""
        self._update_scale(signal)
        self._update_orientation(signal)
        self._update_positions(signal)
        self._update_point_size(signal)

    def _update_scale(self, signal: GestureSignal) -> None:
        c = self.cfg
        s = self.state
        target = c.scale_base + signal.expansion * c.scale_gain if signal.is_present else c.rest_scale
        s.current_scale += (target - s.current_scale) * c.scale_rate
        s.transform.scale = s.current_scale

    def _update_orientation(self, signal: GestureSignal) -> None:
        c = self.cfg
        s = self.state
        t = s.transform

        if signal.is_present:
            target_pitch = -signal.center_y * c.orientation_gain
            target_yaw = signal.center_x * c.orientation_gain
            t.pitch += (target_pitch - t.pitch) * c.orientation_rate
            t.yaw += (target_yaw - t.yaw) * c.orientation_rate
            s.rotation_velocity += signal.rotation * c.spin_gain
        else:
            t.yaw += c.idle_yaw_rate
            t.pitch *= c.pitch_return

        s.rotation_velocity *= c.spin_decay
        t.yaw += s.rotation_velocity

    def _pulled_targets(self, signal: GestureSignal) -> np.ndarray:
        c = self.cfg
        tension = signal.tension if signal.is_present else 0.0
        if signal.grabbing:
            return self.state.targets * (1.0 - c.grab_pull)
        if tension > c.tension_pull_threshold:
            return self.state.targets * (1.0 - (tension - c.tension_pull_threshold) * c.tension_pull_gain)
        return self.state.targets

    def _update_positions(self, signal: GestureSignal) -> None:
        c = self.cfg
        s = self.state
        pos = s.positions
        goal = self._pulled_targets(signal)

        if s.explosion_active:
            vel = s.explosion_velocities
            pos += vel
            vel *= c.explosion_decay
            pos += (goal - pos) * c.explosion_morph_rate
            self._check_explosion_end()
            return

        pos += (goal - pos) * c.morph_rate
        tension = signal.tension if signal.is_present else 0.0
        jitter = tension * c.jitter_scale
        if jitter > 0.0:
            pos += ((self.rng.random(pos.shape[0]) - 0.5) * jitter).astype(np.float32)

    def _check_explosion_end(self) -> None:
        s = self.state
        # |vx| + |vy| + |vz| per particle; cheaper than a norm and never smaller
        speeds = np.abs(s.explosion_velocities).reshape(-1, 3).sum(axis=1)
        if speeds.max() < self.cfg.explosion_stop_threshold:
            s.explosion_velocities.fill(0.0)
            s.explosion_active = False
            logger.debug("Explosion settled")

    def _update_point_size(self, signal: GestureSignal) -> None:
        c = self.cfg
        s = self.state
        s.pulse_phase += c.pulse_rate
        if signal.is_present:
            pulse = abs(math.sin(s.pulse_phase))
            s.transform.point_size = c.point_size * (1.0 + signal.twist * c.point_size_pulse * pulse)
        else:
            s.transform.point_size = c.point_size
