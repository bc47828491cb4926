"""
Mock renderer for headless runs and tests.
"""
import logging
from typing import Optional

import numpy as np

from .types import RenderTransform

logger = logging.getLogger(__name__)


class MockRenderer:
    """Records draw calls instead of drawing."""

    def __init__(self, log_every: int = 0):
        """
        Args:
            log_every: Log a summary every N frames (0 disables logging)
        """
        self.log_every = log_every
        self.draw_count = 0
        self.last_positions: Optional[np.ndarray] = None
        self.last_transform: Optional[RenderTransform] = None

    def draw(self, positions: np.ndarray, transform: RenderTransform) -> None:
        """Keep a reference to the buffer and a copy of the transform."""
        self.draw_count += 1
        self.last_positions = positions
        self.last_transform = RenderTransform(
            scale=transform.scale,
            pitch=transform.pitch,
            yaw=transform.yaw,
            point_size=transform.point_size,
        )
        if self.log_every and self.draw_count % self.log_every == 0:
            spread = float(np.abs(positions).max()) if positions.size else 0.0
            logger.info(
                f"[MockRenderer] frame #{self.draw_count}: scale={transform.scale:.2f} "
                f"yaw={transform.yaw:.2f} pitch={transform.pitch:.2f} extent={spread:.2f}"
            )

    def reset_counters(self) -> None:
        """Reset draw counters for testing."""
        self.draw_count = 0
        self.last_positions = None
        self.last_transform = None
