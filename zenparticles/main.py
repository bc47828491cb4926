"""
Main application: webcam hands drive a particle cloud drawn with OpenCV.
"""
import argparse
import asyncio
import logging
from typing import Callable, Optional

import cv2
import numpy as np

from .config import DisplayConfig, load_config
from .renderer_mock import MockRenderer
from .runtime import ParticleSession
from .types import SHAPE_LABELS, RenderTransform, ShapeTargetError, ShapeType
from .tracker import HandsTracker

logger = logging.getLogger(__name__)

PARTICLE_BGR = np.array([197.0, 209.0, 79.0], dtype=np.float32)  # teal
CAMERA_DISTANCE = 15.0
FIELD_OF_VIEW_DEG = 75.0


def rotation_matrix(pitch: float, yaw: float) -> np.ndarray:
    """Rotate around y (yaw) first, then x (pitch)."""
    cp, sp = np.cos(pitch), np.sin(pitch)
    cy, sy = np.cos(yaw), np.sin(yaw)
    rx = np.array([[1.0, 0.0, 0.0], [0.0, cp, -sp], [0.0, sp, cp]])
    ry = np.array([[cy, 0.0, sy], [0.0, 1.0, 0.0], [-sy, 0.0, cy]])
    return rx @ ry


class OpenCVRenderer:
    """Perspective-projects the cloud onto a black canvas with additive glow."""

    def __init__(self, display: DisplayConfig, tracker: Optional[HandsTracker] = None,
                 on_key: Optional[Callable[[int], None]] = None):
        self.display = display
        self.tracker = tracker
        self.on_key = on_key
        self.caption = ""
        self.focal = (display.height / 2.0) / np.tan(np.radians(FIELD_OF_VIEW_DEG / 2.0))
        cv2.namedWindow(display.window_name, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(display.window_name, display.width, display.height)

    def draw(self, positions: np.ndarray, transform: RenderTransform) -> None:
        w, h = self.display.width, self.display.height
        pts = positions.reshape(-1, 3) * transform.scale
        pts = pts @ rotation_matrix(transform.pitch, transform.yaw).T

        depth = CAMERA_DISTANCE - pts[:, 2]
        visible = depth > 0.1
        px = (w / 2.0 + self.focal * pts[visible, 0] / depth[visible]).astype(np.int32)
        py = (h / 2.0 - self.focal * pts[visible, 1] / depth[visible]).astype(np.int32)
        inside = (px >= 0) & (px < w) & (py >= 0) & (py < h)

        glow = np.zeros((h, w), dtype=np.float32)
        np.add.at(glow, (py[inside], px[inside]), 1.0)

        radius = max(1, int(round(transform.point_size * self.focal / CAMERA_DISTANCE / 2.0)))
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (2 * radius + 1, 2 * radius + 1))
        glow = cv2.dilate(glow, kernel)

        canvas = (np.clip(glow * 0.45, 0.0, 1.0)[..., None] * PARTICLE_BGR).astype(np.uint8)
        self._draw_preview(canvas)
        cv2.putText(canvas, self.caption, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2)
        cv2.putText(canvas, "n/p = shape, q = quit", (10, h - 20), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)

        cv2.imshow(self.display.window_name, canvas)
        key = cv2.waitKey(1) & 0xFF
        if key != 0xFF and self.on_key is not None:
            self.on_key(key)

    def _draw_preview(self, canvas: np.ndarray) -> None:
        """Mirrored camera thumbnail in the top-right corner."""
        if self.tracker is None or self.tracker.last_frame is None:
            return
        frame = self.tracker.last_frame.copy()
        if self.display.show_landmarks and self.tracker.last_detection is not None:
            frame = self.tracker.draw_landmarks(frame, self.tracker.last_detection)
        thumb_w = canvas.shape[1] // 5
        thumb_h = int(frame.shape[0] * thumb_w / frame.shape[1])
        thumb = cv2.flip(cv2.resize(frame, (thumb_w, thumb_h)), 1)
        canvas[10:10 + thumb_h, -thumb_w - 10:-10] = thumb

    def close(self) -> None:
        cv2.destroyWindow(self.display.window_name)


class ParticleApp:
    """Main application class for gesture-controlled particles."""

    def __init__(self, config_path: Optional[str] = None, shape: Optional[str] = None,
                 headless: bool = False):
        """Initialize the application with configuration."""
        self.config = load_config(config_path)
        initial = ShapeType(shape or self.config.display.initial_shape)
        self.tracker = HandsTracker(self.config)
        self.quit_requested = asyncio.Event()
        self.renderer = None

        try:
            if headless:
                self.renderer = MockRenderer(log_every=self.config.display.render_fps * 5)
                print("🕶️  Headless mode - particle frames are logged, not drawn")
            else:
                self.renderer = OpenCVRenderer(self.config.display, tracker=self.tracker, on_key=self._on_key)

            self.session = ParticleSession(self.config, self.tracker, self.renderer, shape=initial)
        except Exception:
            logger.error("❌ Startup failed, releasing camera")
            self._close_devices()
            raise
        self._update_caption()

    def _close_devices(self) -> None:
        self.tracker.close()
        if isinstance(self.renderer, OpenCVRenderer):
            self.renderer.close()

    def _update_caption(self) -> None:
        if isinstance(self.renderer, OpenCVRenderer):
            self.renderer.caption = SHAPE_LABELS[self.session.shape]

    def _cycle_shape(self, step: int) -> None:
        shapes = list(ShapeType)
        nxt = shapes[(shapes.index(self.session.shape) + step) % len(shapes)]
        try:
            self.session.change_shape(nxt)
        except ShapeTargetError as e:
            print(f"⚠️  Keeping {SHAPE_LABELS[self.session.shape]}: {e}")
        self._update_caption()

    def _on_key(self, key: int) -> None:
        if key == ord('q'):
            self.quit_requested.set()
        elif key == ord('n'):
            self._cycle_shape(1)
        elif key == ord('p'):
            self._cycle_shape(-1)

    async def run(self):
        """Run both clocks until quit, a clock failure, or cancellation."""
        print(f"Starting {self.config.display.window_name}")
        print("✋ Gestures:")
        print("  - Two hands apart / together = Expand / Shrink")
        print("  - Clench fists = Implode")
        print("  - Hands moving opposite up/down = Spin")
        print("  - Clap = Explode")

        self.session.start()
        quit_task = asyncio.create_task(self.quit_requested.wait())
        wait_task = asyncio.create_task(self.session.wait())
        try:
            await asyncio.wait({quit_task, wait_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            quit_task.cancel()
            wait_task.cancel()
            await self.session.stop()
            self._close_devices()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hand-gesture controlled particle cloud")
    parser.add_argument("--config", help="YAML file merged over the packaged defaults")
    parser.add_argument(
        "--shape",
        choices=[s.value for s in ShapeType],
        help="Initial shape (default from config)",
    )
    parser.add_argument("--headless", action="store_true", help="Track hands without opening a window")
    return parser.parse_args(argv)


async def main(argv=None):
    """Entry point for the application."""
    args = parse_args(argv)
    app = ParticleApp(config_path=args.config, shape=args.shape, headless=args.headless)
    await app.run()


def cli() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nApplication interrupted by user")


if __name__ == "__main__":
    cli()
