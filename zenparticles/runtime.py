"""
Session runtime: two independent asyncio clocks sharing one latest-value signal.

The video task polls the landmark source and runs the extractor; the render
task ticks the particle engine and hands the buffer to the render sink. Both
run on the event loop thread; only source I/O is pushed to a worker thread.
"""
import asyncio
import logging
import threading
from typing import Optional, Tuple

import numpy as np

from .config import Cfg
from .gestures import GestureExtractor
from .particles import ParticleEngine
from .shapes import generate
from .types import (
    NEUTRAL_SIGNAL,
    SHAPE_LABELS,
    GestureSignal,
    LandmarkSource,
    RenderSink,
    ShapeProvider,
    ShapeTargetError,
    ShapeType,
)

logger = logging.getLogger(__name__)


class SignalCell:
    """
    Single-writer / single-reader cell holding the most recent GestureSignal.

    Writes replace the whole snapshot; reads never block on the writer and
    return the previous snapshot until a new one is published.
    """

    def __init__(self, initial: GestureSignal = NEUTRAL_SIGNAL):
        self._lock = threading.Lock()
        self._value = initial

    def publish(self, signal: GestureSignal) -> None:
        with self._lock:
            self._value = signal

    def latest(self) -> GestureSignal:
        with self._lock:
            return self._value


class ParticleSession:
    """
    Wires extractor, engine, shape provider and render sink together.

    ``render_tick`` and ``video_tick`` can be driven directly by a host with its
    own clocks; ``start``/``stop`` run them as asyncio tasks.
    """

    def __init__(
        self,
        cfg: Cfg,
        source: LandmarkSource,
        renderer: RenderSink,
        provider: ShapeProvider = generate,
        shape: ShapeType = ShapeType.SPHERE,
        rng: Optional[np.random.Generator] = None,
    ):
        self.cfg = cfg
        self.source = source
        self.renderer = renderer
        self.provider = provider
        self.shape = shape

        self.extractor = GestureExtractor(cfg)
        self.engine = ParticleEngine(cfg, self._provide(shape), rng=rng)
        self.signals = SignalCell()

        self._last_video_ms: Optional[float] = None
        self._tasks: Tuple[asyncio.Task, ...] = ()
        self._pending: Optional[asyncio.Future] = None
        self._stopped = asyncio.Event()

    def _provide(self, shape: ShapeType) -> np.ndarray:
        try:
            return self.provider(shape, self.cfg.particles.count)
        except ShapeTargetError:
            raise
        except Exception as e:
            logger.error(f"❌ Shape provider failed for {SHAPE_LABELS[shape]}: {e}")
            raise ShapeTargetError(f"Shape provider failed for {shape.value}: {e}") from e

    def change_shape(self, shape: ShapeType) -> None:
        """
        Morph toward a new shape.

        Raises:
            ShapeTargetError: provider failed or returned the wrong size; the
                current shape is kept
        """
        targets = self._provide(shape)
        try:
            self.engine.set_targets(targets)
        except ShapeTargetError as e:
            logger.error(f"❌ Rejected target cloud for {SHAPE_LABELS[shape]}: {e}")
            raise
        self.shape = shape
        logger.info(f"🔷 Shape changed to {SHAPE_LABELS[shape]}")

    def render_tick(self) -> None:
        """Advance the engine with the latest signal and draw."""
        self.engine.tick(self.signals.latest())
        self.renderer.draw(self.engine.state.positions, self.engine.transform)

    def process_detection(self, timestamp_ms: float, frame) -> GestureSignal:
        """Feed one detection result through the extractor and publish it."""
        signal = self.extractor.update(frame, timestamp_ms)
        self.signals.publish(signal)
        self.engine.check_burst(signal)
        return signal

    def _detect_safely(self, timestamp_ms: float):
        try:
            return self.source.detect(timestamp_ms)
        except Exception as e:
            logger.warning(f"⚠️ Hand detection failed at {timestamp_ms:.0f}ms, treating as no hands: {e}")
            return None

    def _video_advanced(self, timestamp_ms: float) -> bool:
        if self._last_video_ms is not None and timestamp_ms <= self._last_video_ms:
            return False
        self._last_video_ms = timestamp_ms
        return True

    def video_tick(self) -> Optional[GestureSignal]:
        """
        Run one detection cycle if the video clock moved.

        Returns:
            The published signal, or None when the frame was skipped
        """
        timestamp_ms = self.source.current_time_ms()
        if not self._video_advanced(timestamp_ms):
            return None
        return self.process_detection(timestamp_ms, self._detect_safely(timestamp_ms))

    async def _render_loop(self) -> None:
        period = 1.0 / self.cfg.display.render_fps
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while True:
            self.render_tick()
            next_at += period
            delay = next_at - loop.time()
            if delay < 0:
                # fell behind; don't try to catch up with a burst of ticks
                next_at = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    async def _in_worker(self, func, *args):
        """
        Run a blocking source call in a worker thread.

        The call is shielded and remembered so that ``stop`` can wait for it;
        cancelling the video task never leaves it running in the background.
        """
        self._pending = asyncio.ensure_future(asyncio.to_thread(func, *args))
        result = await asyncio.shield(self._pending)
        self._pending = None
        return result

    async def _video_loop(self) -> None:
        poll = 1.0 / max(self.cfg.camera.fps * 2, 1)
        while True:
            timestamp_ms = await self._in_worker(self.source.current_time_ms)
            if self._video_advanced(timestamp_ms):
                frame = await self._in_worker(self._detect_safely, timestamp_ms)
                self.process_detection(timestamp_ms, frame)
            else:
                await asyncio.sleep(poll)

    async def _drain_worker(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        await asyncio.wait({pending})
        if not pending.cancelled() and pending.exception() is not None:
            logger.error(f"❌ Source call failed: {pending.exception()!r}")

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def start(self) -> None:
        """Start both clocks on the running event loop."""
        if self.running:
            return
        self._stopped.clear()
        self._tasks = (
            asyncio.create_task(self._render_loop(), name="zenparticles-render"),
            asyncio.create_task(self._video_loop(), name="zenparticles-video"),
        )
        for task in self._tasks:
            task.add_done_callback(self._on_task_done)
        logger.info(f"▶️ Session started with {self.cfg.particles.count} particles ({SHAPE_LABELS[self.shape]})")

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"❌ {task.get_name()} stopped: {exc!r}")
        self._stopped.set()

    async def wait(self) -> None:
        """Block until a clock task dies on its own (error) or ``stop`` is called."""
        await self._stopped.wait()

    async def stop(self) -> None:
        """Cancel both clocks and wait until neither can run again."""
        tasks = self._tasks
        self._tasks = ()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"❌ {task.get_name()} failed: {e!r}")
        # the source may be closed right after this returns
        await self._drain_worker()
        self._stopped.set()
        if tasks:
            logger.info("⏹️ Session stopped")
