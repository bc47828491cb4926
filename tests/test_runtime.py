"""
Test cases for the session runtime: the signal cell, both clocks and teardown.
"""
import asyncio
import time
import unittest

import numpy as np

from zenparticles.config import load_config
from zenparticles.renderer_mock import MockRenderer
from zenparticles.runtime import ParticleSession, SignalCell
from zenparticles.shapes import generate
from zenparticles.types import NEUTRAL_SIGNAL, GestureSignal, HandLandmarkFrame, ShapeTargetError, ShapeType

from synthetic import frame

COUNT = 300


class ScriptedSource:
    """Landmark source replaying a fixed list of (timestamp, frame) pairs."""

    def __init__(self, script):
        self.script = list(script)
        self.index = 0
        self.detect_calls = []

    def current_time_ms(self) -> float:
        return self.script[self.index][0]

    def detect(self, timestamp_ms):
        self.detect_calls.append(timestamp_ms)
        result = self.script[self.index][1]
        if self.index < len(self.script) - 1:
            self.index += 1
        if isinstance(result, Exception):
            raise result
        return result


class StreamingSource:
    """Advances 33ms on every clock read, never runs out of frames."""

    def __init__(self, stalled: bool = False):
        self.now = 0.0
        self.stalled = stalled
        self.detect_calls = 0

    def current_time_ms(self) -> float:
        if not self.stalled:
            self.now += 33.0
        return self.now

    def detect(self, timestamp_ms):
        self.detect_calls += 1
        return frame((0.4, 0.5), (0.6, 0.5))


class SlowSource(StreamingSource):
    """Detection blocks its worker thread for ``delay`` seconds."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay
        self.busy = False

    def detect(self, timestamp_ms):
        self.busy = True
        time.sleep(self.delay)
        result = super().detect(timestamp_ms)
        self.busy = False
        return result


class FailingRenderer:

    def draw(self, positions, transform):
        raise RuntimeError("display lost")


def make_config():
    cfg = load_config()
    cfg.particles.count = COUNT
    return cfg


class TestSignalCell(unittest.TestCase):

    def test_latest_value_wins(self):
        cell = SignalCell()
        self.assertIs(cell.latest(), NEUTRAL_SIGNAL)
        a = GestureSignal(expansion=0.1)
        b = GestureSignal(expansion=0.9)
        cell.publish(a)
        cell.publish(b)
        self.assertIs(cell.latest(), b)

    def test_read_without_write_reuses_snapshot(self):
        cell = SignalCell()
        signal = GestureSignal(tension=0.3)
        cell.publish(signal)
        self.assertIs(cell.latest(), signal)
        self.assertIs(cell.latest(), signal)


class TestSessionTicks(unittest.TestCase):

    def setUp(self):
        self.cfg = make_config()
        self.renderer = MockRenderer()

    def _session(self, source, **kwargs):
        return ParticleSession(self.cfg, source, self.renderer, rng=np.random.default_rng(5), **kwargs)

    def test_repeated_video_time_skips_detection(self):
        source = ScriptedSource([(100.0, frame((0.5, 0.5))), (100.0, None)])
        source.current_time_ms = lambda: 100.0
        session = self._session(source)

        self.assertIsNotNone(session.video_tick())
        self.assertIsNone(session.video_tick())
        self.assertIsNone(session.video_tick())
        self.assertEqual(source.detect_calls, [100.0])

    def test_detector_exception_counts_as_no_hands(self):
        source = ScriptedSource([(100.0, RuntimeError("model crashed"))])
        session = self._session(source)
        with self.assertLogs("zenparticles.runtime", level="WARNING"):
            signal = session.video_tick()
        self.assertFalse(signal.is_present)
        self.assertIs(session.signals.latest(), signal)

    def test_unreadable_detection_counts_as_no_hands(self):
        ragged = [[0.5, 0.5]] * 20 + [[0.5]]
        source = ScriptedSource([(100.0, frame((0.3, 0.5))), (133.0, None)])
        session = self._session(source)
        session.video_tick()

        source.script[1] = (133.0, HandLandmarkFrame(hands=[ragged]))
        with self.assertLogs("zenparticles.gestures", level="WARNING"):
            signal = session.video_tick()
        self.assertFalse(signal.is_present)
        self.assertIs(session.signals.latest(), signal)

    def test_render_tick_reads_latest_signal_and_draws_buffer(self):
        source = ScriptedSource([(100.0, frame((0.2, 0.5)))])
        session = self._session(source)

        session.render_tick()
        self.assertEqual(self.renderer.draw_count, 1)
        self.assertIs(self.renderer.last_positions, session.engine.state.positions)

        published = session.video_tick()
        self.assertTrue(published.is_present)
        session.render_tick()
        session.render_tick()  # no new signal: same snapshot reused
        self.assertEqual(self.renderer.draw_count, 3)
        self.assertIs(session.signals.latest(), published)

    def test_clap_through_video_path_triggers_explosion(self):
        # two hands side by side sweeping fast across the frame
        script = [
            (1000.0 + i * 33.0, frame((0.1 + 0.04 * i, 0.5), (0.15 + 0.04 * i, 0.5)))
            for i in range(12)
        ]
        source = ScriptedSource(script)
        session = self._session(source)

        triggered_at = None
        for i in range(len(script)):
            signal = session.video_tick()
            if session.engine.state.explosion_active and triggered_at is None:
                triggered_at = i
                self.assertGreater(signal.velocity, 0.4)
                self.assertLess(signal.expansion, 0.25)
                velocities = session.engine.state.explosion_velocities.copy()
        self.assertIsNotNone(triggered_at)
        # later qualifying frames did not re-trigger
        np.testing.assert_array_equal(session.engine.state.explosion_velocities, velocities)

    def test_change_shape_keeps_positions(self):
        session = self._session(StreamingSource())
        positions = session.engine.state.positions
        before = positions.copy()

        session.change_shape(ShapeType.GALAXY)
        self.assertEqual(session.shape, ShapeType.GALAXY)
        self.assertIs(session.engine.state.positions, positions)
        np.testing.assert_array_equal(positions, before)

    def test_bad_provider_output_is_fatal_and_keeps_shape(self):
        def provider(shape, count):
            if shape is ShapeType.HEART:
                return np.zeros(count * 3 - 3, dtype=np.float32)
            if shape is ShapeType.DNA:
                raise OSError("sampler crashed")
            return generate(shape, count)

        session = self._session(StreamingSource(), provider=provider)
        targets = session.engine.state.targets

        with self.assertLogs("zenparticles.runtime", level="ERROR"):
            with self.assertRaises(ShapeTargetError):
                session.change_shape(ShapeType.HEART)
        with self.assertLogs("zenparticles.runtime", level="ERROR"):
            with self.assertRaises(ShapeTargetError):
                session.change_shape(ShapeType.DNA)

        self.assertEqual(session.shape, ShapeType.SPHERE)
        self.assertIs(session.engine.state.targets, targets)

    def test_initial_provider_failure_is_fatal(self):
        with self.assertRaises(ShapeTargetError):
            self._session(StreamingSource(), provider=lambda shape, count: np.zeros(3))


class TestSessionClocks(unittest.IsolatedAsyncioTestCase):

    async def test_start_runs_both_clocks_and_stop_cancels(self):
        cfg = make_config()
        renderer = MockRenderer()
        source = StreamingSource()
        session = ParticleSession(cfg, source, renderer)

        session.start()
        self.assertTrue(session.running)
        await asyncio.sleep(0.2)
        await session.stop()
        self.assertFalse(session.running)

        self.assertGreater(renderer.draw_count, 0)
        self.assertGreater(source.detect_calls, 0)
        self.assertTrue(session.signals.latest().is_present)

        draws, detects = renderer.draw_count, source.detect_calls
        await asyncio.sleep(0.1)
        self.assertEqual(renderer.draw_count, draws)
        self.assertEqual(source.detect_calls, detects)

    async def test_stop_waits_for_detection_in_flight(self):
        cfg = make_config()
        source = SlowSource(delay=0.3)
        session = ParticleSession(cfg, source, MockRenderer())

        session.start()
        await asyncio.sleep(0.1)
        self.assertTrue(source.busy)

        await session.stop()
        self.assertFalse(source.busy)
        self.assertEqual(source.detect_calls, 1)

        await asyncio.sleep(0.4)
        self.assertEqual(source.detect_calls, 1)
        self.assertFalse(source.busy)

    async def test_stalled_video_never_redetects(self):
        cfg = make_config()
        source = StreamingSource(stalled=True)
        source.now = 500.0
        session = ParticleSession(cfg, source, MockRenderer())

        session.start()
        await asyncio.sleep(0.15)
        await session.stop()
        self.assertEqual(source.detect_calls, 1)

    async def test_clock_failure_ends_wait(self):
        cfg = make_config()
        session = ParticleSession(cfg, StreamingSource(), FailingRenderer())

        session.start()
        with self.assertLogs("zenparticles.runtime", level="ERROR"):
            await asyncio.wait_for(session.wait(), timeout=2.0)
            await session.stop()
        self.assertFalse(session.running)


if __name__ == '__main__':
    unittest.main()
