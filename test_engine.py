"""
Engine tests: lifecycle (grid, image, fallbacks), toggle gating and the
per-frame idle motion fed to the renderer. No window or GL context needed.

Usage:
    pytest test_engine.py
"""

import math
import os
import tempfile
import unittest
from unittest import mock

import cv2
import numpy as np

import engine
from engine import (
    FrameInputs, FrameUpdater, HeartEngine,
    STATE_UNINITIALIZED, STATE_LOADING, STATE_READY, STATE_FAILED,
)
from image_source import TargetPoints
from morph import STATE_PHOTO
from particles import MAX_PARTICLES


class FakeClock:
    def __init__(self, t=0.0):
        self.t = t

    def __call__(self):
        return self.t


class TestFrameUpdater(unittest.TestCase):
    def test_heart_sways_and_beats(self):
        up = FrameUpdater()
        f = up.update(2.0, 0.0)
        self.assertIsInstance(f, FrameInputs)
        self.assertAlmostEqual(f.rotation_angle, math.sin(2.0 * 0.5) * 0.2)
        self.assertAlmostEqual(f.pulse_scale, 1.0 + math.sin(2.0 * 4.0) * 0.03)
        self.assertEqual(f.morph_value, 0.0)
        self.assertEqual(f.elapsed, 2.0)

    def test_photo_has_no_pulse_and_settles(self):
        up = FrameUpdater()
        up.update(3.0, 0.0)
        start = abs(up.rotation_angle)
        self.assertGreater(start, 0.0)

        f = up.update(3.0 + 1 / 60, 1.0, dt=1 / 60)
        self.assertEqual(f.pulse_scale, 1.0)
        self.assertAlmostEqual(abs(f.rotation_angle), start * 0.95)

        for i in range(600):
            f = up.update(4.0 + i / 60, 0.8, dt=1 / 60)
        self.assertLess(abs(f.rotation_angle), 1e-6)

    def test_smoothing_is_frame_rate_independent(self):
        a, b = FrameUpdater(), FrameUpdater()
        a.rotation_angle = b.rotation_angle = 0.2
        for _ in range(4):
            a.update(0.0, 1.0, dt=1 / 120)
        for _ in range(2):
            b.update(0.0, 1.0, dt=1 / 60)
        self.assertAlmostEqual(a.rotation_angle, b.rotation_angle)

    def test_pulse_bounds(self):
        up = FrameUpdater()
        for t in np.linspace(0, 20, 400):
            f = up.update(float(t), 0.2)
            self.assertGreaterEqual(f.pulse_scale, 0.97 - 1e-12)
            self.assertLessEqual(f.pulse_scale, 1.03 + 1e-12)


class TestGridEngine(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock(100.0)
        self.engine = HeartEngine(particle_count=400, rng=np.random.default_rng(0),
                                  clock=self.clock, duration=2.0)

    def test_nothing_before_start(self):
        self.assertEqual(self.engine.state, STATE_UNINITIALIZED)
        self.assertIsNone(self.engine.tick())
        self.assertFalse(self.engine.toggle())

    def test_grid_ready_immediately(self):
        self.engine.start()
        self.assertEqual(self.engine.state, STATE_READY)
        self.assertEqual(self.engine.source_kind, "grid")
        self.assertEqual(self.engine.field.count, 400)

        f = self.engine.tick()
        self.assertEqual(f.elapsed, 0.0)
        self.assertEqual(f.morph_value, 0.0)

    def test_toggle_drives_morph(self):
        self.engine.start()
        self.assertTrue(self.engine.toggle())
        self.clock.t += 1.0
        mid = self.engine.tick().morph_value
        self.assertGreater(mid, 0.0)
        self.assertLess(mid, 1.0)

        self.clock.t += 1.5
        f = self.engine.tick()
        self.assertEqual(f.morph_value, 1.0)
        self.assertEqual(f.pulse_scale, 1.0)
        self.assertEqual(self.engine.animator.state, STATE_PHOTO)
        self.assertEqual(f.elapsed, 2.5)

    def test_value_stays_in_range_under_toggle_spam(self):
        self.engine.start()
        for i in range(500):
            self.clock.t += 1 / 60
            if i % 7 == 0:
                self.engine.toggle()
            v = self.engine.tick().morph_value
            self.assertTrue(0.0 <= v <= 1.0)

    def test_oversized_grid_refuses_to_animate(self):
        eng = HeartEngine(particle_count=MAX_PARTICLES + 1, clock=self.clock)
        eng.start()
        self.assertEqual(eng.state, STATE_FAILED)
        self.assertIsNone(eng.field)
        self.assertIsNone(eng.tick())
        self.assertFalse(eng.toggle())

    def test_count_mismatch_refuses_to_animate(self):
        with mock.patch.object(engine, "build_field",
                               side_effect=engine.CountMismatchError("3 vs 4")):
            self.engine.start()
        self.assertEqual(self.engine.state, STATE_FAILED)
        self.assertIsNone(self.engine.field)
        self.assertIsNone(self.engine.tick())
        self.assertFalse(self.engine.toggle())


class TestImageEngine(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, img):
        path = os.path.join(self.tmp, name)
        cv2.imwrite(path, img)
        return path

    def test_image_field_count_from_qualifying_pixels(self):
        bgra = np.full((8, 8, 4), 255, dtype=np.uint8)
        bgra[:4, :, 3] = 0
        path = self._write("top_clear.png", bgra)

        eng = HeartEngine(path, raster_size=(8, 8), rng=np.random.default_rng(1))
        eng.start()
        self.assertEqual(eng.state, STATE_LOADING)
        self.assertFalse(eng.toggle())

        eng.wait_for_image(5.0)
        f = eng.tick()
        self.assertIsNotNone(f)
        self.assertEqual(eng.state, STATE_READY)
        self.assertEqual(eng.source_kind, "image")
        self.assertEqual(eng.field.count, 32)
        self.assertEqual(eng.field.source.shape, (32, 3))
        # Only the bottom half survives, which sits below the origin
        self.assertTrue(np.all(eng.field.target[:, 1] <= 0.0))

    def test_missing_image_falls_back_to_grid(self):
        eng = HeartEngine(os.path.join(self.tmp, "missing.jpg"), particle_count=50)
        eng.start()
        eng.wait_for_image(5.0)
        self.assertIsNotNone(eng.tick())
        self.assertEqual(eng.state, STATE_FAILED)
        self.assertEqual(eng.source_kind, "grid")
        self.assertEqual(eng.field.count, 50)
        self.assertTrue(eng.toggle())

    def test_fully_transparent_image_falls_back_to_grid(self):
        path = self._write("clear.png", np.zeros((6, 6, 4), dtype=np.uint8))
        eng = HeartEngine(path, particle_count=25, raster_size=(6, 6))
        eng.start()
        eng.wait_for_image(5.0)
        eng.tick()
        self.assertEqual(eng.state, STATE_FAILED)
        self.assertEqual(eng.field.count, 25)

    def test_slow_image_times_out(self):
        class StuckLoader:
            def __init__(self, path, w, h, timeout, clock):
                self._start = clock()
                self.timeout = timeout
                self.done = False
                self.error = None

            def poll(self):
                return None

            def timed_out(self, now):
                return now - self._start >= self.timeout

            def join(self, timeout=None):
                pass

        clock = FakeClock(0.0)
        with mock.patch.object(engine, "ImageLoader", StuckLoader):
            eng = HeartEngine("slow.jpg", particle_count=16, load_timeout=5.0, clock=clock)
            eng.start()

        clock.t = 4.9
        self.assertIsNone(eng.tick())
        self.assertEqual(eng.state, STATE_LOADING)

        clock.t = 5.0
        self.assertIsNotNone(eng.tick())
        self.assertEqual(eng.state, STATE_FAILED)
        self.assertEqual(eng.field.count, 16)

    def test_oversized_image_falls_back_to_grid(self):
        path = self._write("big.png", np.full((16, 16, 3), 200, dtype=np.uint8))
        eng = HeartEngine(path, particle_count=64, raster_size=(400, 400))
        eng.start()
        eng.wait_for_image(5.0)
        self.assertIsNotNone(eng.tick())
        self.assertEqual(eng.state, STATE_FAILED)
        self.assertEqual(eng.source_kind, "grid")
        self.assertEqual(eng.field.count, 64)
        # Later frames keep working
        self.assertIsNotNone(eng.tick())

    def test_built_field_matches_targets(self):
        targets = TargetPoints(np.zeros((3, 3), np.float32), np.ones((3, 3), np.float32))
        with mock.patch.object(engine, "build_grid_targets", return_value=targets):
            eng = HeartEngine(particle_count=3)
            eng.start()
        self.assertEqual(eng.field.count, 3)


if __name__ == "__main__":
    unittest.main()
