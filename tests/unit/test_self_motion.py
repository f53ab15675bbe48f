"""
Unit tests for accelerometer-based self-motion detection.
"""

from __future__ import annotations

import math

import pytest

from presence_fusion.core.self_motion import SelfMotionDetector

GRAVITY = 9.81


def feed_still(detector: SelfMotionDetector, duration_s: float, rate_hz: float = 50.0, start: float = 0.0):
    for i in range(int(duration_s * rate_hz)):
        detector.add_reading(0.0, 0.0, GRAVITY, start + i / rate_hz)


def feed_shaking(detector: SelfMotionDetector, duration_s: float, rate_hz: float = 50.0, start: float = 0.0):
    """Sample-to-sample jitter of +/- 2 m/s^2."""
    for i in range(int(duration_s * rate_hz)):
        z = GRAVITY + (2.0 if i % 2 == 0 else -2.0)
        detector.add_reading(0.0, 0.0, z, start + i / rate_hz)


def feed_walking(
    detector: SelfMotionDetector,
    duration_s: float,
    step_hz: float = 2.0,
    rate_hz: float = 50.0,
    start: float = 0.0,
):
    for i in range(int(duration_s * rate_hz)):
        t = i / rate_hz
        z = GRAVITY + 3.0 * math.sin(2 * math.pi * step_hz * t)
        detector.add_reading(0.0, 0.0, z, start + t)


class TestSelfMotionDetector:
    def test_no_data(self):
        detector = SelfMotionDetector()
        assert not detector.has_data
        assert not detector.is_moving()
        assert not detector.is_stationary()
        assert detector.step_frequency() == 0.0
        assert detector.compensation_factor() == 0.8

    def test_becomes_stationary_after_hold(self):
        detector = SelfMotionDetector()
        feed_still(detector, 2.0)
        assert not detector.is_moving()
        assert not detector.is_stationary()
        assert detector.compensation_factor() == 0.8

        feed_still(detector, 2.0, start=2.0)
        assert detector.is_stationary()
        assert detector.compensation_factor() == 1.0

    def test_shaking_is_moving_but_not_walking(self):
        detector = SelfMotionDetector()
        feed_shaking(detector, 2.0)
        assert detector.is_moving()
        assert not detector.is_walking()
        assert not detector.is_stationary()
        assert detector.compensation_factor() == 0.5
        # Ten samples are needed before motion can be declared
        assert detector.movement_start == pytest.approx(9 / 50.0)

    def test_walking_cadence(self):
        detector = SelfMotionDetector()
        feed_walking(detector, 3.0, step_hz=2.0)
        assert detector.step_frequency() == pytest.approx(2.0, abs=0.3)
        assert detector.is_walking()
        assert detector.compensation_factor() == 0.3

    def test_motion_magnitude_is_normalised(self):
        detector = SelfMotionDetector()
        for i in range(20):
            detector.add_reading(0.0, 0.0, GRAVITY + (100.0 if i % 2 else 0.0), i / 50.0)
        assert detector.motion_magnitude() == 1.0

        still = SelfMotionDetector()
        feed_still(still, 1.0)
        assert still.motion_magnitude() == 0.0

    def test_window_eviction(self):
        detector = SelfMotionDetector(window_seconds=10.0)
        detector.add_reading(0.0, 0.0, GRAVITY, 0.0)
        detector.add_reading(0.0, 0.0, GRAVITY, 11.0)
        assert detector.sample_count == 1

    def test_state_snapshot(self):
        detector = SelfMotionDetector()
        feed_walking(detector, 3.0)
        state = detector.get_state()
        assert state.is_moving
        assert state.is_walking
        assert not state.is_stationary
        assert state.compensation_factor == 0.3
        assert 0.0 <= state.motion_magnitude <= 1.0

    def test_reset(self):
        detector = SelfMotionDetector()
        feed_shaking(detector, 1.0)
        detector.reset()
        assert not detector.has_data
        assert detector.movement_start is None
        assert not detector.is_moving()
