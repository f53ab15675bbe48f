"""
Unit tests for reading-to-detection conversion.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from presence_fusion.fusion.detection import (
    SensorWeights,
    SignalProcessors,
    clamp,
    estimate_ble_distance,
    estimate_wifi_distance,
    radio_confidence,
    reading_to_detection,
)
from presence_fusion.sensing.readings import (
    AccelerationReading,
    AcousticReading,
    BluetoothReading,
    DataSource,
    OpticalReading,
    RangingReading,
    WifiReading,
)

WEIGHTS = SensorWeights()


def convert(reading, processors=None, min_confidence=0.15):
    return reading_to_detection(reading, processors or SignalProcessors(), WEIGHTS, min_confidence)


# ===========================================================================
# Distance models
# ===========================================================================

class TestDistanceModels:
    def test_ble_at_reference_power(self):
        assert estimate_ble_distance(-59.0, -59.0) == pytest.approx(0.89976 + 0.111)

    def test_ble_closer_than_reference(self):
        assert estimate_ble_distance(-50.0, -59.0) == pytest.approx((50.0 / 59.0) ** 10)

    def test_ble_undefined(self):
        assert estimate_ble_distance(0.0) is None
        assert estimate_ble_distance(-50.0, 0.0) is None

    def test_ble_overflow_is_infinite(self):
        assert estimate_ble_distance(-1e300) == math.inf

    def test_wifi_free_space(self):
        expected = 10 ** ((27.55 - 20 * math.log10(2400.0) + 50.0) / 20.0)
        assert estimate_wifi_distance(-50.0, 2400.0) == pytest.approx(expected)

    def test_wifi_needs_positive_frequency(self):
        assert estimate_wifi_distance(-50.0, 0.0) is None

    def test_clamp_maps_nan_to_low(self):
        assert clamp(float("nan")) == 0.0
        assert clamp(3.0) == 1.0
        assert clamp(-3.0) == 0.0

    def test_radio_confidence_without_distance(self):
        # 0.5 * 1.0 + 0.3 * 0 + 0.2 * 1.0
        assert radio_confidence(100.0, None, -40.0) == pytest.approx(0.7)


# ===========================================================================
# Per-modality conversion
# ===========================================================================

class TestConversion:
    def test_bluetooth(self):
        reading = BluetoothReading(
            device_id="phone", rssi=-50.0, timestamp=1.0, variance=40.0, distance=2.0, angle=10.0
        )
        detection = convert(reading)
        raw = 0.5 * 0.8 + 0.3 * (1 - 2.0 / 30.0) + 0.2 * (50.0 / 60.0)
        assert detection.source is DataSource.BLUETOOTH
        assert detection.confidence == pytest.approx(raw * 0.2)
        assert detection.distance == 2.0
        assert detection.angle == 10.0
        assert detection.is_moving

    def test_bluetooth_variance_from_history(self):
        processors = SignalProcessors()
        for i in range(10):
            convert(
                BluetoothReading(device_id="phone", rssi=-40.0 if i % 2 else -60.0, timestamp=i * 0.2),
                processors,
            )
        assert processors.bluetooth.calculate_variance("phone").variance == pytest.approx(100.0)

    def test_weak_bluetooth_is_rejected(self):
        reading = BluetoothReading(device_id="tag", rssi=-99.0, timestamp=0.0, distance=29.0)
        assert convert(reading) is None

    def test_wifi_never_localises(self):
        detection = convert(WifiReading(access_point_id="ap", rssi=-50.0, timestamp=0.0))
        assert detection is not None
        assert detection.source is DataSource.WIFI
        assert detection.distance is None
        assert detection.angle is None
        assert detection.is_moving is False

    def test_acoustic(self):
        reading = AcousticReading(
            has_echo=True, amplitude=0.9, quality=0.9, timestamp=0.0,
            distance=2.0, angle=10.0, motion_score=0.5,
        )
        detection = convert(reading)
        assert detection.confidence == pytest.approx((0.45 + 0.27 + 0.2) * 0.25)
        assert detection.is_moving
        assert detection.distance == 2.0

    def test_acoustic_without_echo(self):
        reading = AcousticReading(has_echo=False, amplitude=0.9, quality=0.9, timestamp=0.0)
        assert convert(reading) is None

    def test_acoustic_motion_from_doppler_history(self):
        processors = SignalProcessors()
        reading = AcousticReading(has_echo=True, amplitude=0.8, quality=0.8, timestamp=0.0, doppler_shift=80.0)
        detection = convert(reading, processors)
        assert processors.acoustic_motion_score(None) == pytest.approx(0.8)
        assert detection.is_moving

    def test_acoustic_doppler_from_raw_samples(self):
        sample_rate = 48000.0
        n = 4096
        echo = (1536 + 10) * sample_rate / n    # ~117 Hz above an 18 kHz carrier
        samples = np.sin(2 * np.pi * echo * np.arange(n) / sample_rate)
        reading = AcousticReading(
            has_echo=True, amplitude=0.8, quality=0.8, timestamp=0.0,
            samples=tuple(samples), sample_rate=sample_rate, carrier_hz=18000.0,
        )
        processors = SignalProcessors()
        detection = convert(reading, processors)
        assert detection.is_moving
        assert processors.acoustic_motion_score(None) == 1.0

    def test_optical(self):
        detection = convert(OpticalReading(sector=0, motion_magnitude=0.6, angle=20.0, timestamp=0.0))
        assert detection.confidence == pytest.approx(0.15)
        assert detection.angle == 20.0
        assert detection.distance is None
        assert detection.is_moving

    def test_faint_optical_motion_is_ignored(self):
        assert convert(OpticalReading(sector=0, motion_magnitude=0.05, angle=0.0, timestamp=0.0)) is None

    def test_ranging(self):
        detection = convert(RangingReading(distance=3.0, azimuth=-45.0, confidence=0.8, timestamp=0.0))
        assert detection.confidence == pytest.approx(0.32)
        assert detection.distance == 3.0
        assert detection.angle == -45.0

    def test_acceleration_updates_self_motion_only(self):
        processors = SignalProcessors()
        assert convert(AccelerationReading(x=0.0, y=0.0, z=9.81, timestamp=0.0), processors) is None
        assert processors.self_motion.sample_count == 1

    def test_unknown_reading_type(self):
        with pytest.raises(TypeError):
            convert("not a reading")

    def test_accelerometer_has_no_weight(self):
        assert WEIGHTS.for_source(DataSource.ACCELEROMETER) == 0.0


# ===========================================================================
# Self-motion compensation
# ===========================================================================

class TestCompensation:
    def test_neutral_without_accelerometer(self):
        assert SignalProcessors().compensation() == 1.0

    def test_moving_device_discounts_detections(self):
        processors = SignalProcessors()
        for i in range(30):
            z = 9.81 + (2.0 if i % 2 else -2.0)
            convert(AccelerationReading(x=0.0, y=0.0, z=z, timestamp=i / 50.0), processors)
        assert processors.compensation() == 0.5

        detection = convert(RangingReading(distance=3.0, azimuth=0.0, confidence=0.8, timestamp=1.0), processors)
        assert detection.confidence == pytest.approx(0.8 * 0.5 * 0.4)

    def test_compensation_can_push_below_minimum(self):
        processors = SignalProcessors()
        for i in range(30):
            z = 9.81 + (2.0 if i % 2 else -2.0)
            convert(AccelerationReading(x=0.0, y=0.0, z=z, timestamp=i / 50.0), processors)
        reading = RangingReading(distance=3.0, azimuth=0.0, confidence=0.25, timestamp=1.0)
        assert convert(reading, processors) is None


# ===========================================================================
# Confidence bounds
# ===========================================================================

EXTREMES = [0.0, 1e300, -1e300, math.inf, -math.inf, math.nan]


def extreme_readings():
    for value in EXTREMES:
        yield BluetoothReading(device_id="b", rssi=value, timestamp=0.0, variance=value, distance=value)
        yield BluetoothReading(device_id="b", rssi=value, timestamp=0.0)
        yield WifiReading(access_point_id="w", rssi=value, timestamp=0.0, frequency_mhz=5200.0)
        yield AcousticReading(
            has_echo=True, amplitude=value, quality=value, timestamp=0.0, doppler_shift=value
        )
        yield OpticalReading(sector=3, motion_magnitude=value, angle=value, timestamp=0.0)
        yield RangingReading(distance=value, azimuth=value, confidence=value, timestamp=0.0)


class TestConfidenceBounds:
    @pytest.mark.filterwarnings("ignore::RuntimeWarning")
    def test_confidence_always_in_unit_interval(self):
        processors = SignalProcessors()
        for reading in extreme_readings():
            detection = convert(reading, processors, min_confidence=0.0)
            if detection is not None:
                assert 0.0 <= detection.confidence <= 1.0, reading
