"""
Conversion of modality readings into weighted detections.

Each reading variant has its own free conversion function; they are looked
up by variant type in ``_CONVERTERS``. A conversion runs the relevant signal
processors, computes a per-modality confidence, applies the self-motion
compensation, rejects anything under the minimum confidence and finally
scales by the modality's sensor weight.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Optional, Type

from presence_fusion.core.rssi_analyzer import RssiAnalyzer
from presence_fusion.core.self_motion import SelfMotionDetector
from presence_fusion.core.spectral import detect_doppler_shift, one_sided_magnitudes
from presence_fusion.sensing.readings import (
    AccelerationReading,
    AcousticReading,
    BluetoothReading,
    DataSource,
    ModalityReading,
    OpticalReading,
    RangingReading,
    WifiReading,
    acoustic_samples_array,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.15

# Radio sub-score normalisation
RADIO_VARIANCE_SCALE = 50.0
RADIO_MAX_DISTANCE_M = 30.0
RADIO_RSSI_FLOOR_DBM = -100.0
RADIO_RSSI_SPAN_DB = 60.0

THROUGH_WALL_WEIGHT = 0.3
ACOUSTIC_MOTION_THRESHOLD = 0.3
OPTICAL_MOTION_THRESHOLD = 0.1


@dataclass(frozen=True)
class Detection:
    """A single weighted observation of something present."""

    source: DataSource
    confidence: float                 # 0.0 to 1.0, already weighted
    timestamp: float
    distance: Optional[float] = None  # Metres
    angle: Optional[float] = None     # Degrees
    is_moving: Optional[bool] = None


@dataclass(frozen=True)
class SensorWeights:
    """How much each modality's confidence counts after fusion."""

    wifi: float = 0.20
    bluetooth: float = 0.20
    acoustic: float = 0.25
    optical: float = 0.25
    ranging: float = 0.40

    def for_source(self, source: DataSource) -> float:
        return {
            DataSource.WIFI: self.wifi,
            DataSource.BLUETOOTH: self.bluetooth,
            DataSource.ACOUSTIC: self.acoustic,
            DataSource.OPTICAL: self.optical,
            DataSource.RANGING: self.ranging,
        }.get(source, 0.0)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp to ``[low, high]``; NaN maps to ``low``."""
    if math.isnan(value):
        return low
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Signal processors owned by the fusion pipeline
# ---------------------------------------------------------------------------

class SignalProcessors:
    """Rolling signal state shared by all conversion functions.

    Only the fusion engine's single consumer mutates this.
    """

    def __init__(
        self,
        bluetooth: Optional[RssiAnalyzer] = None,
        wifi: Optional[RssiAnalyzer] = None,
        self_motion: Optional[SelfMotionDetector] = None,
        doppler_history: int = 50,
    ) -> None:
        self.bluetooth = bluetooth or RssiAnalyzer()
        self.wifi = wifi or RssiAnalyzer()
        self.self_motion = self_motion or SelfMotionDetector()
        self._doppler: Deque[float] = deque(maxlen=doppler_history)

    def acoustic_motion_score(self, doppler_shift: Optional[float]) -> float:
        """Mean absolute Doppler shift over recent echoes, per 100 Hz."""
        if doppler_shift is not None and not math.isnan(doppler_shift):
            self._doppler.append(abs(doppler_shift))
        if not self._doppler:
            return 0.0
        return clamp(sum(self._doppler) / len(self._doppler) / 100.0)

    def compensation(self) -> float:
        """Self-motion multiplier; neutral until accelerometer data arrives."""
        if not self.self_motion.has_data:
            return 1.0
        return self.self_motion.compensation_factor()

    def reset(self) -> None:
        self.bluetooth.clear_all()
        self.wifi.clear_all()
        self.self_motion.reset()
        self._doppler.clear()


# ---------------------------------------------------------------------------
# Distance models
# ---------------------------------------------------------------------------

def estimate_ble_distance(rssi: float, tx_power: float = -59.0) -> Optional[float]:
    """Distance in metres from BLE RSSI using the ratio model."""
    if rssi == 0 or tx_power == 0:
        return None
    ratio = rssi / tx_power
    try:
        if ratio < 1.0:
            return ratio ** 10
        return 0.89976 * ratio ** 7.7095 + 0.111
    except OverflowError:
        return math.inf


def estimate_wifi_distance(rssi: float, frequency_mhz: float = 2400.0) -> Optional[float]:
    """Free-space path-loss distance in metres."""
    if frequency_mhz <= 0:
        return None
    exponent = (27.55 - 20.0 * math.log10(frequency_mhz) + abs(rssi)) / 20.0
    try:
        return 10.0 ** exponent
    except OverflowError:
        return math.inf


def radio_confidence(variance: float, distance: Optional[float], rssi: float) -> float:
    """0.5 variance + 0.3 proximity + 0.2 signal strength, each normalised."""
    variance_score = clamp(variance / RADIO_VARIANCE_SCALE)
    distance_score = 0.0 if distance is None else clamp(1.0 - distance / RADIO_MAX_DISTANCE_M)
    rssi_score = clamp((rssi - RADIO_RSSI_FLOOR_DBM) / RADIO_RSSI_SPAN_DB)
    return clamp(0.5 * variance_score + 0.3 * distance_score + 0.2 * rssi_score)


def acoustic_confidence(amplitude: float, quality: float, motion_score: float) -> float:
    motion = 1.0 if motion_score > ACOUSTIC_MOTION_THRESHOLD else 0.0
    return clamp(0.5 * clamp(amplitude) + 0.3 * clamp(quality) + 0.2 * motion)


def _weighted_detection(
    source: DataSource,
    confidence: float,
    timestamp: float,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
    distance: Optional[float] = None,
    angle: Optional[float] = None,
    is_moving: Optional[bool] = None,
) -> Optional[Detection]:
    compensated = clamp(confidence) * processors.compensation()
    if compensated < min_confidence:
        logger.debug(f"Rejected {source.value} reading: confidence {compensated:.3f} < {min_confidence}")
        return None

    return Detection(
        source=source,
        confidence=clamp(compensated * weights.for_source(source)),
        timestamp=timestamp,
        distance=distance,
        angle=angle,
        is_moving=is_moving,
    )


# ---------------------------------------------------------------------------
# Per-variant conversion
# ---------------------------------------------------------------------------

def bluetooth_detection(
    reading: BluetoothReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
) -> Optional[Detection]:
    processors.bluetooth.add_sample(reading.device_id, reading.rssi, reading.timestamp)

    variance = reading.variance
    if variance is None:
        variance = processors.bluetooth.calculate_variance(reading.device_id).variance

    distance = reading.distance
    if distance is None:
        distance = estimate_ble_distance(reading.rssi, reading.tx_power)

    return _weighted_detection(
        DataSource.BLUETOOTH,
        radio_confidence(variance, distance, reading.rssi),
        reading.timestamp,
        processors,
        weights,
        min_confidence,
        distance=distance,
        angle=reading.angle,
        is_moving=variance > RssiAnalyzer.MOTION_VARIANCE,
    )


def wifi_detection(
    reading: WifiReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
) -> Optional[Detection]:
    analyzer = processors.wifi
    analyzer.add_sample(reading.access_point_id, reading.rssi, reading.timestamp)
    stats = analyzer.calculate_variance(reading.access_point_id)
    through_wall = analyzer.detect_through_wall_presence()

    # Access points cannot localise, so the estimate only feeds the score.
    distance = estimate_wifi_distance(reading.rssi, reading.frequency_mhz)
    confidence = radio_confidence(stats.variance, distance, reading.rssi)
    if through_wall.detected:
        confidence = (1.0 - THROUGH_WALL_WEIGHT) * confidence + THROUGH_WALL_WEIGHT * through_wall.confidence

    return _weighted_detection(
        DataSource.WIFI,
        confidence,
        reading.timestamp,
        processors,
        weights,
        min_confidence,
        is_moving=stats.motion_detected or through_wall.is_walking,
    )


def acoustic_detection(
    reading: AcousticReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
) -> Optional[Detection]:
    if not reading.has_echo:
        return None

    shift = reading.doppler_shift
    samples = acoustic_samples_array(reading)
    if shift is None and samples is not None and reading.sample_rate and reading.carrier_hz:
        doppler = detect_doppler_shift(
            one_sided_magnitudes(samples, window="hann"),
            reading.sample_rate,
            reading.carrier_hz,
        )
        if doppler.detected_frequency is not None:
            shift = doppler.shift_hz

    motion_score = reading.motion_score
    if motion_score is None:
        motion_score = processors.acoustic_motion_score(shift)

    return _weighted_detection(
        DataSource.ACOUSTIC,
        acoustic_confidence(reading.amplitude, reading.quality, motion_score),
        reading.timestamp,
        processors,
        weights,
        min_confidence,
        distance=reading.distance,
        angle=reading.angle,
        is_moving=motion_score > ACOUSTIC_MOTION_THRESHOLD,
    )


def optical_detection(
    reading: OpticalReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
) -> Optional[Detection]:
    if not reading.motion_magnitude > OPTICAL_MOTION_THRESHOLD:
        return None
    return _weighted_detection(
        DataSource.OPTICAL,
        reading.motion_magnitude,
        reading.timestamp,
        processors,
        weights,
        min_confidence,
        angle=reading.angle,
        is_moving=True,
    )


def ranging_detection(
    reading: RangingReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
) -> Optional[Detection]:
    return _weighted_detection(
        DataSource.RANGING,
        reading.confidence,
        reading.timestamp,
        processors,
        weights,
        min_confidence,
        distance=reading.distance,
        angle=reading.azimuth,
    )


def acceleration_update(
    reading: AccelerationReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float,
) -> Optional[Detection]:
    """Feed the self-motion detector; the device's own motion is never a target."""
    processors.self_motion.add_reading(reading.x, reading.y, reading.z, reading.timestamp)
    return None


_CONVERTERS: Dict[Type[Any], Callable[..., Optional[Detection]]] = {
    BluetoothReading: bluetooth_detection,
    WifiReading: wifi_detection,
    AcousticReading: acoustic_detection,
    OpticalReading: optical_detection,
    RangingReading: ranging_detection,
    AccelerationReading: acceleration_update,
}


def reading_to_detection(
    reading: ModalityReading,
    processors: SignalProcessors,
    weights: SensorWeights,
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
) -> Optional[Detection]:
    """
    Convert one reading into a weighted detection.

    Returns None when the reading carries no detectable presence.

    Raises:
        TypeError: If ``reading`` is not a known modality variant.
    """
    converter = _CONVERTERS.get(type(reading))
    if converter is None:
        raise TypeError(f"Unsupported reading type: {type(reading).__name__}")
    return converter(reading, processors, weights, min_confidence)
