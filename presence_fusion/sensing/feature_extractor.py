"""
Presence feature extraction from batches of multi-modal readings.

Maintains bounded histories for radio RSSI, acoustic echo amplitude and
optical motion magnitude, and reduces each batch to a ``PresenceFeatures``
snapshot used by the presence classifier.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Deque, FrozenSet, Iterable, List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from presence_fusion.sensing.readings import (
    RADIO_SOURCES,
    DataSource,
    ModalityReading,
    SensorReading,
    as_sensor_reading,
)

if TYPE_CHECKING:
    from presence_fusion.fusion.tracker import PresenceTarget

logger = logging.getLogger(__name__)

# Cap on duration fed to a scoring model, in milliseconds.
MAX_MODEL_DURATION_MS = 60000.0
DEFAULT_TARGET_SIZE_M = 1.5


# ---------------------------------------------------------------------------
# Feature dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PresenceFeatures:
    """Snapshot of presence evidence for one classification call."""

    has_motion: bool = False
    motion_frequency_hz: float = 0.0
    breathing_frequency_hz: float = 0.0
    signal_variance: float = 0.0
    estimated_size_m: float = DEFAULT_TARGET_SIZE_M
    sensor_count: int = 0
    overall_confidence: float = 0.0     # 0.0 to 1.0
    duration_ms: float = 0.0
    sources: FrozenSet[DataSource] = field(default_factory=frozenset)

    def to_vector(self) -> NDArray[np.float32]:
        """Fixed-order numeric vector for a pluggable scoring model."""
        return np.array(
            [
                1.0 if self.has_motion else 0.0,
                self.motion_frequency_hz,
                self.breathing_frequency_hz,
                self.signal_variance,
                self.estimated_size_m,
                float(self.sensor_count),
                self.overall_confidence,
                min(self.duration_ms, MAX_MODEL_DURATION_MS) / 1000.0,
            ],
            dtype=np.float32,
        )


# ---------------------------------------------------------------------------
# Feature extractor
# ---------------------------------------------------------------------------

def _zero_crossings(values: NDArray[np.float64]) -> int:
    non_negative = (values - values.mean()) >= 0
    return int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))


class FeatureExtractor:
    """
    Reduces reading batches to ``PresenceFeatures``.

    Parameters
    ----------
    history_size : int
        Samples kept per history (radio, acoustic, optical).
    optical_rate_hz : float
        Assumed optical sampling rate for the motion-frequency estimate.
    radio_rate_hz : float
        Assumed radio sampling rate for the breathing estimate.
    """

    VARIANCE_THRESHOLD = 5.0
    ECHO_THRESHOLD = 0.1
    MOTION_THRESHOLD = 0.1

    MIN_OPTICAL_SAMPLES = 10
    OPTICAL_WINDOW = 30
    BREATHING_WINDOW = 50
    BREATHING_BAND_HZ = (0.15, 0.6)

    # Variance at which radio evidence saturates.
    RADIO_VARIANCE_SCALE = 50.0

    RADIO_WEIGHT = 0.3
    ACOUSTIC_WEIGHT = 0.35
    OPTICAL_WEIGHT = 0.35

    def __init__(
        self,
        history_size: int = 100,
        optical_rate_hz: float = 30.0,
        radio_rate_hz: float = 10.0,
        estimated_size_m: float = DEFAULT_TARGET_SIZE_M,
    ) -> None:
        self._radio: Deque[float] = deque(maxlen=history_size)
        self._acoustic: Deque[float] = deque(maxlen=history_size)
        self._optical: Deque[float] = deque(maxlen=history_size)
        self._optical_rate = optical_rate_hz
        self._radio_rate = radio_rate_hz
        self._size = estimated_size_m

    def clear_history(self) -> None:
        self._radio.clear()
        self._acoustic.clear()
        self._optical.clear()

    @property
    def history_lengths(self) -> dict:
        return {
            "radio": len(self._radio),
            "acoustic": len(self._acoustic),
            "optical": len(self._optical),
        }

    def extract(
        self, readings: Iterable[Union[SensorReading, ModalityReading]]
    ) -> PresenceFeatures:
        """
        Append a batch of readings to the histories and compute features.

        Parameters
        ----------
        readings : iterable of SensorReading or modality variants
            Readings of one observation window.

        Returns
        -------
        PresenceFeatures
        """
        return self._summarize(self.observe(readings))

    def observe(
        self, readings: Iterable[Union[SensorReading, ModalityReading]]
    ) -> List[SensorReading]:
        """Append readings to the histories without computing features."""
        samples = [as_sensor_reading(r) for r in readings]
        for sample in samples:
            if not sample.values:
                continue
            if sample.source in RADIO_SOURCES:
                self._radio.append(float(sample.values[0]))
            elif sample.source is DataSource.ACOUSTIC:
                self._acoustic.append(float(sample.values[0]))
            elif sample.source is DataSource.OPTICAL:
                self._optical.append(float(sample.values[0]))
        return samples

    def summarize(
        self, readings: Iterable[Union[SensorReading, ModalityReading]]
    ) -> PresenceFeatures:
        """
        Compute features over the current histories.

        ``readings`` supply the sources, duration and scanner-reported
        variance of the window; they are not appended again.
        """
        return self._summarize([as_sensor_reading(r) for r in readings])

    def _summarize(self, samples: List[SensorReading]) -> PresenceFeatures:
        if not samples:
            return PresenceFeatures()

        # -- radio --------------------------------------------------------------
        radio_variance = 0.0
        if self._radio:
            radio = np.fromiter(self._radio, dtype=np.float64)
            radio_variance = 0.0 if np.ptp(radio) == 0 else float(np.var(radio))
        # Scanner-side variance covers a window this extractor never saw.
        reported = [
            float(s.metadata["variance"]) for s in samples
            if s.source in RADIO_SOURCES and s.metadata.get("variance") is not None
        ]
        if reported:
            radio_variance = max(radio_variance, sum(reported) / len(reported))
        has_variance = radio_variance > self.VARIANCE_THRESHOLD

        # -- acoustic -----------------------------------------------------------
        peak_amplitude = max(self._acoustic) if self._acoustic else 0.0
        has_echo = peak_amplitude > self.ECHO_THRESHOLD

        # -- optical ------------------------------------------------------------
        optical_magnitude = 0.0
        motion_frequency = 0.0
        if self._optical:
            optical = np.fromiter(self._optical, dtype=np.float64)
            optical_magnitude = float(optical.mean())
            if optical.size > self.MIN_OPTICAL_SAMPLES:
                recent = optical[-self.OPTICAL_WINDOW:]
                motion_frequency = (
                    _zero_crossings(recent) * self._optical_rate / (2.0 * recent.size)
                )
        optical_motion = optical_magnitude > self.MOTION_THRESHOLD

        sources = frozenset(s.source for s in samples)
        timestamps = [s.timestamp for s in samples]

        return PresenceFeatures(
            has_motion=optical_motion or has_variance,
            motion_frequency_hz=motion_frequency,
            breathing_frequency_hz=self._breathing_frequency(),
            signal_variance=radio_variance,
            estimated_size_m=self._size,
            sensor_count=len(sources),
            overall_confidence=self._overall_confidence(
                min(radio_variance / self.RADIO_VARIANCE_SCALE, 1.0) if has_variance else None,
                peak_amplitude if has_echo else None,
                optical_magnitude if optical_motion else None,
            ),
            duration_ms=(max(timestamps) - min(timestamps)) * 1000.0,
            sources=sources,
        )

    def extract_from_target(
        self, target: "PresenceTarget", now: Optional[float] = None
    ) -> PresenceFeatures:
        """
        Derive features from a tracked target alone.

        Radial speed maps onto the motion frequency (0.7 m/s per Hz, capped at
        5 Hz) and the target confidence stands in for signal strength.
        """
        if now is None:
            now = target.last_updated

        motion_frequency = 0.0
        if target.velocity is not None:
            motion_frequency = min(max(target.velocity / 0.7, 0.0), 5.0)

        return PresenceFeatures(
            has_motion=bool(target.is_moving),
            motion_frequency_hz=motion_frequency,
            breathing_frequency_hz=0.0,
            signal_variance=target.confidence * 30.0,
            estimated_size_m=self._size,
            sensor_count=len(target.sources),
            overall_confidence=target.confidence,
            duration_ms=max(now - target.first_seen, 0.0) * 1000.0,
            sources=frozenset(target.sources),
        )

    # -- internals -----------------------------------------------------------

    def _breathing_frequency(self) -> float:
        if len(self._radio) < self.BREATHING_WINDOW:
            return 0.0
        recent = np.fromiter(self._radio, dtype=np.float64)[-self.BREATHING_WINDOW:]
        frequency = _zero_crossings(recent) * self._radio_rate / (2.0 * recent.size)
        low, high = self.BREATHING_BAND_HZ
        return frequency if low <= frequency <= high else 0.0

    def _overall_confidence(
        self,
        radio: Optional[float],
        acoustic: Optional[float],
        optical: Optional[float],
    ) -> float:
        """Blend evidence strengths of the modalities that flagged something.

        Absent modalities are dropped from the weight sum rather than
        contributing zero.
        """
        weighted = [
            (strength, weight)
            for strength, weight in (
                (radio, self.RADIO_WEIGHT),
                (acoustic, self.ACOUSTIC_WEIGHT),
                (optical, self.OPTICAL_WEIGHT),
            )
            if strength is not None
        ]
        total_weight = sum(weight for _, weight in weighted)
        if total_weight == 0:
            return 0.0
        score = sum(min(max(strength, 0.0), 1.0) * weight for strength, weight in weighted)
        return min(max(score / total_weight, 0.0), 1.0)
