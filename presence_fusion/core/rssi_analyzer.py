"""RSSI variance and pattern analysis across radio devices.

Keeps a time-windowed sample buffer per device / access-point id and derives
variance statistics, breathing and walking patterns, an aggregate presence
score and a through-wall presence signature.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VarianceResult:
    """Variance statistics for one device."""

    variance: float
    mean: float
    std_dev: float
    is_stable: bool
    motion_detected: bool


@dataclass(frozen=True)
class ThroughWallResult:
    """Aggregate breathing/walking signature across all tracked devices."""

    detected: bool
    confidence: float
    breathing_ratio: float
    walking_ratio: float
    is_breathing: bool
    is_walking: bool


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def _population_variance(values: np.ndarray) -> float:
    # A constant stream must report exactly zero.
    if np.ptp(values) == 0:
        return 0.0
    return float(np.var(values))


def _zero_crossings(values: np.ndarray) -> int:
    """Count sign changes of the mean-centred signal."""
    centred = values - values.mean()
    non_negative = centred >= 0
    return int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))


class RssiAnalyzer:
    """
    Per-device RSSI statistics.

    Parameters
    ----------
    window_seconds : float
        Samples older than this (relative to the newest sample) are dropped.
    max_samples : int
        Hard cap on samples kept per device.
    """

    MIN_SAMPLES_FOR_VARIANCE = 5
    MIN_SAMPLES_FOR_PATTERN = 20
    MIN_SAMPLES_FOR_WALKING = 10
    MIN_BREATHING_SPAN_S = 5.0

    STABLE_VARIANCE = 5.0
    MOTION_VARIANCE = 25.0
    WALKING_VARIANCE = 50.0

    BREATHING_BAND_HZ = (0.15, 0.6)

    def __init__(self, window_seconds: float = 30.0, max_samples: int = 500) -> None:
        self._window = window_seconds
        self._max_samples = max_samples
        self._history: Dict[str, Deque[Tuple[float, float]]] = {}

    # -- sample management ---------------------------------------------------

    def add_sample(self, device_id: str, rssi: float, timestamp: float) -> None:
        """Record an RSSI sample (dBm) taken at ``timestamp`` (seconds)."""
        history = self._history.get(device_id)
        if history is None:
            history = deque(maxlen=self._max_samples)
            self._history[device_id] = history

        history.append((timestamp, float(rssi)))

        cutoff = timestamp - self._window
        while history and history[0][0] < cutoff:
            history.popleft()

    def clear_device(self, device_id: str) -> None:
        self._history.pop(device_id, None)

    def clear_all(self) -> None:
        self._history.clear()

    @property
    def device_count(self) -> int:
        return len(self._history)

    @property
    def device_ids(self) -> List[str]:
        return list(self._history)

    def sample_count(self, device_id: str) -> int:
        return len(self._history.get(device_id, ()))

    def _values(self, device_id: str) -> np.ndarray:
        history = self._history.get(device_id, ())
        return np.fromiter((rssi for _, rssi in history), dtype=np.float64, count=len(history))

    # -- statistics ----------------------------------------------------------

    def calculate_variance(self, device_id: str) -> VarianceResult:
        """
        Variance statistics for ``device_id``.

        Unknown devices report zeros. With fewer than five samples the
        variance is reported as zero and only the mean is meaningful.
        """
        values = self._values(device_id)
        if values.size == 0:
            return VarianceResult(0.0, 0.0, 0.0, is_stable=True, motion_detected=False)

        mean = float(values.mean())
        if values.size < self.MIN_SAMPLES_FOR_VARIANCE:
            return VarianceResult(0.0, mean, 0.0, is_stable=True, motion_detected=False)

        variance = _population_variance(values)
        return VarianceResult(
            variance=variance,
            mean=mean,
            std_dev=float(np.sqrt(variance)),
            is_stable=variance < self.STABLE_VARIANCE,
            motion_detected=variance > self.MOTION_VARIANCE,
        )

    def detect_breathing_pattern(self, device_id: str) -> bool:
        """True when the zero-crossing frequency falls in the breathing band."""
        history = self._history.get(device_id)
        if history is None or len(history) < self.MIN_SAMPLES_FOR_PATTERN:
            return False

        values = self._values(device_id)
        span = history[-1][0] - history[0][0]
        if span < self.MIN_BREATHING_SPAN_S:
            return False

        frequency = _zero_crossings(values) / (2.0 * span)
        low, high = self.BREATHING_BAND_HZ
        return low <= frequency <= high

    def detect_walking_pattern(self, device_id: str) -> bool:
        """True when RSSI fluctuates strongly enough to indicate walking."""
        values = self._values(device_id)
        if values.size < self.MIN_SAMPLES_FOR_WALKING:
            return False
        return _population_variance(values) > self.WALKING_VARIANCE

    def presence_score(self) -> float:
        """Aggregate presence score across every tracked device."""
        if not self._history:
            return 0.0

        results = [self.calculate_variance(device_id) for device_id in self._history]
        avg_variance = sum(r.variance for r in results) / len(results)
        motion_fraction = sum(1 for r in results if r.motion_detected) / len(results)
        return _clamp(0.6 * _clamp(avg_variance / 100.0) + 0.4 * motion_fraction)

    def detect_through_wall_presence(self) -> ThroughWallResult:
        """Combine breathing and walking signatures of well-sampled devices."""
        eligible = [
            device_id for device_id, history in self._history.items()
            if len(history) >= self.MIN_SAMPLES_FOR_PATTERN
        ]
        if not eligible:
            return ThroughWallResult(False, 0.0, 0.0, 0.0, False, False)

        breathing = sum(1 for d in eligible if self.detect_breathing_pattern(d))
        walking = sum(1 for d in eligible if self.detect_walking_pattern(d))
        breathing_ratio = breathing / len(eligible)
        walking_ratio = walking / len(eligible)

        return ThroughWallResult(
            detected=breathing_ratio > 0.3 or walking_ratio > 0.2,
            confidence=_clamp(0.6 * breathing_ratio + 0.4 * walking_ratio),
            breathing_ratio=breathing_ratio,
            walking_ratio=walking_ratio,
            is_breathing=breathing_ratio > 0.3,
            is_walking=walking_ratio > 0.2,
        )
