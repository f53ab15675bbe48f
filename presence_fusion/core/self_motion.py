"""Self-motion detection from accelerometer magnitude.

Distinguishes a stationary device from one that is moving or being carried
by a walking user, and derives the confidence multiplier the fusion engine
applies to every other modality.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MotionState:
    """Snapshot of the device's own motion."""

    is_moving: bool
    is_walking: bool
    is_stationary: bool
    step_frequency: float
    motion_magnitude: float
    compensation_factor: float


class SelfMotionDetector:
    """
    Tracks accelerometer magnitude over a rolling window.

    Time is taken from sample timestamps (seconds), so "now" is the timestamp
    of the newest sample.

    Parameters
    ----------
    window_seconds : float
        Length of the magnitude history.
    movement_variance_threshold : float
        Variance of the last 20 magnitudes above which the device is moving.
    stationary_hold_seconds : float
        How long the device must stay still before it counts as stationary.
    """

    MIN_SAMPLES_FOR_MOTION = 10
    MOTION_WINDOW = 20
    MIN_SAMPLES_FOR_WALKING = 50
    STEP_WINDOW = 100
    MIN_SAMPLES_FOR_STEPS = 20
    MIN_STEP_SPAN_S = 1.0
    WALKING_BAND_HZ = (0.8, 3.0)

    WALKING_COMPENSATION = 0.3
    MOVING_COMPENSATION = 0.5
    STATIONARY_COMPENSATION = 1.0
    SETTLING_COMPENSATION = 0.8

    def __init__(
        self,
        window_seconds: float = 10.0,
        movement_variance_threshold: float = 0.5,
        stationary_hold_seconds: float = 3.0,
    ) -> None:
        self._window = window_seconds
        self._variance_threshold = movement_variance_threshold
        self._hold = stationary_hold_seconds
        self._history: Deque[Tuple[float, float]] = deque()
        self._still_since: Optional[float] = None
        self._movement_start: Optional[float] = None

    @property
    def sample_count(self) -> int:
        return len(self._history)

    @property
    def has_data(self) -> bool:
        return bool(self._history)

    @property
    def movement_start(self) -> Optional[float]:
        """Timestamp at which the current movement episode began, if moving."""
        return self._movement_start

    def add_reading(self, x: float, y: float, z: float, timestamp: float) -> None:
        """Record a tri-axis acceleration sample (m/s^2)."""
        magnitude = math.sqrt(x * x + y * y + z * z)
        self._history.append((timestamp, magnitude))

        cutoff = timestamp - self._window
        while self._history and self._history[0][0] < cutoff:
            self._history.popleft()

        if self.is_moving():
            self._still_since = None
            if self._movement_start is None:
                self._movement_start = timestamp
        else:
            self._movement_start = None
            if self._still_since is None:
                self._still_since = timestamp

    def reset(self) -> None:
        self._history.clear()
        self._still_since = None
        self._movement_start = None

    def _magnitudes(self, last_n: int) -> np.ndarray:
        recent = list(self._history)[-last_n:]
        return np.fromiter((m for _, m in recent), dtype=np.float64, count=len(recent))

    def _recent_variance(self) -> float:
        values = self._magnitudes(self.MOTION_WINDOW)
        if values.size == 0 or np.ptp(values) == 0:
            return 0.0
        return float(np.var(values))

    def is_moving(self) -> bool:
        if len(self._history) < self.MIN_SAMPLES_FOR_MOTION:
            return False
        return self._recent_variance() > self._variance_threshold

    def step_frequency(self) -> float:
        """Half the zero-crossing rate of the last 100 magnitudes, in Hz."""
        recent = list(self._history)[-self.STEP_WINDOW:]
        if len(recent) < self.MIN_SAMPLES_FOR_STEPS:
            return 0.0

        span = recent[-1][0] - recent[0][0]
        if span < self.MIN_STEP_SPAN_S:
            return 0.0

        values = np.fromiter((m for _, m in recent), dtype=np.float64, count=len(recent))
        non_negative = (values - values.mean()) >= 0
        crossings = int(np.count_nonzero(non_negative[1:] != non_negative[:-1]))
        return crossings / (2.0 * span)

    def is_walking(self) -> bool:
        if len(self._history) < self.MIN_SAMPLES_FOR_WALKING:
            return False
        low, high = self.WALKING_BAND_HZ
        return low <= self.step_frequency() <= high

    def is_stationary(self) -> bool:
        """Still for at least the hold period."""
        if not self._history or self._still_since is None or self.is_moving():
            return False
        now = self._history[-1][0]
        return now - self._still_since >= self._hold

    def motion_magnitude(self) -> float:
        """Normalised motion intensity in [0, 1]."""
        return min(math.sqrt(self._recent_variance()), 10.0) / 10.0

    def compensation_factor(self) -> float:
        """Confidence multiplier for the other modalities."""
        if self.is_walking():
            return self.WALKING_COMPENSATION
        if self.is_moving():
            return self.MOVING_COMPENSATION
        if self.is_stationary():
            return self.STATIONARY_COMPENSATION
        return self.SETTLING_COMPENSATION

    def get_state(self) -> MotionState:
        return MotionState(
            is_moving=self.is_moving(),
            is_walking=self.is_walking(),
            is_stationary=self.is_stationary(),
            step_frequency=self.step_frequency(),
            motion_magnitude=self.motion_magnitude(),
            compensation_factor=self.compensation_factor(),
        )
