"""
Signal processors: spectral analysis, RSSI statistics and self-motion detection.
"""

from presence_fusion.core.spectral import (
    DopplerResult,
    InvalidInputError,
    MovementDirection,
    PeakResult,
    detect_doppler_shift,
    fft,
    find_peak_frequency,
    find_peaks,
    magnitude_spectrum,
    power_spectrum,
)
from presence_fusion.core.rssi_analyzer import RssiAnalyzer, ThroughWallResult, VarianceResult
from presence_fusion.core.self_motion import MotionState, SelfMotionDetector

__all__ = [
    "DopplerResult",
    "InvalidInputError",
    "MovementDirection",
    "PeakResult",
    "detect_doppler_shift",
    "fft",
    "find_peak_frequency",
    "find_peaks",
    "magnitude_spectrum",
    "power_spectrum",
    "RssiAnalyzer",
    "ThroughWallResult",
    "VarianceResult",
    "MotionState",
    "SelfMotionDetector",
]
