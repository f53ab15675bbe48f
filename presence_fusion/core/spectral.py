"""Spectral analysis for acoustic and radio signals.

Iterative radix-2 FFT with interleaved real/imaginary output, magnitude and
power spectra, peak search with parabolic interpolation, Doppler shift
estimation and leakage-reducing windows.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

import numpy as np
from scipy.signal import windows

logger = logging.getLogger(__name__)

# Shift magnitude (Hz) above which the reflector is considered moving.
DOPPLER_MOTION_THRESHOLD_HZ = 20.0
DEFAULT_DOPPLER_SEARCH_RANGE_HZ = 500.0

ArrayLike = Union[Sequence[float], np.ndarray]


class InvalidInputError(ValueError):
    """Raised when spectral input is empty or not a power of two in length."""
    pass


class MovementDirection(Enum):
    """Radial direction of a moving reflector."""

    APPROACHING = "approaching"
    RECEDING = "receding"
    STATIONARY = "stationary"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PeakResult:
    """A spectral peak."""

    frequency: float
    magnitude: float
    bin_index: int


@dataclass(frozen=True)
class DopplerResult:
    """Outcome of a Doppler shift search around an expected carrier."""

    shift_hz: float
    detected_frequency: Optional[float]
    is_moving: bool
    direction: MovementDirection


def is_power_of_two(n: int) -> bool:
    """Return True if ``n`` is a positive power of two."""
    return n > 0 and (n & (n - 1)) == 0


def next_power_of_two(n: int) -> int:
    """Smallest power of two greater than or equal to ``n``."""
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def _bit_reversal_permutation(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    indices = np.arange(n)
    reversed_indices = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        reversed_indices |= ((indices >> b) & 1) << (bits - 1 - b)
    return reversed_indices


def fft(samples: ArrayLike) -> np.ndarray:
    """Compute the FFT of a real signal.

    Args:
        samples: Real-valued input whose length is a power of two.

    Returns:
        Interleaved spectrum ``[re0, im0, re1, im1, ...]`` of length ``2 * n``.

    Raises:
        InvalidInputError: If the input is empty or its length is not a power of two.
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.ndim != 1:
        raise InvalidInputError(f"FFT input must be one-dimensional, got shape {data.shape}")
    n = data.shape[0]
    if not is_power_of_two(n):
        raise InvalidInputError(f"FFT size must be a power of 2, got {n}")

    spectrum = data.astype(np.complex128)[_bit_reversal_permutation(n)]

    # Butterfly stages: groups of ``span`` points combine two halves of ``half``.
    half = 1
    while half < n:
        span = 2 * half
        twiddles = np.exp(-1j * np.pi * np.arange(half) / half)
        groups = spectrum.reshape(-1, span)
        top = groups[:, :half].copy()
        bottom = groups[:, half:] * twiddles
        groups[:, :half] = top + bottom
        groups[:, half:] = top - bottom
        half = span

    interleaved = np.empty(2 * n, dtype=np.float64)
    interleaved[0::2] = spectrum.real
    interleaved[1::2] = spectrum.imag
    return interleaved


def magnitude_spectrum(fft_result: ArrayLike) -> np.ndarray:
    """Magnitude of each bin of an interleaved FFT result."""
    data = np.asarray(fft_result, dtype=np.float64)
    return np.hypot(data[0::2], data[1::2])


def power_spectrum(fft_result: ArrayLike) -> np.ndarray:
    """Power (squared magnitude) of each bin of an interleaved FFT result."""
    data = np.asarray(fft_result, dtype=np.float64)
    return data[0::2] ** 2 + data[1::2] ** 2


def apply_hamming_window(samples: ArrayLike) -> np.ndarray:
    """Multiply ``samples`` by a symmetric Hamming window."""
    data = np.asarray(samples, dtype=np.float64)
    return data * windows.hamming(data.shape[0], sym=True)


def apply_hann_window(samples: ArrayLike) -> np.ndarray:
    """Multiply ``samples`` by a symmetric Hann window."""
    data = np.asarray(samples, dtype=np.float64)
    return data * windows.hann(data.shape[0], sym=True)


def one_sided_magnitudes(samples: ArrayLike, window: Optional[str] = "hann") -> np.ndarray:
    """Window, zero-pad to a power of two and return the first half of the magnitude spectrum.

    Args:
        samples: Real-valued time series of any non-zero length.
        window: ``"hann"``, ``"hamming"`` or None.

    Returns:
        Magnitudes of bins ``0 .. N/2 - 1`` of the padded transform.
    """
    data = np.asarray(samples, dtype=np.float64)
    if data.shape[0] == 0:
        raise InvalidInputError("Cannot analyse an empty signal")

    if window == "hann":
        data = apply_hann_window(data)
    elif window == "hamming":
        data = apply_hamming_window(data)
    elif window is not None:
        raise InvalidInputError(f"Unknown window: {window}")

    size = next_power_of_two(data.shape[0])
    padded = np.zeros(size, dtype=np.float64)
    padded[: data.shape[0]] = data
    magnitudes = magnitude_spectrum(fft(padded))
    return magnitudes[: max(size // 2, 1)]


def find_peak_frequency(
    magnitudes: ArrayLike,
    sample_rate: float,
    min_freq: float = 0.0,
    max_freq: float = math.inf,
) -> Optional[PeakResult]:
    """Locate the strongest bin inside a frequency band.

    ``magnitudes`` is the one-sided spectrum (the first N/2 bins of an N-point
    transform), so each bin spans ``sample_rate / (2 * len(magnitudes))`` Hz.
    The peak frequency is refined with parabolic interpolation over the
    neighbouring bins.

    Args:
        magnitudes: One-sided magnitude spectrum.
        sample_rate: Sampling rate of the time-domain signal in Hz.
        min_freq: Lower band edge in Hz.
        max_freq: Upper band edge in Hz.

    Returns:
        The peak, or None when the band contains no searchable bins.
    """
    mags = np.asarray(magnitudes, dtype=np.float64)
    n = mags.shape[0]
    if n < 2:
        return None

    bin_width = sample_rate / (n * 2)
    min_bin = max(int(min_freq / bin_width), 1)
    max_bin = n - 1 if math.isinf(max_freq) else min(int(max_freq / bin_width), n - 1)
    if min_bin >= max_bin:
        return None

    peak_bin = min_bin + int(np.argmax(mags[min_bin:max_bin + 1]))
    peak_mag = float(mags[peak_bin])

    offset = 0.0
    if 0 < peak_bin < n - 1:
        alpha = mags[peak_bin - 1]
        beta = mags[peak_bin]
        gamma = mags[peak_bin + 1]
        denominator = alpha - 2.0 * beta + gamma
        if denominator != 0.0:
            offset = float(0.5 * (alpha - gamma) / denominator)

    return PeakResult(
        frequency=(peak_bin + offset) * bin_width,
        magnitude=peak_mag,
        bin_index=peak_bin,
    )


def find_peaks(
    magnitudes: ArrayLike,
    sample_rate: float,
    threshold: float,
    min_peak_distance: int = 5,
) -> List[PeakResult]:
    """Find local maxima above ``threshold``.

    Peaks closer than ``min_peak_distance`` bins to the previously accepted
    peak are suppressed. The result is sorted by magnitude, strongest first.
    """
    mags = np.asarray(magnitudes, dtype=np.float64)
    n = mags.shape[0]
    if n < 3:
        return []

    bin_width = sample_rate / (n * 2)
    peaks: List[PeakResult] = []
    last_peak_bin = -min_peak_distance

    for i in range(1, n - 1):
        if (
            mags[i] > threshold
            and mags[i] > mags[i - 1]
            and mags[i] > mags[i + 1]
            and i - last_peak_bin >= min_peak_distance
        ):
            peaks.append(PeakResult(frequency=i * bin_width, magnitude=float(mags[i]), bin_index=i))
            last_peak_bin = i

    peaks.sort(key=lambda p: p.magnitude, reverse=True)
    return peaks


def detect_doppler_shift(
    magnitudes: ArrayLike,
    sample_rate: float,
    expected_frequency: float,
    search_range: float = DEFAULT_DOPPLER_SEARCH_RANGE_HZ,
) -> DopplerResult:
    """Estimate the Doppler shift of an echo around a known carrier.

    Args:
        magnitudes: One-sided magnitude spectrum of the received signal.
        sample_rate: Sampling rate in Hz.
        expected_frequency: Transmitted carrier frequency in Hz.
        search_range: Half-width of the search band around the carrier.

    Returns:
        DopplerResult; direction is UNKNOWN when no peak could be found.
    """
    peak = find_peak_frequency(
        magnitudes,
        sample_rate,
        min_freq=expected_frequency - search_range,
        max_freq=expected_frequency + search_range,
    )
    if peak is None:
        return DopplerResult(
            shift_hz=0.0,
            detected_frequency=None,
            is_moving=False,
            direction=MovementDirection.UNKNOWN,
        )

    shift = peak.frequency - expected_frequency
    if shift > DOPPLER_MOTION_THRESHOLD_HZ:
        direction = MovementDirection.APPROACHING
    elif shift < -DOPPLER_MOTION_THRESHOLD_HZ:
        direction = MovementDirection.RECEDING
    else:
        direction = MovementDirection.STATIONARY

    return DopplerResult(
        shift_hz=shift,
        detected_frequency=peak.frequency,
        is_moving=abs(shift) > DOPPLER_MOTION_THRESHOLD_HZ,
        direction=direction,
    )
