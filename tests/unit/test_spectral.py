"""
Unit tests for the spectral analysis primitives.

Tests cover:
    - Radix-2 FFT against a reference implementation
    - Peak location for bin-centred tones
    - Window functions and one-sided spectra
    - Peak picking and Doppler shift estimation
"""

from __future__ import annotations

import numpy as np
import pytest
from numpy.typing import NDArray
from scipy import fft as scipy_fft

from presence_fusion.core.spectral import (
    InvalidInputError,
    MovementDirection,
    apply_hamming_window,
    apply_hann_window,
    detect_doppler_shift,
    fft,
    find_peak_frequency,
    find_peaks,
    is_power_of_two,
    magnitude_spectrum,
    next_power_of_two,
    one_sided_magnitudes,
    power_spectrum,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_tone(freq_hz: float, sample_rate: float, n_samples: int) -> NDArray[np.float64]:
    """Pure sine tone."""
    t = np.arange(n_samples) / sample_rate
    return np.sin(2 * np.pi * freq_hz * t)


# ===========================================================================
# FFT
# ===========================================================================

class TestFFT:
    def test_matches_reference_fft(self):
        rng = np.random.default_rng(7)
        samples = rng.normal(size=256)
        result = fft(samples)
        reference = scipy_fft.fft(samples)

        assert result.shape == (512,)
        np.testing.assert_allclose(result[0::2], reference.real, atol=1e-9)
        np.testing.assert_allclose(result[1::2], reference.imag, atol=1e-9)

    @pytest.mark.parametrize("n", [8, 16, 32, 64, 128, 256, 512, 1024])
    def test_bin_centred_tone_peaks_at_its_bin(self, n):
        for k in {1, n // 8, n // 4, n // 2 - 1}:
            samples = np.sin(2 * np.pi * k * np.arange(n) / n)
            half = magnitude_spectrum(fft(samples))[: n // 2]
            assert abs(int(np.argmax(half)) - k) <= 1

    def test_single_sample(self):
        result = fft([3.0])
        np.testing.assert_allclose(result, [3.0, 0.0])

    @pytest.mark.parametrize("n", [0, 3, 6, 100])
    def test_rejects_non_power_of_two(self, n):
        with pytest.raises(InvalidInputError):
            fft(np.zeros(n))

    def test_rejects_multidimensional_input(self):
        with pytest.raises(InvalidInputError):
            fft(np.zeros((4, 4)))

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            fft([1.0, 2.0, 3.0])

    def test_power_is_squared_magnitude(self):
        result = fft(make_tone(5.0, 64.0, 64))
        np.testing.assert_allclose(power_spectrum(result), magnitude_spectrum(result) ** 2)

    def test_power_of_two_helpers(self):
        assert is_power_of_two(1)
        assert is_power_of_two(1024)
        assert not is_power_of_two(0)
        assert not is_power_of_two(12)
        assert next_power_of_two(0) == 1
        assert next_power_of_two(5) == 8
        assert next_power_of_two(64) == 64


# ===========================================================================
# Windows and one-sided spectra
# ===========================================================================

class TestWindows:
    def test_hann_is_zero_at_the_edges(self):
        windowed = apply_hann_window(np.ones(16))
        assert windowed[0] == pytest.approx(0.0)
        assert windowed[-1] == pytest.approx(0.0)

    def test_hamming_edges(self):
        windowed = apply_hamming_window(np.ones(16))
        assert windowed[0] == pytest.approx(0.08)
        assert windowed[-1] == pytest.approx(0.08)

    def test_windows_are_symmetric(self):
        for apply in (apply_hann_window, apply_hamming_window):
            windowed = apply(np.ones(33))
            np.testing.assert_allclose(windowed, windowed[::-1])

    def test_one_sided_pads_to_power_of_two(self):
        mags = one_sided_magnitudes(np.ones(100))
        assert mags.shape == (64,)

    def test_one_sided_rejects_empty(self):
        with pytest.raises(InvalidInputError):
            one_sided_magnitudes([])

    def test_one_sided_rejects_unknown_window(self):
        with pytest.raises(InvalidInputError):
            one_sided_magnitudes(np.ones(8), window="kaiser")


# ===========================================================================
# Peak picking
# ===========================================================================

class TestPeaks:
    def test_peak_frequency_of_bin_centred_tone(self):
        sample_rate = 1000.0
        n = 512
        k = 40
        freq = k * sample_rate / n
        mags = one_sided_magnitudes(make_tone(freq, sample_rate, n), window=None)

        peak = find_peak_frequency(mags, sample_rate)
        assert peak is not None
        assert peak.bin_index == k
        assert peak.frequency == pytest.approx(freq, abs=sample_rate / n)

    def test_peak_restricted_to_band(self):
        sample_rate = 1000.0
        n = 512
        tones = make_tone(100.0, sample_rate, n) * 2 + make_tone(300.0, sample_rate, n)
        mags = one_sided_magnitudes(tones)

        peak = find_peak_frequency(mags, sample_rate, min_freq=200.0, max_freq=400.0)
        assert peak is not None
        assert peak.frequency == pytest.approx(300.0, abs=2.0)

    def test_empty_band_returns_none(self):
        mags = np.ones(64)
        assert find_peak_frequency(mags, 1000.0, min_freq=400.0, max_freq=300.0) is None
        assert find_peak_frequency(np.ones(1), 1000.0) is None

    def test_find_peaks_sorted_by_magnitude(self):
        mags = np.zeros(64)
        mags[10] = 5.0
        mags[30] = 9.0
        mags[50] = 2.0
        peaks = find_peaks(mags, 128.0, threshold=1.0)
        assert [p.bin_index for p in peaks] == [30, 10, 50]
        assert peaks[0].frequency == pytest.approx(30.0)

    def test_find_peaks_suppresses_close_neighbours(self):
        mags = np.zeros(64)
        mags[10] = 5.0
        mags[12] = 8.0
        peaks = find_peaks(mags, 128.0, threshold=1.0, min_peak_distance=5)
        assert [p.bin_index for p in peaks] == [10]

    def test_find_peaks_respects_threshold(self):
        mags = np.zeros(64)
        mags[20] = 0.5
        assert find_peaks(mags, 128.0, threshold=1.0) == []


# ===========================================================================
# Doppler
# ===========================================================================

class TestDoppler:
    SAMPLE_RATE = 48000.0
    N = 4096
    BIN_WIDTH = SAMPLE_RATE / N
    CARRIER = 18000.0   # Exactly bin 1536

    def _mags(self, freq: float) -> NDArray[np.float64]:
        return one_sided_magnitudes(make_tone(freq, self.SAMPLE_RATE, self.N), window=None)

    def test_approaching_echo(self):
        echo = (1536 + 10) * self.BIN_WIDTH
        result = detect_doppler_shift(self._mags(echo), self.SAMPLE_RATE, self.CARRIER)
        assert result.shift_hz == pytest.approx(10 * self.BIN_WIDTH, abs=1.0)
        assert result.is_moving
        assert result.direction is MovementDirection.APPROACHING

    def test_receding_echo(self):
        echo = (1536 - 10) * self.BIN_WIDTH
        result = detect_doppler_shift(self._mags(echo), self.SAMPLE_RATE, self.CARRIER)
        assert result.shift_hz < 0
        assert result.direction is MovementDirection.RECEDING

    def test_stationary_echo(self):
        result = detect_doppler_shift(self._mags(self.CARRIER), self.SAMPLE_RATE, self.CARRIER)
        assert abs(result.shift_hz) < 1.0
        assert not result.is_moving
        assert result.direction is MovementDirection.STATIONARY

    def test_carrier_outside_spectrum(self):
        result = detect_doppler_shift(self._mags(self.CARRIER), self.SAMPLE_RATE, 30000.0)
        assert result.detected_frequency is None
        assert result.direction is MovementDirection.UNKNOWN
        assert not result.is_moving
