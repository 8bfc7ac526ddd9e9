"""
Unit tests for the signal stages: colour extraction, buffering, filtering,
peak-based rate estimation and quality scoring.
Run with:  pytest tests/
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_monitor.color_extractor import (
    AlgorithmMode,
    channel_means,
    chrom_algorithm,
    extract_sample,
    pos_algorithm,
)
from rppg_monitor.filtering import bandpass_filter, detrend_and_smooth
from rppg_monitor.quality import (
    LightingState,
    MotionState,
    assess_lighting,
    assess_motion,
    compute_confidence,
    score_quality,
    snr_from_confidence,
)
from rppg_monitor.rate_estimator import (
    EstimateStatus,
    estimate_bpm,
    find_peaks,
    is_plausible,
)
from rppg_monitor.roi import ROI
from rppg_monitor.signal_buffer import Sample, SignalBuffer


def _make_frame(r, g, b, shape=(8, 8)) -> np.ndarray:
    """Uniform BGR frame."""
    frame = np.zeros(shape + (3,), dtype=np.float64)
    frame[:, :, 0] = b
    frame[:, :, 1] = g
    frame[:, :, 2] = r
    return frame


def _sine(freq_hz, n, fs=30.0, amplitude=1.0, offset=0.0) -> np.ndarray:
    t = np.arange(n) / fs
    return offset + amplitude * np.sin(2 * np.pi * freq_hz * t)


# ---------------------------------------------------------------------------
# ColorExtractor
# ---------------------------------------------------------------------------

class TestColorExtractor:

    def test_channel_means_uniform_frame(self):
        frame = _make_frame(r=80, g=120, b=40)
        assert channel_means(frame, ROI(0, 0, 8, 8)) == pytest.approx((80.0, 120.0, 40.0))

    def test_channel_means_uses_stride(self):
        """Only every 4th pixel in row-major order is sampled."""
        frame = np.zeros((2, 4, 3), dtype=np.uint8)
        frame[0, 0] = (0, 10, 0)
        frame[1, 0] = (0, 30, 0)
        frame[0, 1] = (0, 255, 0)     # not sampled with stride 4
        r, g, b = channel_means(frame, ROI(0, 0, 4, 2), stride=4)
        assert g == pytest.approx(20.0)

    def test_roi_outside_frame_gives_no_sample(self):
        frame = _make_frame(100, 100, 100)
        roi = ROI(20, 20, 5, 5)
        assert channel_means(frame, roi) is None
        assert extract_sample(frame, roi) is None

    def test_green_channel_mode(self):
        frame = _make_frame(r=90, g=133, b=70)
        assert extract_sample(frame, ROI(0, 0, 8, 8)) == pytest.approx(133.0)

    def test_chrom_achromatic_is_zero(self):
        for level in (1.0, 87.5, 255.0):
            assert chrom_algorithm(level, level, level) == pytest.approx(0.0)

    def test_chrom_black_frame_is_zero(self):
        assert chrom_algorithm(0.0, 0.0, 0.0) == 0.0

    def test_chrom_value(self):
        # mean = 100 → chrR = 0.2, chrG = 0.0
        assert chrom_algorithm(120.0, 100.0, 80.0) == pytest.approx(0.6)

    def test_pos_value(self):
        assert pos_algorithm(100.0, 100.0, 100.0) == pytest.approx(64.0)

    def test_mode_accepts_string(self):
        frame = _make_frame(r=120, g=100, b=80)
        value = extract_sample(frame, ROI(0, 0, 8, 8), mode="chrom")
        assert value == pytest.approx(0.6)

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError):
            AlgorithmMode("ica")

    def test_fractional_roi_is_floored(self):
        assert ROI(1.7, 0.2, 2.9, 2.2).as_int() == (1, 0, 2, 2)

    def test_infinite_mean_gives_no_sample(self):
        frame = np.full((8, 8, 3), 100.0)
        frame[0, 0, 1] = np.inf
        assert extract_sample(frame, ROI(0, 0, 8, 8), AlgorithmMode.GREEN_CHANNEL, stride=1) is None


# ---------------------------------------------------------------------------
# SignalBuffer
# ---------------------------------------------------------------------------

class TestSignalBuffer:

    def test_never_exceeds_capacity_and_evicts_oldest(self):
        buf = SignalBuffer(window_size=5)
        for i in range(8):
            buf.append(Sample(float(i), i / 30.0))
            assert len(buf) <= 5
        snap = buf.snapshot()
        assert list(snap.values) == [3.0, 4.0, 5.0, 6.0, 7.0]
        assert snap.timestamps == pytest.approx([3 / 30, 4 / 30, 5 / 30, 6 / 30, 7 / 30])

    def test_snapshot_is_a_copy(self):
        buf = SignalBuffer(window_size=10)
        buf.append(Sample(1.0, 0.0))
        snap = buf.snapshot()
        buf.append(Sample(2.0, 0.1))
        assert len(snap) == 1
        assert len(buf) == 2

    def test_reset_clears_and_bumps_generation(self):
        buf = SignalBuffer(window_size=10)
        for i in range(4):
            buf.append(Sample(float(i), float(i)))
        gen = buf.generation
        buf.reset()
        assert len(buf) == 0
        assert buf.fill_ratio == 0.0
        assert buf.generation == gen + 1

    def test_resize_keeps_newest(self):
        buf = SignalBuffer(window_size=10)
        for i in range(10):
            buf.append(Sample(float(i), float(i)))
        buf.resize(3)
        assert buf.window_size == 3
        assert list(buf.snapshot().values) == [7.0, 8.0, 9.0]

    def test_tail(self):
        buf = SignalBuffer(window_size=10)
        for i in range(5):
            buf.append(Sample(float(i), float(i)))
        assert list(buf.tail(3)) == [2.0, 3.0, 4.0]
        assert list(buf.tail(30)) == [0.0, 1.0, 2.0, 3.0, 4.0]

    def test_invalid_window_size(self):
        with pytest.raises(ValueError):
            SignalBuffer(window_size=0)


# ---------------------------------------------------------------------------
# Detrender / smoother
# ---------------------------------------------------------------------------

def _reference_smooth(values, half_window=3):
    x = np.asarray(values, dtype=np.float64)
    x = x - x.mean()
    out = []
    for i in range(len(x)):
        lo, hi = max(0, i - half_window), min(len(x) - 1, i + half_window)
        out.append(x[lo:hi + 1].mean())
    return np.array(out)


class TestFiltering:

    def test_short_sequence_passes_through(self):
        values = [5.0, 6.0, 7.0]
        assert list(detrend_and_smooth(values)) == values

    def test_matches_clipped_moving_average(self):
        rng = np.random.default_rng(0)
        values = 100 + rng.normal(0, 2, 200)
        smoothed = detrend_and_smooth(values)
        assert len(smoothed) == len(values)
        assert np.allclose(smoothed, _reference_smooth(values))

    def test_constant_signal_becomes_zero(self):
        assert np.allclose(detrend_and_smooth(np.full(50, 42.0)), 0.0)

    def test_bandpass_removes_offset_and_keeps_pulse(self):
        fs = 30.0
        signal = _sine(1.2, 300, fs=fs, amplitude=1.0, offset=50.0)
        filtered = bandpass_filter(signal, fs, 0.4, 3.5)
        middle = filtered[50:-50]
        assert len(filtered) == len(signal)
        assert abs(middle.mean()) < 0.1
        assert 0.8 < middle.max() < 1.2

    def test_bandpass_short_signal_unchanged(self):
        values = np.arange(10, dtype=np.float64)
        assert np.array_equal(bandpass_filter(values, 30.0), values)


# ---------------------------------------------------------------------------
# Peak-based rate estimator
# ---------------------------------------------------------------------------

class TestRateEstimator:

    def test_min_distance_rejects_close_peak(self):
        """Equal maxima at 5 and 12: only the first is accepted."""
        signal = np.zeros(20)
        signal[5] = 1.0
        signal[12] = 1.0
        assert find_peaks(signal) == [5]

    def test_peaks_at_min_distance_accepted(self):
        signal = np.zeros(30)
        signal[5] = 1.0
        signal[15] = 1.0
        assert find_peaks(signal) == [5, 15]

    def test_threshold_is_strict(self):
        signal = np.zeros(20)
        signal[5] = 0.3
        signal[15] = 0.31
        assert find_peaks(signal) == [15]

    def test_plateau_and_edges_not_peaks(self):
        signal = np.zeros(20)
        signal[0] = 5.0
        signal[19] = 5.0
        signal[8] = signal[9] = 1.0
        assert find_peaks(signal) == []

    @pytest.mark.parametrize("freq_hz", [0.9, 1.2, 1.5, 2.0])
    def test_synthetic_sine(self, freq_hz):
        """A clean sine at f Hz yields ≈ 60·f BPM."""
        signal = detrend_and_smooth(_sine(freq_hz, 300, amplitude=2.0, offset=100.0))
        estimate = estimate_bpm(signal, sampling_rate=30.0)
        assert estimate.ok
        assert estimate.bpm == pytest.approx(freq_hz * 60.0, abs=2.0)

    def test_peak_every_20_samples_is_90_bpm(self):
        signal = detrend_and_smooth(np.sin(2 * np.pi * np.arange(150) / 20))
        estimate = estimate_bpm(signal, sampling_rate=30.0)
        assert estimate.ok
        assert estimate.mean_interval == pytest.approx(20.0)
        assert estimate.bpm == pytest.approx(90.0)
        assert is_plausible(estimate.bpm)

    def test_insufficient_data(self):
        estimate = estimate_bpm(np.ones(63))
        assert estimate.status is EstimateStatus.INSUFFICIENT_DATA
        assert estimate.bpm is None

    def test_too_few_peaks(self):
        estimate = estimate_bpm(np.zeros(100))
        assert estimate.status is EstimateStatus.TOO_FEW_PEAKS
        assert not estimate.ok

    def test_plausibility_bounds_inclusive(self):
        assert is_plausible(45.0)
        assert is_plausible(180.0)
        assert not is_plausible(44.9)
        assert not is_plausible(180.1)
        assert not is_plausible(None)


# ---------------------------------------------------------------------------
# QualityScorer
# ---------------------------------------------------------------------------

class TestQuality:

    def test_confidence_zero_below_window(self):
        assert compute_confidence(np.full(29, 100.0)) == 0.0

    def test_confidence_fifty_when_flat(self):
        assert compute_confidence(np.full(30, 100.0)) == 50.0

    def test_confidence_uses_only_recent_samples(self):
        values = np.concatenate([np.linspace(-500, 500, 40), np.full(30, 7.0)])
        assert compute_confidence(values) == 50.0

    def test_confidence_from_coefficient_of_variation(self):
        values = np.tile([90.0, 110.0], 15)      # mean 100, std 10
        assert compute_confidence(values) == pytest.approx(90.0)

    def test_confidence_zero_mean(self):
        values = np.tile([-1.0, 1.0], 15)
        assert compute_confidence(values) == 0.0

    def test_confidence_zero_for_non_finite_window(self):
        values = np.full(30, 100.0)
        values[-1] = np.inf
        assert compute_confidence(values) == 0.0
        values[-1] = np.nan
        assert compute_confidence(values) == 0.0

    def test_confidence_always_in_range(self):
        rng = np.random.default_rng(7)
        for _ in range(50):
            values = rng.normal(rng.uniform(-50, 50), rng.uniform(0, 100), 40)
            assert 0.0 <= compute_confidence(values) <= 100.0

    def test_snr(self):
        assert snr_from_confidence(90.0) == pytest.approx(9.0)
        assert snr_from_confidence(-5.0) == 0.0

    @pytest.mark.parametrize("level, expected", [
        (30, LightingState.TOO_DARK),
        (120, LightingState.GOOD),
        (220, LightingState.TOO_BRIGHT),
    ])
    def test_lighting(self, level, expected):
        frame = _make_frame(level, level, level)
        assert assess_lighting(frame, ROI(0, 0, 8, 8)) is expected

    def test_lighting_unknown_without_roi(self):
        frame = _make_frame(120, 120, 120)
        assert assess_lighting(frame, None) is LightingState.UNKNOWN
        assert assess_lighting(frame, ROI(100, 100, 4, 4)) is LightingState.UNKNOWN

    def test_motion(self):
        assert assess_motion(True) is MotionState.LOW
        assert assess_motion(False) is MotionState.HIGH

    def test_score_quality_without_face(self):
        frame = _make_frame(120, 120, 120)
        report = score_quality(np.full(30, 5.0), frame, ROI(0, 0, 8, 8), face_detected=False)
        assert report.confidence == 50.0
        assert report.snr == pytest.approx(5.0)
        assert report.lighting is LightingState.UNKNOWN
        assert report.motion is MotionState.HIGH
