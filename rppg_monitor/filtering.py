"""
Signal conditioning ahead of peak detection.

:func:`detrend_and_smooth` is the default stage: DC removal followed by a
centred 7-tap moving average.  It is *not* a bandpass filter; the nominal
cutoffs carried in :class:`~rppg_monitor.pipeline.MonitorConfig`
(0.4 – 3.5 Hz) are only used when the optional Butterworth stage,
:func:`bandpass_filter`, is switched on.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.signal import butter, sosfiltfilt

logger = logging.getLogger(__name__)


def detrend_and_smooth(
    values: Sequence[float] | np.ndarray,
    half_window: int = 3,
    min_length: int = 10,
) -> np.ndarray:
    """
    Remove the mean from *values* and smooth with a centred moving average.

    The averaging window spans ``[i - half_window, i + half_window]`` and is
    clipped at both ends of the sequence, each output being the mean of the
    samples actually covered.  Sequences shorter than *min_length* are
    returned unchanged.
    """
    signal = np.asarray(values, dtype=np.float64)
    n = len(signal)
    if n < min_length:
        return signal.copy()

    centred = signal - signal.mean()

    idx = np.arange(n)
    lo = np.maximum(0, idx - half_window)
    hi = np.minimum(n - 1, idx + half_window)
    csum = np.concatenate(([0.0], np.cumsum(centred)))
    return (csum[hi + 1] - csum[lo]) / (hi - lo + 1)


def build_bandpass(
    fs: float,
    low_hz: float,
    high_hz: float,
    order: int = 4,
) -> np.ndarray:
    """Construct a Butterworth bandpass filter (SOS form)."""
    nyq = fs / 2.0
    low = low_hz / nyq
    high = high_hz / nyq
    # Clamp to valid range
    low = max(1e-4, min(low, 0.999))
    high = max(low + 1e-4, min(high, 0.999))
    return butter(order, [low, high], btype="bandpass", output="sos")


def bandpass_filter(
    values: Sequence[float] | np.ndarray,
    fs: float,
    low_hz: float = 0.4,
    high_hz: float = 3.5,
    order: int = 4,
) -> np.ndarray:
    """
    Zero-phase Butterworth bandpass of *values*.

    Zero-phase filtering keeps peak positions in place, so inter-peak
    spacing is unaffected.  Signals too short for the filter's edge padding
    are returned unchanged.
    """
    signal = np.asarray(values, dtype=np.float64)
    sos = build_bandpass(fs, low_hz, high_hz, order)
    padlen = 3 * (2 * len(sos) + 1)
    if len(signal) <= padlen:
        logger.debug("Signal of %d samples too short for bandpass (needs > %d).",
                     len(signal), padlen)
        return signal.copy()
    return sosfiltfilt(sos, signal)
