"""
Peak-based heart-rate estimator.

The periodicity of the conditioned PPG signal is measured in the time
domain: above-baseline local maxima are picked left to right with a
refractory distance, and the mean spacing between consecutive peaks is
converted to beats per minute using the nominal sampling rate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class EstimateStatus(str, Enum):
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"   # signal shorter than min_length
    TOO_FEW_PEAKS = "too_few_peaks"


@dataclass(frozen=True)
class RateEstimate:
    status: EstimateStatus
    bpm: Optional[float] = None
    peaks: List[int] = field(default_factory=list)
    mean_interval: Optional[float] = None   # samples

    @property
    def ok(self) -> bool:
        return self.status is EstimateStatus.OK


def find_peaks(
    signal: Sequence[float] | np.ndarray,
    threshold: float = 0.3,
    min_distance: int = 10,
) -> List[int]:
    """
    Return indices of accepted peaks in *signal*.

    Index ``i`` (``1 <= i <= n - 2``) is a candidate when it is strictly
    greater than both neighbours and than *threshold*.  Candidates are taken
    greedily from the left; one closer than *min_distance* samples to the
    previously accepted peak is rejected.
    """
    x = np.asarray(signal, dtype=np.float64)
    if len(x) < 3:
        return []

    mid = x[1:-1]
    is_max = (mid > x[:-2]) & (mid > x[2:]) & (mid > threshold)
    candidates = np.flatnonzero(is_max) + 1

    peaks: List[int] = []
    for i in candidates:
        if not peaks or i - peaks[-1] >= min_distance:
            peaks.append(int(i))
    return peaks


def estimate_bpm(
    signal: Sequence[float] | np.ndarray,
    sampling_rate: float = 30.0,
    min_length: int = 64,
    min_peaks: int = 3,
    threshold: float = 0.3,
    min_distance: int = 10,
) -> RateEstimate:
    """
    Estimate heart rate from a detrended, smoothed PPG window.

    Parameters
    ----------
    signal:
        Mean-subtracted signal; the peak threshold is relative to zero.
    sampling_rate:
        Nominal samples per second fed into the buffer.  This is the
        expected rate, not a measured one.
    min_length:
        Shortest signal worth analysing.
    min_peaks:
        Fewest accepted peaks needed to form an estimate.

    Returns
    -------
    RateEstimate
        ``status`` is ``OK`` with ``bpm`` set, or explains why no estimate
        was produced.  Plausibility is left to the caller.
    """
    if len(signal) < min_length:
        return RateEstimate(EstimateStatus.INSUFFICIENT_DATA)

    peaks = find_peaks(signal, threshold=threshold, min_distance=min_distance)
    if len(peaks) < max(min_peaks, 2):
        logger.debug("Only %d peaks found in %d samples.", len(peaks), len(signal))
        return RateEstimate(EstimateStatus.TOO_FEW_PEAKS, peaks=peaks)

    mean_interval = float(np.mean(np.diff(peaks)))
    bpm = (sampling_rate * 60.0) / mean_interval
    return RateEstimate(EstimateStatus.OK, bpm=bpm, peaks=peaks,
                        mean_interval=mean_interval)


def is_plausible(bpm: Optional[float], low: float = 45.0, high: float = 180.0) -> bool:
    """True when *bpm* lies in the physiologically plausible range (inclusive)."""
    return bpm is not None and low <= bpm <= high
