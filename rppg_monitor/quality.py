"""
Signal-quality indicators.

These are display metrics only and are never fed back into estimation:

* **confidence** — inverse coefficient of variation of the newest raw
  samples, in percent.
* **SNR** — ``confidence / 10``; a proxy, not a spectral SNR.
* **lighting** — mean ROI luminance classified as too dark / good / too
  bright.
* **motion** — coarse: low while a face is tracked, high otherwise.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from rppg_monitor.roi import ROI, sample_pixels

DARK_THRESHOLD = 50.0
BRIGHT_THRESHOLD = 200.0


class LightingState(str, Enum):
    UNKNOWN = "Unknown"
    TOO_DARK = "Too Dark"
    TOO_BRIGHT = "Too Bright"
    GOOD = "Good"


class MotionState(str, Enum):
    LOW = "Low"
    HIGH = "High"


@dataclass(frozen=True)
class QualityReport:
    confidence: float       # 0 – 100
    snr: float
    lighting: LightingState
    motion: MotionState


def compute_confidence(values: Sequence[float] | np.ndarray, window: int = 30) -> float:
    """
    Confidence (0 – 100) from the newest *window* raw samples.

    Fewer than *window* samples gives 0.  A perfectly flat window gives 50,
    since a constant signal says nothing either way.
    """
    x = np.asarray(values, dtype=np.float64)
    if len(x) < window:
        return 0.0
    recent = x[-window:]
    mean = float(recent.mean())
    variance = float(recent.var())
    if not (math.isfinite(mean) and math.isfinite(variance)):
        return 0.0
    if variance == 0:
        return 50.0
    if mean == 0:
        return 0.0
    cv = math.sqrt(variance) / abs(mean)
    return max(0.0, min(100.0, (1.0 - cv) * 100.0))


def snr_from_confidence(confidence: float) -> float:
    return max(0.0, confidence / 10.0)


def assess_lighting(
    frame: Optional[np.ndarray],
    roi: Optional[ROI],
    stride: int = 4,
) -> LightingState:
    """Classify the mean brightness of *roi* (every *stride*-th pixel)."""
    if frame is None or roi is None:
        return LightingState.UNKNOWN
    pixels = sample_pixels(roi.crop(frame), stride)
    if len(pixels) == 0:
        return LightingState.UNKNOWN

    brightness = float(pixels.mean())
    if brightness < DARK_THRESHOLD:
        return LightingState.TOO_DARK
    if brightness > BRIGHT_THRESHOLD:
        return LightingState.TOO_BRIGHT
    return LightingState.GOOD


def assess_motion(face_detected: bool) -> MotionState:
    return MotionState.LOW if face_detected else MotionState.HIGH


def score_quality(
    values: Sequence[float] | np.ndarray,
    frame: Optional[np.ndarray],
    roi: Optional[ROI],
    face_detected: bool,
    window: int = 30,
    stride: int = 4,
) -> QualityReport:
    """Bundle all quality indicators for one publishing cycle."""
    confidence = compute_confidence(values, window)
    return QualityReport(
        confidence=confidence,
        snr=snr_from_confidence(confidence),
        lighting=assess_lighting(frame, roi if face_detected else None, stride),
        motion=assess_motion(face_detected),
    )
