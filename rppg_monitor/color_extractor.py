"""
ROI colour → scalar PPG sample.

The forehead region of each frame is reduced to its mean red, green and blue
intensities (sampling every ``stride``-th pixel for speed), then collapsed to
one value by the selected transform:

``green_channel``
    The raw green mean.  Green light is absorbed most strongly by
    haemoglobin, so it carries the largest blood-volume pulse component.
``chrom``
    Chrominance difference of the mean-normalised channels
    (De Haan & Jeanne, 2013), less sensitive to overall brightness changes.
``pos``
    A fixed projection on the plane orthogonal to the skin tone
    (Wang et al., 2017), which suppresses specular/motion components.

Frames use OpenCV's BGR channel order.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from rppg_monitor.roi import ROI, sample_pixels


class AlgorithmMode(str, Enum):
    GREEN_CHANNEL = "green_channel"
    CHROM = "chrom"
    POS = "pos"


ALGORITHM_DESCRIPTIONS = {
    AlgorithmMode.GREEN_CHANNEL: "Extracts heart rate from green color channel variations",
    AlgorithmMode.CHROM: "Chrominance-based method using color ratios",
    AlgorithmMode.POS: "Plane-orthogonal-to-skin method for motion robustness",
}

# POS projection weights for (R, G, B)
_POS_WEIGHTS = (0.77, -0.51, 0.38)


def channel_means(
    frame: np.ndarray,
    roi: ROI,
    stride: int = 4,
) -> Optional[Tuple[float, float, float]]:
    """
    Return ``(avg_r, avg_g, avg_b)`` over the sampled pixels of *roi*.

    Returns *None* when the rectangle covers no pixels of *frame*.
    """
    pixels = sample_pixels(roi.crop(frame), stride)
    if len(pixels) == 0:
        return None
    b, g, r = pixels.mean(axis=0)
    return float(r), float(g), float(b)


def green_channel(r: float, g: float, b: float) -> float:
    return g


def chrom_algorithm(r: float, g: float, b: float) -> float:
    """``3·chrR − 2·chrG`` of the mean-normalised channels; 0 on a black frame."""
    mean = (r + g + b) / 3.0
    if mean == 0:
        return 0.0
    chr_r = r / mean - 1.0
    chr_g = g / mean - 1.0
    return 3.0 * chr_r - 2.0 * chr_g


def pos_algorithm(r: float, g: float, b: float) -> float:
    l1, l2, l3 = _POS_WEIGHTS
    return l1 * r + l2 * g + l3 * b


_TRANSFORMS = {
    AlgorithmMode.GREEN_CHANNEL: green_channel,
    AlgorithmMode.CHROM: chrom_algorithm,
    AlgorithmMode.POS: pos_algorithm,
}


def extract_sample(
    frame: np.ndarray,
    roi: ROI,
    mode: AlgorithmMode = AlgorithmMode.GREEN_CHANNEL,
    stride: int = 4,
) -> Optional[float]:
    """
    Reduce the *roi* of *frame* to one signal sample using *mode*.

    Returns *None* ("no sample") when the ROI yields no pixels or the
    transform is not finite; the caller must skip buffering for that frame.
    """
    means = channel_means(frame, roi, stride)
    if means is None:
        return None
    value = float(_TRANSFORMS[AlgorithmMode(mode)](*means))
    if not math.isfinite(value):
        return None
    return value
