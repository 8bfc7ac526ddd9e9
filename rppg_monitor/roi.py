"""
Pixel rectangles shared by the face locator, colour extractor and quality
scorer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ROI:
    """Axis-aligned rectangle in pixel coordinates (may be fractional)."""

    x: float
    y: float
    width: float
    height: float

    def as_int(self) -> tuple[int, int, int, int]:
        """Return ``(x, y, w, h)`` floored to whole pixels."""
        return (
            max(0, math.floor(self.x)),
            max(0, math.floor(self.y)),
            max(0, math.floor(self.width)),
            max(0, math.floor(self.height)),
        )

    def crop(self, frame: np.ndarray) -> np.ndarray:
        """
        Return the view of *frame* covered by this rectangle.

        Parts of the rectangle outside the frame are dropped, so the result
        can be empty.
        """
        x, y, w, h = self.as_int()
        return frame[y:y + h, x:x + w]


def sample_pixels(patch: np.ndarray, stride: int) -> np.ndarray:
    """
    Return every *stride*-th pixel of *patch* in row-major order as an
    ``(N, C)`` float array.
    """
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got {stride}")
    if patch.ndim != 3 or patch.shape[2] < 3:
        raise ValueError(f"expected an H x W x C image, got shape {patch.shape}")
    flat = patch.reshape(-1, patch.shape[2])
    return flat[::stride, :3].astype(np.float64)
