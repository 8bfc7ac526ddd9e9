"""
Skin-colour face locator.

A lightweight heuristic, not a trained detector: pixels on a coarse grid
are classified as skin by simple RGB rules, and the bounding box of all skin
pixels is accepted as a face when its size and aspect ratio look plausible.
The forehead band of that box becomes the region of interest for PPG
sampling.

It is good enough for a single, well-lit, frontal face against a non-skin
background, which is the setting the monitor targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from rppg_monitor.roi import ROI


@dataclass(frozen=True)
class FaceRegion:
    face: ROI
    roi: ROI


class SkinFaceLocator:
    """
    Heuristic face finder based on skin-tone pixels.

    Parameters
    ----------
    sample_step:
        Grid spacing (pixels, both axes) at which the frame is classified.
    min_skin_pixels:
        Minimum number of skin-coloured grid points required.
    min_width, min_height:
        Smallest accepted face box in pixels (exclusive).
    min_ratio, max_ratio:
        Accepted range (exclusive) of the box's height / width.
    """

    def __init__(
        self,
        sample_step: int = 4,
        min_skin_pixels: int = 50,
        min_width: float = 40.0,
        min_height: float = 50.0,
        min_ratio: float = 0.6,
        max_ratio: float = 2.0,
    ) -> None:
        self.sample_step = sample_step
        self.min_skin_pixels = min_skin_pixels
        self.min_width = min_width
        self.min_height = min_height
        self.min_ratio = min_ratio
        self.max_ratio = max_ratio

    def locate(self, frame: np.ndarray) -> Optional[FaceRegion]:
        """
        Return the face box and forehead ROI in *frame*, or *None*.

        Parameters
        ----------
        frame:
            BGR image array (H × W × 3).
        """
        face = self.find_face(frame)
        if face is None:
            return None
        height, width = frame.shape[:2]
        return FaceRegion(face=face, roi=forehead_roi(face, width, height))

    def find_face(self, frame: np.ndarray) -> Optional[ROI]:
        step = self.sample_step
        grid = frame[::step, ::step]
        mask = skin_mask(grid)
        if int(mask.sum()) < self.min_skin_pixels:
            return None

        ys, xs = np.nonzero(mask)
        min_x, max_x = int(xs.min()) * step, int(xs.max()) * step
        min_y, max_y = int(ys.min()) * step, int(ys.max()) * step
        face_w = max_x - min_x
        face_h = max_y - min_y
        if face_w == 0:
            return None

        ratio = face_h / face_w
        if (self.min_ratio < ratio < self.max_ratio
                and face_w > self.min_width and face_h > self.min_height):
            return ROI(min_x, min_y, face_w, face_h)
        return None


def skin_mask(frame: np.ndarray) -> np.ndarray:
    """Boolean mask of skin-coloured pixels in a BGR image."""
    b = frame[..., 0].astype(np.int32)
    g = frame[..., 1].astype(np.int32)
    r = frame[..., 2].astype(np.int32)

    in_range = ((r >= 50) & (g >= 40) & (b >= 20)
                & (r <= 250) & (g <= 250) & (b <= 250))
    red_dominant = (r > g) & (r > b)
    spread = ((r - g) >= 10) & ((r - b) >= 10) & (np.abs(g - b) <= 20)
    return in_range & red_dominant & spread


def forehead_roi(face: ROI, frame_width: int, frame_height: int) -> ROI:
    """Forehead band: 10 – 40 % down the face, middle 60 % of its width."""
    x = max(0.0, face.x + face.width * 0.2)
    y = max(0.0, face.y + face.height * 0.1)
    w = min(face.width * 0.6, frame_width - x)
    h = min(face.height * 0.3, frame_height - y)
    return ROI(x, y, w, h)
