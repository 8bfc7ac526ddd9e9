"""
Unit tests for SkinFaceLocator.
Run with:  pytest tests/test_face_locator.py
"""

from __future__ import annotations

import numpy as np
import pytest

from rppg_monitor.face_locator import SkinFaceLocator, forehead_roi, skin_mask
from rppg_monitor.roi import ROI

_SKIN_BGR = (120, 140, 200)


def _scene(x, y, w, h, shape=(480, 640)) -> np.ndarray:
    """Black frame with a skin-coloured rectangle."""
    frame = np.zeros(shape + (3,), dtype=np.uint8)
    frame[y:y + h, x:x + w] = _SKIN_BGR
    return frame


class TestSkinFaceLocator:

    def test_skin_mask_rules(self):
        pixels = np.array([[_SKIN_BGR, (150, 150, 150), (10, 20, 40), (120, 95, 200)]],
                          dtype=np.uint8)
        # skin, grey, too dark, |g - b| too large
        assert skin_mask(pixels).tolist() == [[True, False, False, False]]

    def test_locates_face_and_forehead(self):
        region = SkinFaceLocator().locate(_scene(200, 100, 160, 220))
        assert region is not None
        # grid points run from 200..356 and 100..316 with step 4
        assert region.face == ROI(200, 100, 156, 216)
        assert region.roi.x == pytest.approx(200 + 156 * 0.2)
        assert region.roi.y == pytest.approx(100 + 216 * 0.1)
        assert region.roi.width == pytest.approx(156 * 0.6)
        assert region.roi.height == pytest.approx(216 * 0.3)

    def test_no_skin(self):
        frame = np.full((480, 640, 3), 128, dtype=np.uint8)
        assert SkinFaceLocator().locate(frame) is None

    def test_too_few_skin_pixels(self):
        assert SkinFaceLocator().locate(_scene(300, 200, 10, 10)) is None

    def test_wrong_aspect_ratio(self):
        # wide, flat strip: height / width < 0.6
        assert SkinFaceLocator().locate(_scene(100, 200, 400, 80)) is None

    def test_forehead_roi_clipped_to_frame(self):
        roi = forehead_roi(ROI(600, 400, 100, 100), frame_width=640, frame_height=420)
        assert roi.x == pytest.approx(620)
        assert roi.width == pytest.approx(20)
        assert roi.height == pytest.approx(10)
