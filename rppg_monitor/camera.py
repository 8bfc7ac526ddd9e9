"""
Webcam capture for face rPPG.

Wraps OpenCV ``VideoCapture`` to provide a simple iterator of BGR frames.
Any device OpenCV can open (USB webcam, laptop camera, video file) works.
"""

from __future__ import annotations

import logging
from typing import Generator, Tuple, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class CaptureError(RuntimeError):
    """The capture device could not be opened or configured."""


class WebcamCapture:
    """
    Thin wrapper around :class:`cv2.VideoCapture`.

    Parameters
    ----------
    resolution:
        (width, height) requested from the device.
    fps:
        Target frame rate.  Actual rate may differ slightly.
    flip_horizontal:
        Mirror the image left-to-right (selfie view).
    source:
        Camera index or path of a video file.
    max_failed_reads:
        Consecutive failed reads after which :meth:`frames` gives up.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        flip_horizontal: bool = True,
        source: Union[int, str] = 0,
        max_failed_reads: int = 10,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.flip_horizontal = flip_horizontal
        self.source = source
        self.max_failed_reads = max_failed_reads

        self._cap: "cv2.VideoCapture | None" = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Open and configure the device; raises :class:`CaptureError` on failure."""
        cap = cv2.VideoCapture(self.source)
        if not cap.isOpened():
            cap.release()
            raise CaptureError(f"Cannot open video capture source={self.source!r}")
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cap = cap
        logger.info(
            "Camera opened – source=%s resolution=%s fps=%d",
            self.source, self.resolution, self.fps,
        )

    def close(self) -> None:
        """Release the device."""
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Camera closed.")

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    # Context-manager support
    def __enter__(self) -> "WebcamCapture":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """
        Capture a single frame.

        Returns
        -------
        numpy.ndarray
            BGR image array (H × W × 3, dtype uint8), or *None* on failure.
        """
        if self._cap is None:
            raise RuntimeError("Camera is not open.  Call open() first.")

        ok, frame = self._cap.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        if self.flip_horizontal:
            frame = cv2.flip(frame, 1)
        return frame

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield frames until the camera is closed or reads keep failing.

        Usage::

            with WebcamCapture() as cam:
                for frame in cam.frames():
                    process(frame)
        """
        _null_streak = 0
        while self._cap is not None:
            frame = self.read_frame()
            if frame is None:
                _null_streak += 1
                if _null_streak >= self.max_failed_reads:
                    logger.error(
                        "Camera returned %d consecutive empty frames – aborting.",
                        _null_streak,
                    )
                    break
                continue
            _null_streak = 0
            yield frame
