"""
Real-time overlay visualiser.

Draws the following elements onto each video frame:
  • Face and forehead-ROI rectangles with labels.
  • BPM readout with colour-coded confidence indicator and status line.
  • Quality panel (confidence, SNR, lighting, motion).
  • Buffer fill bar and a scrolling PPG waveform strip.
  • Heart-rate history sparkline (last 60 s).
  • Optional frame-rate counter.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from rppg_monitor.face_locator import FaceRegion
from rppg_monitor.quality import QualityReport


# ---------------------------------------------------------------------------
# Colour palette (BGR)
# ---------------------------------------------------------------------------
_GREEN  = (0, 220,  80)
_RED    = (0,  50, 220)
_YELLOW = (0, 210, 210)
_WHITE  = (255, 255, 255)
_BLACK  = (0, 0, 0)
_CYAN   = (205, 184, 31)     # face box
_ORANGE = (133, 193, 255)    # ROI box / history
_DARK   = (30, 30, 30)


class Visualizer:
    """
    Draws heart-rate monitoring UI onto OpenCV frames in-place.

    Parameters
    ----------
    resolution:
        (width, height) of the video frame.
    waveform_height:
        Pixel height of the waveform panel at the bottom of the frame.
    history_range:
        (min, max) BPM shown on the history sparkline's vertical axis.
    show_fps:
        Whether to overlay computed FPS in the top-right corner.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (640, 480),
        waveform_height: int = 80,
        history_range: Tuple[float, float] = (45.0, 180.0),
        show_fps: bool = True,
    ) -> None:
        self.w, self.h = resolution
        self.waveform_height = waveform_height
        self.history_range = history_range
        self.show_fps = show_fps

        # FPS tracking
        self._fps_tick = cv2.getTickCount()
        self._fps_display: float = 0.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def draw(
        self,
        frame: np.ndarray,
        bpm: Optional[float],
        status: str,
        face: Optional[FaceRegion] = None,
        quality: Optional[QualityReport] = None,
        buffer_fill: float = 0.0,
        waveform: Optional[np.ndarray] = None,
        history: Optional[Sequence] = None,
    ) -> np.ndarray:
        """
        Annotate *frame* in-place and return it.

        Parameters
        ----------
        frame:
            BGR frame from the camera.
        bpm:
            Current heart-rate reading, or *None* when there is none.
        status:
            Human-readable measurement status.
        face:
            Current face box and ROI, if a face is tracked.
        quality:
            Latest published quality metrics.
        buffer_fill:
            How full the signal buffer is (0 – 1).
        waveform:
            Recent raw samples already scaled by the sensitivity setting.
        history:
            ``HeartRateEstimate`` entries to plot as a sparkline.
        """
        self._update_fps()
        self.h, self.w = frame.shape[:2]

        if face is not None:
            self._draw_face(frame, face)

        confidence = quality.confidence if quality is not None else 0.0
        self._draw_bpm(frame, bpm, confidence, status)

        if quality is not None:
            self._draw_quality(frame, quality)

        self._draw_fill_bar(frame, buffer_fill)

        if waveform is not None and len(waveform) > 1:
            self._draw_waveform(frame, waveform)

        if history:
            self._draw_history(frame, history)

        if self.show_fps:
            cv2.putText(
                frame,
                f"FPS {self._fps_display:.1f}",
                (self.w - 100, 20),
                cv2.FONT_HERSHEY_SIMPLEX, 0.45, _WHITE, 1, cv2.LINE_AA,
            )

        return frame

    # ------------------------------------------------------------------
    # Private drawing helpers
    # ------------------------------------------------------------------

    def _draw_face(self, frame: np.ndarray, face: FaceRegion) -> None:
        for rect, color, label in ((face.face, _CYAN, "Face"), (face.roi, _ORANGE, "ROI")):
            x, y, w, h = rect.as_int()
            cv2.rectangle(frame, (x, y), (x + w, y + h), color, 2)
            cv2.putText(
                frame, label, (x, max(12, y - 5)),
                cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA,
            )

    def _draw_bpm(
        self,
        frame: np.ndarray,
        bpm: Optional[float],
        confidence: float,
        status: str,
    ) -> None:
        if bpm is not None:
            # Colour: green (high confidence) → yellow → red (low)
            if confidence >= 50:
                col = _GREEN
            elif confidence >= 30:
                col = _YELLOW
            else:
                col = _RED

            text = f"{round(bpm)} BPM"
            cv2.putText(frame, text, (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.6, _BLACK, 5, cv2.LINE_AA)
            cv2.putText(frame, text, (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.6, col, 3, cv2.LINE_AA)
            # Confidence mini-bar
            bar_w = int(120 * confidence / 100.0)
            cv2.rectangle(frame, (16, 60), (136, 72), _DARK, -1)
            cv2.rectangle(frame, (16, 60), (16 + bar_w, 72), col, -1)
            cv2.putText(
                frame, f"conf {confidence:.0f}%",
                (16, 86), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
            )
        else:
            cv2.putText(
                frame, "-- BPM",
                (16, 52), cv2.FONT_HERSHEY_SIMPLEX, 1.2, _YELLOW, 2, cv2.LINE_AA,
            )

        cv2.putText(
            frame, status,
            (16, 106), cv2.FONT_HERSHEY_SIMPLEX, 0.5, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_quality(self, frame: np.ndarray, quality: QualityReport) -> None:
        lines = (
            f"SNR {quality.snr:.1f}",
            f"Light {quality.lighting.value}",
            f"Motion {quality.motion.value}",
        )
        for i, line in enumerate(lines):
            cv2.putText(
                frame, line,
                (16, 128 + i * 18), cv2.FONT_HERSHEY_SIMPLEX, 0.45, _WHITE, 1, cv2.LINE_AA,
            )

    def _draw_fill_bar(self, frame: np.ndarray, fill: float) -> None:
        bar_w = int((self.w - 32) * min(fill, 1.0))
        y0, y1 = self.h - self.waveform_height - 12, self.h - self.waveform_height - 4
        cv2.rectangle(frame, (16, y0), (self.w - 16, y1), _DARK, -1)
        cv2.rectangle(frame, (16, y0), (16 + bar_w, y1), _CYAN, -1)
        cv2.putText(
            frame, "buffer",
            (16, y0 - 2), cv2.FONT_HERSHEY_SIMPLEX, 0.35, _CYAN, 1, cv2.LINE_AA,
        )

    def _draw_waveform(self, frame: np.ndarray, signal: np.ndarray) -> None:
        """Draw the waveform in a dark strip at the bottom of the frame."""
        panel_top = self.h - self.waveform_height
        cv2.rectangle(frame, (0, panel_top), (self.w, self.h), _DARK, -1)

        # Normalise signal to [0, 1]
        sig = np.asarray(signal, dtype=np.float64)
        mn, mx = sig.min(), sig.max()
        rng = mx - mn if mx != mn else 1.0
        norm = (sig - mn) / rng

        margin = 6
        plot_h = self.waveform_height - 2 * margin
        xs = np.linspace(0, self.w - 1, len(norm)).astype(int)
        ys = (panel_top + margin + (1.0 - norm) * plot_h).astype(int)

        pts = np.column_stack([xs, ys]).astype(np.int32)
        cv2.polylines(frame, [pts[:, None, :]], False, _GREEN, 1, cv2.LINE_AA)

        cv2.putText(
            frame, "PPG",
            (4, panel_top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA,
        )

    def _draw_history(self, frame: np.ndarray, history: Sequence) -> None:
        """Plot BPM history as a sparkline panel on the right side."""
        panel_w, panel_h = 160, 90
        x0 = self.w - panel_w - 10
        y0 = 40
        cv2.rectangle(frame, (x0, y0), (x0 + panel_w, y0 + panel_h), _DARK, -1)
        cv2.putText(
            frame, "BPM history",
            (x0 + 6, y0 + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.35, _WHITE, 1, cv2.LINE_AA,
        )
        if len(history) < 2:
            return

        times = np.array([entry.time for entry in history], dtype=np.float64)
        values = np.array([entry.value for entry in history], dtype=np.float64)
        lo, hi = self.history_range
        norm_v = np.clip((values - lo) / (hi - lo), 0.0, 1.0)
        span = times[-1] - times[0] if times[-1] > times[0] else 1.0
        norm_t = (times - times[0]) / span

        top, bottom = y0 + 20, y0 + panel_h - 6
        xs = (x0 + 6 + norm_t * (panel_w - 12)).astype(np.int32)
        ys = (bottom - norm_v * (bottom - top)).astype(np.int32)
        pts = np.column_stack([xs, ys])
        cv2.polylines(frame, [pts[:, None, :]], False, _ORANGE, 1, cv2.LINE_AA)

    def _update_fps(self) -> None:
        """Compute rolling FPS."""
        now = cv2.getTickCount()
        elapsed = (now - self._fps_tick) / cv2.getTickFrequency()
        if elapsed > 0:
            self._fps_display = 1.0 / elapsed
        self._fps_tick = now
