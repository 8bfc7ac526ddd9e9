"""
Heart-rate monitoring pipeline.

:class:`HeartRateMonitor` owns the signal buffer and the heart-rate history
and turns a stream of frames into readings.  One call to
:meth:`HeartRateMonitor.process_frame` is one step:

1. Every ``frame_skip``-th delivered frame is processed; the rest are
   skipped to bound CPU cost.
2. The face locator returns the forehead ROI, which is reduced to one
   sample and appended to the buffer with its elapsed time.
3. Once ``min_seconds`` of data are buffered, the window is detrended,
   smoothed and passed to the peak-based estimator.  A plausible BPM
   becomes the current reading and is added to the 60 s history; anything
   else marks the signal as poor.
4. Every ``waveform_every`` processed frames the display waveform is
   refreshed; every ``quality_every`` processed frames the quality metrics
   are recomputed.

No step is allowed to take the pipeline down: any exception raised while
processing a frame is logged and reported as :attr:`FrameStatus.ERROR`, and
the next frame is processed normally.

Lifecycle::

    IDLE ──start()──▶ STARTING ──warm-up──▶ RUNNING ──stop()──▶ IDLE
                                             │  ▲
                                  calibrate()│  │settle delay
                                             ▼  │
                                          CALIBRATING
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Protocol

import numpy as np

from rppg_monitor.camera import CaptureError
from rppg_monitor.color_extractor import (
    ALGORITHM_DESCRIPTIONS,
    AlgorithmMode,
    extract_sample,
)
from rppg_monitor.face_locator import FaceRegion
from rppg_monitor.filtering import bandpass_filter, detrend_and_smooth
from rppg_monitor.quality import QualityReport, score_quality
from rppg_monitor.rate_estimator import (
    EstimateStatus,
    RateEstimate,
    estimate_bpm,
    is_plausible,
)
from rppg_monitor.scheduler import Clock, Scheduler
from rppg_monitor.signal_buffer import BufferSnapshot, Sample, SignalBuffer

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration and state
# ---------------------------------------------------------------------------

@dataclass
class MonitorConfig:
    """
    Tunables of the monitoring pipeline.

    ``low_pass_hz`` / ``high_pass_hz`` are only used when ``apply_bandpass``
    is set; by default the pipeline relies on the moving-average smoother
    alone.
    """

    sampling_rate: float = 30.0          # nominal processed samples per second
    window_seconds: float = 10.0
    algorithm: AlgorithmMode = AlgorithmMode.GREEN_CHANNEL
    sensitivity: float = 1.0             # waveform display scale only
    pixel_stride: int = 4
    frame_skip: int = 2
    min_seconds: float = 5.0
    waveform_every: int = 10
    waveform_points: int = 150
    quality_every: int = 30
    quality_window: int = 30
    history_seconds: float = 60.0
    bpm_low: float = 45.0
    bpm_high: float = 180.0
    low_pass_hz: float = 3.5
    high_pass_hz: float = 0.4
    apply_bandpass: bool = False
    start_delay_seconds: float = 1.0
    calibration_seconds: float = 3.0

    def __post_init__(self) -> None:
        self.algorithm = AlgorithmMode(self.algorithm)
        if self.sampling_rate <= 0:
            raise ValueError(f"sampling_rate must be positive, got {self.sampling_rate}")
        if self.window_size < 1:
            raise ValueError(f"window_seconds too small: {self.window_seconds}")
        if self.frame_skip < 1:
            raise ValueError(f"frame_skip must be >= 1, got {self.frame_skip}")

    @property
    def window_size(self) -> int:
        """Buffer capacity in samples."""
        return int(self.window_seconds * self.sampling_rate)

    @property
    def min_samples(self) -> int:
        """Samples needed before an estimate is attempted."""
        return int(self.sampling_rate * self.min_seconds)


class MonitorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    CALIBRATING = "calibrating"


class HeartRateStatus(str, Enum):
    STOPPED = "Stopped"
    INITIALIZING = "Initializing..."
    MEASURING = "Measuring..."
    POOR_SIGNAL = "Poor Signal Quality"
    CALIBRATING = "Calibrating..."


class FrameStatus(str, Enum):
    STOPPED = "stopped"               # monitor not running; nothing done
    WARMING_UP = "warming_up"         # capture settling after start()
    SKIPPED = "skipped"               # frame-skip cadence
    NO_FACE = "no_face"
    NO_SAMPLE = "no_sample"           # ROI yielded no usable pixels
    BUFFERING = "buffering"           # sample stored, not enough data yet
    NO_ESTIMATE = "no_estimate"       # too short / too few peaks
    ESTIMATED = "estimated"
    POOR_SIGNAL = "poor_signal"       # estimate outside the plausible range
    PENDING = "pending"               # analysis running in the executor
    ERROR = "error"


@dataclass(frozen=True)
class HeartRateEstimate:
    time: float     # seconds since monitoring (re)start
    value: float    # bpm


@dataclass(frozen=True)
class AnalysisResult:
    generation: int
    estimate: RateEstimate
    plausible: bool


@dataclass
class FrameResult:
    status: FrameStatus
    bpm: Optional[float] = None                 # current reading after this step
    estimate: Optional[RateEstimate] = None
    quality: Optional[QualityReport] = None     # set on quality-publishing frames
    waveform: Optional[np.ndarray] = None       # set on waveform-refresh frames
    error: Optional[BaseException] = None


class FaceLocator(Protocol):
    def locate(self, frame: np.ndarray) -> Optional[FaceRegion]:
        ...


class Capture(Protocol):
    def open(self) -> None:
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Pure stages
# ---------------------------------------------------------------------------

def analyse_window(snapshot: BufferSnapshot, config: MonitorConfig) -> AnalysisResult:
    """Detrend, smooth and estimate BPM for one buffer snapshot."""
    signal = detrend_and_smooth(snapshot.values)
    if config.apply_bandpass:
        signal = bandpass_filter(signal, config.sampling_rate,
                                 config.high_pass_hz, config.low_pass_hz)
    estimate = estimate_bpm(signal, config.sampling_rate)
    plausible = estimate.ok and is_plausible(estimate.bpm, config.bpm_low, config.bpm_high)
    return AnalysisResult(snapshot.generation, estimate, plausible)


def prune_history(
    history: List[HeartRateEstimate],
    now: float,
    retention: float = 60.0,
) -> List[HeartRateEstimate]:
    """Keep only entries no older than *retention* seconds at *now*."""
    return [entry for entry in history if now - entry.time <= retention]


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

class HeartRateMonitor:
    """
    Per-frame rPPG pipeline controller.

    Parameters
    ----------
    face_locator:
        Object with ``locate(frame) -> FaceRegion | None``.
    config:
        Pipeline tunables; defaults to :class:`MonitorConfig`.
    clock:
        Time source in seconds.  Inject a fake clock in tests.
    executor:
        Optional executor for the detrend/estimate stage.  Results are
        applied on a later frame step, and only if the buffer has not been
        reset in the meantime.
    """

    def __init__(
        self,
        face_locator: FaceLocator,
        config: Optional[MonitorConfig] = None,
        clock: Clock = time.monotonic,
        executor: Optional[Executor] = None,
    ) -> None:
        self.face_locator = face_locator
        self.config = config if config is not None else MonitorConfig()
        self.clock = clock
        self.scheduler = Scheduler(clock)
        self._executor = executor

        self._buffer = SignalBuffer(self.config.window_size)
        self._history: List[HeartRateEstimate] = []
        self._state = MonitorState.IDLE
        self._status = HeartRateStatus.STOPPED
        self._capture: Optional[Capture] = None
        self._pending: Optional[Future] = None

        self._start_time = 0.0
        self._frame_count = 0
        self._processed_count = 0
        self._current_bpm: Optional[float] = None
        self._quality: Optional[QualityReport] = None
        self._waveform = np.array([])
        self._face: Optional[FaceRegion] = None
        self._last_frame: Optional[np.ndarray] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, capture: Optional[Capture] = None) -> None:
        """
        Begin monitoring.

        If *capture* is given it is opened first; a :class:`CaptureError`
        leaves the monitor idle and is re-raised.
        """
        if self._state is not MonitorState.IDLE:
            logger.debug("start() ignored – monitor already %s.", self._state.value)
            return

        self._state = MonitorState.STARTING
        if capture is not None:
            try:
                capture.open()
            except CaptureError:
                self._state = MonitorState.IDLE
                logger.error("Capture setup failed – monitoring not started.")
                raise
            self._capture = capture

        self._reset_signal()
        self._history = []
        self._current_bpm = None
        self._quality = None
        self._status = HeartRateStatus.INITIALIZING

        if self.config.start_delay_seconds > 0:
            self.scheduler.call_later(self.config.start_delay_seconds,
                                      self._enter_running, name="warm-up")
        else:
            self._enter_running()
        logger.info("Monitoring started (algorithm=%s, window=%d samples).",
                    self.config.algorithm.value, self._buffer.window_size)

    def stop(self) -> None:
        """Stop monitoring and release the capture; safe to call twice."""
        if self._state is MonitorState.IDLE:
            return
        self._state = MonitorState.IDLE
        self._status = HeartRateStatus.STOPPED
        self.scheduler.cancel_all()
        self._discard_pending()
        self._face = None
        if self._capture is not None:
            self._capture.close()
            self._capture = None
        logger.info("Monitoring stopped.")

    def calibrate(self) -> None:
        """
        Restart measurement from scratch without leaving the running state.

        Clears the buffer and history, resets the elapsed-time origin and
        returns to normal measuring after ``calibration_seconds``.
        """
        if self._state not in (MonitorState.RUNNING, MonitorState.CALIBRATING):
            logger.debug("calibrate() ignored – monitor is %s.", self._state.value)
            return

        self._reset_signal()
        self._history = []
        self._current_bpm = None
        self._state = MonitorState.CALIBRATING
        self._status = HeartRateStatus.CALIBRATING
        self.scheduler.cancel_all()
        self.scheduler.call_later(self.config.calibration_seconds,
                                  self._finish_calibration, name="calibration")
        logger.info("Calibrating – buffer and history cleared.")

    def _enter_running(self) -> None:
        if self._state is MonitorState.STARTING:
            self._state = MonitorState.RUNNING

    def _finish_calibration(self) -> None:
        if self._state is MonitorState.CALIBRATING:
            self._state = MonitorState.RUNNING
            self._status = HeartRateStatus.MEASURING
            logger.info("Calibration complete.")

    def _reset_signal(self) -> None:
        self._discard_pending()
        self._buffer.reset()
        self._start_time = self.clock()
        self._frame_count = 0
        self._processed_count = 0
        self._waveform = np.array([])

    def _discard_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    # ------------------------------------------------------------------
    # Live configuration
    # ------------------------------------------------------------------

    def set_algorithm(self, algorithm: AlgorithmMode | str) -> None:
        mode = AlgorithmMode(algorithm)
        self.config.algorithm = mode
        logger.info("Algorithm: %s – %s", mode.value, ALGORITHM_DESCRIPTIONS[mode])

    def set_window_seconds(self, seconds: float) -> None:
        window_size = int(seconds * self.config.sampling_rate)
        if window_size < 1:
            raise ValueError(f"window of {seconds} s holds no samples")
        self.config.window_seconds = seconds
        self._buffer.resize(window_size)
        logger.info("Window set to %.1f s (%d samples).", seconds, window_size)

    def set_sensitivity(self, sensitivity: float) -> None:
        self.config.sensitivity = float(sensitivity)
        self._refresh_waveform()

    # ------------------------------------------------------------------
    # Frame step
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> FrameResult:
        """
        Run one pipeline step on *frame*.

        Never raises: processing faults are logged and returned as
        :attr:`FrameStatus.ERROR`.
        """
        if self._state is MonitorState.IDLE:
            return FrameResult(FrameStatus.STOPPED)

        try:
            return self._step(frame)
        except Exception as exc:                         # noqa: BLE001
            logger.exception("Frame processing error")
            return FrameResult(FrameStatus.ERROR, bpm=self._current_bpm, error=exc)

    def _step(self, frame: np.ndarray) -> FrameResult:
        self.scheduler.run_due()
        if self._state is MonitorState.IDLE:
            return FrameResult(FrameStatus.STOPPED)
        if self._state is MonitorState.STARTING:
            return FrameResult(FrameStatus.WARMING_UP)

        self._frame_count += 1
        if self._frame_count % self.config.frame_skip != 0:
            return FrameResult(FrameStatus.SKIPPED, bpm=self._current_bpm)

        self._processed_count += 1
        self._last_frame = frame
        result = FrameResult(FrameStatus.NO_FACE, bpm=self._current_bpm)

        collected = self._collect_pending()
        if collected is not None:
            result.status, result.estimate = collected

        self._face = self.face_locator.locate(frame)
        if self._face is not None:
            value = extract_sample(frame, self._face.roi, self.config.algorithm,
                                   self.config.pixel_stride)
            if value is None:
                result.status = FrameStatus.NO_SAMPLE
            else:
                self._buffer.append(Sample(value, self.elapsed))
                if collected is None:
                    result.status = FrameStatus.BUFFERING
                if len(self._buffer) >= self.config.min_samples:
                    analysed = self._analyse()
                    if analysed is not None and collected is None:
                        result.status, result.estimate = analysed

                if self._processed_count % self.config.waveform_every == 0:
                    result.waveform = self._refresh_waveform()

        if self._processed_count % self.config.quality_every == 0:
            result.quality = self._publish_quality()

        result.bpm = self._current_bpm
        return result

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def _analyse(self) -> Optional[tuple]:
        snapshot = self._buffer.snapshot()
        if self._executor is None:
            return self._apply(analyse_window(snapshot, self.config))

        if self._pending is None:
            self._pending = self._executor.submit(analyse_window, snapshot, self.config)
        return FrameStatus.PENDING, None

    def _collect_pending(self) -> Optional[tuple]:
        if self._pending is None or not self._pending.done():
            return None
        future, self._pending = self._pending, None
        exc = future.exception()
        if exc is not None:
            raise exc
        return self._apply(future.result())

    def _apply(self, analysis: AnalysisResult) -> Optional[tuple]:
        """Publish *analysis* unless the buffer was reset since its snapshot."""
        if analysis.generation != self._buffer.generation:
            logger.debug("Discarding analysis from superseded buffer generation %d.",
                         analysis.generation)
            return None

        estimate = analysis.estimate
        if analysis.plausible:
            now = self.elapsed
            self._current_bpm = estimate.bpm
            self._history.append(HeartRateEstimate(now, estimate.bpm))
            self._history = prune_history(self._history, now, self.config.history_seconds)
            if self._state is not MonitorState.CALIBRATING:
                self._status = HeartRateStatus.MEASURING
            logger.debug("Heart rate %.1f bpm from %d peaks.", estimate.bpm, len(estimate.peaks))
            return FrameStatus.ESTIMATED, estimate

        if (estimate.status is not EstimateStatus.INSUFFICIENT_DATA
                and self._state is not MonitorState.CALIBRATING):
            self._status = HeartRateStatus.POOR_SIGNAL
        if estimate.ok:
            logger.debug("Implausible estimate %.1f bpm discarded.", estimate.bpm)
            return FrameStatus.POOR_SIGNAL, estimate
        return FrameStatus.NO_ESTIMATE, estimate

    # ------------------------------------------------------------------
    # Display data
    # ------------------------------------------------------------------

    def _refresh_waveform(self) -> np.ndarray:
        self._waveform = self._buffer.tail(self.config.waveform_points) * self.config.sensitivity
        return self._waveform

    def _publish_quality(self) -> QualityReport:
        face_detected = self._face is not None
        self._quality = score_quality(
            self._buffer.tail(self.config.quality_window),
            self._last_frame,
            self._face.roi if face_detected else None,
            face_detected,
            window=self.config.quality_window,
            stride=self.config.pixel_stride,
        )
        return self._quality

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def status(self) -> HeartRateStatus:
        return self._status

    @property
    def is_monitoring(self) -> bool:
        return self._state is not MonitorState.IDLE

    @property
    def current_bpm(self) -> Optional[float]:
        return self._current_bpm

    @property
    def history(self) -> List[HeartRateEstimate]:
        return list(self._history)

    @property
    def quality(self) -> Optional[QualityReport]:
        return self._quality

    @property
    def waveform(self) -> np.ndarray:
        return self._waveform

    @property
    def face(self) -> Optional[FaceRegion]:
        return self._face

    @property
    def buffer(self) -> SignalBuffer:
        return self._buffer

    @property
    def elapsed(self) -> float:
        """Seconds since monitoring started or was last calibrated."""
        return self.clock() - self._start_time


def run_monitor(
    monitor: HeartRateMonitor,
    frames: Iterable[np.ndarray],
    on_result: Optional[Callable[[np.ndarray, FrameResult], bool]] = None,
) -> int:
    """
    Drive *monitor* over *frames*, one step per frame.

    Stops when the frames run out, the monitor is stopped, or *on_result*
    returns ``False``.  Returns the number of frames consumed.
    """
    consumed = 0
    for frame in frames:
        if not monitor.is_monitoring:
            break
        result = monitor.process_frame(frame)
        consumed += 1
        if on_result is not None and on_result(frame, result) is False:
            break
    return consumed
