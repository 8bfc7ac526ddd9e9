#!/usr/bin/env python3
"""
rPPG Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH     Camera resolution (default: 640x480)
    --fps INT            Target frame rate  (default: 30)
    --window FLOAT       Analysis window in seconds (default: 10)
    --algorithm NAME     green_channel | chrom | pos (default: green_channel)
    --frame-skip INT     Process every N-th delivered frame (default: 1)
    --sensitivity FLOAT  Waveform display scale (default: 1.0)
    --bandpass           Apply a real 0.4 – 3.5 Hz bandpass before peak detection
    --no-flip            Disable horizontal mirror
    --camera-index INT   OpenCV camera index (default: 0)
    --export-dir PATH    Directory for CSV exports (default: .)
    --headless           Run without display window (log BPM to stdout)

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    c        – calibrate (clear buffer and history)
    1 / 2 / 3 – switch algorithm: green channel / CHROM / POS
    e        – export heart-rate history as CSV
    s        – save a single annotated frame as PNG
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

import cv2

from rppg_monitor.camera import CaptureError, WebcamCapture
from rppg_monitor.color_extractor import AlgorithmMode
from rppg_monitor.export import export_history
from rppg_monitor.face_locator import SkinFaceLocator
from rppg_monitor.pipeline import (
    FrameResult,
    HeartRateMonitor,
    MonitorConfig,
    run_monitor,
)
from rppg_monitor.visualizer import Visualizer

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rppg_monitor")

WINDOW_NAME = "rPPG Heart Rate Monitor"

_ALGORITHM_KEYS = {
    ord("1"): AlgorithmMode.GREEN_CHANNEL,
    ord("2"): AlgorithmMode.CHROM,
    ord("3"): AlgorithmMode.POS,
}


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Contactless heart-rate monitor from a face webcam (rPPG)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--window", type=float, default=10.0,
                        help="Analysis window in seconds")
    parser.add_argument("--algorithm", default=AlgorithmMode.GREEN_CHANNEL.value,
                        choices=[m.value for m in AlgorithmMode],
                        help="Colour-to-signal transform")
    parser.add_argument("--frame-skip", type=_positive_int, default=1,
                        help="Process every N-th delivered frame")
    parser.add_argument("--sensitivity", type=float, default=1.0,
                        help="Waveform display scale")
    parser.add_argument("--bandpass", action="store_true",
                        help="Apply a Butterworth bandpass before peak detection")
    parser.add_argument("--no-flip", action="store_true",
                        help="Disable horizontal image flip")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--export-dir", type=Path, default=Path("."),
                        help="Directory for CSV exports")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log BPM to stdout only")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    resolution = (res_w, res_h)

    # The nominal sampling rate is the processed-frame rate.  Peak spacing
    # limits assume ~30 samples/s, so a 30 fps webcam must not skip frames.
    frame_skip = args.frame_skip
    if frame_skip < 1:
        logger.error("Invalid configuration: frame_skip must be >= 1.")
        return 1
    try:
        config = MonitorConfig(
            sampling_rate=args.fps / frame_skip,
            window_seconds=args.window,
            algorithm=args.algorithm,
            sensitivity=args.sensitivity,
            frame_skip=frame_skip,
            apply_bandpass=args.bandpass,
        )
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    camera = WebcamCapture(
        resolution=resolution,
        fps=args.fps,
        flip_horizontal=not args.no_flip,
        source=args.camera_index,
    )
    monitor = HeartRateMonitor(SkinFaceLocator(), config)
    vis = Visualizer(resolution=resolution, show_fps=not args.headless)

    try:
        monitor.start(camera)
    except CaptureError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("Starting heart-rate monitor.  Press 'q' or ESC to quit.")
    if not args.headless:
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        cv2.resizeWindow(WINDOW_NAME, res_w, res_h)

    log_interval = args.fps  # log to stdout every ~1 second
    frame_idx = 0

    def on_result(frame, result: FrameResult) -> bool:
        nonlocal frame_idx
        frame_idx += 1

        if args.headless:
            if frame_idx % log_interval == 0:
                ts = time.strftime("%H:%M:%S")
                quality = monitor.quality
                conf = quality.confidence if quality is not None else 0.0
                if result.bpm is not None:
                    print(f"[{ts}] BPM={result.bpm:.1f}  conf={conf:.0f}%  "
                          f"status={monitor.status.value}")
                else:
                    print(f"[{ts}] Waiting for signal…  face={monitor.face is not None}")
            return True

        annotated = vis.draw(
            frame,
            bpm=monitor.current_bpm,
            status=monitor.status.value,
            face=monitor.face,
            quality=monitor.quality,
            buffer_fill=monitor.buffer.fill_ratio,
            waveform=monitor.waveform,
            history=monitor.history,
        )
        cv2.imshow(WINDOW_NAME, annotated)
        return handle_key(cv2.waitKey(1) & 0xFF, monitor, annotated, args.export_dir)

    try:
        run_monitor(monitor, camera.frames(), on_result)
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        monitor.stop()
        if not args.headless:
            cv2.destroyAllWindows()

    return 0


def handle_key(key: int, monitor: HeartRateMonitor, annotated, export_dir: Path) -> bool:
    """React to a key press; return False to quit."""
    if key in (ord("q"), 27):          # q or ESC
        logger.info("Quit requested by user.")
        return False
    if key == ord("c"):
        monitor.calibrate()
    elif key in _ALGORITHM_KEYS:
        monitor.set_algorithm(_ALGORITHM_KEYS[key])
    elif key == ord("e"):
        try:
            export_history(monitor.history, export_dir)
        except (ValueError, OSError) as exc:
            logger.warning("Export failed: %s", exc)
    elif key == ord("s"):
        fname = f"snapshot_{int(time.time())}.png"
        cv2.imwrite(fname, annotated)
        logger.info("Saved snapshot: %s", fname)
    return True


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
