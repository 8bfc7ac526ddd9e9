"""
CSV export of the heart-rate history.

Format::

    Time (seconds),Heart Rate (BPM)
    12.40,71.3
    12.47,71.9
"""

from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

CSV_HEADER = "Time (seconds),Heart Rate (BPM)"


def history_to_csv(history: Iterable) -> str:
    """Render ``HeartRateEstimate`` entries (``.time``, ``.value``) as CSV text."""
    rows = [f"{entry.time:.2f},{entry.value:.1f}" for entry in history]
    return CSV_HEADER + "\n" + "\n".join(rows)


def export_history(
    history: Iterable,
    directory: Path | str = ".",
    today: Optional[_dt.date] = None,
) -> Path:
    """
    Write the history to ``heart_rate_data_<YYYY-MM-DD>.csv`` in *directory*.

    Raises
    ------
    ValueError
        If there is nothing to export.
    """
    entries = list(history)
    if not entries:
        raise ValueError("No data to export. Start monitoring first to collect heart rate data.")

    day = today if today is not None else _dt.date.today()
    path = Path(directory) / f"heart_rate_data_{day.isoformat()}.csv"
    path.write_text(history_to_csv(entries), encoding="utf-8")
    logger.info("Exported %d heart-rate readings to %s", len(entries), path)
    return path
