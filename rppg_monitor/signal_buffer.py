"""
Rolling, time-stamped PPG sample buffer.

The buffer holds the last ``window_size`` samples in arrival order; the
oldest sample is evicted first once it is full.  Values and timestamps are
stored together so they can never drift out of alignment.

Every :meth:`SignalBuffer.reset` bumps a *generation* counter.  Analysis that
runs on a :class:`BufferSnapshot` compares the snapshot's generation with the
live one before publishing, so results computed against a buffer that has
since been cleared are dropped.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque

import numpy as np


@dataclass(frozen=True)
class Sample:
    value: float
    timestamp: float        # seconds since monitoring (re)start


@dataclass(frozen=True)
class BufferSnapshot:
    values: np.ndarray
    timestamps: np.ndarray
    generation: int

    def __len__(self) -> int:
        return len(self.values)


class SignalBuffer:
    """
    Fixed-capacity FIFO of :class:`Sample` objects.

    Parameters
    ----------
    window_size:
        Maximum number of samples kept (default 300 = 10 s at 30 fps).
    """

    def __init__(self, window_size: int = 300) -> None:
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        self._samples: Deque[Sample] = deque(maxlen=window_size)
        self._generation = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def append(self, sample: Sample) -> None:
        """Push *sample* to the tail, evicting the head when full."""
        with self._lock:
            self._samples.append(sample)

    def reset(self) -> None:
        """Drop all samples and invalidate outstanding snapshots."""
        with self._lock:
            self._samples.clear()
            self._generation += 1

    def resize(self, window_size: int) -> None:
        """Change the capacity, keeping the newest samples that still fit."""
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        with self._lock:
            self._samples = deque(self._samples, maxlen=window_size)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def snapshot(self) -> BufferSnapshot:
        """Copy the current contents for analysis without mutating the buffer."""
        with self._lock:
            values = np.fromiter((s.value for s in self._samples), dtype=np.float64,
                                 count=len(self._samples))
            timestamps = np.fromiter((s.timestamp for s in self._samples),
                                     dtype=np.float64, count=len(self._samples))
            return BufferSnapshot(values, timestamps, self._generation)

    def tail(self, n: int) -> np.ndarray:
        """Return the values of the newest *n* samples (fewer if not available)."""
        with self._lock:
            recent = list(self._samples)[-n:] if n > 0 else []
        return np.array([s.value for s in recent], dtype=np.float64)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def window_size(self) -> int:
        return self._samples.maxlen

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        return len(self._samples) / self._samples.maxlen

    def __len__(self) -> int:
        return len(self._samples)
