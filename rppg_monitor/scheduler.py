"""
Explicit delayed-task scheduler driven by an injectable clock.

The monitor never relies on wall-clock timers firing on their own: tasks are
executed when :meth:`Scheduler.run_due` is called (once per frame step), so
tests can advance a fake clock and observe exactly when a task runs.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(order=True)
class ScheduledTask:
    due: float
    seq: int
    callback: Callable[[], None] = field(compare=False)
    name: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class Scheduler:
    """
    Priority queue of callbacks ordered by due time.

    Parameters
    ----------
    clock:
        Zero-argument callable returning the current time in seconds.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self.clock = clock
        self._queue: List[ScheduledTask] = []
        self._seq = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None], name: str = "") -> ScheduledTask:
        task = ScheduledTask(self.clock() + delay, next(self._seq), callback, name)
        heapq.heappush(self._queue, task)
        return task

    def run_due(self) -> int:
        """Run every task whose due time has passed; return how many ran."""
        now = self.clock()
        ran = 0
        while self._queue and self._queue[0].due <= now:
            task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            logger.debug("Running scheduled task %r", task.name)
            task.callback()
            ran += 1
        return ran

    def cancel_all(self) -> None:
        for task in self._queue:
            task.cancel()
        self._queue.clear()

    @property
    def pending(self) -> int:
        return sum(1 for t in self._queue if not t.cancelled)
