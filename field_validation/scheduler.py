"""
Debounce timers.

The session arms at most one timer per field and always cancels the old one
before arming a new one. Two schedulers are provided:

- ThreadingScheduler: real time, one threading.Timer per call
- ManualScheduler: virtual time advanced explicitly, for tests and for hosts
  that drive their own event loop
"""

import heapq
import itertools
import threading
from typing import Callable, List


class ThreadingScheduler:
    """Runs callbacks after a real-time delay on timer threads."""

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(delay_ms, 0) / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return timer


class ManualTimer:
    def __init__(self, scheduler: "ManualScheduler", due_ms: int, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False
        self.queued = True

    def cancel(self) -> None:
        if not self.cancelled and self.queued:
            self.scheduler._cancelled += 1
        self.cancelled = True


class ManualScheduler:
    """
    Virtual-time scheduler.

    Example:
        scheduler = ManualScheduler()
        scheduler.call_later(1000, callback)
        scheduler.advance(999)   # nothing happens
        scheduler.advance(1)     # callback runs
    """

    def __init__(self):
        self.now_ms = 0
        self._queue: List = []
        self._sequence = itertools.count()
        self._cancelled = 0  # cancelled timers still sitting in _queue

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        if self._cancelled * 2 > len(self._queue):
            self._prune()
        timer = ManualTimer(self, self.now_ms + max(delay_ms, 0), callback)
        heapq.heappush(self._queue, (timer.due_ms, next(self._sequence), timer))
        return timer

    def advance(self, ms: int) -> int:
        """
        Move virtual time forward and run every timer that falls due.

        Returns:
            Number of callbacks run
        """
        target = self.now_ms + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due_ms, _, timer = heapq.heappop(self._queue)
            timer.queued = False
            self.now_ms = due_ms
            if timer.cancelled:
                self._cancelled -= 1
                continue
            timer.callback()
            fired += 1
        self.now_ms = target
        return fired

    def pending(self) -> int:
        """Number of armed, not yet cancelled timers."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def queued(self) -> int:
        """Number of entries held in the queue, cancelled ones included."""
        return len(self._queue)

    def _prune(self) -> None:
        """Drop cancelled timers so re-arming without advancing stays bounded."""
        for _, _, timer in self._queue:
            if timer.cancelled:
                timer.queued = False
        self._queue = [entry for entry in self._queue if not entry[2].cancelled]
        heapq.heapify(self._queue)
        self._cancelled = 0
