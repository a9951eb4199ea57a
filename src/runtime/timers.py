"""
Cancellable timed callbacks on a single worker thread.

All callbacks scheduled on one TimerQueue run on the same thread in due-time
order (ties in scheduling order), so a cue sequence computed up front fires
strictly chronologically.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TimerHandle:
    """A scheduled callback that can be cancelled until it runs."""

    def __init__(self, due: float, callback: Callable[[], None], name: str = ""):
        self.due = due
        self.name = name
        self._callback = callback
        self._cancelled = False
        self._fired = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def active(self) -> bool:
        """True while the callback is still pending."""
        return not (self._cancelled or self._fired)

    def cancel(self) -> None:
        self._cancelled = True

    def run(self) -> None:
        """Invoke the callback unless cancelled. Used by the queue implementations."""
        if self._cancelled or self._fired:
            return
        self._fired = True
        self._callback()


class TimerQueue:
    """
    Heap-ordered timer thread.

    Example:
        timers = TimerQueue()
        handle = timers.call_later(1.5, lambda: print("whistle"))
        handle.cancel()
        timers.shutdown()
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._heap: List[Tuple[float, int, TimerHandle]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None], name: str = "") -> TimerHandle:
        """Schedule callback to run after delay seconds."""
        handle = TimerHandle(self._clock() + max(0.0, delay), callback, name)
        with self._cond:
            heapq.heappush(self._heap, (handle.due, next(self._seq), handle))
            self._ensure_thread()
            self._cond.notify()
        return handle

    def _ensure_thread(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name="drill-timers", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                while self._running and not self._heap:
                    self._cond.wait()
                if not self._running:
                    return
                due, _, handle = self._heap[0]
                wait = due - self._clock()
                if wait > 0:
                    self._cond.wait(timeout=wait)
                    continue
                heapq.heappop(self._heap)

            try:
                handle.run()
            except Exception as e:
                logger.exception(f"Timer callback {handle.name or '<anonymous>'} failed: {e}")

    def shutdown(self) -> None:
        """Stop the worker thread and drop all pending callbacks."""
        with self._cond:
            for _, _, handle in self._heap:
                handle.cancel()
            self._heap.clear()
            self._running = False
            self._cond.notify_all()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None
