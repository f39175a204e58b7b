"""
Cancelable delayed callbacks.

Production code uses ``threading.Timer``; tests pass a factory whose timers
fire only when the test says so.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional, Protocol


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class Debouncer:
    """
    Runs the most recently scheduled callback once ``delay`` seconds pass
    without another ``schedule()``. Each schedule cancels the previous one.
    """

    def __init__(self, delay: float, timer_factory: TimerFactory = thread_timer):
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[Timer] = None
        self._callback: Optional[Callable[[], None]] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._callback is not None

    def schedule(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            generation = self._generation
            self._callback = callback
            self._timer = self._timer_factory(self.delay, lambda: self._fire(generation))
            self._timer.start()

    def cancel(self) -> bool:
        """Drop the pending callback. Returns True if one was pending."""
        with self._lock:
            had_pending = self._callback is not None
            self._cancel_locked()
            return had_pending

    def flush(self) -> bool:
        """Run the pending callback now, on the caller's thread."""
        with self._lock:
            callback = self._callback
            self._cancel_locked()
        if callback is None:
            return False
        callback()
        return True

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer that lost the race with cancel()/schedule() must not run.
            if generation != self._generation or self._callback is None:
                return
            callback = self._callback
            self._callback = None
            self._timer = None
        callback()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._callback = None
        self._generation += 1
