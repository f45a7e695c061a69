# path: src/runtime/scheduler.py

"""
Timer abstraction for the runtime monitors.

Every timer-driven component takes a Scheduler so tests can drive time
manually (see bot_core.testing.fakes.FakeScheduler). Delays are in
milliseconds.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Protocol

log = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> TimerHandle:
        ...

    def now_ms(self) -> float:
        ...


class ThreadingScheduler:
    """
    Production scheduler backed by threading.Timer.

    Callbacks run on timer threads, serialized through one lock so that
    callbacks for the same session never interleave.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def now_ms(self) -> float:
        return self._clock() * 1000.0

    def call_later(self, delay_ms: float, fn: Callable[[], None]) -> TimerHandle:
        call = _ScheduledCall(self._lock, fn)
        call.timer = threading.Timer(max(0.0, delay_ms) / 1000.0, call.run)
        call.timer.daemon = True
        call.timer.start()
        return call


class _ScheduledCall:
    """
    Timer handle whose cancel() holds even after the timer thread expired.

    An expired timer may already be blocked on the scheduler lock; run()
    re-checks the cancelled flag once it owns the lock.
    """

    def __init__(self, lock: threading.RLock, fn: Callable[[], None]) -> None:
        self._lock = lock
        self._fn = fn
        self.cancelled = False
        self.timer: Optional[threading.Timer] = None

    def cancel(self) -> None:
        with self._lock:
            self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()

    def run(self) -> None:
        with self._lock:
            if self.cancelled:
                return
            try:
                self._fn()
            except Exception:
                log.exception("Scheduled callback %r failed", self._fn)
