"""
Cooperative repeating timers on top of `sched.scheduler`.

Every timer of a session shares one scheduler, so a session runs on a single
thread: the scheduler sleeps until the next due tick, runs it, and the tick
re-enters itself one interval later unless it was cancelled.
"""
from __future__ import annotations

import sched
import time
from typing import Callable, Optional

TickCallback = Callable[[int], None]


class SystemClock:
    """Monotonic wall clock used by all timers."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


def new_scheduler(clock: Optional[SystemClock] = None) -> sched.scheduler:
    clock = clock or SystemClock()
    return sched.scheduler(clock.now, clock.sleep)


class RepeatingTimer:
    """
    Fixed-period timer. The first tick fires one interval after start();
    each following tick is scheduled one interval after the previous one fired,
    so drift accumulates over long runs.

    cancel() is idempotent and may be called from the callback itself,
    from another thread, or from a signal handler.
    """

    def __init__(self, scheduler: sched.scheduler, interval: float, callback: TickCallback) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0 (got {interval})")
        self._scheduler = scheduler
        self.interval = float(interval)
        self._callback = callback
        self._pending: Optional[sched.Event] = None
        self._started = False
        self._cancelled = False
        self.ticks = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return self._started and not self._cancelled

    def start(self) -> "RepeatingTimer":
        if self._started:
            raise RuntimeError("timer already started")
        self._started = True
        if not self._cancelled:
            self._pending = self._scheduler.enter(self.interval, 0, self._fire)
        return self

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        event, self._pending = self._pending, None
        if event is not None:
            try:
                self._scheduler.cancel(event)
            except ValueError:
                # already popped by the scheduler; _fire() sees the flag
                pass

    def _fire(self) -> None:
        self._pending = None
        if self._cancelled:
            return
        fired_at = self._scheduler.timefunc()
        self.ticks += 1
        self._callback(self.ticks)
        if not self._cancelled:
            self._pending = self._scheduler.enterabs(fired_at + self.interval, 0, self._fire)
