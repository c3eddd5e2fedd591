"""
Cancellable timers for autosave, session-time accrual and phase auto-advance.

Two schedulers share one interface:
- ThreadingScheduler: real wall clock, callbacks on threading.Timer threads
- ManualScheduler: virtual clock advanced explicitly (tests, deterministic hosts)
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


class TimerHandle:
    """Handle returned by Scheduler.call_later."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.cancelled = False

    def cancel(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            self._cancel()


class Scheduler:
    """Schedules one-shot callbacks and reports the current time."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        raise NotImplementedError

    def now(self) -> datetime:
        raise NotImplementedError


class ThreadingScheduler(Scheduler):
    """Wall-clock scheduler backed by daemon threading.Timer threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(max(0.0, delay), self._guarded(callback))
        timer.daemon = True
        timer.start()
        return TimerHandle(timer.cancel)

    def now(self) -> datetime:
        return utc_now()

    @staticmethod
    def _guarded(callback: Callable[[], None]) -> Callable[[], None]:
        # Timer threads have no caller to propagate to
        def run():
            try:
                callback()
            except Exception:
                logger.exception("Scheduled callback %r failed", callback)

        return run


class ManualScheduler(Scheduler):
    """
    Virtual-clock scheduler.

    Usage:
        scheduler = ManualScheduler()
        scheduler.call_later(1.0, save)
        scheduler.advance(1.0)  # runs save
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._queue: list = []
        self._counter = itertools.count()

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        due = self._now + timedelta(seconds=max(0.0, delay))
        entry = [due, next(self._counter), callback, True]
        heapq.heappush(self._queue, entry)

        def cancel():
            entry[3] = False

        return TimerHandle(cancel)

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that comes due.

        Returns:
            Number of callbacks fired
        """
        target = self._now + timedelta(seconds=seconds)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, callback, active = heapq.heappop(self._queue)
            if not active:
                continue
            self._now = due
            callback()
            fired += 1
        self._now = target
        return fired

    @property
    def pending(self) -> int:
        return sum(1 for entry in self._queue if entry[3])


class Debouncer:
    """
    Coalesces bursts of triggers into a single call after a quiet period.

    Each trigger restarts the delay; only the last one fires. A timer thread
    that was already running when it got superseded or cancelled finds its
    generation stale and does nothing.
    """

    def __init__(self, scheduler: Scheduler, delay: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.delay = delay
        self.callback = callback
        self._handle: Optional[TimerHandle] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        with self._lock:
            self._disarm()
            generation = self._generation
            self._handle = self.scheduler.call_later(self.delay, lambda: self._fire(generation))

    def cancel(self) -> None:
        with self._lock:
            self._disarm()

    def flush(self) -> bool:
        """Run a pending call now. Returns False if nothing was pending."""
        with self._lock:
            if self._handle is None:
                return False
            self._disarm()
        self.callback()
        return True

    def _disarm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._handle = None
            self._generation += 1
        self.callback()


class RepeatingTimer:
    """Calls callback every interval seconds until stopped."""

    def __init__(self, scheduler: Scheduler, interval: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.interval = interval
        self.callback = callback
        self._handle: Optional[TimerHandle] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        with self._lock:
            if self._handle is None:
                self._arm(self._generation)

    def stop(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._generation += 1

    def _arm(self, generation: int) -> None:
        self._handle = self.scheduler.call_later(self.interval, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._arm(generation)
        self.callback()
