"""
Schedulers
==========

One-shot timers and the periodic refresh task.

Timers are owned by the component that created them and are cancelled when
the component stops. No ambient or module-level timers exist.

Implementations:
    - AsyncioScheduler: loop.call_later on the running event loop
    - ManualScheduler: deterministic, driven by ManualClock.advance()

Design Rules:
    - A cancelled task never fires
    - A PeriodicTask that was stopped never fires again, even if a
      timer was already pending
"""

import asyncio
import heapq
import itertools
import logging
from datetime import timedelta
from typing import Callable, List, Optional, Protocol, Tuple

from hearing_dose.scheduling.clock import ManualClock


logger = logging.getLogger(__name__)


Callback = Callable[[], None]


class ScheduledTask:
    """Handle for a pending one-shot timer."""

    __slots__ = ("_cancel_hook", "_active")

    def __init__(self, cancel_hook: Optional[Callable[[], None]] = None) -> None:
        self._cancel_hook = cancel_hook
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Cancel the timer. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        if self._cancel_hook is not None:
            self._cancel_hook()

    def _mark_fired(self) -> None:
        self._active = False


class Scheduler(Protocol):
    """Creates cancellable one-shot timers."""

    def schedule(self, delay_seconds: float, callback: Callback) -> ScheduledTask:
        ...


class AsyncioScheduler:
    """
    Scheduler backed by the asyncio event loop.

    Must be used from inside a running loop (or given one explicitly).
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, delay_seconds: float, callback: Callback) -> ScheduledTask:
        task: ScheduledTask

        def _fire() -> None:
            if task.active:
                task._mark_fired()
                callback()

        handle = self._get_loop().call_later(max(delay_seconds, 0.0), _fire)
        task = ScheduledTask(cancel_hook=handle.cancel)
        return task


class ManualScheduler:
    """
    Deterministic scheduler for tests and replays.

    Timers fire only inside advance(), in due-time order, with the clock set
    to each timer's due time while its callback runs.

    Example:
        clock = ManualClock()
        scheduler = ManualScheduler(clock)
        scheduler.schedule(300, on_timeout)
        scheduler.advance(301)   # on_timeout fires
    """

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self._queue: List[Tuple[float, int, ScheduledTask, Callback]] = []
        self._seq = itertools.count()
        self._origin = clock.now()

    def _offset(self) -> float:
        return (self.clock.now() - self._origin).total_seconds()

    def schedule(self, delay_seconds: float, callback: Callback) -> ScheduledTask:
        due = self._offset() + max(delay_seconds, 0.0)
        task = ScheduledTask()
        heapq.heappush(self._queue, (due, next(self._seq), task, callback))
        return task

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, task, _ in self._queue if task.active)

    def advance(self, seconds: float) -> int:
        """
        Move time forward, firing every timer that comes due.

        Returns:
            Number of callbacks fired
        """
        target = self._offset() + seconds
        fired = 0

        while self._queue and self._queue[0][0] <= target:
            due, _, task, callback = heapq.heappop(self._queue)
            if not task.active:
                continue
            self.clock.set(self._origin + timedelta(seconds=max(due, self._offset())))
            task._mark_fired()
            callback()
            fired += 1

        self.clock.set(self._origin + timedelta(seconds=max(target, self._offset())))
        return fired


class PeriodicTask:
    """
    Repeating timer on top of a Scheduler.

    Exceptions from the callback are logged and the next run is still
    scheduled.

    Example:
        task = PeriodicTask(scheduler, 60.0, refresh, name="dose-refresh")
        task.start()
        ...
        task.stop()
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval_seconds: float,
        callback: Callback,
        name: str = "periodic",
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.name = name

        self._pending: Optional[ScheduledTask] = None
        self._running = False
        self.run_count = 0
        self.error_count = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._schedule_next()
        logger.info(f"Periodic task '{self.name}' started (every {self.interval_seconds:.0f}s)")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        logger.info(f"Periodic task '{self.name}' stopped after {self.run_count} runs")

    def _schedule_next(self) -> None:
        self._pending = self.scheduler.schedule(self.interval_seconds, self._tick)

    def _tick(self) -> None:
        if not self._running:
            return

        self.run_count += 1
        try:
            self.callback()
        except Exception:
            self.error_count += 1
            logger.exception(f"Periodic task '{self.name}' run failed, skipping")

        if self._running:
            self._schedule_next()

    def get_metrics(self) -> dict:
        return {
            "name": self.name,
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }
