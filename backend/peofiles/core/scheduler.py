"""
Background scheduler and timer abstraction for delayed tasks.

Delayed work (the silent auto-delete after a download from the image view)
goes through a Timer so the lifecycle code never touches a real clock:
- BackgroundTimer: one-shot jobs on the process-wide APScheduler scheduler
- ManualTimer: deterministic clock driven by advance(), used by tests

Jobs are kept in memory only. If the process stops before a job fires,
the job is lost.
"""

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


class ScheduledTask:
    """Handle for a pending delayed call"""

    def __init__(self):
        self._lock = threading.Lock()
        self._done = False

    @property
    def active(self) -> bool:
        return not self._done

    def cancel(self) -> bool:
        """Cancel the call. Returns False if it already ran or was cancelled."""
        with self._lock:
            if self._done:
                return False
            self._done = True
        self._on_cancel()
        return True

    def _claim(self) -> bool:
        # Called right before running; loses against a concurrent cancel
        with self._lock:
            if self._done:
                return False
            self._done = True
            return True

    def _on_cancel(self) -> None:
        pass


class Timer(Protocol):
    """Anything that can run fn(*args) once, delay_seconds from now"""

    def call_later(self, delay_seconds: float, fn: Callable[..., Any], *args: Any) -> ScheduledTask:
        ...


class _JobTask(ScheduledTask):
    def __init__(self, fn: Callable[..., Any], args: tuple):
        super().__init__()
        self._fn = fn
        self._args = args
        self.job = None

    def run(self) -> None:
        if self._claim():
            self._fn(*self._args)

    def _on_cancel(self) -> None:
        if self.job is None:
            return
        try:
            self.job.remove()
        except JobLookupError:
            # Job already fired or the scheduler was shut down
            pass


class BackgroundTimer:
    """Timer backed by an APScheduler BackgroundScheduler"""

    def __init__(self, background_scheduler: Optional[BackgroundScheduler] = None):
        self._scheduler = background_scheduler or scheduler

    def call_later(self, delay_seconds: float, fn: Callable[..., Any], *args) -> ScheduledTask:
        task = _JobTask(fn, args)
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        task.job = self._scheduler.add_job(
            task.run,
            trigger=DateTrigger(run_date=run_date),
            # A late fire still has to run, the delay is a minimum
            misfire_grace_time=None,
        )
        return task


class _ManualTask(ScheduledTask):
    def __init__(self, due: float, fn: Callable[..., Any], args: tuple):
        super().__init__()
        self.due = due
        self._fn = fn
        self._args = args

    def run(self) -> None:
        if self._claim():
            self._fn(*self._args)


class ManualTimer:
    """
    Deterministic timer: nothing fires until advance() moves the clock
    past a task's due time. Tasks fire in due order, ties in scheduling order.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self._queue: list = []
        self._counter = itertools.count()

    def call_later(self, delay_seconds: float, fn: Callable[..., Any], *args) -> ScheduledTask:
        task = _ManualTask(self.now + delay_seconds, fn, args)
        heapq.heappush(self._queue, (task.due, next(self._counter), task))
        return task

    def advance(self, seconds: float) -> int:
        """Move the clock forward and run every task that became due. Returns how many ran."""
        target = self.now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if not task.active:
                continue
            self.now = due
            task.run()
            ran += 1
        self.now = target
        return ran

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if task.active)


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.start()
        logger.info("Background scheduler started.")


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down. Pending
    one-shot jobs are dropped with it.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped.")
