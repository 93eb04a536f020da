"""Deferred and repeating task scheduler for screen timers and clocks."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from heapq import heappop, heappush
from time import monotonic

from psdrun.runtime.errors import RECOVERABLE_RUNTIME_ERRORS, log_recoverable

TaskCallback = Callable[[], None]

_LOG = logging.getLogger("psdrun.runtime.scheduler")


@dataclass(slots=True)
class _Task:
    task_id: int
    due_seconds: float
    callback: TaskCallback
    interval_seconds: float | None = None
    cancelled: bool = False
    queued_at_seconds: float = 0.0


class Scheduler:
    """Time-based scheduler advanced explicitly by its host."""

    def __init__(self) -> None:
        self._now_seconds = 0.0
        self._next_task_id = 1
        self._tasks: dict[int, _Task] = {}
        self._queue: list[tuple[float, int]] = []

    @property
    def now_seconds(self) -> float:
        return self._now_seconds

    @property
    def queued_task_count(self) -> int:
        """Return count of active queued tasks."""
        return sum(1 for task in self._tasks.values() if not task.cancelled)

    def is_pending(self, task_id: int) -> bool:
        task = self._tasks.get(task_id)
        return task is not None and not task.cancelled

    def call_later(self, delay_seconds: float, callback: TaskCallback) -> int:
        """Schedule a one-shot callback after delay."""
        if delay_seconds < 0.0:
            raise ValueError("delay_seconds must be >= 0")
        due_seconds = self._now_seconds + delay_seconds
        return self._schedule(due_seconds=due_seconds, callback=callback, interval_seconds=None)

    def call_every(self, interval_seconds: float, callback: TaskCallback) -> int:
        """Schedule a recurring callback at fixed interval."""
        if interval_seconds <= 0.0:
            raise ValueError("interval_seconds must be > 0")
        due_seconds = self._now_seconds + interval_seconds
        return self._schedule(
            due_seconds=due_seconds,
            callback=callback,
            interval_seconds=interval_seconds,
        )

    def cancel(self, task_id: int) -> None:
        """Cancel a scheduled task if it exists."""
        task = self._tasks.get(task_id)
        if task is not None:
            task.cancelled = True

    def cancel_all(self, task_ids: Iterable[int]) -> None:
        for task_id in task_ids:
            self.cancel(task_id)

    def advance(self, delta_seconds: float) -> int:
        """Advance scheduler clock and run due callbacks."""
        if delta_seconds < 0.0:
            raise ValueError("delta_seconds must be >= 0")
        return self.run_due(self._now_seconds + delta_seconds)

    def run_due(self, now_seconds: float) -> int:
        """Run callbacks due at or before ``now_seconds``.

        Callbacks fire in due order, and the clock reads each task's due time
        while it runs, so work scheduled from inside a callback is timed from
        that moment. A zero-delay task queued by a callback waits for the next
        call, so callbacks that keep rescheduling themselves cannot stall it.
        """
        if now_seconds < self._now_seconds:
            raise ValueError("now_seconds cannot move backwards")
        first_new_task_id = self._next_task_id
        deferred: list[tuple[float, int]] = []
        executed = 0
        try:
            while self._queue and self._queue[0][0] <= now_seconds:
                due_seconds, task_id = heappop(self._queue)
                task = self._tasks.get(task_id)
                if task is None or task.cancelled:
                    self._tasks.pop(task_id, None)
                    continue
                if task_id >= first_new_task_id and due_seconds <= task.queued_at_seconds:
                    deferred.append((due_seconds, task_id))
                    continue
                self._now_seconds = max(self._now_seconds, due_seconds)
                try:
                    task.callback()
                finally:
                    self._finish(task)
                executed += 1
        finally:
            for entry in deferred:
                heappush(self._queue, entry)
            self._now_seconds = max(self._now_seconds, now_seconds)
        return executed

    def _finish(self, task: _Task) -> None:
        """Requeue a repeating task or forget a finished one."""
        if task.cancelled or task.interval_seconds is None:
            self._tasks.pop(task.task_id, None)
            return
        task.due_seconds += task.interval_seconds
        heappush(self._queue, (task.due_seconds, task.task_id))

    def _schedule(
        self,
        *,
        due_seconds: float,
        callback: TaskCallback,
        interval_seconds: float | None,
    ) -> int:
        task_id = self._next_task_id
        self._next_task_id += 1
        task = _Task(
            task_id=task_id,
            due_seconds=due_seconds,
            callback=callback,
            interval_seconds=interval_seconds,
            queued_at_seconds=self._now_seconds,
        )
        self._tasks[task_id] = task
        heappush(self._queue, (due_seconds, task_id))
        return task_id


async def run_scheduler(
    scheduler: Scheduler,
    *,
    tick_seconds: float,
    stop: asyncio.Event,
    time_source: Callable[[], float] = monotonic,
) -> None:
    """Drive a scheduler from wall-clock time on the running event loop."""
    if tick_seconds <= 0.0:
        raise ValueError("tick_seconds must be > 0")
    origin = time_source() - scheduler.now_seconds
    while not stop.is_set():
        try:
            await asyncio.wait_for(stop.wait(), timeout=tick_seconds)
        except TimeoutError:
            pass
        try:
            scheduler.run_due(max(scheduler.now_seconds, time_source() - origin))
        except RECOVERABLE_RUNTIME_ERRORS:
            log_recoverable(_LOG, "scheduler_callback_failed", level=logging.WARNING)
