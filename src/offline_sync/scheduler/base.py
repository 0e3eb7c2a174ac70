"""Delay-queue abstraction for retry, debounce and periodic triggers."""

import itertools
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .clock import ManualClock
from ..utils.logging import get_logger


TaskCallback = Callable[[], None]


class ScheduledTask:
    """Handle to a deferred callback."""

    def __init__(
        self,
        name: str,
        delay: float,
        due_at: datetime,
        callback: TaskCallback,
        interval: Optional[float] = None,
        on_cancel: Optional[Callable[["ScheduledTask"], None]] = None
    ):
        self.name = name
        self.delay = delay
        self.due_at = due_at
        self.callback = callback
        self.interval = interval
        self.cancelled = False
        self.fired = False
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        if self.cancelled:
            return False
        return self.interval is not None or not self.fired

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel:
            self._on_cancel(self)

    def __repr__(self):
        return f"<ScheduledTask(name='{self.name}', delay={self.delay}, due_at={self.due_at.isoformat()})>"


class TaskScheduler(ABC):
    """Schedules callbacks in the future.

    Callbacks only request work (e.g. a sync cycle); they must not block.
    """

    @abstractmethod
    def call_later(self, delay: float, callback: TaskCallback, name: str = "") -> ScheduledTask:
        """Run ``callback`` once after ``delay`` seconds."""
        pass

    @abstractmethod
    def call_every(self, interval: float, callback: TaskCallback, name: str = "") -> ScheduledTask:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        pass

    def shutdown(self) -> None:
        """Release scheduler resources."""
        pass


class VirtualTaskScheduler(TaskScheduler):
    """Scheduler driven by a ManualClock; time only passes via ``advance``."""

    def __init__(self, clock: Optional[ManualClock] = None):
        self.clock = clock or ManualClock()
        self.logger = get_logger(self.__class__.__name__)
        self.history: List[ScheduledTask] = []
        self._tasks: List[ScheduledTask] = []
        self._sequence = itertools.count()
        self._order = {}

    def call_later(self, delay: float, callback: TaskCallback, name: str = "") -> ScheduledTask:
        return self._add(delay, callback, name, interval=None)

    def call_every(self, interval: float, callback: TaskCallback, name: str = "") -> ScheduledTask:
        if interval <= 0:
            raise ValueError("interval must be positive")
        return self._add(interval, callback, name, interval=interval)

    def _add(self, delay: float, callback: TaskCallback, name: str, interval: Optional[float]) -> ScheduledTask:
        task = ScheduledTask(
            name=name,
            delay=delay,
            due_at=self.clock.now() + timedelta(seconds=delay),
            callback=callback,
            interval=interval,
        )
        self._order[id(task)] = next(self._sequence)
        self._tasks.append(task)
        self.history.append(task)
        return task

    def pending(self) -> List[ScheduledTask]:
        """Active tasks ordered by due time."""
        return sorted(
            (task for task in self._tasks if task.active),
            key=lambda task: (task.due_at, self._order[id(task)])
        )

    def advance(self, seconds: float) -> int:
        """Move virtual time forward, firing every task that falls due.

        Returns:
            Number of callbacks fired
        """
        target = self.clock.now() + timedelta(seconds=seconds)
        fired = 0

        while True:
            due = [task for task in self.pending() if task.due_at <= target]
            if not due:
                break

            task = due[0]
            self.clock.set(task.due_at)

            if task.interval is not None:
                task.due_at = task.due_at + timedelta(seconds=task.interval)
            else:
                task.fired = True

            self.logger.debug("Firing scheduled task", name=task.name, at=self.clock.now().isoformat())
            task.callback()
            fired += 1

        self.clock.set(target)
        self._tasks = [task for task in self._tasks if task.active]
        return fired

    def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
