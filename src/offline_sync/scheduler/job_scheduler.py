"""APScheduler-backed task scheduler for production hosts."""

from datetime import timedelta
from typing import Dict, Optional
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.jobstores.base import JobLookupError

from .base import ScheduledTask, TaskCallback, TaskScheduler
from .clock import Clock, SystemClock
from ..utils.logging import get_logger


class SchedulerError(Exception):
    """Raised when scheduler operations fail."""
    pass


class JobScheduler(TaskScheduler):
    """Runs deferred callbacks on an AsyncIOScheduler.

    Callbacks are wrapped in coroutines so they execute on the event loop
    rather than in APScheduler's thread pool.
    """

    def __init__(self, clock: Optional[Clock] = None, misfire_grace_time: int = 300):
        """Initialize job scheduler.

        Args:
            clock: Time source used to compute one-shot run dates
            misfire_grace_time: Seconds a late job may still run
        """
        self.clock = clock or SystemClock()
        self.logger = get_logger(self.__class__.__name__)

        self.scheduler = AsyncIOScheduler(
            job_defaults={
                'coalesce': True,  # Combine multiple pending executions
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': misfire_grace_time
            }
        )

        self.tasks: Dict[str, ScheduledTask] = {}

        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._job_missed, EVENT_JOB_MISSED)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the scheduler. Must be called with a running event loop."""
        if self.scheduler.running:
            self.logger.warning("Scheduler is already running")
            return

        try:
            self.scheduler.start()
        except Exception as e:
            self.logger.error("Failed to start scheduler", error=str(e))
            raise SchedulerError(f"Failed to start scheduler: {e}")

        self.logger.info("Job scheduler started", scheduled_tasks=len(self.tasks))

    def shutdown(self) -> None:
        """Stop the scheduler without waiting for running jobs."""
        if not self.scheduler.running:
            return

        self.scheduler.shutdown(wait=False)
        self.tasks.clear()
        self.logger.info("Job scheduler stopped")

    def call_later(self, delay: float, callback: TaskCallback, name: str = "") -> ScheduledTask:
        run_date = self.clock.now() + timedelta(seconds=delay)
        return self._add_job(
            name=name,
            delay=delay,
            callback=callback,
            trigger=DateTrigger(run_date=run_date),
            interval=None
        )

    def call_every(self, interval: float, callback: TaskCallback, name: str = "") -> ScheduledTask:
        if interval <= 0:
            raise SchedulerError("interval must be positive")
        return self._add_job(
            name=name,
            delay=interval,
            callback=callback,
            trigger=IntervalTrigger(seconds=interval),
            interval=interval
        )

    def _add_job(self, name, delay, callback, trigger, interval) -> ScheduledTask:
        job_id = f"{name or 'task'}-{uuid4().hex[:12]}"

        task = ScheduledTask(
            name=name,
            delay=delay,
            due_at=self.clock.now() + timedelta(seconds=delay),
            callback=callback,
            interval=interval,
            on_cancel=lambda _task: self._remove_job(job_id)
        )

        async def _run():
            if interval is None:
                task.fired = True
                self.tasks.pop(job_id, None)
            callback()

        self.scheduler.add_job(
            func=_run,
            trigger=trigger,
            id=job_id,
            name=name or job_id,
            replace_existing=True
        )
        self.tasks[job_id] = task

        self.logger.debug("Task scheduled", job_id=job_id, delay_seconds=delay, periodic=interval is not None)
        return task

    def _remove_job(self, job_id: str) -> None:
        self.tasks.pop(job_id, None)
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            # Already fired or removed by shutdown
            pass

    def _job_error(self, event):
        """Handle job error event."""
        self.logger.error(
            "Scheduled task failed",
            job_id=event.job_id,
            error=str(event.exception)
        )

    def _job_missed(self, event):
        """Handle job missed event."""
        self.logger.warning(
            "Scheduled task missed",
            job_id=event.job_id,
            scheduled_run_time=event.scheduled_run_time
        )
