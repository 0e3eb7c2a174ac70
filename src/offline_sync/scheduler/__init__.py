"""Scheduling package: clocks, delay queue and the APScheduler host."""

from .clock import Clock, SystemClock, ManualClock
from .base import ScheduledTask, TaskScheduler, VirtualTaskScheduler
from .job_scheduler import JobScheduler, SchedulerError

__all__ = [
    "Clock",
    "SystemClock",
    "ManualClock",
    "ScheduledTask",
    "TaskScheduler",
    "VirtualTaskScheduler",
    "JobScheduler",
    "SchedulerError"
]
