"""Backoff table and retry timers for failed operations."""

from typing import Callable, Dict, List, Optional, Sequence

from ..config.schema import DEFAULT_RETRY_DELAYS_SECONDS
from ..scheduler.base import ScheduledTask, TaskScheduler
from ..utils.logging import get_logger


class RetryScheduler:
    """Computes backoff delays and arms deferred sync triggers.

    A fired timer only requests a sync cycle; it never dispatches an operation
    itself. When the host is offline at fire time the attempt is skipped and
    the connectivity-restored trigger takes over.
    """

    def __init__(
        self,
        task_scheduler: TaskScheduler,
        delays: Sequence[float] = DEFAULT_RETRY_DELAYS_SECONDS,
        max_retries: int = 5,
        is_online: Optional[Callable[[], bool]] = None
    ):
        if not delays:
            raise ValueError("Backoff table must not be empty")

        self.task_scheduler = task_scheduler
        self.delays: List[float] = list(delays)
        self.max_retries = max_retries
        self.is_online = is_online or (lambda: True)
        self.logger = get_logger(self.__class__.__name__)

        self._armed: Dict[str, ScheduledTask] = {}

    def delay_for(self, retry_count: int) -> float:
        """Backoff for an operation that has failed ``retry_count`` times."""
        index = min(max(retry_count, 1) - 1, len(self.delays) - 1)
        return self.delays[index]

    def is_exhausted(self, retry_count: int) -> bool:
        return retry_count >= self.max_retries

    def arm(self, operation_id: str, retry_count: int, on_fire: Callable[[], None]) -> ScheduledTask:
        """Schedule a retry trigger, replacing any earlier one for the operation."""
        self.cancel(operation_id)

        delay = self.delay_for(retry_count)

        def _fire():
            self._armed.pop(operation_id, None)
            if not self.is_online():
                self.logger.info(
                    "Skipping retry while offline",
                    operation_id=operation_id,
                    retry_count=retry_count
                )
                return
            on_fire()

        task = self.task_scheduler.call_later(delay, _fire, name=f"retry:{operation_id}")
        self._armed[operation_id] = task

        self.logger.info(
            "Retry armed",
            operation_id=operation_id,
            retry_count=retry_count,
            delay_seconds=delay
        )
        return task

    def cancel(self, operation_id: str) -> bool:
        task = self._armed.pop(operation_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        count = len(self._armed)
        for task in self._armed.values():
            task.cancel()
        self._armed.clear()
        return count

    def armed(self) -> Dict[str, ScheduledTask]:
        """Outstanding retry timers keyed by operation ID."""
        return dict(self._armed)
