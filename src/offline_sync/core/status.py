"""Aggregate sync health derived from the queue and engine state."""

from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel

from .queue import OperationQueue
from ..remote.base import parse_remote_timestamp
from ..storage.store import PersistentStore
from ..utils.logging import get_logger


LAST_SYNC_AT_KEY = "last_sync_at"
LAST_SYNC_ERROR_KEY = "last_sync_error"


class SyncStatusReport(BaseModel):
    """Point-in-time view of the sync subsystem."""
    is_online: bool
    is_syncing: bool
    pending_operations: int
    failed_operations: int
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None


StatusSubscriber = Callable[[SyncStatusReport], None]


class StatusReporter:
    """Computes SyncStatusReport on demand; nothing is cached.

    Subscribers are pushed a fresh report after every queue mutation and
    connectivity transition. Consumers may also poll ``get_status``.
    """

    def __init__(
        self,
        queue: OperationQueue,
        store: PersistentStore,
        is_online: Callable[[], bool],
        is_syncing: Callable[[], bool]
    ):
        self.queue = queue
        self.store = store
        self.is_online = is_online
        self.is_syncing = is_syncing
        self.logger = get_logger(self.__class__.__name__)

        self._subscribers: List[StatusSubscriber] = []
        self.queue.add_listener(self.refresh)

    def get_status(self) -> SyncStatusReport:
        return SyncStatusReport(
            is_online=self.is_online(),
            is_syncing=self.is_syncing(),
            pending_operations=self.queue.pending_count(),
            failed_operations=self.queue.failed_count(),
            last_sync_at=parse_remote_timestamp(self.store.get(LAST_SYNC_AT_KEY)),
            last_error=self.store.get(LAST_SYNC_ERROR_KEY),
        )

    def subscribe(self, subscriber: StatusSubscriber) -> Callable[[], None]:
        """Register a subscriber. Returns an unsubscribe callable."""
        self._subscribers.append(subscriber)

        def _unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def refresh(self) -> None:
        """Push a freshly computed report to every subscriber."""
        if not self._subscribers:
            return

        report = self.get_status()
        for subscriber in list(self._subscribers):
            try:
                subscriber(report)
            except Exception as e:
                self.logger.warning("Status subscriber failed", error=str(e))

    def record_cycle(self, finished_at: datetime, cycle_error: Optional[str] = None) -> None:
        """Persist bookkeeping for a finished sync cycle.

        Dead-lettered operations take precedence over the last error of the cycle.
        """
        self.store.set(LAST_SYNC_AT_KEY, finished_at.isoformat())

        failed = self.queue.failed_count()
        if failed:
            self.store.set(LAST_SYNC_ERROR_KEY, f"{failed} operations failed")
        elif cycle_error:
            self.store.set(LAST_SYNC_ERROR_KEY, cycle_error)
        else:
            self.store.remove(LAST_SYNC_ERROR_KEY)

        self.refresh()
