"""Core sync engine draining the operation queue against the remote API."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from .conflict import (
    ConflictResolution,
    ConflictResolver,
    ResolverFunc,
    detect_conflict,
    get_strategy,
)
from .connectivity import ConnectivityMonitor, ConnectivitySource
from .errors import ConflictError, PermanentError
from .models import OperationType, SyncConflict, SyncOperation
from .queue import OperationQueue
from .retry import RetryScheduler
from .status import StatusReporter, SyncStatusReport
from ..config.schema import SyncConfig
from ..remote.base import RemoteAPI
from ..scheduler.base import ScheduledTask, TaskScheduler
from ..scheduler.clock import Clock, SystemClock
from ..storage.store import PersistentStore
from ..utils.logging import get_logger, log_async_execution_time, operation_context


@dataclass
class SyncCycleResult:
    """Outcome of a single sync cycle."""

    ran: bool
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    dead_lettered: int = 0
    deferred: int = 0
    skipped: int = 0
    conflicts: int = 0
    errors: List[str] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


class SyncEngine:
    """Drains queued mutations against the remote API.

    At most one cycle runs at a time; triggers arriving while a cycle is
    running are no-ops. Triggers come from enqueue, reconnects, retry timers,
    the periodic auto-sync job and explicit calls to ``sync``.
    """

    def __init__(
        self,
        store: PersistentStore,
        remote: RemoteAPI,
        connectivity: ConnectivitySource,
        task_scheduler: TaskScheduler,
        clock: Optional[Clock] = None,
        config: Optional[SyncConfig] = None,
        conflict_resolver: Optional[ResolverFunc] = None
    ):
        """Initialize sync engine.

        Args:
            store: Durable store backing the operation queue
            remote: Remote mutation API
            connectivity: Source of online/offline transitions
            task_scheduler: Scheduler for retry, debounce and auto-sync timers
            clock: Time source, system UTC clock by default
            config: Runtime policy
            conflict_resolver: Resolver overriding the configured strategy
        """
        self.config = config or SyncConfig()
        self.clock = clock or SystemClock()
        self.store = store
        self.remote = remote
        self.connectivity = connectivity
        self.task_scheduler = task_scheduler
        self.logger = get_logger(self.__class__.__name__)

        self.queue = OperationQueue(store, self.clock)
        self.retry_scheduler = RetryScheduler(
            task_scheduler,
            delays=self.config.retry_delays_seconds,
            max_retries=self.config.max_retries,
            is_online=lambda: self.connectivity.is_online
        )
        self.conflict_resolver = ConflictResolver(
            conflict_resolver or get_strategy(self.config.conflict_strategy)
        )

        self._is_syncing = False
        self._cycle_task: Optional[asyncio.Task] = None
        self._auto_sync_task: Optional[ScheduledTask] = None

        self.status_reporter = StatusReporter(
            self.queue,
            store,
            is_online=lambda: self.connectivity.is_online,
            is_syncing=lambda: self._is_syncing
        )

        self.monitor = ConnectivityMonitor(
            connectivity,
            task_scheduler,
            debounce_seconds=self.config.online_debounce_seconds,
            clock=self.clock
        )
        self.monitor.on_online(self.request_sync)
        self.monitor.add_listener(lambda online: self.status_reporter.refresh())
        self.monitor.start()

        self.logger.info(
            "Sync engine initialized",
            enabled=self.config.enabled,
            pending=self.queue.pending_count(),
            failed=self.queue.failed_count(),
            max_retries=self.config.max_retries
        )

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def is_online(self) -> bool:
        return self.connectivity.is_online

    # Lifecycle

    async def start(self) -> None:
        """Subscribe to connectivity, register auto-sync and kick an initial cycle."""
        self.monitor.start()
        await self.connectivity.start()

        if self.config.auto_sync_interval_seconds > 0 and self._auto_sync_task is None:
            self._auto_sync_task = self.task_scheduler.call_every(
                self.config.auto_sync_interval_seconds,
                self._auto_sync,
                name="auto-sync"
            )

        self.logger.info(
            "Sync engine started",
            online=self.is_online,
            auto_sync_interval_seconds=self.config.auto_sync_interval_seconds
        )

        self.request_sync()

    async def stop(self) -> None:
        """Cancel timers, detach from connectivity and wait for the running cycle."""
        if self._auto_sync_task:
            self._auto_sync_task.cancel()
            self._auto_sync_task = None

        cancelled = self.retry_scheduler.cancel_all()
        self.monitor.stop()
        await self.connectivity.stop()
        await self.wait_for_idle()

        self.logger.info("Sync engine stopped", cancelled_retries=cancelled)

    def _auto_sync(self) -> None:
        if self.queue.pending_count() > 0:
            self.request_sync()

    # Triggers

    def request_sync(self) -> bool:
        """Start a background cycle if enabled, online and idle.

        Returns:
            True if a cycle was started
        """
        if not self.config.enabled:
            return False

        if not self.is_online:
            self.logger.debug("Sync request ignored while offline")
            return False

        if self._is_syncing or (self._cycle_task and not self._cycle_task.done()):
            self.logger.debug("Sync already in progress")
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop, sync deferred")
            return False

        self._cycle_task = loop.create_task(self.sync())
        return True

    async def wait_for_idle(self) -> None:
        """Wait for the background cycle started by ``request_sync``."""
        while self._cycle_task and not self._cycle_task.done():
            await self._cycle_task

    @log_async_execution_time
    async def sync(self) -> SyncCycleResult:
        """Run one sync cycle over a snapshot of the Pending operations."""
        if not self.config.enabled:
            return SyncCycleResult(ran=False, reason="disabled")

        if self._is_syncing:
            self.logger.debug("Sync already in progress")
            return SyncCycleResult(ran=False, reason="already_running")

        if not self.is_online:
            self.logger.info("Skipping sync while offline")
            return SyncCycleResult(ran=False, reason="offline")

        self._is_syncing = True
        result = SyncCycleResult(ran=True, started_at=self.clock.now())

        try:
            snapshot = self.queue.list_pending()
            self.status_reporter.refresh()

            self.logger.info("Starting sync cycle", pending=len(snapshot))

            for index, operation in enumerate(snapshot):
                if not self.is_online:
                    result.deferred += len(snapshot) - index
                    self.logger.info(
                        "Connection lost, stopping sync cycle",
                        remaining=len(snapshot) - index
                    )
                    break

                await self._process(operation, result)

        finally:
            self._is_syncing = False
            result.finished_at = self.clock.now()
            self.status_reporter.record_cycle(result.finished_at, result.last_error)

        self.logger.info(
            "Sync cycle completed",
            attempted=result.attempted,
            succeeded=result.succeeded,
            failed=result.failed,
            dead_lettered=result.dead_lettered,
            deferred=result.deferred,
            conflicts=result.conflicts
        )

        return result

    # Per-operation processing

    async def _process(self, operation: SyncOperation, result: SyncCycleResult) -> None:
        current = self.queue.mark_syncing(operation.id)
        if current is None:
            # Replaced or removed after the snapshot was taken
            result.skipped += 1
            return

        self.retry_scheduler.cancel(current.id)
        result.attempted += 1

        with operation_context(current):
            try:
                await self._attempt(current, result)
            except Exception as e:
                self._handle_failure(current, e, result)
                return

            self.queue.remove(current.id)
            result.succeeded += 1
            self.logger.info("Operation synced")

    async def _attempt(self, operation: SyncOperation, result: SyncCycleResult) -> None:
        payload = operation.payload

        if self.config.detect_conflicts and operation.type != OperationType.CREATE:
            record = await self.remote.fetch(operation.entity_type, operation.entity_id)
            conflict = None
            if record is not None:
                conflict = detect_conflict(operation, record.payload, record.updated_at)

            if conflict is not None:
                result.conflicts += 1
                decision = await self.conflict_resolver.resolve(conflict)
                if decision == ConflictResolution.USE_SERVER:
                    return
                payload = ConflictResolver.resolved_payload(conflict, decision)

        try:
            await self._dispatch(operation, payload)
        except ConflictError as e:
            conflict = await self._conflict_from_error(operation, e)
            if conflict is None:
                # No observable remote state to resolve against; retry instead
                raise
            result.conflicts += 1
            decision = await self.conflict_resolver.resolve(conflict)
            if decision == ConflictResolution.USE_SERVER:
                return
            # A second rejection is handled as a regular failure
            await self._dispatch(operation, ConflictResolver.resolved_payload(conflict, decision))

    async def _dispatch(self, operation: SyncOperation, payload: Any) -> Any:
        if operation.type == OperationType.CREATE:
            return await self.remote.create(operation.entity_type, operation.entity_id, payload)
        if operation.type == OperationType.UPDATE:
            return await self.remote.update(operation.entity_type, operation.entity_id, payload)
        return await self.remote.delete(operation.entity_type, operation.entity_id)

    async def _conflict_from_error(self, operation: SyncOperation, error: ConflictError) -> Optional[SyncConflict]:
        """Build the conflict for a rejected dispatch.

        Returns None when neither the rejection nor a fetch reveals when the
        remote last changed.
        """
        remote_payload = error.remote_payload
        remote_updated_at = error.remote_updated_at

        if remote_payload is None or remote_updated_at is None:
            record = await self.remote.fetch(operation.entity_type, operation.entity_id)
            if record is not None:
                remote_payload = record.payload if remote_payload is None else remote_payload
                remote_updated_at = remote_updated_at or record.updated_at

        if remote_updated_at is None:
            return None

        return SyncConflict(
            entity_type=operation.entity_type,
            entity_id=operation.entity_id,
            local_payload=operation.payload,
            remote_payload=remote_payload,
            local_timestamp=operation.enqueued_at,
            remote_timestamp=remote_updated_at,
        )

    def _handle_failure(self, operation: SyncOperation, error: Exception, result: SyncCycleResult) -> None:
        message = str(error) or type(error).__name__

        if not self.is_online:
            if self.queue.requeue(operation.id) is None:
                self._log_dropped(operation, message, result)
                return
            result.deferred += 1
            self.logger.info(
                "Operation failed while offline, left pending",
                error=message
            )
            return

        retry_count = operation.retry_count + 1
        terminal = self.retry_scheduler.is_exhausted(retry_count) or (
            self.config.fail_fast_on_permanent and isinstance(error, PermanentError)
        )

        updated = self.queue.record_failure(operation.id, message, terminal)
        if updated is None:
            self._log_dropped(operation, message, result)
            return

        result.failed += 1
        result.errors.append(message)

        if terminal:
            result.dead_lettered += 1
            self.logger.error(
                "Operation failed permanently",
                retry_count=retry_count,
                error=message
            )
            return

        self.logger.warning(
            "Operation failed, will retry",
            retry_count=retry_count,
            error=message
        )
        self.retry_scheduler.arm(operation.id, updated.retry_count, self.request_sync)

    def _log_dropped(self, operation: SyncOperation, message: str, result: SyncCycleResult) -> None:
        # Removed, cleared or superseded while the remote call was in flight
        result.skipped += 1
        self.retry_scheduler.cancel(operation.id)
        self.logger.info(
            "Failed operation no longer queued, not retrying",
            error=message
        )

    # Queue API

    def enqueue(
        self,
        type: OperationType,
        entity_type: str,
        entity_id: str,
        payload: Any = None
    ) -> str:
        """Queue a local mutation and opportunistically start a cycle.

        Returns:
            ID of the queued operation
        """
        operation_id = self.queue.enqueue(type, entity_type, entity_id, payload)
        self.request_sync()
        return operation_id

    def remove_operation(self, operation_id: str) -> bool:
        self.retry_scheduler.cancel(operation_id)
        return self.queue.remove(operation_id)

    def clear_queue(self) -> int:
        self.retry_scheduler.cancel_all()
        return self.queue.clear()

    async def retry_failed_operations(self) -> SyncCycleResult:
        """Give dead-lettered operations a fresh retry budget and run a cycle."""
        reset = self.queue.reset_failed()
        self.logger.info("Retrying failed operations", count=len(reset))
        await self.wait_for_idle()
        return await self.sync()

    def discard_failed_operations(self) -> int:
        discarded = self.queue.discard_failed()
        for operation_id in discarded:
            self.retry_scheduler.cancel(operation_id)

        if discarded:
            self.logger.info("Failed operations discarded", count=len(discarded))
        return len(discarded)

    def set_conflict_resolver(self, resolver: ResolverFunc) -> None:
        self.conflict_resolver = ConflictResolver(resolver)

    # Introspection

    def get_status(self) -> SyncStatusReport:
        return self.status_reporter.get_status()

    def get_pending_operations(self) -> List[SyncOperation]:
        return self.queue.list_pending()

    def get_failed_operations(self) -> List[SyncOperation]:
        return self.queue.list_failed()
