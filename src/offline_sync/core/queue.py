"""Durable, ordered queue of pending mutations."""

from typing import Any, Callable, List, Optional

from pydantic import ValidationError

from ..scheduler.clock import Clock, SystemClock
from .errors import QueueCorruptedError
from .models import (
    OperationStatus,
    OperationType,
    QueueEnvelope,
    SyncOperation,
)
from ..storage.store import PersistentStore
from ..utils.logging import get_logger


QUEUE_KEY = "sync_queue"

QueueListener = Callable[[], None]


class OperationQueue:
    """Ordered collection of SyncOperations persisted on every mutation.

    Each mutation builds the next queue state, writes it to the store and only
    then swaps it in, so the in-memory queue never gets ahead of what is on
    disk. Read methods hand out copies; the live operations are only changed
    through this class.
    """

    def __init__(
        self,
        store: PersistentStore,
        clock: Optional[Clock] = None,
        key: str = QUEUE_KEY
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.key = key
        self.logger = get_logger(self.__class__.__name__)

        self._operations: List[SyncOperation] = []
        self._listeners: List[QueueListener] = []

        self.load()

    # Persistence

    def load(self) -> None:
        """Load the queue from the store, recovering interrupted dispatches.

        Raises:
            QueueCorruptedError: If the stored envelope is unreadable
        """
        raw = self.store.get(self.key)
        if raw is None:
            self._operations = []
            return

        try:
            envelope = QueueEnvelope.model_validate_json(raw)
        except ValidationError as e:
            self.logger.error("Persisted sync queue is unreadable", key=self.key, error=str(e))
            raise QueueCorruptedError(f"Persisted sync queue '{self.key}' is unreadable: {e}") from e

        operations, recovered = self._recover(envelope.operations)
        self._operations = operations

        if recovered:
            # Persist the recovered state so a second crash starts from it
            self._write(self._operations)

        self.logger.info(
            "Sync queue loaded",
            operations=len(self._operations),
            pending=len(self.list_pending()),
            failed=len(self.list_failed()),
            recovered=recovered
        )

    def _recover(self, operations: List[SyncOperation]) -> tuple:
        """Return Syncing operations to Pending after a crash.

        A Syncing operation whose entity already has a newer Pending mutation
        is dropped instead, keeping one Pending operation per entity.
        """
        pending_keys = {op.entity_key for op in operations if op.is_pending}
        result = []
        recovered = 0

        for op in operations:
            if op.status == OperationStatus.SYNCING:
                recovered += 1
                if op.entity_key in pending_keys:
                    self.logger.warning(
                        "Dropping interrupted operation superseded by a newer mutation",
                        operation_id=op.id,
                        entity_type=op.entity_type,
                        entity_id=op.entity_id
                    )
                    continue
                op.status = OperationStatus.PENDING
                pending_keys.add(op.entity_key)
            result.append(op)

        return result, recovered

    def _write(self, operations: List[SyncOperation]) -> None:
        envelope = QueueEnvelope(operations=operations)
        self.store.set(self.key, envelope.model_dump_json())

    def _commit(self, operations: List[SyncOperation]) -> None:
        self._write(operations)
        self._operations = operations
        self._notify()

    # Listeners

    def add_listener(self, listener: QueueListener) -> None:
        """Register a callback invoked after every committed mutation."""
        self._listeners.append(listener)

    def remove_listener(self, listener: QueueListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                self.logger.warning("Queue listener failed", error=str(e))

    # Mutations

    def enqueue(
        self,
        type: OperationType,
        entity_type: str,
        entity_id: str,
        payload: Any = None
    ) -> str:
        """Add a mutation, replacing the Pending one for the same entity.

        Returns:
            ID of the new operation
        """
        operation = SyncOperation(
            type=OperationType(type),
            entity_type=entity_type,
            entity_id=str(entity_id),
            payload=payload,
            enqueued_at=self.clock.now(),
        )

        operations = list(self._operations)
        replaced = None
        for index, existing in enumerate(operations):
            if existing.is_pending and existing.entity_key == operation.entity_key:
                replaced = existing
                operations[index] = operation
                break
        else:
            operations.append(operation)

        self._commit(operations)

        self.logger.info(
            "Operation enqueued",
            operation_id=operation.id,
            type=operation.type.value,
            entity_type=entity_type,
            entity_id=operation.entity_id,
            replaced=replaced.id if replaced else None
        )

        return operation.id

    def remove(self, operation_id: str) -> bool:
        """Remove an operation. Returns False if it was not queued."""
        operations = [op for op in self._operations if op.id != operation_id]
        if len(operations) == len(self._operations):
            return False

        self._commit(operations)
        return True

    def clear(self) -> int:
        """Drop every operation. Returns the number removed."""
        count = len(self._operations)
        self._commit([])
        self.logger.info("Sync queue cleared", removed=count)
        return count

    def discard_failed(self) -> List[str]:
        """Purge dead-lettered operations. Returns their IDs."""
        discarded = [op.id for op in self._operations if op.is_failed]
        if discarded:
            self._commit([op for op in self._operations if not op.is_failed])
        return discarded

    def reset_failed(self) -> List[str]:
        """Move dead-lettered operations back to Pending with a fresh retry budget.

        If the entity picked up a newer Pending mutation in the meantime, the
        failed operation is superseded and dropped instead.
        """
        pending_keys = {op.entity_key for op in self._operations if op.is_pending}
        operations = []
        reset = []

        for op in self._operations:
            if op.is_failed:
                if op.entity_key in pending_keys:
                    continue
                op = op.model_copy(update={
                    "status": OperationStatus.PENDING,
                    "retry_count": 0,
                    "last_error": None,
                })
                pending_keys.add(op.entity_key)
                reset.append(op.id)
            operations.append(op)

        if reset or len(operations) != len(self._operations):
            self._commit(operations)
        return reset

    def mark_syncing(self, operation_id: str) -> Optional[SyncOperation]:
        """Move a Pending operation to Syncing.

        Returns:
            Copy of the updated operation, or None if it is no longer Pending
        """
        current = self._find(operation_id)
        if current is None or not current.is_pending:
            return None
        return self._update(current, status=OperationStatus.SYNCING)

    def record_failure(self, operation_id: str, error: str, terminal: bool) -> Optional[SyncOperation]:
        """Count a failed attempt and move the operation to Pending or Failed.

        Returns:
            Copy of the updated operation, or None if it was removed or
            superseded by a newer mutation while in flight
        """
        current = self._find(operation_id)
        if current is None:
            return None
        if self._drop_if_superseded(current):
            return None
        return self._update(
            current,
            retry_count=current.retry_count + 1,
            last_error=error,
            status=OperationStatus.FAILED if terminal else OperationStatus.PENDING,
        )

    def requeue(self, operation_id: str) -> Optional[SyncOperation]:
        """Return a Syncing operation to Pending without consuming a retry.

        Returns None under the same conditions as ``record_failure``.
        """
        current = self._find(operation_id)
        if current is None:
            return None
        if self._drop_if_superseded(current):
            return None
        return self._update(current, status=OperationStatus.PENDING)

    def _drop_if_superseded(self, current: SyncOperation) -> bool:
        """Remove ``current`` if its entity gained a newer Pending mutation."""
        superseded = any(
            op.id != current.id and op.is_pending and op.entity_key == current.entity_key
            for op in self._operations
        )
        if not superseded:
            return False

        self._commit([op for op in self._operations if op.id != current.id])
        self.logger.info(
            "Dropping operation superseded by a newer mutation",
            operation_id=current.id,
            entity_type=current.entity_type,
            entity_id=current.entity_id
        )
        return True

    def _update(self, current: SyncOperation, **changes) -> SyncOperation:
        updated = current.model_copy(update=changes)
        self._commit([updated if op.id == current.id else op for op in self._operations])
        return updated.model_copy(deep=True)

    # Introspection

    def _find(self, operation_id: str) -> Optional[SyncOperation]:
        for op in self._operations:
            if op.id == operation_id:
                return op
        return None

    def get(self, operation_id: str) -> Optional[SyncOperation]:
        op = self._find(operation_id)
        return op.model_copy(deep=True) if op else None

    def list_all(self) -> List[SyncOperation]:
        return [op.model_copy(deep=True) for op in self._operations]

    def list_pending(self) -> List[SyncOperation]:
        """Pending operations in enqueue order."""
        return [op.model_copy(deep=True) for op in self._operations if op.is_pending]

    def list_failed(self) -> List[SyncOperation]:
        return [op.model_copy(deep=True) for op in self._operations if op.is_failed]

    def pending_count(self) -> int:
        return sum(1 for op in self._operations if op.is_pending)

    def failed_count(self) -> int:
        return sum(1 for op in self._operations if op.is_failed)

    def __len__(self) -> int:
        return len(self._operations)
