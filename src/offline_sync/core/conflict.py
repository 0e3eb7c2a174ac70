"""Conflict detection and pluggable resolution strategies."""

import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .models import SyncConflict, SyncOperation
from ..utils.logging import get_logger


class ConflictResolution(str, Enum):
    """Decision returned by a conflict resolver."""
    USE_LOCAL = "use_local"
    USE_SERVER = "use_server"
    MERGE = "merge"


ResolverFunc = Callable[
    [SyncConflict],
    Union[ConflictResolution, Awaitable[ConflictResolution]]
]


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC so local and remote stamps compare."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def latest_timestamp_wins(conflict: SyncConflict) -> ConflictResolution:
    """Default policy: the most recent side wins, ties go to the server."""
    if as_utc(conflict.local_timestamp) > as_utc(conflict.remote_timestamp):
        return ConflictResolution.USE_LOCAL
    return ConflictResolution.USE_SERVER


def merge_payloads(local: Any, remote: Any) -> Any:
    """Shallow merge; local values win on key collision.

    Non-mapping payloads cannot be merged field by field, so the local one is kept.
    """
    if isinstance(local, dict) and isinstance(remote, dict):
        return {**remote, **local}
    return local


def detect_conflict(
    operation: SyncOperation,
    remote_payload: Any,
    remote_updated_at: Optional[datetime]
) -> Optional[SyncConflict]:
    """Build a SyncConflict when the remote changed after the mutation was queued."""
    if remote_updated_at is None:
        return None

    if as_utc(remote_updated_at) <= as_utc(operation.enqueued_at):
        return None

    return SyncConflict(
        entity_type=operation.entity_type,
        entity_id=operation.entity_id,
        local_payload=operation.payload,
        remote_payload=remote_payload,
        local_timestamp=operation.enqueued_at,
        remote_timestamp=remote_updated_at,
    )


_STRATEGIES: Dict[str, ResolverFunc] = {
    "latest_wins": latest_timestamp_wins,
    "use_local": lambda conflict: ConflictResolution.USE_LOCAL,
    "use_server": lambda conflict: ConflictResolution.USE_SERVER,
    "merge": lambda conflict: ConflictResolution.MERGE,
}


def get_strategy(name: str) -> ResolverFunc:
    """Look up a built-in strategy by name."""
    if name not in _STRATEGIES:
        raise ValueError(
            f"Unknown conflict strategy '{name}'. "
            f"Available: {', '.join(sorted(_STRATEGIES))}"
        )
    return _STRATEGIES[name]


def register_strategy(name: str, resolver: ResolverFunc) -> None:
    """Register a custom strategy under a name."""
    _STRATEGIES[name] = resolver


class ConflictResolver:
    """Defers conflict decisions to a pluggable resolver function.

    The resolver may be a plain function or a coroutine function.
    """

    def __init__(self, resolver: Optional[ResolverFunc] = None):
        self.resolver = resolver or latest_timestamp_wins
        self.logger = get_logger(self.__class__.__name__)

    async def resolve(self, conflict: SyncConflict) -> ConflictResolution:
        decision = self.resolver(conflict)
        if inspect.isawaitable(decision):
            decision = await decision

        decision = ConflictResolution(decision)

        self.logger.info(
            "Conflict resolved",
            entity_type=conflict.entity_type,
            entity_id=conflict.entity_id,
            local_timestamp=conflict.local_timestamp.isoformat(),
            remote_timestamp=conflict.remote_timestamp.isoformat(),
            decision=decision.value
        )
        return decision

    @staticmethod
    def resolved_payload(conflict: SyncConflict, decision: ConflictResolution) -> Any:
        """Payload to send for a decision (UseServer keeps the remote state)."""
        if decision == ConflictResolution.USE_LOCAL:
            return conflict.local_payload
        if decision == ConflictResolution.USE_SERVER:
            return conflict.remote_payload
        return merge_payloads(conflict.local_payload, conflict.remote_payload)
