"""Core offline sync logic package."""

from .errors import (
    SyncError,
    TransientError,
    PermanentError,
    ConflictError,
    QueueCorruptedError
)
from .models import (
    QUEUE_SCHEMA_VERSION,
    OperationType,
    OperationStatus,
    SyncOperation,
    QueueEnvelope,
    SyncConflict
)
from .queue import OperationQueue
from .retry import RetryScheduler
from .conflict import (
    ConflictResolution,
    ConflictResolver,
    latest_timestamp_wins,
    merge_payloads,
    detect_conflict,
    get_strategy,
    register_strategy
)
from .connectivity import (
    ConnectivitySource,
    ManualConnectivitySource,
    HttpProbeConnectivitySource,
    ConnectivityMonitor
)
from .status import StatusReporter, SyncStatusReport
from .sync_engine import SyncEngine, SyncCycleResult

__all__ = [
    "SyncError",
    "TransientError",
    "PermanentError",
    "ConflictError",
    "QueueCorruptedError",
    "QUEUE_SCHEMA_VERSION",
    "OperationType",
    "OperationStatus",
    "SyncOperation",
    "QueueEnvelope",
    "SyncConflict",
    "OperationQueue",
    "RetryScheduler",
    "ConflictResolution",
    "ConflictResolver",
    "latest_timestamp_wins",
    "merge_payloads",
    "detect_conflict",
    "get_strategy",
    "register_strategy",
    "ConnectivitySource",
    "ManualConnectivitySource",
    "HttpProbeConnectivitySource",
    "ConnectivityMonitor",
    "StatusReporter",
    "SyncStatusReport",
    "SyncEngine",
    "SyncCycleResult"
]
