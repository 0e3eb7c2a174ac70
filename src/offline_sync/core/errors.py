"""Error taxonomy for sync operations."""

from datetime import datetime
from typing import Any, Optional


class SyncError(Exception):
    """Base exception for sync engine errors."""
    pass


class TransientError(SyncError):
    """Network or server-side failure that may succeed on retry."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PermanentError(SyncError):
    """Request rejected by the remote (validation, 4xx).

    Retried like a transient error unless ``fail_fast_on_permanent`` is set.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConflictError(SyncError):
    """Remote state diverged from the local mutation.

    Routed to the conflict resolver rather than the retry path. The remote
    side may attach its current state so no extra fetch is needed. Without a
    remote timestamp, attached or fetched, it is retried like any failure.
    """

    def __init__(
        self,
        message: str,
        remote_payload: Any = None,
        remote_updated_at: Optional[datetime] = None
    ):
        super().__init__(message)
        self.remote_payload = remote_payload
        self.remote_updated_at = remote_updated_at


class QueueCorruptedError(SyncError):
    """Persisted queue could not be decoded or has an unsupported schema version."""
    pass
