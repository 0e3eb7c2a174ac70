"""Data model for queued mutations and their persisted envelope."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, validator


QUEUE_SCHEMA_VERSION = 1


class OperationType(str, Enum):
    """Kind of mutation sent to the remote."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class OperationStatus(str, Enum):
    """Lifecycle state of a queued operation."""
    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    FAILED = "failed"


class SyncOperation(BaseModel):
    """A local mutation waiting to be applied remotely."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    type: OperationType
    entity_type: str
    entity_id: str
    payload: Any = None
    enqueued_at: datetime
    retry_count: int = 0
    last_error: Optional[str] = None
    status: OperationStatus = OperationStatus.PENDING

    @validator('entity_type', 'entity_id')
    def validate_identifiers(cls, v):
        if not v:
            raise ValueError("entity_type and entity_id must not be empty")
        return v

    @validator('retry_count')
    def validate_retry_count(cls, v):
        if v < 0:
            raise ValueError("retry_count must be non-negative")
        return v

    @property
    def entity_key(self) -> tuple:
        return (self.entity_type, self.entity_id)

    @property
    def is_pending(self) -> bool:
        return self.status == OperationStatus.PENDING

    @property
    def is_failed(self) -> bool:
        return self.status == OperationStatus.FAILED


class QueueEnvelope(BaseModel):
    """Versioned document holding the whole queue in the store."""

    schema_version: int = QUEUE_SCHEMA_VERSION
    operations: List[SyncOperation] = Field(default_factory=list)

    @validator('schema_version')
    def validate_schema_version(cls, v):
        if v != QUEUE_SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported queue schema version {v} (expected {QUEUE_SCHEMA_VERSION})"
            )
        return v


@dataclass
class SyncConflict:
    """Divergence between a queued payload and the remote state."""

    entity_type: str
    entity_id: str
    local_payload: Any
    remote_payload: Any
    local_timestamp: datetime
    remote_timestamp: datetime
