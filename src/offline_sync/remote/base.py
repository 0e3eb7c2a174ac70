"""Remote mutation API interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..utils.logging import get_logger


@dataclass
class RemoteRecord:
    """Authoritative remote state of an entity."""

    payload: Any
    updated_at: Optional[datetime] = None


def parse_remote_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ``updatedAt`` value: ISO-8601 string, epoch milliseconds or datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def extract_updated_at(payload: Any) -> Optional[datetime]:
    """Read the remote modification stamp from a response body."""
    if not isinstance(payload, dict):
        return None
    for field in ("updatedAt", "updated_at"):
        if field in payload:
            return parse_remote_timestamp(payload[field])
    return None


class RemoteAPI(ABC):
    """Per-entity-type create/update/delete endpoints of the remote data store.

    Implementations raise the errors from ``offline_sync.core.errors``:
    TransientError, PermanentError or ConflictError.
    """

    def __init__(self, **kwargs):
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    async def create(self, entity_type: str, entity_id: str, payload: Any) -> Any:
        pass

    @abstractmethod
    async def update(self, entity_type: str, entity_id: str, payload: Any) -> Any:
        pass

    @abstractmethod
    async def delete(self, entity_type: str, entity_id: str) -> Any:
        pass

    async def fetch(self, entity_type: str, entity_id: str) -> Optional[RemoteRecord]:
        """Current remote state, or None when unknown.

        The default implementation disables conflict detection.
        """
        return None

    async def close(self) -> None:
        pass

    async def get_info(self) -> Dict[str, Any]:
        return {"client_type": self.__class__.__name__}
