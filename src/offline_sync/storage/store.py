"""Key-value persistence used by the sync queue."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from .database import DatabaseManager
from .models import KeyValueModel
from ..utils.logging import get_logger


class StoreError(Exception):
    """Raised when the durable store cannot read or write a value."""
    pass


class PersistentStore(ABC):
    """Synchronous key-value store.

    Writes must be durable by the time ``set``/``remove`` return; the queue
    relies on this to survive a crash between a flush and the remote
    acknowledgment.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one atomically."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key. Removing an absent key is not an error."""
        pass


class InMemoryStore(PersistentStore):
    """Process-local store for tests and ephemeral hosts."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self.write_count = 0

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.write_count += 1

    def remove(self, key: str) -> None:
        self._data.pop(key, None)
        self.write_count += 1

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class SQLAlchemyStore(PersistentStore):
    """Store backed by the ``kv_store`` table.

    Each call runs in its own transaction, so a value is either fully
    replaced or left untouched.
    """

    def __init__(self, db_manager: DatabaseManager, namespace: str = "sync"):
        self.db_manager = db_manager
        self.namespace = namespace
        self.logger = get_logger(self.__class__.__name__)

    def get(self, key: str) -> Optional[str]:
        try:
            with self.db_manager.session_scope() as session:
                record = session.get(KeyValueModel, (self.namespace, key))
                return record.value if record else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            with self.db_manager.session_scope() as session:
                record = session.get(KeyValueModel, (self.namespace, key))
                if record:
                    record.value = value
                else:
                    session.add(KeyValueModel(namespace=self.namespace, key=key, value=value))
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to write '{key}': {e}") from e

        self.logger.debug("Value persisted", namespace=self.namespace, key=key, size=len(value))

    def remove(self, key: str) -> None:
        try:
            with self.db_manager.session_scope() as session:
                record = session.get(KeyValueModel, (self.namespace, key))
                if record:
                    session.delete(record)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to remove '{key}': {e}") from e
