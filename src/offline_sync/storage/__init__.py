"""Durable local storage package."""

from .database import (
    DatabaseManager,
    init_database
)

from .models import KeyValueModel

from .store import (
    PersistentStore,
    InMemoryStore,
    SQLAlchemyStore,
    StoreError
)

__all__ = [
    # Database management
    "DatabaseManager",
    "init_database",

    # Models
    "KeyValueModel",

    # Stores
    "PersistentStore",
    "InMemoryStore",
    "SQLAlchemyStore",
    "StoreError"
]
