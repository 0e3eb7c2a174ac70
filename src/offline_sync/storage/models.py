"""Database models for the durable local store."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base


Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueModel(Base):
    """A single persisted value, addressed by namespace and key."""

    __tablename__ = "kv_store"

    namespace = Column(String(100), primary_key=True)
    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    def __repr__(self):
        return f"<KeyValueModel(namespace='{self.namespace}', key='{self.key}')>"
