"""Remote mutation API package."""

from .base import (
    RemoteAPI,
    RemoteRecord,
    parse_remote_timestamp,
    extract_updated_at
)

from .http import HttpRemoteAPI

__all__ = [
    "RemoteAPI",
    "RemoteRecord",
    "parse_remote_timestamp",
    "extract_updated_at",
    "HttpRemoteAPI"
]
