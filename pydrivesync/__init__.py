"""pydrivesync - incremental synchronization of remote folder trees."""

from .api import HttpRemoteStore
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    DeadlineExceededError,
    DriveSyncError,
    EnumerationError,
    InvalidResponseError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    RemoteError,
)
from .models import Entry, ListQuery, ListResult
from .store import MemoryStore, RemoteStore

__version__ = "0.1.0"

__all__ = [
    "HttpRemoteStore",
    "MemoryStore",
    "RemoteStore",
    "Entry",
    "ListQuery",
    "ListResult",
    "DriveSyncError",
    "AuthenticationError",
    "ConfigurationError",
    "DeadlineExceededError",
    "EnumerationError",
    "InvalidResponseError",
    "NetworkError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitError",
    "RemoteError",
]
