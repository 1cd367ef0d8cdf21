"""Exceptions raised by pydrivesync."""

from typing import Optional


class DriveSyncError(Exception):
    """Base exception for all pydrivesync errors."""


class ConfigurationError(DriveSyncError):
    """Missing, conflicting or out-of-range configuration."""


class RemoteError(DriveSyncError):
    """A remote storage operation failed."""


class NotFoundError(RemoteError):
    """The requested entry does not exist or is not accessible."""


class AuthenticationError(RemoteError):
    """The backend rejected the credentials."""


class PermissionDeniedError(RemoteError):
    """The backend refused the operation for lack of permission."""


class RateLimitError(RemoteError):
    """The backend is throttling requests."""


class NetworkError(RemoteError):
    """The request never reached the backend or the connection broke."""


class InvalidResponseError(RemoteError):
    """The backend answered with something that is not the expected JSON."""


class EnumerationError(DriveSyncError):
    """Listing the children of a folder failed.

    Attributes:
        folder_id: ID of the folder whose listing failed (None for the root)
    """

    def __init__(self, folder_id: Optional[str], message: str):
        self.folder_id = folder_id
        super().__init__(f"Failed to list folder {folder_id or '<root>'}: {message}")


class DeadlineExceededError(DriveSyncError, TimeoutError):
    """A run went past its wall-clock deadline.

    Attributes:
        elapsed: Seconds elapsed when the deadline check tripped
        timeout: Configured deadline in seconds
    """

    def __init__(self, elapsed: float, timeout: float):
        self.elapsed = elapsed
        self.timeout = timeout
        super().__init__(
            "Operation timeout - consider reducing batch size or using "
            "smaller file sets"
        )
