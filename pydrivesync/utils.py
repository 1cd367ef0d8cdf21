"""Utility functions for pydrivesync."""

from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants for replication
# =============================================================================

# Mime type the backend uses to mark folders
FOLDER_MIME_TYPE: str = "application/vnd.google-apps.folder"

# Files processed per chunk, and the allowed range
DEFAULT_BATCH_SIZE: int = 20
MIN_BATCH_SIZE: int = 1
MAX_BATCH_SIZE: int = 100

# Simultaneous in-flight copy operations, and the allowed range
DEFAULT_MAX_CONCURRENCY: int = 5
MIN_MAX_CONCURRENCY: int = 1
MAX_MAX_CONCURRENCY: int = 20

# Wall-clock deadline for one replication run (4.5 minutes)
DEFAULT_TIMEOUT: float = 270.0

# Pauses that keep the backend's rate limiter happy (seconds)
DEFAULT_BATCH_DELAY: float = 0.1
DEFAULT_FOLDER_DELAY: float = 0.05

# Page size used for listing requests
DEFAULT_PAGE_SIZE: int = 100

# Caps on the detail lists of a serialized replication report
MAX_REPORTED_COPIED_FILES: int = 100
MAX_REPORTED_ERRORS: int = 50


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp returned by the backend.

    The full resolution of the timestamp is kept. Naive timestamps are
    assumed to be UTC so that comparisons between entries never mix aware
    and naive datetimes.

    Args:
        timestamp_str: ISO format timestamp (e.g., "2025-01-15T10:30:00.123Z")

    Returns:
        Timezone-aware datetime or None if parsing fails
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        dt = datetime.fromisoformat(timestamp_str)
    except (ValueError, TypeError):
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime the way the backend does (UTC, 'Z' suffix)."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB")
    """
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024.0
    return f"{size:.1f} PB"


# =============================================================================
# Name utilities
# =============================================================================


def split_extension(name: str) -> tuple[str, str]:
    """Split a file name into stem and extension (without the dot).

    A leading dot does not start an extension, so ".env" has none.

    Examples:
        >>> split_extension("report.final.pdf")
        ('report.final', 'pdf')
        >>> split_extension("README")
        ('README', '')
    """
    index = name.rfind(".")
    if index <= 0:
        return name, ""
    return name[:index], name[index + 1 :]


def join_path(parent: str, name: str) -> str:
    """Join a relative parent path and a child name with a slash."""
    return f"{parent}/{name}" if parent else name
