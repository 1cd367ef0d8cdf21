"""Data models for remote entries and listing requests."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from .utils import FOLDER_MIME_TYPE, format_timestamp, parse_iso_timestamp

EntryKind = Literal["folder", "file"]


@dataclass(frozen=True)
class Entry:
    """A file or folder node in a remote tree."""

    id: str
    """Opaque remote identifier, unique within the backend"""

    name: str
    """Entry name (not unique among siblings on every backend)"""

    is_folder: bool = False
    """Whether the entry is a folder"""

    path: str = ""
    """Slash-joined path relative to the traversal root (set by the scanner)"""

    size: int = 0
    """Size in bytes (0 for folders)"""

    modified_time: Optional[datetime] = None
    """Last modification time (timezone-aware)"""

    content_hash: Optional[str] = None
    """Content checksum, only for files and only when the backend has one"""

    parent_id: Optional[str] = None
    """ID of the parent folder"""

    mime_type: Optional[str] = None
    """Backend mime type"""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        """Create an Entry from a backend JSON object.

        Args:
            data: Dictionary with keys such as id, name, mimeType, size,
                modifiedTime and md5Checksum

        Returns:
            Entry instance
        """
        mime_type = data.get("mimeType")
        is_folder = data.get("isFolder")
        if is_folder is None:
            is_folder = mime_type == FOLDER_MIME_TYPE

        size = data.get("size") or 0
        try:
            size = int(size)
        except (TypeError, ValueError):
            size = 0

        parents = data.get("parents") or []
        parent_id = data.get("parentId") or (parents[0] if parents else None)

        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            is_folder=bool(is_folder),
            path=data.get("path", ""),
            size=0 if is_folder else size,
            modified_time=parse_iso_timestamp(data.get("modifiedTime")),
            content_hash=data.get("md5Checksum") or data.get("contentHash") or None,
            parent_id=str(parent_id) if parent_id is not None else None,
            mime_type=mime_type,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the entry to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "isFolder": self.is_folder,
            "size": self.size,
            "modifiedTime": format_timestamp(self.modified_time),
            "contentHash": self.content_hash,
            "parentId": self.parent_id,
            "mimeType": self.mime_type,
        }


@dataclass(frozen=True)
class ListQuery:
    """Filter applied to a listing request.

    Children of the listed folder are always implied; trashed entries are
    excluded unless asked for.
    """

    kind: Optional[EntryKind] = None
    """Only folders ("folder"), only non-folders ("file"), or both (None)"""

    names: Optional[tuple[str, ...]] = None
    """Only entries whose name is one of these"""

    include_trashed: bool = False

    def matches(self, entry: Entry) -> bool:
        """Check whether an entry passes the filter (trash state aside)."""
        if self.kind == "folder" and not entry.is_folder:
            return False
        if self.kind == "file" and entry.is_folder:
            return False
        if self.names is not None and entry.name not in self.names:
            return False
        return True


FOLDERS_ONLY = ListQuery(kind="folder")
FILES_ONLY = ListQuery(kind="file")


@dataclass
class ListResult:
    """One page of a listing."""

    entries: list[Entry] = field(default_factory=list)
    next_page_token: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ListResult":
        """Parse a listing response ({"files": [...], "nextPageToken": ...})."""
        items = data.get("files")
        if items is None:
            items = data.get("data", [])
        return cls(
            entries=[Entry.from_dict(item) for item in items],
            next_page_token=data.get("nextPageToken") or None,
        )
