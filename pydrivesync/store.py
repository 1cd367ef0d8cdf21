"""Remote storage interface consumed by the sync engine.

The engine never talks to a backend directly; it goes through the
``RemoteStore`` methods below. ``HttpRemoteStore`` (in ``api.py``) speaks to a
JSON/HTTP backend, ``MemoryStore`` keeps a tree in memory and is what the
test-suite and dry experiments run against.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .exceptions import NotFoundError, RemoteError
from .models import Entry, ListQuery, ListResult
from .utils import DEFAULT_PAGE_SIZE, FOLDER_MIME_TYPE

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """Abstract paginated remote storage backend."""

    @abstractmethod
    def list_children(
        self,
        folder_id: Optional[str],
        page_token: Optional[str] = None,
        query: Optional[ListQuery] = None,
    ) -> ListResult:
        """List one page of the direct children of a folder.

        Args:
            folder_id: Folder to list (None for the store root)
            page_token: Continuation token from the previous page
            query: Optional filter (kind, names, trashed)

        Returns:
            ListResult with the page entries and the next page token

        Raises:
            RemoteError: If the backend rejects the request
        """

    @abstractmethod
    def get_entry(self, entry_id: str) -> Entry:
        """Fetch metadata for one entry.

        Raises:
            NotFoundError: If the entry does not exist or is inaccessible
        """

    @abstractmethod
    def create_folder(self, name: str, parent_id: Optional[str]) -> Entry:
        """Create a folder and return its entry.

        Raises:
            RemoteError: If the backend rejects the creation
        """

    @abstractmethod
    def copy_entry(
        self, source_id: str, new_name: str, dest_parent_id: Optional[str]
    ) -> Entry:
        """Copy a file into a folder under a (possibly new) name.

        Raises:
            RemoteError: If the copy fails
        """

    @abstractmethod
    def delete_entry(self, entry_id: str) -> None:
        """Delete an entry.

        Raises:
            RemoteError: If the deletion fails
        """


class MemoryStore(RemoteStore):
    """RemoteStore keeping its tree in memory.

    Listing is paginated with ``page_size`` entries per page and returns
    children in insertion order. Sibling names are not required to be unique,
    just like on the real backend.

    Examples:
        >>> store = MemoryStore()
        >>> docs = store.add_folder("docs")
        >>> _ = store.add_file("a.txt", parent_id=docs.id, size=10)
        >>> [e.name for e in store.list_children(docs.id).entries]
        ['a.txt']
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        self.page_size = page_size
        self._entries: dict[str, Entry] = {}
        self._ids = itertools.count(1)
        # Copy operations may run from worker threads
        self._lock = threading.Lock()

    def _next_id(self) -> str:
        return f"id-{next(self._ids)}"

    def _check_parent(self, parent_id: Optional[str]) -> None:
        if parent_id is None:
            return
        parent = self._entries.get(parent_id)
        if parent is None or not parent.is_folder:
            raise NotFoundError(f"Folder not found: {parent_id}")

    def add_folder(
        self,
        name: str,
        parent_id: Optional[str] = None,
        modified_time: Optional[datetime] = None,
    ) -> Entry:
        """Add a folder directly, bypassing the RemoteStore interface."""
        with self._lock:
            self._check_parent(parent_id)
            entry = Entry(
                id=self._next_id(),
                name=name,
                is_folder=True,
                modified_time=modified_time or datetime.now(timezone.utc),
                parent_id=parent_id,
                mime_type=FOLDER_MIME_TYPE,
            )
            self._entries[entry.id] = entry
            return entry

    def add_file(
        self,
        name: str,
        parent_id: Optional[str] = None,
        size: int = 0,
        modified_time: Optional[datetime] = None,
        content_hash: Optional[str] = None,
    ) -> Entry:
        """Add a file directly, bypassing the RemoteStore interface."""
        with self._lock:
            self._check_parent(parent_id)
            entry = Entry(
                id=self._next_id(),
                name=name,
                size=size,
                modified_time=modified_time or datetime.now(timezone.utc),
                content_hash=content_hash,
                parent_id=parent_id,
            )
            self._entries[entry.id] = entry
            return entry

    def children(self, folder_id: Optional[str]) -> list[Entry]:
        """Return all direct children of a folder without pagination."""
        with self._lock:
            return [e for e in self._entries.values() if e.parent_id == folder_id]

    def list_children(
        self,
        folder_id: Optional[str],
        page_token: Optional[str] = None,
        query: Optional[ListQuery] = None,
    ) -> ListResult:
        query = query or ListQuery()
        with self._lock:
            self._check_parent(folder_id)
            matching = [
                e
                for e in self._entries.values()
                if e.parent_id == folder_id and query.matches(e)
            ]

        offset = int(page_token) if page_token else 0
        page = matching[offset : offset + self.page_size]
        next_offset = offset + self.page_size
        next_token = str(next_offset) if next_offset < len(matching) else None
        return ListResult(entries=page, next_page_token=next_token)

    def get_entry(self, entry_id: str) -> Entry:
        with self._lock:
            entry = self._entries.get(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return entry

    def create_folder(self, name: str, parent_id: Optional[str]) -> Entry:
        return self.add_folder(name, parent_id=parent_id)

    def copy_entry(
        self, source_id: str, new_name: str, dest_parent_id: Optional[str]
    ) -> Entry:
        with self._lock:
            source = self._entries.get(source_id)
            if source is None:
                raise NotFoundError(f"Entry not found: {source_id}")
            if source.is_folder:
                raise RemoteError("Folders cannot be copied")
            self._check_parent(dest_parent_id)
            copied = replace(
                source,
                id=self._next_id(),
                name=new_name,
                path="",
                parent_id=dest_parent_id,
            )
            self._entries[copied.id] = copied
            return copied

    def delete_entry(self, entry_id: str) -> None:
        with self._lock:
            if entry_id not in self._entries:
                raise NotFoundError(f"Entry not found: {entry_id}")
            pending = [entry_id]
            while pending:
                current = pending.pop()
                self._entries.pop(current, None)
                pending.extend(
                    e.id for e in self._entries.values() if e.parent_id == current
                )
