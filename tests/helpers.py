"""Helpers shared by the pydrivesync tests."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydrivesync.exceptions import RemoteError
from pydrivesync.models import Entry, ListQuery, ListResult
from pydrivesync.store import MemoryStore

BASE_TIME = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
ListHook = Callable[[Optional[str], Optional[ListQuery]], None]


class RecordingStore(MemoryStore):
    """MemoryStore that logs calls and fails on demand."""

    def __init__(self, page_size: int = 100):
        super().__init__(page_size=page_size)
        self.calls: list[tuple] = []
        self.fail_copy_names: set[str] = set()
        self.fail_create_names: set[str] = set()
        self.fail_list_ids: set[Optional[str]] = set()
        self.fail_existence_ids: set[Optional[str]] = set()
        self.fail_delete_ids: set[str] = set()
        self.on_list: Optional[ListHook] = None
        self.on_copy: Optional[Callable[[str], None]] = None
        self._calls_lock = threading.Lock()

    def _record(self, *call: object) -> None:
        with self._calls_lock:
            self.calls.append(call)

    def calls_of(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    def list_children(
        self,
        folder_id: Optional[str],
        page_token: Optional[str] = None,
        query: Optional[ListQuery] = None,
    ) -> ListResult:
        self._record("list_children", folder_id, page_token, query)
        if self.on_list is not None:
            self.on_list(folder_id, query)
        if folder_id in self.fail_list_ids:
            raise RemoteError(f"listing of {folder_id} refused")
        if query is not None and query.names is not None:
            if folder_id in self.fail_existence_ids:
                raise RemoteError(f"existence query in {folder_id} refused")
        return super().list_children(folder_id, page_token, query)

    def create_folder(self, name: str, parent_id: Optional[str]) -> Entry:
        self._record("create_folder", name, parent_id)
        if name in self.fail_create_names:
            raise RemoteError(f"cannot create {name}")
        return super().create_folder(name, parent_id)

    def copy_entry(
        self, source_id: str, new_name: str, dest_parent_id: Optional[str]
    ) -> Entry:
        self._record("copy_entry", source_id, new_name, dest_parent_id)
        source = self.get_entry(source_id)
        if self.on_copy is not None:
            self.on_copy(source.name)
        if source.name in self.fail_copy_names:
            raise RemoteError(f"quota exceeded copying {source.name}")
        return super().copy_entry(source_id, new_name, dest_parent_id)

    def delete_entry(self, entry_id: str) -> None:
        self._record("delete_entry", entry_id)
        if entry_id in self.fail_delete_ids:
            raise RemoteError(f"cannot delete {entry_id}")
        super().delete_entry(entry_id)


def build_tree(store: MemoryStore, layout: dict, parent_id: Optional[str]) -> dict:
    """Create folders and files from a nested dict.

    Dict values are sub-layouts (folders) or file sizes (files).

    Returns:
        Mapping of relative path to created Entry
    """
    created: dict[str, Entry] = {}

    def _build(node: dict, parent: Optional[str], prefix: str) -> None:
        for name, value in node.items():
            path = f"{prefix}/{name}" if prefix else name
            if isinstance(value, dict):
                folder = store.add_folder(
                    name, parent_id=parent, modified_time=BASE_TIME
                )
                created[path] = folder
                _build(value, folder.id, path)
            else:
                created[path] = store.add_file(
                    name, parent_id=parent, size=value, modified_time=BASE_TIME
                )

    _build(layout, parent_id, "")
    return created


def make_entry(
    path: str,
    size: int = 10,
    minutes: int = 0,
    is_folder: bool = False,
    content_hash: Optional[str] = None,
    entry_id: Optional[str] = None,
) -> Entry:
    """Build an Entry with a path, for comparator and plan tests."""
    return Entry(
        id=entry_id or f"id-{path}",
        name=path.rsplit("/", 1)[-1],
        path=path,
        is_folder=is_folder,
        size=0 if is_folder else size,
        modified_time=BASE_TIME + timedelta(minutes=minutes),
        content_hash=content_hash,
    )


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
