"""Recursive enumeration of remote folder trees."""

import logging
from collections.abc import Iterator
from dataclasses import replace
from typing import Optional

from ..entries_manager import EntriesManager
from ..models import Entry
from ..store import RemoteStore
from ..utils import join_path

logger = logging.getLogger(__name__)


class TreeEnumerator:
    """Walks a remote folder and produces entries with relative paths.

    Every call to :meth:`enumerate` starts a fresh traversal. Folders are
    yielded as soon as they are discovered (pre-order, each folder before its
    descendants); files are held back and yielded after the walk, so the
    sequence always lists every folder ahead of every file.

    Examples:
        >>> enumerator = TreeEnumerator(store)
        >>> entries = enumerator.list_entries("folder-id")
        >>> [e.path for e in entries if e.is_folder]
        ['docs', 'docs/drafts']
    """

    def __init__(self, store: RemoteStore):
        """Initialize the enumerator.

        Args:
            store: Remote store to list from
        """
        self.store = store
        self.manager = EntriesManager(store)

    def enumerate(
        self, root_folder_id: Optional[str], recursive: bool = True
    ) -> Iterator[Entry]:
        """Enumerate the entries below a folder.

        Args:
            root_folder_id: Folder to enumerate (None for the store root)
            recursive: Whether to descend into subfolders

        Yields:
            Entries with ``path`` set, all folders first

        Raises:
            EnumerationError: If listing any folder fails
        """
        files: list[Entry] = []
        seen_paths: set[str] = set()
        visited: set[str] = set()

        yield from self._walk(
            root_folder_id, "", recursive, files, seen_paths, visited
        )
        yield from files

    def list_entries(
        self, root_folder_id: Optional[str], recursive: bool = True
    ) -> list[Entry]:
        """Enumerate a folder into a list (folders first)."""
        return list(self.enumerate(root_folder_id, recursive))

    def _walk(
        self,
        folder_id: Optional[str],
        parent_path: str,
        recursive: bool,
        files: list[Entry],
        seen_paths: set[str],
        visited: set[str],
    ) -> Iterator[Entry]:
        # Prevent infinite recursion on backends that allow multiple parents
        if folder_id is not None:
            if folder_id in visited:
                logger.warning(f"Folder {folder_id} reached twice, skipping")
                return
            visited.add(folder_id)

        for page in self.manager.iter_children(folder_id):
            for child in page:
                path = self._unique_path(
                    join_path(parent_path, child.name), child, seen_paths
                )
                entry = replace(child, path=path)

                if entry.is_folder:
                    yield entry
                    if recursive:
                        yield from self._walk(
                            entry.id, path, recursive, files, seen_paths, visited
                        )
                else:
                    files.append(entry)

    @staticmethod
    def _unique_path(path: str, entry: Entry, seen_paths: set[str]) -> str:
        """Disambiguate a path already taken by a same-named sibling."""
        if path in seen_paths:
            unique = f"{path} [{entry.id}]"
            logger.warning(
                f"Duplicate path '{path}' in one tree, using '{unique}' for "
                f"entry {entry.id}"
            )
            path = unique
        seen_paths.add(path)
        return path
