"""Pagination helpers on top of a RemoteStore."""

import logging
from collections.abc import Iterable, Iterator
from typing import Optional

from .exceptions import EnumerationError, RemoteError
from .models import FOLDERS_ONLY, Entry, ListQuery
from .store import RemoteStore

logger = logging.getLogger(__name__)

# Names per existence query, keeps the filter expression a sane length
EXISTENCE_QUERY_CHUNK = 100


class EntriesManager:
    """Follows continuation tokens so callers see whole listings."""

    def __init__(self, store: RemoteStore):
        """Initialize the entries manager.

        Args:
            store: Remote store to list from
        """
        self.store = store

    def iter_children(
        self,
        folder_id: Optional[str],
        query: Optional[ListQuery] = None,
    ) -> Iterator[list[Entry]]:
        """Iterate the direct children of a folder one page at a time.

        Args:
            folder_id: Folder to list (None for the store root)
            query: Optional listing filter

        Yields:
            Lists of entries, one per page

        Raises:
            EnumerationError: If any page request fails
        """
        page_token: Optional[str] = None
        page_num = 0

        while True:
            page_num += 1
            try:
                result = self.store.list_children(folder_id, page_token, query)
            except RemoteError as e:
                raise EnumerationError(folder_id, str(e)) from e

            logger.debug(
                f"Listed page {page_num} of folder {folder_id}: "
                f"{len(result.entries)} entries"
            )
            yield result.entries

            page_token = result.next_page_token
            if not page_token:
                break

    def get_all_in_folder(
        self,
        folder_id: Optional[str],
        query: Optional[ListQuery] = None,
    ) -> list[Entry]:
        """Get all direct children of a folder across every page."""
        entries: list[Entry] = []
        for page in self.iter_children(folder_id, query):
            entries.extend(page)
        return entries

    def get_subfolders(self, folder_id: Optional[str]) -> list[Entry]:
        """Get all direct subfolders of a folder."""
        return self.get_all_in_folder(folder_id, FOLDERS_ONLY)

    def find_existing_files(
        self, folder_id: Optional[str], names: Iterable[str]
    ) -> dict[str, str]:
        """Find which of the given names already exist as files in a folder.

        Names are checked with name-filtered listing requests instead of one
        request per file.

        Args:
            folder_id: Folder to look in
            names: Candidate file names

        Returns:
            Mapping of existing name to entry ID

        Raises:
            EnumerationError: If a listing request fails
        """
        unique_names = list(dict.fromkeys(names))
        existing: dict[str, str] = {}

        for start in range(0, len(unique_names), EXISTENCE_QUERY_CHUNK):
            chunk = tuple(unique_names[start : start + EXISTENCE_QUERY_CHUNK])
            query = ListQuery(kind="file", names=chunk)
            for page in self.iter_children(folder_id, query):
                for entry in page:
                    # First match wins when the folder already holds duplicates
                    existing.setdefault(entry.name, entry.id)

        return existing

    def find_folders_by_name(
        self, folder_name: str, parent_id: Optional[str] = None
    ) -> list[Entry]:
        """Find folders with an exact name under a parent folder.

        Args:
            folder_name: Folder name to search for
            parent_id: Parent folder to search within (None for the root)

        Returns:
            Matching folder entries (may be empty)
        """
        query = ListQuery(kind="folder", names=(folder_name,))
        return [
            entry
            for entry in self.get_all_in_folder(parent_id, query)
            if entry.name == folder_name
        ]
