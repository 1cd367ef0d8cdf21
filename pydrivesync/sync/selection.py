"""Selection of the source folders a sync job works on."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..entries_manager import EntriesManager
from ..exceptions import ConfigurationError, DriveSyncError
from ..models import Entry
from ..store import RemoteStore

logger = logging.getLogger(__name__)


class SelectionMethod(str, Enum):
    """How source folders are specified."""

    INDIVIDUAL = "individual"
    """Entries picked one by one by the user"""

    FOLDER_IDS = "folder_ids"
    """Folder IDs typed in; non-folders are dropped"""

    FOLDER_NAMES = "folder_names"
    """Exact folder names searched for below the root"""

    ENTIRE_DRIVE = "entire_drive"
    """Every folder directly below the root"""


@dataclass
class SelectedFolder:
    """A resolved source folder."""

    id: str
    name: str
    source: str
    """How the folder was selected (e.g. "folder_id")"""

    parent_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "parentId": self.parent_id,
        }


@dataclass
class SyncSelection:
    """Source folders plus where and how to sync them."""

    folders: list[SelectedFolder]
    destination_parent_id: Optional[str] = None
    sync_subfolders: bool = True
    preserve_structure: bool = True
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        count = len(self.folders)
        plural = "" if count == 1 else "s"
        return f"Successfully configured sync for {count} folder{plural}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "folders": [f.to_dict() for f in self.folders],
            "folderCount": len(self.folders),
            "destination": {"parentFolder": self.destination_parent_id},
            "options": {
                "syncSubfolders": self.sync_subfolders,
                "preserveFolderStructure": self.preserve_structure,
                **self.options,
            },
            "summary": self.summary,
        }


class FolderSelector:
    """Resolves user input into a SyncSelection."""

    def __init__(self, store: RemoteStore):
        self.store = store
        self.manager = EntriesManager(store)

    def select(
        self,
        method: str,
        folder_ids: Optional[list[str]] = None,
        folder_names: Optional[list[str]] = None,
        destination_parent_id: Optional[str] = None,
        sync_subfolders: bool = True,
        preserve_structure: bool = True,
    ) -> SyncSelection:
        """Resolve source folders.

        Entries that cannot be looked up are logged and left out. Name
        searches only look at folders directly under the store root, since
        listings are scoped to a single parent folder.

        Args:
            method: One of the SelectionMethod values
            folder_ids: IDs for the individual and folder_ids methods
            folder_names: Names for the folder_names method
            destination_parent_id: Folder receiving the synced folders
            sync_subfolders: Whether subfolders are included
            preserve_structure: Whether the hierarchy is recreated

        Returns:
            SyncSelection with at least one folder

        Raises:
            ConfigurationError: If the method is unknown, lacks its input,
                or resolves to no folder at all
            EnumerationError: If the drive root cannot be listed
        """
        try:
            selection_method = SelectionMethod(method)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown folder selection method: {method}"
            ) from e

        if selection_method == SelectionMethod.ENTIRE_DRIVE:
            folders = self._entire_drive()
        elif selection_method == SelectionMethod.FOLDER_NAMES:
            if not folder_names:
                raise ConfigurationError("folder_names requires at least one name")
            folders = self._by_names(folder_names)
        else:
            if not folder_ids:
                raise ConfigurationError(f"{method} requires at least one folder ID")
            folders = self._by_ids(
                folder_ids,
                folders_only=selection_method == SelectionMethod.FOLDER_IDS,
                source=(
                    "folder_id"
                    if selection_method == SelectionMethod.FOLDER_IDS
                    else "manual_selection"
                ),
            )

        if not folders:
            raise ConfigurationError(
                "No valid folders found with the current configuration. "
                "Please check your folder selection settings."
            )

        return SyncSelection(
            folders=folders,
            destination_parent_id=destination_parent_id,
            sync_subfolders=sync_subfolders,
            preserve_structure=preserve_structure,
        )

    def _entire_drive(self) -> list[SelectedFolder]:
        return [
            self._selected(folder, "drive_root")
            for folder in self.manager.get_subfolders(None)
        ]

    def _by_ids(
        self, folder_ids: list[str], folders_only: bool, source: str
    ) -> list[SelectedFolder]:
        folders: list[SelectedFolder] = []
        for folder_id in folder_ids:
            try:
                entry = self.store.get_entry(folder_id)
            except DriveSyncError as e:
                logger.warning(f"Invalid folder ID {folder_id}: {e}")
                continue
            if folders_only and not entry.is_folder:
                logger.warning(f"{folder_id} is not a folder, ignoring it")
                continue
            folders.append(self._selected(entry, source))
        return folders

    def _by_names(self, folder_names: list[str]) -> list[SelectedFolder]:
        folders: list[SelectedFolder] = []
        for name in folder_names:
            try:
                matches = self.manager.find_folders_by_name(name)
            except DriveSyncError as e:
                logger.warning(f'Error searching for folder "{name}": {e}')
                continue
            folders.extend(
                self._selected(entry, "folder_name_search") for entry in matches
            )
        return folders

    @staticmethod
    def _selected(entry: Entry, source: str) -> SelectedFolder:
        return SelectedFolder(
            id=entry.id, name=entry.name, source=source, parent_id=entry.parent_id
        )
