"""Folder and file operations used during replication."""

import logging
import time
from collections.abc import Container
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..models import Entry
from ..store import RemoteStore
from ..utils import split_extension

logger = logging.getLogger(__name__)


class ConflictPolicy(str, Enum):
    """What to do when a file with the target name already exists."""

    SKIP = "skip"
    """Leave the existing file alone and do not copy"""

    RENAME = "rename"
    """Copy under a new, unique name"""

    REPLACE = "replace"
    """Delete the existing file, then copy under the original name"""


def make_unique_name(name: str, taken: Container[str], token: int) -> str:
    """Build a name that is not in ``taken`` by inserting a copy token.

    The token goes before the extension, which is preserved:
    ``report.pdf`` becomes ``report_copy_<token>.pdf``. A counter is appended
    to the token if the result is still taken.

    Args:
        name: Original file name
        taken: Names that must not be produced
        token: Uniqueness token (milliseconds since the epoch)

    Returns:
        A name not present in ``taken``
    """
    stem, extension = split_extension(name)
    suffix = f"_copy_{token}"
    counter = 0

    while True:
        candidate = f"{stem}{suffix}.{extension}" if extension else f"{stem}{suffix}"
        if candidate not in taken:
            return candidate
        counter += 1
        suffix = f"_copy_{token}_{counter}"


@dataclass
class CopyTask:
    """A file copy with its conflict already resolved."""

    file: Entry
    target_name: str
    replace_id: Optional[str] = None
    """ID of the destination file to delete before copying"""

    replaced: bool = False
    """Whether the file named by ``replace_id`` has been deleted"""


class SyncOperations:
    """Conflict resolution and remote calls for one replication run."""

    def __init__(
        self,
        store: RemoteStore,
        conflict_policy: ConflictPolicy = ConflictPolicy.RENAME,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize sync operations.

        Args:
            store: Remote store
            conflict_policy: Policy for names that already exist
            clock: Wall clock used for rename tokens
        """
        self.store = store
        self.conflict_policy = conflict_policy
        self.clock = clock

    def plan_copy(
        self, file: Entry, existing: dict[str, Optional[str]]
    ) -> Optional[CopyTask]:
        """Resolve the target name of a file against existing names.

        ``existing`` maps the names present in the destination folder to
        their IDs. It is updated to reserve the chosen target name; the ID of
        a reservation stays None until the copy has finished.

        Args:
            file: Source file to copy
            existing: Names in the destination folder (updated in place)

        Returns:
            CopyTask, or None if the file is to be skipped
        """
        name = file.name
        if name not in existing:
            existing[name] = None
            return CopyTask(file=file, target_name=name)

        if self.conflict_policy == ConflictPolicy.SKIP:
            logger.debug(f"Skipping {name}: already exists in destination")
            return None

        existing_id = existing[name]
        if self.conflict_policy == ConflictPolicy.REPLACE and existing_id is not None:
            existing[name] = None
            return CopyTask(file=file, target_name=name, replace_id=existing_id)

        # Rename, or replace of a file still being copied in this chunk
        token = int(self.clock() * 1000)
        new_name = make_unique_name(name, existing, token)
        existing[new_name] = None
        logger.debug(f"Renaming {name} to {new_name} to avoid a conflict")
        return CopyTask(file=file, target_name=new_name)

    def execute_copy(self, task: CopyTask, dest_folder_id: Optional[str]) -> Entry:
        """Run a planned copy (deleting the replaced file first).

        Raises:
            RemoteError: If the deletion or the copy fails
        """
        start = time.time()
        if task.replace_id is not None:
            logger.debug(f"Deleting existing {task.target_name} ({task.replace_id})")
            self.store.delete_entry(task.replace_id)
            task.replaced = True

        copied = self.store.copy_entry(task.file.id, task.target_name, dest_folder_id)
        logger.debug(
            f"Copied {task.file.name} as {task.target_name} "
            f"in {time.time() - start:.2f}s"
        )
        return copied

    def create_folder(self, name: str, parent_id: Optional[str]) -> Entry:
        """Create a destination folder.

        Raises:
            RemoteError: If the backend rejects the creation
        """
        folder = self.store.create_folder(name, parent_id)
        logger.debug(f"Created folder {name} ({folder.id}) under {parent_id}")
        return folder
