"""Ordering of comparison results into a sync plan."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..models import Entry
from .comparator import Comparison, ModificationReason

# Priority classes: folder creation first, folder deletion last
PRIORITY_FOLDER = 1
PRIORITY_FILE = 2
PRIORITY_FOLDER_DELETE = 3


class SyncActionType(str, Enum):
    """Kinds of planned work."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class SyncAction:
    """A planned create, update or delete with its ordering priority."""

    action: SyncActionType
    priority: int
    entry: Optional[Entry] = None
    """Entry to create (source side) or delete (destination side)"""

    source_entry: Optional[Entry] = None
    """Source side of an update"""

    dest_entry: Optional[Entry] = None
    """Destination side of an update"""

    reasons: list[ModificationReason] = field(default_factory=list)

    @property
    def subject(self) -> Entry:
        """The entry the action is about (source side for updates)."""
        subject = self.entry or self.source_entry
        assert subject is not None
        return subject

    @property
    def path(self) -> str:
        return self.subject.path

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "action": self.action.value,
            "priority": self.priority,
            "path": self.path,
            "isFolder": self.subject.is_folder,
        }
        if self.action == SyncActionType.UPDATE:
            data["sourceId"] = self.source_entry.id if self.source_entry else None
            data["destinationId"] = self.dest_entry.id if self.dest_entry else None
            data["reasons"] = [reason.value for reason in self.reasons]
        else:
            data["id"] = self.subject.id
        return data


def build_sync_plan(comparison: Comparison) -> list[SyncAction]:
    """Turn a comparison into an ordered list of sync actions.

    Creations and updates of folders come before those of files; file
    deletions come before folder deletions. Order inside a priority class
    follows the comparison buckets (additions, modifications, deletions).

    Args:
        comparison: Result of TreeComparator.compare

    Returns:
        Sync actions sorted by ascending priority
    """
    actions: list[SyncAction] = []

    for entry in comparison.additions:
        actions.append(
            SyncAction(
                action=SyncActionType.CREATE,
                priority=PRIORITY_FOLDER if entry.is_folder else PRIORITY_FILE,
                entry=entry,
            )
        )

    for modification in comparison.modifications:
        actions.append(
            SyncAction(
                action=SyncActionType.UPDATE,
                priority=(
                    PRIORITY_FOLDER if modification.source.is_folder else PRIORITY_FILE
                ),
                source_entry=modification.source,
                dest_entry=modification.destination,
                reasons=list(modification.reasons),
            )
        )

    for entry in comparison.deletions:
        actions.append(
            SyncAction(
                action=SyncActionType.DELETE,
                priority=PRIORITY_FOLDER_DELETE if entry.is_folder else PRIORITY_FILE,
                entry=entry,
            )
        )

    # sorted() is stable, so input order survives within a priority class
    return sorted(actions, key=lambda action: action.priority)
