"""Sync engine for pydrivesync - tree comparison, planning and replication."""

from .comparator import (
    Comparison,
    Modification,
    ModificationReason,
    TreeComparator,
    is_modified,
)
from .engine import ComparisonReport, SyncEngine
from .operations import ConflictPolicy, CopyTask, SyncOperations, make_unique_name
from .plan import SyncAction, SyncActionType, build_sync_plan
from .replicator import (
    CopiedFile,
    Deadline,
    ExecutionResult,
    FolderRecord,
    ItemError,
    ReplicationExecutor,
    ReplicationOptions,
)
from .scanner import TreeEnumerator
from .selection import FolderSelector, SelectedFolder, SelectionMethod, SyncSelection

__all__ = [
    "SyncEngine",
    "ComparisonReport",
    "TreeEnumerator",
    "TreeComparator",
    "Comparison",
    "Modification",
    "ModificationReason",
    "is_modified",
    "SyncAction",
    "SyncActionType",
    "build_sync_plan",
    "ReplicationExecutor",
    "ReplicationOptions",
    "ExecutionResult",
    "CopiedFile",
    "FolderRecord",
    "ItemError",
    "Deadline",
    "ConflictPolicy",
    "CopyTask",
    "SyncOperations",
    "make_unique_name",
    "FolderSelector",
    "SelectedFolder",
    "SelectionMethod",
    "SyncSelection",
]
