"""Sync engine: tree comparison, sync planning and replication."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..exceptions import DriveSyncError
from ..models import Entry
from ..output import OutputFormatter
from ..store import RemoteStore
from .comparator import Comparison, ModificationPredicate, TreeComparator, is_modified
from .plan import SyncAction, SyncActionType, build_sync_plan
from .replicator import ExecutionResult, ReplicationExecutor, ReplicationOptions
from .scanner import TreeEnumerator

logger = logging.getLogger(__name__)


@dataclass
class ComparisonReport:
    """Structured outcome of a comparison workflow."""

    success: bool
    summary: str
    statistics: dict[str, int] = field(default_factory=dict)
    comparison: Optional[Comparison] = None
    sync_plan: list[SyncAction] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "summary": self.summary,
            "statistics": self.statistics,
            "metadata": self.metadata,
        }
        if self.comparison is not None:
            data["comparison"] = self.comparison.to_dict()
            data["syncPlan"] = [action.to_dict() for action in self.sync_plan]
        if self.error is not None:
            data["error"] = self.error
        return data


class SyncEngine:
    """Entry points for comparing and replicating remote folder trees."""

    def __init__(
        self,
        store: RemoteStore,
        output: Optional[OutputFormatter] = None,
        predicate: ModificationPredicate = is_modified,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize sync engine.

        Args:
            store: Remote store holding source and destination
            output: Output formatter for displaying progress/status
            predicate: Modification predicate used by comparisons
            clock: Monotonic clock for replication deadlines
            sleep: Pause function used between replication chunks
        """
        self.store = store
        self.output = output or OutputFormatter(quiet=True)
        self.enumerator = TreeEnumerator(store)
        self.comparator = TreeComparator(predicate)
        self.executor = ReplicationExecutor(store, clock=clock, sleep=sleep)

    # =========================
    # Comparison
    # =========================

    def enumerate_pair(
        self,
        source_root_id: Optional[str],
        dest_root_id: Optional[str],
        recursive: bool = True,
    ) -> tuple[list[Entry], list[Entry]]:
        """Enumerate source and destination concurrently.

        Raises:
            EnumerationError: If either side fails to enumerate
        """
        with ThreadPoolExecutor(max_workers=2) as executor:
            source_future = executor.submit(
                self.enumerator.list_entries, source_root_id, recursive
            )
            dest_future = executor.submit(
                self.enumerator.list_entries, dest_root_id, recursive
            )
            return source_future.result(), dest_future.result()

    def compare_trees(
        self,
        source_root_id: Optional[str],
        dest_root_id: Optional[str],
        recursive: bool = True,
        deep_compare: bool = False,
    ) -> Comparison:
        """Compare two remote trees.

        Args:
            source_root_id: Source folder
            dest_root_id: Destination folder
            recursive: Whether to include subfolders
            deep_compare: Whether to compare content checksums

        Returns:
            Comparison of the two trees

        Raises:
            EnumerationError: If either tree cannot be listed completely
        """
        source_entries, dest_entries = self.enumerate_pair(
            source_root_id, dest_root_id, recursive
        )
        return self.comparator.compare(source_entries, dest_entries, deep_compare)

    def build_sync_plan(self, comparison: Comparison) -> list[SyncAction]:
        """Order a comparison into sync actions (see plan.build_sync_plan)."""
        return build_sync_plan(comparison)

    def run_comparison(
        self,
        source_root_id: Optional[str],
        dest_root_id: Optional[str],
        recursive: bool = True,
        deep_compare: bool = False,
    ) -> ComparisonReport:
        """Compare two trees and build a plan, never raising for backend errors.

        Returns:
            ComparisonReport; ``success`` is False if enumeration failed
        """
        metadata = {
            "sourceFolderId": source_root_id,
            "destinationFolderId": dest_root_id,
            "includeSubfolders": recursive,
            "compareContent": deep_compare,
            "comparisonTime": datetime.now(timezone.utc).isoformat(),
        }

        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                disable=self.output.quiet or self.output.json_output,
            ) as progress:
                task = progress.add_task("Scanning folders...", total=None)
                source_entries, dest_entries = self.enumerate_pair(
                    source_root_id, dest_root_id, recursive
                )
                progress.update(
                    task,
                    description=(
                        f"Found {len(source_entries)} source and "
                        f"{len(dest_entries)} destination entries"
                    ),
                )
        except DriveSyncError as e:
            logger.debug(f"Comparison failed: {e}")
            return ComparisonReport(
                success=False,
                summary=f"Folder comparison failed: {e}",
                metadata=metadata,
                error=str(e),
            )

        comparison = self.comparator.compare(source_entries, dest_entries, deep_compare)
        plan = build_sync_plan(comparison)
        statistics = {
            "sourceFiles": len(source_entries),
            "destinationFiles": len(dest_entries),
            "additions": len(comparison.additions),
            "modifications": len(comparison.modifications),
            "deletions": len(comparison.deletions),
            "unchanged": len(comparison.unchanged),
            "totalSyncActions": len(plan),
        }
        summary = (
            f"Comparison complete: {statistics['additions']} additions, "
            f"{statistics['modifications']} modifications, "
            f"{statistics['deletions']} deletions"
        )
        return ComparisonReport(
            success=True,
            summary=summary,
            statistics=statistics,
            comparison=comparison,
            sync_plan=plan,
            metadata=metadata,
        )

    # =========================
    # Replication
    # =========================

    def replicate(
        self,
        source_root_id: Optional[str],
        dest_root_id: Optional[str],
        options: Optional[ReplicationOptions] = None,
    ) -> ExecutionResult:
        """Replicate a source folder into a destination folder.

        Never raises: anything the executor does not record itself ends the
        run with ``success=False``.
        """
        options = options or ReplicationOptions()
        if not self.output.quiet and not self.output.json_output:
            self.output.info(f"Replicating: {source_root_id} -> {dest_root_id}")
            self.output.info(
                f"Conflict policy: {options.conflict_policy.value}, "
                f"batches of {options.batch_size}, "
                f"{options.max_concurrency} concurrent copies"
            )

        try:
            return self.executor.replicate(source_root_id, dest_root_id, options)
        except Exception as e:
            logger.exception("Replication aborted by an unexpected error")
            return ExecutionResult(
                success=False,
                error=str(e),
                batch_size=options.batch_size,
                max_concurrency=options.max_concurrency,
                finished_at=datetime.now(timezone.utc),
            )

    # =========================
    # Display
    # =========================

    def display_comparison(self, report: ComparisonReport) -> None:
        """Display a comparison report and its sync plan."""
        if self.output.quiet:
            return
        if not report.success:
            self.output.error(report.summary)
            return

        stats = report.statistics
        self.output.info("Sync plan:")
        if stats["additions"] > 0:
            self.output.info(f"  + Create: {stats['additions']} item(s)")
        if stats["modifications"] > 0:
            self.output.info(f"  ~ Update: {stats['modifications']} item(s)")
        if stats["deletions"] > 0:
            self.output.info(f"  ✗ Delete: {stats['deletions']} item(s)")
        if stats["unchanged"] > 0:
            self.output.info(f"  = Unchanged: {stats['unchanged']} item(s)")

        if report.sync_plan:
            symbols = {
                SyncActionType.CREATE: "+",
                SyncActionType.UPDATE: "~",
                SyncActionType.DELETE: "✗",
            }
            rows = []
            for action in report.sync_plan:
                kind = "folder" if action.subject.is_folder else "file"
                reasons = ", ".join(reason.value for reason in action.reasons)
                rows.append(
                    [
                        symbols[action.action],
                        action.priority,
                        kind,
                        action.path,
                        reasons,
                    ]
                )
            self.output.output_table(
                ["", "Priority", "Type", "Path", "Reasons"], rows, title="Actions"
            )
        else:
            self.output.info("No changes needed - everything is in sync!")

        self.output.print("")
        self.output.success(report.summary)

    def display_replication(self, result: ExecutionResult) -> None:
        """Display the outcome of a replication run."""
        if self.output.quiet:
            return

        self.output.print("")
        if result.success:
            self.output.success(result.summary)
        else:
            self.output.error(result.summary)

        if result.files_skipped:
            self.output.info(f"  Skipped (already existed): {result.files_skipped}")
        for error in result.errors[:10]:
            target = error.file or error.folder_id or ""
            self.output.warning(f"  {error.type}: {target} {error.error}".rstrip())
        if len(result.errors) > 10:
            self.output.warning(f"  ... and {len(result.errors) - 10} more errors")
