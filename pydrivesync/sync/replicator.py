"""Replication of a source folder tree into a destination folder.

A run has two phases. Phase 1 mirrors the folder skeleton of the source
below the destination, reusing same-named destination folders. Phase 2
copies the files of the root pair and then of every folder pair, in chunks
of ``batch_size`` files with at most ``max_concurrency`` copies in flight.

Per-file and per-folder failures are recorded in the result and the run goes
on; only the deadline stops a run, and even then the result collected so far
is returned.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..entries_manager import EntriesManager
from ..exceptions import (
    ConfigurationError,
    DeadlineExceededError,
    EnumerationError,
    RemoteError,
)
from ..models import FILES_ONLY, Entry
from ..store import RemoteStore
from ..utils import (
    DEFAULT_BATCH_DELAY,
    DEFAULT_BATCH_SIZE,
    DEFAULT_FOLDER_DELAY,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_TIMEOUT,
    MAX_BATCH_SIZE,
    MAX_MAX_CONCURRENCY,
    MAX_REPORTED_COPIED_FILES,
    MAX_REPORTED_ERRORS,
    MIN_BATCH_SIZE,
    MIN_MAX_CONCURRENCY,
    join_path,
)
from .operations import ConflictPolicy, CopyTask, SyncOperations

logger = logging.getLogger(__name__)


@dataclass
class ReplicationOptions:
    """Options for one replication run."""

    recursive: bool = True
    """Descend into subfolders when mirroring the folder structure"""

    preserve_structure: bool = True
    """Recreate source folders in the destination"""

    conflict_policy: ConflictPolicy = ConflictPolicy.RENAME
    """What to do with files whose name already exists"""

    batch_size: int = DEFAULT_BATCH_SIZE
    """Files per processing chunk"""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    """Simultaneous in-flight copy operations"""

    timeout: float = DEFAULT_TIMEOUT
    """Wall-clock deadline for the run, in seconds"""

    file_ids: Optional[list[str]] = None
    """Only copy files with these IDs (None copies every file)"""

    batch_delay: float = DEFAULT_BATCH_DELAY
    """Pause between chunks, in seconds"""

    folder_delay: float = DEFAULT_FOLDER_DELAY
    """Pause between folders, in seconds"""

    def __post_init__(self) -> None:
        try:
            self.conflict_policy = ConflictPolicy(self.conflict_policy)
        except ValueError as e:
            choices = ", ".join(p.value for p in ConflictPolicy)
            raise ConfigurationError(
                f"Unknown conflict policy {self.conflict_policy!r} "
                f"(expected one of: {choices})"
            ) from e

        if not MIN_BATCH_SIZE <= self.batch_size <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"batch_size must be between {MIN_BATCH_SIZE} and "
                f"{MAX_BATCH_SIZE}, got {self.batch_size}"
            )
        if not MIN_MAX_CONCURRENCY <= self.max_concurrency <= MAX_MAX_CONCURRENCY:
            raise ConfigurationError(
                f"max_concurrency must be between {MIN_MAX_CONCURRENCY} and "
                f"{MAX_MAX_CONCURRENCY}, got {self.max_concurrency}"
            )
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}")
        if self.batch_delay < 0 or self.folder_delay < 0:
            raise ConfigurationError("delays must not be negative")


@dataclass
class FolderRecord:
    """A source folder and the destination folder it maps to."""

    source_id: str
    dest_id: str
    name: str
    path: str
    created: bool = False
    """Whether the destination folder was created by this run"""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "id": self.dest_id, "path": self.path}


@dataclass
class CopiedFile:
    """A file copied by a run."""

    original_name: str
    new_name: str
    original_id: str
    new_id: str
    size: int = 0
    mime_type: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalName": self.original_name,
            "newName": self.new_name,
            "originalId": self.original_id,
            "newId": self.new_id,
            "size": self.size,
            "mimeType": self.mime_type,
        }


@dataclass
class ItemError:
    """A failure recorded without stopping the run."""

    type: str
    """file_copy_error, folder_create_error or listing_error"""

    error: str
    file: Optional[str] = None
    folder_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "error": self.error}
        if self.file is not None:
            data["file"] = self.file
        if self.folder_id is not None:
            data["folderId"] = self.folder_id
        return data


@dataclass
class ExecutionResult:
    """Everything one replication run did, including partial work."""

    folders_created: int = 0
    files_copied: int = 0
    files_skipped: int = 0
    copied_files: list[CopiedFile] = field(default_factory=list)
    created_folders: list[FolderRecord] = field(default_factory=list)
    folder_pairs: list[FolderRecord] = field(default_factory=list)
    """Every source/destination folder pair, created or reused"""

    errors: list[ItemError] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    """Message of the error that stopped the run"""

    duration: float = 0.0
    batch_size: int = DEFAULT_BATCH_SIZE
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    finished_at: Optional[datetime] = None

    @property
    def summary(self) -> str:
        """Human-readable one-line summary."""
        seconds = round(self.duration)
        if not self.success:
            summary = (
                f"Partial copy completed: {self.files_copied} files and "
                f"{self.folders_created} folders copied in {seconds}s before error"
            )
            return f"{summary}. Error: {self.error}" if self.error else summary

        summary = (
            f"Successfully copied {self.files_copied} files and created "
            f"{self.folders_created} folders in {seconds}s"
        )
        if self.errors:
            summary = f"{summary}. {len(self.errors)} errors occurred."
        return summary

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a JSON-serializable report."""
        data: dict[str, Any] = {
            "success": self.success,
            "summary": self.summary,
            "duration": f"{round(self.duration)}s",
            "timestamp": (self.finished_at or datetime.now(timezone.utc)).isoformat(),
        }
        if self.success:
            data["statistics"] = {
                "foldersCreated": self.folders_created,
                "filesCopied": self.files_copied,
                "filesSkipped": self.files_skipped,
                "errorsCount": len(self.errors),
                "batchSize": self.batch_size,
                "maxConcurrency": self.max_concurrency,
            }
            data["details"] = {
                "copiedFiles": [
                    f.to_dict() for f in self.copied_files[:MAX_REPORTED_COPIED_FILES]
                ],
                "createdFolders": [f.to_dict() for f in self.created_folders],
                "errors": [e.to_dict() for e in self.errors[:MAX_REPORTED_ERRORS]],
            }
        else:
            data["error"] = self.error
            data["partialResults"] = {
                "foldersCreated": self.folders_created,
                "filesCopied": self.files_copied,
                "filesSkipped": self.files_skipped,
                "errorsCount": len(self.errors),
            }
        return data


class Deadline:
    """Wall-clock limit checked at phase boundaries."""

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self.clock = clock
        self.started = clock()

    def elapsed(self) -> float:
        return self.clock() - self.started

    def check(self, phase: str) -> None:
        """Raise DeadlineExceededError if the deadline has passed.

        Args:
            phase: Name of the phase about to start (for logging)
        """
        elapsed = self.elapsed()
        if elapsed > self.timeout:
            logger.warning(
                f"Deadline of {self.timeout:.0f}s exceeded before {phase} "
                f"({elapsed:.1f}s elapsed)"
            )
            raise DeadlineExceededError(elapsed, self.timeout)


@dataclass
class ReplicationRun:
    """State owned by a single run: options, deadline, cache and result."""

    options: ReplicationOptions
    deadline: Deadline
    operations: SyncOperations
    result: ExecutionResult
    folder_mapping: dict[str, Optional[str]] = field(default_factory=dict)
    """Source folder ID to destination folder ID"""

    dest_folder_ids: set[str] = field(default_factory=set)
    """Destination folders this run mapped to, never treated as sources"""


class ReplicationExecutor:
    """Copies folder structure and files from a source to a destination."""

    def __init__(
        self,
        store: RemoteStore,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the executor.

        Args:
            store: Remote store holding both trees
            clock: Monotonic clock used for the deadline
            sleep: Function used for the pauses between chunks and folders
        """
        self.store = store
        self.manager = EntriesManager(store)
        self.clock = clock
        self.sleep = sleep

    def replicate(
        self,
        source_root_id: Optional[str],
        dest_root_id: Optional[str],
        options: Optional[ReplicationOptions] = None,
    ) -> ExecutionResult:
        """Replicate a source folder into a destination folder.

        Args:
            source_root_id: Folder to copy from (None for the store root,
                which copies root files only)
            dest_root_id: Folder to copy into
            options: Replication options (defaults if omitted)

        Returns:
            ExecutionResult; ``success`` is False if the deadline or an
            unexpected error stopped the run, in which case the statistics
            cover the work done until then
        """
        options = options or ReplicationOptions()
        run = ReplicationRun(
            options=options,
            deadline=Deadline(options.timeout, self.clock),
            operations=SyncOperations(self.store, options.conflict_policy),
            result=ExecutionResult(
                batch_size=options.batch_size,
                max_concurrency=options.max_concurrency,
            ),
        )
        result = run.result

        logger.debug(
            f"Replicating {source_root_id} -> {dest_root_id} "
            f"(policy={options.conflict_policy.value}, "
            f"batch_size={options.batch_size}, "
            f"max_concurrency={options.max_concurrency})"
        )

        try:
            if options.preserve_structure and source_root_id is not None:
                self._replicate_tree(run, source_root_id, dest_root_id)
            else:
                run.deadline.check("file copy")
                self._copy_folder_files(run, source_root_id, dest_root_id)
        except DeadlineExceededError as e:
            result.success = False
            result.error = str(e)
        except Exception as e:
            logger.exception("Replication stopped by an unexpected error")
            result.success = False
            result.error = str(e) or type(e).__name__

        result.duration = run.deadline.elapsed()
        result.finished_at = datetime.now(timezone.utc)
        logger.debug(result.summary)
        return result

    def _replicate_tree(
        self, run: ReplicationRun, source_root_id: str, dest_root_id: Optional[str]
    ) -> None:
        """Mirror the folder skeleton, then copy files folder by folder."""
        run.deadline.check("folder creation")
        run.folder_mapping[source_root_id] = dest_root_id
        if dest_root_id is not None:
            run.dest_folder_ids.add(dest_root_id)
        self._replicate_folders(run, source_root_id, dest_root_id, "")

        run.deadline.check("root file copy")
        self._copy_folder_files(run, source_root_id, dest_root_id)
        run.deadline.check("subfolder file copy")

        folder_pairs = list(run.result.folder_pairs)
        for index, folder in enumerate(folder_pairs, start=1):
            run.deadline.check(f"folder {folder.path}")
            logger.debug(
                f"Processing folder {index}/{len(folder_pairs)}: {folder.path}"
            )
            self._copy_folder_files(run, folder.source_id, folder.dest_id)
            if run.options.folder_delay:
                self.sleep(run.options.folder_delay)

    # =========================
    # Phase 1: folder structure
    # =========================

    def _replicate_folders(
        self,
        run: ReplicationRun,
        source_id: str,
        dest_parent_id: Optional[str],
        parent_path: str,
    ) -> None:
        """Create the subfolders of ``source_id`` under ``dest_parent_id``.

        Destination folders with the same name are reused. Records are
        appended to the run result in pre-order, so a folder always comes
        before its subfolders.
        """
        result = run.result
        try:
            subfolders = self.manager.get_subfolders(source_id)
            existing = self._existing_folder_names(dest_parent_id)
        except EnumerationError as e:
            logger.warning(f"Skipping folder structure below {source_id}: {e}")
            result.errors.append(
                ItemError(type="listing_error", error=str(e), folder_id=e.folder_id)
            )
            return

        for folder in subfolders:
            if folder.id in run.folder_mapping or folder.id in run.dest_folder_ids:
                # Already mirrored, or a folder this run created itself
                continue

            path = join_path(parent_path, folder.name)
            dest_id = existing.get(folder.name)
            created = False

            if dest_id is None:
                try:
                    new_folder = run.operations.create_folder(
                        folder.name, dest_parent_id
                    )
                except RemoteError as e:
                    logger.warning(f"Failed to create folder {path}: {e}")
                    result.errors.append(
                        ItemError(
                            type="folder_create_error",
                            error=str(e),
                            file=path,
                            folder_id=folder.id,
                        )
                    )
                    continue
                dest_id = new_folder.id
                existing[folder.name] = dest_id
                created = True

            record = FolderRecord(
                source_id=folder.id,
                dest_id=dest_id,
                name=folder.name,
                path=path,
                created=created,
            )
            run.folder_mapping[folder.id] = dest_id
            run.dest_folder_ids.add(dest_id)
            result.folder_pairs.append(record)
            if created:
                result.folders_created += 1
                result.created_folders.append(record)

            if run.options.recursive:
                self._replicate_folders(run, folder.id, dest_id, path)

    def _existing_folder_names(self, folder_id: Optional[str]) -> dict[str, str]:
        """Map subfolder names of a destination folder to their IDs."""
        existing: dict[str, str] = {}
        for folder in self.manager.get_subfolders(folder_id):
            existing.setdefault(folder.name, folder.id)
        return existing

    # =========================
    # Phase 2: files
    # =========================

    def _copy_folder_files(
        self,
        run: ReplicationRun,
        source_id: Optional[str],
        dest_id: Optional[str],
    ) -> None:
        """Copy the direct files of one folder pair, page by page."""
        allowed = set(run.options.file_ids) if run.options.file_ids else None
        existing: dict[str, Optional[str]] = {}
        chunked = False

        try:
            for page in self.manager.iter_children(source_id, FILES_ONLY):
                files = [f for f in page if not f.is_folder]
                if allowed is not None:
                    files = [f for f in files if f.id in allowed]
                if not files:
                    continue

                unknown = [f.name for f in files if f.name not in existing]
                existing.update(self.manager.find_existing_files(dest_id, unknown))
                self._process_in_batches(run, files, dest_id, existing, chunked)
                chunked = True
        except EnumerationError as e:
            logger.warning(f"Skipping files of folder {source_id}: {e}")
            run.result.errors.append(
                ItemError(type="listing_error", error=str(e), folder_id=e.folder_id)
            )

    def _process_in_batches(
        self,
        run: ReplicationRun,
        files: list[Entry],
        dest_id: Optional[str],
        existing: dict[str, Optional[str]],
        after_chunk: bool = False,
    ) -> None:
        """Process files in sequential chunks of ``batch_size``.

        ``after_chunk`` tells that an earlier page of the same folder has
        already been chunked, so the first chunk is preceded by a pause too.
        """
        batch_size = run.options.batch_size
        for start in range(0, len(files), batch_size):
            if (start or after_chunk) and run.options.batch_delay:
                self.sleep(run.options.batch_delay)
            self._copy_chunk(run, files[start : start + batch_size], dest_id, existing)

    def _copy_chunk(
        self,
        run: ReplicationRun,
        chunk: list[Entry],
        dest_id: Optional[str],
        existing: dict[str, Optional[str]],
    ) -> None:
        """Copy one chunk concurrently and wait for every copy to settle.

        Names are resolved here, on the calling thread, before any copy is
        started; worker threads only perform the remote calls.
        """
        result = run.result
        tasks: list[CopyTask] = []
        for file in chunk:
            task = run.operations.plan_copy(file, existing)
            if task is None:
                result.files_skipped += 1
            else:
                tasks.append(task)

        if not tasks:
            return

        workers = min(run.options.max_concurrency, len(tasks))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(run.operations.execute_copy, task, dest_id)
                for task in tasks
            ]
            wait(futures)

        for task, future in zip(tasks, futures):
            try:
                copied = future.result()
            except Exception as e:
                logger.warning(f"Failed to copy {task.file.name}: {e}")
                if task.replace_id is not None and not task.replaced:
                    existing[task.target_name] = task.replace_id
                elif existing.get(task.target_name) is None:
                    existing.pop(task.target_name, None)
                result.errors.append(
                    ItemError(
                        type="file_copy_error",
                        error=str(e),
                        file=task.file.name,
                        folder_id=dest_id,
                    )
                )
                continue

            existing[task.target_name] = copied.id
            result.files_copied += 1
            result.copied_files.append(
                CopiedFile(
                    original_name=task.file.name,
                    new_name=task.target_name,
                    original_id=task.file.id,
                    new_id=copied.id,
                    size=task.file.size,
                    mime_type=task.file.mime_type,
                )
            )
