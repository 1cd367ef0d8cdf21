"""Tests for the replication executor."""

import threading
import time

import pytest

from pydrivesync.exceptions import ConfigurationError, DeadlineExceededError
from pydrivesync.sync.comparator import TreeComparator
from pydrivesync.sync.operations import ConflictPolicy
from pydrivesync.sync.replicator import (
    Deadline,
    ExecutionResult,
    ItemError,
    ReplicationExecutor,
    ReplicationOptions,
)
from pydrivesync.sync.scanner import TreeEnumerator

from .helpers import RecordingStore, build_tree

SOURCE_LAYOUT = {
    "a.txt": 1,
    "docs": {"b.txt": 2, "drafts": {"c.txt": 3}},
    "empty": {},
}


def tree_paths(store, folder_id):
    """Return the relative paths below a folder."""
    return sorted(e.path for e in TreeEnumerator(store).list_entries(folder_id))


class TestReplicationOptions:
    """Tests for option validation."""

    def test_defaults(self):
        options = ReplicationOptions()
        assert options.batch_size == 20
        assert options.max_concurrency == 5
        assert options.timeout == 270.0
        assert options.conflict_policy == ConflictPolicy.RENAME

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"batch_size": 0},
            {"batch_size": 101},
            {"max_concurrency": 0},
            {"max_concurrency": 21},
            {"timeout": 0},
            {"batch_delay": -1},
            {"conflict_policy": "overwrite"},
        ],
    )
    def test_invalid_options(self, kwargs):
        with pytest.raises(ConfigurationError):
            ReplicationOptions(**kwargs)

    def test_policy_from_string(self):
        assert ReplicationOptions(conflict_policy="skip").conflict_policy == (
            ConflictPolicy.SKIP
        )


class TestDeadline:
    """Tests for Deadline."""

    def test_check_within_deadline(self, clock):
        deadline = Deadline(10, clock)
        clock.advance(10)
        deadline.check("copy")

    def test_check_past_deadline(self, clock):
        deadline = Deadline(10, clock)
        clock.advance(10.5)
        with pytest.raises(DeadlineExceededError) as exc_info:
            deadline.check("copy")
        assert exc_info.value.elapsed == 10.5
        assert isinstance(exc_info.value, TimeoutError)


class TestReplicationExecutor:
    """Tests for ReplicationExecutor."""

    @pytest.fixture
    def source(self, store):
        return store.add_folder("source")

    @pytest.fixture
    def dest(self, store):
        return store.add_folder("dest")

    @pytest.fixture
    def executor(self, store, clock, no_sleep):
        return ReplicationExecutor(store, clock=clock, sleep=no_sleep)

    def test_replicates_structure_and_files(self, store, source, dest, executor):
        build_tree(store, SOURCE_LAYOUT, source.id)

        result = executor.replicate(source.id, dest.id)

        assert result.success is True
        assert result.error is None
        assert result.folders_created == 3
        assert result.files_copied == 3
        assert result.errors == []
        assert tree_paths(store, dest.id) == tree_paths(store, source.id)

    def test_folder_pairs_in_pre_order(self, store, source, dest, executor):
        build_tree(store, SOURCE_LAYOUT, source.id)

        result = executor.replicate(source.id, dest.id)

        assert [f.path for f in result.folder_pairs] == [
            "docs",
            "docs/drafts",
            "empty",
        ]

    def test_folders_created_before_files_copied(self, store, source, dest, executor):
        """Test that no file is copied before the folder skeleton exists."""
        build_tree(store, SOURCE_LAYOUT, source.id)

        executor.replicate(source.id, dest.id)

        kinds = [c[0] for c in store.calls if c[0] in ("create_folder", "copy_entry")]
        assert kinds == ["create_folder"] * 3 + ["copy_entry"] * 3

    def test_result_matches_comparison(self, store, source, dest, executor):
        """Test that a run into an empty folder leaves nothing to sync."""
        build_tree(store, SOURCE_LAYOUT, source.id)

        executor.replicate(source.id, dest.id)

        enumerator = TreeEnumerator(store)
        comparison = TreeComparator().compare(
            enumerator.list_entries(source.id), enumerator.list_entries(dest.id)
        )
        assert comparison.additions == []
        assert comparison.deletions == []
        assert comparison.modifications == []

    def test_existing_folders_are_reused(self, store, source, dest, executor):
        """Test that same-named destination folders are never duplicated."""
        build_tree(store, SOURCE_LAYOUT, source.id)
        existing_docs = store.add_folder("docs", parent_id=dest.id)

        result = executor.replicate(source.id, dest.id)

        assert result.folders_created == 2
        assert [f.path for f in result.created_folders] == ["docs/drafts", "empty"]
        assert len(result.folder_pairs) == 3
        assert result.folder_pairs[0].dest_id == existing_docs.id
        assert result.folder_pairs[0].created is False

        dest_folders = [e.name for e in store.children(dest.id) if e.is_folder]
        assert sorted(dest_folders) == ["docs", "empty"]

    def test_second_run_creates_nothing(self, store, source, dest, executor):
        build_tree(store, SOURCE_LAYOUT, source.id)
        executor.replicate(source.id, dest.id)
        copies_before = len(store.calls_of("copy_entry"))

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(conflict_policy="skip")
        )

        assert result.folders_created == 0
        assert result.files_copied == 0
        assert result.files_skipped == 3
        assert len(store.calls_of("copy_entry")) == copies_before

    def test_skip_issues_no_copy(self, store, source, dest, executor):
        tree = build_tree(store, {"a.txt": 1, "b.txt": 2}, source.id)
        store.add_file("a.txt", parent_id=dest.id, size=50)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(conflict_policy=ConflictPolicy.SKIP)
        )

        copied_sources = [call[1] for call in store.calls_of("copy_entry")]
        assert copied_sources == [tree["b.txt"].id]
        assert result.files_skipped == 1
        assert result.files_copied == 1

    def test_rename_keeps_both_files(self, store, source, dest, executor):
        build_tree(store, {"a.txt": 1}, source.id)
        store.add_file("a.txt", parent_id=dest.id, size=50)

        result = executor.replicate(source.id, dest.id)

        new_name = result.copied_files[0].new_name
        assert new_name.startswith("a_copy_")
        assert new_name.endswith(".txt")
        names = sorted(e.name for e in store.children(dest.id))
        assert names == sorted(["a.txt", new_name])

    def test_replace_overwrites(self, store, source, dest, executor):
        build_tree(store, {"a.txt": 1}, source.id)
        old = store.add_file("a.txt", parent_id=dest.id, size=50)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(conflict_policy="replace")
        )

        assert store.calls_of("delete_entry") == [("delete_entry", old.id)]
        assert [(e.name, e.size) for e in store.children(dest.id)] == [("a.txt", 1)]
        assert result.copied_files[0].new_name == "a.txt"

    def test_replace_with_failed_delete_keeps_name_taken(
        self, store, source, dest, executor
    ):
        """Test that a file that could not be deleted is not copied over."""
        store.add_file("a.txt", parent_id=source.id, size=1)
        store.add_file("a.txt", parent_id=source.id, size=2)
        old = store.add_file("a.txt", parent_id=dest.id, size=50)
        store.fail_delete_ids.add(old.id)

        result = executor.replicate(
            source.id,
            dest.id,
            ReplicationOptions(conflict_policy="replace", batch_size=1),
        )

        assert store.calls_of("delete_entry") == [("delete_entry", old.id)] * 2
        assert store.calls_of("copy_entry") == []
        assert [(e.name, e.size) for e in store.children(dest.id)] == [("a.txt", 50)]
        assert result.files_copied == 0
        assert [e.type for e in result.errors] == ["file_copy_error"] * 2

    def test_same_named_sources_in_one_chunk(self, store, source, dest, executor):
        """Test that duplicate source names never clobber each other."""
        store.add_file("a.txt", parent_id=source.id, size=1)
        store.add_file("a.txt", parent_id=source.id, size=2)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(conflict_policy="replace")
        )

        assert result.files_copied == 2
        assert store.calls_of("delete_entry") == []
        names = [e.name for e in store.children(dest.id)]
        assert len(set(names)) == 2
        assert "a.txt" in names

    def test_file_failure_does_not_stop_run(
        self, store, source, dest, executor, no_sleep
    ):
        """Test that a failed copy is recorded and later chunks still run."""
        build_tree(store, {f"f{i}.txt": i for i in range(5)}, source.id)
        store.fail_copy_names.add("f1.txt")

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(batch_size=2)
        )

        assert result.success is True
        assert result.files_copied == 4
        assert result.errors == [
            ItemError(
                type="file_copy_error",
                error="quota exceeded copying f1.txt",
                file="f1.txt",
                folder_id=dest.id,
            )
        ]
        assert sorted(e.name for e in store.children(dest.id)) == [
            "f0.txt",
            "f2.txt",
            "f3.txt",
            "f4.txt",
        ]
        # Three chunks, a pause between each pair of them
        assert no_sleep.pauses == [0.1, 0.1]
        assert result.summary.endswith("1 errors occurred.")

    def test_pause_between_chunks_of_different_pages(self, clock, no_sleep):
        store = RecordingStore(page_size=2)
        source = store.add_folder("source")
        dest = store.add_folder("dest")
        build_tree(store, {f"f{i}.txt": i for i in range(3)}, source.id)
        executor = ReplicationExecutor(store, clock=clock, sleep=no_sleep)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(batch_size=1)
        )

        assert result.files_copied == 3
        assert no_sleep.pauses == [0.1, 0.1]

    def test_copied_files_keep_submission_order(self, store, source, dest, executor):
        names = [f"f{i}.txt" for i in range(6)]
        build_tree(store, {name: 1 for name in names}, source.id)
        delays = {name: 0.002 * (6 - i) for i, name in enumerate(names)}
        store.on_copy = lambda name: time.sleep(delays[name])

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(max_concurrency=6)
        )

        assert [f.original_name for f in result.copied_files] == names

    def test_concurrency_is_capped(self, store, source, dest, executor):
        build_tree(store, {f"f{i}.txt": 1 for i in range(8)}, source.id)
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def on_copy(name):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.005)
            with lock:
                state["active"] -= 1

        store.on_copy = on_copy

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(batch_size=8, max_concurrency=2)
        )

        assert result.files_copied == 8
        assert 1 <= state["peak"] <= 2

    def test_folder_create_failure_skips_subtree(self, store, source, dest, executor):
        build_tree(store, SOURCE_LAYOUT, source.id)
        store.fail_create_names.add("docs")

        result = executor.replicate(source.id, dest.id)

        assert result.success is True
        assert [e.type for e in result.errors] == ["folder_create_error"]
        assert result.errors[0].file == "docs"
        assert tree_paths(store, dest.id) == ["a.txt", "empty"]

    def test_listing_error_skips_folder(self, store, source, dest, executor):
        tree = build_tree(store, SOURCE_LAYOUT, source.id)
        store.fail_list_ids.add(tree["docs"].id)

        result = executor.replicate(source.id, dest.id)

        assert result.success is True
        assert {e.type for e in result.errors} == {"listing_error"}
        assert {e.folder_id for e in result.errors} == {tree["docs"].id}
        assert "a.txt" in tree_paths(store, dest.id)
        assert "docs/b.txt" not in tree_paths(store, dest.id)

    def test_unexpected_error_keeps_partial_result(
        self, store, source, dest, executor
    ):
        tree = build_tree(store, {"r.txt": 1, "A": {"a.txt": 2}}, source.id)

        def malformed_listing(folder_id, query):
            if folder_id == tree["A"].id and query is not None and query.kind == "file":
                raise KeyError("id")

        store.on_list = malformed_listing

        result = executor.replicate(source.id, dest.id)

        assert result.success is False
        assert result.error == "'id'"
        assert result.folders_created == 1
        assert result.files_copied == 1
        assert [f.new_name for f in result.copied_files] == ["r.txt"]
        assert result.summary.startswith(
            "Partial copy completed: 1 files and 1 folders copied"
        )

    def test_existence_check_failure_skips_folder(
        self, store, source, dest, executor
    ):
        build_tree(store, {"a.txt": 1, "docs": {"b.txt": 2}}, source.id)
        dest_docs = store.add_folder("docs", parent_id=dest.id)
        store.fail_existence_ids.add(dest_docs.id)

        result = executor.replicate(source.id, dest.id)

        assert result.files_copied == 1
        assert [(e.type, e.folder_id) for e in result.errors] == [
            ("listing_error", dest_docs.id)
        ]
        assert store.children(dest_docs.id) == []

    def test_deadline_returns_partial_result(
        self, store, source, dest, clock, executor
    ):
        """Test that the deadline stops the run between folders."""
        build_tree(
            store,
            {"r.txt": 1, "A": {"a.txt": 1}, "B": {"b.txt": 1}, "C": {"c.txt": 1}},
            source.id,
        )
        store.on_copy = lambda name: clock.advance(4)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(timeout=10, max_concurrency=1)
        )

        assert result.success is False
        assert result.error.startswith("Operation timeout")
        assert result.folders_created == 3
        assert result.files_copied == 3
        assert result.duration == 12
        assert "C/c.txt" not in tree_paths(store, dest.id)
        assert result.summary.startswith(
            "Partial copy completed: 3 files and 3 folders copied in 12s before error"
        )
        assert result.to_dict()["partialResults"] == {
            "foldersCreated": 3,
            "filesCopied": 3,
            "filesSkipped": 0,
            "errorsCount": 0,
        }

    def test_deadline_after_root_files(self, store, source, dest, clock, executor):
        build_tree(store, {"r1.txt": 1, "r2.txt": 1, "A": {"a.txt": 1}}, source.id)
        store.on_copy = lambda name: clock.advance(6)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(timeout=10, max_concurrency=1)
        )

        assert result.success is False
        assert result.files_copied == 2
        assert result.folders_created == 1

    def test_file_ids_allow_list(self, store, source, dest, executor):
        tree = build_tree(store, SOURCE_LAYOUT, source.id)

        result = executor.replicate(
            source.id,
            dest.id,
            ReplicationOptions(file_ids=[tree["docs/b.txt"].id]),
        )

        assert result.files_copied == 1
        assert result.folders_created == 3
        assert "docs/b.txt" in tree_paths(store, dest.id)
        assert "a.txt" not in tree_paths(store, dest.id)

    def test_flat_copies_root_files_only(self, store, source, dest, executor):
        build_tree(store, SOURCE_LAYOUT, source.id)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(preserve_structure=False)
        )

        assert result.folders_created == 0
        assert result.files_copied == 1
        assert tree_paths(store, dest.id) == ["a.txt"]

    def test_non_recursive_mirrors_first_level(self, store, source, dest, executor):
        build_tree(store, SOURCE_LAYOUT, source.id)

        result = executor.replicate(
            source.id, dest.id, ReplicationOptions(recursive=False)
        )

        assert [f.path for f in result.folder_pairs] == ["docs", "empty"]
        assert tree_paths(store, dest.id) == [
            "a.txt",
            "docs",
            "docs/b.txt",
            "empty",
        ]

    def test_folder_delay_between_folders(
        self, store, source, dest, executor, no_sleep
    ):
        build_tree(store, {"A": {}, "B": {}}, source.id)

        executor.replicate(source.id, dest.id)

        assert no_sleep.pauses == [0.05, 0.05]

    def test_destination_inside_source(self, store, source, executor):
        """Test that folders created by the run are not mirrored again."""
        build_tree(store, {"docs": {"b.txt": 2}}, source.id)
        inner = store.add_folder("backup", parent_id=source.id)

        result = executor.replicate(source.id, inner.id)

        assert result.folders_created == 1
        assert [f.path for f in result.folder_pairs] == ["docs"]


class TestExecutionResult:
    """Tests for ExecutionResult reporting."""

    def test_success_summary(self):
        result = ExecutionResult(folders_created=2, files_copied=5, duration=3.4)
        assert result.summary == (
            "Successfully copied 5 files and created 2 folders in 3s"
        )

    def test_failure_summary_without_message(self):
        result = ExecutionResult(success=False, files_copied=1)
        assert result.summary == (
            "Partial copy completed: 1 files and 0 folders copied in 0s before error"
        )

    def test_to_dict_success(self):
        result = ExecutionResult(
            files_copied=1,
            errors=[ItemError(type="listing_error", error="boom", folder_id="d1")],
        )

        data = result.to_dict()

        assert data["success"] is True
        assert data["statistics"]["filesCopied"] == 1
        assert data["statistics"]["errorsCount"] == 1
        assert data["details"]["errors"] == [
            {"type": "listing_error", "error": "boom", "folderId": "d1"}
        ]
        assert "partialResults" not in data

    def test_to_dict_caps_error_list(self):
        errors = [ItemError(type="file_copy_error", error="x") for _ in range(60)]
        data = ExecutionResult(errors=errors).to_dict()

        assert len(data["details"]["errors"]) == 50
        assert data["statistics"]["errorsCount"] == 60
