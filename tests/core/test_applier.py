"""Tests for the manifest change applier."""

import os
import stat
from collections.abc import Callable
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from fsconnector.core.applier import ApplierOptions, ManifestApplier
from fsconnector.fs.manifest import InMemoryContentStore
from fsconnector.fs.tree import read_file
from fsconnector.routes.schemas import ChangeRequest, UploadParameters

posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")

Change = Callable[..., ChangeRequest]


def _is_executable(path: Path) -> bool:
    return bool(path.stat().st_mode & stat.S_IXUSR)


@pytest.fixture
def applier(parameters: UploadParameters) -> ManifestApplier:
    return ManifestApplier("1", parameters)


class TestAdd:
    """Adding files and folders."""

    @pytest.mark.parametrize("reverse", [False, True])
    def test_independent_adds_in_any_order(
        self,
        repo: Path,
        content: InMemoryContentStore,
        change: Change,
        applier: ManifestApplier,
        reverse: bool,
    ) -> None:
        """Test that disjoint adds produce exactly those files, in any order."""
        content.add("p1", b"one")
        content.add("p2", b"two")
        content.add("p3", b"three")
        manifest = [
            change(1, "add", "a.txt", path="a.txt", content="p1"),
            change(2, "add", "dir/b.sh", path="dir/b.sh", content="p2",
                   properties={"executable": True}),
            change(3, "add", "dir/sub/c.txt", path="dir/sub/c.txt", content="p3",
                   properties={"executable": False}),
        ]
        if reverse:
            manifest.reverse()

        result = applier.process(repo, manifest, content)

        assert result.success
        assert result.completed
        assert not result.has_failures
        assert (repo / "a.txt").read_bytes() == b"one"
        assert (repo / "dir" / "b.sh").read_bytes() == b"two"
        assert (repo / "dir" / "sub" / "c.txt").read_bytes() == b"three"
        files = sorted(
            p.relative_to(repo).as_posix() for p in repo.rglob("*") if p.is_file()
        )
        assert files == ["a.txt", "dir/b.sh", "dir/sub/c.txt"]

    @posix_only
    def test_add_sets_executable_bit(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that executable defaults to false and can be requested."""
        content.add("p", b"#!/bin/sh\n")
        manifest = [
            change(1, "add", "run.sh", path="run.sh", content="p",
                   properties={"executable": True}),
            change(2, "add", "plain.txt", path="plain.txt", content="p"),
        ]

        applier.process(repo, manifest, content)

        assert _is_executable(repo / "run.sh")
        assert not _is_executable(repo / "plain.txt")

    def test_add_over_existing_file_fails_alone(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that add does not overwrite and other entries still apply."""
        (repo / "exists.txt").write_bytes(b"original")
        content.add("p1", b"new")
        content.add("p2", b"other")
        manifest = [
            change(1, "add", "exists.txt", path="exists.txt", content="p1"),
            change(2, "add", "other.txt", path="other.txt", content="p2"),
        ]

        result = applier.process(repo, manifest, content)

        assert [f.index for f in result.failures] == [1]
        assert "already exists" in (result.failures[0].error or "")
        assert (repo / "exists.txt").read_bytes() == b"original"
        assert (repo / "other.txt").read_bytes() == b"other"

    def test_add_overwrite_when_allowed(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        parameters: UploadParameters,
    ) -> None:
        """Test that allow_overwrite_on_add lets add replace a file."""
        (repo / "exists.txt").write_bytes(b"original")
        content.add("p", b"replaced")
        applier = ManifestApplier(
            "1", parameters, options=ApplierOptions(allow_overwrite_on_add=True)
        )

        result = applier.process(
            repo, [change(1, "add", "exists.txt", path="exists.txt", content="p")],
            content,
        )

        assert result.success
        assert (repo / "exists.txt").read_bytes() == b"replaced"

    def test_add_folder_is_idempotent(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that adding an existing folder succeeds and keeps its content."""
        (repo / "docs").mkdir()
        (repo / "docs" / "keep.txt").write_bytes(b"keep")
        manifest = [
            change(1, "addFolder", "docs", path="docs"),
            change(2, "addFolder", "empty/nested", path="empty/nested"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert (repo / "docs" / "keep.txt").read_bytes() == b"keep"
        assert (repo / "empty" / "nested").is_dir()

    def test_add_folder_over_file_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that addFolder refuses to replace a file."""
        (repo / "thing").write_bytes(b"file")

        result = applier.process(
            repo, [change(1, "addFolder", "thing", path="thing")], content
        )

        assert not result.success
        assert result.failures[0].error == "'thing' is not a folder"
        assert (repo / "thing").is_file()

    @posix_only
    def test_add_folder_executable_adds_exec_bits(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        (repo / "bin").mkdir()
        (repo / "bin").chmod(0o700)

        result = applier.process(
            repo,
            [
                change(1, "addFolder", "bin", path="bin",
                       properties={"executable": True}),
                change(2, "addFolder", "lib", path="lib",
                       properties={"executable": False}),
            ],
            content,
        )

        assert result.success
        assert stat.S_IMODE((repo / "bin").stat().st_mode) == 0o711
        assert (repo / "lib").stat().st_mode & stat.S_IXUSR

    def test_missing_content_part_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that a reference to an absent part is reported."""
        result = applier.process(
            repo, [change(1, "add", "a.txt", path="a.txt", content="nope")], content
        )

        assert result.failures[0].error == "Content part 'nope' was not supplied"
        assert not (repo / "a.txt").exists()

    def test_path_outside_root_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that paths climbing out of the root are rejected per entry."""
        content.add("p", b"x")

        result = applier.process(
            repo,
            [change(1, "add", "../escape.txt", path="../escape.txt", content="p")],
            content,
        )

        assert "outside the exposed area" in (result.failures[0].error or "")
        assert not (repo.parent / "escape.txt").exists()


class TestRevise:
    """Revising file content."""

    def test_add_then_revise_round_trip(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that a revise after an add is what a read returns."""
        content.add("c1", b"first")
        content.add("c2", b"second")
        manifest = [
            change(1, "add", "notes/p.txt", path="notes/p.txt", content="c1"),
            change(2, "revise", "notes/p.txt", content="c2"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert read_file(repo, "notes/p.txt") == b"second"

    def test_revise_missing_file_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        content.add("c", b"x")

        result = applier.process(repo, [change(7, "revise", "ghost.txt", content="c")], content)

        assert result.failures[0].index == 7
        assert result.failures[0].error == "No object found at 'ghost.txt'"
        assert not (repo / "ghost.txt").exists()

    def test_revise_after_remove_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that an object removed earlier in the batch cannot be revised."""
        (repo / "gone.txt").write_bytes(b"x")
        content.add("c", b"y")
        manifest = [
            change(1, "remove", "gone.txt"),
            change(2, "revise", "gone.txt", content="c"),
        ]

        result = applier.process(repo, manifest, content)

        assert [f.index for f in result.failures] == [2]
        assert "already been removed" in (result.failures[0].error or "")
        assert not (repo / "gone.txt").exists()

    @posix_only
    def test_revise_keeps_executable_bit_unless_given(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that revise keeps access rights unless executable is given."""
        keep = repo / "keep.sh"
        clear = repo / "clear.sh"
        for path in (keep, clear):
            path.write_bytes(b"old")
            path.chmod(0o755)
        content.add("c", b"new")
        manifest = [
            change(1, "revise", "keep.sh", content="c"),
            change(2, "revise", "clear.sh", content="c",
                   properties={"executable": False}),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert keep.read_bytes() == b"new"
        assert _is_executable(keep)
        assert not _is_executable(clear)


class TestMove:
    """Moves, and their combination with revise and remove."""

    @pytest.mark.parametrize("move_first", [True, False])
    def test_move_and_revise_commute(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier, move_first: bool,
    ) -> None:
        """Test that move+revise of one id gives the same tree in either order."""
        (repo / "a.txt").write_bytes(b"original")
        content.add("rev", b"revised")
        move = change(1, "move", "a.txt", destination="moved/b.txt")
        revise = change(2, "revise", "a.txt", content="rev")
        manifest = [move, revise] if move_first else [revise, move]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert (repo / "moved" / "b.txt").read_bytes() == b"revised"
        assert not (repo / "a.txt").exists()

    def test_folder_move_then_remove_of_inner_file(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that removing by original id targets the moved location."""
        (repo / "F" / "sub").mkdir(parents=True)
        (repo / "F" / "x.txt").write_bytes(b"x")
        (repo / "F" / "sub" / "y.txt").write_bytes(b"y")
        manifest = [
            change(1, "move", "F", destination="F2"),
            change(2, "remove", "F/x.txt"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert not (repo / "F").exists()
        assert not (repo / "F2" / "x.txt").exists()
        assert (repo / "F2" / "sub" / "y.txt").read_bytes() == b"y"

    def test_folder_move_then_revise_of_nested_file(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        parameters: UploadParameters,
    ) -> None:
        """Test that revise of a file inside a moved folder follows the move."""
        (repo / "F" / "sub").mkdir(parents=True)
        (repo / "F" / "sub" / "y.txt").write_bytes(b"old")
        content.add("c", b"new")
        manifest = [
            change(1, "move", "F", destination="G/F"),
            change(2, "revise", "F/sub/y.txt", content="c"),
        ]

        result = ManifestApplier("1", parameters).process(repo, manifest, content)

        assert result.success
        assert (repo / "G" / "F" / "sub" / "y.txt").read_bytes() == b"new"

    def test_repeated_moves_of_one_id(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that a second move starts where the first one ended."""
        (repo / "a.txt").write_bytes(b"a")
        manifest = [
            change(1, "move", "a.txt", destination="b.txt"),
            change(2, "move", "a.txt", destination="c/d.txt"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert (repo / "c" / "d.txt").read_bytes() == b"a"
        assert not (repo / "a.txt").exists()
        assert not (repo / "b.txt").exists()

    def test_file_moved_into_folder_follows_folder_move(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that earlier moves into a folder are carried by its move."""
        (repo / "lib").mkdir()
        (repo / "loose.txt").write_bytes(b"loose")
        content.add("c", b"revised")
        manifest = [
            change(1, "move", "loose.txt", destination="lib/loose.txt"),
            change(2, "move", "lib", destination="pkg"),
            change(3, "revise", "loose.txt", content="c"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success
        assert (repo / "pkg" / "loose.txt").read_bytes() == b"revised"

    def test_move_onto_existing_destination_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        (repo / "a.txt").write_bytes(b"a")
        (repo / "b.txt").write_bytes(b"b")

        result = applier.process(
            repo, [change(1, "move", "a.txt", destination="b.txt")], content
        )

        assert not result.success
        assert (repo / "a.txt").read_bytes() == b"a"
        assert (repo / "b.txt").read_bytes() == b"b"

    def test_move_folder_into_itself_leaves_tree_untouched(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        (repo / "a").mkdir()
        (repo / "a" / "f.txt").write_bytes(b"f")

        result = applier.process(
            repo, [change(1, "move", "a", destination="a/b/c")], content
        )

        assert "into itself" in (result.failures[0].error or "")
        assert sorted(p.name for p in (repo / "a").iterdir()) == ["f.txt"]

    def test_move_of_missing_source_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        result = applier.process(
            repo, [change(1, "move", "nothing", destination="else")], content
        )

        assert result.failures[0].error == "No object found at 'nothing'"

    def test_move_without_destination_fails(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        (repo / "a.txt").write_bytes(b"a")

        result = applier.process(repo, [change(1, "move", "a.txt")], content)

        assert result.failures[0].error == "Entry is missing required field 'destination'"


class TestRemove:
    """Removing files and folders."""

    def test_remove_folder_recursively(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        (repo / "d" / "e").mkdir(parents=True)
        (repo / "d" / "e" / "f.txt").write_bytes(b"f")

        result = applier.process(repo, [change(1, "remove", "d")], content)

        assert result.success
        assert not (repo / "d").exists()

    def test_remove_missing_is_tolerated_by_default(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        (repo / "x.txt").write_bytes(b"x")
        manifest = [
            change(1, "remove", "x.txt"),
            change(2, "remove", "x.txt"),
            change(3, "remove", "never.txt"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.success

    def test_remove_missing_fails_when_strict(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        parameters: UploadParameters,
    ) -> None:
        applier = ManifestApplier(
            "1", parameters, options=ApplierOptions(tolerate_missing_remove=False)
        )

        result = applier.process(repo, [change(1, "remove", "never.txt")], content)

        assert result.failures[0].error == "No object found at 'never.txt'"


class TestBatch:
    """Batch-level lifecycle and aggregation."""

    def test_single_failure_is_reported_by_index(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        """Test that one failing entry among many is the only failure."""
        content.add("p", b"data")
        manifest = [
            change(10, "add", "one.txt", path="one.txt", content="p"),
            change(11, "revise", "missing.txt", content="p"),
            change(12, "addFolder", "folder", path="folder"),
            change(13, "add", "two.txt", path="two.txt", content="p"),
        ]

        result = applier.process(repo, manifest, content)

        assert result.completed is True
        assert result.has_failures is True
        assert result.success is False
        assert result.error is None
        assert [f.index for f in result.failures] == [11]
        assert [e.index for e in result.entries] == [10, 11, 12, 13]
        assert (repo / "two.txt").exists()

    def test_stop_on_error_leaves_batch_incomplete(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        parameters: UploadParameters,
    ) -> None:
        content.add("p", b"data")
        manifest = [
            change(1, "revise", "missing.txt", content="p"),
            change(2, "add", "later.txt", path="later.txt", content="p"),
        ]
        applier = ManifestApplier(
            "1", parameters, options=ApplierOptions(mode="stop_on_error")
        )

        result = applier.process(repo, manifest, content)

        assert result.completed is False
        assert result.has_failures is True
        assert len(result.entries) == 1
        assert not (repo / "later.txt").exists()

    @pytest.mark.parametrize(
        ("version", "commit_id"), [("", "c-1"), ("1", ""), ("1", "   ")]
    )
    def test_initialize_rejects_missing_identifiers(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        version: str, commit_id: str,
    ) -> None:
        """Test that a batch without version or commit id runs no entry."""
        content.add("p", b"data")
        applier = ManifestApplier(version, UploadParameters(commit_id=commit_id))

        result = applier.process(
            repo, [change(1, "add", "a.txt", path="a.txt", content="p")], content
        )

        assert result.entries == []
        assert result.completed is False
        assert result.has_failures is True
        assert result.error is not None
        assert "commit id" in result.error
        assert not (repo / "a.txt").exists()

    def test_finish_runs_after_rejected_batch(
        self, repo: Path, content: InMemoryContentStore,
    ) -> None:
        calls: list[tuple[bool, bool]] = []

        class Recording(ManifestApplier):
            def finish(self, completed: bool, has_failures: bool) -> str | None:
                calls.append((completed, has_failures))
                return None

        Recording("", UploadParameters()).process(repo, [], content)

        assert calls == [(False, True)]

    def test_finish_error_becomes_batch_error(
        self, repo: Path, content: InMemoryContentStore,
        parameters: UploadParameters,
    ) -> None:
        class Unlocking(ManifestApplier):
            def finish(self, completed: bool, has_failures: bool) -> str | None:
                return "could not release lock"

        result = Unlocking("1", parameters).process(repo, [], content)

        assert result.completed is True
        assert result.has_failures is True
        assert result.error == "could not release lock"

    def test_unexpected_exception_becomes_entry_error(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        parameters: UploadParameters,
    ) -> None:
        """Test that a handler fault is confined to its entry."""

        class Faulty(ManifestApplier):
            def process_add_folder(self, request: ChangeRequest) -> str | None:
                raise RuntimeError("disk on fire")

        manifest = [
            change(1, "addFolder", "a", path="a"),
            change(2, "remove", "nothing"),
        ]

        result = Faulty("1", parameters).process(repo, manifest, content)

        assert result.completed is True
        assert result.failures[0].index == 1
        assert result.failures[0].error == "disk on fire"
        assert result.entries[1].ok

    def test_custom_id_scheme(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        parameters: UploadParameters,
    ) -> None:
        """Test that ids can be mapped to paths by an injected function."""
        (repo / "src").mkdir()
        (repo / "src" / "main.c").write_bytes(b"int main;")
        content.add("c", b"int main(void);")
        ids = {"obj-17": "src/main.c"}
        applier = ManifestApplier("1", parameters, default_resolution=ids.__getitem__)

        result = applier.process(repo, [change(1, "revise", "obj-17", content="c")], content)

        assert result.success
        assert (repo / "src" / "main.c").read_bytes() == b"int main(void);"

    def test_logs_entries_and_summary(
        self, repo: Path, content: InMemoryContentStore, change: Change,
        applier: ManifestApplier,
    ) -> None:
        with capture_logs() as logs:
            applier.process(repo, [change(1, "addFolder", "a", path="a")], content)

        events = [log["event"] for log in logs]
        assert events == ["upload.entry", "upload.summary"]
        assert logs[0]["ok"] is True
        assert logs[0]["commit_id"] == "c-001"
        assert logs[1]["failed_count"] == 0
