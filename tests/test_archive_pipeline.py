from __future__ import annotations

import hashlib
import io
import json
import os
import threading
from pathlib import Path
from typing import BinaryIO, Sequence

import pytest

from artifact_archiver.errors import (
    ArchiveCancelledError,
    ArchiveIOError,
    ArtifactNotFoundError,
    ArtifactStoreError,
    PatternError,
)
from artifact_archiver.store.tree import VirtualEntry
from artifact_archiver.store.writer import ArtifactStore
from artifact_archiver.workspace.access import LocalWorkspace

from conftest import archive, requires_symlinks, write_text


class UnreadableWorkspace(LocalWorkspace):
    """Local workspace whose named files cannot be opened."""

    def __init__(self, root: Path, unreadable: set[str]) -> None:
        super().__init__(root)
        self.unreadable = unreadable

    def open_read(self, relative_path: str) -> BinaryIO:
        if relative_path in self.unreadable:
            raise PermissionError(13, "Permission denied", relative_path)
        return super().open_read(relative_path)


def _names(entries: list[VirtualEntry]) -> list[str]:
    return [entry.name for entry in entries]


def _leftovers(store: ArtifactStore, job: str = "job") -> list[str]:
    job_dir = store.job_dir(job)
    return sorted(path.name for path in job_dir.iterdir()) if job_dir.exists() else []


def test_wildcard_include_drops_empty_directories(store: ArtifactStore, workspace: Path) -> None:
    (workspace / "dir" / "subdir1").mkdir(parents=True)
    write_text(workspace, "dir/subdir2/file")

    result = archive(store, workspace, includes="dir/")

    assert result.status == "SUCCESS"
    assert result.matched_count == 1
    root = result.tree.root()
    assert _names(root.list()) == ["dir"]
    assert _names(root.child("dir").list()) == ["subdir2"]
    assert _names(root.child("dir/subdir2").list()) == ["file"]

    archive_dir = store.build_paths("job", 1).archive_dir
    assert sorted(path.name for path in (archive_dir / "dir").iterdir()) == ["subdir2"]


def test_literal_empty_directory_is_kept_but_not_counted(store: ArtifactStore, workspace: Path) -> None:
    (workspace / "dir" / "subdir1").mkdir(parents=True)

    rejected = archive(store, workspace, includes="dir/subdir1")
    assert rejected.status == "EMPTY_REJECTED"

    allowed = archive(store, workspace, includes="dir/subdir1", allow_empty_archive=True)
    assert allowed.status == "SUCCESS"
    assert allowed.matched_count == 0
    assert allowed.tree.child("dir/subdir1").is_dir()
    assert allowed.tree.child("dir/subdir1").list() == []


def test_allow_empty_archive(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "present.txt")

    rejected = archive(store, workspace, includes="f")
    assert rejected.status == "EMPTY_REJECTED"
    assert rejected.is_failure
    assert rejected.message == 'No artifacts found that match the file pattern "f". Configuration error?'
    assert not rejected.has_artifacts
    assert _leftovers(store) == []

    allowed = archive(store, workspace, includes="f", allow_empty_archive=True)
    assert allowed.status == "SUCCESS"
    assert not allowed.is_failure
    assert not allowed.has_artifacts
    assert allowed.matched_count == 0
    assert store.has_build("job", 1)


@requires_symlinks
def test_symlink_whose_target_is_not_archived(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "dir/fizz", "contents")
    os.symlink("fizz", workspace / "dir" / "lodge")

    result = archive(store, workspace, includes="dir/lodge")

    assert result.status == "SUCCESS"
    assert result.matched_count == 1
    assert _names(result.tree.child("dir").list()) == ["lodge"]
    lodge = result.tree.child("dir/lodge")
    assert lodge.is_symlink()
    assert lodge.link_target == "dir/fizz"
    assert not lodge.exists()


@requires_symlinks
def test_symlink_with_archived_target_is_readable(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "dir/fizz", "contents")
    os.symlink("fizz", workspace / "dir" / "lodge")

    result = archive(store, workspace, includes="dir/")

    assert _names(result.tree.child("dir").list()) == ["fizz", "lodge"]
    with store.open_for_serving("job", 1, "dir/lodge") as handle:
        assert handle.read() == b"contents"
    assert not (store.build_paths("job", 1).archive_dir / "dir" / "lodge").exists()


@requires_symlinks
def test_outside_symlink_is_listed_but_never_served(store: ArtifactStore, workspace: Path, outside: Path) -> None:
    write_text(outside, "config.xml", "<secret/>")
    os.symlink(outside / "config.xml", workspace / "hack")

    result = archive(store, workspace, includes="hack")

    assert result.status == "SUCCESS"
    assert result.matched_count == 1
    assert result.has_artifacts
    for tree in (result.tree, store.load_tree("job", 1)):
        assert _names(tree.root().list()) == ["hack"]
        hack = tree.child("hack")
        assert hack.is_placeholder()
        assert not hack.exists()
        assert not hack.is_file()
        assert not hack.is_dir()
    with pytest.raises(ArtifactNotFoundError):
        store.open_for_serving("job", 1, "hack")
    assert not (store.build_paths("job", 1).archive_dir / "hack").exists()

    summary = json.loads(store.build_paths("job", 1).summary_path.read_text(encoding="utf-8"))
    assert summary["placeholders_count"] == 1


def test_only_if_successful(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "f", "first")

    first = archive(store, workspace, includes="f", outcome="FAILURE")
    assert first.status == "SUCCESS"
    assert first.has_artifacts

    write_text(workspace, "f", "second")
    skipped = archive(store, workspace, includes="f", outcome="FAILURE", build_number=2, only_if_successful=True)
    assert skipped.status == "POLICY_SKIPPED"
    assert not skipped.is_failure
    assert not skipped.has_artifacts
    assert not store.has_build("job", 2)

    with store.open_for_serving("job", 1, "f") as handle:
        assert handle.read() == b"first"

    unstable = archive(store, workspace, includes="f", outcome="UNSTABLE", build_number=3, only_if_successful=True)
    assert unstable.status == "SUCCESS"
    running = archive(store, workspace, includes="f", outcome=None, build_number=4, only_if_successful=True)
    assert running.status == "SUCCESS"


def test_policy_gate_runs_before_pattern_validation(store: ArtifactStore, workspace: Path) -> None:
    result = archive(store, workspace, includes="../bad", outcome="ABORTED", only_if_successful=True)
    assert result.status == "POLICY_SKIPPED"


@pytest.mark.parametrize("use_default_excludes", [True, False])
def test_default_excludes(store: ArtifactStore, workspace: Path, use_default_excludes: bool) -> None:
    for name in (".svn/file", "dir/.svn/file", "dir/file"):
        write_text(workspace, name)

    result = archive(store, workspace, includes="**", use_default_excludes=use_default_excludes)

    assert result.status == "SUCCESS"
    assert result.tree.child("dir/file").exists()
    assert result.tree.child(".svn/file").exists() is not use_default_excludes
    assert result.tree.child("dir/.svn/file").exists() is not use_default_excludes


def test_bad_pattern_fails_without_partial_tree(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "a.txt")

    result = archive(store, workspace, includes=("a.txt", "/etc/passwd"))

    assert result.status == "FAILED"
    assert isinstance(result.error, PatternError)
    assert not result.has_artifacts
    assert _leftovers(store) == []


def test_missing_workspace_fails(store: ArtifactStore, tmp_path: Path) -> None:
    result = archive(store, tmp_path / "nope", includes="**")
    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveIOError)


def test_io_failure_aborts_whole_archive_by_default(store: ArtifactStore, workspace: Path) -> None:
    for name in ("a.txt", "b.txt", "c.txt"):
        write_text(workspace, name)
    access = UnreadableWorkspace(workspace, {"b.txt"})

    result = archive(store, workspace, access=access)

    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveIOError)
    assert result.error.relative_path == "b.txt"
    assert not result.has_artifacts
    assert not store.has_build("job", 1)
    assert _leftovers(store) == []


def test_io_failure_skip_entry_keeps_the_rest(store: ArtifactStore, workspace: Path) -> None:
    for name in ("a.txt", "b.txt", "c.txt"):
        write_text(workspace, name)
    access = UnreadableWorkspace(workspace, {"b.txt"})

    result = archive(store, workspace, access=access, on_io_failure="skip_entry")

    assert result.status == "SUCCESS"
    assert result.tree.relative_paths() == ["a.txt", "c.txt"]
    assert [failed.relative_path for failed in result.failed_entries] == ["b.txt"]
    assert result.matched_count == 2
    assert result.summary_path is not None
    summary = json.loads(result.summary_path.read_text(encoding="utf-8"))
    assert summary["failed_entries"][0]["relative_path"] == "b.txt"


def test_io_failure_skip_entry_fails_when_nothing_survives(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "only.txt")
    access = UnreadableWorkspace(workspace, {"only.txt"})

    result = archive(store, workspace, access=access, on_io_failure="skip_entry")

    assert result.status == "FAILED"
    assert not store.has_build("job", 1)


def test_mid_copy_failure_leaves_nothing(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "big.bin", "x" * 20000)

    class Flaky(io.RawIOBase):
        def __init__(self) -> None:
            self.calls = 0

        def readable(self) -> bool:
            return True

        def readinto(self, buffer) -> int:  # type: ignore[override]
            self.calls += 1
            if self.calls > 1:
                raise OSError("agent disconnected")
            buffer[:1] = b"x"
            return 1

    class FlakyWorkspace(LocalWorkspace):
        def open_read(self, relative_path: str) -> BinaryIO:
            return Flaky()  # type: ignore[return-value]

    result = archive(store, workspace, access=FlakyWorkspace(workspace))

    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveIOError)
    assert _leftovers(store) == []


def test_cancellation_during_copy_discards_staging(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "big.bin", "x" * (3 * 4096))
    cancel = threading.Event()

    class CancelAfterFirstRead(io.RawIOBase):
        def __init__(self, inner: BinaryIO) -> None:
            self._inner = inner

        def readable(self) -> bool:
            return True

        def readinto(self, buffer) -> int:  # type: ignore[override]
            count = self._inner.readinto(buffer)  # type: ignore[attr-defined]
            cancel.set()
            return count

        def close(self) -> None:
            self._inner.close()
            super().close()

    class CancellingWorkspace(LocalWorkspace):
        def open_read(self, relative_path: str) -> BinaryIO:
            return CancelAfterFirstRead(super().open_read(relative_path))  # type: ignore[return-value]

    result = archive(
        store,
        workspace,
        access=CancellingWorkspace(workspace),
        buffer_size=4096,
        cancel_event=cancel,
    )

    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveCancelledError)
    assert _leftovers(store) == []


def test_second_archive_of_same_build_fails(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "f", "first")
    assert archive(store, workspace, includes="f").status == "SUCCESS"

    write_text(workspace, "f", "second")
    again = archive(store, workspace, includes="f")

    assert again.status == "FAILED"
    assert isinstance(again.error, ArtifactStoreError)
    with store.open_for_serving("job", 1, "f") as handle:
        assert handle.read() == b"first"


def test_store_root_that_is_a_file_fails_cleanly(tmp_path: Path, workspace: Path) -> None:
    write_text(workspace, "a.txt")
    blocker = write_text(tmp_path, "not-a-dir")

    result = archive(ArtifactStore(blocker), workspace, includes="a.txt")

    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveIOError)
    assert not result.has_artifacts


@pytest.mark.skipif(
    os.name == "nt" or (hasattr(os, "geteuid") and os.geteuid() == 0),
    reason="needs POSIX permissions enforced for the current user",
)
def test_read_only_store_root_fails_cleanly(tmp_path: Path, workspace: Path) -> None:
    write_text(workspace, "a.txt")
    root = tmp_path / "readonly"
    root.mkdir()
    root.chmod(0o500)
    try:
        result = archive(ArtifactStore(root), workspace, includes="a.txt")
    finally:
        root.chmod(0o700)

    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveIOError)
    assert list(root.iterdir()) == []


def test_manifest_write_failure_discards_staging(
    store: ArtifactStore, workspace: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    write_text(workspace, "a.txt")

    def refuse(manifest: object, output_path: Path) -> Path:
        raise PermissionError(13, "Permission denied", str(output_path))

    monkeypatch.setattr("artifact_archiver.store.writer.write_manifest_parquet", refuse)

    result = archive(store, workspace, includes="a.txt")

    assert result.status == "FAILED"
    assert isinstance(result.error, ArchiveIOError)
    assert result.error.relative_path == "manifest.parquet"
    assert not store.has_build("job", 1)
    assert _leftovers(store) == []


@pytest.mark.skipif(os.name == "nt", reason="names are not valid Windows file names")
@pytest.mark.parametrize("name", ["a:b", "dir/x\\y", ".hidden", "dir/c:\\d"])
def test_unusual_posix_names_are_archived_and_served(store: ArtifactStore, workspace: Path, name: str) -> None:
    write_text(workspace, name, "payload")

    result = archive(store, workspace, includes="**")

    assert result.status == "SUCCESS", result.message
    assert result.tree.relative_paths() == [name]
    assert result.tree.child(name).is_file()
    with store.open_for_serving("job", 1, name) as handle:
        assert handle.read() == b"payload"


@pytest.mark.skipif(os.name == "nt", reason="names are not valid Windows file names")
def test_unusual_names_are_fingerprinted(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "a:b", "alpha")

    result = archive(store, workspace, includes="**", fingerprint=True)

    assert result.fingerprints == {"a:b": hashlib.md5(b"alpha").hexdigest()}


@requires_symlinks
def test_parent_segment_through_escaping_link_becomes_placeholder(
    store: ArtifactStore, workspace: Path, outside: Path
) -> None:
    write_text(outside, "sub/marker")
    write_text(outside, "fizz", "secret")
    write_text(workspace, "fizz", "inside")
    os.symlink(outside / "sub", workspace / "evil")
    os.symlink(os.path.join("evil", "..", "fizz"), workspace / "lnk")

    result = archive(store, workspace, includes="lnk")

    assert result.status == "SUCCESS"
    lnk = result.tree.child("lnk")
    assert lnk.is_placeholder()
    assert lnk.link_target is None
    with pytest.raises(ArtifactNotFoundError):
        store.open_for_serving("job", 1, "lnk")


def test_default_fingerprints_are_recorded(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "a.txt", "alpha")
    write_text(workspace, "lib/b.jar", "beta")

    result = archive(store, workspace, fingerprint=True)

    expected = {
        "a.txt": hashlib.md5(b"alpha").hexdigest(),
        "lib/b.jar": hashlib.md5(b"beta").hexdigest(),
    }
    assert result.fingerprints == expected
    stored = json.loads(store.build_paths("job", 1).fingerprints_path.read_text(encoding="utf-8"))
    assert stored == {"algorithm": "md5", "fingerprints": expected}


def test_fingerprints_are_not_recorded_unless_enabled(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "a.txt")
    result = archive(store, workspace)
    assert result.fingerprints is None
    assert not store.build_paths("job", 1).fingerprints_path.exists()


@requires_symlinks
def test_fingerprint_hook_sees_only_regular_files(store: ArtifactStore, workspace: Path, outside: Path) -> None:
    write_text(workspace, "dir/fizz")
    os.symlink("fizz", workspace / "dir" / "lodge")
    write_text(outside, "secret")
    os.symlink(outside / "secret", workspace / "hack")
    seen: list[str] = []

    def hook(files: Sequence[VirtualEntry], build_dir: Path) -> dict[str, str]:
        seen.extend(entry.relative_path for entry in files)
        assert build_dir == store.build_paths("job", 1).build_dir
        return {}

    result = archive(store, workspace, fingerprint=True, fingerprint_hook=hook)

    assert result.status == "SUCCESS"
    assert seen == ["dir/fizz"]


def test_failing_fingerprint_hook_does_not_undo_archive(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "a.txt", "alpha")

    def hook(files: Sequence[VirtualEntry], build_dir: Path) -> dict[str, str]:
        raise RuntimeError("fingerprint database offline")

    result = archive(store, workspace, fingerprint=True, fingerprint_hook=hook)

    assert result.status == "SUCCESS"
    assert result.fingerprint_error == "RuntimeError: fingerprint database offline"
    assert result.fingerprints is None
    with store.open_for_serving("job", 1, "a.txt") as handle:
        assert handle.read() == b"alpha"


def test_summary_describes_the_run(store: ArtifactStore, workspace: Path) -> None:
    write_text(workspace, "a.txt")

    result = archive(store, workspace, includes="*.txt", outcome="UNSTABLE")

    assert result.summary_path is not None
    summary = json.loads(result.summary_path.read_text(encoding="utf-8"))
    assert summary["status"] == "SUCCESS"
    assert summary["build_outcome"] == "UNSTABLE"
    assert summary["includes"] == ["*.txt"]
    assert summary["matched_count"] == 1
    assert summary["run_id"].startswith("archive-")
