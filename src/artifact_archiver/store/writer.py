"""On-disk artifact store with per-build staging and atomic promotion."""

from __future__ import annotations

import logging
import os
import re
import shutil
import threading
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Any, BinaryIO
from uuid import uuid4

from artifact_archiver.errors import ArchiveIOError, ArtifactNotFoundError, ArtifactStoreError
from artifact_archiver.store.copier import DEFAULT_BUFFER_SIZE, copy_stream
from artifact_archiver.store.manifest import (
    MANIFEST_FILE,
    build_manifest,
    load_manifest_parquet,
    tree_from_manifest,
    write_manifest_parquet,
)
from artifact_archiver.store.tree import ArtifactEntry, ArtifactTree
from artifact_archiver.utils.paths import atomic_temp_path, write_json_atomically

LOGGER = logging.getLogger(__name__)

ARCHIVE_DIR_NAME = "archive"
SUMMARY_FILE = "archive_summary.json"
FINGERPRINTS_FILE = "fingerprints.json"
_BUILD_DIR_PATTERN = re.compile(r"^build=(\d+)$")
_INVALID_JOB_CHARS = re.compile(r"[/\\\x00-\x1f]")


@dataclass(frozen=True, slots=True)
class BuildArtifactPaths:
    """Resolved locations for one build's archived artifacts."""

    build_dir: Path
    archive_dir: Path
    manifest_path: Path
    summary_path: Path
    fingerprints_path: Path


def _paths_for(build_dir: Path) -> BuildArtifactPaths:
    return BuildArtifactPaths(
        build_dir=build_dir,
        archive_dir=build_dir / ARCHIVE_DIR_NAME,
        manifest_path=build_dir / MANIFEST_FILE,
        summary_path=build_dir / SUMMARY_FILE,
        fingerprints_path=build_dir / FINGERPRINTS_FILE,
    )


def _validate_job(job: str) -> str:
    cleaned = job.strip()
    if not cleaned or cleaned in {".", ".."} or _INVALID_JOB_CHARS.search(cleaned):
        raise ArtifactStoreError(f"Invalid job name: {job!r}")
    return cleaned


def _validate_build_number(build_number: int) -> int:
    if build_number < 1:
        raise ArtifactStoreError(f"Build number must be >= 1, got {build_number}")
    return build_number


class ArtifactStore:
    """Destination store laid out as ``jobs/job=<job>/build=<n>/``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"ArtifactStore({str(self.root)!r})"

    def job_dir(self, job: str) -> Path:
        return self.root / "jobs" / f"job={_validate_job(job)}"

    def build_paths(self, job: str, build_number: int) -> BuildArtifactPaths:
        build_dir = self.job_dir(job) / f"build={_validate_build_number(build_number)}"
        return _paths_for(build_dir)

    def has_build(self, job: str, build_number: int) -> bool:
        return self.build_paths(job, build_number).manifest_path.exists()

    def list_builds(self, job: str) -> list[int]:
        """Return archived build numbers for a job, ascending."""

        job_dir = self.job_dir(job)
        if not job_dir.exists():
            return []
        numbers: list[int] = []
        for child in job_dir.iterdir():
            match = _BUILD_DIR_PATTERN.match(child.name)
            if match and child.is_dir():
                numbers.append(int(match.group(1)))
        return sorted(numbers)

    def begin_build(
        self,
        job: str,
        build_number: int,
        *,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        cancel_event: threading.Event | None = None,
        logger: logging.Logger | None = None,
    ) -> "BuildWriter":
        """Open a staging area for one build; refuses builds that already have a tree."""

        paths = self.build_paths(job, build_number)
        if paths.build_dir.exists():
            raise ArtifactStoreError(
                f"Artifacts for job={job} build={build_number} already exist at {paths.build_dir}"
            )
        staging_dir = paths.build_dir.parent / f".{paths.build_dir.name}.{uuid4().hex[:12]}.staging"
        return BuildWriter(
            job=job,
            build_number=build_number,
            final_paths=paths,
            staging_dir=staging_dir,
            buffer_size=buffer_size,
            cancel_event=cancel_event,
            logger=logger,
        )

    def load_tree(self, job: str, build_number: int) -> ArtifactTree:
        """Reload a promoted build's tree from its manifest."""

        paths = self.build_paths(job, build_number)
        manifest = load_manifest_parquet(paths.manifest_path)
        if manifest is None:
            raise ArtifactStoreError(f"No archived artifacts for job={job} build={build_number}")
        return tree_from_manifest(manifest, content_root=paths.archive_dir)

    def open_for_serving(self, job: str, build_number: int, relative_path: str) -> BinaryIO:
        """Open an artifact for an external server; any miss is ArtifactNotFoundError."""

        try:
            tree = self.load_tree(job, build_number)
        except ArtifactStoreError as exc:
            raise ArtifactNotFoundError(relative_path) from exc
        return tree.resolve_for_serving(relative_path).open()

    def delete_build(self, job: str, build_number: int) -> bool:
        paths = self.build_paths(job, build_number)
        if not paths.build_dir.exists():
            return False
        shutil.rmtree(paths.build_dir)
        return True


class BuildWriter:
    """Collects one build's entries in a staging directory until commit."""

    def __init__(
        self,
        *,
        job: str,
        build_number: int,
        final_paths: BuildArtifactPaths,
        staging_dir: Path,
        buffer_size: int,
        cancel_event: threading.Event | None,
        logger: logging.Logger | None,
    ) -> None:
        self.job = job
        self.build_number = build_number
        self.final_paths = final_paths
        self.staging_paths = _paths_for(staging_dir)
        self._buffer_size = buffer_size
        self._cancel_event = cancel_event
        self._logger = logger or LOGGER
        self._entries: list[ArtifactEntry] = []
        self._closed = False
        try:
            self.staging_paths.archive_dir.mkdir(parents=True, exist_ok=False)
        except OSError as exc:
            raise ArchiveIOError(str(staging_dir), exc) from exc

    def __enter__(self) -> "BuildWriter":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if not self._closed:
            self.discard()

    @property
    def entries(self) -> list[ArtifactEntry]:
        return list(self._entries)

    def _target(self, relative_path: str) -> Path:
        return self.staging_paths.archive_dir.joinpath(*relative_path.split("/"))

    def _ensure_open(self) -> None:
        if self._closed:
            raise ArtifactStoreError("Build writer is already committed or discarded")

    def write_file(self, relative_path: str, source: BinaryIO) -> ArtifactEntry:
        """Stream one file into staging; a failed copy leaves nothing behind."""

        self._ensure_open()
        target = self._target(relative_path)
        temp_path: Path | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            temp_path = atomic_temp_path(target)
            with temp_path.open("wb") as sink:
                size = copy_stream(
                    source,
                    sink,
                    buffer_size=self._buffer_size,
                    cancel_event=self._cancel_event,
                )
            os.replace(temp_path, target)
        except OSError as exc:
            raise ArchiveIOError(relative_path, exc) from exc
        finally:
            if temp_path is not None and temp_path.exists():
                temp_path.unlink()

        entry = ArtifactEntry(relative_path=relative_path, kind="file", size_bytes=size, content_ref=relative_path)
        self._entries.append(entry)
        return entry

    def add_directory(self, relative_path: str) -> ArtifactEntry:
        self._ensure_open()
        try:
            self._target(relative_path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArchiveIOError(relative_path, exc) from exc
        entry = ArtifactEntry(relative_path=relative_path, kind="directory")
        self._entries.append(entry)
        return entry

    def add_symlink(self, relative_path: str, link_target: str | None) -> ArtifactEntry:
        self._ensure_open()
        entry = ArtifactEntry(relative_path=relative_path, kind="symlink", link_target=link_target)
        self._entries.append(entry)
        return entry

    def add_placeholder(self, relative_path: str) -> ArtifactEntry:
        self._ensure_open()
        entry = ArtifactEntry(relative_path=relative_path, kind="placeholder")
        self._entries.append(entry)
        return entry

    def commit(self, summary: dict[str, Any] | None = None) -> ArtifactTree:
        """Write manifest and summary, then move the staging tree into place."""

        self._ensure_open()
        tree = ArtifactTree(self._entries)
        try:
            write_manifest_parquet(build_manifest(tree), self.staging_paths.manifest_path)
        except OSError as exc:
            raise ArchiveIOError(MANIFEST_FILE, exc) from exc
        if summary is not None:
            try:
                write_json_atomically(summary, self.staging_paths.summary_path)
            except OSError as exc:
                raise ArchiveIOError(SUMMARY_FILE, exc) from exc

        final_dir = self.final_paths.build_dir
        if final_dir.exists():
            self.discard()
            raise ArtifactStoreError(f"Artifacts appeared concurrently at {final_dir}")
        try:
            os.replace(self.staging_paths.build_dir, final_dir)
        except OSError as exc:
            raise ArchiveIOError(str(final_dir), exc) from exc
        self._closed = True
        self._logger.info(
            "store.build_committed job=%s build=%s entries=%s path=%s",
            self.job,
            self.build_number,
            len(tree),
            final_dir,
        )
        return tree.rebased(self.final_paths.archive_dir)

    def discard(self) -> None:
        """Remove the staging tree; nothing from this writer stays visible."""

        self._closed = True
        if self.staging_paths.build_dir.exists():
            shutil.rmtree(self.staging_paths.build_dir, ignore_errors=True)
            self._logger.info(
                "store.build_discarded job=%s build=%s staging=%s",
                self.job,
                self.build_number,
                self.staging_paths.build_dir,
            )
