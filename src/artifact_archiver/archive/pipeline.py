"""Archive one build's workspace into the artifact store."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping
from uuid import uuid4

from artifact_archiver.errors import (
    ArchiveCancelledError,
    ArchiveError,
    ArchiveIOError,
    ArtifactStoreError,
    PatternError,
)
from artifact_archiver.fingerprint.hooks import FingerprintHook, Md5FingerprintRecorder
from artifact_archiver.guard.symlinks import ClassifiedEntry, classify_all
from artifact_archiver.policy.gates import (
    ArchiveOptions,
    ArchiveStatus,
    BuildOutcome,
    empty_gate_status,
    outcome_gate_allows,
)
from artifact_archiver.selection.matcher import select_candidates
from artifact_archiver.selection.patterns import PatternConfig
from artifact_archiver.store.copier import DEFAULT_BUFFER_SIZE
from artifact_archiver.store.tree import ArtifactTree
from artifact_archiver.store.writer import ArtifactStore, BuildWriter
from artifact_archiver.utils.time_utils import elapsed_seconds, isoformat_utc, monotonic_start, now_utc
from artifact_archiver.workspace.access import LocalWorkspace, WorkspaceAccess

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ArchiveRequest:
    """Everything the orchestrator supplies for one build."""

    job: str
    build_number: int
    workspace_root: Path
    build_outcome: BuildOutcome | None
    patterns: PatternConfig = field(default_factory=PatternConfig)
    options: ArchiveOptions = field(default_factory=ArchiveOptions)


@dataclass(frozen=True, slots=True)
class FailedEntry:
    """An entry dropped under the ``skip_entry`` I/O failure policy."""

    relative_path: str
    error: str


@dataclass(frozen=True, slots=True)
class ArchiveResult:
    """Immutable outcome of archiving one build."""

    status: ArchiveStatus
    matched_count: int
    tree: ArtifactTree
    error: ArchiveError | None = None
    message: str | None = None
    failed_entries: tuple[FailedEntry, ...] = ()
    fingerprints: Mapping[str, str] | None = None
    fingerprint_error: str | None = None
    build_dir: Path | None = None
    summary_path: Path | None = None

    @property
    def has_artifacts(self) -> bool:
        return self.tree.has_artifacts

    @property
    def is_failure(self) -> bool:
        """True for outcomes that should mark the build as failed."""

        return self.status in ("EMPTY_REJECTED", "FAILED")


def _empty_result(status: ArchiveStatus, *, message: str, error: ArchiveError | None = None) -> ArchiveResult:
    return ArchiveResult(status=status, matched_count=0, tree=ArtifactTree(), error=error, message=message)


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ArchiveCancelledError("archive cancelled by orchestrator")


def _archive_entry(writer: BuildWriter, access: WorkspaceAccess, entry: ClassifiedEntry) -> None:
    if not entry.is_safe:
        writer.add_placeholder(entry.relative_path)
    elif entry.kind == "symlink":
        writer.add_symlink(entry.relative_path, entry.link_target)
    elif entry.kind == "directory":
        writer.add_directory(entry.relative_path)
    else:
        try:
            source = access.open_read(entry.relative_path)
        except OSError as exc:
            raise ArchiveIOError(entry.relative_path, exc) from exc
        with source:
            writer.write_file(entry.relative_path, source)


def _summary_payload(
    *,
    run_id: str,
    request: ArchiveRequest,
    matched_count: int,
    retained: list[ClassifiedEntry],
    failed_entries: list[FailedEntry],
    started_ts: datetime,
    started_mono: float,
) -> dict[str, Any]:
    placeholders = sum(1 for entry in retained if not entry.is_safe)
    return {
        "run_id": run_id,
        "job": request.job,
        "build_number": request.build_number,
        "build_outcome": request.build_outcome,
        "workspace_root": str(request.workspace_root),
        "includes": list(request.patterns.includes),
        "excludes": list(request.patterns.excludes),
        "use_default_excludes": request.patterns.use_default_excludes,
        "case_sensitive": request.patterns.case_sensitive,
        "status": "SUCCESS",
        "matched_count": matched_count,
        "placeholders_count": placeholders,
        "failed_entries": [{"relative_path": item.relative_path, "error": item.error} for item in failed_entries],
        "started_ts": isoformat_utc(started_ts),
        "finished_ts": isoformat_utc(now_utc()),
        "duration_sec": elapsed_seconds(started_mono),
    }


def run_archive(
    request: ArchiveRequest,
    *,
    store: ArtifactStore,
    fingerprint_hook: FingerprintHook | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    cancel_event: threading.Event | None = None,
    access: WorkspaceAccess | None = None,
    logger: logging.Logger | None = None,
) -> ArchiveResult:
    """Select, classify, gate and copy one build's artifacts.

    Failures the orchestrator must see (bad patterns, I/O errors under the
    ``abort`` policy, an unwritable store, cancellation, a tree that already
    exists) come back as a
    ``FAILED`` result carrying the exception; nothing partial is published.
    ``POLICY_SKIPPED`` and ``EMPTY_REJECTED`` are ordinary results.
    """

    effective_logger = logger or LOGGER
    options = request.options
    run_id = f"archive-{uuid4().hex[:12]}"
    started_ts = now_utc()
    started_mono = monotonic_start()

    if not outcome_gate_allows(options, request.build_outcome):
        effective_logger.info(
            "archive.policy_skipped job=%s build=%s outcome=%s",
            request.job,
            request.build_number,
            request.build_outcome,
        )
        return _empty_result(
            "POLICY_SKIPPED",
            message=f"Skipped archiving because build is not successful (outcome={request.build_outcome})",
        )

    try:
        workspace = access or LocalWorkspace(request.workspace_root)
        candidates = select_candidates(workspace, request.patterns, logger=effective_logger)
        classified = classify_all(workspace, candidates, logger=effective_logger)
    except PatternError as exc:
        effective_logger.error("archive.pattern_error job=%s build=%s error=%s", request.job, request.build_number, exc)
        return _empty_result("FAILED", message=str(exc), error=exc)
    except ArchiveIOError as exc:
        effective_logger.error("archive.select_failed job=%s build=%s error=%s", request.job, request.build_number, exc)
        return _empty_result("FAILED", message=str(exc), error=exc)
    except OSError as exc:
        error = ArchiveIOError(".", exc)
        effective_logger.error("archive.workspace_unreadable job=%s build=%s error=%s", request.job, request.build_number, exc)
        return _empty_result("FAILED", message=str(error), error=error)

    retained = [entry for entry in classified if entry.kind != "directory" or entry.explicit]
    counted = sum(1 for entry in retained if entry.kind != "directory")

    if empty_gate_status(options, counted) == "EMPTY_REJECTED":
        message = (
            f"No artifacts found that match the file pattern \"{request.patterns.describe_includes()}\". "
            "Configuration error?"
        )
        effective_logger.error("archive.empty_rejected job=%s build=%s message=%s", request.job, request.build_number, message)
        return _empty_result("EMPTY_REJECTED", message=message)

    effective_logger.info(
        "archive.start run_id=%s job=%s build=%s entries=%s counted=%s",
        run_id,
        request.job,
        request.build_number,
        len(retained),
        counted,
    )

    failed_entries: list[FailedEntry] = []
    try:
        writer = store.begin_build(
            request.job,
            request.build_number,
            buffer_size=buffer_size,
            cancel_event=cancel_event,
            logger=effective_logger,
        )
    except (ArtifactStoreError, ArchiveIOError) as exc:
        effective_logger.error("archive.store_refused job=%s build=%s error=%s", request.job, request.build_number, exc)
        return _empty_result("FAILED", message=str(exc), error=exc)
    except OSError as exc:
        error = ArchiveIOError(str(store.root), exc)
        effective_logger.error("archive.store_unwritable job=%s build=%s error=%s", request.job, request.build_number, exc)
        return _empty_result("FAILED", message=str(error), error=error)

    with writer:
        try:
            for entry in retained:
                _check_cancelled(cancel_event)
                try:
                    _archive_entry(writer, workspace, entry)
                except ArchiveIOError as exc:
                    if options.on_io_failure == "abort":
                        raise
                    failed_entries.append(FailedEntry(relative_path=entry.relative_path, error=str(exc.cause)))
                    effective_logger.warning("archive.entry_skipped path=%s error=%s", entry.relative_path, exc.cause)

            if failed_entries and len(failed_entries) == counted:
                raise ArchiveIOError(failed_entries[-1].relative_path, OSError(failed_entries[-1].error))

            matched_count = counted - len(failed_entries)
            summary = _summary_payload(
                run_id=run_id,
                request=request,
                matched_count=matched_count,
                retained=retained,
                failed_entries=failed_entries,
                started_ts=started_ts,
                started_mono=started_mono,
            )
            tree = writer.commit(summary)
        except (ArchiveIOError, ArchiveCancelledError, ArtifactStoreError) as exc:
            effective_logger.error(
                "archive.failed job=%s build=%s error=%s discarded_entries=%s",
                request.job,
                request.build_number,
                exc,
                len(writer.entries),
            )
            return _empty_result("FAILED", message=str(exc), error=exc)

    build_paths = writer.final_paths
    fingerprints: Mapping[str, str] | None = None
    fingerprint_error: str | None = None
    if options.fingerprint:
        hook = fingerprint_hook or Md5FingerprintRecorder(buffer_size=buffer_size, logger=effective_logger)
        files = [tree.child(entry.relative_path) for entry in tree.file_entries()]
        try:
            fingerprints = hook(files, build_paths.build_dir)
        except Exception as exc:
            # Artifacts stay archived; the failure is only reported.
            fingerprint_error = f"{type(exc).__name__}: {exc}"
            effective_logger.exception("archive.fingerprint_failed job=%s build=%s", request.job, request.build_number)

    effective_logger.info(
        "archive.done job=%s build=%s matched=%s failed=%s path=%s",
        request.job,
        request.build_number,
        matched_count,
        len(failed_entries),
        build_paths.build_dir,
    )
    return ArchiveResult(
        status="SUCCESS",
        matched_count=matched_count,
        tree=tree,
        failed_entries=tuple(failed_entries),
        fingerprints=fingerprints,
        fingerprint_error=fingerprint_error,
        build_dir=build_paths.build_dir,
        summary_path=build_paths.summary_path,
    )
