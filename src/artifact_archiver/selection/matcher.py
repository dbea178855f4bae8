"""Select workspace entries matching include/exclude patterns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from artifact_archiver.errors import ArchiveIOError
from artifact_archiver.selection.patterns import PatternConfig, PatternSet
from artifact_archiver.workspace.access import WorkspaceAccess

LOGGER = logging.getLogger(__name__)

CandidateKind = Literal["file", "directory", "symlink"]


@dataclass(frozen=True, slots=True)
class CandidateEntry:
    """A workspace-relative path selected for archiving."""

    relative_path: str
    kind: CandidateKind
    explicit: bool = False


def _join(relative_dir: str, name: str) -> str:
    return f"{relative_dir}/{name}" if relative_dir else name


def select_candidates(
    access: WorkspaceAccess,
    patterns: PatternConfig,
    logger: logging.Logger | None = None,
) -> list[CandidateEntry]:
    """Walk the workspace without following symlinks and return matching entries.

    Every pattern is compiled before the walk starts, so a malformed pattern
    raises ``PatternError`` without producing a partial selection. Symlinks are
    matched by their own name; whatever they point at plays no part here.
    Empty directories are returned only when an include spells out their
    exact path.
    """

    effective_logger = logger or LOGGER
    pattern_set = PatternSet.from_config(patterns)

    candidates: list[CandidateEntry] = []
    pending: list[str] = [""]
    while pending:
        relative_dir = pending.pop()
        try:
            names = access.list_dir(relative_dir)
        except OSError as exc:
            raise ArchiveIOError(relative_dir or ".", exc) from exc

        if not names and relative_dir:
            if pattern_set.names_literally(relative_dir) and pattern_set.is_selected(relative_dir):
                candidates.append(CandidateEntry(relative_path=relative_dir, kind="directory", explicit=True))
            continue

        for name in names:
            relative_path = _join(relative_dir, name)
            try:
                info = access.lstat(relative_path)
            except FileNotFoundError:
                effective_logger.warning("select.entry_vanished path=%s", relative_path)
                continue
            except OSError as exc:
                raise ArchiveIOError(relative_path, exc) from exc

            if info.kind == "directory":
                if pattern_set.prunes_directory(relative_path):
                    effective_logger.debug("select.directory_pruned path=%s", relative_path)
                    continue
                pending.append(relative_path)
            elif info.kind in ("file", "symlink"):
                if pattern_set.is_selected(relative_path):
                    candidates.append(CandidateEntry(relative_path=relative_path, kind=info.kind))
            else:
                effective_logger.debug("select.special_file_skipped path=%s", relative_path)

    candidates.sort(key=lambda candidate: candidate.relative_path)
    effective_logger.info(
        "select.done includes=%s excludes=%s default_excludes=%s matched=%s",
        patterns.describe_includes(),
        ",".join(patterns.excludes),
        patterns.use_default_excludes,
        len(candidates),
    )
    return candidates
