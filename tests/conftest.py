"""Shared fixtures for archiver tests."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterator

import pytest

from artifact_archiver.archive.pipeline import ArchiveRequest, ArchiveResult, run_archive
from artifact_archiver.policy.gates import ArchiveOptions
from artifact_archiver.selection.patterns import PatternConfig
from artifact_archiver.store.writer import ArtifactStore
from artifact_archiver.workspace.access import WorkspaceAccess


def _can_symlink() -> bool:
    with tempfile.TemporaryDirectory() as scratch:
        try:
            os.symlink(os.path.join(scratch, "target"), os.path.join(scratch, "link"))
        except (OSError, NotImplementedError):
            return False
    return True


requires_symlinks = pytest.mark.skipif(not _can_symlink(), reason="platform cannot create symlinks")


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    return root


@pytest.fixture
def outside(tmp_path: Path) -> Path:
    root = tmp_path / "outside"
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def restore_root_logging() -> Iterator[None]:
    """Undo configure_logging side effects on the root logger."""

    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in list(root_logger.handlers):
        if handler not in handlers:
            root_logger.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


def write_text(root: Path, relative_path: str, content: str = "content") -> Path:
    path = root / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def archive(
    store: ArtifactStore,
    workspace: Path,
    *,
    includes: str | tuple[str, ...] = (),
    excludes: str | tuple[str, ...] = (),
    use_default_excludes: bool = True,
    case_sensitive: bool = True,
    job: str = "job",
    build_number: int = 1,
    outcome: str | None = "SUCCESS",
    access: WorkspaceAccess | None = None,
    **option_kwargs: object,
) -> ArchiveResult:
    """Run one archive with test-friendly defaults."""

    extra: dict[str, object] = {}
    for key in ("fingerprint_hook", "buffer_size", "cancel_event"):
        if key in option_kwargs:
            extra[key] = option_kwargs.pop(key)
    request = ArchiveRequest(
        job=job,
        build_number=build_number,
        workspace_root=workspace,
        build_outcome=outcome,  # type: ignore[arg-type]
        patterns=PatternConfig(
            includes=includes,  # type: ignore[arg-type]
            excludes=excludes,  # type: ignore[arg-type]
            use_default_excludes=use_default_excludes,
            case_sensitive=case_sensitive,
        ),
        options=ArchiveOptions(**option_kwargs),  # type: ignore[arg-type]
    )
    return run_archive(request, store=store, access=access, **extra)  # type: ignore[arg-type]
