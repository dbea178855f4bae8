"""Path and filesystem helper functions."""

from __future__ import annotations

import json
import os
import posixpath
from pathlib import Path
from typing import Any, Iterable
from uuid import uuid4


def ensure_directories(paths: Iterable[Path]) -> list[Path]:
    """Create all directories in the iterable if they do not exist."""

    created_or_existing: list[Path] = []
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)
        created_or_existing.append(directory)
    return created_or_existing


def atomic_temp_path(target_path: Path) -> Path:
    """Create a unique temp path next to the target for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def write_json_atomically(payload: dict[str, Any], output_path: Path) -> Path:
    """Write JSON atomically via temporary file then os.replace."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def is_within(path: str, root: str) -> bool:
    """Return True when canonical ``path`` equals or descends from canonical ``root``.

    Both arguments must already be absolute and symlink-resolved; comparison is
    by path components, so ``/ws2`` is not inside ``/ws``.
    """

    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # Different drives on Windows, or mixed absolute/relative input.
        return False


def normalize_relative_path(path: str) -> str | None:
    """Normalize a slash-separated relative path, or return None if it escapes.

    Backslashes are treated as separators, empty and ``.`` segments are dropped,
    and ``..`` segments are resolved lexically. Absolute paths and paths that
    climb above their starting point are rejected.
    """

    text = path.replace("\\", "/")
    if text.startswith("/") or (len(text) > 1 and text[1] == ":"):
        return None
    parts: list[str] = []
    for segment in text.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(segment)
    return posixpath.join(*parts) if parts else ""


def is_clean_relative_path(path: str) -> bool:
    """Return True for a non-empty ``/``-separated path with no ``""``, ``.`` or ``..`` segment.

    Unlike ``normalize_relative_path`` this never rewrites the text, so names
    that are legal on POSIX (``a:b``, ``x\\y``) stay valid as they are.
    """

    if not path or path.startswith("/"):
        return False
    return all(segment not in ("", ".", "..") for segment in path.split("/"))
