"""Filesystem capability used by the matcher, guard and copier.

Everything the archiving core needs from a workspace goes through
``WorkspaceAccess``. ``LocalWorkspace`` serves a directory on this machine; a
workspace living on a build agent only needs another implementation of the
same calls, and the selection and classification logic stays identical.
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Literal, Protocol

EntryKind = Literal["file", "directory", "symlink", "other"]


@dataclass(frozen=True, slots=True)
class EntryStat:
    """Result of a non-following stat call."""

    kind: EntryKind
    size_bytes: int
    mtime_ns: int


class WorkspaceAccess(Protocol):
    """Capability interface over a (possibly remote) workspace tree."""

    @property
    def root(self) -> str:
        """Canonical, symlink-resolved absolute path of the workspace root."""
        ...

    def absolute(self, relative_path: str) -> str: ...

    def list_dir(self, relative_dir: str) -> list[str]: ...

    def lstat(self, relative_path: str) -> EntryStat: ...

    def open_read(self, relative_path: str) -> BinaryIO: ...

    def read_link(self, absolute_path: str) -> str: ...

    def is_symlink(self, absolute_path: str) -> bool: ...

    def real_path(self, absolute_path: str) -> str: ...


def _kind_from_mode(mode: int) -> EntryKind:
    if stat.S_ISLNK(mode):
        return "symlink"
    if stat.S_ISDIR(mode):
        return "directory"
    if stat.S_ISREG(mode):
        return "file"
    return "other"


class LocalWorkspace:
    """WorkspaceAccess backed by the local filesystem."""

    def __init__(self, root: Path | str) -> None:
        root_path = Path(root)
        if not root_path.is_dir():
            raise NotADirectoryError(f"Workspace root is not a directory: {root_path}")
        self._root = os.path.realpath(root_path)

    def __repr__(self) -> str:
        return f"LocalWorkspace({self._root!r})"

    @property
    def root(self) -> str:
        return self._root

    def absolute(self, relative_path: str) -> str:
        if not relative_path:
            return self._root
        return os.path.join(self._root, *relative_path.split("/"))

    def list_dir(self, relative_dir: str) -> list[str]:
        with os.scandir(self.absolute(relative_dir)) as entries:
            return sorted(entry.name for entry in entries)

    def lstat(self, relative_path: str) -> EntryStat:
        info = os.lstat(self.absolute(relative_path))
        return EntryStat(kind=_kind_from_mode(info.st_mode), size_bytes=info.st_size, mtime_ns=info.st_mtime_ns)

    def open_read(self, relative_path: str) -> BinaryIO:
        return open(self.absolute(relative_path), "rb")

    def read_link(self, absolute_path: str) -> str:
        return os.readlink(absolute_path)

    def is_symlink(self, absolute_path: str) -> bool:
        return os.path.islink(absolute_path)

    def real_path(self, absolute_path: str) -> str:
        return os.path.realpath(absolute_path)
