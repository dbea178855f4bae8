"""Virtual hierarchy of one build's archived entries."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Literal

from artifact_archiver.errors import ArtifactNotFoundError
from artifact_archiver.utils.paths import is_clean_relative_path, normalize_relative_path

ArtifactKind = Literal["file", "directory", "symlink", "placeholder"]
ARTIFACT_KINDS: tuple[ArtifactKind, ...] = ("file", "directory", "symlink", "placeholder")

MAX_LINK_DEPTH = 40


@dataclass(frozen=True, slots=True)
class ArtifactEntry:
    """Persisted record for one archived path.

    Placeholders stand in for symlinks that escaped the workspace. They keep
    the name so the entry is listed, and nothing else.
    """

    relative_path: str
    kind: ArtifactKind
    size_bytes: int = 0
    content_ref: str | None = None
    link_target: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in ARTIFACT_KINDS:
            raise ValueError(f"Unknown artifact kind: {self.kind}")
        if not is_clean_relative_path(self.relative_path):
            raise ValueError(f"Artifact path must be normalized and relative: {self.relative_path!r}")
        if self.kind == "placeholder" and (self.size_bytes or self.content_ref or self.link_target):
            raise ValueError(f"Placeholder {self.relative_path!r} must not carry content or a target")

    @property
    def name(self) -> str:
        return posixpath.basename(self.relative_path)


class ArtifactTree:
    """Path-unique set of archived entries with directories derived from their paths.

    A directory exists only because some retained entry lives under it, or
    because it was archived as an explicit empty-directory leaf.
    """

    def __init__(self, entries: Iterable[ArtifactEntry] = (), content_root: Path | None = None) -> None:
        self._entries: dict[str, ArtifactEntry] = {}
        self._children: dict[str, set[str]] = {}
        self._content_root = content_root
        for entry in entries:
            self._insert(entry)

    def _insert(self, entry: ArtifactEntry) -> None:
        path = entry.relative_path
        if path in self._entries:
            raise ValueError(f"Duplicate artifact path: {path}")
        if path in self._children and entry.kind != "directory":
            raise ValueError(f"Artifact path already used as a directory: {path}")
        parts = path.split("/")
        for depth in range(1, len(parts)):
            ancestor = "/".join(parts[:depth])
            blocking = self._entries.get(ancestor)
            if blocking is not None and blocking.kind != "directory":
                raise ValueError(f"Artifact {path!r} would live under non-directory {ancestor!r}")
        self._entries[path] = entry
        for depth in range(len(parts)):
            parent = "/".join(parts[:depth])
            self._children.setdefault(parent, set()).add(parts[depth])
        if entry.kind == "directory":
            self._children.setdefault(path, set())

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ArtifactEntry]:
        return iter(self.entries())

    def __contains__(self, relative_path: object) -> bool:
        return isinstance(relative_path, str) and relative_path in self._entries

    def __repr__(self) -> str:
        return f"ArtifactTree(entries={len(self._entries)}, content_root={self._content_root!r})"

    @property
    def content_root(self) -> Path | None:
        return self._content_root

    @property
    def has_artifacts(self) -> bool:
        return bool(self._entries)

    def entries(self) -> list[ArtifactEntry]:
        return [self._entries[path] for path in sorted(self._entries)]

    def relative_paths(self) -> list[str]:
        return sorted(self._entries)

    def get(self, relative_path: str) -> ArtifactEntry | None:
        return self._entries.get(relative_path)

    def file_entries(self) -> list[ArtifactEntry]:
        return [entry for entry in self.entries() if entry.kind == "file"]

    def directories(self) -> list[str]:
        return sorted(path for path in self._children if path)

    def rebased(self, content_root: Path) -> "ArtifactTree":
        """Return the same entries reading content from another directory."""

        return ArtifactTree(self.entries(), content_root=content_root)

    def root(self) -> "VirtualEntry":
        return VirtualEntry(self, "")

    def child(self, relative_path: str) -> "VirtualEntry":
        return self.root().child(relative_path)

    def _request_path(self, relative_path: str) -> str | None:
        """Map a request path onto a tree key.

        An exact archived name wins, so names containing ``\\`` or ``:`` stay
        reachable. Otherwise the request is normalized lexically and may be
        rejected.
        """

        if relative_path in self._entries or relative_path in self._children:
            return relative_path
        return normalize_relative_path(relative_path)

    def _is_directory(self, path: str) -> bool:
        return path in self._children

    def _resolve(self, path: str) -> str | None:
        """Follow in-tree symlinks; return the final path or None when unresolvable."""

        current = path
        for _ in range(MAX_LINK_DEPTH):
            entry = self._entries.get(current)
            if entry is None or entry.kind != "symlink":
                return current
            if entry.link_target is None:
                return None
            current = entry.link_target
        return None

    def _readable_entry(self, path: str) -> ArtifactEntry | None:
        resolved = self._resolve(path)
        if resolved is None:
            return None
        entry = self._entries.get(resolved)
        if entry is None or entry.kind != "file":
            return None
        return entry

    def open(self, relative_path: str) -> BinaryIO:
        """Open archived content for reading; placeholders and misses raise ArtifactNotFoundError."""

        normalized = self._request_path(relative_path)
        entry = self._readable_entry(normalized) if normalized else None
        if entry is None or entry.content_ref is None or self._content_root is None:
            raise ArtifactNotFoundError(relative_path)
        content_path = self._content_root.joinpath(*entry.content_ref.split("/"))
        try:
            return content_path.open("rb")
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(relative_path) from exc

    def resolve_for_serving(self, relative_path: str) -> "VirtualEntry":
        """Return the entry to serve for a request path, or raise ArtifactNotFoundError.

        Only real archived file content is servable. Placeholders, directories,
        unknown names, requests climbing out with ``..`` and links whose target
        was not archived all miss.
        """

        normalized = self._request_path(relative_path)
        if not normalized or self._readable_entry(normalized) is None:
            raise ArtifactNotFoundError(relative_path)
        return VirtualEntry(self, normalized)


class VirtualEntry:
    """Read-only view of one path in an ArtifactTree."""

    __slots__ = ("_tree", "_path")

    def __init__(self, tree: ArtifactTree, relative_path: str) -> None:
        self._tree = tree
        self._path = relative_path

    def __repr__(self) -> str:
        return f"VirtualEntry({self._path!r})"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VirtualEntry) and other._tree is self._tree and other._path == self._path

    def __hash__(self) -> int:
        return hash((id(self._tree), self._path))

    @property
    def name(self) -> str:
        return posixpath.basename(self._path)

    @property
    def relative_path(self) -> str:
        return self._path

    @property
    def entry(self) -> ArtifactEntry | None:
        return self._tree.get(self._path)

    @property
    def link_target(self) -> str | None:
        entry = self.entry
        return entry.link_target if entry is not None and entry.kind == "symlink" else None

    def is_placeholder(self) -> bool:
        entry = self.entry
        return entry is not None and entry.kind == "placeholder"

    def is_symlink(self) -> bool:
        entry = self.entry
        return entry is not None and entry.kind == "symlink"

    def is_dir(self) -> bool:
        if self.is_placeholder():
            return False
        if self._path == "":
            return True
        resolved = self._tree._resolve(self._path)
        return resolved is not None and self._tree._is_directory(resolved)

    def is_file(self) -> bool:
        return self._tree._readable_entry(self._path) is not None if self._path else False

    def exists(self) -> bool:
        return self.is_file() or self.is_dir()

    def length(self) -> int:
        entry = self._tree._readable_entry(self._path) if self._path else None
        return entry.size_bytes if entry is not None else 0

    def open(self) -> BinaryIO:
        return self._tree.open(self._path)

    def list(self) -> list["VirtualEntry"]:
        if self.is_placeholder() or self.is_symlink():
            return []
        names = self._tree._children.get(self._path, set())
        prefix = f"{self._path}/" if self._path else ""
        return [VirtualEntry(self._tree, prefix + name) for name in sorted(names)]

    def child(self, relative_path: str) -> "VirtualEntry":
        combined = f"{self._path}/{relative_path}" if self._path else relative_path
        normalized = self._tree._request_path(combined)
        if normalized is None:
            raise ArtifactNotFoundError(relative_path)
        return VirtualEntry(self._tree, normalized)
