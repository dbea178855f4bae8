"""Exception types raised by the archiving core."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for archiving failures surfaced to the orchestrator."""


class PatternError(ValueError, ArchiveError):
    """An include or exclude expression is not a valid Ant-style glob."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class ArchiveIOError(ArchiveError):
    """Reading a workspace file or writing its archived copy failed."""

    def __init__(self, relative_path: str, cause: OSError) -> None:
        super().__init__(f"I/O failure while archiving {relative_path!r}: {cause}")
        self.relative_path = relative_path
        self.cause = cause


class ArchiveCancelledError(ArchiveError):
    """The orchestrator cancelled the archive while a copy was in flight."""


class ArtifactStoreError(ArchiveError):
    """The destination store cannot accept the requested operation."""


class ArtifactNotFoundError(FileNotFoundError):
    """An artifact path does not resolve to readable archived content."""

    def __init__(self, relative_path: str) -> None:
        super().__init__(f"Artifact not found: {relative_path}")
        self.relative_path = relative_path
