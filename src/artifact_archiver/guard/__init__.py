"""Symlink safety classification."""

from artifact_archiver.guard.symlinks import (
    MAX_SYMLINK_HOPS,
    ClassifiedEntry,
    Safety,
    classify,
    classify_all,
    resolve_symlink_chain,
)

__all__ = [
    "MAX_SYMLINK_HOPS",
    "ClassifiedEntry",
    "Safety",
    "classify",
    "classify_all",
    "resolve_symlink_chain",
]
