"""Archive pipeline entrypoints."""

from artifact_archiver.archive.pipeline import ArchiveRequest, ArchiveResult, FailedEntry, run_archive

__all__ = [
    "ArchiveRequest",
    "ArchiveResult",
    "FailedEntry",
    "run_archive",
]
