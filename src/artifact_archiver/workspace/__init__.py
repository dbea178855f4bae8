"""Workspace filesystem access."""

from artifact_archiver.workspace.access import EntryKind, EntryStat, LocalWorkspace, WorkspaceAccess

__all__ = [
    "EntryKind",
    "EntryStat",
    "LocalWorkspace",
    "WorkspaceAccess",
]
