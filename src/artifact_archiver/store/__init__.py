"""Destination store: streaming copy, artifact tree and on-disk layout."""

from artifact_archiver.store.copier import DEFAULT_BUFFER_SIZE, copy_stream
from artifact_archiver.store.manifest import (
    MANIFEST_FILE,
    build_manifest,
    empty_manifest,
    kind_counts,
    load_manifest_parquet,
    tree_from_manifest,
    write_manifest_parquet,
)
from artifact_archiver.store.retention import apply_artifact_retention
from artifact_archiver.store.tree import ArtifactEntry, ArtifactKind, ArtifactTree, VirtualEntry
from artifact_archiver.store.writer import (
    ARCHIVE_DIR_NAME,
    FINGERPRINTS_FILE,
    SUMMARY_FILE,
    ArtifactStore,
    BuildArtifactPaths,
    BuildWriter,
)

__all__ = [
    "DEFAULT_BUFFER_SIZE",
    "copy_stream",
    "MANIFEST_FILE",
    "build_manifest",
    "empty_manifest",
    "kind_counts",
    "load_manifest_parquet",
    "tree_from_manifest",
    "write_manifest_parquet",
    "apply_artifact_retention",
    "ArtifactEntry",
    "ArtifactKind",
    "ArtifactTree",
    "VirtualEntry",
    "ARCHIVE_DIR_NAME",
    "FINGERPRINTS_FILE",
    "SUMMARY_FILE",
    "ArtifactStore",
    "BuildArtifactPaths",
    "BuildWriter",
]
