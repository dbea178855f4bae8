"""Persist and reload a build's artifact listing as a parquet manifest."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

import polars as pl

from artifact_archiver.store.tree import ArtifactEntry, ArtifactTree
from artifact_archiver.utils.paths import atomic_temp_path
from artifact_archiver.utils.time_utils import now_utc

MANIFEST_FILE = "manifest.parquet"
MANIFEST_SCHEMA_VERSION = "artifact_manifest_v1"


def _manifest_schema() -> dict[str, pl.DataType]:
    """Stable schema for artifact manifests."""

    return {
        "relative_path": pl.String,
        "kind": pl.String,
        "size_bytes": pl.Int64,
        "content_ref": pl.String,
        "link_target": pl.String,
        "archived_ts": pl.Datetime(time_zone="UTC"),
        "schema_version": pl.String,
    }


def empty_manifest() -> pl.DataFrame:
    """Return an empty manifest frame with stable schema."""

    return pl.DataFrame(schema=_manifest_schema())


def build_manifest(tree: ArtifactTree, archived_ts: datetime | None = None) -> pl.DataFrame:
    """Create a manifest frame with one row per archived entry, ordered by path."""

    archived_at = archived_ts or now_utc()
    rows = [
        {
            "relative_path": entry.relative_path,
            "kind": entry.kind,
            "size_bytes": entry.size_bytes,
            "content_ref": entry.content_ref,
            "link_target": entry.link_target,
            "archived_ts": archived_at,
            "schema_version": MANIFEST_SCHEMA_VERSION,
        }
        for entry in tree.entries()
    ]
    if not rows:
        return empty_manifest()
    return pl.DataFrame(rows, schema_overrides=_manifest_schema())


def write_manifest_parquet(manifest: pl.DataFrame, output_path: Path) -> Path:
    """Write manifest DataFrame to parquet atomically and return output path."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        manifest.write_parquet(temp_path, compression="zstd", statistics=True)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def load_manifest_parquet(path: Path) -> pl.DataFrame | None:
    """Load manifest parquet if it exists, otherwise return None."""

    if not path.exists():
        return None
    return pl.read_parquet(path)


def tree_from_manifest(manifest: pl.DataFrame, content_root: Path | None = None) -> ArtifactTree:
    """Rebuild an ArtifactTree from manifest rows."""

    missing = {"relative_path", "kind"}.difference(manifest.columns)
    if missing:
        raise ValueError(f"Artifact manifest missing columns: {', '.join(sorted(missing))}")

    entries: list[ArtifactEntry] = []
    for row in manifest.sort("relative_path").iter_rows(named=True):
        entries.append(
            ArtifactEntry(
                relative_path=str(row["relative_path"]),
                kind=row["kind"],
                size_bytes=int(row.get("size_bytes") or 0),
                content_ref=row.get("content_ref"),
                link_target=row.get("link_target"),
            )
        )
    return ArtifactTree(entries, content_root=content_root)


def kind_counts(manifest: pl.DataFrame) -> dict[str, int]:
    """Return per-kind entry counts from manifest rows."""

    if manifest.height == 0 or "kind" not in manifest.columns:
        return {}
    result: dict[str, int] = {}
    for row in manifest.group_by("kind").len(name="count").to_dicts():
        result[str(row["kind"])] = int(row["count"])
    return dict(sorted(result.items()))
