"""Shared utility helpers."""

from artifact_archiver.utils.paths import (
    atomic_temp_path,
    ensure_directories,
    is_clean_relative_path,
    is_within,
    normalize_relative_path,
    write_json_atomically,
)
from artifact_archiver.utils.time_utils import elapsed_seconds, isoformat_utc, monotonic_start, now_utc

__all__ = [
    "atomic_temp_path",
    "ensure_directories",
    "is_clean_relative_path",
    "is_within",
    "normalize_relative_path",
    "write_json_atomically",
    "elapsed_seconds",
    "isoformat_utc",
    "monotonic_start",
    "now_utc",
]
