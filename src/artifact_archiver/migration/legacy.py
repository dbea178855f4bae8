"""One-time migration of legacy job settings into the current flag layout."""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from artifact_archiver.selection.patterns import split_patterns
from artifact_archiver.utils.paths import atomic_temp_path

# Legacy top-level keys that moved verbatim under "archive".
_MOVED_ARCHIVE_FLAGS: dict[str, str] = {
    "allow_empty_archive": "allow_empty_archive",
    "only_if_successful": "only_if_successful",
    "case_sensitive": "case_sensitive",
    "default_excludes": "use_default_excludes",
}


def _positive_int(value: object) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def migrate_legacy_config(old: Mapping[str, Any]) -> dict[str, Any]:
    """Return a migrated copy of ``old``; the input is never modified.

    - ``record_build_artifacts`` (and a ``fingerprinter`` section carrying it)
      becomes ``archive.fingerprint``.
    - ``latest_only: true`` becomes ``retention.artifact_num_to_keep: 1``.
    - ``log_rotator.artifact_num_to_keep`` becomes
      ``retention.artifact_num_to_keep``.
    - ``artifacts``/``excludes`` pattern strings become ``archive.includes``/
      ``archive.excludes`` lists.

    Running it on already-migrated settings returns an equal copy.
    """

    migrated: dict[str, Any] = copy.deepcopy(dict(old))
    archive: dict[str, Any] = dict(migrated.get("archive") or {})
    retention: dict[str, Any] = dict(migrated.get("retention") or {})

    if "artifacts" in migrated:
        archive.setdefault("includes", list(split_patterns(migrated.pop("artifacts"))))
    if "excludes" in migrated:
        archive.setdefault("excludes", list(split_patterns(migrated.pop("excludes"))))
    for legacy_key, new_key in _MOVED_ARCHIVE_FLAGS.items():
        if legacy_key in migrated:
            archive.setdefault(new_key, bool(migrated.pop(legacy_key)))

    record_build_artifacts = bool(migrated.pop("record_build_artifacts", False))
    fingerprinter = migrated.pop("fingerprinter", None)
    if isinstance(fingerprinter, Mapping) and fingerprinter.get("record_build_artifacts"):
        record_build_artifacts = True
    if record_build_artifacts:
        archive["fingerprint"] = True

    if migrated.pop("latest_only", False):
        retention.setdefault("artifact_num_to_keep", 1)
    log_rotator = migrated.pop("log_rotator", None)
    if isinstance(log_rotator, Mapping):
        keep = _positive_int(log_rotator.get("artifact_num_to_keep"))
        if keep is not None:
            retention.setdefault("artifact_num_to_keep", keep)

    if archive:
        migrated["archive"] = archive
    if retention:
        migrated["retention"] = retention
    return migrated


def load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Read a YAML document that must contain a mapping at the top level."""

    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a mapping at the top of {path}, got {type(payload).__name__}")
    return payload


def write_yaml_atomically(payload: Mapping[str, Any], output_path: Path) -> Path:
    """Write YAML atomically via temporary file then os.replace."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        temp_path.write_text(yaml.safe_dump(dict(payload), sort_keys=True), encoding="utf-8")
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def migrate_config_file(source: Path, output_path: Path | None = None) -> tuple[dict[str, Any], Path]:
    """Migrate a legacy YAML settings file, writing in place unless ``output_path`` is given."""

    migrated = migrate_legacy_config(load_yaml_mapping(source))
    target = output_path or source
    write_yaml_atomically(migrated, target)
    return migrated, target
