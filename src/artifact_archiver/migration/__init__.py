"""Legacy settings migration."""

from artifact_archiver.migration.legacy import (
    load_yaml_mapping,
    migrate_config_file,
    migrate_legacy_config,
    write_yaml_atomically,
)

__all__ = [
    "load_yaml_mapping",
    "migrate_config_file",
    "migrate_legacy_config",
    "write_yaml_atomically",
]
