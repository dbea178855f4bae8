"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from artifact_archiver.logging_utils import resolve_level
from artifact_archiver.policy.gates import ArchiveOptions, IoFailurePolicy
from artifact_archiver.selection.patterns import PatternConfig

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "ARTIFACT_ARCHIVER_SETTINGS_FILE"

MIN_BUFFER_SIZE_BYTES = 4 * 1024
MAX_BUFFER_SIZE_BYTES = 16 * 1024 * 1024


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "artifact_archiver"
    env: str = "dev"


class PathsConfig(BaseModel):
    """Filesystem locations owned by the archiver."""

    artifacts_root: Path = Path("./artifacts")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class ArchiveSettings(BaseModel):
    """Default pattern set and gating flags for archive runs."""

    includes: list[str] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=list)
    use_default_excludes: bool = True
    case_sensitive: bool = True
    only_if_successful: bool = False
    allow_empty_archive: bool = False
    fingerprint: bool = False
    on_io_failure: IoFailurePolicy = "abort"

    @field_validator("includes", "excludes", mode="before")
    @classmethod
    def _split_delimited(cls, value: object) -> object:
        """Accept a single comma/whitespace separated string as well as a list."""

        if isinstance(value, str):
            return [part for part in value.replace(",", " ").split() if part]
        if value is None:
            return []
        return value

    def to_pattern_config(self) -> PatternConfig:
        """Build the immutable pattern configuration used by the matcher."""

        return PatternConfig(
            includes=tuple(self.includes),
            excludes=tuple(self.excludes),
            use_default_excludes=self.use_default_excludes,
            case_sensitive=self.case_sensitive,
        )

    def to_options(self) -> ArchiveOptions:
        """Build the gating options used by the archive pipeline."""

        return ArchiveOptions(
            only_if_successful=self.only_if_successful,
            allow_empty_archive=self.allow_empty_archive,
            fingerprint=self.fingerprint,
            on_io_failure=self.on_io_failure,
        )


class TransferConfig(BaseModel):
    """Streaming copy settings."""

    buffer_size_bytes: int = Field(default=64 * 1024, ge=MIN_BUFFER_SIZE_BYTES, le=MAX_BUFFER_SIZE_BYTES)


class RetentionConfig(BaseModel):
    """How many builds per job keep their archived artifacts."""

    artifact_num_to_keep: int | None = Field(default=None, ge=1)


class LoggingConfig(BaseModel):
    """Log file name, level and console output for CLI runs."""

    level: str = "INFO"
    file_name: str = "archiver.log"
    console: bool = True

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        resolve_level(value)
        return value.strip().upper()


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="ARTIFACT_ARCHIVER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None) -> Path:
    """Locate the project root by traversing upward for config markers."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "configs/settings.yaml").exists():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None) -> Path:
    """Resolve settings file from explicit override, env var, or default."""

    chosen = override
    if chosen is None:
        env_value = os.getenv(SETTINGS_FILE_ENV)
        if env_value:
            chosen = Path(env_value)
    if chosen is None:
        chosen = DEFAULT_SETTINGS_FILE

    if not chosen.is_absolute():
        chosen = (find_project_root() / chosen).resolve()
    return chosen


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    project_root = settings_file.parent.parent.resolve()
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    resolved_paths = settings.paths.resolved(project_root=project_root)
    return settings.model_copy(update={"paths": resolved_paths})
