"""Typer CLI entrypoint for artifact_archiver."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import typer

from artifact_archiver.archive.pipeline import ArchiveRequest, run_archive
from artifact_archiver.config import AppSettings, load_settings
from artifact_archiver.errors import ArtifactNotFoundError, ArtifactStoreError
from artifact_archiver.logging_utils import ARCHIVER_LOGGER_NAME, configure_logging
from artifact_archiver.migration.legacy import migrate_config_file
from artifact_archiver.policy.gates import BUILD_OUTCOME_VALUES, BuildOutcome, parse_build_outcome
from artifact_archiver.store.retention import apply_artifact_retention
from artifact_archiver.store.writer import ArtifactStore
from artifact_archiver.utils.paths import ensure_directories

app = typer.Typer(
    add_completion=False,
    help="artifact_archiver command line interface.",
    no_args_is_help=True,
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(
            settings.paths.logs_root / settings.logging.file_name,
            settings.logging.level,
            console=settings.logging.console,
        )
    else:
        logger = logging.getLogger(ARCHIVER_LOGGER_NAME)
    return settings, logger


def _store(settings: AppSettings) -> ArtifactStore:
    return ArtifactStore(settings.paths.artifacts_root)


def _parse_outcome(value: str) -> BuildOutcome:
    try:
        return parse_build_outcome(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("show-config")
def show_config(
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Print resolved settings as JSON."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    typer.echo(json.dumps(settings.as_dict(), indent=2, sort_keys=True))


@app.command("init")
def init_cmd(
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Create the artifact store and log folders."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    created_dirs = ensure_directories(
        [
            settings.paths.artifacts_root,
            settings.paths.artifacts_root / "jobs",
            settings.paths.logs_root,
        ]
    )
    logger.info("init.created_dirs count=%s", len(created_dirs))
    typer.echo(f"Initialized artifact store at {settings.paths.artifacts_root}")


@app.command("archive")
def archive_cmd(
    workspace: Path = typer.Option(
        ...,
        "--workspace",
        help="Workspace root to archive from.",
        exists=True,
        file_okay=False,
        dir_okay=True,
    ),
    job: str = typer.Option(..., "--job", help="Job name owning the build."),
    build_number: int = typer.Option(..., "--build-number", min=1, help="Build number to archive into."),
    outcome: str = typer.Option(
        "SUCCESS",
        "--outcome",
        help=f"Build outcome: {', '.join(BUILD_OUTCOME_VALUES)}.",
    ),
    include: list[str] | None = typer.Option(None, "--include", help="Include pattern; repeatable."),
    exclude: list[str] | None = typer.Option(None, "--exclude", help="Exclude pattern; repeatable."),
    default_excludes: bool | None = typer.Option(
        None,
        "--default-excludes/--no-default-excludes",
        help="Apply built-in VCS metadata excludes.",
    ),
    only_if_successful: bool | None = typer.Option(
        None,
        "--only-if-successful/--always",
        help="Skip archiving for unsuccessful builds.",
    ),
    allow_empty: bool | None = typer.Option(
        None,
        "--allow-empty/--reject-empty",
        help="Treat an empty selection as success.",
    ),
    fingerprint: bool | None = typer.Option(
        None,
        "--fingerprint/--no-fingerprint",
        help="Record MD5 fingerprints of archived files.",
    ),
    on_io_failure: str | None = typer.Option(
        None,
        "--on-io-failure",
        help="abort (all-or-nothing) or skip_entry.",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Archive matching workspace files for one build."""

    build_outcome = _parse_outcome(outcome)
    if on_io_failure is not None and on_io_failure not in {"abort", "skip_entry"}:
        raise typer.BadParameter("on-io-failure must be one of: abort, skip_entry")

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    overrides: dict[str, Any] = {}
    if include:
        overrides["includes"] = list(include)
    if exclude:
        overrides["excludes"] = list(exclude)
    if default_excludes is not None:
        overrides["use_default_excludes"] = default_excludes
    if only_if_successful is not None:
        overrides["only_if_successful"] = only_if_successful
    if allow_empty is not None:
        overrides["allow_empty_archive"] = allow_empty
    if fingerprint is not None:
        overrides["fingerprint"] = fingerprint
    if on_io_failure is not None:
        overrides["on_io_failure"] = on_io_failure
    archive_settings = settings.archive.model_copy(update=overrides)

    store = _store(settings)
    request = ArchiveRequest(
        job=job,
        build_number=build_number,
        workspace_root=workspace,
        build_outcome=build_outcome,
        patterns=archive_settings.to_pattern_config(),
        options=archive_settings.to_options(),
    )
    result = run_archive(
        request,
        store=store,
        buffer_size=settings.transfer.buffer_size_bytes,
        logger=logger,
    )

    typer.echo(f"status: {result.status}")
    typer.echo(f"matched_count: {result.matched_count}")
    typer.echo(f"has_artifacts: {result.has_artifacts}")
    if result.message:
        typer.echo(f"message: {result.message}")
    for failed in result.failed_entries:
        typer.echo(f"failed_entry: {failed.relative_path} ({failed.error})")
    if result.fingerprint_error:
        typer.echo(f"fingerprint_error: {result.fingerprint_error}")
    if result.build_dir is not None:
        typer.echo(f"build_dir: {result.build_dir}")

    if result.status == "SUCCESS" and settings.retention.artifact_num_to_keep is not None:
        pruned = apply_artifact_retention(store, job, settings.retention.artifact_num_to_keep, logger=logger)
        typer.echo(f"pruned_builds: {pruned}")

    if result.is_failure:
        raise typer.Exit(code=1)


@app.command("list")
def list_cmd(
    job: str = typer.Option(..., "--job", help="Job name."),
    build_number: int = typer.Option(..., "--build-number", min=1, help="Build number."),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """List archived entries of one build."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    try:
        tree = _store(settings).load_tree(job, build_number)
    except ArtifactStoreError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    for entry in tree.entries():
        suffix = f" -> {entry.link_target}" if entry.link_target else ""
        typer.echo(f"{entry.kind:<11} {entry.size_bytes:>12} {entry.relative_path}{suffix}")


@app.command("cat")
def cat_cmd(
    job: str = typer.Option(..., "--job", help="Job name."),
    build_number: int = typer.Option(..., "--build-number", min=1, help="Build number."),
    path: str = typer.Argument(..., help="Artifact path relative to the archive root."),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Write one artifact's bytes to stdout, as an artifact server would serve it."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    try:
        handle = _store(settings).open_for_serving(job, build_number, path)
    except ArtifactNotFoundError as exc:
        typer.echo(f"not found: {path}", err=True)
        raise typer.Exit(code=1) from exc

    out = sys.stdout.buffer
    with handle:
        for chunk in iter(lambda: handle.read(settings.transfer.buffer_size_bytes), b""):
            out.write(chunk)
    out.flush()


@app.command("prune")
def prune_cmd(
    job: str = typer.Option(..., "--job", help="Job name."),
    keep: int | None = typer.Option(None, "--keep", min=1, help="Override retention.artifact_num_to_keep."),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Delete archived artifacts of old builds beyond the retention setting."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    artifact_num_to_keep = keep if keep is not None else settings.retention.artifact_num_to_keep
    if artifact_num_to_keep is None:
        typer.echo("retention disabled; nothing pruned")
        return
    pruned = apply_artifact_retention(_store(settings), job, artifact_num_to_keep, logger=logger)
    typer.echo(f"pruned_builds: {pruned}")


@app.command("migrate-config")
def migrate_config_cmd(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Legacy settings YAML."),
    output: Path | None = typer.Option(None, "--output", help="Write here instead of in place."),
) -> None:
    """Rewrite legacy settings keys into the current layout."""

    try:
        migrated, target = migrate_config_file(source, output)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"migrated: {target}")
    typer.echo(f"archive: {json.dumps(migrated.get('archive', {}), sort_keys=True)}")
    typer.echo(f"retention: {json.dumps(migrated.get('retention', {}), sort_keys=True)}")


if __name__ == "__main__":
    app()
