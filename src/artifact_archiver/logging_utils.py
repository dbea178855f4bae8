"""Process-wide logging setup for the CLI."""

from __future__ import annotations

import logging
from pathlib import Path

ARCHIVER_LOGGER_NAME = "artifact_archiver"
DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: int | str) -> int:
    """Accept ``logging.INFO`` or a name such as ``"debug"``."""

    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    log_file: Path | None,
    level: int | str = logging.INFO,
    *,
    console: bool = True,
) -> logging.Logger:
    """Replace root handlers with a console handler and an optional log file.

    Earlier handlers are closed, so calling this once per CLI command does not
    stack duplicate output.
    """

    resolved_level = resolve_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(resolved_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(resolved_level)
        root_logger.addHandler(handler)

    logger = logging.getLogger(ARCHIVER_LOGGER_NAME)
    logger.setLevel(resolved_level)
    return logger
