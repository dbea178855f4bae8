"""Content fingerprints recorded for archived files."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from artifact_archiver.store.copier import DEFAULT_BUFFER_SIZE
from artifact_archiver.store.tree import VirtualEntry
from artifact_archiver.store.writer import FINGERPRINTS_FILE
from artifact_archiver.utils.paths import write_json_atomically

LOGGER = logging.getLogger(__name__)


class FingerprintHook(Protocol):
    """Called once per successful archive with the archived regular files."""

    def __call__(self, files: Sequence[VirtualEntry], build_dir: Path) -> Mapping[str, str] | None: ...


def md5_of(entry: VirtualEntry, buffer_size: int = DEFAULT_BUFFER_SIZE) -> str:
    """Hash one archived file without loading it into memory."""

    digest = hashlib.md5()
    with entry.open() as handle:
        for chunk in iter(lambda: handle.read(buffer_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


class Md5FingerprintRecorder:
    """Default hook: MD5 per archived file, stored as ``fingerprints.json`` beside the manifest."""

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE, logger: logging.Logger | None = None) -> None:
        self.buffer_size = buffer_size
        self._logger = logger or LOGGER

    def __call__(self, files: Sequence[VirtualEntry], build_dir: Path) -> dict[str, str]:
        fingerprints = {entry.relative_path: md5_of(entry, self.buffer_size) for entry in files}
        write_json_atomically({"algorithm": "md5", "fingerprints": fingerprints}, build_dir / FINGERPRINTS_FILE)
        self._logger.info("fingerprint.recorded files=%s build_dir=%s", len(fingerprints), build_dir)
        return fingerprints
