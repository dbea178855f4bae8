"""Bounded-memory stream copy."""

from __future__ import annotations

import threading
from typing import BinaryIO, Callable

from artifact_archiver.errors import ArchiveCancelledError

DEFAULT_BUFFER_SIZE = 64 * 1024


def copy_stream(
    source: BinaryIO,
    sink: BinaryIO,
    *,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    cancel_event: threading.Event | None = None,
    progress: Callable[[int], None] | None = None,
) -> int:
    """Copy ``source`` into ``sink`` through one fixed-size buffer and return bytes copied.

    Memory use does not depend on how large the source is. Sources without
    ``readinto`` (for example a remote channel wrapper) fall back to bounded
    ``read`` calls. ``cancel_event`` is checked before each chunk.
    """

    if buffer_size <= 0:
        raise ValueError("buffer_size must be positive")

    total = 0
    readinto = getattr(source, "readinto", None)
    view = memoryview(bytearray(buffer_size)) if readinto is not None else None
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise ArchiveCancelledError(f"copy cancelled after {total} bytes")
        if view is not None:
            count = readinto(view)
            if not count:
                break
            sink.write(view[:count])
        else:
            chunk = source.read(buffer_size)
            if not chunk:
                break
            count = len(chunk)
            sink.write(chunk)
        total += count
        if progress is not None:
            progress(total)
    return total
