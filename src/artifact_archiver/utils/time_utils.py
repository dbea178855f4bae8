"""Timestamps and durations recorded in archive summaries."""

from __future__ import annotations

import time
from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def monotonic_start() -> float:
    return time.monotonic()


def elapsed_seconds(started: float, ndigits: int = 3) -> float:
    """Seconds since a ``monotonic_start()`` value, rounded for summaries."""

    return round(max(time.monotonic() - started, 0.0), ndigits)


def isoformat_utc(value: datetime) -> str:
    """Render a timestamp in UTC; naive values are taken to be UTC already."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
