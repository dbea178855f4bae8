"""Only-if-successful and allow-empty gating around the archive pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

BuildOutcome = Literal["SUCCESS", "UNSTABLE", "FAILURE", "NOT_BUILT", "ABORTED"]
BUILD_OUTCOME_VALUES: tuple[BuildOutcome, ...] = ("SUCCESS", "UNSTABLE", "FAILURE", "NOT_BUILT", "ABORTED")
SUCCESS_EQUIVALENT_OUTCOMES: frozenset[str] = frozenset({"SUCCESS", "UNSTABLE"})

ArchiveStatus = Literal["SUCCESS", "EMPTY_REJECTED", "POLICY_SKIPPED", "FAILED"]
IoFailurePolicy = Literal["abort", "skip_entry"]


@dataclass(frozen=True, slots=True)
class ArchiveOptions:
    """Gating and failure-handling flags for one archive invocation."""

    only_if_successful: bool = False
    allow_empty_archive: bool = False
    fingerprint: bool = False
    on_io_failure: IoFailurePolicy = "abort"

    def __post_init__(self) -> None:
        if self.on_io_failure not in ("abort", "skip_entry"):
            raise ValueError(f"on_io_failure must be 'abort' or 'skip_entry', got {self.on_io_failure!r}")


def parse_build_outcome(value: str) -> BuildOutcome:
    """Normalize user input such as ``success`` or ``not-built``."""

    candidate = value.strip().upper().replace("-", "_")
    if candidate not in BUILD_OUTCOME_VALUES:
        raise ValueError(f"Unknown build outcome {value!r}; expected one of {', '.join(BUILD_OUTCOME_VALUES)}")
    return candidate  # type: ignore[return-value]


def is_success_equivalent(outcome: BuildOutcome | None) -> bool:
    """A build still running (no outcome yet) or no worse than unstable counts as successful."""

    return outcome is None or outcome in SUCCESS_EQUIVALENT_OUTCOMES


def outcome_gate_allows(options: ArchiveOptions, outcome: BuildOutcome | None) -> bool:
    """Gate 1, evaluated before any selection work."""

    return not options.only_if_successful or is_success_equivalent(outcome)


def empty_gate_status(options: ArchiveOptions, counted_candidates: int) -> ArchiveStatus | None:
    """Gate 2. Returns the terminal status for an empty selection, or None to proceed."""

    if counted_candidates > 0 or options.allow_empty_archive:
        return None
    return "EMPTY_REJECTED"
