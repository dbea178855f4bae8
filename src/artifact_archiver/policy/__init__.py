"""Archive gating policy."""

from artifact_archiver.policy.gates import (
    BUILD_OUTCOME_VALUES,
    ArchiveOptions,
    ArchiveStatus,
    BuildOutcome,
    empty_gate_status,
    is_success_equivalent,
    outcome_gate_allows,
    parse_build_outcome,
)

__all__ = [
    "BUILD_OUTCOME_VALUES",
    "ArchiveOptions",
    "ArchiveStatus",
    "BuildOutcome",
    "empty_gate_status",
    "is_success_equivalent",
    "outcome_gate_allows",
    "parse_build_outcome",
]
