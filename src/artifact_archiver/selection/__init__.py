"""Pattern-based selection of workspace entries."""

from artifact_archiver.selection.matcher import CandidateEntry, CandidateKind, select_candidates
from artifact_archiver.selection.patterns import (
    DEFAULT_EXCLUDES,
    CompiledPattern,
    PatternConfig,
    PatternSet,
    compile_pattern,
    split_patterns,
)

__all__ = [
    "CandidateEntry",
    "CandidateKind",
    "select_candidates",
    "DEFAULT_EXCLUDES",
    "CompiledPattern",
    "PatternConfig",
    "PatternSet",
    "compile_pattern",
    "split_patterns",
]
