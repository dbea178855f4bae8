"""Ant-style include/exclude glob compilation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from artifact_archiver.errors import PatternError

DEFAULT_EXCLUDES: tuple[str, ...] = (
    # Miscellaneous editor and OS droppings
    "**/*~",
    "**/#*#",
    "**/.#*",
    "**/%*%",
    "**/._*",
    "**/.DS_Store",
    # CVS
    "**/CVS",
    "**/CVS/**",
    "**/.cvsignore",
    # SCCS
    "**/SCCS",
    "**/SCCS/**",
    # Visual SourceSafe
    "**/vssver.scc",
    # Subversion
    "**/.svn",
    "**/.svn/**",
    # Git
    "**/.git",
    "**/.git/**",
    "**/.gitattributes",
    "**/.gitignore",
    "**/.gitmodules",
    # Mercurial
    "**/.hg",
    "**/.hg/**",
    "**/.hgignore",
    "**/.hgsub",
    "**/.hgsubstate",
    "**/.hgtags",
    # Bazaar
    "**/.bzr",
    "**/.bzr/**",
    "**/.bzrignore",
)

MATCH_EVERYTHING = "**"
_WILDCARD_CHARS = frozenset("*?")
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


def split_patterns(value: str | Sequence[str] | None) -> tuple[str, ...]:
    """Split a comma/whitespace delimited pattern string, or clean an explicit list."""

    if value is None:
        return ()
    items = [value] if isinstance(value, str) else list(value)
    patterns: list[str] = []
    for item in items:
        for part in item.replace(",", " ").split():
            if part:
                patterns.append(part)
    return tuple(patterns)


@dataclass(frozen=True, slots=True)
class PatternConfig:
    """Immutable include/exclude configuration for one archive invocation."""

    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    use_default_excludes: bool = True
    case_sensitive: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "includes", split_patterns(self.includes))
        object.__setattr__(self, "excludes", split_patterns(self.excludes))

    def describe_includes(self) -> str:
        """Render includes the way they would be typed into a job configuration."""

        return ", ".join(self.includes) if self.includes else MATCH_EVERYTHING


def _normalize_pattern(pattern: str) -> list[str]:
    """Validate a raw pattern and return its normalized segments."""

    if _CONTROL_CHARS.search(pattern):
        raise PatternError(pattern, "contains control characters")
    text = pattern.strip().replace("\\", "/")
    if not text:
        raise PatternError(pattern, "is empty")
    if text.startswith("/") or _DRIVE_PREFIX.match(text):
        raise PatternError(pattern, "must be relative to the workspace root")
    if text.endswith("/"):
        text += MATCH_EVERYTHING

    segments: list[str] = []
    for segment in text.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise PatternError(pattern, "must not reference parent directories")
        if "**" in segment and segment != MATCH_EVERYTHING:
            # Ant treats "a**b" like "a*b".
            segment = re.sub(r"\*+", "*", segment)
        if segment == MATCH_EVERYTHING and segments and segments[-1] == MATCH_EVERYTHING:
            continue
        segments.append(segment)
    if not segments:
        raise PatternError(pattern, "does not name anything")
    return segments


def _segment_regex(segment: str) -> str:
    out: list[str] = []
    for char in segment:
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(char))
    return "".join(out)


def _segments_regex(segments: Sequence[str]) -> str:
    parts: list[str] = []
    last_index = len(segments) - 1
    for index, segment in enumerate(segments):
        if segment == MATCH_EVERYTHING:
            if index == 0 and index == last_index:
                parts.append(".*")
            elif index == 0:
                parts.append("(?:[^/]*/)*")
            elif index == last_index:
                parts.append("(?:/[^/]*)*")
            else:
                parts.append("/(?:[^/]*/)*")
            continue
        previous_was_globstar = index > 0 and segments[index - 1] == MATCH_EVERYTHING
        if index > 0 and not previous_was_globstar:
            parts.append("/")
        parts.append(_segment_regex(segment))
    return "".join(parts)


@dataclass(frozen=True, slots=True)
class CompiledPattern:
    """A single pattern compiled to a full-path regular expression."""

    source: str
    regex: re.Pattern[str]
    subtree_regex: re.Pattern[str] | None
    literal: str | None

    def matches(self, relative_path: str) -> bool:
        return self.regex.fullmatch(relative_path) is not None

    def covers_subtree(self, relative_dir: str) -> bool:
        """Return True when every path below ``relative_dir`` matches this pattern."""

        return self.subtree_regex is not None and self.subtree_regex.fullmatch(relative_dir) is not None


def compile_pattern(pattern: str, *, case_sensitive: bool = True) -> CompiledPattern:
    """Compile one Ant-style glob, raising PatternError when it is malformed."""

    segments = _normalize_pattern(pattern)
    flags = 0 if case_sensitive else re.IGNORECASE
    regex = re.compile(_segments_regex(segments), flags)

    subtree_regex: re.Pattern[str] | None = None
    if len(segments) > 1 and segments[-1] == MATCH_EVERYTHING:
        subtree_regex = re.compile(_segments_regex(segments[:-1]), flags)

    literal: str | None = None
    if not any(char in _WILDCARD_CHARS for segment in segments for char in segment):
        literal = "/".join(segments)
    return CompiledPattern(source=pattern, regex=regex, subtree_regex=subtree_regex, literal=literal)


def compile_patterns(patterns: Iterable[str], *, case_sensitive: bool = True) -> tuple[CompiledPattern, ...]:
    return tuple(compile_pattern(pattern, case_sensitive=case_sensitive) for pattern in patterns)


@dataclass(frozen=True, slots=True)
class PatternSet:
    """Compiled includes and excludes, ready to test workspace-relative paths."""

    includes: tuple[CompiledPattern, ...]
    excludes: tuple[CompiledPattern, ...]
    case_sensitive: bool = True
    _literals: frozenset[str] = field(default=frozenset(), repr=False)

    @classmethod
    def from_config(cls, config: PatternConfig) -> "PatternSet":
        """Compile every pattern up front so a bad one fails before any matching."""

        include_sources = config.includes or (MATCH_EVERYTHING,)
        exclude_sources = tuple(config.excludes)
        if config.use_default_excludes:
            exclude_sources += DEFAULT_EXCLUDES
        includes = compile_patterns(include_sources, case_sensitive=config.case_sensitive)
        excludes = compile_patterns(exclude_sources, case_sensitive=config.case_sensitive)
        literals = frozenset(
            pattern.literal if config.case_sensitive else pattern.literal.lower()
            for pattern in includes
            if pattern.literal is not None
        )
        return cls(
            includes=includes,
            excludes=excludes,
            case_sensitive=config.case_sensitive,
            _literals=literals,
        )

    def is_included(self, relative_path: str) -> bool:
        return any(pattern.matches(relative_path) for pattern in self.includes)

    def is_excluded(self, relative_path: str) -> bool:
        return any(pattern.matches(relative_path) for pattern in self.excludes)

    def is_selected(self, relative_path: str) -> bool:
        """Included by at least one include and not removed by any exclude."""

        return self.is_included(relative_path) and not self.is_excluded(relative_path)

    def prunes_directory(self, relative_dir: str) -> bool:
        """True when an exclude removes the directory and everything beneath it."""

        return any(pattern.covers_subtree(relative_dir) for pattern in self.excludes)

    def names_literally(self, relative_path: str) -> bool:
        """True when an include pattern spells out this exact path without wildcards."""

        key = relative_path if self.case_sensitive else relative_path.lower()
        return key in self._literals
