"""Classify selected entries as safe or workspace-escaping."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Literal

from artifact_archiver.selection.matcher import CandidateEntry, CandidateKind
from artifact_archiver.utils.paths import is_within
from artifact_archiver.workspace.access import WorkspaceAccess

LOGGER = logging.getLogger(__name__)

Safety = Literal["SAFE", "ESCAPING"]

# Same limit the Linux kernel applies before failing with ELOOP.
MAX_SYMLINK_HOPS = 40


@dataclass(frozen=True, slots=True)
class ClassifiedEntry:
    """A candidate plus the archive-time safety decision.

    ``link_target`` is set only for safe symlinks and holds the workspace
    relative path of the link's immediate target.
    """

    relative_path: str
    kind: CandidateKind
    safety: Safety
    explicit: bool = False
    link_target: str | None = None

    @property
    def is_safe(self) -> bool:
        return self.safety == "SAFE"


def _workspace_relative(path: str | None, root: str) -> str | None:
    if path is None or path == root:
        return None
    return os.path.relpath(path, root).replace(os.sep, "/")


def _segments(target: str) -> list[str]:
    text = os.path.splitdrive(target)[1].replace(os.sep, "/")
    return [segment for segment in text.split("/") if segment not in ("", ".")]


def resolve_symlink_chain(access: WorkspaceAccess, link_path: str) -> tuple[Safety, str | None, str | None]:
    """Follow a symlink chain component by component and decide whether it stays inside the root.

    Link text is never collapsed lexically: every component is looked up where
    the walk currently stands, a symlinked component is expanded in place and
    ``..`` climbs from the resolved location, as the kernel does.

    The walk is escaping when a ``..`` climbs out of the root, when a symlink
    sits in a directory outside the root, when the final location is outside
    or when the hop limit is hit. Links in directories above the root (a
    symlinked temp dir on the way to an absolute target) are followed.

    Returns the verdict, the final location and the link's first hop: where
    its own target text points, with intermediate links resolved but the last
    component not followed.
    """

    root = access.root
    location = access.real_path(os.path.dirname(link_path))
    if not is_within(location, root):
        return "ESCAPING", None, None

    target = access.read_link(link_path)
    if os.path.isabs(target):
        location = os.path.splitdrive(location)[0] + os.sep
    # Segments still to walk; None marks the end of the first link's own text.
    pending: list[str | None] = [None, *reversed(_segments(target))]
    first_hop: str | None = None
    hops = 1

    while pending:
        segment = pending.pop()
        if segment is None:
            if first_hop is None:
                first_hop = location
            continue
        if segment == "..":
            parent = os.path.dirname(location)
            if is_within(location, root) and not is_within(parent, root):
                return "ESCAPING", None, None
            location = parent
            continue

        following = os.path.join(location, segment)
        if not access.is_symlink(following):
            location = following
            continue
        if not is_within(location, root) and not is_within(root, location):
            return "ESCAPING", None, None
        if first_hop is None and pending and pending[-1] is None:
            first_hop = following
        hops += 1
        if hops > MAX_SYMLINK_HOPS:
            return "ESCAPING", None, None
        target = access.read_link(following)
        if os.path.isabs(target):
            location = os.path.splitdrive(location)[0] + os.sep
        pending.extend(reversed(_segments(target)))

    if not is_within(location, root):
        return "ESCAPING", None, None
    return "SAFE", location, first_hop


def classify(
    access: WorkspaceAccess,
    candidate: CandidateEntry,
    logger: logging.Logger | None = None,
) -> ClassifiedEntry:
    """Return the safety classification for one candidate. Never reads content."""

    effective_logger = logger or LOGGER
    if candidate.kind != "symlink":
        return ClassifiedEntry(
            relative_path=candidate.relative_path,
            kind=candidate.kind,
            safety="SAFE",
            explicit=candidate.explicit,
        )

    link_path = access.absolute(candidate.relative_path)
    final: str | None = None
    first_hop: str | None = None
    try:
        safety, final, first_hop = resolve_symlink_chain(access, link_path)
    except OSError as exc:
        effective_logger.warning("guard.unresolvable_symlink path=%s error=%s", candidate.relative_path, exc)
        safety = "ESCAPING"

    link_target: str | None = None
    if safety == "SAFE":
        # A first hop through a link above the root is recorded by its final location.
        hop = first_hop if first_hop is not None and is_within(first_hop, access.root) else final
        link_target = _workspace_relative(hop, access.root)
    else:
        effective_logger.warning("guard.escaping_symlink path=%s archived_as=placeholder", candidate.relative_path)

    return ClassifiedEntry(
        relative_path=candidate.relative_path,
        kind="symlink",
        safety=safety,
        explicit=candidate.explicit,
        link_target=link_target,
    )


def classify_all(
    access: WorkspaceAccess,
    candidates: list[CandidateEntry],
    logger: logging.Logger | None = None,
) -> list[ClassifiedEntry]:
    return [classify(access, candidate, logger=logger) for candidate in candidates]
