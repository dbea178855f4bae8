"""Delete archived trees of old builds beyond the configured retention."""

from __future__ import annotations

import logging

from artifact_archiver.store.writer import ArtifactStore

LOGGER = logging.getLogger(__name__)


def apply_artifact_retention(
    store: ArtifactStore,
    job: str,
    artifact_num_to_keep: int | None,
    logger: logging.Logger | None = None,
) -> list[int]:
    """Keep artifacts of the newest ``artifact_num_to_keep`` builds of ``job``.

    Returns the build numbers whose artifacts were deleted, ascending. ``None``
    disables rotation.
    """

    effective_logger = logger or LOGGER
    if artifact_num_to_keep is None:
        return []
    if artifact_num_to_keep < 1:
        raise ValueError("artifact_num_to_keep must be >= 1 or None")

    builds = store.list_builds(job)
    expired = builds[:-artifact_num_to_keep] if len(builds) > artifact_num_to_keep else []
    pruned: list[int] = []
    for build_number in expired:
        if store.delete_build(job, build_number):
            pruned.append(build_number)
    effective_logger.info(
        "retention.applied job=%s keep=%s builds_total=%s pruned=%s",
        job,
        artifact_num_to_keep,
        len(builds),
        pruned,
    )
    return pruned
