"""Find where each task was most recently seen across every branch.

A task can be active on one branch, archived on another and still a draft on
a third. For a known set of task ids this module looks at every
(branch, id, lifecycle directory) combination, keeps the sighting with the
newest commit date per id, and lets callers hide tasks whose newest sighting
is not in the active directory.

Only recency decides; an archived sighting does not beat a newer active one.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Protocol, Sequence

from ..git import BranchRef
from ..records import LifecycleStage, TaskRecord, stage_directory
from .cancellation import CancellationToken, ReconciliationCancelled
from .remote import ProgressCallback, report_progress

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


class LocatingGit(Protocol):
    async def list_all_branches(self) -> list[BranchRef]:
        ...

    async def list_files_in_tree(self, ref: str, path: str) -> list[str]:
        ...

    async def last_modified_at_ref(self, ref: str, path: str) -> datetime | None:
        ...


@dataclass(frozen=True, slots=True)
class DirectorySighting:
    """One place a task file was found, with the date of its last commit."""

    task_id: str
    stage: LifecycleStage
    branch: str
    modified_at: datetime
    path: str

    def as_dict(self) -> dict[str, str]:
        return {
            "task_id": self.task_id,
            "stage": self.stage.value,
            "branch": self.branch,
            "modified_at": self.modified_at.isoformat(),
            "path": self.path,
        }


@dataclass(frozen=True, slots=True)
class _Check:
    branch: BranchRef
    task_id: str
    stage: LifecycleStage
    directory: str


def file_matches_id(path: str, task_id: str) -> bool:
    """True when the file name starts with ``task_id`` as a whole token.

    ``task-1 - Title.md`` matches ``task-1``; ``task-10 - x.md`` and
    ``task-1.2 - x.md`` do not.
    """

    filename = path.rsplit("/", 1)[-1]
    return re.match(rf"{re.escape(task_id)}(?!\w|\.\d)", filename, re.IGNORECASE) is not None


async def _check(git: LocatingGit, check: _Check) -> DirectorySighting | None:
    try:
        files = await git.list_files_in_tree(check.branch.ref, check.directory)
        match = next((path for path in files if file_matches_id(path, check.task_id)), None)
        if match is None:
            return None
        modified = await git.last_modified_at_ref(check.branch.ref, match)
    except Exception as exc:
        logger.debug(
            "Location check failed",
            extra={"branch": check.branch.ref, "task_id": check.task_id, "error": str(exc)},
        )
        return None
    if modified is None:
        return None
    return DirectorySighting(
        task_id=check.task_id,
        stage=check.stage,
        branch=check.branch.ref,
        modified_at=modified,
        path=match,
    )


def _build_checks(
    branches: Sequence[BranchRef],
    task_ids: Sequence[str],
    backlog_directory: str,
) -> list[_Check]:
    directories = [(stage, stage_directory(backlog_directory, stage)) for stage in LifecycleStage]
    return [
        _Check(branch=branch, task_id=task_id, stage=stage, directory=directory)
        for branch in branches
        for task_id in task_ids
        for stage, directory in directories
    ]


def reduce_latest(sightings: Iterable[DirectorySighting | None]) -> dict[str, DirectorySighting]:
    """Keep the newest sighting per id; the first one seen wins a tie."""

    latest: dict[str, DirectorySighting] = {}
    for sighting in sightings:
        if sighting is None:
            continue
        current = latest.get(sighting.task_id)
        if current is None or sighting.modified_at > current.modified_at:
            latest[sighting.task_id] = sighting
    return latest


async def locate_latest(
    git: LocatingGit,
    task_ids: Iterable[str],
    *,
    backlog_directory: str = "backlog",
    batch_size: int = DEFAULT_BATCH_SIZE,
    branches: Sequence[BranchRef] | None = None,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
) -> dict[str, DirectorySighting]:
    """Return the latest sighting for each of ``task_ids``.

    Checks run in fixed-size batches, one batch at a time, to bound the
    number of concurrent git processes. An empty result means "no location
    information", never "no tasks". A cancelled ``token`` is honoured between
    batches.
    """

    ids = list(dict.fromkeys(task_ids))
    if not ids:
        return {}
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    try:
        if branches is None:
            branches = await git.list_all_branches()
        if not branches:
            return {}

        report_progress(on_progress, f"Checking {len(ids)} tasks across {len(branches)} branches...")
        checks = _build_checks(branches, ids, backlog_directory)

        sightings: list[DirectorySighting | None] = []
        for start in range(0, len(checks), batch_size):
            if token is not None:
                token.raise_if_cancelled("location lookup")
            batch = checks[start : start + batch_size]
            sightings.extend(await asyncio.gather(*(_check(git, check) for check in batch)))

        latest = reduce_latest(sightings)
        report_progress(on_progress, f"Checked {len(ids)} tasks")
        return latest
    except ReconciliationCancelled:
        raise
    except Exception as exc:
        logger.error("Failed to get task directory locations", extra={"error": str(exc)})
        return {}


def filter_active(
    records: Iterable[TaskRecord],
    latest: Mapping[str, DirectorySighting],
) -> list[TaskRecord]:
    """Drop records whose newest sighting is a draft or an archive entry."""

    kept: list[TaskRecord] = []
    for record in records:
        sighting = latest.get(record.id)
        if sighting is None or sighting.stage is LifecycleStage.ACTIVE:
            kept.append(record)
    return kept


__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DirectorySighting",
    "LocatingGit",
    "file_matches_id",
    "filter_active",
    "locate_latest",
    "reduce_latest",
]
