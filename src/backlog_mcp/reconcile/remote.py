"""Load the active task records of every remote branch."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from ..records import LifecycleStage, TaskOrigin, TaskRecord, parse_task, stage_directory

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


class RemoteGit(Protocol):
    """The subset of ``GitOperations`` the loader calls."""

    async def fetch_remote(self) -> bool:
        ...

    async def list_remote_branches(self) -> list[str]:
        ...

    async def list_files_in_tree(self, ref: str, path: str) -> list[str]:
        ...

    async def read_file_at_ref(self, ref: str, path: str) -> str:
        ...

    async def last_modified_at_ref(self, ref: str, path: str):
        ...

    def remote_ref(self, branch: str) -> str:
        ...


def report_progress(on_progress: ProgressCallback | None, message: str) -> None:
    logger.debug(message)
    if on_progress is not None:
        on_progress(message)


def loading_message(remote_operations: bool) -> str:
    if remote_operations:
        return "Loading tasks from local and remote branches..."
    return "Loading local tasks (remote operations disabled)..."


async def _load_file(
    git: RemoteGit,
    branch: str,
    ref: str,
    path: str,
    semaphore: asyncio.Semaphore,
    parse: Callable[[str], TaskRecord],
) -> TaskRecord:
    async with semaphore:
        content, modified = await asyncio.gather(
            git.read_file_at_ref(ref, path),
            git.last_modified_at_ref(ref, path),
        )
    record = parse(content)
    return record.tagged(TaskOrigin.REMOTE, branch=branch, stage=LifecycleStage.ACTIVE, last_modified=modified)


async def _load_branch(
    git: RemoteGit,
    branch: str,
    directory: str,
    semaphore: asyncio.Semaphore,
    parse: Callable[[str], TaskRecord],
    on_progress: ProgressCallback | None,
) -> list[TaskRecord]:
    ref = git.remote_ref(branch)
    try:
        async with semaphore:
            files = await git.list_files_in_tree(ref, directory)
    except Exception as exc:
        logger.warning("Failed to list tasks on branch", extra={"branch": branch, "error": str(exc)})
        return []

    files = [path for path in files if path.endswith(".md")]
    if not files:
        return []

    results = await asyncio.gather(
        *(_load_file(git, branch, ref, path, semaphore, parse) for path in files),
        return_exceptions=True,
    )

    records: list[TaskRecord] = []
    for path, result in zip(files, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            logger.warning(
                "Failed to load task from %s:%s: %s",
                branch,
                path,
                result,
                extra={"branch": branch, "path": path},
            )
            continue
        records.append(result)

    report_progress(on_progress, f"Loaded {len(records)} tasks from {branch}")
    return records


async def load_remote_records(
    git: RemoteGit,
    *,
    backlog_directory: str = "backlog",
    remote_operations: bool = True,
    parse: Callable[[str], TaskRecord] = parse_task,
    on_progress: ProgressCallback | None = None,
    max_concurrency: int = 16,
) -> list[TaskRecord]:
    """Return every parsable active record found on the remote branches.

    Never raises for an unreachable remote or a broken branch or file; those
    are logged and skipped. Returns an empty list when remote operations are
    disabled or the fetch step fails.
    """

    if not remote_operations:
        report_progress(on_progress, "Remote operations disabled; showing local tasks only")
        return []

    try:
        report_progress(on_progress, "Fetching remote branches...")
        fetched = await git.fetch_remote()
        branches = await git.list_remote_branches() if fetched else None
    except Exception as exc:
        logger.error("Failed to fetch remote tasks", extra={"error": str(exc)})
        report_progress(on_progress, "Could not read remote branches; showing local tasks only")
        return []

    # Remote-tracking refs left from an earlier fetch are not served.
    if branches is None:
        logger.warning("Remote fetch did not complete; skipping remote tasks")
        report_progress(on_progress, "Could not read remote branches; showing local tasks only")
        return []

    if not branches:
        return []

    report_progress(on_progress, f"Found {len(branches)} remote branches")

    directory = stage_directory(backlog_directory, LifecycleStage.ACTIVE)
    semaphore = asyncio.Semaphore(max_concurrency)
    per_branch = await asyncio.gather(
        *(_load_branch(git, branch, directory, semaphore, parse, on_progress) for branch in branches)
    )

    records = [record for branch_records in per_branch for record in branch_records]
    report_progress(on_progress, f"Loaded {len(records)} total remote tasks")
    return records


__all__ = ["ProgressCallback", "RemoteGit", "load_remote_records", "loading_message", "report_progress"]
