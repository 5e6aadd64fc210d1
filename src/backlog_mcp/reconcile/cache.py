"""Cached, single-flight reconciliation of local and remote task records.

One :class:`ReconciliationCache` owns the published result. Each successful
load builds a brand-new :class:`ReconciliationResult` and swaps it in, so a
holder of an older result never sees it change. A load is shared by every
caller that asks for a result while it runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping

from ..config import BacklogSettings
from ..git import GitOperations
from ..records import LocalRecordSource, TaskOrigin, TaskRecord, parse_task, sort_by_task_id
from .cancellation import CancellationToken, ReconciliationCancelled
from .locations import DirectorySighting, filter_active, locate_latest
from .remote import ProgressCallback, load_remote_records, loading_message, report_progress
from .resolver import fold_records

logger = logging.getLogger(__name__)


class ReconciliationError(RuntimeError):
    """Raised when a load fails and there is no earlier result to fall back on."""


class CacheState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """One reconciled view: exactly one record per task id."""

    records: Mapping[str, TaskRecord]
    statuses: tuple[str, ...]
    locations: Mapping[str, DirectorySighting]

    def ordered(self) -> list[TaskRecord]:
        return sort_by_task_id(self.records.values())

    def by_status(self) -> dict[str, list[TaskRecord]]:
        """Group records under each configured status, unknown statuses last."""

        columns: dict[str, list[TaskRecord]] = {status: [] for status in self.statuses}
        for record in self.ordered():
            columns.setdefault(record.status, []).append(record)
        return columns


@dataclass(frozen=True, slots=True)
class CacheEntry:
    result: ReconciliationResult
    computed_at: float


def _group_by_branch(records: Iterable[TaskRecord]) -> dict[str, list[TaskRecord]]:
    grouped: dict[str, list[TaskRecord]] = {}
    for record in records:
        grouped.setdefault(record.branch or "", []).append(record)
    return grouped


class ReconciliationCache:
    """Idle -> Loading -> Ready -> (TTL) Stale, with cooperative cancellation.

    ``start_loading`` and ``get_result`` must be called from a running event
    loop.
    """

    def __init__(
        self,
        git: GitOperations,
        store: LocalRecordSource,
        settings: BacklogSettings,
        *,
        clock: Callable[[], float] = time.monotonic,
        ttl_seconds: float | None = None,
        parse: Callable[[str], TaskRecord] = parse_task,
    ) -> None:
        self._git = git
        self._store = store
        self._settings = settings
        self._clock = clock
        self._ttl = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._parse = parse
        self._entry: CacheEntry | None = None
        self._invalidated = False
        self._task: asyncio.Task | None = None
        self._token: CancellationToken | None = None
        self._on_progress: ProgressCallback | None = None
        self._load_count = 0

    @property
    def load_count(self) -> int:
        """Number of reconciliation passes started so far."""

        return self._load_count

    @property
    def state(self) -> CacheState:
        if self.is_loading():
            return CacheState.LOADING
        if self._entry is None:
            return CacheState.IDLE
        return CacheState.READY if self._is_fresh() else CacheState.STALE

    @property
    def computed_at(self) -> float | None:
        return self._entry.computed_at if self._entry else None

    def _is_fresh(self) -> bool:
        if self._entry is None or self._invalidated:
            return False
        return self._clock() - self._entry.computed_at < self._ttl

    def is_ready(self) -> bool:
        return self._is_fresh()

    def is_loading(self) -> bool:
        return self._task is not None and not self._task.done()

    def peek(self) -> ReconciliationResult | None:
        """Return the last published result, fresh or stale, without loading."""

        return self._entry.result if self._entry else None

    def set_progress_callback(self, callback: ProgressCallback | None) -> None:
        self._on_progress = callback

    def invalidate(self) -> None:
        """Mark the current result stale; it stays available through ``peek``."""

        self._invalidated = True

    def start_loading(self) -> None:
        """Begin a background load unless one is running or the result is fresh."""

        if self.is_loading() or self._is_fresh():
            return
        self._spawn()

    async def get_result(self) -> ReconciliationResult:
        """Return a fresh result, joining or starting a load when needed.

        Raises ``ReconciliationCancelled`` if the load it waits on is
        cancelled, and ``ReconciliationError`` if the load fails with no
        earlier result to serve instead.
        """

        if self._is_fresh():
            return self._entry.result  # type: ignore[union-attr]
        task = self._task
        if task is None or task.done():
            task = self._spawn()
        else:
            self._emit("Loading in progress...")
        return await asyncio.shield(task)

    def cancel(self) -> None:
        """Stop the in-flight load at its next phase boundary."""

        if self._token is not None:
            self._token.cancel()
        self._token = None
        self._task = None

    def _emit(self, message: str) -> None:
        report_progress(self._on_progress, message)

    def _spawn(self) -> asyncio.Task:
        token = CancellationToken()
        self._token = token
        self._load_count += 1
        task = asyncio.get_running_loop().create_task(self._load(token))
        self._task = task
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        if self._task is task:
            self._task = None
            self._token = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Reconciliation task finished with %r", task.exception())

    async def _load(self, token: CancellationToken) -> ReconciliationResult:
        try:
            result = await self._reconcile(token)
            token.raise_if_cancelled("publishing")
        except ReconciliationCancelled:
            logger.info("Reconciliation cancelled")
            raise
        except Exception as exc:
            if token.cancelled:
                logger.info("Reconciliation cancelled", extra={"error": str(exc)})
                raise ReconciliationCancelled("publishing") from exc
            if self._entry is not None:
                logger.error(
                    "Reconciliation failed; serving previous result",
                    extra={"error": str(exc)},
                )
                self._emit("Refresh failed; showing previously loaded tasks")
                return self._entry.result
            raise ReconciliationError(f"Failed to reconcile tasks: {exc}") from exc

        self._entry = CacheEntry(result=result, computed_at=self._clock())
        self._invalidated = False
        return result

    async def _reconcile(self, token: CancellationToken) -> ReconciliationResult:
        settings = self._settings
        statuses = tuple(settings.statuses)
        strategy = settings.resolution_strategy

        token.raise_if_cancelled("loading")
        self._emit(loading_message(settings.remote_operations))
        local_records, remote_records = await asyncio.gather(
            asyncio.to_thread(self._store.list_active_records),
            load_remote_records(
                self._git,
                backlog_directory=settings.backlog_directory,
                remote_operations=settings.remote_operations,
                parse=self._parse,
                on_progress=self._emit,
                max_concurrency=settings.remote_max_concurrency,
            ),
        )
        token.raise_if_cancelled("merging")

        merged: dict[str, TaskRecord] = {}
        for record in local_records:
            merged[record.id] = record if record.origin is TaskOrigin.LOCAL else record.tagged(TaskOrigin.LOCAL)

        if remote_records:
            self._emit("Resolving task states across branches...")
        for branch, branch_records in _group_by_branch(remote_records).items():
            token.raise_if_cancelled(f"merging {branch}")
            merged = fold_records(branch_records, statuses, strategy, initial=merged)

        token.raise_if_cancelled("location lookup")
        locations: dict[str, DirectorySighting] = {}
        if settings.remote_operations and merged:
            locations = await locate_latest(
                self._git,
                list(merged),
                backlog_directory=settings.backlog_directory,
                batch_size=settings.location_batch_size,
                on_progress=self._emit,
                token=token,
            )
        token.raise_if_cancelled("filtering")

        self._emit("Filtering active tasks...")
        active = filter_active(sort_by_task_id(merged.values()), locations)
        return ReconciliationResult(
            records=MappingProxyType({record.id: record for record in active}),
            statuses=statuses,
            locations=MappingProxyType(dict(locations)),
        )


__all__ = [
    "CacheEntry",
    "CacheState",
    "ReconciliationCache",
    "ReconciliationError",
    "ReconciliationResult",
]
