"""Pick one version of a task when several branches disagree.

Two strategies are supported:

``most_progressed`` (default)
    The version whose status sits further along the configured status list
    wins. A status missing from the list ranks ahead of every listed status;
    this mirrors the historical behaviour and is kept on purpose, so a typo'd
    status can win a comparison. Equal ranks fall back to the effective
    timestamp (``updated_date``, else ``last_modified``); a timestamp tie, or
    a side without any timestamp, keeps ``existing``.

``most_recent``
    When both versions carry an effective timestamp the later one wins, ties
    keep ``existing``. Otherwise the comparison falls through to
    ``most_progressed``.

Folding many versions through :func:`resolve_conflict` gives the same winner
whatever the arrival order as long as every version carries a timestamp.
Versions that tie on every available axis keep whichever was seen first.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Sequence

from ..records import TaskRecord

STRATEGIES = ("most_recent", "most_progressed")


def _validate_statuses(statuses: Sequence[str]) -> None:
    if isinstance(statuses, str) or not all(isinstance(status, str) for status in statuses):
        raise TypeError("statuses must be a sequence of status names")


def status_rank(status: str, statuses: Sequence[str]) -> int:
    """Index of ``status`` in ``statuses``; unknown statuses rank past the end."""

    try:
        return list(statuses).index(status)
    except ValueError:
        return len(statuses)


def _compare_times(existing: TaskRecord, incoming: TaskRecord) -> TaskRecord | None:
    existing_time = existing.effective_time
    incoming_time = incoming.effective_time
    if existing_time is None or incoming_time is None:
        return None
    return existing if existing_time >= incoming_time else incoming


def resolve_conflict(
    existing: TaskRecord,
    incoming: TaskRecord,
    statuses: Sequence[str],
    strategy: str = "most_progressed",
) -> TaskRecord:
    """Return the version of a task that should represent it."""

    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown resolution strategy '{strategy}'")
    _validate_statuses(statuses)

    if strategy == "most_recent":
        winner = _compare_times(existing, incoming)
        if winner is not None:
            return winner

    existing_rank = status_rank(existing.status, statuses)
    incoming_rank = status_rank(incoming.status, statuses)
    if incoming_rank > existing_rank:
        return incoming
    if incoming_rank < existing_rank:
        return existing
    return _compare_times(existing, incoming) or existing


def fold_records(
    records: Iterable[TaskRecord],
    statuses: Sequence[str],
    strategy: str = "most_progressed",
    initial: Mapping[str, TaskRecord] | None = None,
) -> dict[str, TaskRecord]:
    """Fold records into an id-keyed map, resolving each collision as it arrives."""

    merged: dict[str, TaskRecord] = dict(initial or {})
    for record in records:
        current = merged.get(record.id)
        merged[record.id] = record if current is None else resolve_conflict(current, record, statuses, strategy)
    return merged


__all__ = ["STRATEGIES", "fold_records", "resolve_conflict", "status_rank"]
