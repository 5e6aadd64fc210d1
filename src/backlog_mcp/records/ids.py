"""Ordering helpers for task identifiers such as ``task-2`` or ``task-2.10``."""

from __future__ import annotations

import re
from typing import Iterable, TypeVar

_PREFIX = re.compile(r"^task-", re.IGNORECASE)
_TRAILING_NUMBER = re.compile(r"(\d+)$")

T = TypeVar("T")


def parse_task_id(task_id: str) -> tuple[int, ...]:
    """Return the numeric components of an id.

    ``task-5.2.1`` gives ``(5, 2, 1)``. Ids whose tail is not dotted numbers
    fall back to a trailing number (``draft2`` gives ``(2,)``) and then to
    ``(0,)``.
    """

    numeric_part = _PREFIX.sub("", task_id.strip())
    parts = numeric_part.split(".")
    if parts and all(part.isdigit() for part in parts):
        return tuple(int(part) for part in parts)
    trailing = _TRAILING_NUMBER.search(numeric_part)
    if trailing:
        return (int(trailing.group(1)),)
    return (0,)


def task_id_sort_key(task_id: str) -> tuple[tuple[int, ...], str]:
    # Missing components compare as zero, so task-2 and task-2.0 tie on numbers
    # and fall back to the raw text.
    numbers = parse_task_id(task_id)
    while len(numbers) > 1 and numbers[-1] == 0:
        numbers = numbers[:-1]
    return numbers, task_id


def sort_by_task_id(items: Iterable[T], *, key=lambda item: item.id) -> list[T]:
    """Return a new list ordered by task id."""

    return sorted(items, key=lambda item: task_id_sort_key(key(item)))


__all__ = ["parse_task_id", "sort_by_task_id", "task_id_sort_key"]
