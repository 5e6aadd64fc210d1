"""Task record models, parsing and local storage."""

from .ids import parse_task_id, sort_by_task_id, task_id_sort_key
from .models import LifecycleStage, TaskOrigin, TaskRecord
from .parser import RecordParseError, parse_task
from .store import LocalRecordSource, LocalRecordStore, stage_directory

__all__ = [
    "LifecycleStage",
    "LocalRecordSource",
    "LocalRecordStore",
    "RecordParseError",
    "TaskOrigin",
    "TaskRecord",
    "parse_task",
    "parse_task_id",
    "sort_by_task_id",
    "stage_directory",
    "task_id_sort_key",
]
