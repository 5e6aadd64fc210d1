"""Local working-tree access to task records."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from .models import LifecycleStage, TaskOrigin, TaskRecord
from .parser import RecordParseError, parse_task

logger = logging.getLogger(__name__)

STAGE_DIRECTORIES: dict[LifecycleStage, str] = {
    LifecycleStage.ACTIVE: "tasks",
    LifecycleStage.DRAFT: "drafts",
    LifecycleStage.ARCHIVED: "archive/tasks",
}


def stage_directory(backlog_directory: str, stage: LifecycleStage) -> str:
    """Return the repository-relative directory holding records of ``stage``."""

    return f"{backlog_directory.strip('/')}/{STAGE_DIRECTORIES[stage]}"


class LocalRecordSource(Protocol):
    """What the reconciliation cache needs from the local record store."""

    def list_active_records(self) -> list[TaskRecord]:
        ...


class LocalRecordStore:
    """Reads task records from the working tree of the repository."""

    def __init__(self, repo_path: Path, backlog_directory: str = "backlog") -> None:
        self._repo_path = Path(repo_path)
        self._backlog_directory = backlog_directory

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    def directory_for(self, stage: LifecycleStage) -> Path:
        return self._repo_path / stage_directory(self._backlog_directory, stage)

    def list_active_records(self) -> list[TaskRecord]:
        return self.list_records(LifecycleStage.ACTIVE)

    def list_records(self, stage: LifecycleStage) -> list[TaskRecord]:
        """Parse every Markdown record of one stage; unreadable files are skipped."""

        base = self.directory_for(stage)
        if not base.is_dir():
            return []

        records: list[TaskRecord] = []
        for path in sorted(base.glob("*.md")):
            try:
                record = parse_task(path.read_text(encoding="utf-8"))
            except (OSError, RecordParseError) as exc:
                logger.warning("Skipping unreadable task file", extra={"path": str(path), "error": str(exc)})
                continue
            mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
            records.append(record.tagged(TaskOrigin.LOCAL, stage=stage, last_modified=mtime))
        return records


__all__ = ["LocalRecordSource", "LocalRecordStore", "STAGE_DIRECTORIES", "stage_directory"]
