from __future__ import annotations

import os
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from backlog_mcp.records import (
    LifecycleStage,
    LocalRecordStore,
    RecordParseError,
    TaskOrigin,
    TaskRecord,
    parse_task,
    stage_directory,
)

TASK = """---
id: task-7
title: Ship the importer
status: In Progress
assignee: "@alice"
labels: [import, cli]
created_date: 2025-01-01
updated_date: 2025-01-03 12:00
branch: should-be-ignored
---

## Description

Import everything.
"""


def test_parse_task_reads_front_matter_and_body() -> None:
    record = parse_task(TASK)

    assert record.id == "task-7"
    assert record.title == "Ship the importer"
    assert record.status == "In Progress"
    assert record.assignee == ["@alice"]
    assert record.labels == ["import", "cli"]
    assert record.created_date == "2025-01-01"
    assert record.updated_date == datetime(2025, 1, 3, 12, 0, tzinfo=timezone.utc)
    assert record.description.startswith("## Description")
    assert record.branch is None
    assert record.origin is TaskOrigin.LOCAL
    assert record.stage is LifecycleStage.ACTIVE


def test_parse_task_accepts_windows_line_endings() -> None:
    record = parse_task(TASK.replace("\n", "\r\n"))

    assert record.id == "task-7"
    assert record.status == "In Progress"
    assert "Import everything." in record.description


def test_parse_task_requires_front_matter() -> None:
    with pytest.raises(RecordParseError):
        parse_task("# just a heading\n")


def test_parse_task_requires_id() -> None:
    with pytest.raises(RecordParseError):
        parse_task("---\ntitle: No id\n---\n")


def test_parse_task_rejects_non_mapping_front_matter() -> None:
    with pytest.raises(RecordParseError):
        parse_task("---\n- a\n- b\n---\n")


def test_parse_task_rejects_invalid_yaml() -> None:
    with pytest.raises(RecordParseError):
        parse_task("---\nid: [unclosed\n---\n")


def test_numeric_id_is_coerced_to_text() -> None:
    record = parse_task("---\nid: 12\nstatus: Done\n---\n")

    assert record.id == "12"


def test_invalid_updated_date_is_ignored() -> None:
    record = parse_task("---\nid: task-1\nupdated_date: someday\n---\n")

    assert record.updated_date is None


def test_effective_time_prefers_updated_date() -> None:
    updated = datetime(2025, 1, 2, tzinfo=timezone.utc)
    modified = datetime(2025, 3, 1, tzinfo=timezone.utc)

    with_both = TaskRecord(id="task-1", updated_date=updated, last_modified=modified)
    file_only = TaskRecord(id="task-1", last_modified=modified)

    assert with_both.effective_time == updated
    assert file_only.effective_time == modified
    assert TaskRecord(id="task-1").effective_time is None


def test_tagged_returns_new_record() -> None:
    original = TaskRecord(id="task-1", status="To Do")

    tagged = original.tagged(
        TaskOrigin.REMOTE,
        branch="feature",
        last_modified=date(2025, 1, 1),
    )

    assert tagged is not original
    assert original.origin is TaskOrigin.LOCAL and original.branch is None
    assert tagged.origin is TaskOrigin.REMOTE
    assert tagged.branch == "feature"
    assert tagged.last_modified == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_records_are_frozen() -> None:
    record = TaskRecord(id="task-1")

    with pytest.raises(Exception):
        record.status = "Done"  # type: ignore[misc]


def test_stage_directories() -> None:
    assert stage_directory("backlog", LifecycleStage.ACTIVE) == "backlog/tasks"
    assert stage_directory("backlog/", LifecycleStage.DRAFT) == "backlog/drafts"
    assert stage_directory("backlog", LifecycleStage.ARCHIVED) == "backlog/archive/tasks"


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_local_store_lists_active_records(tmp_path: Path) -> None:
    tasks_dir = tmp_path / "backlog" / "tasks"
    first = _write(tasks_dir / "task-1 - First.md", "---\nid: task-1\nstatus: To Do\n---\n")
    _write(tasks_dir / "task-2 - Second.md", "---\nid: task-2\nstatus: Done\n---\n")
    _write(tasks_dir / "notes.txt", "not a task")
    _write(tmp_path / "backlog" / "drafts" / "task-3 - Draft.md", "---\nid: task-3\n---\n")
    os.utime(first, (1_700_000_000, 1_700_000_000))

    store = LocalRecordStore(tmp_path)
    records = store.list_active_records()

    assert [record.id for record in records] == ["task-1", "task-2"]
    assert all(record.origin is TaskOrigin.LOCAL for record in records)
    assert all(record.stage is LifecycleStage.ACTIVE for record in records)
    assert records[0].last_modified == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


def test_local_store_skips_unparsable_files(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    tasks_dir = tmp_path / "backlog" / "tasks"
    _write(tasks_dir / "task-1 - Good.md", "---\nid: task-1\n---\n")
    _write(tasks_dir / "task-2 - Broken.md", "no front matter here")

    with caplog.at_level("WARNING"):
        records = LocalRecordStore(tmp_path).list_active_records()

    assert [record.id for record in records] == ["task-1"]
    assert "Skipping unreadable task file" in caplog.text


def test_local_store_other_stages(tmp_path: Path) -> None:
    _write(tmp_path / "work" / "drafts" / "task-9 - Idea.md", "---\nid: task-9\n---\n")

    store = LocalRecordStore(tmp_path, backlog_directory="work")

    assert store.list_active_records() == []
    drafts = store.list_records(LifecycleStage.DRAFT)
    assert [record.id for record in drafts] == ["task-9"]
    assert drafts[0].stage is LifecycleStage.DRAFT
