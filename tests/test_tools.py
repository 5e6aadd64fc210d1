from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from backlog_mcp.config import BacklogSettings
from backlog_mcp.git import BranchRef
from backlog_mcp.reconcile import ReconciliationCache, ReconciliationError
from backlog_mcp.records import TaskOrigin, TaskRecord
from backlog_mcp.tools import register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubLogger:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def info(self, message, extra=None):
        self.messages.append(("info", message))

    def debug(self, message, extra=None):
        self.messages.append(("debug", message))

    def error(self, message, extra=None):
        self.messages.append(("error", message))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


class StubGit:
    """One remote branch; every task file was last touched on 2025-01-05."""

    def __init__(self, files: dict[str, str]) -> None:
        self.files = files

    async def fetch_remote(self) -> bool:
        return True

    async def list_remote_branches(self) -> list[str]:
        return ["feature"]

    def remote_ref(self, branch: str) -> str:
        return f"origin/{branch}"

    async def list_all_branches(self) -> list[BranchRef]:
        return [BranchRef(name="feature", remote=True)]

    async def list_files_in_tree(self, ref: str, path: str) -> list[str]:
        return [name for name in self.files if name.startswith(path + "/")]

    async def read_file_at_ref(self, ref: str, path: str) -> str:
        return self.files[path]

    async def last_modified_at_ref(self, ref: str, path: str) -> datetime | None:
        return datetime(2025, 1, 5, tzinfo=timezone.utc)


class StubStore:
    def __init__(self, records: list[TaskRecord]) -> None:
        self.records = records
        self.error: Exception | None = None

    def list_active_records(self) -> list[TaskRecord]:
        if self.error is not None:
            raise self.error
        return list(self.records)


def _setup(files: dict[str, str] | None = None, records: list[TaskRecord] | None = None):
    settings = BacklogSettings(cache_ttl_seconds=60)
    git = StubGit(files or {})
    store = StubStore(records or [])
    cache = ReconciliationCache(git, store, settings)
    server = StubServer()
    handles = register_tools(server, settings=settings, cache=cache, git=git)
    return server, handles, store


def _local(task_id: str, status: str) -> TaskRecord:
    return TaskRecord(id=task_id, title=f"Task {task_id}", status=status, origin=TaskOrigin.LOCAL)


def test_tools_are_registered_by_name() -> None:
    server, handles, _ = _setup()

    assert set(server._tools) == {"list_tasks", "task_locations", "refresh_tasks"}
    assert handles.list_tasks.name == "list_tasks"


def test_list_tasks_returns_reconciled_records() -> None:
    files = {"backlog/tasks/task-1 - A.md": "---\nid: task-1\ntitle: A\nstatus: Done\n---\n"}
    _, handles, _ = _setup(files, [_local("task-1", "To Do"), _local("task-2", "In Progress")])
    context = StubContext()

    payload = asyncio.run(handles.list_tasks.fn(context=context))

    assert payload["cancelled"] is False
    assert payload["statuses"] == ["To Do", "In Progress", "Done"]
    assert payload["count"] == 2
    assert [(task["id"], task["status"], task["branch"]) for task in payload["tasks"]] == [
        ("task-1", "Done", "feature"),
        ("task-2", "In Progress", None),
    ]
    assert ("debug", "Listed reconciled tasks") in context.logger.messages


def test_list_tasks_filters_and_groups_by_status() -> None:
    _, handles, _ = _setup(records=[_local("task-1", "To Do"), _local("task-2", "Done"), _local("task-3", "done")])

    payload = asyncio.run(handles.list_tasks.fn(status="Done", group_by_status=True))

    assert [task["id"] for task in payload["tasks"]] == ["task-2", "task-3"]
    assert payload["columns"]["Done"] == ["task-2"]
    assert payload["columns"]["To Do"] == []
    assert payload["columns"]["done"] == ["task-3"]


def test_list_tasks_propagates_first_load_failure() -> None:
    _, handles, store = _setup(records=[_local("task-1", "To Do")])
    store.error = OSError("unreadable")

    with pytest.raises(ReconciliationError):
        asyncio.run(handles.list_tasks.fn())


def test_task_locations_reports_latest_sighting() -> None:
    files = {"backlog/archive/tasks/task-3 - Old.md": "---\nid: task-3\n---\n"}
    _, handles, _ = _setup(files)

    payload = asyncio.run(handles.task_locations.fn(["task-3", "task-404"]))

    assert payload == [
        {
            "task_id": "task-3",
            "stage": "archived",
            "branch": "origin/feature",
            "modified_at": "2025-01-05T00:00:00+00:00",
            "path": "backlog/archive/tasks/task-3 - Old.md",
        }
    ]


def test_task_locations_without_git() -> None:
    settings = BacklogSettings(remote_operations=False)
    cache = ReconciliationCache(None, StubStore([]), settings)  # type: ignore[arg-type]
    handles = register_tools(StubServer(), settings=settings, cache=cache, git=None)

    with pytest.raises(RuntimeError):
        asyncio.run(handles.task_locations.fn(["task-1"]))


def test_refresh_tasks_starts_a_new_load() -> None:
    _, handles, _ = _setup(records=[_local("task-1", "To Do")])

    async def scenario():
        await handles.list_tasks.fn()
        refreshed = await handles.refresh_tasks.fn()
        payload = await handles.list_tasks.fn()
        return refreshed, payload

    refreshed, payload = asyncio.run(scenario())

    assert refreshed == {"state": "loading", "loads": 2}
    assert payload["count"] == 1
    assert handles.cache.load_count == 2
