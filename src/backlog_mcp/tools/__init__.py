"""Tool registration for backlog-mcp."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..config import BacklogSettings
from ..git import GitOperations
from ..reconcile import (
    ReconciliationCache,
    ReconciliationCancelled,
    ReconciliationError,
    locate_latest,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    list_tasks: Any
    task_locations: Any
    refresh_tasks: Any
    cache: ReconciliationCache


def register_tools(
    server: FastMCP,
    *,
    settings: BacklogSettings,
    cache: ReconciliationCache,
    git: GitOperations | None,
) -> ToolHandles:
    """Register the reconciliation tools on the server."""

    async def _list_tasks(
        status: str | None = None,
        group_by_status: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Return the reconciled active tasks, optionally filtered by status."""

        try:
            result = await cache.get_result()
        except ReconciliationCancelled:
            _emit_log(context, "info", "Task loading was cancelled")
            return {"cancelled": True, "statuses": list(settings.statuses), "tasks": []}
        except ReconciliationError as exc:
            _emit_log(context, "error", "Task loading failed", extra={"error": str(exc)})
            raise

        records = result.ordered()
        if status:
            wanted = status.strip().lower()
            records = [record for record in records if record.status.lower() == wanted]

        payload: dict[str, Any] = {
            "cancelled": False,
            "statuses": list(result.statuses),
            "count": len(records),
            "tasks": [record.summary() for record in records],
        }
        if group_by_status:
            kept = {record.id for record in records}
            payload["columns"] = {
                column: [record.id for record in column_records if record.id in kept]
                for column, column_records in result.by_status().items()
            }

        _emit_log(context, "debug", "Listed reconciled tasks", extra={"count": len(records)})
        return payload

    async def _task_locations(task_ids: list[str], context: Context | None = None) -> list[dict[str, Any]]:
        """Return the newest branch/directory sighting for each requested id."""

        if git is None:
            raise RuntimeError("git is unavailable; cannot inspect branches")
        sightings = await locate_latest(
            git,
            task_ids,
            backlog_directory=settings.backlog_directory,
            batch_size=settings.location_batch_size,
        )
        _emit_log(
            context,
            "debug",
            "Located tasks across branches",
            extra={"requested": len(task_ids), "found": len(sightings)},
        )
        return [sightings[task_id].as_dict() for task_id in task_ids if task_id in sightings]

    async def _refresh_tasks(context: Context | None = None) -> dict[str, Any]:
        """Discard freshness of the cached view and start a background reload."""

        cache.invalidate()
        cache.start_loading()
        _emit_log(context, "info", "Task refresh requested")
        return {"state": cache.state.value, "loads": cache.load_count}

    tool_list = server.tool(
        name="list_tasks",
        description=(
            "List tasks reconciled across local and remote branches. Conflicting "
            "versions are resolved with the configured strategy and tasks archived "
            "or demoted on a newer branch are hidden."
        ),
    )(_list_tasks)

    tool_locations = server.tool(
        name="task_locations",
        description="Show on which branch and in which lifecycle directory each task was most recently changed.",
    )(_task_locations)

    tool_refresh = server.tool(
        name="refresh_tasks",
        description="Start reloading the reconciled task view in the background.",
    )(_refresh_tasks)

    return ToolHandles(
        list_tasks=tool_list,
        task_locations=tool_locations,
        refresh_tasks=tool_refresh,
        cache=cache,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
