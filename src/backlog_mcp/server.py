"""FastMCP server bootstrap for backlog-mcp."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import BacklogSettings, get_settings
from .git import GitNotFoundError, GitOperations, GitRunner
from .reconcile import ReconciliationCache
from .records import LocalRecordSource, LocalRecordStore
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the backlog server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def build_git(settings: BacklogSettings, runner: GitRunner | None = None) -> tuple[GitOperations | None, dict]:
    """Construct git access, returning ``(None, metadata)`` when git is missing."""

    git_metadata = {"available": False, "version": None, "error": None}

    if runner is None:
        try:
            runner = GitRunner(settings.repo_path, Path(settings.git_path) if settings.git_path else None)
        except GitNotFoundError as exc:
            git_metadata["error"] = str(exc)
            return None, git_metadata

    git_metadata["available"] = True
    try:
        version_result = _run_sync(runner.version())
        if version_result.ok:
            git_metadata["version"] = version_result.stdout.strip()
        else:
            git_metadata["error"] = version_result.stderr.strip() or "git --version failed"
    except OSError as exc:
        git_metadata["available"] = False
        git_metadata["error"] = str(exc)
        return None, git_metadata

    operations = GitOperations(
        runner,
        remote_name=settings.remote_name,
        remote_operations=settings.remote_operations,
    )
    return operations, git_metadata


def create_server(
    settings: Optional[BacklogSettings] = None,
    git_runner: GitRunner | None = None,
    store: LocalRecordSource | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the reconciliation cache and tools."""

    settings = settings or get_settings()
    git, git_metadata = build_git(settings, git_runner)

    cache_settings = settings
    if git is None and settings.remote_operations:
        logging.getLogger(__name__).warning(
            "git unavailable; serving local tasks only",
            extra={"error": git_metadata.get("error")},
        )
        cache_settings = settings.model_copy(update={"remote_operations": False})

    store = store or LocalRecordStore(settings.repo_path, settings.backlog_directory)
    cache = ReconciliationCache(git, store, cache_settings)  # type: ignore[arg-type]

    server = FastMCP(
        name="Backlog MCP",
        version=__version__,
        instructions=(
            "Backlog MCP reconciles task records spread across git branches into "
            "one view per task. Use the tools to list reconciled tasks, see where a "
            "task last changed, and trigger a refresh."
        ),
    )

    handles = register_tools(server, settings=cache_settings, cache=cache, git=git)

    @server.resource(
        "resource://backlog/status",
        name="backlog_status",
        title="Backlog MCP Status",
        description="Reports the reconciliation cache state and configuration.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        payload = status_payload()
        payload["request_id"] = getattr(context, "request_id", None)
        return json.dumps(payload)

    def status_payload() -> dict:
        snapshot = cache.peek()
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "git": {"path": settings.git_path, **git_metadata},
            "config": {
                "repo_path": str(settings.repo_path),
                "backlog_directory": settings.backlog_directory,
                "statuses": list(settings.statuses),
                "resolution_strategy": settings.resolution_strategy,
                "remote_operations": cache_settings.remote_operations,
                "remote_name": settings.remote_name,
                "cache_ttl_seconds": settings.cache_ttl_seconds,
            },
            "cache": {
                "state": cache.state.value,
                "loads": cache.load_count,
                "task_count": len(snapshot.records) if snapshot else None,
                "computed_at": cache.computed_at,
            },
        }

    setattr(server, "git", git)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "cache", cache)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_resource", status_resource)
    setattr(server, "status_payload", status_payload)
    return server


def main() -> None:
    """Entry point for running the backlog MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Backlog MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "git_available": getattr(server, "git_metadata", {}).get("available"),
            "repo_path": str(settings.repo_path),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
