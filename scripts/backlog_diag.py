"""Backlog MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from backlog_mcp.config import BacklogSettings
from backlog_mcp.git import GitCommandError, GitNotFoundError, GitOperations, GitRunner
from backlog_mcp.reconcile import ReconciliationCache, ReconciliationError, locate_latest
from backlog_mcp.records import LocalRecordStore


def load_git(settings: BacklogSettings) -> GitOperations:
    try:
        runner = GitRunner(settings.repo_path, Path(settings.git_path) if settings.git_path else None)
    except GitNotFoundError as exc:
        print(f"git unavailable: {exc}")
        raise SystemExit(1)
    return GitOperations(
        runner,
        remote_name=settings.remote_name,
        remote_operations=settings.remote_operations,
    )


def cmd_tasks(args: argparse.Namespace) -> None:
    settings = BacklogSettings()
    git = load_git(settings)
    store = LocalRecordStore(settings.repo_path, settings.backlog_directory)
    cache = ReconciliationCache(git, store, settings)
    if args.verbose:
        cache.set_progress_callback(print)

    try:
        result = asyncio.run(cache.get_result())
    except ReconciliationError as exc:
        print(f"Reconciliation failed: {exc}")
        raise SystemExit(1)

    records = result.ordered()
    if args.status:
        records = [record for record in records if record.status.lower() == args.status.lower()]

    if args.json:
        print(json.dumps([record.summary() for record in records], indent=2))
    else:
        for record in records:
            origin = record.branch or record.origin.value
            print(f"{record.id} [{record.status}] {record.title} <- {origin}")


def cmd_locate(args: argparse.Namespace) -> None:
    settings = BacklogSettings()
    git = load_git(settings)
    sightings = asyncio.run(
        locate_latest(
            git,
            args.task_ids,
            backlog_directory=settings.backlog_directory,
            batch_size=settings.location_batch_size,
        )
    )
    payload = [sightings[task_id].as_dict() for task_id in args.task_ids if task_id in sightings]
    print(json.dumps(payload, indent=2))


def cmd_remote(args: argparse.Namespace) -> None:
    settings = BacklogSettings()
    git = load_git(settings)

    async def _collect() -> dict:
        fetched = await git.fetch_remote() if args.fetch else False
        branches = await git.list_remote_branches()
        return {
            "remote": settings.remote_name,
            "remote_operations": settings.remote_operations,
            "fetched": fetched,
            "branches": branches,
        }

    try:
        payload = asyncio.run(_collect())
    except GitCommandError as exc:
        print(f"git failed: {exc}")
        raise SystemExit(1)
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backlog MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_tasks = sub.add_parser("tasks", help="List reconciled active tasks")
    p_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_tasks.add_argument("--status", help="Only show tasks with this status")
    p_tasks.add_argument("--verbose", action="store_true", help="Print loading progress")
    p_tasks.set_defaults(func=cmd_tasks)

    p_locate = sub.add_parser("locate", help="Show where tasks were most recently changed")
    p_locate.add_argument("task_ids", nargs="+", metavar="TASK_ID")
    p_locate.set_defaults(func=cmd_locate)

    p_remote = sub.add_parser("remote", help="List remote branches")
    p_remote.add_argument("--fetch", action="store_true", help="Fetch before listing")
    p_remote.set_defaults(func=cmd_remote)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
