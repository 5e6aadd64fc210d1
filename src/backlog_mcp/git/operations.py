"""Read-only git queries used by the reconciliation layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from .runner import GitCommandError, GitRunner
from .utils import looks_like_network_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BranchRef:
    """A branch name plus whether it is a remote-tracking branch."""

    name: str
    remote: bool = False
    remote_name: str = "origin"

    @property
    def ref(self) -> str:
        """Return the revision git should read for this branch."""

        return f"{self.remote_name}/{self.name}" if self.remote else self.name

    def __str__(self) -> str:
        return self.ref


def _lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


class GitOperations:
    """Thin async facade over the handful of git commands reconciliation needs."""

    def __init__(self, runner: GitRunner, *, remote_name: str = "origin", remote_operations: bool = True) -> None:
        self._runner = runner
        self.remote_name = remote_name
        self.remote_operations = remote_operations

    @property
    def runner(self) -> GitRunner:
        return self._runner

    async def fetch_remote(self) -> bool:
        """Update remote-tracking refs.

        Returns True when the fetch ran. Disabled remote operations and
        unreachable remotes return False; any other git failure raises
        ``GitCommandError``.
        """

        if not self.remote_operations:
            logger.debug("Remote operations are disabled; skipping fetch")
            return False

        result = await self._runner.run("fetch", self.remote_name)
        if result.ok:
            return True
        if looks_like_network_error(result.stderr):
            logger.warning(
                "Fetch from remote failed; remote tasks will be skipped",
                extra={"remote": self.remote_name, "stderr": result.stderr.strip()[:400]},
            )
            return False
        raise GitCommandError(result.args, result.returncode, result.stderr)

    async def list_remote_branches(self) -> list[str]:
        output = await self._runner.check("branch", "-r", "--format=%(refname:strip=2)")
        prefix = f"{self.remote_name}/"
        branches: list[str] = []
        for line in _lines(output):
            if not line.startswith(prefix):
                continue
            name = line[len(prefix):]
            if not name or name == "HEAD":
                continue
            branches.append(name)
        return branches

    async def list_all_branches(self) -> list[BranchRef]:
        """Return local heads followed by remote-tracking branches of the configured remote."""

        output = await self._runner.check(
            "for-each-ref",
            "--format=%(refname)",
            "refs/heads",
            f"refs/remotes/{self.remote_name}",
        )
        remote_prefix = f"refs/remotes/{self.remote_name}/"
        branches: list[BranchRef] = []
        for line in _lines(output):
            if line.startswith("refs/heads/"):
                branches.append(BranchRef(name=line[len("refs/heads/"):], remote_name=self.remote_name))
            elif line.startswith(remote_prefix):
                name = line[len(remote_prefix):]
                if name and name != "HEAD":
                    branches.append(BranchRef(name=name, remote=True, remote_name=self.remote_name))
        return branches

    async def list_files_in_tree(self, ref: str, path: str) -> list[str]:
        output = await self._runner.check("ls-tree", "-r", "--name-only", ref, "--", path)
        return _lines(output)

    async def read_file_at_ref(self, ref: str, path: str) -> str:
        return await self._runner.check("show", f"{ref}:{path}")

    async def last_modified_at_ref(self, ref: str, path: str) -> datetime | None:
        """Return the author date of the last commit touching ``path`` at ``ref``."""

        result = await self._runner.run("log", "-1", "--format=%aI", ref, "--", path)
        if not result.ok:
            return None
        stamp = result.stdout.strip()
        if not stamp:
            return None
        try:
            parsed = datetime.fromisoformat(stamp)
        except ValueError:
            logger.debug("Unparseable commit date", extra={"ref": ref, "path": path, "value": stamp})
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def remote_ref(self, branch: str) -> str:
        return f"{self.remote_name}/{branch}"


__all__ = ["BranchRef", "GitOperations"]
