"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .utils import sanitize_environment


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitCommandError(GitRunnerError):
    """Raised when a git command exits with a non-zero status."""

    def __init__(self, args: tuple[str, ...], returncode: int, stderr: str) -> None:
        self.args_used = args
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() or "no error output"
        super().__init__(f"git {' '.join(args)} failed with exit code {returncode}: {detail}")


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitRunner:
    """Execute git commands asynchronously inside one repository."""

    def __init__(self, repo_path: Path, executable: Path | None = None) -> None:
        self._repo_path = Path(repo_path)
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    async def version(self) -> GitExecutionResult:
        return await self.run("--version")

    async def run(self, *args: str) -> GitExecutionResult:
        """Run ``git <args>`` and return its result without checking the exit code."""

        return await self._invoke(*args)

    async def check(self, *args: str) -> str:
        """Run ``git <args>`` and return stdout, raising on a non-zero exit."""

        result = await self._invoke(*args)
        if not result.ok:
            raise GitCommandError(tuple(args), result.returncode, result.stderr)
        return result.stdout

    async def _invoke(self, *args: str) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(self._repo_path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=sanitize_environment(),
        )
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(args=tuple(args), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeGitRunner(GitRunner):
    """Test double that answers git invocations from a lookup table.

    ``responses`` maps an argument tuple to a result; unknown invocations
    succeed with empty output unless ``default`` is given.
    """

    def __init__(  # type: ignore[override]
        self,
        responses: Mapping[tuple[str, ...], GitExecutionResult] | None = None,
        *,
        default: GitExecutionResult | None = None,
        queued: Iterable[GitExecutionResult] | None = None,
    ) -> None:
        self._responses = dict(responses or {})
        self._queued = list(queued or [])
        self._default = default
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")
        self._repo_path = Path(".")

    async def _invoke(self, *args: str) -> GitExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if tuple(args) in self._responses:
            return self._responses[tuple(args)]
        if self._queued:
            return self._queued.pop(0)
        if self._default is not None:
            return self._default
        return GitExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations
