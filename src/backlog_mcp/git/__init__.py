"""Git CLI access for reconciliation."""

from .operations import BranchRef, GitOperations
from .runner import (
    FakeGitRunner,
    GitCommandError,
    GitExecutionResult,
    GitNotFoundError,
    GitRunner,
    GitRunnerError,
)

__all__ = [
    "BranchRef",
    "FakeGitRunner",
    "GitCommandError",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitOperations",
    "GitRunner",
    "GitRunnerError",
]
