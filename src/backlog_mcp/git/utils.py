"""Utility helpers for the git runner."""

from __future__ import annotations

import os
import re
from typing import Mapping

_SANITIZED_VARS = {
    "GIT_DIR",
    "GIT_WORK_TREE",
    "GIT_INDEX_FILE",
    "PYTHONHOME",
    "PYTHONPATH",
}

_FORCED_VARS = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_PAGER": "cat",
    "LC_ALL": "C",
}

_NETWORK_ERROR_PATTERNS = (
    re.compile(r"could not resolve host", re.IGNORECASE),
    re.compile(r"unable to access", re.IGNORECASE),
    re.compile(r"could not read from remote", re.IGNORECASE),
    re.compile(r"connection (timed out|refused|reset)", re.IGNORECASE),
    re.compile(r"network is unreachable", re.IGNORECASE),
    re.compile(r"operation timed out", re.IGNORECASE),
)


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return an environment for git subprocesses that never prompts and never pages."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    env.update(_FORCED_VARS)
    if additional:
        env.update(additional)
    return env


def looks_like_network_error(message: str) -> bool:
    """Return True when git output describes an unreachable remote."""

    return any(pattern.search(message or "") for pattern in _NETWORK_ERROR_PATTERNS)
