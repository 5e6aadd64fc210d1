"""Parse Markdown task files with a YAML front-matter block."""

from __future__ import annotations

from typing import Any

import frontmatter
import yaml
from pydantic import ValidationError

from .models import TaskRecord

# Set by the loaders from where the file was found, never from the file itself.
_PROVENANCE_KEYS = frozenset({"stage", "origin", "branch", "last_modified"})


class RecordParseError(ValueError):
    """Raised when a task file cannot be turned into a TaskRecord."""


def split_front_matter(content: str) -> tuple[dict[str, Any], str]:
    text = content or ""
    if not frontmatter.checks(text):
        raise RecordParseError("missing front-matter block")
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as exc:
        raise RecordParseError(f"invalid YAML front matter: {exc}") from exc
    return dict(post.metadata), post.content.strip()


def parse_task(content: str) -> TaskRecord:
    """Build a TaskRecord from file content."""

    metadata, body = split_front_matter(content)
    if not str(metadata.get("id") or "").strip():
        raise RecordParseError("task has no id")
    document = {key: value for key, value in metadata.items() if key not in _PROVENANCE_KEYS}
    document["description"] = body
    try:
        return TaskRecord.model_validate(document)
    except ValidationError as exc:
        raise RecordParseError(f"task validation failed: {exc}") from exc


__all__ = ["RecordParseError", "parse_task", "split_front_matter"]
