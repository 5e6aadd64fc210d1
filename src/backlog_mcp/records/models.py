"""Task record models shared by the loaders and the reconciler."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LifecycleStage(str, Enum):
    """Where a task file lives on a branch."""

    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class TaskOrigin(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


def _coerce_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_str_list(value: Any) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    return [str(value)]


class TaskRecord(BaseModel):
    """One version of a task as seen on one branch (or in the working tree)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., description="Stable task identifier, the reconciliation key.")
    title: str = Field(default="", description="Display title.")
    status: str = Field(default="", description="Free-text status matched against the configured list.")
    stage: LifecycleStage = Field(default=LifecycleStage.ACTIVE)
    updated_date: datetime | None = Field(
        default=None,
        description="Explicit update timestamp recorded in the task itself.",
    )
    last_modified: datetime | None = Field(
        default=None,
        description="Modification time of the file that held this version.",
    )
    origin: TaskOrigin = Field(default=TaskOrigin.LOCAL)
    branch: str | None = Field(default=None, description="Remote branch name for remote versions.")
    created_date: str = ""
    assignee: list[str] = Field(default_factory=list)
    labels: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    priority: str | None = None
    parent_task_id: str | None = None
    description: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        normalized = "" if value is None else str(value).strip()
        if not normalized:
            raise ValueError("Task id must not be empty")
        return normalized

    @field_validator("title", "status", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("created_date", mode="before")
    @classmethod
    def _created_as_text(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return str(value)

    @field_validator("updated_date", "last_modified", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> datetime | None:
        return _coerce_datetime(value)

    @field_validator("assignee", "labels", "dependencies", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any) -> list[str]:
        return _coerce_str_list(value)

    @field_validator("priority", "parent_task_id", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        if value is None or str(value).strip() == "":
            return None
        return str(value).strip()

    @property
    def effective_time(self) -> datetime | None:
        """Explicit update time when recorded, otherwise the file modification time."""

        return self.updated_date or self.last_modified

    def tagged(
        self,
        origin: TaskOrigin,
        *,
        branch: str | None = None,
        stage: LifecycleStage | None = None,
        last_modified: datetime | None = None,
    ) -> "TaskRecord":
        """Return a copy carrying provenance; the original is left untouched."""

        update: dict[str, Any] = {"origin": origin, "branch": branch}
        if stage is not None:
            update["stage"] = stage
        if last_modified is not None:
            update["last_modified"] = _coerce_datetime(last_modified)
        return self.model_copy(update=update)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "stage": self.stage.value,
            "origin": self.origin.value,
            "branch": self.branch,
            "updated_date": self.updated_date.isoformat() if self.updated_date else None,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
        }


__all__ = ["LifecycleStage", "TaskOrigin", "TaskRecord"]
