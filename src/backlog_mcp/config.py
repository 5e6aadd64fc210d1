"""Configuration management for backlog-mcp."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

ResolutionStrategy = Literal["most_recent", "most_progressed"]

DEFAULT_STATUSES: tuple[str, ...] = ("To Do", "In Progress", "Done")


class BacklogSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    repo_path: Path = Field(default=Path("."), validation_alias="BACKLOG_REPO_PATH")
    backlog_directory: str = Field(default="backlog", validation_alias="BACKLOG_DIRECTORY")
    statuses: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_STATUSES, validation_alias="BACKLOG_STATUSES"
    )
    resolution_strategy: ResolutionStrategy = Field(
        default="most_progressed", validation_alias="BACKLOG_RESOLUTION_STRATEGY"
    )
    remote_operations: bool = Field(default=True, validation_alias="BACKLOG_REMOTE_OPERATIONS")
    remote_name: str = Field(default="origin", validation_alias="BACKLOG_REMOTE_NAME")
    cache_ttl_seconds: float = Field(default=30.0, validation_alias="BACKLOG_CACHE_TTL")
    location_batch_size: int = Field(default=50, validation_alias="BACKLOG_LOCATION_BATCH_SIZE")
    remote_max_concurrency: int = Field(default=16, validation_alias="BACKLOG_REMOTE_MAX_CONCURRENCY")
    git_path: str | None = Field(default=None, validation_alias="BACKLOG_GIT_PATH")
    log_level: str = Field(default="INFO", validation_alias="BACKLOG_LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "BACKLOG_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("statuses", mode="before")
    @classmethod
    def _parse_statuses(cls, value):
        if value is None or value == "":
            return DEFAULT_STATUSES
        if isinstance(value, str):
            items = [part.strip() for part in value.split(",")]
        elif isinstance(value, (list, tuple)):
            items = [str(part).strip() for part in value]
        else:
            raise ValueError("BACKLOG_STATUSES must be a list or a comma-separated string")
        if not all(items):
            raise ValueError("BACKLOG_STATUSES must not contain empty entries")
        if len(set(items)) != len(items):
            raise ValueError("BACKLOG_STATUSES must not contain duplicates")
        return tuple(items)

    @field_validator("backlog_directory")
    @classmethod
    def _normalize_backlog_directory(cls, value: str) -> str:
        normalized = value.strip().strip("/")
        if not normalized:
            raise ValueError("BACKLOG_DIRECTORY must not be empty")
        return normalized

    @field_validator("cache_ttl_seconds")
    @classmethod
    def _validate_ttl(cls, value: float) -> float:
        if value < 0:
            raise ValueError("BACKLOG_CACHE_TTL must be >= 0")
        return value

    @field_validator("location_batch_size", "remote_max_concurrency")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("batch size and concurrency limits must be >= 1")
        return value


@lru_cache(maxsize=1)
def get_settings() -> BacklogSettings:
    """Return cached settings instance."""

    settings = BacklogSettings()
    settings.repo_path = settings.repo_path.expanduser().resolve()
    return settings


__all__ = ["BacklogSettings", "DEFAULT_STATUSES", "ResolutionStrategy", "get_settings"]
