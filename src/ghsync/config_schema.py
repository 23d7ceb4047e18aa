"""Configuration schema for ghsync.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Dict, Literal

from pydantic import BaseModel, Field, field_validator

from .remote import (
    DEFAULT_API_URL,
    DEFAULT_GRAPHQL_URL,
    DEFAULT_MAX_BACKOFF,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
)


class RepositoryConfig(BaseModel):
    """Target repository (empty = detect from the local clone or CI environment)."""

    owner: str = Field(default="", description="Repository owner")
    name: str = Field(default="", description="Repository name")


class ApiConfig(BaseModel):
    """GitHub API settings."""

    url: str = Field(default=DEFAULT_API_URL, description="REST API base URL")
    graphql_url: str = Field(default=DEFAULT_GRAPHQL_URL, description="GraphQL endpoint")
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Request timeout in seconds")
    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        description="Retries when rate limited",
    )
    max_backoff: float = Field(
        default=DEFAULT_MAX_BACKOFF,
        ge=0,
        description="Longest wait between rate-limit retries, in seconds",
    )
    host: str = Field(
        default="github.com",
        description="Git host matched against the local remote URL",
    )
    no_cli_token: bool = Field(
        default=False,
        description="Never fall back to `gh auth token`",
    )


class ContentConfig(BaseModel):
    """Defaults for the content command."""

    create_branch: bool = Field(default=True, description="Create the target branch if missing")
    separator: str = Field(default=":", min_length=1, description="File spec separator")
    message: str = Field(default="Commit via API", description="Default commit message")
    user_trailer: str = Field(
        default="Co-Authored-By",
        description="Trailer key for the commit author (empty = no author trailer)",
    )
    user_name: str = Field(default="", description="Author name for the trailer")
    user_email: str = Field(default="", description="Author email for the trailer")
    trailers: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra trailers appended to every commit message",
    )


class TagConfig(BaseModel):
    message: str = Field(default="Tag created via API", description="Default annotated tag message")
    lightweight: bool = Field(default=False, description="Create lightweight tags by default")


class UpdateRefConfig(BaseModel):
    source_type: Literal["heads", "tags"] = Field(
        default="heads",
        description="Namespace for unqualified source refs",
    )
    target_type: Literal["heads", "tags"] = Field(
        default="tags",
        description="Namespace for unqualified target refs",
    )


class PullRequestConfig(BaseModel):
    draft: bool = Field(default=False, description="Open pull requests as drafts")
    auto_merge: Literal["off", "merge", "squash", "rebase"] = Field(
        default="off",
        description="Auto-merge method for new pull requests",
    )


class OutputConfig(BaseModel):
    format: Literal["json", "yaml"] = Field(default="json", description="Report format")
    compact: bool = Field(default=False, description="Single-line JSON output")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Log level",
    )
    dir: str = Field(
        default="",
        description="Log directory (empty = stderr only)",
    )
    max_bytes: int = Field(
        default=10485760,  # 10MB
        ge=0,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("dir")
    @classmethod
    def validate_log_dir(cls, v: str) -> str:
        """Warn if log path exists but is not a directory (it is created on use)."""
        if v:
            path = Path(v).expanduser()
            if path.exists() and not path.is_dir():
                warnings.warn(
                    f"Log path exists but is not a directory: {v}",
                    UserWarning,
                )
        return v


class GhsyncConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(
        default=1,
        ge=1,
        description="Config schema version",
    )

    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    tag: TagConfig = Field(default_factory=TagConfig)
    update_ref: UpdateRefConfig = Field(default_factory=UpdateRefConfig)
    pull_request: PullRequestConfig = Field(default_factory=PullRequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "GhsyncConfig":
        """Create config with all defaults."""
        return cls()
