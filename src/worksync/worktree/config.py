"""Configuration helpers for workspace operations."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkspaceSettings(BaseSettings):
    """Resolved configuration for mirrors, worktrees and repository sync.

    Attributes:
        base_path: Workspace root holding ``repos/`` mirrors and ``work/`` worktrees
        sync_max_concurrency: Upper bound on repositories synchronized at once
        git_timeout: Optional per-command timeout for git invocations (seconds)
        backlog_file: Backlog file, relative to ``base_path`` unless absolute
        inactive_statuses: Task statuses whose branches are no longer protected
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKSYNC_",
        env_file=".env",
        extra="ignore",
    )

    base_path: Path = Field(
        default_factory=Path.cwd,
        description="Workspace root directory",
    )
    sync_max_concurrency: int = Field(
        default=8,
        gt=0,
        description="Maximum number of repositories synchronized concurrently",
    )
    git_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Timeout in seconds for each git command; unset means no timeout",
    )
    backlog_file: Path = Field(
        default=Path("backlog.yaml"),
        description="Task backlog used to compute protected branches",
    )
    inactive_statuses: list[str] = Field(
        default_factory=lambda: ["done", "archived"],
        description="Task statuses that no longer protect their branch",
    )

    @field_validator("base_path")
    @classmethod
    def _resolve_base_path(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def repos_dir(self) -> Path:
        """Directory holding ``platform/org/repo`` mirrors."""
        return self.base_path / "repos"

    @property
    def backlog_path(self) -> Path:
        """Absolute location of the backlog file."""
        if self.backlog_file.is_absolute():
            return self.backlog_file
        return self.base_path / self.backlog_file


@lru_cache
def get_workspace_settings() -> WorkspaceSettings:
    """Return memoized workspace settings."""
    return WorkspaceSettings()
