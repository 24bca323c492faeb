"""Typed structures representing repositories and worktrees."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class RepositoryIdentifier:
    """Canonical platform/org/repo triple for a remote repository."""

    platform: str
    org: str
    repo: str

    @property
    def canonical(self) -> str:
        """Return the ``platform/org/repo`` form."""
        return f"{self.platform}/{self.org}/{self.repo}"

    def mirror_dir(self, base_path: Path) -> Path:
        """Return the local mirror location under ``base_path/repos``."""
        return base_path / "repos" / self.platform / self.org / self.repo

    def __str__(self) -> str:
        return self.canonical


@dataclass(slots=True)
class WorktreeRequest:
    """Parameters needed to create a task worktree."""

    repo_path: str
    branch_name: str
    task_id: str
    base_branch: str | None = None


@dataclass(slots=True)
class Worktree:
    """A git worktree, reconstructed from git or filesystem state."""

    path: Path
    branch: str | None = None
    task_id: str | None = None
    repo_path: str = ""

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "path": str(self.path),
            "branch": self.branch,
            "task_id": self.task_id,
            "repo_path": self.repo_path,
        }
