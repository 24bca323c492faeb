"""Custom exceptions for worktree and mirror operations."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from subprocess import CompletedProcess
from typing import Sequence


class WorktreeError(RuntimeError):
    """Base exception for worktree related failures."""


class WorktreeValidationError(WorktreeError):
    """Raised when a request is missing required fields."""


class InvalidRepoPathError(WorktreeValidationError):
    """Raised when a repository identifier cannot be parsed into platform/org/repo."""


class WorktreeNotFoundError(WorktreeError):
    """Raised when a requested worktree cannot be located."""


class WorktreeConflictError(WorktreeError):
    """Raised when attempting to create a worktree over an existing directory."""


class RepoProvisionError(WorktreeError):
    """Raised when a local mirror cannot be cloned or recovered."""


@dataclass(slots=True)
class GitCommandError(WorktreeError):
    """Raised when an underlying Git command fails."""

    argv: Sequence[str]
    result: CompletedProcess[bytes]
    cwd: Path | None = None

    @property
    def output(self) -> str:
        """Return captured stderr, falling back to stdout."""
        stderr = (self.result.stderr or b"").decode("utf-8", errors="replace").strip()
        stdout = (self.result.stdout or b"").decode("utf-8", errors="replace").strip()
        return stderr or stdout

    def __str__(self) -> str:
        details = self.output
        location = f" in {self.cwd}" if self.cwd is not None else ""
        suffix = f": {details}" if details else ""
        return f"git command failed ({' '.join(self.argv)}){location}{suffix}"
