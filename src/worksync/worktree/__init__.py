"""
Git worktree management for worksync.

This package provides a cohesive interface for mirroring remote repositories
and creating, listing, and removing the per-task worktrees cut from them.
"""

from .config import WorkspaceSettings, get_workspace_settings
from .exceptions import (
    GitCommandError,
    InvalidRepoPathError,
    RepoProvisionError,
    WorktreeConflictError,
    WorktreeError,
    WorktreeNotFoundError,
    WorktreeValidationError,
)
from .manager import WorktreeManager
from .naming import normalize_repo_path, parse_repo_path
from .provision import RepoMirrorProvisioner
from .types import RepositoryIdentifier, Worktree, WorktreeRequest

__all__ = [
    "WorkspaceSettings",
    "get_workspace_settings",
    "GitCommandError",
    "InvalidRepoPathError",
    "RepoProvisionError",
    "WorktreeConflictError",
    "WorktreeError",
    "WorktreeNotFoundError",
    "WorktreeValidationError",
    "WorktreeManager",
    "RepoMirrorProvisioner",
    "RepositoryIdentifier",
    "Worktree",
    "WorktreeRequest",
    "normalize_repo_path",
    "parse_repo_path",
]
