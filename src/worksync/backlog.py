"""Protected-branch computation from the task backlog.

The backlog (``backlog.yaml``) is owned by the task tracker; this module only
reads it to learn which branches are still tied to active tasks::

    version: "1.0"
    tasks:
      TASK-00001:
        title: Add login
        status: in_progress
        repo: github.com/acme/web
        branch: feat/login
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from worksync.sync import ProtectedBranchSet
from worksync.worktree.naming import normalize_repo_path

logger = logging.getLogger(__name__)


class BacklogError(RuntimeError):
    """Raised when the backlog file cannot be parsed."""


class BacklogEntry(BaseModel):
    """A task as recorded in the backlog; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    title: str = ""
    status: str = ""
    repo: str = ""
    branch: str = ""


class BacklogFile(BaseModel):
    """Top-level structure of ``backlog.yaml``."""

    model_config = ConfigDict(extra="ignore")

    version: str = "1.0"
    tasks: dict[str, BacklogEntry] = Field(default_factory=dict)


def load_backlog(path: Path) -> list[BacklogEntry]:
    """Load backlog entries from ``path``.

    A missing file means an empty backlog. Entries without an explicit ``id``
    take their mapping key.

    Raises:
        BacklogError: If the file is not valid YAML or does not match the schema.
    """
    if not path.exists():
        logger.debug("No backlog at %s; nothing is protected", path)
        return []

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        backlog = BacklogFile.model_validate(payload)
    except (yaml.YAMLError, ValidationError) as exc:
        raise BacklogError(f"invalid backlog {path}: {exc}") from exc

    entries: list[BacklogEntry] = []
    for key, entry in backlog.tasks.items():
        if not entry.id:
            entry = entry.model_copy(update={"id": str(key)})
        entries.append(entry)
    return entries


def protected_branches(
    entries: Iterable[BacklogEntry],
    inactive_statuses: Iterable[str] = ("done", "archived"),
) -> ProtectedBranchSet:
    """Map each repository to the branches of its still-active tasks."""
    inactive = {status.lower() for status in inactive_statuses}
    protected: dict[str, set[str]] = {}
    for entry in entries:
        if not entry.repo or not entry.branch:
            continue
        if entry.status.lower() in inactive:
            continue
        protected.setdefault(normalize_repo_path(entry.repo), set()).add(entry.branch)
    return protected
