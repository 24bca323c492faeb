"""Naming helpers for repository identifiers, clone URLs and worktree directories."""

from __future__ import annotations

from pathlib import Path

from .exceptions import InvalidRepoPathError, WorktreeValidationError
from .types import RepositoryIdentifier

_URL_PREFIXES: tuple[str, ...] = ("https://", "http://", "ssh://", "git@")
_MIRROR_PREFIX = "repos/"
WORK_DIRNAME = "work"


def _strip_prefix(value: str, prefix: str) -> str:
    return value[len(prefix) :] if value.startswith(prefix) else value


def normalize_repo_path(repo_path: str) -> str:
    """
    Convert any accepted repository identifier into ``platform/org/repo`` form.

    Handles canonical paths, SSH shorthand (``github.com:org/repo``), full SSH
    and HTTPS URLs, a leading ``repos/`` mirror prefix, ``.git`` suffixes,
    backslashes and trailing slashes. Rules are reapplied until the value stops
    changing, so repeated prefixes or suffixes are removed too and normalizing
    an already normalized value returns it unchanged.
    """
    cleaned = repo_path
    while True:
        previous = cleaned
        cleaned = _normalize_once(cleaned)
        if cleaned == previous:
            return cleaned


def _normalize_once(cleaned: str) -> str:
    cleaned = cleaned.strip()
    for prefix in _URL_PREFIXES:
        cleaned = _strip_prefix(cleaned, prefix)
    cleaned = _strip_prefix(cleaned, _MIRROR_PREFIX)

    # Only the scp-style separator is rewritten; "org/repo:tag" stays intact.
    idx = cleaned.find(":")
    if idx > 0 and "/" not in cleaned[:idx]:
        cleaned = f"{cleaned[:idx]}/{cleaned[idx + 1 :]}"

    cleaned = cleaned.replace("\\", "/").rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]
    return cleaned.rstrip("/")


def parse_repo_path(repo_path: str) -> RepositoryIdentifier:
    """
    Split a repository identifier into platform, org and repo.

    Extra leading path components are tolerated: the last three segments win.

    Raises:
        InvalidRepoPathError: If fewer than three usable segments remain.
    """
    parts = normalize_repo_path(repo_path).split("/")
    if len(parts) < 3 or not all(parts[-3:]):
        raise InvalidRepoPathError(
            f"invalid repo path {repo_path!r}: expected format github.com/org/repo"
        )
    platform, org, repo = parts[-3:]
    return RepositoryIdentifier(platform=platform, org=org, repo=repo)


def https_clone_url(identifier: RepositoryIdentifier) -> str:
    """Return the HTTPS clone URL for a repository."""
    return f"https://{identifier.platform}/{identifier.org}/{identifier.repo}.git"


def ssh_clone_url(identifier: RepositoryIdentifier) -> str:
    """Return the scp-style SSH clone URL for a repository."""
    return f"git@{identifier.platform}:{identifier.org}/{identifier.repo}.git"


def worktree_path(base_path: Path, task_id: str) -> Path:
    """
    Return the canonical worktree directory for a task.

    Raises:
        WorktreeValidationError: If the task id is empty or not a single path segment.
    """
    if not task_id or task_id in {".", ".."} or "/" in task_id or "\\" in task_id:
        raise WorktreeValidationError(f"invalid task id {task_id!r}: must be a single path segment")
    return base_path / WORK_DIRNAME / task_id
