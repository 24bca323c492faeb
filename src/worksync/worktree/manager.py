"""High-level orchestration for task worktree lifecycle."""

from __future__ import annotations

import logging
from pathlib import Path

from . import git
from .config import WorkspaceSettings, get_workspace_settings
from .exceptions import (
    GitCommandError,
    RepoProvisionError,
    WorktreeConflictError,
    WorktreeNotFoundError,
    WorktreeValidationError,
)
from .naming import parse_repo_path, worktree_path
from .provision import RepoMirrorProvisioner
from .types import Worktree, WorktreeRequest

logger = logging.getLogger(__name__)


class WorktreeManager:
    """Creates, removes and looks up per-task worktrees.

    Every worktree lives at ``base_path/work/<task_id>`` regardless of the
    repository backing it. Remote repositories are mirrored under
    ``base_path/repos/<platform>/<org>/<repo>`` before a worktree is cut.
    """

    def __init__(
        self,
        settings: WorkspaceSettings | None = None,
        *,
        base_path: Path | None = None,
        provisioner: RepoMirrorProvisioner | None = None,
    ):
        self.settings = settings or get_workspace_settings()
        self.base_path = (base_path or self.settings.base_path).resolve()
        self.timeout = self.settings.git_timeout
        self.provisioner = provisioner or RepoMirrorProvisioner(timeout=self.timeout)

    def worktree_path(self, task_id: str) -> Path:
        """Return the canonical worktree directory for ``task_id``."""
        return worktree_path(self.base_path, task_id)

    # ------------------------------------------------------------------
    # Creation

    def create_worktree(self, request: WorktreeRequest) -> Path:
        """Create a worktree for a task and return its absolute path.

        An absolute ``repo_path`` is used as a local repository directly;
        anything else is parsed as a ``platform/org/repo`` identifier and
        mirrored (cloned or refreshed) first.

        Raises:
            WorktreeValidationError: If a required field is empty or malformed.
            RepoProvisionError: If the mirror cannot be prepared.
            WorktreeConflictError: If the task's worktree path exists and is not an empty directory.
            GitCommandError: If ``git worktree add`` fails.
        """
        if not request.repo_path:
            raise WorktreeValidationError("WorktreeRequest.repo_path must not be empty")
        if not request.task_id:
            raise WorktreeValidationError("WorktreeRequest.task_id must not be empty")
        if not request.branch_name:
            raise WorktreeValidationError("WorktreeRequest.branch_name must not be empty")

        target = self.worktree_path(request.task_id)

        if Path(request.repo_path).is_absolute():
            source = Path(request.repo_path)
        else:
            identifier = parse_repo_path(request.repo_path)
            source = identifier.mirror_dir(self.base_path)
            try:
                self.provisioner.ensure_ready(source, identifier)
            except RepoProvisionError as exc:
                raise RepoProvisionError(f"preparing repository {identifier}: {exc}") from exc

        # git accepts an existing empty directory as the worktree location.
        if target.exists() and (not target.is_dir() or any(target.iterdir())):
            raise WorktreeConflictError(f"Worktree directory already exists: {target}")

        args: list[str] = ["worktree", "add", "-b", request.branch_name, str(target)]
        if request.base_branch:
            args.append(request.base_branch)

        git.run(args, cwd=source, timeout=self.timeout)
        logger.info(
            "Created worktree for task %s at %s (branch %s)",
            request.task_id,
            target,
            request.branch_name,
        )
        return target

    # ------------------------------------------------------------------
    # Removal

    def remove_worktree(self, path: Path | str, *, force: bool = False) -> None:
        """Remove the worktree at ``path``.

        Not idempotent: a path that no longer exists is an error.

        Raises:
            WorktreeValidationError: If ``path`` is empty.
            WorktreeNotFoundError: If ``path`` is not an existing directory.
            GitCommandError: If git refuses to remove the worktree.
        """
        if not str(path):
            raise WorktreeValidationError("worktree path must not be empty")
        target = Path(path)
        if not target.is_dir():
            raise WorktreeNotFoundError(f"No worktree found at {target}")

        owner = self._owning_repository(target)
        args: list[str] = ["worktree", "remove"]
        if force:
            args.append("--force")
        args.append(str(target.resolve()))

        git.run(args, cwd=owner, timeout=self.timeout)
        logger.info("Removed worktree %s", target)

    def unsaved_work(self, path: Path | str) -> list[str]:
        """Describe work in ``path`` that removal would discard.

        Returns an empty list when the worktree is clean and fully pushed.
        Both checks are advisory; a worktree without an upstream simply has
        no unpushed commits reported.
        """
        target = Path(path)
        issues: list[str] = []

        status = git.run(["status", "--porcelain"], cwd=target, check=False, timeout=self.timeout)
        if status.returncode == 0 and (status.stdout or b"").strip():
            issues.append("uncommitted changes in worktree")

        unpushed = git.run(
            ["log", "--oneline", "@{upstream}..HEAD"],
            cwd=target,
            check=False,
            timeout=self.timeout,
        )
        if unpushed.returncode == 0 and (unpushed.stdout or b"").strip():
            issues.append("unpushed commits in worktree")

        return issues

    # ------------------------------------------------------------------
    # Lookup

    def list_worktrees(self, repo_dir: Path | str) -> list[Worktree]:
        """List all worktrees of the repository at ``repo_dir``.

        Raises:
            WorktreeValidationError: If ``repo_dir`` is empty.
            GitCommandError: If ``repo_dir`` is not a git repository.
        """
        if not str(repo_dir):
            raise WorktreeValidationError("repo_dir must not be empty")
        result = git.run(["worktree", "list", "--porcelain"], cwd=Path(repo_dir), timeout=self.timeout)
        payload = (result.stdout or b"").decode("utf-8", errors="replace")
        return git.parse_worktree_list(payload, str(repo_dir))

    def get_worktree_for_task(self, task_id: str) -> Worktree:
        """Return the worktree for ``task_id``.

        Raises:
            WorktreeValidationError: If ``task_id`` is empty.
            WorktreeNotFoundError: If ``base_path/work/<task_id>`` is not a directory.
        """
        if not task_id:
            raise WorktreeValidationError("task_id must not be empty")
        target = self.worktree_path(task_id)
        if not target.is_dir():
            raise WorktreeNotFoundError(f"no worktree found for task {task_id!r}")
        return Worktree(path=target, task_id=task_id)

    # ------------------------------------------------------------------
    # Internal helpers

    def _owning_repository(self, path: Path) -> Path:
        """Return the working directory of the repository that owns a worktree."""
        try:
            raw = git.output(["rev-parse", "--git-common-dir"], cwd=path, timeout=self.timeout)
        except GitCommandError as exc:
            raise WorktreeNotFoundError(f"{path} is not a git worktree: {exc.output}") from exc
        # Older git prints the common dir relative to the working directory.
        common_dir = (path / raw).resolve()
        # Non-bare repositories keep metadata in <repo>/.git.
        return common_dir.parent if common_dir.name == ".git" else common_dir
