"""Local mirror provisioning for remote repositories."""

from __future__ import annotations

import logging
from pathlib import Path

from . import git
from .exceptions import GitCommandError, RepoProvisionError
from .naming import https_clone_url, ssh_clone_url
from .types import RepositoryIdentifier

logger = logging.getLogger(__name__)


class RepoMirrorProvisioner:
    """Ensures a usable local mirror exists before worktrees are cut from it.

    Three on-disk states are handled:

    1. No git metadata: clone over HTTPS, falling back to SSH once.
    2. Metadata but no commits: fetch origin and check out the remote
       default branch when one exists.
    3. A populated mirror: refresh it from origin on a best-effort basis.
    """

    def __init__(self, *, timeout: float | None = None) -> None:
        self.timeout = timeout

    def ensure_ready(self, mirror_dir: Path, identifier: RepositoryIdentifier) -> None:
        """Make ``mirror_dir`` a usable mirror of ``identifier``.

        Raises:
            RepoProvisionError: If the mirror cannot be cloned, or an empty
                mirror cannot be fetched or checked out.
        """
        if not (mirror_dir / ".git").exists():
            self._clone(mirror_dir, identifier)
            return

        if not git.succeeds(["rev-parse", "HEAD"], cwd=mirror_dir, timeout=self.timeout):
            self._recover_empty(mirror_dir)
            return

        result = git.run(
            ["fetch", "origin"],
            cwd=mirror_dir,
            env=git.NO_PROMPT_ENV,
            check=False,
            timeout=self.timeout,
        )
        if result.returncode != 0:
            logger.debug("Skipping refresh of %s; fetch from origin failed", mirror_dir)

    def _clone(self, mirror_dir: Path, identifier: RepositoryIdentifier) -> None:
        try:
            mirror_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RepoProvisionError(f"creating parent directory {mirror_dir.parent}: {exc}") from exc

        https_url = https_clone_url(identifier)
        try:
            self._clone_from(https_url, mirror_dir)
            return
        except GitCommandError as https_exc:
            logger.debug("HTTPS clone of %s failed, retrying over SSH", identifier)
            https_error = https_exc

        ssh_url = ssh_clone_url(identifier)
        try:
            self._clone_from(ssh_url, mirror_dir)
        except GitCommandError as ssh_exc:
            raise RepoProvisionError(
                "git clone failed (tried HTTPS and SSH):\n"
                f"  HTTPS: {https_error.output}\n"
                f"  SSH: {ssh_exc.output}"
            ) from ssh_exc

    def _clone_from(self, url: str, mirror_dir: Path) -> None:
        logger.info("Cloning %s into %s", url, mirror_dir)
        git.run(
            ["clone", "--", url, str(mirror_dir)],
            cwd=mirror_dir.parent,
            env=git.NO_PROMPT_ENV,
            timeout=self.timeout,
        )

    def _recover_empty(self, mirror_dir: Path) -> None:
        try:
            git.run(["fetch", "origin"], cwd=mirror_dir, env=git.NO_PROMPT_ENV, timeout=self.timeout)
        except GitCommandError as exc:
            raise RepoProvisionError(f"git fetch origin failed: {exc.output}") from exc

        default_branch = git.detect_default_branch(mirror_dir, timeout=self.timeout)
        if default_branch is None:
            # Empty remote too; worktrees can still start from an orphan branch.
            logger.debug("Remote for %s has no default branch yet", mirror_dir)
            return

        try:
            git.run(
                ["checkout", "-b", default_branch, f"origin/{default_branch}"],
                cwd=mirror_dir,
                timeout=self.timeout,
            )
        except GitCommandError as exc:
            raise RepoProvisionError(f"git checkout {default_branch} failed: {exc.output}") from exc
