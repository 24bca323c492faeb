"""Synchronization of every local mirror with its remote.

For each mirror under ``base_path/repos/<platform>/<org>/<repo>`` a sync run
fetches and prunes all remotes, repairs an orphaned HEAD, fast-forwards the
default branch and deletes local branches already merged into it. Branches
named in the caller's protected set are never deleted.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import AbstractSet, Mapping

from worksync.worktree import git
from worksync.worktree.config import WorkspaceSettings, get_workspace_settings
from worksync.worktree.exceptions import GitCommandError
from worksync.worktree.naming import normalize_repo_path

logger = logging.getLogger(__name__)

ProtectedBranchSet = Mapping[str, AbstractSet[str]]


@dataclass(slots=True)
class RepoSyncResult:
    """Outcome of synchronizing a single mirror."""

    repo_path: str
    default_branch: str = ""
    fetched: bool = False
    branches_deleted: list[str] = field(default_factory=list)
    branches_skipped: list[str] = field(default_factory=list)
    branches_failed: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        """True when the mirror synchronized without a terminal error."""
        return self.error is None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation."""
        return {
            "repo_path": self.repo_path,
            "default_branch": self.default_branch,
            "fetched": self.fetched,
            "branches_deleted": list(self.branches_deleted),
            "branches_skipped": list(self.branches_skipped),
            "branches_failed": list(self.branches_failed),
            "error": str(self.error) if self.error is not None else None,
        }


def _parse_merged_branches(payload: str) -> list[tuple[str, bool]]:
    """Parse `git branch --merged` output into ``(name, is_current)`` pairs."""
    branches: list[tuple[str, bool]] = []
    for raw in payload.splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("* "):
            branches.append((line[2:].strip(), True))
            continue
        # "+" marks a branch checked out in another linked worktree.
        if line.startswith("+ "):
            line = line[2:].strip()
        branches.append((line, False))
    return branches


class RepoSyncManager:
    """Fetches, fast-forwards and prunes every mirror under ``repos/``."""

    def __init__(
        self,
        settings: WorkspaceSettings | None = None,
        *,
        base_path: Path | None = None,
        max_workers: int | None = None,
    ):
        self.settings = settings or get_workspace_settings()
        self.base_path = (base_path or self.settings.base_path).resolve()
        self.max_workers = max_workers or self.settings.sync_max_concurrency
        self.timeout = self.settings.git_timeout

    @property
    def repos_dir(self) -> Path:
        return self.base_path / "repos"

    # ------------------------------------------------------------------
    # Discovery

    def discover(self) -> list[tuple[Path, str]]:
        """Return ``(mirror_dir, "platform/org/repo")`` for every local mirror."""
        repos_dir = self.repos_dir
        if not repos_dir.is_dir():
            return []

        found: list[tuple[Path, str]] = []
        for candidate in sorted(repos_dir.glob("*/*/*")):
            try:
                if not candidate.is_dir() or not (candidate / ".git").exists():
                    continue
            except OSError as exc:
                logger.debug("Skipping unreadable mirror candidate %s: %s", candidate, exc)
                continue
            relative = "/".join(candidate.relative_to(repos_dir).parts)
            found.append((candidate, relative))
        return found

    # ------------------------------------------------------------------
    # Synchronization

    def sync_all(self, protected: ProtectedBranchSet | None = None) -> list[RepoSyncResult]:
        """Synchronize every discovered mirror concurrently.

        Args:
            protected: Branches per repository that must survive even when
                merged. Keys may use any accepted repository identifier form.

        Returns:
            One result per discovered mirror, sorted by repository path. A
            failing mirror reports its error in its own result only.
        """
        normalized: dict[str, set[str]] = {}
        for repo, branches in (protected or {}).items():
            normalized.setdefault(normalize_repo_path(repo), set()).update(branches)

        repos = self.discover()
        if not repos:
            return []

        results: list[RepoSyncResult] = []
        lock = Lock()

        def _sync_one(mirror_dir: Path, repo_path: str) -> None:
            result = self.sync_repo(mirror_dir, repo_path, normalized.get(repo_path))
            with lock:
                results.append(result)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(_sync_one, mirror, rel) for mirror, rel in repos]
            for future in as_completed(futures):
                future.result()

        results.sort(key=lambda r: r.repo_path)
        return results

    def sync_repo(
        self,
        mirror_dir: Path,
        repo_path: str,
        protected: AbstractSet[str] | None = None,
    ) -> RepoSyncResult:
        """Synchronize one mirror.

        Only the initial fetch is fatal; it is recorded on the result rather
        than raised. Orphaned-HEAD recovery, the fast-forward and individual
        branch deletions are best-effort.
        """
        result = RepoSyncResult(repo_path=repo_path)
        protected = protected or frozenset()

        try:
            git.run(
                ["fetch", "--all", "--prune"],
                cwd=mirror_dir,
                env=git.NO_PROMPT_ENV,
                timeout=self.timeout,
            )
        except GitCommandError as exc:
            logger.warning("Fetch failed for %s: %s", repo_path, exc)
            result.error = exc
            return result
        result.fetched = True

        default_branch = git.detect_default_branch_from_head(
            mirror_dir, timeout=self.timeout
        ) or git.detect_default_branch(mirror_dir, timeout=self.timeout)
        if not default_branch:
            logger.debug("No default branch detected for %s", repo_path)
            return result
        result.default_branch = default_branch

        self._recover_orphaned_head(mirror_dir, default_branch)
        self._fast_forward_default(mirror_dir, repo_path, default_branch)

        merged = git.run(
            ["branch", "--merged", default_branch],
            cwd=mirror_dir,
            check=False,
            timeout=self.timeout,
        )
        if merged.returncode != 0:
            return result

        payload = (merged.stdout or b"").decode("utf-8", errors="replace")
        for branch, is_current in _parse_merged_branches(payload):
            if is_current or branch == default_branch:
                continue
            if branch in protected:
                result.branches_skipped.append(branch)
                continue
            deletion = git.run(["branch", "-d", branch], cwd=mirror_dir, check=False, timeout=self.timeout)
            if deletion.returncode == 0:
                logger.info("Deleted merged branch %s in %s", branch, repo_path)
                result.branches_deleted.append(branch)
            else:
                logger.debug("Could not delete branch %s in %s", branch, repo_path)
                result.branches_failed.append(branch)

        return result

    # ------------------------------------------------------------------
    # Internal helpers

    def _fast_forward_default(self, mirror_dir: Path, repo_path: str, default_branch: str) -> None:
        """Fast-forward the local default branch to ``origin/<default>``.

        Whatever branch is checked out is left where it is: when HEAD is not
        on the default branch only the default branch's ref moves, and only
        if the update is a fast-forward.
        """
        head = git.run(
            ["symbolic-ref", "--short", "HEAD"],
            cwd=mirror_dir,
            check=False,
            timeout=self.timeout,
        )
        current = ""
        if head.returncode == 0:
            current = (head.stdout or b"").decode("utf-8", errors="replace").strip()

        if current == default_branch:
            args = ["merge", "--ff-only", f"origin/{default_branch}"]
        else:
            # A plain ref update; fetch refuses non-fast-forward refspecs without "+".
            args = ["fetch", ".", f"origin/{default_branch}:{default_branch}"]

        ff = git.run(args, cwd=mirror_dir, check=False, timeout=self.timeout)
        if ff.returncode != 0:
            logger.debug("Fast-forward of %s in %s skipped", default_branch, repo_path)

    def _recover_orphaned_head(self, mirror_dir: Path, default_branch: str) -> None:
        """Check out the default branch when HEAD names a missing local branch."""
        head = git.run(["symbolic-ref", "HEAD"], cwd=mirror_dir, check=False, timeout=self.timeout)
        if head.returncode != 0:
            return
        ref = (head.stdout or b"").decode("utf-8", errors="replace").strip()
        if git.succeeds(["rev-parse", "--verify", "--quiet", ref], cwd=mirror_dir, timeout=self.timeout):
            return

        logger.info("HEAD of %s points at missing %s; checking out %s", mirror_dir, ref, default_branch)
        checkout = git.run(["checkout", default_branch], cwd=mirror_dir, check=False, timeout=self.timeout)
        if checkout.returncode != 0:
            logger.debug("Orphaned HEAD recovery failed for %s", mirror_dir)
