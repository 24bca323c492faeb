"""Low-level Git helpers shared by the worktree and sync managers."""

from __future__ import annotations

import os
import subprocess  # nosec B404 - subprocess required for the git CLI
from pathlib import Path
from typing import Mapping, Sequence

from .exceptions import GitCommandError
from .naming import WORK_DIRNAME
from .types import Worktree

REMOTE_HEAD_PREFIX = "refs/remotes/origin/"
LOCAL_HEAD_PREFIX = "refs/heads/"
DEFAULT_BRANCH_CANDIDATES: tuple[str, ...] = ("main", "master")

# Fail fast instead of waiting on an interactive credential prompt.
NO_PROMPT_ENV: Mapping[str, str] = {"GIT_TERMINAL_PROMPT": "0"}


def run(
    args: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    check: bool = True,
    timeout: float | None = None,
) -> subprocess.CompletedProcess[bytes]:
    """
    Execute a Git command returning the completed process.

    Every call carries its own working directory; nothing changes the
    process-wide current directory.

    Args:
        args: Sequence of arguments that follow the `git` executable.
        cwd: Directory to execute the command from.
        env: Optional environment overrides.
        check: When True, raise :class:`GitCommandError` on non-zero exit.
        timeout: Optional timeout in seconds.

    Returns:
        CompletedProcess with stdout/stderr captured as bytes.
    """
    command = ["git", *args]
    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)

    try:
        result = subprocess.run(  # nosec B603 - fixed executable, arguments passed as a list
            command,
            cwd=str(cwd),
            env=merged_env,
            capture_output=True,
            check=False,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        result = subprocess.CompletedProcess(
            args=command,
            returncode=124,
            stdout=b"",
            stderr=f"Process timeout after {timeout}s: {exc}".encode(),
        )
    except OSError as exc:
        # Missing working directory or missing git executable.
        result = subprocess.CompletedProcess(
            args=command,
            returncode=127,
            stdout=b"",
            stderr=str(exc).encode(),
        )

    if check and result.returncode != 0:
        raise GitCommandError(command, result, cwd)

    return result


def output(
    args: Sequence[str],
    *,
    cwd: Path,
    timeout: float | None = None,
) -> str:
    """Run a Git command and return its decoded, stripped stdout."""
    result = run(args, cwd=cwd, timeout=timeout)
    return (result.stdout or b"").decode("utf-8", errors="replace").strip()


def succeeds(
    args: Sequence[str],
    *,
    cwd: Path,
    timeout: float | None = None,
) -> bool:
    """Return True when the Git command exits with status zero."""
    return run(args, cwd=cwd, check=False, timeout=timeout).returncode == 0


def parse_worktree_list(payload: str, repo_path: str) -> list[Worktree]:
    """
    Parse `git worktree list --porcelain` output into worktree records.

    Each block is separated by a blank line and looks like::

        worktree /path/to/worktree
        HEAD <sha>
        branch refs/heads/branch-name

    Missing lines leave the matching field unset (detached and bare entries
    have no branch). A task id is only attached when the worktree lives
    directly under a directory named ``work``.
    """
    worktrees: list[Worktree] = []

    for block in payload.strip().split("\n\n"):
        if not block.strip():
            continue

        path: Path | None = None
        branch: str | None = None
        for raw in block.splitlines():
            line = raw.strip()
            if line.startswith("worktree "):
                path = Path(line[len("worktree ") :])
            elif line.startswith(f"branch {LOCAL_HEAD_PREFIX}"):
                branch = line[len(f"branch {LOCAL_HEAD_PREFIX}") :]

        # A block without a worktree line carries nothing addressable.
        if path is None:
            continue

        task_id = path.name if path.parent.name == WORK_DIRNAME else None
        worktrees.append(Worktree(path=path, branch=branch, task_id=task_id, repo_path=repo_path))

    return worktrees


def detect_default_branch(repo_dir: Path, *, timeout: float | None = None) -> str | None:
    """Return ``main`` or ``master`` when the matching origin branch resolves."""
    for branch in DEFAULT_BRANCH_CANDIDATES:
        if succeeds(["rev-parse", "--verify", "--quiet", f"origin/{branch}"], cwd=repo_dir, timeout=timeout):
            return branch
    return None


def detect_default_branch_from_head(repo_dir: Path, *, timeout: float | None = None) -> str | None:
    """Return the branch `refs/remotes/origin/HEAD` points at, if it is set."""
    result = run(
        ["symbolic-ref", f"{REMOTE_HEAD_PREFIX}HEAD"],
        cwd=repo_dir,
        check=False,
        timeout=timeout,
    )
    if result.returncode != 0:
        return None
    ref = (result.stdout or b"").decode("utf-8", errors="replace").strip()
    if not ref.startswith(REMOTE_HEAD_PREFIX):
        return None
    return ref[len(REMOTE_HEAD_PREFIX) :] or None
