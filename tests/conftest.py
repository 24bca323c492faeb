"""Pytest configuration helpers."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from worksync.worktree import WorkspaceSettings


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip the suite when no git executable is available."""
    if shutil.which("git") is not None:
        return
    skip = pytest.mark.skip(reason="git executable not available")
    for item in items:
        item.add_marker(skip)


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's git and worksync configuration out of tests."""
    home = tmp_path_factory.mktemp("home")
    global_config = home / ".gitconfig"
    global_config.write_text("", encoding="utf-8")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test User")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test User")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for name in (
        "WORKSYNC_BASE_PATH",
        "WORKSYNC_SYNC_MAX_CONCURRENCY",
        "WORKSYNC_GIT_TIMEOUT",
        "WORKSYNC_BACKLOG_FILE",
        "WORKSYNC_INACTIVE_STATUSES",
    ):
        monkeypatch.delenv(name, raising=False)


class GitRepos:
    """Builds throwaway repositories for tests."""

    @staticmethod
    def git(cwd: Path, *args: str) -> str:
        """Run git in ``cwd``, failing the test on a non-zero exit."""
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise AssertionError(
                f"git {' '.join(args)} failed in {cwd}:\n{result.stdout}{result.stderr}"
            )
        return result.stdout.strip()

    def init(self, path: Path, *, branch: str = "main") -> Path:
        """Initialise a repository with a single commit."""
        path.mkdir(parents=True, exist_ok=True)
        self.git(path, "init", "-b", branch)
        self.commit_file(path, "README.md", "# test\n")
        return path.resolve()

    def init_empty(self, path: Path, *, branch: str = "main") -> Path:
        """Initialise a repository without any commits."""
        path.mkdir(parents=True, exist_ok=True)
        self.git(path, "init", "-b", branch)
        return path.resolve()

    def init_bare(self, path: Path, *, branch: str = "main") -> Path:
        """Initialise an empty bare repository."""
        path.mkdir(parents=True, exist_ok=True)
        self.git(path, "init", "--bare", "-b", branch)
        return path.resolve()

    def commit_file(self, repo: Path, name: str, content: str | None = None) -> None:
        """Write ``name`` in ``repo`` and commit it."""
        (repo / name).write_text(content or f"{name}\n", encoding="utf-8")
        self.git(repo, "add", name)
        self.git(repo, "commit", "-m", f"add {name}")

    def merged_branch(self, repo: Path, branch: str, default: str = "main") -> None:
        """Create ``branch`` with one commit and merge it back into ``default``."""
        self.git(repo, "checkout", "-b", branch)
        self.commit_file(repo, f"{branch}.txt")
        self.git(repo, "checkout", default)
        self.git(repo, "merge", "--no-edit", branch)

    def seeded_remote(self, root: Path) -> tuple[Path, Path]:
        """Return ``(bare, seed)`` where ``seed`` has pushed ``main`` to ``bare``."""
        bare = self.init_bare(root / "remote.git")
        seed = self.init(root / "seed")
        self.git(seed, "remote", "add", "origin", str(bare))
        self.git(seed, "push", "-u", "origin", "main")
        return bare, seed

    def clone(self, source: Path, dest: Path) -> Path:
        """Clone ``source`` into ``dest`` with origin/HEAD set to main."""
        dest.parent.mkdir(parents=True, exist_ok=True)
        self.git(dest.parent, "clone", str(source), str(dest))
        self.git(dest, "remote", "set-head", "origin", "main")
        return dest.resolve()

    def branches(self, repo: Path) -> set[str]:
        """Return local branch names."""
        out = self.git(repo, "branch", "--format=%(refname:short)")
        return {line.strip() for line in out.splitlines() if line.strip()}


@pytest.fixture
def repos() -> GitRepos:
    return GitRepos()


@pytest.fixture
def workspace(tmp_path: Path) -> WorkspaceSettings:
    """Workspace settings rooted in a fresh directory."""
    base = tmp_path / "workspace"
    base.mkdir()
    return WorkspaceSettings(base_path=base, sync_max_concurrency=4)
