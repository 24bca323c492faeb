from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from worksync.cli import app

runner = CliRunner()


def _invoke(base: Path, *args: str):
    return runner.invoke(app, ["--base-path", str(base), *args])


def _seed_mirror(tmp_path: Path, base: Path, repos, repo_path: str = "github.com/acme/web") -> Path:
    bare, _ = repos.seeded_remote(tmp_path / "remote-src")
    return repos.clone(bare, base / "repos" / repo_path)


def test_no_args_shows_help() -> None:
    result = runner.invoke(app, [])
    assert "sync-repos" in result.output
    assert "worktree" in result.output


def test_sync_repos_without_mirrors(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "sync-repos")
    assert result.exit_code == 0
    assert "No repositories found under repos/." in result.output


def test_sync_repos_reports_and_summarizes(tmp_path: Path, repos) -> None:
    base = tmp_path / "ws"
    mirror = _seed_mirror(tmp_path, base, repos)
    repos.merged_branch(mirror, "merged-branch")
    repos.merged_branch(mirror, "task-branch")
    (base / "backlog.yaml").write_text(
        "tasks:\n"
        "  TASK-00001:\n"
        "    status: in_progress\n"
        "    repo: github.com/acme/web\n"
        "    branch: task-branch\n",
        encoding="utf-8",
    )

    result = _invoke(base, "sync-repos")

    assert result.exit_code == 0, result.output
    assert "== github.com/acme/web ==" in result.output
    assert "Fetched: yes" in result.output
    assert "Default branch: main" in result.output
    assert "Deleted branches: merged-branch" in result.output
    assert "Skipped (active tasks): task-branch" in result.output
    assert "Synced 1 repos, deleted 1 branches, skipped 1 (active), 0 errors" in result.output
    assert repos.branches(mirror) == {"main", "task-branch"}


def test_sync_repos_protect_option(tmp_path: Path, repos) -> None:
    base = tmp_path / "ws"
    mirror = _seed_mirror(tmp_path, base, repos)
    repos.merged_branch(mirror, "keep-me")

    result = _invoke(base, "sync-repos", "--protect", "git@github.com:acme/web.git=keep-me")

    assert result.exit_code == 0, result.output
    assert "Skipped (active tasks): keep-me" in result.output
    assert "keep-me" in repos.branches(mirror)


def test_sync_repos_rejects_malformed_protect(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "sync-repos", "--protect", "no-separator")
    assert result.exit_code != 0
    assert "REPO=BRANCH" in result.output


def test_sync_repos_counts_errors(tmp_path: Path, repos) -> None:
    base = tmp_path / "ws"
    mirror = _seed_mirror(tmp_path, base, repos)
    repos.git(mirror, "remote", "set-url", "origin", str(tmp_path / "gone.git"))

    result = _invoke(base, "sync-repos")

    assert result.exit_code == 0
    assert "ERROR:" in result.output
    assert "1 errors" in result.output


def test_sync_repos_invalid_backlog(tmp_path: Path) -> None:
    backlog = tmp_path / "broken.yaml"
    backlog.write_text("tasks: [unclosed", encoding="utf-8")

    result = _invoke(tmp_path, "sync-repos", "--backlog", str(backlog))

    assert result.exit_code == 1
    assert "Error: invalid backlog" in result.output


def test_worktree_lifecycle_commands(tmp_path: Path, repos) -> None:
    base = tmp_path / "ws"
    _seed_mirror(tmp_path, base, repos)

    created = _invoke(base, "worktree", "create", "github.com/acme/web", "feat/login", "TASK-00001")
    assert created.exit_code == 0, created.output
    path = Path(created.output.strip().splitlines()[-1])
    assert path == base.resolve() / "work" / "TASK-00001"
    assert path.is_dir()

    shown = _invoke(base, "worktree", "show", "TASK-00001")
    assert shown.exit_code == 0
    assert shown.output.strip() == str(path)

    listed = _invoke(base, "worktree", "list", str(base / "repos" / "github.com" / "acme" / "web"), "--json")
    assert listed.exit_code == 0
    entries = json.loads(listed.output)
    assert [entry["task_id"] for entry in entries] == [None, "TASK-00001"]
    assert entries[1]["branch"] == "feat/login"

    removed = _invoke(base, "worktree", "remove", "TASK-00001")
    assert removed.exit_code == 0, removed.output
    assert f"Removed worktree {path}" in removed.output
    assert not path.exists()


def test_worktree_remove_warns_and_requires_force(tmp_path: Path, repos) -> None:
    local = repos.init(tmp_path / "local")
    base = tmp_path / "ws"

    created = _invoke(base, "worktree", "create", str(local), "wip", "T-1")
    assert created.exit_code == 0, created.output
    path = base.resolve() / "work" / "T-1"
    (path / "draft.txt").write_text("draft\n", encoding="utf-8")

    refused = _invoke(base, "worktree", "remove", "T-1")
    assert refused.exit_code == 1
    assert "Warning: uncommitted changes in worktree" in refused.output
    assert "Error:" in refused.output
    assert path.exists()

    forced = _invoke(base, "worktree", "remove", "T-1", "--force")
    assert forced.exit_code == 0
    assert not path.exists()


def test_worktree_show_unknown_task(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "worktree", "show", "T-404")
    assert result.exit_code == 1
    assert "Error: no worktree found for task 'T-404'" in result.output


def test_worktree_create_rejects_bad_identifier(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "worktree", "create", "acme/web", "b", "T-1")
    assert result.exit_code == 1
    assert "expected format github.com/org/repo" in result.output


def test_worktree_list_text_output(tmp_path: Path, repos) -> None:
    local = repos.init(tmp_path / "local")

    result = _invoke(tmp_path, "worktree", "list", str(local))

    assert result.exit_code == 0
    assert result.output.strip() == f"{local}  main"
