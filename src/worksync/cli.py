from __future__ import annotations

import json
import logging
import pathlib
from typing import List, Optional

import typer

from worksync.backlog import BacklogError, load_backlog, protected_branches
from worksync.sync import RepoSyncManager, RepoSyncResult
from worksync.worktree import (
    WorkspaceSettings,
    WorktreeError,
    WorktreeManager,
    WorktreeRequest,
)

app = typer.Typer(no_args_is_help=True, help="Per-task git worktrees and mirror synchronization.")
worktree_app = typer.Typer(help="Task worktree commands")


def _settings(ctx: typer.Context) -> WorkspaceSettings:
    return ctx.ensure_object(dict)["settings"]


@app.callback()
def main(
    ctx: typer.Context,
    base_path: Optional[pathlib.Path] = typer.Option(
        None,
        "--base-path",
        help="Workspace root holding repos/ and work/ (defaults to the current directory).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging and workspace settings for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = WorkspaceSettings(base_path=base_path) if base_path else WorkspaceSettings()
    ctx.ensure_object(dict)["settings"] = settings


def _parse_protect_options(values: List[str]) -> dict[str, set[str]]:
    protected: dict[str, set[str]] = {}
    for value in values:
        repo, sep, branch = value.rpartition("=")
        if not sep or not repo or not branch:
            raise typer.BadParameter(f"expected REPO=BRANCH, got {value!r}", param_hint="--protect")
        protected.setdefault(repo, set()).add(branch)
    return protected


def _print_result(result: RepoSyncResult) -> None:
    typer.echo(f"\n== {result.repo_path} ==")
    if result.error is not None:
        typer.echo(f"  ERROR: {result.error}")
        return
    typer.echo(f"  Fetched: {'yes' if result.fetched else 'no'}")
    if result.default_branch:
        typer.echo(f"  Default branch: {result.default_branch}")
    if result.branches_deleted:
        typer.echo(f"  Deleted branches: {', '.join(result.branches_deleted)}")
    if result.branches_skipped:
        typer.echo(f"  Skipped (active tasks): {', '.join(result.branches_skipped)}")
    if result.branches_failed:
        typer.echo(f"  Could not delete: {', '.join(result.branches_failed)}")


@app.command("sync-repos")
def sync_repos(
    ctx: typer.Context,
    backlog: Optional[pathlib.Path] = typer.Option(
        None,
        "--backlog",
        help="Backlog file whose active tasks protect their branches.",
    ),
    protect: List[str] = typer.Option(
        [],
        "--protect",
        help="Extra protected branch as REPO=BRANCH (repeatable).",
    ),
    max_workers: Optional[int] = typer.Option(
        None,
        "--max-workers",
        min=1,
        help="Maximum repositories synchronized at once.",
    ),
) -> None:
    """Fetch, prune, and clean all mirrored repositories.

    Deletes local branches merged into the default branch unless an active
    backlog task still references them.
    """
    settings = _settings(ctx)
    try:
        entries = load_backlog(backlog or settings.backlog_path)
    except BacklogError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    protected: dict[str, set[str]] = {
        repo: set(branches)
        for repo, branches in protected_branches(entries, settings.inactive_statuses).items()
    }
    for repo, branches in _parse_protect_options(protect).items():
        protected.setdefault(repo, set()).update(branches)

    manager = RepoSyncManager(settings, max_workers=max_workers)
    results = manager.sync_all(protected)

    if not results:
        typer.echo("No repositories found under repos/.")
        return

    for result in results:
        _print_result(result)

    deleted = sum(len(r.branches_deleted) for r in results if r.ok)
    skipped = sum(len(r.branches_skipped) for r in results if r.ok)
    errors = sum(1 for r in results if not r.ok)
    typer.echo(
        f"\nSynced {len(results)} repos, deleted {deleted} branches, "
        f"skipped {skipped} (active), {errors} errors"
    )


@worktree_app.command("create")
def worktree_create(
    ctx: typer.Context,
    repo: str = typer.Argument(..., help="platform/org/repo identifier, clone URL, or absolute path"),
    branch: str = typer.Argument(..., help="Branch to create for the task"),
    task_id: str = typer.Argument(..., help="Task identifier (names the worktree directory)"),
    base: Optional[str] = typer.Option(None, "--base", help="Start the branch from this ref."),
) -> None:
    """Create the worktree for a task."""
    manager = WorktreeManager(_settings(ctx))
    request = WorktreeRequest(repo_path=repo, branch_name=branch, task_id=task_id, base_branch=base)
    try:
        path = manager.create_worktree(request)
    except WorktreeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    typer.echo(str(path))


@worktree_app.command("remove")
def worktree_remove(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Task id or worktree path"),
    force: bool = typer.Option(False, "--force", help="Remove even with local modifications."),
) -> None:
    """Remove a task worktree, warning about unsaved work first."""
    manager = WorktreeManager(_settings(ctx))
    path = pathlib.Path(target)
    if not path.is_absolute():
        try:
            path = manager.get_worktree_for_task(target).path
        except WorktreeError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1)

    if path.is_dir():
        for issue in manager.unsaved_work(path):
            typer.echo(f"Warning: {issue}", err=True)

    try:
        manager.remove_worktree(path, force=force)
    except WorktreeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed worktree {path}")


@worktree_app.command("list")
def worktree_list(
    ctx: typer.Context,
    repo_dir: pathlib.Path = typer.Argument(..., help="Repository whose worktrees to list"),
    as_json: bool = typer.Option(False, "--json", help="Emit JSON instead of text."),
) -> None:
    """List the worktrees of a repository."""
    manager = WorktreeManager(_settings(ctx))
    try:
        worktrees = manager.list_worktrees(repo_dir)
    except WorktreeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps([wt.to_dict() for wt in worktrees], indent=2))
        return
    for wt in worktrees:
        branch = wt.branch or "<detached>"
        task = f" [{wt.task_id}]" if wt.task_id else ""
        typer.echo(f"{wt.path}  {branch}{task}")


@worktree_app.command("show")
def worktree_show(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task identifier"),
) -> None:
    """Print the worktree path for a task."""
    manager = WorktreeManager(_settings(ctx))
    try:
        worktree = manager.get_worktree_for_task(task_id)
    except WorktreeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    typer.echo(str(worktree.path))


app.add_typer(worktree_app, name="worktree")


if __name__ == "__main__":
    app()
