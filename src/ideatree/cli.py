"""Command line interface for ideatree.

    ideatree idea create "Voice journaling app"
    ideatree branch create <idea-id> --label "alt"
    ideatree snapshot restore <idea-id> 1
"""

from __future__ import annotations

import functools
import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from .config import HOME_ENV, load_settings
from .engine import IdeaEngine
from .errors import IdeaTreeError, NotFoundError
from .models import ConversationBranch
from .timeutil import format_relative_time, parse_time_reference

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(log_file: Path, verbose: bool = False) -> None:
    """Log to <home>/ideatree.log and stderr, once per process."""
    root = logging.getLogger()
    if root.handlers:
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_file),
            stderr_handler,
        ],
    )


def handle_errors(func):
    """Print ideatree errors in red and exit with status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IdeaTreeError as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            sys.exit(1)

    return wrapper


def _engine(ctx: click.Context) -> IdeaEngine:
    return ctx.obj["engine"]


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option(
    "--home",
    envvar=HOME_ENV,
    type=click.Path(path_type=Path),
    help="ideatree data directory (default: ~/.ideatree)",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr")
@click.pass_context
def cli(ctx, home, verbose):
    """ideatree - branch and snapshot versioning for ideas."""
    ctx.ensure_object(dict)
    settings = load_settings(home)
    setup_logging(settings.log_file, verbose)
    engine = IdeaEngine(settings)
    ctx.obj["engine"] = engine
    ctx.call_on_close(engine.close)


# ─────────────────────────────────────────────────────────────────────────────
# Ideas
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
def idea():
    """Create, inspect and delete ideas."""
    pass


@idea.command("create")
@click.argument("title")
@click.option("--no-scaffold", is_flag=True, help="Do not create a project folder")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def idea_create(ctx, title, no_scaffold, as_json):
    """Create a new idea with a project folder."""
    engine = _engine(ctx)
    created = engine.create_idea(title, scaffold=not no_scaffold)
    if created.project_path:
        engine.branch_manager.ensure_root_branch(created.id)

    if as_json:
        _echo_json({**created.to_summary(), "project_path": created.project_path})
        return
    console.print(f"[green]✓[/green] Created idea [cyan]{created.id}[/cyan] {title!r}")
    if created.project_path:
        console.print(f"  Project: {created.project_path}")


@idea.command("list")
@click.option(
    "--status",
    type=click.Choice(["active", "completed", "archived"]),
    default=None,
    help="Only ideas with this status",
)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def idea_list(ctx, status, as_json):
    """List ideas, most recently updated first."""
    ideas = _engine(ctx).ideas.list_ideas(status)

    if as_json:
        _echo_json([i.to_summary() for i in ideas])
        return
    if not ideas:
        console.print("[dim]No ideas[/dim]")
        return

    table = Table(title="Ideas")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Status", style="green")
    table.add_column("Version", justify="right")
    table.add_column("Updated", style="dim")
    for i in ideas:
        table.add_row(
            i.id, i.title, i.status, str(i.synthesis_version), format_relative_time(i.updated_at)
        )
    console.print(table)


@idea.command("show")
@click.argument("idea_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def idea_show(ctx, idea_id, as_json):
    """Show an idea with its active branch and graph size."""
    engine = _engine(ctx)
    found = engine.ideas.require_idea(idea_id)
    notes = engine.ideas.get_notes(idea_id)
    state = engine.graph.get_full_state(idea_id)
    active = engine.branch_manager.get_active_branch(idea_id)
    folder = engine.branch_manager.get_active_branch_folder_path(idea_id)

    if as_json:
        _echo_json({
            **found.to_summary(),
            "project_path": found.project_path,
            "active_branch": active.to_summary() if active else None,
            "active_folder": str(folder) if folder else None,
            "notes": len(notes),
            "nodes": len(state.nodes),
            "edges": len(state.edges),
            "synthesis": found.synthesis_content,
        })
        return

    console.print(f"[bold]{found.title}[/bold] [dim]({found.id})[/dim]")
    console.print(f"  Status: {found.status}")
    console.print(f"  Synthesis version: {found.synthesis_version}")
    console.print(f"  Project: {found.project_path or '[dim]none[/dim]'}")
    if active:
        console.print(f"  Active branch: [cyan]{active.label}[/cyan] ({active.folder_name})")
    console.print(f"  Notes: {len(notes)}, Nodes: {len(state.nodes)}, Edges: {len(state.edges)}")


@idea.command("delete")
@click.argument("idea_id")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def idea_delete(ctx, idea_id, yes):
    """Delete an idea, its branches, snapshots and project folder."""
    engine = _engine(ctx)
    found = engine.ideas.require_idea(idea_id)
    if not yes and not click.confirm(f"Delete idea {found.title!r} and its project folder?"):
        console.print("[yellow]Aborted[/yellow]")
        return
    engine.delete_idea(idea_id)
    console.print(f"[green]✓[/green] Deleted idea {idea_id}")


@idea.command("note")
@click.argument("idea_id")
@click.argument("text")
@click.option("--duration-ms", type=int, default=None, help="Recording length")
@click.pass_context
@handle_errors
def idea_note(ctx, idea_id, text, duration_ms):
    """Attach a transcribed note to an idea."""
    note = _engine(ctx).ideas.add_note(idea_id, text, duration_ms=duration_ms)
    console.print(f"[green]✓[/green] Added note {note.id}")


@idea.command("synthesis")
@click.argument("idea_id")
@click.option("--set", "new_text", default=None, help="Replace the synthesized text")
@click.option(
    "--file",
    "source",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Replace the synthesized text with this file's contents",
)
@click.pass_context
@handle_errors
def idea_synthesis(ctx, idea_id, new_text, source):
    """Show or replace an idea's synthesized document."""
    engine = _engine(ctx)
    if source is not None:
        new_text = source.read_text(encoding="utf-8")

    if new_text is not None:
        updated = engine.ideas.update_synthesis(idea_id, new_text)
        console.print(f"[green]✓[/green] Synthesis updated to version {updated.synthesis_version}")
        return

    content, version = engine.ideas.get_synthesis_content(idea_id)
    if content is None:
        console.print("[dim]No synthesis yet[/dim]")
        return
    console.print(f"[bold]Version {version}[/bold]")
    click.echo(content)


# ─────────────────────────────────────────────────────────────────────────────
# Branches
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
def branch():
    """Fork, switch and delete conversation branches."""
    pass


def _branch_label(b: ConversationBranch) -> str:
    marker = "[green]●[/green] " if b.is_active else ""
    return f"{marker}[cyan]{b.label}[/cyan] [dim]{b.folder_name} · {b.id}[/dim]"


@branch.command("list")
@click.argument("idea_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def branch_list(ctx, idea_id, as_json):
    """List an idea's branches in creation order."""
    engine = _engine(ctx)
    engine.ideas.require_idea(idea_id)
    branches = engine.branch_manager.get_branches(idea_id)

    if as_json:
        _echo_json([b.to_summary() for b in branches])
        return
    if not branches:
        console.print("[dim]No branches[/dim]")
        return

    table = Table(title="Branches")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Label")
    table.add_column("Folder")
    table.add_column("Depth", justify="right")
    for b in branches:
        table.add_row("●" if b.is_active else "", b.id, b.label, b.folder_name, str(b.depth))
    console.print(table)


@branch.command("tree")
@click.argument("idea_id")
@click.pass_context
@handle_errors
def branch_tree(ctx, idea_id):
    """Show an idea's branches as a tree."""
    engine = _engine(ctx)
    found = engine.ideas.require_idea(idea_id)
    tree = engine.branch_manager.get_tree(idea_id)
    if not tree.branches:
        console.print("[dim]No branches[/dim]")
        return

    view = Tree(f"[bold]{found.title}[/bold]")

    def add(node: Tree, b: ConversationBranch) -> None:
        child_node = node.add(_branch_label(b))
        for child in tree.children_of(b.id):
            add(child_node, child)

    for root in tree.roots:
        add(view, root)
    console.print(view)


@branch.command("create")
@click.argument("idea_id")
@click.option("--parent", "parent_id", default=None, help="Parent branch (default: active branch)")
@click.option("-l", "--label", default=None, help="Branch label")
@click.pass_context
@handle_errors
def branch_create(ctx, idea_id, parent_id, label):
    """Fork a branch and switch to it."""
    manager = _engine(ctx).branch_manager
    if parent_id is None:
        root = manager.ensure_root_branch(idea_id)
        active = manager.get_active_branch(idea_id)
        parent_id = active.id if active else root.id

    child = manager.create_child_branch(parent_id, label)
    console.print(
        f"[green]✓[/green] Created branch [cyan]{child.label}[/cyan] "
        f"({child.folder_name}) {child.id}"
    )


@branch.command("switch")
@click.argument("branch_id")
@click.pass_context
@handle_errors
def branch_switch(ctx, branch_id):
    """Make a branch the active one."""
    target = _engine(ctx).branch_manager.switch_to_branch(branch_id)
    console.print(f"[green]✓[/green] On branch [cyan]{target.label}[/cyan] ({target.folder_name})")


@branch.command("delete")
@click.argument("branch_id")
@click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@handle_errors
def branch_delete(ctx, branch_id, yes):
    """Delete a branch, its descendants and their folders."""
    manager = _engine(ctx).branch_manager
    target = manager.require_branch(branch_id)
    if not yes and not click.confirm(f"Delete branch {target.label!r} and everything below it?"):
        console.print("[yellow]Aborted[/yellow]")
        return
    manager.delete_branch(branch_id)
    console.print(f"[green]✓[/green] Deleted branch {target.label!r}")


@branch.command("rename")
@click.argument("branch_id")
@click.argument("label")
@click.pass_context
@handle_errors
def branch_rename(ctx, branch_id, label):
    """Change a branch's label (its folder keeps its name)."""
    renamed = _engine(ctx).branch_manager.rename_branch(branch_id, label)
    console.print(f"[green]✓[/green] Renamed to [cyan]{renamed.label}[/cyan]")


@branch.command("check")
@click.argument("idea_id")
@click.pass_context
@handle_errors
def branch_check(ctx, idea_id):
    """Report mismatches between branch rows and folders on disk."""
    problems = _engine(ctx).branch_manager.check_consistency(idea_id)
    if not problems:
        console.print("[green]✓[/green] Branches are consistent")
        return
    console.print(f"[yellow]{len(problems)} problem(s) found:[/yellow]")
    for problem in problems:
        console.print(f"  [red]-[/red] {escape(problem)}")
    sys.exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Snapshots
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
def snapshot():
    """List, take and restore numbered idea versions."""
    pass


@snapshot.command("list")
@click.argument("idea_id")
@click.option("--since", default=None, help="Only versions after this time (e.g. '2 days ago')")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def snapshot_list(ctx, idea_id, since, as_json):
    """List an idea's snapshots, newest first."""
    engine = _engine(ctx)
    engine.ideas.require_idea(idea_id)
    snapshots = engine.snapshot_manager.get_snapshots(idea_id)
    if since:
        try:
            cutoff = parse_time_reference(since)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--since") from e
        snapshots = [s for s in snapshots if s.created_at >= cutoff]

    if as_json:
        _echo_json([s.to_summary() for s in snapshots])
        return
    if not snapshots:
        console.print("[dim]No snapshots[/dim]")
        return

    table = Table(title="Snapshots")
    table.add_column("Version", style="cyan", justify="right")
    table.add_column("Files", justify="right")
    table.add_column("Nodes", justify="right")
    table.add_column("Edges", justify="right")
    table.add_column("Tools")
    table.add_column("Created", style="dim")
    for s in snapshots:
        table.add_row(
            f"v{s.version_number}",
            str(len(s.files)),
            str(len(s.nodes)),
            str(len(s.edges)),
            ", ".join(s.tools_used),
            format_relative_time(s.created_at),
        )
    console.print(table)


@snapshot.command("show")
@click.argument("idea_id")
@click.argument("version", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
@handle_errors
def snapshot_show(ctx, idea_id, version, as_json):
    """Show one snapshot's text, files and graph."""
    found = _engine(ctx).snapshot_manager.get_snapshot_by_version(idea_id, version)
    if found is None:
        raise NotFoundError("Snapshot", f"v{version}")

    if as_json:
        _echo_json(found.model_dump(mode="json"))
        return

    console.print(f"[bold]Snapshot v{found.version_number}[/bold] [dim]({found.id})[/dim]")
    console.print(f"  Taken: {found.created_at:%Y-%m-%d %H:%M} ({format_relative_time(found.created_at)})")
    console.print(f"  Tools: {', '.join(found.tools_used) or '-'}")
    console.print(f"  Nodes: {len(found.nodes)}, Edges: {len(found.edges)}")
    console.print(f"  Files ({len(found.files)}):")
    for f in found.files:
        console.print(f"    {f.file_path} [dim]{len(f.content)} chars[/dim]")


@snapshot.command("create")
@click.argument("idea_id")
@click.option("-t", "--tool", "tools", multiple=True, help="Tool name to record (repeatable)")
@click.pass_context
@handle_errors
def snapshot_create(ctx, idea_id, tools):
    """Take a snapshot of the idea's current state."""
    engine = _engine(ctx)
    engine.ideas.require_idea(idea_id)
    engine.branch_manager.ensure_root_branch(idea_id)
    taken = engine.snapshot_manager.create_snapshot(idea_id, list(tools) or ["manual"])
    console.print(
        f"[green]✓[/green] Snapshot v{taken.version_number}: "
        f"{len(taken.files)} files, {len(taken.nodes)} nodes, {len(taken.edges)} edges"
    )


@snapshot.command("restore")
@click.argument("idea_id")
@click.argument("version", type=int)
@click.pass_context
@handle_errors
def snapshot_restore(ctx, idea_id, version):
    """Restore text, files and graph from a snapshot version."""
    manager = _engine(ctx).snapshot_manager
    found = manager.get_snapshot_by_version(idea_id, version)
    if found is None:
        raise NotFoundError("Snapshot", f"v{version}")

    result = manager.restore_snapshot(found.id)
    status = "[green]✓[/green]" if result.complete else "[yellow]![/yellow]"
    console.print(f"{status} Restored v{result.version_number}")
    console.print(f"  Text: {'restored' if result.text_restored else 'failed'}")
    console.print(f"  Files: {result.files_count} from {result.files_source}")
    console.print(f"  Graph: {result.nodes_count} nodes, {result.edges_count} edges")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
