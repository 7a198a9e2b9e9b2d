"""SKVault CLI — validate, store and browse skill packages from the terminal.

Commands:
    validate    Run the upload checks on an archive
    import      Store an archive as a new skill
    list        Show stored skills
    edit        Edit a skill (snapshots the previous version)
    release     Freeze a skill's history
    fork        Copy a released skill into a new template
    history     List a skill's versions
    show        Show one stored version
    diff        Compare two versions path by path
    export      Write a skill back out as a zip
    serve       Start the MCP server on stdio
"""

from __future__ import annotations

import difflib
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import load_config
from .errors import VaultError
from .history import diff_versions, get_history_entry, list_history
from .ingest import ingest_archive
from .manifest import generate_skill_md
from .models import EditRequest, SkillStatus
from .service import SkillService

console = Console()

STATUS_STYLE = {
    "added": "green",
    "removed": "red",
    "modified": "yellow",
    "unchanged": "dim",
}


def _service() -> SkillService:
    return SkillService.from_config(load_config())


def _fail(action: str, exc: VaultError) -> None:
    console.print(f"[red]{action} failed:[/red] {exc.code}: {escape(exc.message)}")
    if exc.detail and exc.detail != exc.message:
        console.print(f"  [dim]{escape(exc.detail)}[/dim]")
    sys.exit(1)


@click.group()
@click.version_option(__version__, prog_name="skvault")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
def main(verbose: bool) -> None:
    """SKVault — skill package ingestion and version history.

    Validate uploaded skill archives, store them, and keep an
    append-only history of every edit.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@click.option("--warn-only", is_flag=True, help="Report non-standard directories without failing.")
def validate(archive: str, warn_only: bool) -> None:
    """Validate a skill archive without storing it."""
    config = load_config()
    try:
        package = ingest_archive(Path(archive).read_bytes(), config, strict=not warn_only)
    except VaultError as exc:
        _fail("Validation", exc)
        return

    m = package.manifest
    console.print(f"\n[green]Valid:[/green] [cyan bold]{m.name}[/cyan bold]")
    console.print(f"  {escape(m.description)}")
    if package.root_dir:
        console.print(f"  Root:  {package.root_dir}/")
    console.print(f"  Files: {len(package.files)}")
    for f in package.files:
        console.print(f"    {escape(f.path)}")
    for warning in package.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")


@main.command("import")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@click.option("--owner", required=True, help="Owner user id.")
@click.option("--tag", "tags", multiple=True, help="Tag id or name (repeatable).")
def import_(archive: str, owner: str, tags: tuple[str, ...]) -> None:
    """Store an archive as a new skill."""
    service = _service()
    try:
        skill = service.create_from_archive(Path(archive).read_bytes(), owner, list(tags) or None)
    except VaultError as exc:
        _fail("Import", exc)
        return

    console.print(f"\n[green]Imported:[/green] {skill.name} v{skill.version}")
    console.print(f"  ID:    {skill.id}")
    console.print(f"  Files: {len(skill.files or [])}")
    if skill.tags:
        console.print(f"  Tags:  {', '.join(t.name for t in skill.tags)}")


@main.command("list")
@click.option("--released", is_flag=True, help="Only released skills.")
def list_skills(released: bool) -> None:
    """Show stored skills."""
    service = _service()
    skills = service.store.list_skills(SkillStatus.RELEASED if released else None)

    if not skills:
        console.print("[dim]No skills stored.[/dim]")
        return

    table = Table(title="Skills")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Tags", style="yellow")

    for s in skills:
        status = "[green]released[/green]" if s.is_released else "template"
        table.add_row(s.id, s.name, str(s.version), status, ", ".join(t.name for t in s.tags) or "-")

    console.print(table)


@main.command()
@click.argument("skill_id")
@click.option("--actor", required=True, help="Editing user id.")
@click.option("--archive", type=click.Path(exists=True, dir_okay=False), help="New package (spec + files).")
@click.option("--name", default=None, help="New display name.")
@click.option("--description", default=None, help="New description.")
@click.option("--tag", "tags", multiple=True, help="Replace tags (repeatable).")
@click.option("--clear-tags", is_flag=True, help="Remove every tag.")
@click.option("--message", "-m", default=None, help="Edit message stored with the snapshot.")
@click.option("--admin", is_flag=True, help="Act with admin rights.")
def edit(
    skill_id: str,
    actor: str,
    archive: Optional[str],
    name: Optional[str],
    description: Optional[str],
    tags: tuple[str, ...],
    clear_tags: bool,
    message: Optional[str],
    admin: bool,
) -> None:
    """Edit a skill. The previous state is kept as a version."""
    service = _service()
    fields: dict[str, Any] = {"edit_message": message}
    if name is not None:
        fields["name"] = name
    if description is not None:
        fields["description"] = description
    if tags or clear_tags:
        fields["tags"] = list(tags)

    try:
        if archive:
            package = ingest_archive(Path(archive).read_bytes(), service.config)
            fields["spec"] = package.manifest.to_spec()
            fields["files"] = package.files
        skill = service.edit(skill_id, actor, EditRequest(**fields), is_admin=admin)
    except VaultError as exc:
        _fail("Edit", exc)
        return

    console.print(f"[green]Edited:[/green] {skill.name} now v{skill.version}")


@main.command()
@click.argument("skill_id")
@click.option("--actor", required=True, help="Releasing user id.")
@click.option("--admin", is_flag=True, help="Act with admin rights.")
def release(skill_id: str, actor: str, admin: bool) -> None:
    """Release a skill. No further edits are accepted afterwards."""
    service = _service()
    try:
        skill = service.release(skill_id, actor, is_admin=admin)
    except VaultError as exc:
        _fail("Release", exc)
        return
    console.print(f"[green]Released:[/green] {skill.name} v{skill.version}")


@main.command()
@click.argument("skill_id")
@click.option("--actor", required=True, help="Owner of the new fork.")
def fork(skill_id: str, actor: str) -> None:
    """Fork a released skill."""
    service = _service()
    try:
        skill = service.fork(skill_id, actor)
    except VaultError as exc:
        _fail("Fork", exc)
        return
    console.print(f"[green]Forked:[/green] {skill.name}")
    console.print(f"  ID: {skill.id}")


@main.command()
@click.argument("skill_id")
@click.option("--page", default=1, help="Page number.")
@click.option("--page-size", default=None, type=int, help="Versions per page.")
def history(skill_id: str, page: int, page_size: Optional[int]) -> None:
    """List a skill's stored versions, newest first."""
    service = _service()
    try:
        result = list_history(service.store, skill_id, page, page_size, service.config)
    except VaultError as exc:
        _fail("History", exc)
        return

    if not result.items:
        console.print("[dim]No versions recorded.[/dim]")
        return

    table = Table(title=f"History (page {result.page}/{result.total_pages}, {result.total} versions)")
    table.add_column("Version", style="cyan")
    table.add_column("Edited by", style="green")
    table.add_column("When")
    table.add_column("Message")

    for v in result.items:
        table.add_row(
            f"v{v.version}",
            v.edited_by,
            v.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            escape(v.message or "-"),
        )

    console.print(table)


@main.command()
@click.argument("skill_id")
@click.argument("version")
def show(skill_id: str, version: str) -> None:
    """Show one stored version."""
    service = _service()
    try:
        record = get_history_entry(service.store, skill_id, version)
    except VaultError as exc:
        _fail("Show", exc)
        return

    console.print(f"\n[cyan bold]v{record.version}[/cyan bold] by {record.edited_by}")
    console.print(f"  {record.created_at.isoformat()}")
    if record.message:
        console.print(f"  {escape(record.message)}")
    console.print()
    console.print(escape(generate_skill_md(record.spec)), highlight=False)
    if record.files:
        console.print("[bold]Files:[/bold]")
        for f in record.files:
            console.print(f"  {escape(f.path)}")


@main.command()
@click.argument("skill_id")
@click.argument("from_version")
@click.argument("to_version")
@click.option("--patch", "-p", is_flag=True, help="Print a unified diff per changed file.")
def diff(skill_id: str, from_version: str, to_version: str, patch: bool) -> None:
    """Compare two versions file by file."""
    service = _service()
    try:
        result = diff_versions(service.store, skill_id, from_version, to_version)
    except VaultError as exc:
        _fail("Diff", exc)
        return

    if not result.entries:
        console.print("[dim]No files to compare.[/dim]")
        return

    table = Table(title=f"v{result.from_version} → v{result.to_version}")
    table.add_column("Path")
    table.add_column("Status")
    for entry in result.entries:
        style = STATUS_STYLE[entry.status]
        table.add_row(escape(entry.path), f"[{style}]{entry.status}[/{style}]")
    console.print(table)

    if patch:
        for entry in result.changed:
            lines = difflib.unified_diff(
                (entry.before or "").splitlines(keepends=True),
                (entry.after or "").splitlines(keepends=True),
                fromfile=f"v{result.from_version}/{entry.path}",
                tofile=f"v{result.to_version}/{entry.path}",
            )
            console.print(escape("".join(lines)), highlight=False)


@main.command()
@click.argument("skill_id")
@click.option("--output", "-o", default=".", help="Output directory for the zip.")
@click.option("--md", "skill_md", is_flag=True, help="Print SKILL.md instead of writing a zip.")
def export(skill_id: str, output: str, skill_md: bool) -> None:
    """Export the current skill as a zip (or SKILL.md)."""
    service = _service()
    try:
        if skill_md:
            click.echo(service.export_skill_md(skill_id), nl=False)
            return
        filename, data = service.export_archive(skill_id)
    except VaultError as exc:
        _fail("Export", exc)
        return

    out_dir = Path(output)
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / filename
    target.write_bytes(data)
    console.print(f"[green]Exported:[/green] {target}")


@main.command()
def serve() -> None:
    """Start the SKVault MCP server on stdio."""
    import asyncio

    from .server import VaultServer

    server = VaultServer(config=load_config())
    # stdout carries the MCP stream
    Console(stderr=True).print(f"[dim]SKVault MCP server on stdio (db: {server.config.database})[/dim]")
    asyncio.run(server.run_stdio())


if __name__ == "__main__":
    main()
