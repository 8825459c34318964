"""Note commands: add, edit, rm, show, list, plus the top-level stats."""

from __future__ import annotations

import sys
from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from .._fileio import StoreError
from ..notes import NoteNotFoundError, NoteService
from ..search import note_statistics, search_notes
from ._common import (
    console,
    home_option,
    open_service,
    resolve_note_id,
    short_id,
    status_icon,
    synced_marker,
)


def _report_sync(service: NoteService) -> None:
    orchestrator = service.orchestrator
    if orchestrator.last_error:
        console.print(f"  [red]Sync failed:[/] {orchestrator.last_error}")
    elif not orchestrator.online:
        console.print("  [dim]Offline: change will sync later.[/]")
    elif orchestrator.last_report is not None:
        counts = orchestrator.last_report.push.counts()
        console.print(
            f"  [dim]Sync: {counts['synced']} synced, "
            f"{counts['failed']} failed, {counts['conflicts']} conflict(s)[/]"
        )
    console.print(f"  Status: {status_icon(orchestrator.status)}\n")


def register_notes_commands(main: click.Group) -> None:
    """Register the note command group and stats."""

    @main.group()
    def note():
        """Create, edit and browse notes.

        Every change is stored locally first and queued for the remote.
        """

    @note.command("add")
    @home_option
    @click.argument("title")
    @click.option("--body", "-b", default="", help="Note body.")
    @click.option("--offline", is_flag=True, help="Store locally without syncing.")
    def note_add(home: Optional[str], title: str, body: str, offline: bool):
        """Create a new note."""
        _, service = open_service(home, online=not offline)
        created = service.create(title=title, body=body)
        console.print(f"\n  [green]Created[/] [cyan]{short_id(created.id)}[/] {created.title}")
        _report_sync(service)

    @note.command("edit")
    @home_option
    @click.argument("note_id")
    @click.option("--title", "-t", default=None, help="New title.")
    @click.option("--body", "-b", default=None, help="New body.")
    @click.option("--offline", is_flag=True, help="Store locally without syncing.")
    def note_edit(
        home: Optional[str],
        note_id: str,
        title: Optional[str],
        body: Optional[str],
        offline: bool,
    ):
        """Edit a note's title and/or body."""
        if title is None and body is None:
            raise click.UsageError("Nothing to change: pass --title and/or --body.")
        _, service = open_service(home, online=not offline)
        full_id = resolve_note_id(service, note_id)
        updated = service.modify(full_id, title=title, body=body)
        service.flush()
        console.print(f"\n  [green]Updated[/] [cyan]{short_id(updated.id)}[/] {updated.title}")
        _report_sync(service)

    @note.command("rm")
    @home_option
    @click.argument("note_id")
    @click.option("--offline", is_flag=True, help="Delete locally without syncing.")
    def note_rm(home: Optional[str], note_id: str, offline: bool):
        """Delete a note."""
        _, service = open_service(home, online=not offline)
        full_id = resolve_note_id(service, note_id)
        try:
            service.remove(full_id)
        except (NoteNotFoundError, PermissionError, StoreError) as exc:
            console.print(f"[bold red]Delete failed:[/] {exc}")
            sys.exit(1)
        console.print(f"\n  [green]Deleted[/] [cyan]{short_id(full_id)}[/]")
        _report_sync(service)

    @note.command("show")
    @home_option
    @click.argument("note_id")
    def note_show(home: Optional[str], note_id: str):
        """Print one note in full."""
        _, service = open_service(home, online=False)
        item = service.get(resolve_note_id(service, note_id))
        queued = service.orchestrator.engine.queue.pending_for(item.id)
        waiting = (
            "\n[yellow]queued:[/] " + ", ".join(e.operation.value for e in queued)
            if queued else ""
        )
        console.print()
        console.print(
            Panel(
                f"{item.body}\n\n"
                f"[dim]id {item.id}[/]\n"
                f"[dim]created {item.created_at:%Y-%m-%d %H:%M:%S} · "
                f"modified {item.modified_at:%Y-%m-%d %H:%M:%S}[/] · "
                f"{synced_marker(item)}"
                f"{waiting}",
                title=item.title or "[dim]Untitled[/]",
                border_style="cyan",
            )
        )
        console.print()

    @note.command("list")
    @home_option
    @click.option("--query", "-q", default="", help="Only notes containing this text.")
    @click.option("--pending", is_flag=True, help="Only notes not yet synced.")
    def note_list(home: Optional[str], query: str, pending: bool):
        """List notes, newest first."""
        _, service = open_service(home, online=False)
        notes = service.store.list_by_owner(service.owner_id)
        notes = search_notes(notes, query, synced=False if pending else None)

        if not notes:
            console.print("\n  [dim]No notes.[/]\n")
            return

        table = Table(title=f"Notes ({len(notes)})", show_lines=False)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Title", style="bold")
        table.add_column("Modified", style="dim")
        table.add_column("State")
        for item in notes:
            table.add_row(
                short_id(item.id),
                item.title or "[dim]Untitled[/]",
                f"{item.modified_at:%Y-%m-%d %H:%M}",
                synced_marker(item),
            )
        console.print()
        console.print(table)
        console.print()

    @main.command("stats")
    @home_option
    def stats(home: Optional[str]):
        """Show counts, words and date range across all notes."""
        _, service = open_service(home, online=False)
        result = note_statistics(service.store.list_by_owner(service.owner_id))

        def _when(value) -> str:
            return f"{value:%Y-%m-%d %H:%M}" if value else "[dim]n/a[/]"

        console.print()
        console.print(
            Panel(
                f"Notes: [bold]{result.total}[/]\n"
                f"Synced: [green]{result.synced}[/]  Pending: [yellow]{result.pending}[/]\n"
                f"Words: {result.total_words}  Characters: {result.total_characters}\n"
                f"Oldest: {_when(result.oldest)}\n"
                f"Newest: {_when(result.newest)}",
                title=f"NoteSync: {service.owner_id}",
                border_style="magenta",
            )
        )
        console.print()
