"""Sync commands: run, status, queue, ping, watch, reset."""

from __future__ import annotations

import signal
import sys
import threading
from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from .._fileio import StoreError
from ..config import load_state, save_state
from ..events import SyncEvent
from ..models import ConflictStrategy, utcnow
from ..notes import NoteService
from ._common import (
    console,
    home_option,
    logger,
    open_home,
    open_service,
    setup_logging,
    short_id,
    status_icon,
)


def watch_until(service: NoteService, stop: threading.Event) -> None:
    """Run the periodic loop until ``stop`` is set, then push what is left.

    A debounced edit still waiting for its timer is flushed before the
    timers are torn down.
    """
    orchestrator = service.orchestrator
    orchestrator.start()
    try:
        stop.wait()
    finally:
        service.flush()
        orchestrator.stop()


def register_sync_commands(main: click.Group) -> None:
    """Register the sync command group."""

    @main.group()
    def sync():
        """Push queued changes, pull remote ones, settle conflicts."""

    @sync.command("run")
    @home_option
    @click.option(
        "--strategy",
        type=click.Choice([s.value for s in ConflictStrategy]),
        default=None,
        help="Conflict strategy for this pass (default: from config).",
    )
    @click.option("--offline", is_flag=True, help="Only report what is waiting.")
    def sync_run(home: Optional[str], strategy: Optional[str], offline: bool):
        """Run one full sync pass: push, then pull."""
        home_path, service = open_service(home, online=not offline)
        orchestrator = service.orchestrator
        state = load_state(home_path)

        console.print(f"\n  Syncing with [cyan]{orchestrator.engine.gateway.name}[/] remote...", end=" ")
        try:
            report = orchestrator.request_sync(
                ConflictStrategy(strategy) if strategy else None
            )
        except (StoreError, OSError) as exc:
            console.print("[red]failed[/]")
            state.last_error = str(exc)
            save_state(home_path, state)
            console.print(f"  [bold red]Error:[/] {exc}\n")
            sys.exit(1)

        if report is None:
            pending = len(orchestrator.engine.queue)
            console.print("[yellow]skipped[/]")
            console.print(f"  Offline or remote not configured. {pending} change(s) queued.\n")
            return

        console.print("[green]done[/]")
        push, pull = report.push, report.pull
        console.print(
            f"  Push: [green]{push.synced} synced[/], "
            f"[red]{push.failed} failed[/], "
            f"[yellow]{push.conflicts} conflict(s)[/]"
        )
        for detail in push.conflict_details:
            console.print(
                f"    [yellow]conflict[/] [cyan]{short_id(detail.note_id)}[/] "
                f"resolved by {detail.strategy.value}"
            )
        if pull.error:
            console.print(f"  Pull: [red]remote unavailable[/] ({pull.error})")
        else:
            console.print(
                f"  Pull: {pull.added} added, {pull.updated} updated, "
                f"{pull.deleted} deleted, {pull.skipped} skipped"
            )
        console.print(f"  Status: {status_icon(orchestrator.status)}\n")

        state.last_sync = report.finished_at or utcnow()
        state.last_error = None
        state.last_counts = push.counts()
        state.sync_count += 1
        save_state(home_path, state)

    @sync.command("status")
    @home_option
    def sync_status(home: Optional[str]):
        """Show remote, queue and last-sync information."""
        home_path, service = open_service(home, online=False)
        config = service.orchestrator.config
        state = load_state(home_path)
        queued = len(service.orchestrator.engine.queue)
        unsynced = service.store.count_unsynced(service.owner_id)
        remote = config.remote
        target = remote.base_url if remote.base_url else (remote.local_path or home_path / "remote")

        counts = state.last_counts
        last_counts = (
            f"{counts.get('synced', 0)} synced, {counts.get('failed', 0)} failed, "
            f"{counts.get('conflicts', 0)} conflict(s)"
            if counts else "[dim]n/a[/]"
        )
        console.print()
        console.print(
            Panel(
                f"Owner: [bold]{config.owner_id}[/]\n"
                f"Remote: [cyan]{remote.backend.value}[/] {target}\n"
                f"Strategy: [cyan]{config.strategy.value}[/]\n"
                f"Queued changes: [bold]{queued}[/]\n"
                f"Unsynced notes: [bold]{unsynced}[/]\n"
                f"Last sync: {state.last_sync or '[dim]never[/]'}\n"
                f"Last result: {last_counts}\n"
                f"Last error: {state.last_error or '[dim]none[/]'}\n"
                f"Passes: {state.sync_count}",
                title="NoteSync",
                border_style="magenta",
            )
        )
        console.print()

    @sync.command("queue")
    @home_option
    def sync_queue(home: Optional[str]):
        """List mutations waiting for the remote, in replay order."""
        _, service = open_service(home, online=False)
        entries = service.orchestrator.engine.queue.drain()
        if not entries:
            console.print("\n  [green]Queue is empty.[/]\n")
            return

        table = Table(title=f"Mutation queue ({len(entries)})")
        table.add_column("Seq", justify="right", style="dim")
        table.add_column("Op", style="bold")
        table.add_column("Note", style="cyan", no_wrap=True)
        table.add_column("Title")
        table.add_column("Queued", style="dim")
        for entry in entries:
            table.add_row(
                str(entry.sequence_id),
                entry.operation.value,
                short_id(entry.note.id),
                entry.note.title or "[dim]Untitled[/]",
                f"{entry.queued_at:%Y-%m-%d %H:%M:%S}",
            )
        console.print()
        console.print(table)
        console.print()

    @sync.command("ping")
    @home_option
    def sync_ping(home: Optional[str]):
        """Check that the configured remote answers."""
        _, service = open_service(home, online=False)
        ok, message = service.orchestrator.engine.gateway.ping()
        if ok:
            console.print(f"\n  [green]OK[/] {message}\n")
        else:
            console.print(f"\n  [bold red]FAILED[/] {message}\n")
            sys.exit(1)

    @sync.command("watch")
    @home_option
    @click.option(
        "--interval",
        type=float,
        default=None,
        help="Seconds between periodic passes (default: from config).",
    )
    def sync_watch(home: Optional[str], interval: Optional[float]):
        """Keep syncing in the foreground until interrupted."""
        home_path, _ = open_home(home)
        setup_logging(home_path / "logs" / "notesync.log")

        _, service = open_service(home)
        orchestrator = service.orchestrator
        if interval is not None:
            orchestrator.config = orchestrator.config.model_copy(
                update={"sync_interval_seconds": interval}
            )

        orchestrator.events.subscribe(
            SyncEvent.STATUS,
            lambda payload: console.print(f"  status -> {payload['status']}"),
        )
        stop = threading.Event()

        def _handle_signal(signum, frame):
            logger.info("Received signal %s, stopping", signal.Signals(signum).name)
            stop.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, _handle_signal)

        console.print(
            f"\n  Watching [cyan]{orchestrator.owner_id}[/] every "
            f"{orchestrator.config.sync_interval_seconds:g}s. Ctrl+C to stop.\n"
        )
        service.load()
        watch_until(service, stop)
        console.print("\n  [dim]Stopped.[/]\n")

    @sync.command("reset")
    @home_option
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
    def sync_reset(home: Optional[str], yes: bool):
        """Drop every local note and queued change."""
        home_path, service = open_service(home, online=False)
        if not yes:
            click.confirm(
                "This deletes all local notes and unsynced changes. Continue?",
                abort=True,
            )
        dropped = service.orchestrator.engine.queue.clear()
        removed = service.store.clear()
        save_state(home_path, load_state(home_path).model_copy(update={"last_error": None}))
        console.print(
            f"\n  [green]Reset:[/] {removed} note(s) and {dropped} queued change(s) removed.\n"
        )
