"""Shared utilities for all CLI command modules.

Provides the Rich console, logging setup, and the helper that wires a
home directory into a ready-to-use orchestrator.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from .. import NOTESYNC_HOME
from ..config import load_config, resolve_home
from ..engine import SyncEngine
from ..models import Note, NoteSyncConfig, SyncStatus
from ..notes import NoteService
from ..orchestrator import SyncOrchestrator

console = Console()
logger = logging.getLogger("notesync.cli")

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> None:
    """Attach a stderr handler, and optionally a file handler, to the root logger."""
    root = logging.getLogger()
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def home_option(func):
    """``--home`` option shared by every command."""
    return click.option(
        "--home",
        default=None,
        type=click.Path(),
        help=f"NoteSync home (default: $NOTESYNC_HOME or {NOTESYNC_HOME}).",
    )(func)


def open_home(home: Optional[str]) -> tuple[Path, NoteSyncConfig]:
    """Resolve and load a home directory, exiting if it was never initialized."""
    home_path = resolve_home(home)
    if not home_path.exists():
        console.print("[bold red]No NoteSync home found.[/] Run notesync init first.")
        sys.exit(1)
    return home_path, load_config(home_path)


def open_service(
    home: Optional[str],
    online: bool = True,
) -> tuple[Path, NoteService]:
    """Wire store, queue, gateway, orchestrator and note service for ``home``."""
    home_path, config = open_home(home)
    engine = SyncEngine.from_config(home_path, config)
    orchestrator = SyncOrchestrator(engine, config.owner_id, config, online=online)
    return home_path, NoteService(orchestrator)


def status_icon(status: SyncStatus) -> str:
    """Map sync status to a Rich-formatted indicator."""
    return {
        SyncStatus.SYNCED: "[bold green]SYNCED[/]",
        SyncStatus.SYNCING: "[bold cyan]SYNCING[/]",
        SyncStatus.PENDING: "[bold yellow]PENDING[/]",
        SyncStatus.ERROR: "[bold red]ERROR[/]",
    }.get(status, "[dim]UNKNOWN[/]")


def synced_marker(note: Note) -> str:
    return "[green]synced[/]" if note.synced else "[yellow]pending[/]"


def short_id(note_id: str) -> str:
    return note_id[:8]


def resolve_note_id(service: NoteService, prefix: str) -> str:
    """Expand a unique id prefix to a full note id, exiting on no or many matches."""
    matches = [n.id for n in service.store.list_by_owner(service.owner_id) if n.id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        console.print(f"[bold red]No note matches[/] {prefix}")
    else:
        console.print(f"[bold red]Ambiguous id[/] {prefix}: {len(matches)} notes match")
    sys.exit(1)
