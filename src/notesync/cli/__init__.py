"""
NoteSync CLI -- offline-first notes from the terminal.

Commands are grouped by concern, one module per group, each exposing a
``register_*_commands(main)`` function that attaches to the main group.

Entry point: notesync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__
from ._common import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="notesync")
@click.option("-v", "--verbose", is_flag=True, help="Log sync activity to stderr.")
def main(verbose: bool):
    """NoteSync: write offline, sync when you can."""
    if verbose:
        setup_logging()


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .init_cmd import register_init_commands
from .notes_cmd import register_notes_commands
from .sync_cmd import register_sync_commands

register_init_commands(main)
register_notes_commands(main)
register_sync_commands(main)
