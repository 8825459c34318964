"""Init command: create a NoteSync home and write its config."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel

from ..config import CONFIG_FILE, load_config, resolve_home, save_config
from ..engine import SyncEngine
from ..models import ConflictStrategy, RemoteBackendType, RemoteConfig
from ._common import console, home_option


def register_init_commands(main: click.Group) -> None:
    """Register the init command."""

    @main.command("init")
    @home_option
    @click.option("--owner", required=True, help="Owner id all notes are scoped to.")
    @click.option(
        "--backend",
        type=click.Choice([b.value for b in RemoteBackendType]),
        default=RemoteBackendType.LOCAL.value,
        show_default=True,
        help="Remote gateway type.",
    )
    @click.option("--url", default=None, help="Base URL of the REST collection.")
    @click.option(
        "--path",
        "local_path",
        default=None,
        type=click.Path(),
        help="Directory acting as the remote (local backend).",
    )
    @click.option(
        "--strategy",
        type=click.Choice([s.value for s in ConflictStrategy]),
        default=None,
        help="Default conflict strategy.",
    )
    def init(
        home: Optional[str],
        owner: str,
        backend: str,
        url: Optional[str],
        local_path: Optional[str],
        strategy: Optional[str],
    ):
        """Initialize a NoteSync home directory."""
        home_path = resolve_home(home)
        existing = (home_path / CONFIG_FILE).exists()
        config = load_config(home_path)

        remote = RemoteConfig(
            backend=RemoteBackendType(backend),
            base_url=url,
            local_path=Path(local_path).expanduser() if local_path else None,
        )
        if remote.backend is RemoteBackendType.REST and not remote.base_url:
            raise click.UsageError("--url is required for the rest backend.")

        updates = {"owner_id": owner, "remote": remote}
        if strategy:
            updates["strategy"] = ConflictStrategy(strategy)
        config = config.model_copy(update=updates)

        SyncEngine.from_config(home_path, config)
        if remote.backend is RemoteBackendType.LOCAL:
            target = remote.local_path or home_path / "remote"
            target.mkdir(parents=True, exist_ok=True)
        config_file = save_config(home_path, config)

        target_line = (
            f"URL: [cyan]{remote.base_url}[/]"
            if remote.backend is RemoteBackendType.REST
            else f"Path: [cyan]{remote.local_path or home_path / 'remote'}[/]"
        )
        console.print()
        console.print(
            Panel(
                f"Owner: [bold]{owner}[/]\n"
                f"Remote: [cyan]{remote.backend.value}[/]\n"
                f"{target_line}\n"
                f"Strategy: [cyan]{config.strategy.value}[/]\n"
                f"Config: [dim]{config_file}[/]",
                title="NoteSync " + ("reconfigured" if existing else "initialized"),
                border_style="green",
            )
        )
        console.print()
