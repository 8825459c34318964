"""
Configuration -- ~/.notesync/config.yaml plus a few environment overrides.

    NOTESYNC_HOME        home directory (default ~/.notesync)
    NOTESYNC_OWNER       owner id, wins over config.yaml
    NOTESYNC_REMOTE_URL  REST base URL, wins over config.yaml

A broken config file is logged and replaced by defaults rather than
refusing to start; notes are still writable offline.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from . import NOTESYNC_HOME
from ._fileio import atomic_write, read_json, write_model
from .models import NoteSyncConfig, SyncState

logger = logging.getLogger("notesync.config")

CONFIG_FILE = "config.yaml"
STATE_FILE = "state.json"


def resolve_home(home: Optional[str | Path] = None) -> Path:
    """Expand the home directory, honoring NOTESYNC_HOME."""
    raw = home if home is not None else os.environ.get("NOTESYNC_HOME", NOTESYNC_HOME)
    return Path(raw).expanduser()


def _apply_env(config: NoteSyncConfig) -> NoteSyncConfig:
    owner = os.environ.get("NOTESYNC_OWNER")
    if owner:
        config = config.model_copy(update={"owner_id": owner})
    url = os.environ.get("NOTESYNC_REMOTE_URL")
    if url:
        remote = config.remote.model_copy(update={"base_url": url})
        config = config.model_copy(update={"remote": remote})
    return config


def load_config(home: Path) -> NoteSyncConfig:
    """Load config.yaml from ``home``, falling back to defaults."""
    config_file = home / CONFIG_FILE
    config = NoteSyncConfig()
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            config = NoteSyncConfig(**data)
        except (yaml.YAMLError, ValueError, TypeError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return _apply_env(config)


def save_config(home: Path, config: NoteSyncConfig) -> Path:
    """Write ``config`` to config.yaml and return the path."""
    config_file = home / CONFIG_FILE
    data = config.model_dump(mode="json", exclude_none=True)
    atomic_write(config_file, yaml.dump(data, default_flow_style=False, sort_keys=False))
    logger.info("Saved config to %s", config_file)
    return config_file


def load_state(home: Path) -> SyncState:
    data = read_json(home / STATE_FILE)
    if data is None:
        return SyncState()
    try:
        return SyncState(**data)
    except (ValueError, TypeError) as exc:
        logger.warning("Failed to load sync state: %s", exc)
        return SyncState()


def save_state(home: Path, state: SyncState) -> None:
    write_model(home / STATE_FILE, state)
