"""Shared helpers for the on-disk collections."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from pydantic import BaseModel

logger = logging.getLogger("notesync.fileio")


class StoreError(RuntimeError):
    """The local durable store could not be read or written."""


def record_filename(record_id: str) -> str:
    """File name for a record id. Percent-encoding keeps distinct ids distinct."""
    return f"{quote(record_id, safe='')}.json"


def atomic_write(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temp file and rename.

    Raises:
        StoreError: If the filesystem refuses the write.
    """
    tmp_path = path.parent / f".{path.name}.tmp"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as exc:
        raise StoreError(f"Cannot write {path}: {exc}") from exc


def write_model(path: Path, model: BaseModel) -> None:
    """Persist a pydantic model as pretty JSON."""
    atomic_write(path, model.model_dump_json(indent=2))


def read_json(path: Path) -> Optional[dict[str, Any]]:
    """Load a JSON object from disk, or None if it is missing or corrupt."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Skipping unreadable file %s: %s", path, exc)
        return None


def remove_file(path: Path) -> bool:
    """Delete ``path``; returns False if it was already gone."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise StoreError(f"Cannot delete {path}: {exc}") from exc
