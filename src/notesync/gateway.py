"""
Remote gateways -- where notes go when they leave the device.

Each gateway exposes the same collection-shaped contract: list every
note for an owner, look one up, create, update, delete. The engine
only ever talks to ``RemoteGateway`` and the failure taxonomy below.

Local: a shared directory (USB drive, NAS, synced folder) acting as
       the remote collection.
REST:  a REST-like collection resource filtered by id and owner.

Failures are surfaced as exceptions the engine knows how to treat:

    NotFoundError       the remote record is gone; retrying cannot help
    TransientError      network trouble; keep the mutation and retry later
    UnconfiguredError   there is no remote at all; behave as offline
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from ._fileio import StoreError, read_json, record_filename, remove_file, write_model
from .models import Note, RemoteBackendType, RemoteConfig

logger = logging.getLogger("notesync.gateway")

PLACEHOLDER_TITLE = "Untitled"
PLACEHOLDER_BODY = " "


class RemoteError(Exception):
    """A remote call failed."""


class NotFoundError(RemoteError):
    """The remote record does not exist (or no longer exists)."""


class TransientError(RemoteError):
    """The remote could not be reached right now."""


class UnconfiguredError(RemoteError):
    """No usable remote target is configured."""


def normalize_for_remote(note: Note) -> Note:
    """Fill empty title/body the way the remote collection requires."""
    return note.model_copy(update={
        "title": note.title.strip() or PLACEHOLDER_TITLE,
        "body": note.body.strip() or PLACEHOLDER_BODY,
    })


class RemoteGateway(ABC):
    """Abstract remote note collection."""

    @abstractmethod
    def fetch_all(self, owner_id: str) -> list[Note]:
        """All remote notes for ``owner_id``, newest created first."""

    @abstractmethod
    def fetch_one(self, note_id: str, owner_id: str) -> Optional[Note]:
        """One remote note, or None if it never existed or was deleted."""

    @abstractmethod
    def create(self, note: Note) -> Note:
        """Create a note remotely and return the stored representation."""

    @abstractmethod
    def update(self, note: Note) -> Note:
        """Update title, body and modified_at of an existing remote note."""

    @abstractmethod
    def delete(self, note_id: str, owner_id: str) -> None:
        """Delete a remote note. Deleting a missing note succeeds."""

    @abstractmethod
    def available(self) -> bool:
        """Check if this gateway has a usable target configured."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable gateway name."""

    def ping(self) -> tuple[bool, str]:
        """Probe the remote; returns (ok, human readable message)."""
        if not self.available():
            return False, f"{self.name}: not configured"
        try:
            self.fetch_one("__ping__", "__ping__")
        except RemoteError as exc:
            return False, f"{self.name}: {exc}"
        return True, f"{self.name}: connection successful"


class LocalGateway(RemoteGateway):
    """Directory-backed remote for USB, NAS, or mounted drives.

    Layout: ``<target>/<collection>/<quoted note id>.json``. Create behaves as
    an upsert so a replayed create after a lost acknowledgement is
    harmless.
    """

    def __init__(self, config: RemoteConfig, home: Path):
        self.config = config
        self.target = (
            config.local_path.expanduser()
            if config.local_path
            else home / "remote"
        )
        self._collection = self.target / config.collection

    @property
    def name(self) -> str:
        return "local"

    def available(self) -> bool:
        return self.target.exists()

    def _require_target(self) -> None:
        if not self.target.exists():
            raise TransientError(f"Remote directory not reachable: {self.target}")
        self._collection.mkdir(parents=True, exist_ok=True)

    def _path(self, note_id: str) -> Path:
        return self._collection / record_filename(note_id)

    def _load(self, path: Path) -> Optional[Note]:
        data = read_json(path)
        if data is None:
            return None
        try:
            return Note.model_validate(data)
        except ValidationError as exc:
            logger.warning("Skipping invalid remote note %s: %s", path.name, exc)
            return None

    def _write(self, note: Note) -> Note:
        stored = normalize_for_remote(note).model_copy(update={"synced": None})
        try:
            write_model(self._path(stored.id), stored)
        except StoreError as exc:
            raise TransientError(str(exc)) from exc
        return stored

    def fetch_all(self, owner_id: str) -> list[Note]:
        self._require_target()
        notes = []
        for path in self._collection.glob("*.json"):
            note = self._load(path)
            if note is not None and note.owner_id == owner_id:
                notes.append(note)
        notes.sort(key=lambda n: n.created_at, reverse=True)
        return notes

    def fetch_one(self, note_id: str, owner_id: str) -> Optional[Note]:
        self._require_target()
        note = self._load(self._path(note_id))
        if note is None or note.id != note_id or note.owner_id != owner_id:
            return None
        return note

    def create(self, note: Note) -> Note:
        self._require_target()
        stored = self._write(note)
        logger.info("Note created in local remote: %s", note.id)
        return stored

    def update(self, note: Note) -> Note:
        self._require_target()
        current = self.fetch_one(note.id, note.owner_id)
        if current is None:
            raise NotFoundError(f"Note {note.id} not found in {self.target}")
        stored = self._write(current.model_copy(update={
            "title": note.title,
            "body": note.body,
            "modified_at": note.modified_at,
        }))
        logger.info("Note updated in local remote: %s", note.id)
        return stored

    def delete(self, note_id: str, owner_id: str) -> None:
        self._require_target()
        if self.fetch_one(note_id, owner_id) is None:
            logger.info("Note %s not in local remote (already deleted)", note_id)
            return
        try:
            remove_file(self._path(note_id))
        except StoreError as exc:
            raise TransientError(str(exc)) from exc
        logger.info("Note deleted from local remote: %s", note_id)


class RestGateway(RemoteGateway):
    """REST collection resource (``{base_url}/{collection}``).

    Filters are passed as ``field=eq.value`` query parameters. Expects
    the API key in the environment variable named by
    ``config.api_key_env``.
    """

    def __init__(
        self,
        config: RemoteConfig,
        home: Optional[Path] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self._base = (config.base_url or "").rstrip("/")
        self._api_key = os.environ.get(config.api_key_env, "")
        self._session = session or requests.Session()

    @property
    def name(self) -> str:
        return "rest"

    def available(self) -> bool:
        return bool(self._base and self._api_key)

    def _headers(self, prefer: bool = False) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
        }
        if prefer:
            headers["Prefer"] = (
                "return=representation,resolution=merge-duplicates"
            )
        return headers

    @staticmethod
    def _filter(note_id: str, owner_id: str) -> dict[str, str]:
        return {"id": f"eq.{note_id}", "owner_id": f"eq.{owner_id}"}

    def _request(
        self,
        method: str,
        operation: str,
        params: Optional[dict[str, str]] = None,
        data: Optional[dict[str, Any]] = None,
        prefer: bool = False,
    ) -> requests.Response:
        """Make an authenticated call against the collection.

        Raises:
            UnconfiguredError: If base URL or API key is missing.
            TransientError: On network failure, timeout, 429 or 5xx.
            NotFoundError: On 404.
            RemoteError: On any other 4xx.
        """
        if not self.available():
            raise UnconfiguredError(
                f"REST remote not configured. Set base_url and {self.config.api_key_env}."
            )

        url = f"{self._base}/{quote(self.config.collection)}"
        try:
            resp = self._session.request(
                method,
                url,
                headers=self._headers(prefer),
                params=params,
                json=data,
                timeout=self.config.timeout_seconds,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientError(f"{operation} failed: {exc}") from exc
        except requests.RequestException as exc:
            raise RemoteError(f"{operation} failed: {exc}") from exc

        if resp.status_code < 400:
            return resp

        message = f"{operation} failed: {resp.status_code} {resp.reason}"
        try:
            detail = resp.json()
            if isinstance(detail, dict) and detail.get("message"):
                message = f"{operation} failed: {detail['message']}"
        except ValueError:
            pass

        if resp.status_code == 404:
            raise NotFoundError(message)
        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(message)
        raise RemoteError(message)

    @staticmethod
    def _rows(resp: requests.Response) -> list[dict[str, Any]]:
        if not resp.content:
            return []
        try:
            data = resp.json()
        except ValueError as exc:
            # A proxy or captive portal answering in place of the API.
            raise TransientError(f"Remote returned a non-JSON body: {exc}") from exc
        if isinstance(data, list):
            return data
        return [data] if data else []

    def fetch_all(self, owner_id: str) -> list[Note]:
        resp = self._request(
            "GET",
            "Fetch notes",
            params={"owner_id": f"eq.{owner_id}", "order": "created_at.desc"},
        )
        notes = [Note.model_validate(row) for row in self._rows(resp)]
        logger.info("Fetched %d remote note(s) for %s", len(notes), owner_id)
        return notes

    def fetch_one(self, note_id: str, owner_id: str) -> Optional[Note]:
        try:
            resp = self._request(
                "GET", "Fetch note", params=self._filter(note_id, owner_id)
            )
        except NotFoundError:
            return None
        rows = self._rows(resp)
        return Note.model_validate(rows[0]) if rows else None

    def create(self, note: Note) -> Note:
        payload = normalize_for_remote(note).wire()
        resp = self._request("POST", "Create note", data=payload, prefer=True)
        rows = self._rows(resp)
        logger.info("Note created remotely: %s", note.id)
        return Note.model_validate(rows[0]) if rows else note

    def update(self, note: Note) -> Note:
        normalized = normalize_for_remote(note)
        payload = {
            "title": normalized.title,
            "body": normalized.body,
            "modified_at": note.modified_at.isoformat(),
        }
        resp = self._request(
            "PATCH",
            "Update note",
            params=self._filter(note.id, note.owner_id),
            data=payload,
            prefer=True,
        )
        rows = self._rows(resp)
        if not rows:
            raise NotFoundError(f"Update note failed: {note.id} not found")
        logger.info("Note updated remotely: %s", note.id)
        return Note.model_validate(rows[0])

    def delete(self, note_id: str, owner_id: str) -> None:
        try:
            self._request(
                "DELETE", "Delete note", params=self._filter(note_id, owner_id)
            )
        except NotFoundError:
            logger.info("Note %s not found remotely (already deleted)", note_id)
            return
        logger.info("Note deleted remotely: %s", note_id)


def create_gateway(config: RemoteConfig, home: Path) -> RemoteGateway:
    """Factory function to create the configured gateway.

    Args:
        config: Remote configuration.
        home: NoteSync home directory.

    Returns:
        Instantiated RemoteGateway.

    Raises:
        ValueError: If the backend type is not supported.
    """
    factories = {
        RemoteBackendType.LOCAL: LocalGateway,
        RemoteBackendType.REST: RestGateway,
    }
    factory = factories.get(config.backend)
    if not factory:
        raise ValueError(f"Unsupported remote backend: {config.backend}")
    return factory(config, home)
