"""Shared test fixtures for notesync."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

from notesync.engine import SyncEngine
from notesync.gateway import NotFoundError, RemoteGateway, normalize_for_remote
from notesync.models import Note, NoteSyncConfig
from notesync.mutation_queue import MutationQueue
from notesync.store import RecordStore

OWNER = "alice@example.com"

T0 = datetime(2020, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """A fixed timestamp ``minutes`` after T0."""
    return T0 + timedelta(minutes=minutes)


class FakeGateway(RemoteGateway):
    """In-memory remote that records every call.

    ``failures`` maps a method name to an exception (or a list of them,
    consumed one per call, where None lets that call through) raised
    instead of doing the work.
    """

    def __init__(self, notes: Optional[list[Note]] = None, configured: bool = True):
        self.notes: dict[str, Note] = {n.id: n for n in (notes or [])}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, object] = {}
        self.configured = configured

    @property
    def name(self) -> str:
        return "fake"

    def available(self) -> bool:
        return self.configured

    def _maybe_fail(self, method: str) -> None:
        failure = self.failures.get(method)
        if isinstance(failure, list):
            if failure:
                exc = failure.pop(0)
                if exc is not None:
                    raise exc
        elif failure is not None:
            raise failure

    def fetch_all(self, owner_id: str) -> list[Note]:
        self.calls.append(("fetch_all", owner_id))
        self._maybe_fail("fetch_all")
        return [n for n in self.notes.values() if n.owner_id == owner_id]

    def fetch_one(self, note_id: str, owner_id: str) -> Optional[Note]:
        self.calls.append(("fetch_one", note_id))
        self._maybe_fail("fetch_one")
        note = self.notes.get(note_id)
        return note if note is not None and note.owner_id == owner_id else None

    def create(self, note: Note) -> Note:
        self.calls.append(("create", note.id))
        self._maybe_fail("create")
        stored = normalize_for_remote(note).model_copy(update={"synced": None})
        self.notes[note.id] = stored
        return stored

    def update(self, note: Note) -> Note:
        self.calls.append(("update", note.id))
        self._maybe_fail("update")
        if note.id not in self.notes:
            raise NotFoundError(note.id)
        stored = self.notes[note.id].model_copy(update={
            "title": note.title,
            "body": note.body,
            "modified_at": note.modified_at,
        })
        self.notes[note.id] = stored
        return stored

    def delete(self, note_id: str, owner_id: str) -> None:
        self.calls.append(("delete", note_id))
        self._maybe_fail("delete")
        self.notes.pop(note_id, None)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


def make_note(
    note_id: str,
    title: str = "",
    body: str = "",
    modified: int = 0,
    synced: Optional[bool] = None,
    owner_id: str = OWNER,
) -> Note:
    """Build a note with deterministic timestamps."""
    return Note(
        id=note_id,
        owner_id=owner_id,
        title=title,
        body=body,
        created_at=T0,
        modified_at=at(modified),
        synced=synced,
    )


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Provide a temporary NoteSync home directory."""
    path = tmp_path / ".notesync"
    path.mkdir()
    return path


@pytest.fixture
def queue(home: Path) -> MutationQueue:
    q = MutationQueue(home)
    q.initialize()
    return q


@pytest.fixture
def store(home: Path, queue: MutationQueue) -> RecordStore:
    s = RecordStore(home, queue)
    s.initialize()
    return s


@pytest.fixture
def remote() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def engine(store: RecordStore, remote: FakeGateway) -> SyncEngine:
    return SyncEngine(store, remote)


@pytest.fixture
def config() -> NoteSyncConfig:
    """Config with short timers so timer-driven tests finish quickly."""
    return NoteSyncConfig(
        owner_id=OWNER,
        sync_interval_seconds=0.05,
        error_retry_seconds=0.05,
        debounce_seconds=0.05,
    )
