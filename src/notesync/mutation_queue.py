"""
Mutation Queue -- the durable log of changes waiting for the remote.

Every local create, update and delete appends one entry. Entries are
replayed in sequence order by the push phase and removed only once
the remote confirms them (or proves them pointless).

Storage layout:
    ~/.notesync/queue/
    ├── sequence.json            # Next sequence id, never reused
    ├── entry-000000000001.json
    └── entry-000000000002.json
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ._fileio import atomic_write, read_json, remove_file, write_model
from .models import Note, Operation, QueueEntry, utcnow

logger = logging.getLogger("notesync.queue")

ENTRY_GLOB = "entry-*.json"


def _entry_filename(sequence_id: int) -> str:
    return f"entry-{sequence_id:012d}.json"


class MutationQueue:
    """Append-only, file-backed queue of pending mutations.

    Args:
        home: NoteSync home directory (~/.notesync).
    """

    def __init__(self, home: Path) -> None:
        self._dir = home / "queue"
        self._sequence_file = self._dir / "sequence.json"
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Create the queue directory."""
        self._dir.mkdir(parents=True, exist_ok=True)

    def enqueue(self, operation: Operation, note: Note) -> QueueEntry:
        """Durably append a mutation.

        Args:
            operation: create, update or delete.
            note: Snapshot of the note at the time of the mutation.

        Returns:
            The stored QueueEntry with its assigned sequence id.
        """
        self.initialize()
        with self._lock:
            sequence_id = self._next_sequence()
            entry = QueueEntry(
                sequence_id=sequence_id,
                operation=operation,
                note=note,
                queued_at=utcnow(),
            )
            write_model(self._dir / _entry_filename(sequence_id), entry)
            atomic_write(
                self._sequence_file, f'{{"next": {sequence_id + 1}}}'
            )

        logger.debug(
            "Queued %s #%d for note %s",
            operation.value,
            sequence_id,
            note.id,
        )
        return entry

    def drain(self) -> list[QueueEntry]:
        """Return every pending entry in sequence order, without removing it."""
        if not self._dir.is_dir():
            return []

        entries: list[QueueEntry] = []
        for path in self._dir.glob(ENTRY_GLOB):
            data = read_json(path)
            if data is None:
                continue
            try:
                entries.append(QueueEntry.model_validate(data))
            except ValidationError as exc:
                logger.warning("Skipping invalid queue entry %s: %s", path.name, exc)

        entries.sort(key=lambda e: e.sequence_id)
        return entries

    def acknowledge(self, sequence_id: int) -> None:
        """Remove one entry. Removing an absent entry is not an error."""
        if remove_file(self._dir / _entry_filename(sequence_id)):
            logger.debug("Acknowledged queue entry #%d", sequence_id)

    def clear(self) -> int:
        """Remove every entry. Returns how many were dropped."""
        removed = 0
        if self._dir.is_dir():
            for path in self._dir.glob(ENTRY_GLOB):
                if remove_file(path):
                    removed += 1
        if removed:
            logger.info("Cleared %d queued mutation(s)", removed)
        return removed

    def pending_for(self, note_id: str) -> list[QueueEntry]:
        """Entries that still carry ``note_id``."""
        return [e for e in self.drain() if e.note.id == note_id]

    def __len__(self) -> int:
        if not self._dir.is_dir():
            return 0
        return sum(1 for _ in self._dir.glob(ENTRY_GLOB))

    def _next_sequence(self) -> int:
        """Next id: persisted counter, bumped past any entry on disk."""
        data: Optional[dict] = read_json(self._sequence_file)
        stored = int(data.get("next", 1)) if data else 1

        highest = 0
        for path in self._dir.glob(ENTRY_GLOB):
            try:
                highest = max(highest, int(path.stem.split("-", 1)[1]))
            except (IndexError, ValueError):
                continue
        return max(stored, highest + 1)
