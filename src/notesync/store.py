"""
Record Store -- durable, owner-scoped storage for notes.

Each note is one JSON file in ~/.notesync/records/. Writes go through
a temp file and a rename so a crash never leaves half a note behind.

Local mutations are mirrored into the MutationQueue as they happen,
unless the caller says the value already came from the remote (pull
results and push confirmations), which would otherwise bounce straight
back out as a fresh pending push.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ._fileio import read_json, record_filename, remove_file, write_model
from .models import Note, Operation
from .mutation_queue import MutationQueue

logger = logging.getLogger("notesync.store")


class OwnershipError(PermissionError):
    """A mutation named a different owner than the stored note."""


class RecordStore:
    """File-backed note store that feeds the mutation queue.

    Args:
        home: NoteSync home directory (~/.notesync).
        queue: Queue that receives one entry per local mutation.
    """

    def __init__(self, home: Path, queue: MutationQueue) -> None:
        self._dir = home / "records"
        self.queue = queue

    def initialize(self) -> None:
        """Create the records directory."""
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, note_id: str) -> Path:
        return self._dir / record_filename(note_id)

    def _load(self, path: Path) -> Optional[Note]:
        data = read_json(path)
        if data is None:
            return None
        try:
            return Note.model_validate(data)
        except ValidationError as exc:
            logger.warning("Skipping invalid note %s: %s", path.name, exc)
            return None

    def _all(self) -> list[Note]:
        if not self._dir.is_dir():
            return []
        notes = []
        for path in self._dir.glob("*.json"):
            note = self._load(path)
            if note is not None:
                notes.append(note)
        return notes

    def get(self, note_id: str) -> Optional[Note]:
        """Look up a note by id."""
        note = self._load(self._path(note_id))
        if note is not None and note.id != note_id:
            logger.warning("Record file for %s holds note %s, ignoring", note_id, note.id)
            return None
        return note

    def list_by_owner(self, owner_id: str) -> list[Note]:
        """All notes for ``owner_id``, most recently modified first."""
        notes = [n for n in self._all() if n.owner_id == owner_id]
        notes.sort(key=lambda n: n.modified_at, reverse=True)
        return notes

    def unsynced(self, owner_id: Optional[str] = None) -> list[Note]:
        """Notes with a local mutation not yet confirmed remotely."""
        return [
            n for n in self._all()
            if n.synced is False and (owner_id is None or n.owner_id == owner_id)
        ]

    def count_unsynced(self, owner_id: Optional[str] = None) -> int:
        return len(self.unsynced(owner_id))

    def put(self, note: Note, *, already_synced: bool = False) -> Note:
        """Insert or replace a note.

        An unset ``synced`` flag becomes False; an explicit one is kept.
        A create or update entry is queued unless the note is (or is
        declared) already in step with the remote.

        Args:
            note: The note to store.
            already_synced: The value was confirmed by the remote; store it
                as synced and do not queue it.

        Returns:
            The note exactly as stored.
        """
        self.initialize()
        previous = self.get(note.id)

        if already_synced:
            stored = note.model_copy(update={"synced": True})
        elif note.synced is None:
            stored = note.model_copy(update={"synced": False})
        else:
            stored = note

        write_model(self._path(stored.id), stored)

        if not already_synced and not stored.synced:
            operation = Operation.CREATE if previous is None else Operation.UPDATE
            self.queue.enqueue(operation, stored)

        logger.debug(
            "Stored note %s (synced=%s)", stored.id, stored.synced
        )
        return stored

    def remove(
        self,
        note_id: str,
        owner_id: str,
        *,
        already_synced: bool = False,
    ) -> bool:
        """Delete a note by id.

        Args:
            note_id: Note to delete.
            owner_id: Expected owner; a mismatch refuses the delete.
            already_synced: The deletion came from the remote; do not queue it.

        Returns:
            True if a note was removed.

        Raises:
            OwnershipError: If the stored note belongs to someone else.
        """
        existing = self.get(note_id)
        if existing is not None and existing.owner_id != owner_id:
            raise OwnershipError(
                f"Note {note_id} is not owned by {owner_id}"
            )

        removed = remove_file(self._path(note_id))

        if existing is not None and not already_synced:
            self.queue.enqueue(Operation.DELETE, existing)

        if removed:
            logger.debug("Removed note %s", note_id)
        return removed

    def clear(self) -> int:
        """Drop every stored note without queueing anything."""
        removed = 0
        if self._dir.is_dir():
            for path in self._dir.glob("*.json"):
                if remove_file(path):
                    removed += 1
        return removed
