"""
Note service -- the surface a client edits notes through.

Every mutation lands in the local store first and is visible at once.
Creates and deletes sync immediately; edits are debounced so a burst
of saves turns into one push.
"""

from __future__ import annotations

import logging
from typing import Optional

from ._fileio import StoreError
from .models import Note, SyncReport
from .orchestrator import SyncOrchestrator

logger = logging.getLogger("notesync.notes")


class NoteNotFoundError(LookupError):
    """No note with that id exists for the owner."""


class NoteService:
    """Create, modify and remove notes for one owner.

    Args:
        orchestrator: Orchestrator that owns the engine, store and timers.
    """

    def __init__(self, orchestrator: SyncOrchestrator):
        self.orchestrator = orchestrator
        self.store = orchestrator.engine.store
        self.owner_id = orchestrator.owner_id

    @property
    def notes(self) -> list[Note]:
        """Owner's notes as of the last load or sync, newest first."""
        return self.orchestrator.view

    def load(self) -> list[Note]:
        """Initial load: pull when online, read the local view, push pending."""
        if self.orchestrator.online:
            logger.info("Online, pulling from remote before load...")
            self.orchestrator.engine.pull(self.owner_id)
        else:
            logger.info("Offline, using local data only")

        notes = self.orchestrator.reload()
        logger.info("Loaded %d note(s) from local store", len(notes))

        if self.orchestrator.online:
            self._sync_after_change()
        else:
            self.orchestrator.refresh_status()
        return self.notes

    def get(self, note_id: str) -> Note:
        note = self.store.get(note_id)
        if note is None or note.owner_id != self.owner_id:
            raise NoteNotFoundError(f"Note not found: {note_id}")
        return note

    def create(self, title: str = "", body: str = "") -> Note:
        """Store a new note and sync right away."""
        note = self.store.put(Note.new(self.owner_id, title=title, body=body))
        logger.info("Created note %s", note.id)
        self.orchestrator.reload()
        self._sync_after_change()
        return note

    def modify(
        self,
        note_id: str,
        title: Optional[str] = None,
        body: Optional[str] = None,
    ) -> Note:
        """Edit a note; the push is debounced.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        current = self.get(note_id)
        changes = {}
        if title is not None:
            changes["title"] = title
        if body is not None:
            changes["body"] = body

        note = self.store.put(current.touch(synced=False, **changes))
        logger.info("Updated note %s", note.id)
        self.orchestrator.reload()

        if self.orchestrator.online:
            self.orchestrator.schedule_sync()
        else:
            logger.info("Offline, note will sync when online")
            self.orchestrator.refresh_status()
        return note

    def remove(self, note_id: str) -> bool:
        """Delete a note and sync right away.

        Raises:
            NoteNotFoundError: If the note does not exist.
        """
        self.get(note_id)
        removed = self.store.remove(note_id, self.owner_id)
        logger.info("Deleted note %s", note_id)
        self.orchestrator.reload()
        self._sync_after_change()
        return removed

    def sync(self) -> Optional[SyncReport]:
        """Run a sync pass now. Returns None if it was skipped."""
        return self.orchestrator.request_sync()

    def flush(self) -> None:
        """Run a debounced sync now instead of waiting for its timer."""
        if self.orchestrator.sync_scheduled:
            self._sync_after_change()

    def _sync_after_change(self) -> None:
        self.orchestrator.cancel_scheduled()
        if not self.orchestrator.online:
            logger.info("Offline, change will sync when online")
            self.orchestrator.refresh_status()
            return
        try:
            self.orchestrator.request_sync()
        except (StoreError, OSError) as exc:
            # Already recorded as the orchestrator's last_error.
            logger.error("Sync after local change failed: %s", exc)
