"""
Sync Engine -- drains the mutation queue and reconciles remote state.

This is the command center. A full pass is two phases:

    push  ->  replay queued mutations against the remote, settling
              conflicts per entry with the active strategy
    pull  ->  fetch the owner's remote notes and fold them into the
              local store, including remote-side deletions

Per-entry push failures are tallied and never stop the loop. A pull
that cannot reach the remote leaves the local store untouched. Only
failures of the local store itself escape to the caller.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .conflict import DEFAULT_STRATEGY, detect_conflict, is_remote_newer, resolve
from .gateway import (
    NotFoundError,
    RemoteError,
    RemoteGateway,
    UnconfiguredError,
    create_gateway,
)
from .models import (
    ConflictDetail,
    ConflictStrategy,
    Note,
    NoteSyncConfig,
    Operation,
    PullResult,
    PushResult,
    QueueEntry,
    SyncReport,
    utcnow,
)
from .mutation_queue import MutationQueue
from .store import RecordStore

logger = logging.getLogger("notesync.engine")


class SyncEngine:
    """Runs push and pull phases between a local store and a remote gateway.

    Args:
        store: Local record store (owns the mutation queue).
        gateway: Remote collection to synchronize with.
    """

    def __init__(self, store: RecordStore, gateway: RemoteGateway):
        self.store = store
        self.queue = store.queue
        self.gateway = gateway

    @classmethod
    def from_config(
        cls,
        home: Path,
        config: NoteSyncConfig,
        gateway: Optional[RemoteGateway] = None,
    ) -> "SyncEngine":
        """Wire queue, store and gateway for a NoteSync home directory."""
        queue = MutationQueue(home)
        store = RecordStore(home, queue)
        queue.initialize()
        store.initialize()
        return cls(store, gateway or create_gateway(config.remote, home))

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self, strategy: ConflictStrategy = DEFAULT_STRATEGY) -> PushResult:
        """Replay every queued mutation against the remote, in order.

        Args:
            strategy: How to settle a conflict found on the way.

        Returns:
            PushResult with synced/failed/conflict counters.
        """
        result = PushResult()
        entries = self.queue.drain()
        if not entries:
            logger.info("No pending operations to sync")
            return result

        logger.info("Processing %d pending operation(s)", len(entries))

        # Notes whose earlier entry is still queued; their later entries
        # wait too so a record's history is replayed in order.
        held: set[str] = set()

        for entry in entries:
            note_id = entry.note.id
            if note_id in held:
                logger.debug(
                    "Holding %s #%d for note %s behind an earlier failure",
                    entry.operation.value,
                    entry.sequence_id,
                    note_id,
                )
                continue

            try:
                self._push_entry(entry, strategy, result)
            except UnconfiguredError as exc:
                result.failed += 1
                logger.warning("Remote not configured, stopping push: %s", exc)
                break
            except NotFoundError as exc:
                result.failed += 1
                if entry.operation is not Operation.DELETE:
                    logger.info(
                        "Note %s not found remotely, dropping queued %s",
                        note_id,
                        entry.operation.value,
                    )
                    self.queue.acknowledge(entry.sequence_id)
                else:
                    held.add(note_id)
                    logger.error("Failed to sync delete for %s: %s", note_id, exc)
            except (RemoteError, ValidationError) as exc:
                result.failed += 1
                held.add(note_id)
                logger.error(
                    "Failed to sync %s for note %s: %s",
                    entry.operation.value,
                    note_id,
                    exc,
                )

        logger.info(
            "Push completed: %d synced, %d failed, %d conflict(s)",
            result.synced,
            result.failed,
            result.conflicts,
        )
        return result

    def _push_entry(
        self,
        entry: QueueEntry,
        strategy: ConflictStrategy,
        result: PushResult,
    ) -> None:
        note = entry.note
        logger.debug(
            "Processing %s #%d for note %s",
            entry.operation.value,
            entry.sequence_id,
            note.id,
        )

        if entry.operation is not Operation.DELETE:
            remote = self._conflict_candidate(note)
            if remote is not None and detect_conflict(note, remote):
                logger.info("Conflict detected for note %s", note.id)
                resolved = resolve(note, remote, strategy)
                self.gateway.update(resolved)
                self._mark_synced(resolved, snapshot=note)
                self.queue.acknowledge(entry.sequence_id)
                result.conflicts += 1
                result.conflict_details.append(ConflictDetail(
                    note_id=note.id,
                    local=note,
                    remote=remote,
                    resolved=resolved,
                    strategy=strategy,
                ))
                return

        if entry.operation is Operation.CREATE:
            self.gateway.create(note)
            self._mark_synced(note)
        elif entry.operation is Operation.UPDATE:
            self.gateway.update(note)
            self._mark_synced(note)
        else:
            self.gateway.delete(note.id, note.owner_id)

        self.queue.acknowledge(entry.sequence_id)
        result.synced += 1
        logger.info(
            "Synced %s for note %s", entry.operation.value, note.id
        )

    def _conflict_candidate(self, note: Note) -> Optional[Note]:
        """Remote copy of ``note`` if it exists and is newer than the snapshot."""
        remote = self.gateway.fetch_one(note.id, note.owner_id)
        if remote is None or not is_remote_newer(note, remote):
            return None
        return remote

    def _mark_synced(self, note: Note, snapshot: Optional[Note] = None) -> None:
        """Record that ``note`` now matches the remote.

        ``snapshot`` is the queued version that was pushed (defaults to
        ``note``). Skipped when the note was deleted locally in the
        meantime, or when a local edit newer than the snapshot exists;
        that edit has its own queue entry and stays unsynced.
        """
        snapshot = snapshot or note
        current = self.store.get(note.id)
        if current is None:
            logger.debug("Note %s gone locally, not marking synced", note.id)
            return
        if current.modified_at > snapshot.modified_at:
            logger.debug("Note %s has a newer local edit, leaving unsynced", note.id)
            return
        self.store.put(note, already_synced=True)

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(self, owner_id: str) -> PullResult:
        """Fold the owner's remote notes into the local store.

        - remote only: inserted as synced
        - both, remote strictly newer, local synced: overwritten
        - both, local unsynced: left alone
        - local synced, absent remotely: deleted locally
        - local unsynced, absent remotely: kept

        A remote failure returns an empty result and changes nothing.
        """
        result = PullResult()
        logger.info("Pulling notes from %s remote...", self.gateway.name)
        try:
            remote_notes = self.gateway.fetch_all(owner_id)
        except (RemoteError, ValidationError) as exc:
            logger.error("Error pulling notes from remote: %s", exc)
            result.error = str(exc)
            return result

        local_notes = {n.id: n for n in self.store.list_by_owner(owner_id)}
        remote_ids = {n.id for n in remote_notes}
        pending_deletes = {
            e.note.id for e in self.queue.drain()
            if e.operation is Operation.DELETE
        }

        for remote in remote_notes:
            local = local_notes.get(remote.id)

            if local is None:
                if remote.id in pending_deletes:
                    logger.debug("Note %s deleted locally, not re-adding", remote.id)
                    result.skipped += 1
                    continue
                logger.info("New note from remote: %s", remote.id)
                result.applied.append(self.store.put(remote, already_synced=True))
                result.added += 1
            elif local.synced is False:
                logger.info(
                    "Skipping update for %s - local has unsynced changes",
                    remote.id,
                )
                result.skipped += 1
            elif is_remote_newer(local, remote):
                logger.info("Updating note %s with newer remote version", remote.id)
                result.applied.append(self.store.put(remote, already_synced=True))
                result.updated += 1

        for local in local_notes.values():
            if local.id not in remote_ids and local.synced:
                logger.info("Note %s deleted remotely, removing locally", local.id)
                self.store.remove(local.id, owner_id, already_synced=True)
                result.deleted += 1

        logger.info(
            "Pull completed: %d added, %d updated, %d deleted, %d skipped",
            result.added,
            result.updated,
            result.deleted,
            result.skipped,
        )
        return result

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    def full_sync(
        self,
        owner_id: str,
        strategy: ConflictStrategy = DEFAULT_STRATEGY,
    ) -> SyncReport:
        """Push, then pull.

        Raises:
            StoreError: If the local store cannot be read or written.
        """
        report = SyncReport(started_at=utcnow())
        report.push = self.push(strategy)
        report.pull = self.pull(owner_id)
        report.finished_at = utcnow()
        return report
