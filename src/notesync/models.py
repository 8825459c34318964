"""
Sync data models -- notes, queue entries, pass results and configuration.

The note is the only synchronized entity. Everything else here
describes how a note travels: the queued mutation that carries it,
and the counters a sync pass reports when it is done.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat a naive datetime as UTC; aware ones pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Operation(str, Enum):
    """Mutation kinds recorded in the queue."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncStatus(str, Enum):
    """Externally observed orchestrator state."""

    SYNCED = "synced"
    SYNCING = "syncing"
    PENDING = "pending"
    ERROR = "error"


class ConflictStrategy(str, Enum):
    """How a (local, remote) conflict is settled."""

    LOCAL_WINS = "local-wins"
    SERVER_WINS = "server-wins"
    MERGE = "merge"
    MANUAL = "manual"


class RemoteBackendType(str, Enum):
    """Supported remote gateway backends."""

    LOCAL = "local"
    REST = "rest"


class Note(BaseModel):
    """A single note, the unit of synchronization.

    ``synced`` is tri-state on purpose: ``None`` means the caller never
    set it and the store decides, ``False`` means a local mutation is
    waiting to be confirmed remotely, ``True`` means the local copy
    matches the remote one.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str
    title: str = ""
    body: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)
    synced: Optional[bool] = None

    @field_validator("created_at", "modified_at")
    @classmethod
    def stamps_are_aware(cls, v: datetime) -> datetime:
        """Remote rows may carry naive stamps; they are UTC."""
        return as_utc(v)

    @classmethod
    def new(cls, owner_id: str, title: str = "", body: str = "") -> "Note":
        """Create a fresh note with matching created/modified stamps."""
        now = utcnow()
        return cls(
            owner_id=owner_id,
            title=title,
            body=body,
            created_at=now,
            modified_at=now,
        )

    def touch(self, **changes: Any) -> "Note":
        """Return a copy with ``changes`` applied and modified_at refreshed.

        The new stamp is always strictly later than the current one, even
        if the wall clock went backwards.
        """
        now = utcnow()
        if now <= self.modified_at:
            now = self.modified_at + timedelta(microseconds=1)
        changes.setdefault("synced", None)
        return self.model_copy(update={**changes, "modified_at": now})

    def wire(self) -> dict[str, Any]:
        """Remote representation: everything except local-only fields."""
        return self.model_dump(mode="json", exclude={"synced"})


class QueueEntry(BaseModel):
    """A pending mutation awaiting remote application."""

    sequence_id: int
    operation: Operation
    note: Note
    queued_at: datetime = Field(default_factory=utcnow)


class ConflictDetail(BaseModel):
    """Both sides of a conflict plus the note that was kept."""

    note_id: str
    local: Note
    remote: Note
    resolved: Note
    strategy: ConflictStrategy


class PushResult(BaseModel):
    """Counters from one push phase."""

    synced: int = 0
    failed: int = 0
    conflicts: int = 0
    conflict_details: list[ConflictDetail] = Field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "synced": self.synced,
            "failed": self.failed,
            "conflicts": self.conflicts,
        }


class PullResult(BaseModel):
    """Counters from one pull phase."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0
    applied: list[Note] = Field(default_factory=list)
    error: Optional[str] = None


class SyncReport(BaseModel):
    """Outcome of a full push + pull pass."""

    push: PushResult = Field(default_factory=PushResult)
    pull: PullResult = Field(default_factory=PullResult)
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None


class RemoteConfig(BaseModel):
    """Where the remote note collection lives."""

    backend: RemoteBackendType = RemoteBackendType.LOCAL

    # REST collection resource
    base_url: Optional[str] = None
    api_key_env: str = "NOTESYNC_API_KEY"
    collection: str = "notes"
    timeout_seconds: float = 10.0

    # Shared directory acting as the remote
    local_path: Optional[Path] = None


class NoteSyncConfig(BaseModel):
    """Complete sync configuration for one client."""

    owner_id: str = "local"
    strategy: ConflictStrategy = ConflictStrategy.LOCAL_WINS
    sync_interval_seconds: float = 30.0
    error_retry_seconds: float = 5.0
    debounce_seconds: float = Field(default=0.5, ge=0.0)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)


class SyncState(BaseModel):
    """What the last completed pass left behind, for status displays."""

    last_sync: Optional[datetime] = None
    last_error: Optional[str] = None
    last_counts: dict[str, int] = Field(default_factory=dict)
    sync_count: int = 0
