"""
Sync Orchestrator -- decides when a sync pass runs and what it looks like.

States, as seen from outside:

    synced    last pass succeeded and nothing local is waiting
    syncing   a pass is running right now
    pending   offline, or unsynced notes are known to exist
    error     the last pass failed outside the push/pull phases;
              demoted to pending after ``error_retry_seconds``

Triggers: connectivity restored (``set_online(True)``), an explicit
``request_sync()``, the periodic timer while online, and the debounce
timer armed by ``schedule_sync()``.

At most one pass runs at a time. A trigger that arrives mid-pass is
dropped, not queued; callers that need a guaranteed run re-trigger
after they see the pass complete.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Optional

from .conflict import DEFAULT_STRATEGY
from .engine import SyncEngine
from .events import EventBus, SyncEvent
from .models import (
    ConflictStrategy,
    Note,
    NoteSyncConfig,
    SyncReport,
    SyncStatus,
    utcnow,
)

logger = logging.getLogger("notesync.orchestrator")


class SyncOrchestrator:
    """State machine around ``SyncEngine`` passes.

    Args:
        engine: Engine that runs the push and pull phases.
        owner_id: Owner whose notes are synchronized.
        config: Intervals, delays and the default strategy.
        events: Bus for lifecycle events. A private one is created if omitted.
        online: Initial connectivity.
    """

    def __init__(
        self,
        engine: SyncEngine,
        owner_id: str,
        config: Optional[NoteSyncConfig] = None,
        events: Optional[EventBus] = None,
        online: bool = True,
    ):
        self.engine = engine
        self.owner_id = owner_id
        self.config = config or NoteSyncConfig(owner_id=owner_id)
        self.events = events or EventBus()

        self._online = online
        self._unconfigured = False
        self._status = SyncStatus.PENDING
        self.last_error: Optional[str] = None
        self.last_sync_time: Optional[datetime] = None
        self.last_report: Optional[SyncReport] = None
        self._view: list[Note] = []

        # Reentrancy guard, independent of the observed status.
        self._pass_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._periodic: Optional[threading.Thread] = None
        self._debounce_timer: Optional[threading.Timer] = None
        self._retry_timer: Optional[threading.Timer] = None

    # ------------------------------------------------------------------
    # Observed state
    # ------------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        return self._status

    @property
    def online(self) -> bool:
        return self._online and not self._unconfigured

    @property
    def in_progress(self) -> bool:
        return self._pass_lock.locked()

    @property
    def view(self) -> list[Note]:
        """Owner's notes as of the last reload, newest first."""
        return list(self._view)

    def _set_status(self, status: SyncStatus) -> None:
        with self._state_lock:
            changed = status is not self._status
            self._status = status
        if changed:
            logger.debug("Sync status -> %s", status.value)
            self.events.emit(SyncEvent.STATUS, {"status": status.value})

    def reload(self) -> list[Note]:
        """Re-read the owner's notes from the store into the view."""
        self._view = self.engine.store.list_by_owner(self.owner_id)
        return self.view

    def refresh_status(self) -> SyncStatus:
        """Recompute synced/pending from what the store holds.

        Leaves ``syncing`` and ``error`` alone; those resolve themselves.
        """
        if self.in_progress or self._status is SyncStatus.ERROR:
            return self._status
        if not self.online:
            self._set_status(SyncStatus.PENDING)
            return self._status

        count = self.engine.store.count_unsynced(self.owner_id)
        if count or len(self.engine.queue):
            logger.info("%d unsynced note(s) found, marking as pending", count)
            self._set_status(SyncStatus.PENDING)
        else:
            self._set_status(SyncStatus.SYNCED)
        return self._status

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def set_online(self, online: bool) -> Optional[SyncReport]:
        """Feed a connectivity change in. Coming online triggers a pass."""
        was_online = self._online
        self._online = online
        if not online:
            logger.info("Going offline")
            self._set_status(SyncStatus.PENDING)
            return None
        if not was_online:
            logger.info("Coming online, triggering sync...")
            return self.request_sync()
        return None

    def request_sync(
        self, strategy: Optional[ConflictStrategy] = None
    ) -> Optional[SyncReport]:
        """Run one full pass now.

        Returns:
            The SyncReport, or None if the pass was skipped (offline,
            unconfigured, or another pass already running).

        Raises:
            StoreError: If the local store failed; status is left at error.
        """
        if not self.online:
            logger.info("Offline, skipping sync")
            self._set_status(SyncStatus.PENDING)
            return None

        if not self._pass_lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping")
            return None

        try:
            return self._run_pass(strategy or self.config.strategy or DEFAULT_STRATEGY)
        finally:
            self._pass_lock.release()

    def schedule_sync(self, delay: Optional[float] = None) -> None:
        """Debounce: (re)arm a single timer that requests a sync.

        Each call cancels the previous timer, so a burst of edits
        coalesces into one pass ``delay`` seconds after the last one.
        """
        delay = self.config.debounce_seconds if delay is None else delay
        self.cancel_scheduled()
        if not self.online:
            logger.debug("Offline, change will sync when online")
            return
        timer = threading.Timer(delay, self._debounced_sync)
        timer.daemon = True
        with self._state_lock:
            self._debounce_timer = timer
        timer.start()

    @property
    def sync_scheduled(self) -> bool:
        return self._debounce_timer is not None

    def cancel_scheduled(self) -> None:
        """Drop a pending debounce timer, if any."""
        with self._state_lock:
            timer, self._debounce_timer = self._debounce_timer, None
        if timer is not None:
            timer.cancel()

    # ------------------------------------------------------------------
    # Background lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sync loop."""
        if self._periodic is not None and self._periodic.is_alive():
            return
        self._stop_event.clear()
        self._check_configured()
        self._periodic = threading.Thread(
            target=self._periodic_loop, name="notesync-periodic", daemon=True
        )
        self._periodic.start()
        logger.info(
            "Periodic sync started, every %ss for %s",
            self.config.sync_interval_seconds,
            self.owner_id,
        )

    def stop(self) -> None:
        """Stop the periodic loop and cancel every outstanding timer."""
        self._stop_event.set()
        self.cancel_scheduled()
        with self._state_lock:
            retry, self._retry_timer = self._retry_timer, None
        if retry is not None:
            retry.cancel()
        if self._periodic is not None:
            self._periodic.join(timeout=5)
            self._periodic = None
        logger.info("Sync orchestrator stopped")

    def _periodic_loop(self) -> None:
        while not self._stop_event.wait(timeout=self.config.sync_interval_seconds):
            if self.online and not self.in_progress:
                self._timer_sync()
            elif not self.online:
                self.refresh_status()

    def _debounced_sync(self) -> None:
        with self._state_lock:
            if self._debounce_timer is threading.current_thread():
                self._debounce_timer = None
        self._timer_sync()

    def _timer_sync(self) -> None:
        """Timer entry point: a failed pass is already recorded in state."""
        try:
            self.request_sync()
        except Exception as exc:
            logger.debug("Timed sync ended in error: %s", exc)

    def _check_configured(self) -> bool:
        if not self.engine.gateway.available():
            if not self._unconfigured:
                logger.warning(
                    "Remote '%s' is not configured; staying offline this session",
                    self.engine.gateway.name,
                )
            self._unconfigured = True
            self._set_status(SyncStatus.PENDING)
            return False
        return True

    # ------------------------------------------------------------------
    # The pass itself
    # ------------------------------------------------------------------

    def _run_pass(self, strategy: ConflictStrategy) -> Optional[SyncReport]:
        if not self._check_configured():
            return None

        self._cancel_retry()
        self.last_error = None
        self._set_status(SyncStatus.SYNCING)
        self.events.emit(SyncEvent.STARTED)
        logger.info("Starting sync...")

        try:
            report = self.engine.full_sync(self.owner_id, strategy)
        except Exception as exc:
            self._fail(exc)
            raise
        finally:
            try:
                self.reload()
            except Exception as exc:
                logger.error("Could not reload notes after sync: %s", exc)

        self.last_report = report
        self.last_sync_time = utcnow()
        self.events.emit(SyncEvent.COMPLETED, report.push.counts())
        logger.info("Sync completed: %s", report.push.counts())

        if self.engine.store.count_unsynced(self.owner_id) or len(self.engine.queue):
            self._set_status(SyncStatus.PENDING)
        else:
            self._set_status(SyncStatus.SYNCED)
        return report

    def _fail(self, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        logger.error("Sync failed: %s", message)
        self.last_error = message
        self._set_status(SyncStatus.ERROR)
        self.events.emit(SyncEvent.FAILED, {"message": message})

        timer = threading.Timer(self.config.error_retry_seconds, self._demote_error)
        timer.daemon = True
        with self._state_lock:
            self._retry_timer = timer
        timer.start()

    def _demote_error(self) -> None:
        with self._state_lock:
            self._retry_timer = None
        if self._status is SyncStatus.ERROR:
            logger.info("Demoting sync error to pending for retry")
            self._set_status(SyncStatus.PENDING)

    def _cancel_retry(self) -> None:
        with self._state_lock:
            timer, self._retry_timer = self._retry_timer, None
        if timer is not None:
            timer.cancel()
