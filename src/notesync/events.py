"""
Lifecycle events -- how the sync core talks to whoever is watching.

The presentation layer subscribes to these; the core never depends
on anybody listening. A subscriber that raises is logged and skipped
so a broken status widget cannot take a sync pass down with it.

Usage:
    bus = EventBus()
    bus.subscribe(SyncEvent.COMPLETED, lambda payload: print(payload))
    bus.emit(SyncEvent.COMPLETED, {"synced": 3, "failed": 0, "conflicts": 1})
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger("notesync.events")

Callback = Callable[[dict[str, Any]], None]


class SyncEvent(str, Enum):
    """Events emitted by the orchestrator."""

    STARTED = "sync:start"
    COMPLETED = "sync:complete"
    FAILED = "sync:error"
    STATUS = "status"


class EventBus:
    """Minimal in-process publish/subscribe for sync lifecycle events."""

    def __init__(self) -> None:
        self._callbacks: dict[SyncEvent, list[Callback]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event: SyncEvent, callback: Callback) -> Callable[[], None]:
        """Register ``callback`` for ``event``.

        Returns:
            A function that removes the subscription again.
        """
        event = SyncEvent(event)
        with self._lock:
            self._callbacks.setdefault(event, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._callbacks.get(event, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def emit(self, event: SyncEvent, payload: Optional[dict[str, Any]] = None) -> None:
        """Deliver ``payload`` to every subscriber of ``event``."""
        event = SyncEvent(event)
        with self._lock:
            callbacks = list(self._callbacks.get(event, []))

        for callback in callbacks:
            try:
                callback(dict(payload or {}))
            except Exception as exc:
                logger.warning("Event callback for '%s' failed: %s", event.value, exc)
