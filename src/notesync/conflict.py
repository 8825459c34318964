"""
Conflict Resolver -- settle a disagreement between local and remote.

Pure functions: no I/O, no side effects beyond stamping modified_at
where a strategy produces a new version.

Detection is content based. Timestamps only decide upstream whether a
remote copy is even worth comparing (see ``is_remote_newer``).

The default strategy is local-wins. That is a product policy: losing
an edit the user can see is treated as worse than two devices briefly
disagreeing. Pick another strategy where the remote is the source of
truth.
"""

from __future__ import annotations

import logging

from .models import ConflictStrategy, Note, utcnow

logger = logging.getLogger("notesync.conflict")

DEFAULT_STRATEGY = ConflictStrategy.LOCAL_WINS

MERGE_SEPARATOR = "\n\n--- Local changes ---\n"


def detect_conflict(local: Note, remote: Note) -> bool:
    """True iff title or body differ between the two versions."""
    return local.title != remote.title or local.body != remote.body


def is_remote_newer(local: Note, remote: Note) -> bool:
    """True iff the remote copy was modified strictly after the local one."""
    return remote.modified_at > local.modified_at


def _refreshed(note: Note, **changes) -> Note:
    return note.model_copy(update={**changes, "modified_at": utcnow()})


def resolve_local_wins(local: Note, remote: Note) -> Note:
    """Keep the local content, stamped so it reads as newer than remote."""
    logger.info("Resolving conflict for %s: local wins", local.id)
    return _refreshed(local)


def resolve_server_wins(local: Note, remote: Note) -> Note:
    """Take the remote version unchanged."""
    logger.info("Resolving conflict for %s: server wins", local.id)
    return remote


def resolve_merge(local: Note, remote: Note) -> Note:
    """Combine both bodies.

    If the local body already contains the remote body it is treated as
    a superset and kept verbatim, so repeated merges never stack
    separators.
    """
    logger.info("Merging conflict for %s", local.id)
    if remote.body in local.body:
        return local

    return _refreshed(
        local,
        body=f"{remote.body}{MERGE_SEPARATOR}{local.body}",
        title=local.title or remote.title,
    )


def resolve(
    local: Note,
    remote: Note,
    strategy: ConflictStrategy = DEFAULT_STRATEGY,
) -> Note:
    """Resolve a (local, remote) pair under ``strategy``.

    Returns ``local`` untouched when there is nothing to resolve. The
    manual strategy also returns ``local`` untouched; presenting both
    versions is left to the caller.
    """
    if not detect_conflict(local, remote):
        return local

    strategy = ConflictStrategy(strategy)
    if strategy is ConflictStrategy.SERVER_WINS:
        return resolve_server_wins(local, remote)
    if strategy is ConflictStrategy.MERGE:
        return resolve_merge(local, remote)
    if strategy is ConflictStrategy.MANUAL:
        logger.info("Conflict for %s left for manual resolution", local.id)
        return local
    return resolve_local_wins(local, remote)
