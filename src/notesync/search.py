"""Full-text search, suggestions and statistics over a list of notes."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel

from .models import Note

_WORD = re.compile(r"\S+")


class NoteStatistics(BaseModel):
    """Aggregate numbers over a set of notes."""

    total: int = 0
    synced: int = 0
    pending: int = 0
    total_words: int = 0
    total_characters: int = 0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None


def search_notes(
    notes: Iterable[Note],
    query: str = "",
    synced: Optional[bool] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[Note]:
    """Case-insensitive match over title and body, with optional filters.

    Args:
        notes: Notes to search.
        query: Substring to look for. Empty matches everything.
        synced: Keep only synced (True) or only pending (False) notes.
        date_from: Keep notes modified at or after this time.
        date_to: Keep notes modified at or before this time.
    """
    needle = query.lower()
    results = []
    for note in notes:
        if needle not in note.title.lower() and needle not in note.body.lower():
            continue
        if synced is not None and bool(note.synced) is not synced:
            continue
        if date_from is not None and note.modified_at < date_from:
            continue
        if date_to is not None and note.modified_at > date_to:
            continue
        results.append(note)
    return results


def search_suggestions(notes: Iterable[Note], query: str, limit: int = 5) -> list[str]:
    """Unique titles containing ``query``, in first-seen order."""
    if not query:
        return []
    needle = query.lower()
    seen: dict[str, None] = {}
    for note in notes:
        if needle in note.title.lower():
            seen.setdefault(note.title, None)
    return list(seen)[:limit]


def note_statistics(notes: Iterable[Note]) -> NoteStatistics:
    stats = NoteStatistics()
    for note in notes:
        stats.total += 1
        if note.synced:
            stats.synced += 1
        else:
            stats.pending += 1
        stats.total_words += len(_WORD.findall(note.body))
        stats.total_characters += len(note.body)
        if stats.oldest is None or note.modified_at < stats.oldest:
            stats.oldest = note.modified_at
        if stats.newest is None or note.modified_at > stats.newest:
            stats.newest = note.modified_at
    return stats
