# =============================================================================
# FILE: infrastructure/repositories/in_memory/note.py
# =============================================================================
"""
In-Memory Note Repository for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ....crosscutting.exceptions import InvariantViolationError
from ....domain.note import Note


class InMemoryNoteRepository:
    """In-memory implementation of NoteRepository."""

    def __init__(self) -> None:
        self._notes: Dict[int, Note] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def save(self, note: Note) -> bool:
        if not isinstance(note, Note):
            raise InvariantViolationError(
                f"save() espera Note, recibió {type(note).__name__}"
            )
        note.validate()

        now = datetime.now(timezone.utc)
        with self._lock:
            if note.is_new():
                note.id = self._next_id
                self._next_id += 1
                note.created_at = note.created_at or now
            elif note.id not in self._notes:
                return False
            note.updated_at = now
            self._notes[note.id] = copy.deepcopy(note)
        return True

    def load(self, note_id: int) -> Optional[Note]:
        with self._lock:
            note = self._notes.get(note_id)
            return copy.deepcopy(note) if note else None

    def list_for_event(self, event_id: int) -> List[Note]:
        with self._lock:
            notes = [copy.deepcopy(n) for n in self._notes.values() if n.event_id == event_id]
        notes.sort(key=lambda n: (n.created_at, n.id))
        return notes

    def delete(self, note_id: int) -> bool:
        if isinstance(note_id, bool) or not isinstance(note_id, int) or note_id <= 0:
            raise InvariantViolationError(f"note_id inválido: {note_id!r}")
        with self._lock:
            return self._notes.pop(note_id, None) is not None

    def search(self, keyword: str, *, limit: int = 50) -> List[Note]:
        needle = (keyword or "").lower()
        with self._lock:
            notes = [
                copy.deepcopy(n) for n in self._notes.values() if needle in n.body.lower()
            ]
        notes.sort(key=lambda n: (n.created_at, n.id), reverse=True)
        return notes[:limit]

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------
    def clear(self) -> None:
        with self._lock:
            self._notes.clear()
