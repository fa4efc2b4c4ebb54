"""
===============================================================================
TARJETA CRC — domain/note.py (Nota de revisión sobre un evento)
===============================================================================

Responsabilidades:
  - Representar la nota que un revisor humano agrega a un evento.
  - Validar que tenga evento, autor y cuerpo.

Colaboradores:
  - domain.repositories.NoteRepository
  - interfaces/api/http/routers/notes.py

Notas:
  - event_id se conserva aunque el evento se borre (no hay cascada).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..crosscutting.exceptions import NoteValidationError


@dataclass
class Note:
    event_id: int
    author_id: str
    body: str
    author_name: str = ""
    author_role: str = "none"
    created_at: datetime | None = None
    updated_at: datetime | None = None
    ip: str | None = None
    id: int | None = None

    def is_new(self) -> bool:
        return self.id is None

    def validate(self) -> None:
        if not self.event_id or self.event_id <= 0:
            raise NoteValidationError("La nota requiere un event_id válido")
        if not self.author_id:
            raise NoteValidationError("La nota requiere un autor")
        if not (self.body or "").strip():
            raise NoteValidationError("La nota no puede estar vacía")
