"""
===============================================================================
TARJETA CRC — domain/repositories.py (Puertos de persistencia)
===============================================================================

Responsabilidades:
  - Definir los contratos que la aplicación usa para persistir y leer
    eventos y notas, sin conocer la infraestructura.

Colaboradores:
  - infrastructure.repositories.postgres.* (producción)
  - infrastructure.repositories.in_memory.* (tests / desarrollo)
  - application.* (consumidores)

Contrato de escritura:
  - save/delete devuelven False ante una falla de store, con rollback total:
    False significa "nada cambió", nunca "cambió a medias".
  - Un tipo de agregado incorrecto o un id no positivo lanzan
    InvariantViolationError (bug del colaborador).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .event import Event
from .note import Note
from .subjects import SubjectRef


@dataclass(frozen=True)
class EventFilters:
    """Filtros del listado de eventos (todos opcionales)."""

    classification: str | None = None
    actor_id: str | None = None
    subject_type: str | None = None
    subject_id: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    # R: True => subject_type/subject_id se comparan tal cual, None incluido
    # (un evento sin sujeto solo coincide con otro sin sujeto).
    exact_subject: bool = False


class EventRepository(Protocol):
    def save(self, event: Event) -> bool: ...

    def load(self, event_id: int) -> Event | None: ...

    def delete(self, event_id: int) -> bool: ...

    def find_most_recent(
        self,
        classification: str,
        *,
        actor_id: str | None = None,
        subject: SubjectRef | None = None,
        exact_subject: bool = False,
    ) -> Event | None: ...

    def list_events(
        self,
        filters: EventFilters | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Event]: ...

    def delete_older_than(self, cutoff: datetime) -> int: ...

    def get_classifications(self) -> list[str]: ...

    def get_earliest_date(self) -> datetime | None: ...

    def get_latest_date(self) -> datetime | None: ...


class NoteRepository(Protocol):
    def save(self, note: Note) -> bool: ...

    def load(self, note_id: int) -> Note | None: ...

    def list_for_event(self, event_id: int) -> list[Note]: ...

    def delete(self, note_id: int) -> bool: ...

    def search(self, keyword: str, *, limit: int = 50) -> list[Note]: ...
