# =============================================================================
# FILE: application/operation.py
# =============================================================================
"""
===============================================================================
SERVICE: Operation scope (eventos en construcción + flush)
===============================================================================

Qué es:
    El contexto explícito de UNA operación lógica (un request HTTP o una unidad
    de trabajo diferida). Acumula los eventos que distintos handlers van
    construyendo y, al final, los persiste o descarta exactamente una vez.

Arquitectura:
    - Capa: Application
    - Nunca es un singleton de proceso: cada request/job crea el suyo, así dos
      operaciones concurrentes no comparten estado.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: OperationContext
Responsibilities:
  - Registrar eventos en construcción (track/find)
  - Flush: guardar / borrar / descartar según las reglas de cambio
  - Flush idempotente (el segundo llamado no hace nada)
Collaborators:
  - domain.event.Event
  - domain.repositories.EventRepository
  - crosscutting.logger / crosscutting.metrics
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4

from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_event_deleted
from ..domain.event import Event
from ..domain.repositories import EventRepository
from ..domain.subjects import SubjectRef


@dataclass
class FlushReport:
    """Resultado del flush de una operación."""

    saved: int = 0
    deleted: int = 0
    discarded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.saved + self.deleted + self.discarded + self.failed


class OperationContext:
    """
    Eventos en construcción de una operación lógica.

    Reglas de flush por evento:
      - creación, o evento que no se construyó a partir de diffs:
        se guarda si es nuevo
      - construido a partir de diffs con cambios: se guarda (también un
        evento de creación reutilizado al que se le fusionaron cambios)
      - construido a partir de diffs, ya persistido y sin cambios: se
        guarda primero (el store fusiona lo que otra operación haya escrito
        en el medio) y se borra solo si sigue sin cambios
      - construido a partir de diffs, nuevo y sin cambios: se descarta

    Una falla de save/delete se loguea y se acepta: el flush nunca lanza por
    fallas del store.
    """

    def __init__(
        self, repository: EventRepository, *, operation_id: str | None = None
    ) -> None:
        self.repository = repository
        self.operation_id = operation_id or uuid4().hex
        self._events: list[Event] = []
        self._flushed = False

    @property
    def events(self) -> tuple[Event, ...]:
        return tuple(self._events)

    @property
    def flushed(self) -> bool:
        return self._flushed

    def track(self, event: Event) -> Event:
        if event.repository is None:
            event.bind(self.repository)
        if not any(tracked is event for tracked in self._events):
            self._events.append(event)
        return event

    def find(self, classification: str, subject: SubjectRef | None) -> Event | None:
        """Último evento registrado con esa clasificación y sujeto."""
        subject_type = subject.kind.value if subject else None
        subject_id = subject.id if subject else None
        for event in reversed(self._events):
            if (
                event.classification == classification
                and event.subject_type == subject_type
                and event.subject_id == subject_id
            ):
                return event
        return None

    def flush(self) -> FlushReport:
        report = FlushReport()
        if self._flushed:
            return report
        self._flushed = True

        for event in self._events:
            self._flush_one(event, report)

        if report.total:
            logger.info(
                "Flush de operación",
                extra={
                    "operation_id": self.operation_id,
                    "saved": report.saved,
                    "deleted": report.deleted,
                    "discarded": report.discarded,
                    "failed": report.failed,
                },
            )
        return report

    def _flush_one(self, event: Event, report: FlushReport) -> None:
        if not event.records_changes:
            if event.is_new():
                self._save(event, report)
            return

        if event.has_changes():
            self._save(event, report)
        elif event.is_creation:
            if event.is_new():
                self._save(event, report)
        elif not event.is_new():
            self._delete_changeless(event, report)
        else:
            report.discarded += 1

    def _delete_changeless(self, event: Event, report: FlushReport) -> None:
        # R: el save trae lo que otra operación haya commiteado en el medio.
        if not event.save():
            logger.warning(
                "No se pudo re-sincronizar evento sin cambios",
                extra={"event_id": event.id, "operation_id": self.operation_id},
            )
            report.failed += 1
            return
        if event.has_changes():
            report.saved += 1
            return

        if event.delete():
            record_event_deleted("changeless")
            report.deleted += 1
        else:
            logger.warning(
                "No se pudo borrar evento sin cambios",
                extra={"event_id": event.id, "operation_id": self.operation_id},
            )
            report.failed += 1

    def _save(self, event: Event, report: FlushReport) -> None:
        if event.save():
            report.saved += 1
            return
        logger.warning(
            "Evento perdido en flush (save falló)",
            extra={
                "classification": event.classification,
                "subject_type": event.subject_type,
                "subject_id": event.subject_id,
                "operation_id": self.operation_id,
            },
        )
        report.failed += 1

    def __enter__(self) -> "OperationContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.flush()
        return False
