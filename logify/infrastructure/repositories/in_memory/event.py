# =============================================================================
# FILE: infrastructure/repositories/in_memory/event.py
# =============================================================================
"""
In-Memory Event Repository for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.

Semántica idéntica al adapter Postgres:
  - Filas codificadas con el mismo mapping (valores como texto).
  - Transacciones reales: cada save/delete trabaja sobre una copia de las
    tablas que solo reemplaza al estado vigente si todos los pasos terminan.
  - Lock global que serializa escrituras (equivale al advisory lock).
  - Un update re-lee el evento vigente y aplica solo lo que cambió desde que
    se cargó (dos operaciones que reutilizan el mismo evento no se pisan).
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ....crosscutting.exceptions import InvariantViolationError
from ....crosscutting.logger import logger
from ....crosscutting.metrics import (
    record_event_coalesced,
    record_event_save_failed,
    record_event_saved,
)
from ....domain.event import Event
from ....domain.properties import merge_properties, set_eventmeta
from ....domain.repositories import EventFilters
from ....domain.subjects import SubjectRef
from ..mapping import (
    EVENT_COLUMNS,
    EVENT_WRITE_COLUMNS,
    apply_identity,
    build_event,
    event_values,
    eventmeta_values,
    property_values,
    rebase_event,
    validate_event_id,
)


@dataclass
class _Tables:
    events: dict[int, dict[str, Any]] = field(default_factory=dict)
    properties: dict[int, dict[str, list[Any]]] = field(default_factory=dict)
    eventmeta: dict[int, dict[str, list[Any]]] = field(default_factory=dict)
    next_event_id: int = 1
    next_child_id: int = 1

    def clone(self) -> "_Tables":
        return copy.deepcopy(self)

    def child_id(self) -> int:
        value = self.next_child_id
        self.next_child_id += 1
        return value


class InMemoryEventRepository:
    """
    In-memory implementation of EventRepository.

    Useful for:
      - Unit testing (atomicity, coalescing races)
      - Local development without database
    """

    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------
    def save(self, event: Event) -> bool:
        if not isinstance(event, Event):
            raise InvariantViolationError(
                f"save() espera Event, recibió {type(event).__name__}"
            )

        with self._lock:
            draft = self._tables.clone()
            try:
                target, mode = self._resolve_target(draft, event)
                event_id = self._write_event_row(draft, target)
                prop_ids = self._write_properties(draft, event_id, target)
                meta_ids = self._write_eventmeta(draft, event_id, target)
            except Exception:
                logger.exception(
                    "InMemoryEventRepository: save revertido",
                    extra={"event_id": event.id, "classification": event.classification},
                )
                record_event_save_failed()
                return False

            self._tables = draft

        apply_identity(event, target, event_id, prop_ids, meta_ids)
        record_event_saved(mode)
        if mode == "merge":
            record_event_coalesced("concurrent")
        return True

    def delete(self, event_id: int) -> bool:
        validate_event_id(event_id)

        with self._lock:
            if event_id not in self._tables.events:
                return False
            draft = self._tables.clone()
            try:
                self._delete_rows(draft, [event_id])
            except Exception:
                logger.exception(
                    "InMemoryEventRepository: delete revertido",
                    extra={"event_id": event_id},
                )
                return False
            self._tables = draft
        return True

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            ids = [
                event_id
                for event_id, row in self._tables.events.items()
                if row["occurred_at"] < cutoff
            ]
            if not ids:
                return 0
            draft = self._tables.clone()
            self._delete_rows(draft, ids)
            self._tables = draft
        return len(ids)

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------
    def load(self, event_id: int) -> Event | None:
        with self._lock:
            event = _hydrate(self._tables, event_id)
        if event is not None:
            event.bind(self)
        return event

    def find_most_recent(
        self,
        classification: str,
        *,
        actor_id: str | None = None,
        subject: SubjectRef | None = None,
        exact_subject: bool = False,
    ) -> Event | None:
        filters = EventFilters(
            classification=classification,
            actor_id=actor_id,
            subject_type=subject.kind.value if subject else None,
            subject_id=subject.id if subject else None,
            exact_subject=exact_subject,
        )
        events = self.list_events(filters, limit=1)
        return events[0] if events else None

    def list_events(
        self,
        filters: EventFilters | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Event]:
        if limit <= 0:
            return []
        filters = filters or EventFilters()
        with self._lock:
            rows = [
                row for row in self._tables.events.values() if _matches(row, filters)
            ]
            rows.sort(key=lambda r: (r["occurred_at"], r["id"]), reverse=True)
            page = rows[max(offset, 0) : max(offset, 0) + limit]
            events = [_hydrate(self._tables, row["id"]) for row in page]
        return [event.bind(self) for event in events if event is not None]

    def get_classifications(self) -> list[str]:
        with self._lock:
            return sorted({r["classification"] for r in self._tables.events.values()})

    def get_earliest_date(self) -> datetime | None:
        with self._lock:
            dates = [r["occurred_at"] for r in self._tables.events.values()]
        return min(dates) if dates else None

    def get_latest_date(self) -> datetime | None:
        with self._lock:
            dates = [r["occurred_at"] for r in self._tables.events.values()]
        return max(dates) if dates else None

    # ------------------------------------------------------------------
    # Pasos de la transacción (sobre el borrador)
    # ------------------------------------------------------------------
    def _resolve_target(self, tables: _Tables, event: Event) -> tuple[Event, str]:
        """
        Insert con ventana de reutilización: re-lee bajo lock el evento más
        reciente del mismo (clasificación, sujeto) y, si está dentro de la
        ventana, fusiona en él en lugar de insertar un duplicado.
        """
        if not event.is_new():
            # R: el lock global ya serializa; se re-lee el borrador vigente.
            current = _hydrate(tables, event.id)
            if current is None:
                raise LookupError(f"Evento {event.id} no existe")
            return rebase_event(current, event), "update"

        if event.reuse_window is None:
            return event, "insert"

        candidates = [
            row
            for row in tables.events.values()
            if row["classification"] == event.classification
            and row["subject_type"] == event.subject_type
            and row["subject_id"] == event.subject_id
            and event.occurred_at - row["occurred_at"] < event.reuse_window
        ]
        if not candidates:
            return event, "insert"

        latest = max(candidates, key=lambda r: (r["occurred_at"], r["id"]))
        stored = _hydrate(tables, latest["id"])
        merge_properties(
            stored.properties,
            list(event.properties.values()),
            intrinsic_keys=event.intrinsic_keys,
        )
        for meta in event.metadata.values():
            set_eventmeta(stored.metadata, meta.key, meta.value)
        return stored, "merge"

    def _write_event_row(self, tables: _Tables, event: Event) -> int:
        if event.is_new():
            event_id = tables.next_event_id
            tables.next_event_id += 1
        else:
            event_id = event.id
        row = dict(zip(EVENT_WRITE_COLUMNS, event_values(event)))
        row["id"] = event_id
        tables.events[event_id] = {col: row[col] for col in EVENT_COLUMNS}
        return event_id

    def _write_properties(
        self, tables: _Tables, event_id: int, event: Event
    ) -> dict[str, int]:
        stored = tables.properties.setdefault(event_id, {})
        for key in [k for k in stored if k not in event.properties]:
            del stored[key]
        ids: dict[str, int] = {}
        for prop in event.properties.values():
            key, origin, before, after = property_values(prop)
            row_id = stored[key][0] if key in stored else tables.child_id()
            stored[key] = [row_id, event_id, key, origin, before, after]
            ids[key] = row_id
        return ids

    def _write_eventmeta(
        self, tables: _Tables, event_id: int, event: Event
    ) -> dict[str, int]:
        stored = tables.eventmeta.setdefault(event_id, {})
        for key in [k for k in stored if k not in event.metadata]:
            del stored[key]
        ids: dict[str, int] = {}
        for meta in event.metadata.values():
            key, value = eventmeta_values(meta)
            row_id = stored[key][0] if key in stored else tables.child_id()
            stored[key] = [row_id, event_id, key, value]
            ids[key] = row_id
        return ids

    def _delete_rows(self, tables: _Tables, event_ids: list[int]) -> None:
        for event_id in event_ids:
            tables.properties.pop(event_id, None)
            tables.eventmeta.pop(event_id, None)
            tables.events.pop(event_id, None)

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------
    def count(self) -> int:
        with self._lock:
            return len(self._tables.events)

    def clear(self) -> None:
        with self._lock:
            self._tables = _Tables()


def _hydrate(tables: _Tables, event_id: int) -> Event | None:
    row = tables.events.get(event_id)
    if row is None:
        return None
    return build_event(
        row,
        tables.properties.get(event_id, {}).values(),
        tables.eventmeta.get(event_id, {}).values(),
    )


def _matches(row: dict[str, Any], filters: EventFilters) -> bool:
    if filters.classification and row["classification"] != filters.classification:
        return False
    if filters.actor_id and row["actor_id"] != filters.actor_id:
        return False
    if filters.exact_subject:
        if (row["subject_type"], row["subject_id"]) != (
            filters.subject_type,
            filters.subject_id,
        ):
            return False
    else:
        if filters.subject_type and row["subject_type"] != filters.subject_type:
            return False
        if filters.subject_id and row["subject_id"] != filters.subject_id:
            return False
    if filters.start_at and row["occurred_at"] < filters.start_at:
        return False
    if filters.end_at and row["occurred_at"] > filters.end_at:
        return False
    return True

