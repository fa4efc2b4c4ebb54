"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/event.py
============================================================
Class: PostgresEventRepository

Responsibilities:
  - Persistir el agregado Event en tres tablas (audit_events,
    audit_properties, audit_eventmeta) dentro de UNA transacción.
  - Sincronizar filas hijas: borrar las claves que ya no están en el mapa,
    upsert (ON CONFLICT) del resto.
  - Resolver la carrera de inserts sobre el mismo (clasificación, sujeto)
    con pg_advisory_xact_lock + re-lectura dentro de la misma transacción.
  - Updates: mismo lock + SELECT ... FOR UPDATE; se aplica sobre la fila
    vigente solo lo que el evento cambió desde que se cargó.
  - Lecturas: load (eager de hijos, sin notas), find_most_recent, listados.

Collaborators:
  - psycopg_pool.ConnectionPool (vía infrastructure.db.pool)
  - repositories.mapping (columnas + codec de valores)
  - crosscutting.logger / crosscutting.metrics
  - crosscutting.exceptions (DatabaseError, InvariantViolationError)

Constraints / Notes:
  - Queries SIEMPRE parametrizadas.
  - save/delete: cualquier falla => rollback + log + False.
  - Lecturas: falla => DatabaseError (la capa superior decide).
  - Los ids se asignan al Event en memoria recién después del commit.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError, InvariantViolationError
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
    EVENTMETA_COLUMNS,
    PROPERTY_COLUMNS,
    apply_identity,
    build_event,
    coalesce_key,
    event_values,
    eventmeta_values,
    property_values,
    rebase_event,
    validate_event_id,
)

_SELECT_EVENT = f"SELECT {', '.join(EVENT_COLUMNS)} FROM audit_events"
_SELECT_PROPERTIES = (
    f"SELECT {', '.join(PROPERTY_COLUMNS)} FROM audit_properties "
    "WHERE event_id = %s ORDER BY id"
)
_SELECT_EVENTMETA = (
    f"SELECT {', '.join(EVENTMETA_COLUMNS)} FROM audit_eventmeta "
    "WHERE event_id = %s ORDER BY id"
)


class PostgresEventRepository:
    """Repositorio PostgreSQL del agregado Event."""

    def __init__(self, pool: ConnectionPool | None = None):
        # Pool inyectable: tests pueden pasar su pool; prod usa el pool global.
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def save(self, event: Event) -> bool:
        """
        Inserta o actualiza el evento y sus hijos en una transacción.

        Devuelve False (con rollback total) ante cualquier falla.
        """
        if not isinstance(event, Event):
            raise InvariantViolationError(
                f"save() espera Event, recibió {type(event).__name__}"
            )

        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                with conn.transaction():
                    target, mode = self._resolve_target(conn, event)
                    event_id = self._write_event_row(conn, target)
                    prop_ids = self._write_properties(conn, event_id, target)
                    meta_ids = self._write_eventmeta(conn, event_id, target)
        except Exception as exc:
            logger.exception(
                "PostgresEventRepository: save revertido",
                extra={
                    "event_id": event.id,
                    "classification": event.classification,
                    "error": str(exc),
                },
            )
            record_event_save_failed()
            return False

        apply_identity(event, target, event_id, prop_ids, meta_ids)
        record_event_saved(mode)
        if mode == "merge":
            record_event_coalesced("concurrent")
        return True

    def delete(self, event_id: int) -> bool:
        """Borra el evento y, en la misma transacción, sus propiedades y metadata."""
        validate_event_id(event_id)

        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                with conn.transaction():
                    self._delete_children(conn, [event_id])
                    cur = conn.execute(
                        "DELETE FROM audit_events WHERE id = %s", (event_id,)
                    )
                    deleted = (cur.rowcount or 0) > 0
        except Exception as exc:
            logger.exception(
                "PostgresEventRepository: delete revertido",
                extra={"event_id": event_id, "error": str(exc)},
            )
            return False

        return deleted

    def delete_older_than(self, cutoff: datetime) -> int:
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                with conn.transaction():
                    ids = [
                        row[0]
                        for row in conn.execute(
                            "SELECT id FROM audit_events WHERE occurred_at < %s",
                            (cutoff,),
                        ).fetchall()
                    ]
                    if not ids:
                        return 0
                    self._delete_children(conn, ids)
                    conn.execute("DELETE FROM audit_events WHERE id = ANY(%s)", (ids,))
        except Exception as exc:
            logger.exception(
                "PostgresEventRepository: Failed to delete old events",
                extra={"cutoff": cutoff.isoformat(), "error": str(exc)},
            )
            raise DatabaseError(f"Failed to delete old events: {exc}") from exc
        return len(ids)

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def load(self, event_id: int) -> Event | None:
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                event = self._load_with(conn, event_id)
        except Exception as exc:
            logger.exception(
                "PostgresEventRepository: Failed to load event",
                extra={"event_id": event_id, "error": str(exc)},
            )
            raise DatabaseError(f"Failed to load event: {exc}") from exc
        return event.bind(self) if event else None

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
        """
        Lista eventos (más recientes primero) con filtros opcionales.

        Orden: occurred_at DESC, id DESC (estable con timestamps iguales).
        """
        if limit <= 0:
            return []
        offset = max(offset, 0)
        where_clause, params = _where(filters or EventFilters())

        query = f"""
            {_SELECT_EVENT}
            {where_clause}
            ORDER BY occurred_at DESC, id DESC
            LIMIT %s OFFSET %s
        """
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                rows = conn.execute(query, (*params, limit, offset)).fetchall()
                events = [self._hydrate(conn, row) for row in rows]
        except Exception as exc:
            logger.exception(
                "PostgresEventRepository: Failed to list events",
                extra={"limit": limit, "offset": offset, "error": str(exc)},
            )
            raise DatabaseError(f"Failed to list events: {exc}") from exc

        return [event.bind(self) for event in events]

    def get_classifications(self) -> list[str]:
        rows = self._fetchall(
            "SELECT DISTINCT classification FROM audit_events ORDER BY classification",
            (),
        )
        return [row[0] for row in rows]

    def get_earliest_date(self) -> datetime | None:
        rows = self._fetchall("SELECT MIN(occurred_at) FROM audit_events", ())
        return rows[0][0] if rows else None

    def get_latest_date(self) -> datetime | None:
        rows = self._fetchall("SELECT MAX(occurred_at) FROM audit_events", ())
        return rows[0][0] if rows else None

    # ------------------------------------------------------------
    # Pasos de la transacción
    # ------------------------------------------------------------
    def _resolve_target(self, conn, event: Event) -> tuple[Event, str]:
        if not event.is_new():
            # Misma clave de lock que el insert con ventana: un update y un
            # merge concurrente sobre el mismo evento no se intercalan.
            self._lock_subject(conn, event)
            current = self._load_with(conn, event.id, for_update=True)
            if current is None:
                raise LookupError(f"Evento {event.id} no existe")
            return rebase_event(current, event), "update"
        if event.reuse_window is None:
            return event, "insert"

        # Serializa inserts concurrentes del mismo (clasificación, sujeto)
        # hasta el commit; la re-lectura ve lo que commiteó el otro.
        self._lock_subject(conn, event)
        row = conn.execute(
            """
            SELECT id FROM audit_events
            WHERE classification = %s
              AND subject_type IS NOT DISTINCT FROM %s
              AND subject_id IS NOT DISTINCT FROM %s
              AND occurred_at > %s
            ORDER BY occurred_at DESC, id DESC
            LIMIT 1
            """,
            (
                event.classification,
                event.subject_type,
                event.subject_id,
                event.occurred_at - event.reuse_window,
            ),
        ).fetchone()
        if row is None:
            return event, "insert"

        stored = self._load_with(conn, row[0])
        merge_properties(
            stored.properties,
            list(event.properties.values()),
            intrinsic_keys=event.intrinsic_keys,
        )
        for meta in event.metadata.values():
            set_eventmeta(stored.metadata, meta.key, meta.value)
        return stored, "merge"

    def _lock_subject(self, conn, event: Event) -> None:
        conn.execute(
            "SELECT pg_advisory_xact_lock(hashtextextended(%s, 0))",
            (coalesce_key(event),),
        )

    def _write_event_row(self, conn, event: Event) -> int:
        values = event_values(event)
        if event.is_new():
            placeholders = ", ".join(["%s"] * len(EVENT_WRITE_COLUMNS))
            row = conn.execute(
                f"INSERT INTO audit_events ({', '.join(EVENT_WRITE_COLUMNS)}) "
                f"VALUES ({placeholders}) RETURNING id",
                values,
            ).fetchone()
            return int(row[0])

        assignments = ", ".join(f"{col} = %s" for col in EVENT_WRITE_COLUMNS)
        cur = conn.execute(
            f"UPDATE audit_events SET {assignments} WHERE id = %s",
            (*values, event.id),
        )
        if (cur.rowcount or 0) == 0:
            raise LookupError(f"Evento {event.id} no existe")
        return int(event.id)

    def _write_properties(self, conn, event_id: int, event: Event) -> dict[str, int]:
        conn.execute(
            "DELETE FROM audit_properties WHERE event_id = %s "
            "AND NOT (prop_key = ANY(%s))",
            (event_id, list(event.properties)),
        )
        ids: dict[str, int] = {}
        for prop in event.properties.values():
            key, origin, before, after = property_values(prop)
            row = conn.execute(
                """
                INSERT INTO audit_properties (event_id, prop_key, origin, val_before, val_after)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (event_id, prop_key) DO UPDATE
                SET origin = EXCLUDED.origin,
                    val_before = EXCLUDED.val_before,
                    val_after = EXCLUDED.val_after
                RETURNING id
                """,
                (event_id, key, origin, before, after),
            ).fetchone()
            ids[key] = int(row[0])
        return ids

    def _write_eventmeta(self, conn, event_id: int, event: Event) -> dict[str, int]:
        conn.execute(
            "DELETE FROM audit_eventmeta WHERE event_id = %s "
            "AND NOT (meta_key = ANY(%s))",
            (event_id, list(event.metadata)),
        )
        ids: dict[str, int] = {}
        for meta in event.metadata.values():
            key, value = eventmeta_values(meta)
            row = conn.execute(
                """
                INSERT INTO audit_eventmeta (event_id, meta_key, meta_value)
                VALUES (%s, %s, %s)
                ON CONFLICT (event_id, meta_key) DO UPDATE
                SET meta_value = EXCLUDED.meta_value
                RETURNING id
                """,
                (event_id, key, value),
            ).fetchone()
            ids[key] = int(row[0])
        return ids

    def _delete_children(self, conn, event_ids: list[int]) -> None:
        conn.execute("DELETE FROM audit_properties WHERE event_id = ANY(%s)", (event_ids,))
        conn.execute("DELETE FROM audit_eventmeta WHERE event_id = ANY(%s)", (event_ids,))

    # ------------------------------------------------------------
    # Helpers de lectura
    # ------------------------------------------------------------
    def _load_with(
        self, conn, event_id: int, *, for_update: bool = False
    ) -> Event | None:
        lock = " FOR UPDATE" if for_update else ""
        row = conn.execute(
            f"{_SELECT_EVENT} WHERE id = %s{lock}", (event_id,)
        ).fetchone()
        if row is None:
            return None
        return self._hydrate(conn, row)

    def _hydrate(self, conn, row) -> Event:
        event_id = row[0]
        return build_event(
            row,
            conn.execute(_SELECT_PROPERTIES, (event_id,)).fetchall(),
            conn.execute(_SELECT_EVENTMETA, (event_id,)).fetchall(),
        )

    def _fetchall(self, query: str, params: Iterable[object]) -> list[tuple]:
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(
                "PostgresEventRepository: query falló", extra={"error": str(exc)}
            )
            raise DatabaseError(f"Event query failed: {exc}") from exc


def _where(filters: EventFilters) -> tuple[str, list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []

    if filters.classification:
        conditions.append("classification = %s")
        params.append(filters.classification)
    if filters.actor_id:
        conditions.append("actor_id = %s")
        params.append(filters.actor_id)
    if filters.exact_subject:
        conditions.append("subject_type IS NOT DISTINCT FROM %s")
        conditions.append("subject_id IS NOT DISTINCT FROM %s")
        params.extend([filters.subject_type, filters.subject_id])
    else:
        if filters.subject_type:
            conditions.append("subject_type = %s")
            params.append(filters.subject_type)
        if filters.subject_id:
            conditions.append("subject_id = %s")
            params.append(filters.subject_id)
    if filters.start_at is not None:
        conditions.append("occurred_at >= %s")
        params.append(filters.start_at)
    if filters.end_at is not None:
        conditions.append("occurred_at <= %s")
        params.append(filters.end_at)

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where_clause, params

