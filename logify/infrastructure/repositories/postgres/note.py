"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/note.py
============================================================
Class: PostgresNoteRepository

Responsibilities:
  - Persistir notas de revisión (tabla audit_notes).
  - Listar las notas de un evento en orden cronológico.
  - Búsqueda por palabra clave sobre el cuerpo (ILIKE).

Collaborators:
  - domain.note.Note
  - psycopg_pool.ConnectionPool (vía infrastructure.db.pool)
  - crosscutting.logger / crosscutting.exceptions

Constraints / Notes:
  - Sin FK a audit_events: una nota sobrevive al borrado de su evento.
  - save/delete: falla de store => log + False. Lecturas => DatabaseError.
============================================================
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError, InvariantViolationError
from ....crosscutting.logger import logger
from ....domain.note import Note

_NOTE_COLUMNS = (
    "id, event_id, author_id, author_name, author_role, body, "
    "created_at, updated_at, ip"
)


def _row_to_note(row) -> Note:
    (
        note_id,
        event_id,
        author_id,
        author_name,
        author_role,
        body,
        created_at,
        updated_at,
        ip,
    ) = row
    return Note(
        id=note_id,
        event_id=event_id,
        author_id=author_id,
        author_name=author_name or "",
        author_role=author_role or "none",
        body=body,
        created_at=created_at,
        updated_at=updated_at,
        ip=ip,
    )


class PostgresNoteRepository:
    """Repositorio PostgreSQL para notas (audit_notes)."""

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from ...db.pool import get_pool

        return get_pool()

    def _fetchall(
        self,
        *,
        query: str,
        params: Iterable[object],
        error_message: str,
        extra: dict[str, object],
    ) -> list[tuple]:
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(error_message, extra={**extra, "error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def save(self, note: Note) -> bool:
        if not isinstance(note, Note):
            raise InvariantViolationError(
                f"save() espera Note, recibió {type(note).__name__}"
            )
        note.validate()

        now = datetime.now(timezone.utc)
        created_at = note.created_at or now
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                with conn.transaction():
                    if note.is_new():
                        row = conn.execute(
                            """
                            INSERT INTO audit_notes
                                (event_id, author_id, author_name, author_role,
                                 body, created_at, updated_at, ip)
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                            RETURNING id
                            """,
                            (
                                note.event_id,
                                note.author_id,
                                note.author_name,
                                note.author_role,
                                note.body,
                                created_at,
                                now,
                                note.ip,
                            ),
                        ).fetchone()
                        note_id = int(row[0])
                    else:
                        cur = conn.execute(
                            """
                            UPDATE audit_notes
                            SET body = %s, updated_at = %s
                            WHERE id = %s
                            """,
                            (note.body, now, note.id),
                        )
                        if (cur.rowcount or 0) == 0:
                            return False
                        note_id = note.id
        except Exception as exc:
            logger.exception(
                "PostgresNoteRepository: Failed to save note",
                extra={"note_id": note.id, "event_id": note.event_id, "error": str(exc)},
            )
            return False

        note.id = note_id
        if note.created_at is None:
            note.created_at = created_at
        note.updated_at = now
        return True

    def delete(self, note_id: int) -> bool:
        if isinstance(note_id, bool) or not isinstance(note_id, int) or note_id <= 0:
            raise InvariantViolationError(f"note_id inválido: {note_id!r}")
        try:
            pool = self._get_pool()
            with pool.connection() as conn:
                cur = conn.execute("DELETE FROM audit_notes WHERE id = %s", (note_id,))
                return (cur.rowcount or 0) > 0
        except Exception as exc:
            logger.exception(
                "PostgresNoteRepository: Failed to delete note",
                extra={"note_id": note_id, "error": str(exc)},
            )
            return False

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def load(self, note_id: int) -> Note | None:
        rows = self._fetchall(
            query=f"SELECT {_NOTE_COLUMNS} FROM audit_notes WHERE id = %s",
            params=(note_id,),
            error_message="PostgresNoteRepository: Failed to load note",
            extra={"note_id": note_id},
        )
        return _row_to_note(rows[0]) if rows else None

    def list_for_event(self, event_id: int) -> list[Note]:
        rows = self._fetchall(
            query=(
                f"SELECT {_NOTE_COLUMNS} FROM audit_notes "
                "WHERE event_id = %s ORDER BY created_at ASC, id ASC"
            ),
            params=(event_id,),
            error_message="PostgresNoteRepository: Failed to list notes",
            extra={"event_id": event_id},
        )
        return [_row_to_note(row) for row in rows]

    def search(self, keyword: str, *, limit: int = 50) -> list[Note]:
        if limit <= 0:
            return []
        rows = self._fetchall(
            query=(
                f"SELECT {_NOTE_COLUMNS} FROM audit_notes "
                "WHERE body ILIKE %s ORDER BY created_at DESC, id DESC LIMIT %s"
            ),
            params=(f"%{keyword or ''}%", limit),
            error_message="PostgresNoteRepository: Failed to search notes",
            extra={"keyword_len": len(keyword or "")},
        )
        return [_row_to_note(row) for row in rows]
