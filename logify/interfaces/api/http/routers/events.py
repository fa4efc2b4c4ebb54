"""
===============================================================================
TARJETA CRC — interfaces/api/http/routers/events.py
===============================================================================

Name:
    Events Router

Responsibilities:
    - Lectura del registro de auditoría: listado con filtros, detalle, facetas.
    - Notas de revisión colgadas de un evento (listar / crear).
    - Mapear "no existe" a 404 RFC7807.

Collaborators:
    - container: get_event_repository, get_note_repository
    - schemas.events, schemas.notes
===============================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from pydantic import ValidationError

from .....container import get_event_repository, get_note_repository
from .....crosscutting.error_responses import not_found, validation_error
from .....crosscutting.logger import logger
from .....domain.note import Note
from .....domain.repositories import EventRepository, NoteRepository
from ..schemas.events import EventFacetsRes, EventRes, EventsListQuery, EventsListRes
from ..schemas.notes import NoteCreateReq, NoteRes, NotesListRes

router = APIRouter(prefix="/events", tags=["events"])


# =============================================================================
# Helpers
# =============================================================================


def _require_event(repo: EventRepository, event_id: int):
    event = repo.load(event_id)
    if event is None:
        raise not_found("Evento", str(event_id))
    return event


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=EventsListRes)
def list_events(
    classification: str | None = Query(default=None, max_length=255),
    actor_id: str | None = Query(default=None, max_length=64),
    subject_type: str | None = Query(default=None, max_length=255),
    subject_id: str | None = Query(default=None, max_length=64),
    start_at: datetime | None = None,
    end_at: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    repo: EventRepository = Depends(get_event_repository),
):
    try:
        query = EventsListQuery(
            classification=classification,
            actor_id=actor_id,
            subject_type=subject_type,
            subject_id=subject_id,
            start_at=start_at,
            end_at=end_at,
            limit=limit,
            offset=offset,
        )
    except ValidationError as exc:
        raise validation_error(
            "Filtros inválidos",
            errors=[{"msg": err["msg"], "loc": list(err["loc"])} for err in exc.errors()],
        ) from exc

    # R: Se pide uno de más para saber si hay página siguiente.
    events = repo.list_events(
        query.to_filters(), limit=query.limit + 1, offset=query.offset
    )
    has_more = len(events) > query.limit
    return EventsListRes(
        events=[EventRes.from_event(e) for e in events[: query.limit]],
        limit=query.limit,
        offset=query.offset,
        next_offset=query.offset + query.limit if has_more else None,
    )


@router.get("/facets", response_model=EventFacetsRes)
def get_event_facets(repo: EventRepository = Depends(get_event_repository)):
    """Valores para poblar filtros: clasificaciones y rango de fechas."""
    return EventFacetsRes(
        classifications=repo.get_classifications(),
        earliest=repo.get_earliest_date(),
        latest=repo.get_latest_date(),
    )


@router.get("/{event_id}", response_model=EventRes)
def get_event(
    event_id: int,
    repo: EventRepository = Depends(get_event_repository),
):
    return EventRes.from_event(_require_event(repo, event_id))


@router.get("/{event_id}/notes", response_model=NotesListRes)
def list_event_notes(
    event_id: int,
    repo: EventRepository = Depends(get_event_repository),
    notes: NoteRepository = Depends(get_note_repository),
):
    _require_event(repo, event_id)
    return NotesListRes(
        notes=[NoteRes.from_note(n) for n in notes.list_for_event(event_id)]
    )


@router.post("/{event_id}/notes", response_model=NoteRes, status_code=201)
def create_event_note(
    event_id: int,
    req: NoteCreateReq,
    request: Request,
    repo: EventRepository = Depends(get_event_repository),
    notes: NoteRepository = Depends(get_note_repository),
):
    _require_event(repo, event_id)

    note = Note(
        event_id=event_id,
        author_id=req.author_id,
        author_name=req.author_name,
        author_role=req.author_role,
        body=req.body,
        ip=req.ip or (request.client.host if request.client else None),
    )
    if not notes.save(note):
        raise validation_error("No se pudo guardar la nota")

    logger.info(
        "Nota creada", extra={"note_id": note.id, "event_id": event_id}
    )
    return NoteRes.from_note(note)
