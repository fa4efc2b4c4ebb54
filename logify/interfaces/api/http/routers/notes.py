"""
===============================================================================
TARJETA CRC — interfaces/api/http/routers/notes.py
===============================================================================

Name:
    Notes Router

Responsibilities:
    - Editar / borrar notas de revisión por id.
    - Búsqueda por palabra clave en el cuerpo.

Collaborators:
    - container.get_note_repository
    - schemas.notes
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from .....container import get_note_repository
from .....crosscutting.error_responses import not_found
from .....crosscutting.logger import logger
from .....domain.repositories import NoteRepository
from ..schemas.notes import NoteRes, NotesListRes, NoteUpdateReq

router = APIRouter(prefix="/notes", tags=["notes"])


@router.get("", response_model=NotesListRes)
def search_notes(
    q: str = Query(..., min_length=1, max_length=255),
    limit: int = Query(default=50, ge=1, le=200),
    notes: NoteRepository = Depends(get_note_repository),
):
    return NotesListRes(
        notes=[NoteRes.from_note(n) for n in notes.search(q, limit=limit)]
    )


@router.put("/{note_id}", response_model=NoteRes)
def update_note(
    note_id: int,
    req: NoteUpdateReq,
    notes: NoteRepository = Depends(get_note_repository),
):
    note = notes.load(note_id)
    if note is None:
        raise not_found("Nota", str(note_id))

    note.body = req.body
    if not notes.save(note):
        raise not_found("Nota", str(note_id))

    logger.info("Nota actualizada", extra={"note_id": note_id})
    return NoteRes.from_note(note)


@router.delete("/{note_id}", status_code=204)
def delete_note(
    note_id: int,
    notes: NoteRepository = Depends(get_note_repository),
):
    if note_id <= 0 or not notes.delete(note_id):
        raise not_found("Nota", str(note_id))
    logger.info("Nota borrada", extra={"note_id": note_id})
