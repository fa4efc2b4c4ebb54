"""
===============================================================================
TARJETA CRC — schemas/notes.py
===============================================================================

Módulo:
    Schemas HTTP de notas de revisión
===============================================================================
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .....domain.note import Note

_MAX_BODY_CHARS = 10_000


class NoteCreateReq(BaseModel):
    author_id: str = Field(..., min_length=1, max_length=64)
    author_name: str = Field(default="", max_length=255)
    author_role: str = Field(default="none", max_length=255)
    body: str = Field(..., min_length=1, max_length=_MAX_BODY_CHARS)
    ip: str | None = Field(default=None, max_length=64)

    @field_validator("body")
    @classmethod
    def strip_body(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("body no puede estar vacío")
        return v


class NoteUpdateReq(BaseModel):
    body: str = Field(..., min_length=1, max_length=_MAX_BODY_CHARS)

    @field_validator("body")
    @classmethod
    def strip_body(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("body no puede estar vacío")
        return v


class NoteRes(BaseModel):
    id: int
    event_id: int
    author_id: str
    author_name: str
    author_role: str
    body: str
    created_at: datetime | None
    updated_at: datetime | None

    @classmethod
    def from_note(cls, note: Note) -> "NoteRes":
        return cls(
            id=note.id,
            event_id=note.event_id,
            author_id=note.author_id,
            author_name=note.author_name,
            author_role=note.author_role,
            body=note.body,
            created_at=note.created_at,
            updated_at=note.updated_at,
        )


class NotesListRes(BaseModel):
    notes: list[NoteRes]
