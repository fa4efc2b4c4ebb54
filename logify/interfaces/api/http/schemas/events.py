"""
===============================================================================
TARJETA CRC — schemas/events.py
===============================================================================

Módulo:
    Schemas HTTP de lectura de eventos

Responsabilidades:
    - DTOs de respuesta (evento, propiedades, metadata, listado, facetas).
    - Query params validados para el listado.
    - Mapear Event -> EventRes sin filtrar el sentinel de "sin after".

Colaboradores:
    - domain.event.Event
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .....domain.event import Event
from .....domain.repositories import EventFilters


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------
class EventsListQuery(BaseModel):
    classification: str | None = None
    actor_id: str | None = None
    subject_type: str | None = None
    subject_id: str | None = None
    start_at: datetime | None = None
    end_at: datetime | None = None
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def range_is_ordered(self):
        if self.start_at and self.end_at and self.start_at > self.end_at:
            raise ValueError("start_at debe ser anterior a end_at")
        return self

    def to_filters(self) -> EventFilters:
        return EventFilters(
            classification=self.classification,
            actor_id=self.actor_id,
            subject_type=self.subject_type,
            subject_id=self.subject_id,
            start_at=self.start_at,
            end_at=self.end_at,
        )


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------
class ActorRes(BaseModel):
    id: str | None
    name: str
    role: str
    ip: str | None = None
    location: str | None = None
    agent: str | None = None


class SubjectRes(BaseModel):
    type: str
    id: str | None
    name: str | None


class PropertyRes(BaseModel):
    key: str
    origin: str | None
    before: Any = None
    after: Any = None
    has_after: bool
    changed: bool


class EventRes(BaseModel):
    id: int
    occurred_at: datetime
    classification: str
    actor: ActorRes
    subject: SubjectRes | None
    properties: list[PropertyRes]
    metadata: dict[str, Any]

    @classmethod
    def from_event(cls, event: Event) -> "EventRes":
        return cls(
            id=event.id,
            occurred_at=event.occurred_at,
            classification=event.classification,
            actor=ActorRes(
                id=event.actor_id,
                name=event.actor_name,
                role=event.actor_role,
                ip=event.actor_ip,
                location=event.actor_location,
                agent=event.actor_agent,
            ),
            subject=(
                SubjectRes(
                    type=event.subject_type,
                    id=event.subject_id,
                    name=event.subject_name,
                )
                if event.subject_type
                else None
            ),
            properties=[
                PropertyRes(
                    key=prop.key,
                    origin=prop.origin,
                    before=_jsonable(prop.before),
                    after=_jsonable(prop.after) if prop.has_after else None,
                    has_after=prop.has_after,
                    changed=prop.is_changed(),
                )
                for prop in event.properties.values()
            ],
            metadata={
                key: _jsonable(meta.value) for key, meta in event.metadata.items()
            },
        )


class EventsListRes(BaseModel):
    events: list[EventRes]
    limit: int
    offset: int
    next_offset: int | None = None


class EventFacetsRes(BaseModel):
    classifications: list[str]
    earliest: datetime | None
    latest: datetime | None


def _jsonable(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    if isinstance(value, tuple):
        return list(value)
    return value
