"""
===============================================================================
TARJETA CRC — infrastructure/repositories/mapping.py
===============================================================================

Responsabilidades:
  - Mapear Event <-> filas (audit_events / audit_properties / audit_eventmeta).
  - Codificar valores tipados para las columnas TEXT (domain.values codec).
  - Compartir el mapping entre el adapter Postgres y el in-memory para que
    ambos tengan exactamente la misma semántica.

Convención de columnas:
  - val_after NULL  => propiedad sin after (UNCHANGED)
  - val_after 'null' => cambio real a None
===============================================================================
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from ...crosscutting.exceptions import InvariantViolationError
from ...domain.event import Event
from ...domain.properties import (
    UNCHANGED,
    Eventmeta,
    Property,
    rebase_eventmeta,
    rebase_properties,
)
from ...domain.values import decode_value, encode_value

EVENT_COLUMNS: tuple[str, ...] = (
    "id",
    "occurred_at",
    "actor_id",
    "actor_name",
    "actor_role",
    "actor_ip",
    "actor_location",
    "actor_agent",
    "classification",
    "subject_type",
    "subject_id",
    "subject_name",
)

# Columnas escribibles (sin id) en el orden de EVENT_COLUMNS.
EVENT_WRITE_COLUMNS: tuple[str, ...] = EVENT_COLUMNS[1:]

PROPERTY_COLUMNS: tuple[str, ...] = (
    "id",
    "event_id",
    "prop_key",
    "origin",
    "val_before",
    "val_after",
)

EVENTMETA_COLUMNS: tuple[str, ...] = ("id", "event_id", "meta_key", "meta_value")


def event_values(event: Event) -> tuple[Any, ...]:
    """Valores de EVENT_WRITE_COLUMNS para INSERT/UPDATE."""
    return (
        event.occurred_at,
        event.actor_id,
        event.actor_name,
        event.actor_role,
        event.actor_ip,
        event.actor_location,
        event.actor_agent,
        event.classification,
        event.subject_type,
        event.subject_id,
        event.subject_name,
    )


def encode_after(prop: Property) -> str | None:
    return encode_value(prop.after) if prop.has_after else None


def decode_after(text: str | None) -> Any:
    return UNCHANGED if text is None else decode_value(text)


def property_values(prop: Property) -> tuple[str, str | None, str, str | None]:
    """(prop_key, origin, val_before, val_after)."""
    return (prop.key, prop.origin, encode_value(prop.before), encode_after(prop))


def eventmeta_values(meta: Eventmeta) -> tuple[str, str]:
    return (meta.key, encode_value(meta.value))


def build_event(
    row: Sequence[Any] | Mapping[str, Any],
    property_rows: Iterable[Sequence[Any]],
    eventmeta_rows: Iterable[Sequence[Any]],
) -> Event:
    """Reconstruye un Event desde filas en el orden de *_COLUMNS."""
    data = dict(row) if isinstance(row, Mapping) else dict(zip(EVENT_COLUMNS, row))
    event = Event(
        id=data["id"],
        occurred_at=data["occurred_at"],
        actor_id=data["actor_id"],
        actor_name=data["actor_name"] or "",
        actor_role=data["actor_role"] or "none",
        actor_ip=data["actor_ip"],
        actor_location=data["actor_location"],
        actor_agent=data["actor_agent"],
        classification=data["classification"],
        subject_type=data["subject_type"],
        subject_id=data["subject_id"],
        subject_name=data["subject_name"],
    )

    for prop_id, event_id, key, origin, val_before, val_after in property_rows:
        event.properties[key] = Property(
            key=key,
            origin=origin,
            before=decode_value(val_before),
            after=decode_after(val_after),
            id=prop_id,
            event_id=event_id,
        )

    for meta_id, event_id, key, value in eventmeta_rows:
        event.metadata[key] = Eventmeta(
            key=key, value=decode_value(value), id=meta_id, event_id=event_id
        )

    event.mark_stored()
    return event


def coalesce_key(event: Event) -> str:
    """Clave de lock para inserts concurrentes sobre (clasificación, sujeto)."""
    return f"{event.classification}|{event.subject_type or ''}|{event.subject_id or ''}"


def validate_event_id(event_id: int) -> None:
    if isinstance(event_id, bool) or not isinstance(event_id, int) or event_id <= 0:
        raise InvariantViolationError(f"event_id inválido: {event_id!r}")


def apply_identity(
    event: Event,
    target: Event,
    event_id: int,
    prop_ids: Mapping[str, int],
    meta_ids: Mapping[str, int],
) -> None:
    """
    Post-commit: el Event en memoria pasa a reflejar la fila persistida
    (id, ids de hijos y, si hubo merge concurrente, el estado fusionado).
    """
    if target is not event:
        event.occurred_at = target.occurred_at
        event.properties = target.properties
        event.metadata = target.metadata
    event.id = event_id
    for key, prop in event.properties.items():
        prop.id = prop_ids.get(key)
        prop.event_id = event_id
    for key, meta in event.metadata.items():
        meta.id = meta_ids.get(key)
        meta.event_id = event_id
    event.mark_stored()


def rebase_event(current: Event, event: Event) -> Event:
    """
    Update concurrente-seguro: `current` es la fila re-leída bajo lock dentro
    de la transacción; recibe solo lo que `event` cambió desde que se cargó.
    Las columnas del evento se toman de `event`.
    """
    rebase_properties(
        current.properties,
        event.stored_properties,
        event.properties,
        intrinsic_keys=event.intrinsic_keys,
    )
    rebase_eventmeta(current.metadata, event.stored_metadata, event.metadata)
    for column in EVENT_WRITE_COLUMNS:
        setattr(current, column, getattr(event, column))
    return current
