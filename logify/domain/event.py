"""
===============================================================================
TARJETA CRC — domain/event.py (Agregado Event)
===============================================================================

Responsabilidades:
  - Representar un registro de auditoría: actor, sujeto, clasificación,
    propiedades (diffs) y metadata.
  - Aplicar el gate de política al crear (actor resoluble + rol trackeado).
  - Exponer la API de propiedades/metadata sobre domain.properties.
  - Delegar save/delete al repositorio al que está ligado.

Colaboradores:
  - domain.properties (Property, Eventmeta, upsert/merge)
  - domain.actors (Actor, TrackingPolicy, ActorProvider)
  - domain.rules (ventana, creación, claves intrínsecas)
  - domain.repositories.EventRepository

Notas:
  - Un rechazo de política NO es un error: create devuelve None.
  - is_creation / records_changes / intrinsic_keys / reuse_window son estado
    de construcción; no se persisten.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..crosscutting.exceptions import InvariantViolationError
from ..crosscutting.logger import logger
from .actors import ANONYMOUS_ACTOR, Actor, ActorProvider, TrackingPolicy
from .properties import (
    UNCHANGED,
    Eventmeta,
    EventmetaMap,
    Property,
    PropertyMap,
    has_changes,
    merge_property,
    set_eventmeta,
    snapshot_eventmeta,
    snapshot_properties,
    upsert_property,
)
from .rules import ClassificationRules
from .subjects import SubjectKind, SubjectRef

if TYPE_CHECKING:
    from .repositories import EventRepository


_DEFAULT_RULES = ClassificationRules()


@dataclass(eq=False)
class Event:
    """Agregado raíz de auditoría."""

    classification: str
    occurred_at: datetime
    actor_id: str | None = None
    actor_name: str = ""
    actor_role: str = "none"
    actor_ip: str | None = None
    actor_location: str | None = None
    actor_agent: str | None = None
    subject_type: str | None = None
    subject_id: str | None = None
    subject_name: str | None = None
    properties: PropertyMap = field(default_factory=dict)
    metadata: EventmetaMap = field(default_factory=dict)
    id: int | None = None

    # Estado de construcción (no persistido)
    is_creation: bool = False
    records_changes: bool = False
    intrinsic_keys: frozenset[str] = frozenset()
    reuse_window: timedelta | None = None
    repository: "EventRepository | None" = field(default=None, repr=False)
    # R: hijos tal como se leyeron/escribieron por última vez en el store;
    # el update aplica solo la diferencia contra esto.
    stored_properties: PropertyMap = field(default_factory=dict, repr=False)
    stored_metadata: EventmetaMap = field(default_factory=dict, repr=False)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        classification: str,
        subject: SubjectRef | None = None,
        metadata: Mapping[str, Any] | None = None,
        properties: Mapping[str, Property] | Iterable[Property] | None = None,
        actor: Actor | None = None,
        all_actors: bool = False,
        *,
        policy: TrackingPolicy,
        actor_provider: ActorProvider | None = None,
        rules: ClassificationRules | None = None,
        repository: "EventRepository | None" = None,
        now: datetime | None = None,
    ) -> "Event | None":
        """
        Crea un evento o devuelve None si la política lo rechaza.

        Rechazos (log INFO, no excepción):
          - no hay actor resoluble y all_actors es False
          - el rol del actor no está en los roles trackeados
        """
        if not classification or not classification.strip():
            raise InvariantViolationError("classification es requerida")

        if actor is None and actor_provider is not None:
            actor = actor_provider.current_actor()

        if actor is None:
            if not all_actors:
                logger.info(
                    "Evento no creado: no hay actor resoluble",
                    extra={"classification": classification},
                )
                return None
            actor = ANONYMOUS_ACTOR
        elif not policy.allows(actor, all_actors):
            logger.info(
                "Evento no creado: rol no trackeado",
                extra={"classification": classification, "actor_role": actor.role},
            )
            return None

        rule = (rules or _DEFAULT_RULES).rule_for(classification)

        event = cls(
            classification=classification,
            occurred_at=now or datetime.now(timezone.utc),
            actor_id=actor.id,
            actor_name=actor.name,
            actor_role=actor.role,
            actor_ip=actor.ip,
            actor_location=actor.location,
            actor_agent=actor.agent,
            is_creation=rule.creation,
            intrinsic_keys=rule.intrinsic_keys,
            reuse_window=rule.reuse_window,
            repository=repository,
        )
        if subject is not None:
            event.subject_type = subject.kind.value
            event.subject_id = subject.id
            event.subject_name = subject.name

        for key, value in (metadata or {}).items():
            event.set_meta(key, value)
        if properties:
            event.add_properties(properties)

        return event

    # ------------------------------------------------------------------
    # Sujeto / estado
    # ------------------------------------------------------------------
    @property
    def subject(self) -> SubjectRef | None:
        if self.subject_type is None:
            return None
        return SubjectRef(
            kind=SubjectKind(self.subject_type),
            id=self.subject_id,
            name=self.subject_name or "",
        )

    def is_new(self) -> bool:
        return self.id is None

    def has_changes(self) -> bool:
        return has_changes(self.properties)

    def bind(self, repository: "EventRepository") -> "Event":
        self.repository = repository
        return self

    def mark_stored(self) -> None:
        """Fija el estado actual de los hijos como el persistido."""
        self.stored_properties = snapshot_properties(self.properties)
        self.stored_metadata = snapshot_eventmeta(self.metadata)

    # ------------------------------------------------------------------
    # Propiedades
    # ------------------------------------------------------------------
    def set_property(
        self, key: str, origin: str | None, before: Any, after: Any = UNCHANGED
    ) -> Property:
        return upsert_property(self.properties, key, origin, before, after)

    def merge_property(
        self, key: str, origin: str | None, before: Any, after: Any = UNCHANGED
    ) -> Property | None:
        """Upsert con before fijado (ver domain.properties.merge_property)."""
        return merge_property(
            self.properties,
            key,
            origin,
            before,
            after,
            intrinsic=key in self.intrinsic_keys,
        )

    def get_property(self, key: str) -> Property | None:
        return self.properties.get(key)

    def remove_property(self, key: str) -> None:
        self.properties.pop(key, None)

    def add_properties(
        self, properties: Mapping[str, Property] | Iterable[Property]
    ) -> None:
        items = properties.values() if isinstance(properties, Mapping) else properties
        for prop in items:
            self.set_property(prop.key, prop.origin, prop.before, prop.after)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------
    def set_meta(self, key: str, value: Any) -> Eventmeta:
        return set_eventmeta(self.metadata, key, value)

    def get_meta(self, key: str, default: Any = None) -> Any:
        meta = self.metadata.get(key)
        return default if meta is None else meta.value

    def get_eventmeta(self, key: str) -> Eventmeta | None:
        return self.metadata.get(key)

    def has_meta(self, key: str) -> bool:
        return key in self.metadata

    # ------------------------------------------------------------------
    # Persistencia (delegada)
    # ------------------------------------------------------------------
    def save(self) -> bool:
        return self._require_repository().save(self)

    def delete(self) -> bool:
        if self.is_new():
            return False
        return self._require_repository().delete(self.id)

    def _require_repository(self) -> "EventRepository":
        if self.repository is None:
            raise InvariantViolationError(
                "Evento sin repositorio: usar bind() o crear con repository="
            )
        return self.repository
