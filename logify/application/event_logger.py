# =============================================================================
# FILE: application/event_logger.py
# =============================================================================
"""
===============================================================================
SERVICE: AuditLogger (API de entrada)
===============================================================================

Qué es:
    El punto de entrada que usan los observadores de mutaciones una vez que
    identificaron un cambio notable: crea el evento, aplica la política de
    tracking y lo persiste.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: AuditLogger
Responsibilities:
  - log_event: crear + (opcional) registrar en la operación + guardar
  - create_event: builder de bajo nivel para construir un evento en varios pasos
Collaborators:
  - domain.event.Event (gate de política)
  - domain.repositories.EventRepository
  - application.operation.OperationContext
===============================================================================
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from ..crosscutting.logger import logger
from ..domain.actors import Actor, ActorProvider, TrackingPolicy
from ..domain.event import Event
from ..domain.properties import Property
from ..domain.repositories import EventRepository
from ..domain.rules import ClassificationRules
from ..domain.subjects import SubjectRef
from .coalescing import Clock, utc_now
from .operation import OperationContext


class AuditLogger:
    def __init__(
        self,
        repository: EventRepository,
        *,
        policy: TrackingPolicy,
        rules: ClassificationRules,
        actor_provider: ActorProvider | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._policy = policy
        self._rules = rules
        self._actor_provider = actor_provider
        self._clock = clock

    def create_event(
        self,
        classification: str,
        subject: SubjectRef | None = None,
        metadata: Mapping[str, Any] | None = None,
        properties: Mapping[str, Property] | Iterable[Property] | None = None,
        actor: Actor | None = None,
        all_actors: bool = False,
    ) -> Event | None:
        return Event.create(
            classification,
            subject,
            metadata,
            properties,
            actor,
            all_actors,
            policy=self._policy,
            actor_provider=self._actor_provider,
            rules=self._rules,
            repository=self._repository,
            now=self._clock(),
        )

    def log_event(
        self,
        classification: str,
        subject: SubjectRef | None = None,
        metadata: Mapping[str, Any] | None = None,
        properties: Mapping[str, Property] | Iterable[Property] | None = None,
        actor: Actor | None = None,
        all_actors: bool = False,
        *,
        operation: OperationContext | None = None,
    ) -> bool:
        """
        Registra un evento completo y lo guarda de inmediato.

        Devuelve False si la política lo rechazó o si el save falló; ninguno
        de los dos casos es un error para quien llama.
        """
        event = self.create_event(
            classification, subject, metadata, properties, actor, all_actors
        )
        if event is None:
            return False

        if operation is not None:
            operation.track(event)

        if not event.save():
            logger.warning(
                "AuditLogger: evento no guardado",
                extra={"classification": classification},
            )
            return False
        return True
