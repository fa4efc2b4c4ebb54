# =============================================================================
# FILE: application/coalescing.py
# =============================================================================
"""
===============================================================================
SERVICE: Coalescing Engine
===============================================================================

Qué es:
    Una acción lógica del usuario ("editar esta imagen") dispara muchas
    notificaciones de bajo nivel. El motor las junta en UN evento: reutiliza
    el evento de la operación en curso o, si existe, el evento almacenado más
    reciente del mismo (clasificación, sujeto) dentro de la ventana.

Regla de reutilización:
    reusar  <=>  misma clasificación
                 y mismo (tipo, id) de sujeto
                 y now - stored.occurred_at < ventana de la clasificación

    Dos ediciones legítimamente separadas dentro de la ventana se fusionan:
    es una pérdida aceptada (el log prioriza legibilidad sobre granularidad).

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: CoalescingEngine
Responsibilities:
  - Resolver el evento destino (operación -> almacenado -> nuevo)
  - Normalizar y diffear snapshots antes/después
  - Fusionar con before fijado al valor más antiguo de la cadena
Collaborators:
  - application.operation.OperationContext
  - domain.event.Event / domain.rules.ClassificationRules
  - domain.values.normalize / are_equal
  - domain.repositories.EventRepository (find_most_recent)

Component: ActivityTracker
Responsibilities:
  - Extender el evento "Actor Active" mientras el actor siga activo
  - Abrir uno nuevo cuando la pausa supera la ventana
Collaborators:
  - domain.repositories.EventRepository
  - domain.values.duration_string
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Iterable, Mapping

from ..crosscutting.exceptions import DatabaseError
from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_event_coalesced
from ..domain.actors import Actor, ActorProvider, TrackingPolicy
from ..domain.event import Event
from ..domain.properties import UNCHANGED
from ..domain.repositories import EventRepository
from ..domain.rules import ClassificationRules
from ..domain.subjects import SubjectKind, SubjectRef
from ..domain.values import are_equal, duration_string, normalize
from .operation import OperationContext

Clock = Callable[[], datetime]

ACTIVITY_CLASSIFICATION = "Actor Active"
ACTIVITY_START = "activity_start"
ACTIVITY_END = "activity_end"
ACTIVITY_DURATION = "activity_duration"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CoalescingEngine:
    """Construye eventos a partir de diffs, fusionando notificaciones cercanas."""

    def __init__(
        self,
        repository: EventRepository,
        *,
        policy: TrackingPolicy,
        rules: ClassificationRules,
        actor_provider: ActorProvider | None = None,
        local_tz: tzinfo | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._policy = policy
        self._rules = rules
        self._actor_provider = actor_provider
        self._local_tz = local_tz
        self._clock = clock

    @property
    def rules(self) -> ClassificationRules:
        return self._rules

    def event_for(
        self,
        operation: OperationContext,
        classification: str,
        subject: SubjectRef | None,
        *,
        actor: Actor | None = None,
        all_actors: bool = False,
    ) -> Event | None:
        """
        Evento destino para (clasificación, sujeto) en esta operación.

        1. el que ya está en construcción en la operación
        2. el almacenado más reciente, si está dentro de la ventana
        3. uno nuevo (o None si la política rechaza al actor)
        """
        tracked = operation.find(classification, subject)
        if tracked is not None:
            record_event_coalesced("operation")
            return tracked

        now = self._clock()
        event = Event.create(
            classification,
            subject,
            actor=actor,
            all_actors=all_actors,
            policy=self._policy,
            actor_provider=self._actor_provider,
            rules=self._rules,
            repository=self._repository,
            now=now,
        )
        if event is None:
            return None
        event.records_changes = True

        if event.reuse_window is not None:
            stored = self._find_stored(classification, subject)
            if (
                stored is not None
                and _same_subject(stored, event)
                and now - stored.occurred_at < event.reuse_window
            ):
                stored.records_changes = True
                stored.is_creation = event.is_creation
                stored.intrinsic_keys = event.intrinsic_keys
                stored.reuse_window = event.reuse_window
                record_event_coalesced("store")
                logger.info(
                    "Evento reutilizado dentro de la ventana",
                    extra={
                        "event_id": stored.id,
                        "classification": classification,
                        "age_seconds": (now - stored.occurred_at).total_seconds(),
                    },
                )
                return operation.track(stored)

        return operation.track(event)

    def record_change(
        self,
        operation: OperationContext,
        classification: str,
        subject: SubjectRef | None,
        key: str,
        before: Any,
        after: Any = UNCHANGED,
        *,
        origin: str | None = None,
        actor: Actor | None = None,
    ) -> Event | None:
        """Registra un cambio puntual (before fijado, after avanza)."""
        event = self.event_for(operation, classification, subject, actor=actor)
        if event is None:
            return None
        normalized_after = (
            UNCHANGED if after is UNCHANGED else self.normalize(key, after)
        )
        event.merge_property(key, origin, self.normalize(key, before), normalized_after)
        return event

    def record_changes(
        self,
        operation: OperationContext,
        classification: str,
        subject: SubjectRef | None,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        *,
        origin: str | None = None,
        actor: Actor | None = None,
        keys: Iterable[str] | None = None,
    ) -> Event | None:
        """
        Diffea dos snapshots del sujeto. Sin diferencias no se crea evento.

        Claves ausentes en un lado cuentan como None. Las claves intrínsecas
        sin cambio se agregan sin after para mostrarlas junto a los cambios.
        """
        candidates = list(keys) if keys is not None else _ordered_keys(before, after)
        changed: list[tuple[str, Any, Any]] = []
        unchanged: list[tuple[str, Any]] = []
        for key in candidates:
            old = self.normalize(key, before.get(key))
            new = self.normalize(key, after.get(key))
            if are_equal(old, new):
                unchanged.append((key, old))
            else:
                changed.append((key, old, new))

        if not changed:
            return operation.find(classification, subject)

        event = self.event_for(operation, classification, subject, actor=actor)
        if event is None:
            return None

        for key, old, new in changed:
            event.merge_property(key, origin, old, new)
        for key, old in unchanged:
            if key in event.intrinsic_keys and event.get_property(key) is None:
                event.merge_property(key, origin, old)
        return event

    def normalize(self, key: str, value: Any) -> Any:
        return normalize(key, value, local_tz=self._local_tz)

    def _find_stored(
        self, classification: str, subject: SubjectRef | None
    ) -> Event | None:
        try:
            return self._repository.find_most_recent(
                classification, subject=subject, exact_subject=True
            )
        except DatabaseError:
            # R: sin lectura no hay fusión; se crea un evento nuevo.
            logger.warning(
                "No se pudo buscar evento reutilizable",
                extra={"classification": classification},
                exc_info=True,
            )
            return None


class ActivityTracker:
    """
    Evento de actividad por actor: mientras los pings lleguen con una pausa
    menor o igual a la ventana, se extiende activity_end del evento existente.
    """

    def __init__(
        self,
        repository: EventRepository,
        *,
        policy: TrackingPolicy,
        window: timedelta,
        rules: ClassificationRules | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._repository = repository
        self._policy = policy
        self._window = window
        self._rules = rules
        self._clock = clock

    def record_activity(self, actor: Actor, *, now: datetime | None = None) -> Event | None:
        if actor.id is None or not self._policy.is_tracked(actor):
            return None
        now = now or self._clock()

        previous = self._find_previous(actor)
        if previous is not None:
            end = previous.get_meta(ACTIVITY_END)
            if isinstance(end, datetime) and now - end <= self._window:
                if now > end:
                    start = previous.get_meta(ACTIVITY_START, end)
                    previous.set_meta(ACTIVITY_END, now)
                    previous.set_meta(ACTIVITY_DURATION, duration_string(start, now))
                    self._save(previous)
                record_event_coalesced("activity")
                return previous

        event = Event.create(
            ACTIVITY_CLASSIFICATION,
            SubjectRef.of(SubjectKind.USER, actor.id, actor.name),
            actor=actor,
            policy=self._policy,
            rules=self._rules,
            repository=self._repository,
            now=now,
        )
        if event is None:
            return None
        event.set_meta(ACTIVITY_START, now)
        event.set_meta(ACTIVITY_END, now)
        event.set_meta(ACTIVITY_DURATION, duration_string(now, now))
        self._save(event)
        return event

    def _find_previous(self, actor: Actor) -> Event | None:
        try:
            return self._repository.find_most_recent(
                ACTIVITY_CLASSIFICATION, actor_id=actor.id
            )
        except DatabaseError:
            logger.warning(
                "No se pudo leer la actividad previa",
                extra={"actor_id": actor.id},
                exc_info=True,
            )
            return None

    def _save(self, event: Event) -> None:
        if not event.save():
            logger.warning(
                "No se pudo guardar el evento de actividad",
                extra={"actor_id": event.actor_id, "event_id": event.id},
            )


def _same_subject(stored: Event, event: Event) -> bool:
    return (stored.subject_type, stored.subject_id) == (
        event.subject_type,
        event.subject_id,
    )


def _ordered_keys(before: Mapping[str, Any], after: Mapping[str, Any]) -> list[str]:
    keys = list(before)
    keys.extend(key for key in after if key not in before)
    return keys
