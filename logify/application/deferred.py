# =============================================================================
# FILE: application/deferred.py
# =============================================================================
"""
===============================================================================
SERVICE: Deferred Execution (snapshot ahora, procesar después)
===============================================================================

Qué es:
    Las notificaciones de mutación llegan dentro del request del host con
    objetos vivos. Acá se toma un snapshot inmutable (JSON) en el momento y se
    encola UNA unidad de trabajo; el worker la reconstituye y corre el diff /
    coalescing / persistencia sin asumir nada del estado vivo del host.

Contratos:
    - Orden FIFO por operación lógica: cada unidad depende de la anterior de la
      misma operación. Operaciones distintas pueden intercalarse.
    - Best-effort: una unidad fallida se loguea y se descarta, sin reintentos.
      Una falla de auditoría nunca se propaga al host.

-------------------------------------------------------------------------------
CRC CARD
-------------------------------------------------------------------------------
Component: DeferredCapture
Responsibilities:
  - Serializar la notificación tipada (snapshot) en un DeferredMessage
  - Numerar mensajes y encadenar cada job al anterior de la operación
Collaborators:
  - DeferredQueue (RQDeferredQueue / InMemoryDeferredQueue)

Component: HandlerRegistry / build_default_registry
Responsibilities:
  - Mapear tipo de notificación -> handler (registro explícito y ordenado)
  - Registrar callbacks de captura periódica por nombre
Collaborators:
  - CoalescingEngine, ActivityTracker, AuditLogger

Component: DeferredProcessor
Responsibilities:
  - Validar el mensaje, correr el handler en una OperationContext nueva y
    hacer flush; devolver un status sin lanzar nunca
Collaborators:
  - application.operation.OperationContext
  - crosscutting.metrics (processed / duration)
===============================================================================
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta
from typing import Annotated, Any, Callable, Literal, Optional, Protocol, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..context import operation_scope
from ..crosscutting.logger import logger
from ..crosscutting.metrics import observe_deferred_duration, record_deferred_processed
from ..domain.actors import Actor
from ..domain.properties import UNCHANGED, Property
from ..domain.repositories import EventRepository
from ..domain.subjects import SubjectKind, SubjectLoaderRegistry, SubjectRef
from .coalescing import ActivityTracker, Clock, CoalescingEngine, utc_now
from .event_logger import AuditLogger
from .operation import OperationContext

DEFERRED_PREFIX = "deferred."

# Status de DeferredProcessor.process
OK = "ok"
INVALID = "invalid"
UNKNOWN_KIND = "unknown_kind"
FAILED = "failed"


# =============================================================================
# Snapshots
# =============================================================================
class ActorSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str = ""
    roles: tuple[str, ...] = ()
    ip: Optional[str] = None
    location: Optional[str] = None
    agent: Optional[str] = None

    @classmethod
    def from_actor(cls, actor: Actor) -> "ActorSnapshot":
        return cls(
            id=actor.id,
            name=actor.name,
            roles=actor.roles,
            ip=actor.ip,
            location=actor.location,
            agent=actor.agent,
        )

    def to_actor(self) -> Actor:
        return Actor(
            id=self.id,
            name=self.name,
            roles=tuple(self.roles),
            ip=self.ip,
            location=self.location,
            agent=self.agent,
        )


class SubjectSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: SubjectKind
    id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_ref(cls, ref: SubjectRef) -> "SubjectSnapshot":
        return cls(kind=ref.kind, id=ref.id, name=ref.name)

    def to_ref(self) -> SubjectRef:
        return SubjectRef.of(self.kind, self.id, self.name)


class PropertySnapshot(BaseModel):
    """Propiedad serializable; has_after=False representa "sin after"."""

    model_config = ConfigDict(frozen=True)

    key: str
    origin: Optional[str] = None
    before: Any = None
    after: Any = None
    has_after: bool = True

    @classmethod
    def from_property(cls, prop: Property) -> "PropertySnapshot":
        return cls(
            key=prop.key,
            origin=prop.origin,
            before=prop.before,
            after=prop.after if prop.has_after else None,
            has_after=prop.has_after,
        )

    def to_property(self) -> Property:
        return Property(
            key=self.key,
            origin=self.origin,
            before=self.before,
            after=self.after if self.has_after else UNCHANGED,
        )


# =============================================================================
# Notificaciones tipadas
# =============================================================================
class _Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor: Optional[ActorSnapshot] = None


class SubjectChanged(_Notification):
    """Antes/después de un sujeto modificado."""

    kind: Literal["subject_changed"] = "subject_changed"
    classification: str
    subject: SubjectSnapshot
    before: dict[str, Any] = Field(default_factory=dict)
    # R: None => el worker lee el estado actual con el SubjectLoader del kind.
    after: Optional[dict[str, Any]] = None
    origin: Optional[str] = None


class SubjectCreated(_Notification):
    kind: Literal["subject_created"] = "subject_created"
    classification: str
    subject: SubjectSnapshot
    attributes: dict[str, Any] = Field(default_factory=dict)


class SubjectDeleted(_Notification):
    kind: Literal["subject_deleted"] = "subject_deleted"
    classification: str
    subject: SubjectSnapshot
    attributes: dict[str, Any] = Field(default_factory=dict)


class ActorActive(_Notification):
    kind: Literal["actor_active"] = "actor_active"
    actor: ActorSnapshot
    occurred_at: datetime


class EventLogged(_Notification):
    """Evento ya armado por el observador (equivale a log_event diferido)."""

    kind: Literal["event_logged"] = "event_logged"
    classification: str
    subject: Optional[SubjectSnapshot] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    properties: list[PropertySnapshot] = Field(default_factory=list)
    all_actors: bool = False


Notification = Union[SubjectChanged, SubjectCreated, SubjectDeleted, ActorActive, EventLogged]

NOTIFICATION_TYPES: dict[str, type[BaseModel]] = {
    cls.model_fields["kind"].default: cls
    for cls in (SubjectChanged, SubjectCreated, SubjectDeleted, ActorActive, EventLogged)
}

_NOTIFICATION_ADAPTER: TypeAdapter = TypeAdapter(
    Annotated[Notification, Field(discriminator="kind")]
)


class DeferredMessage(BaseModel):
    """Unidad de trabajo encolada: el snapshot viaja como JSON en `payload`."""

    model_config = ConfigDict(frozen=True)

    name: str
    operation_id: str
    sequence: int = Field(ge=1)
    captured_at: datetime
    payload: str

    @property
    def kind(self) -> str:
        return self.name[len(DEFERRED_PREFIX) :]


def parse_notification(payload: str) -> Notification:
    return _NOTIFICATION_ADAPTER.validate_json(payload)


# =============================================================================
# Puerto de cola
# =============================================================================
class DeferredQueue(Protocol):
    def enqueue(
        self, message: DeferredMessage, *, depends_on: str | None = None
    ) -> str: ...

    def schedule(
        self,
        job_path: str,
        *,
        args: tuple = (),
        delay: timedelta | None = None,
    ) -> str: ...


# =============================================================================
# Captura
# =============================================================================
class DeferredCapture:
    """Captura por operación lógica: un objeto por request/operación."""

    def __init__(
        self,
        queue: DeferredQueue,
        *,
        operation_id: str | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._queue = queue
        self.operation_id = operation_id or uuid4().hex
        self._clock = clock
        self._sequence = 0
        self._last_job_id: str | None = None
        self._lock = threading.Lock()

    def capture(self, notification: Notification) -> str | None:
        """
        Snapshot + encolado. Devuelve el job id, o None si no se pudo
        (logueado: la falla no llega al host).
        """
        with self._lock:
            self._sequence += 1
            try:
                message = DeferredMessage(
                    name=f"{DEFERRED_PREFIX}{notification.kind}",
                    operation_id=self.operation_id,
                    sequence=self._sequence,
                    captured_at=self._clock(),
                    payload=notification.model_dump_json(),
                )
                job_id = self._queue.enqueue(message, depends_on=self._last_job_id)
            except Exception:
                logger.exception(
                    "Captura diferida descartada",
                    extra={
                        "operation_id": self.operation_id,
                        "kind": getattr(notification, "kind", None),
                        "sequence": self._sequence,
                    },
                )
                return None

            self._last_job_id = job_id
            return job_id


# =============================================================================
# Handlers
# =============================================================================
Handler = Callable[[Any, OperationContext], None]
PeriodicCallback = Callable[[], None]


class HandlerRegistry:
    def __init__(self) -> None:
        self._handlers: dict[type, Handler] = {}
        self._periodic: dict[str, PeriodicCallback] = {}

    def register(self, notification_type: type, handler: Handler) -> None:
        if notification_type in self._handlers:
            raise ValueError(f"Handler ya registrado para {notification_type.__name__}")
        self._handlers[notification_type] = handler

    def handler_for(self, notification: BaseModel) -> Handler | None:
        return self._handlers.get(type(notification))

    def register_periodic(self, name: str, callback: PeriodicCallback) -> None:
        if name in self._periodic:
            raise ValueError(f"Captura periódica ya registrada: {name}")
        self._periodic[name] = callback

    def periodic(self, name: str) -> PeriodicCallback | None:
        return self._periodic.get(name)


def build_default_registry(
    *,
    engine: CoalescingEngine,
    audit_logger: AuditLogger,
    activity_tracker: ActivityTracker,
    loaders: SubjectLoaderRegistry | None = None,
) -> HandlerRegistry:
    """Registro explícito de los handlers incluidos, en orden."""
    registry = HandlerRegistry()

    def on_subject_changed(n: SubjectChanged, operation: OperationContext) -> None:
        subject = n.subject.to_ref()
        after = n.after
        if after is None:
            after = loaders.load(subject) if loaders is not None else None
            if after is None:
                logger.warning(
                    "Sujeto sin estado actual; cambio descartado",
                    extra={"subject_type": subject.kind.value, "subject_id": subject.id},
                )
                return
        engine.record_changes(
            operation,
            n.classification,
            subject,
            n.before,
            after,
            origin=n.origin,
            actor=_actor_of(n),
        )

    def on_subject_snapshot(
        n: SubjectCreated | SubjectDeleted, operation: OperationContext
    ) -> None:
        audit_logger.log_event(
            n.classification,
            n.subject.to_ref(),
            metadata={k: engine.normalize(k, v) for k, v in n.attributes.items()},
            actor=_actor_of(n),
            operation=operation,
        )

    def on_actor_active(n: ActorActive, operation: OperationContext) -> None:
        activity_tracker.record_activity(n.actor.to_actor(), now=n.occurred_at)

    def on_event_logged(n: EventLogged, operation: OperationContext) -> None:
        audit_logger.log_event(
            n.classification,
            n.subject.to_ref() if n.subject else None,
            metadata=n.metadata,
            properties=[p.to_property() for p in n.properties],
            actor=_actor_of(n),
            all_actors=n.all_actors,
            operation=operation,
        )

    registry.register(SubjectChanged, on_subject_changed)
    registry.register(SubjectCreated, on_subject_snapshot)
    registry.register(SubjectDeleted, on_subject_snapshot)
    registry.register(ActorActive, on_actor_active)
    registry.register(EventLogged, on_event_logged)
    return registry


def _actor_of(notification: _Notification) -> Actor | None:
    return notification.actor.to_actor() if notification.actor else None


# =============================================================================
# Procesamiento
# =============================================================================
class DeferredProcessor:
    def __init__(self, registry: HandlerRegistry, repository: EventRepository) -> None:
        self._registry = registry
        self._repository = repository

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def process(self, message: DeferredMessage | str) -> str:
        """Corre una unidad diferida. Nunca lanza: devuelve el status."""
        start = time.perf_counter()
        status = self._process(message)
        record_deferred_processed(status)
        observe_deferred_duration(time.perf_counter() - start)
        return status

    def _process(self, message: DeferredMessage | str) -> str:
        if isinstance(message, str):
            try:
                message = DeferredMessage.model_validate_json(message)
            except ValidationError as exc:
                logger.warning(
                    "Mensaje diferido ilegible; descartado",
                    extra={"errors": exc.error_count()},
                )
                return INVALID

        extra = {
            "message_name": message.name,
            "operation_id": message.operation_id,
            "sequence": message.sequence,
        }
        if not message.name.startswith(DEFERRED_PREFIX):
            logger.warning("Mensaje diferido sin prefijo; descartado", extra=extra)
            return INVALID
        if message.kind not in NOTIFICATION_TYPES:
            logger.warning("Tipo de notificación desconocido; descartado", extra=extra)
            return UNKNOWN_KIND

        try:
            notification = parse_notification(message.payload)
        except ValidationError as exc:
            logger.warning(
                "Snapshot ilegible; descartado",
                extra={**extra, "errors": exc.error_count()},
            )
            return INVALID
        if notification.kind != message.kind:
            logger.warning("Snapshot no coincide con el mensaje", extra=extra)
            return INVALID

        handler = self._registry.handler_for(notification)
        if handler is None:
            logger.warning("Sin handler para la notificación", extra=extra)
            return UNKNOWN_KIND

        operation = OperationContext(self._repository, operation_id=message.operation_id)
        with operation_scope(message.operation_id):
            try:
                handler(notification, operation)
                report = operation.flush()
            except Exception:
                logger.exception("Unidad diferida falló; descartada", extra=extra)
                return FAILED

            logger.info(
                "Unidad diferida procesada",
                extra={**extra, "saved": report.saved, "deleted": report.deleted},
            )
        return OK
