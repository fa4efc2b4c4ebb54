"""
===============================================================================
TARJETA CRC — logify/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer repositorios, reglas, motor de coalescing, logger de auditoría,
    cola diferida y procesador, según Settings.
  - Exponer factories para FastAPI (Depends) y para el worker.
  - Singletons cacheados (lru_cache); OperationContext y DeferredCapture son
    por operación y se crean nuevos en cada llamada.

Colaboradores:
  - crosscutting.config.get_settings
  - domain.* (puertos, reglas, política)
  - infrastructure.* (adapters Postgres / in-memory / RQ)
  - application.* (servicios)

Notas:
  - app_env test/testing/ci => adapters in-memory.
  - Sin lógica de negocio ni dependencia de FastAPI.
===============================================================================
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from redis import Redis

from .application import (
    ActivityTracker,
    AuditLogger,
    CoalescingEngine,
    DeferredCapture,
    DeferredProcessor,
    HandlerRegistry,
    OperationContext,
    RetentionPolicy,
    build_default_registry,
)
from .application.deferred import DeferredQueue
from .crosscutting.config import get_settings
from .domain.actors import TrackingPolicy
from .domain.repositories import EventRepository, NoteRepository
from .domain.rules import ClassificationRules
from .domain.subjects import SubjectLoaderRegistry
from .infrastructure.queue import (
    InMemoryDeferredQueue,
    QueueConfigurationError,
    RQDeferredQueue,
    RQQueueConfig,
)
from .infrastructure.repositories import (
    InMemoryEventRepository,
    InMemoryNoteRepository,
    PostgresEventRepository,
    PostgresNoteRepository,
)

# =============================================================================
# Helpers internos
# =============================================================================


def _is_test_env() -> bool:
    return get_settings().is_test_env()


# =============================================================================
# Repositorios (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_event_repository() -> EventRepository:
    """Repositorio de eventos (in-memory en test; Postgres en runtime)."""
    if _is_test_env():
        return InMemoryEventRepository()
    return PostgresEventRepository()


@lru_cache(maxsize=1)
def get_note_repository() -> NoteRepository:
    if _is_test_env():
        return InMemoryNoteRepository()
    return PostgresNoteRepository()


# =============================================================================
# Política / reglas
# =============================================================================


@lru_cache(maxsize=1)
def get_tracking_policy() -> TrackingPolicy:
    return TrackingPolicy(tracked_roles=get_settings().get_tracked_roles())


@lru_cache(maxsize=1)
def get_classification_rules() -> ClassificationRules:
    settings = get_settings()
    return ClassificationRules.from_config(
        content_reuse_window_seconds=settings.content_reuse_window_seconds,
        reuse_windows=settings.get_reuse_windows(),
        creation_classifications=settings.get_creation_classifications(),
        intrinsic_keys=settings.get_intrinsic_keys(),
    )


@lru_cache(maxsize=1)
def get_subject_loaders() -> SubjectLoaderRegistry:
    """Loaders por kind; el host registra los suyos al iniciar."""
    return SubjectLoaderRegistry()


@lru_cache(maxsize=1)
def get_retention_policy() -> RetentionPolicy:
    settings = get_settings()
    return RetentionPolicy(
        quantity=settings.keep_period_quantity, units=settings.keep_period_units
    )


# =============================================================================
# Servicios de aplicación (singletons sin estado por operación)
# =============================================================================


@lru_cache(maxsize=1)
def get_coalescing_engine() -> CoalescingEngine:
    return CoalescingEngine(
        get_event_repository(),
        policy=get_tracking_policy(),
        rules=get_classification_rules(),
        local_tz=get_settings().get_local_timezone(),
    )


@lru_cache(maxsize=1)
def get_activity_tracker() -> ActivityTracker:
    return ActivityTracker(
        get_event_repository(),
        policy=get_tracking_policy(),
        rules=get_classification_rules(),
        window=timedelta(seconds=get_settings().activity_reuse_window_seconds),
    )


@lru_cache(maxsize=1)
def get_audit_logger() -> AuditLogger:
    return AuditLogger(
        get_event_repository(),
        policy=get_tracking_policy(),
        rules=get_classification_rules(),
    )


@lru_cache(maxsize=1)
def get_handler_registry() -> HandlerRegistry:
    return build_default_registry(
        engine=get_coalescing_engine(),
        audit_logger=get_audit_logger(),
        activity_tracker=get_activity_tracker(),
        loaders=get_subject_loaders(),
    )


@lru_cache(maxsize=1)
def get_deferred_processor() -> DeferredProcessor:
    return DeferredProcessor(get_handler_registry(), get_event_repository())


# =============================================================================
# Cola diferida
# =============================================================================


@lru_cache(maxsize=1)
def get_redis_connection() -> Redis | None:
    settings = get_settings()
    if not settings.redis_url.strip():
        return None
    return Redis.from_url(
        settings.redis_url,
        socket_connect_timeout=2,
        socket_timeout=5,
        health_check_interval=30,
    )


@lru_cache(maxsize=1)
def get_deferred_queue() -> DeferredQueue | None:
    """In-memory en test; RQ si hay REDIS_URL; None si no está configurada."""
    if _is_test_env():
        return InMemoryDeferredQueue()

    redis_conn = get_redis_connection()
    if redis_conn is None:
        return None

    settings = get_settings()
    return RQDeferredQueue(
        redis=redis_conn,
        config=RQQueueConfig(
            queue_name=settings.deferred_queue_name,
            job_timeout_seconds=settings.deferred_job_timeout_seconds,
            result_ttl_seconds=settings.deferred_result_ttl_seconds,
        ),
    )


# =============================================================================
# Por operación (nuevos en cada llamada)
# =============================================================================


def new_operation(operation_id: str | None = None) -> OperationContext:
    return OperationContext(get_event_repository(), operation_id=operation_id)


def new_deferred_capture(operation_id: str | None = None) -> DeferredCapture:
    queue = get_deferred_queue()
    if queue is None:
        raise QueueConfigurationError(
            "Cola diferida no configurada (REDIS_URL vacío)."
        )
    return DeferredCapture(queue, operation_id=operation_id)


def reset_container() -> None:
    """Limpia los singletons (tests)."""
    for factory in (
        get_event_repository,
        get_note_repository,
        get_tracking_policy,
        get_classification_rules,
        get_subject_loaders,
        get_retention_policy,
        get_coalescing_engine,
        get_activity_tracker,
        get_audit_logger,
        get_handler_registry,
        get_deferred_processor,
        get_redis_connection,
        get_deferred_queue,
    ):
        factory.cache_clear()
