"""
===============================================================================
TARJETA CRC — worker/jobs.py (Jobs RQ)
===============================================================================

Responsabilidades:
  - Entry points ejecutados por RQ: unidad diferida, captura periódica,
    limpieza por retención.
  - Setear contexto de logs (job_id / operation_id) y limpiarlo al final.
  - Nunca relanzar desde la unidad diferida: la cola no reintenta y una falla
    de auditoría se descarta.

Colaboradores:
  - application.deferred.DeferredProcessor
  - application.retention.purge_expired_events
  - container.get_* (repositorio, registry, cola)
  - context (set_job_context, clear_context)
===============================================================================
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from rq import get_current_job

from ..application.retention import purge_expired_events
from ..container import (
    get_deferred_processor,
    get_deferred_queue,
    get_event_repository,
    get_handler_registry,
    get_retention_policy,
)
from ..context import clear_context, set_job_context
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..infrastructure.queue.job_paths import (
    CLEANUP_EVENTS_JOB_PATH,
    PERIODIC_CAPTURE_JOB_PATH,
)

STOPPED = "stopped"
RESCHEDULED = "rescheduled"


def _current_job_id() -> str:
    job = get_current_job()
    return str(getattr(job, "id", "") or "")


def process_deferred_job(message_json: str) -> str:
    """
    Job RQ: procesa una unidad diferida.

    Contrato:
      - message_json es el DeferredMessage serializado al capturar.
      - Devuelve el status de DeferredProcessor; nunca lanza.
    """
    job_id = _current_job_id()
    set_job_context(job_id=job_id)
    try:
        status = get_deferred_processor().process(message_json)
        logger.info(
            "Worker job finalizado", extra={"job_id": job_id, "status": status}
        )
        return status
    finally:
        clear_context()


def periodic_capture_job(name: str, started_at: str, duration_seconds: int) -> str:
    """
    Job RQ: corre la captura periódica `name` y se re-agenda hasta que
    now - started_at supera duration_seconds.
    """
    job_id = _current_job_id()
    set_job_context(job_id=job_id)
    try:
        callback = get_handler_registry().periodic(name)
        if callback is None:
            logger.warning(
                "Captura periódica desconocida; se detiene", extra={"name": name}
            )
            return STOPPED

        elapsed = datetime.now(timezone.utc) - datetime.fromisoformat(started_at)
        if elapsed.total_seconds() > duration_seconds:
            logger.info(
                "Captura periódica finalizada",
                extra={"name": name, "elapsed_seconds": int(elapsed.total_seconds())},
            )
            return STOPPED

        try:
            callback()
        except Exception:
            logger.exception("Captura periódica falló", extra={"name": name})

        _reschedule(
            PERIODIC_CAPTURE_JOB_PATH,
            args=(name, started_at, duration_seconds),
            delay=timedelta(seconds=get_settings().periodic_capture_interval_seconds),
        )
        return RESCHEDULED
    finally:
        clear_context()


def start_periodic_capture(
    name: str, *, duration: timedelta, now: datetime | None = None
) -> str:
    """Agenda la primera corrida de una captura periódica registrada."""
    started_at = (now or datetime.now(timezone.utc)).isoformat()
    queue = get_deferred_queue()
    if queue is None:
        raise RuntimeError("Cola diferida no configurada")
    return queue.schedule(
        PERIODIC_CAPTURE_JOB_PATH,
        args=(name, started_at, int(duration.total_seconds())),
    )


def cleanup_events_job(reschedule_seconds: int = 0) -> int:
    """
    Job RQ: borra eventos fuera del período de retención.

    Con reschedule_seconds > 0 se vuelve a agendar (p. ej. 86400 = diario).
    """
    job_id = _current_job_id()
    set_job_context(job_id=job_id)
    try:
        deleted = purge_expired_events(get_event_repository(), get_retention_policy())
        if reschedule_seconds > 0:
            _reschedule(
                CLEANUP_EVENTS_JOB_PATH,
                args=(reschedule_seconds,),
                delay=timedelta(seconds=reschedule_seconds),
            )
        return deleted
    except Exception as exc:
        logger.exception(
            "Limpieza por retención falló", extra={"job_id": job_id, "error": str(exc)}
        )
        raise
    finally:
        clear_context()


def _reschedule(job_path: str, *, args: tuple, delay: timedelta) -> None:
    queue = get_deferred_queue()
    if queue is None:
        logger.warning("Cola diferida no configurada; no se re-agenda", extra={"job_path": job_path})
        return
    queue.schedule(job_path, args=args, delay=delay)


__all__ = [
    "cleanup_events_job",
    "periodic_capture_job",
    "process_deferred_job",
    "start_periodic_capture",
]
