"""
===============================================================================
ARCHIVO: infrastructure/queue/rq_queue.py
===============================================================================

CRC CARD (Class)
-------------------------------------------------------------------------------
Clase:
    RQDeferredQueue (Adapter)

Responsabilidades:
    - Implementar el puerto DeferredQueue con RQ.
    - Encolar cada unidad de trabajo diferida encadenada a la anterior de la
      misma operación (Dependency con allow_failure): FIFO por operación,
      operaciones distintas en paralelo.
    - Agendar jobs auxiliares (captura periódica, retención), con o sin delay.
    - Validar configuración y job paths en modo fail-fast.

Colaboradores:
    - application.deferred.DeferredMessage / DeferredQueue
    - job_paths.*
    - import_utils.is_importable_dotted_path
    - errors.QueueConfigurationError / QueueEnqueueError
    - crosscutting.logger / crosscutting.metrics

Patrones:
    - Adapter: traduce el puerto a RQ.
    - Fail-Fast: job paths importables antes de encolar.
    - Lazy Import: rq se importa al construir el adapter.

Notas:
    - Sin reintentos: una unidad fallida se descarta (best-effort).
    - En la cola viaja el mensaje como JSON (string), nunca objetos vivos.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from ...crosscutting.logger import logger
from ...crosscutting.metrics import record_deferred_enqueued
from .errors import QueueConfigurationError, QueueEnqueueError
from .import_utils import is_importable_dotted_path
from .job_paths import ALL_JOB_PATHS, DEFERRED_QUEUE_NAME, PROCESS_DEFERRED_JOB_PATH

if TYPE_CHECKING:
    from ...application.deferred import DeferredMessage


@dataclass(frozen=True)
class RQQueueConfig:
    """Configuración del adaptador RQ.

    queue_name:
        Nombre de la cola en Redis.
    job_timeout_seconds:
        Timeout máximo de ejecución de un job.
    result_ttl_seconds:
        Vida del resultado en Redis; debe cubrir el lapso hasta que RQ
        libera el job dependiente siguiente.
    """

    queue_name: str = DEFERRED_QUEUE_NAME
    job_timeout_seconds: int = 120
    result_ttl_seconds: int = 500


class RQDeferredQueue:
    """Adapter RQ de la cola diferida."""

    def __init__(self, *, redis: Any, config: RQQueueConfig) -> None:
        self._redis = redis
        self._config = _validate_config(config)

        for path in ALL_JOB_PATHS:
            if not is_importable_dotted_path(path):
                raise QueueConfigurationError(
                    f"Job path no importable para RQ: {path}. "
                    "Revisar `infrastructure/queue/job_paths.py` y `worker/jobs.py`."
                )

        self._rq = _lazy_import_rq()
        self._queue = self._rq.Queue(name=self._config.queue_name, connection=redis)

        logger.info(
            "RQ diferida inicializada",
            extra={
                "queue": self._config.queue_name,
                "job_timeout_seconds": self._config.job_timeout_seconds,
            },
        )

    @property
    def queue_name(self) -> str:
        return self._config.queue_name

    def enqueue(
        self, message: "DeferredMessage", *, depends_on: str | None = None
    ) -> str:
        """Encola la unidad de trabajo; `depends_on` es el job previo de la operación."""
        dependency = None
        if depends_on:
            dependency = self._rq.Dependency(jobs=[depends_on], allow_failure=True)

        try:
            job = self._queue.enqueue(
                PROCESS_DEFERRED_JOB_PATH,
                args=(message.model_dump_json(),),
                depends_on=dependency,
                job_timeout=self._config.job_timeout_seconds,
                result_ttl=self._config.result_ttl_seconds,
                description=f"{message.name}:{message.operation_id}#{message.sequence}",
            )
        except Exception as exc:
            logger.exception(
                "Error al encolar unidad diferida",
                extra={
                    "message_name": message.name,
                    "operation_id": message.operation_id,
                    "sequence": message.sequence,
                    "queue": self._config.queue_name,
                },
            )
            raise QueueEnqueueError(
                "No se pudo encolar la unidad diferida", original_error=exc
            ) from exc

        job_id = str(job.id)
        record_deferred_enqueued(message.name)
        logger.info(
            "Unidad diferida encolada",
            extra={
                "message_name": message.name,
                "operation_id": message.operation_id,
                "sequence": message.sequence,
                "job_id": job_id,
                "depends_on": depends_on,
            },
        )
        return job_id

    def schedule(
        self,
        job_path: str,
        *,
        args: tuple = (),
        delay: timedelta | None = None,
    ) -> str:
        """Agenda un job auxiliar; con `delay` usa el scheduler de RQ."""
        if job_path not in ALL_JOB_PATHS:
            raise QueueConfigurationError(f"Job path desconocido: {job_path}")

        options = {
            "job_timeout": self._config.job_timeout_seconds,
            "result_ttl": self._config.result_ttl_seconds,
        }
        try:
            if delay is not None and delay.total_seconds() > 0:
                job = self._queue.enqueue_in(delay, job_path, *args, **options)
            else:
                job = self._queue.enqueue(job_path, args=args, **options)
        except Exception as exc:
            logger.exception(
                "Error al agendar job",
                extra={"job_path": job_path, "queue": self._config.queue_name},
            )
            raise QueueEnqueueError(
                f"No se pudo agendar {job_path}", original_error=exc
            ) from exc

        logger.info(
            "Job agendado",
            extra={
                "job_path": job_path,
                "job_id": str(job.id),
                "delay_seconds": delay.total_seconds() if delay else 0,
            },
        )
        return str(job.id)


# -----------------------------------------------------------------------------
# Helpers privados (módulo)
# -----------------------------------------------------------------------------


def _validate_config(config: RQQueueConfig) -> RQQueueConfig:
    queue_name = (config.queue_name or "").strip() or DEFERRED_QUEUE_NAME
    job_timeout_seconds = int(config.job_timeout_seconds)
    result_ttl_seconds = int(config.result_ttl_seconds)

    if job_timeout_seconds <= 0:
        raise QueueConfigurationError("job_timeout_seconds debe ser > 0")
    if result_ttl_seconds < 0:
        raise QueueConfigurationError("result_ttl_seconds no puede ser negativo")

    return RQQueueConfig(
        queue_name=queue_name,
        job_timeout_seconds=job_timeout_seconds,
        result_ttl_seconds=result_ttl_seconds,
    )


def _lazy_import_rq():
    """Importa RQ al construir el adapter; el error queda acotado a la cola."""
    try:
        import rq

        _ = rq.Queue
        _ = rq.Dependency
        return rq
    except Exception as exc:
        raise QueueConfigurationError(
            "RQ no está disponible. Instalar dependencia 'rq' para usar colas."
        ) from exc
