"""
===============================================================================
SUBSISTEMA: Infraestructura / Queue
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Rutas y Constantes de Jobs

Responsabilidades:
    - Centralizar el nombre de la cola y las rutas importables de los jobs.

Colaboradores:
    - rq_queue.RQDeferredQueue
    - worker.jobs (funciones ejecutadas por el worker)

Notas:
    - Si se mueve un job, se actualiza acá; RQDeferredQueue lo valida al iniciar.
===============================================================================
"""

from __future__ import annotations

DEFERRED_QUEUE_NAME: str = "logify-deferred"

# Unidad de trabajo diferida: recibe el DeferredMessage serializado.
PROCESS_DEFERRED_JOB_PATH: str = "logify.worker.jobs.process_deferred_job"

# Captura periódica que se re-agenda hasta cumplir su duración.
PERIODIC_CAPTURE_JOB_PATH: str = "logify.worker.jobs.periodic_capture_job"

# Limpieza por retención.
CLEANUP_EVENTS_JOB_PATH: str = "logify.worker.jobs.cleanup_events_job"

ALL_JOB_PATHS: tuple[str, ...] = (
    PROCESS_DEFERRED_JOB_PATH,
    PERIODIC_CAPTURE_JOB_PATH,
    CLEANUP_EVENTS_JOB_PATH,
)
