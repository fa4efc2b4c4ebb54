"""
===============================================================================
SUBSISTEMA: Infraestructura / Queue
===============================================================================

CRC CARD (Package)
-------------------------------------------------------------------------------
Nombre:
    infrastructure.queue

Responsabilidades:
    - Exponer los adaptadores de la cola diferida (RQ y in-memory).
    - Exponer configuración, rutas de jobs y errores tipados.
===============================================================================
"""

from .errors import QueueConfigurationError, QueueEnqueueError, QueueError
from .in_memory import InMemoryDeferredQueue, QueuedJob
from .job_paths import (
    CLEANUP_EVENTS_JOB_PATH,
    DEFERRED_QUEUE_NAME,
    PERIODIC_CAPTURE_JOB_PATH,
    PROCESS_DEFERRED_JOB_PATH,
)
from .rq_queue import RQDeferredQueue, RQQueueConfig

__all__ = [
    "CLEANUP_EVENTS_JOB_PATH",
    "DEFERRED_QUEUE_NAME",
    "InMemoryDeferredQueue",
    "PERIODIC_CAPTURE_JOB_PATH",
    "PROCESS_DEFERRED_JOB_PATH",
    "QueueConfigurationError",
    "QueueEnqueueError",
    "QueueError",
    "QueuedJob",
    "RQDeferredQueue",
    "RQQueueConfig",
]
