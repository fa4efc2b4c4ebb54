# =============================================================================
# FILE: infrastructure/queue/in_memory.py
# =============================================================================
"""
In-Memory Deferred Queue for testing and development.

NOT FOR PRODUCTION USE - jobs live only in this process.

Replica la semántica de dependencias de RQ (Dependency allow_failure=True):
un job es ejecutable cuando no depende de nadie o su predecesor ya terminó,
con éxito o con error. `run(picker=...)` permite elegir el orden entre los
ejecutables para simular workers concurrentes.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, Sequence

from ...crosscutting.logger import logger
from ...crosscutting.metrics import record_deferred_enqueued
from .job_paths import PROCESS_DEFERRED_JOB_PATH

if TYPE_CHECKING:
    from ...application.deferred import DeferredMessage

QUEUED = "queued"
FINISHED = "finished"
FAILED = "failed"


@dataclass
class QueuedJob:
    id: str
    job_path: str
    args: tuple
    message: "DeferredMessage | None" = None
    depends_on: str | None = None
    delay: timedelta | None = None
    status: str = QUEUED


Picker = Callable[[Sequence[QueuedJob]], QueuedJob]


class InMemoryDeferredQueue:
    """In-memory implementation of DeferredQueue."""

    def __init__(self) -> None:
        self._jobs: dict[str, QueuedJob] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def enqueue(
        self, message: "DeferredMessage", *, depends_on: str | None = None
    ) -> str:
        with self._lock:
            job = QueuedJob(
                id=f"job-{next(self._ids)}",
                job_path=PROCESS_DEFERRED_JOB_PATH,
                args=(message.model_dump_json(),),
                message=message,
                depends_on=depends_on,
            )
            self._jobs[job.id] = job
        record_deferred_enqueued(message.name)
        return job.id

    def schedule(
        self,
        job_path: str,
        *,
        args: tuple = (),
        delay: timedelta | None = None,
    ) -> str:
        with self._lock:
            job = QueuedJob(
                id=f"job-{next(self._ids)}", job_path=job_path, args=args, delay=delay
            )
            self._jobs[job.id] = job
        return job.id

    # -------------------------------------------------------------------------
    # Ejecución (tests / desarrollo)
    # -------------------------------------------------------------------------
    def runnable(self) -> list[QueuedJob]:
        """Unidades diferidas listas para correr, en orden de encolado."""
        with self._lock:
            return [
                job
                for job in self._jobs.values()
                if job.status == QUEUED
                and job.message is not None
                and self._dependency_met(job)
            ]

    def run(
        self,
        processor: Callable[["DeferredMessage"], Any],
        *,
        picker: Picker | None = None,
    ) -> list["DeferredMessage"]:
        """Ejecuta hasta vaciar la cola; devuelve los mensajes en orden de ejecución."""
        executed: list["DeferredMessage"] = []
        while True:
            ready = self.runnable()
            if not ready:
                return executed
            job = picker(ready) if picker else ready[0]
            try:
                processor(job.message)
                job.status = FINISHED
            except Exception:
                logger.exception(
                    "InMemoryDeferredQueue: unidad diferida falló",
                    extra={"job_id": job.id},
                )
                job.status = FAILED
            executed.append(job.message)

    def scheduled(self, job_path: str | None = None) -> list[QueuedJob]:
        """Jobs auxiliares agendados (sin mensaje diferido)."""
        with self._lock:
            return [
                job
                for job in self._jobs.values()
                if job.message is None and (job_path is None or job.job_path == job_path)
            ]

    def get(self, job_id: str) -> QueuedJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _dependency_met(self, job: QueuedJob) -> bool:
        if job.depends_on is None:
            return True
        parent = self._jobs.get(job.depends_on)
        return parent is None or parent.status in (FINISHED, FAILED)
