"""
Name: In-Memory Deferred Queue Tests

Responsibilities:
  - Validate dependency gating (a job runs once its predecessor ended)
  - Validate that a failed unit releases its dependents
  - Validate auxiliary scheduling and lookup helpers
"""

from datetime import datetime, timedelta, timezone

import pytest

from logify.application.deferred import DeferredMessage
from logify.infrastructure.queue import (
    CLEANUP_EVENTS_JOB_PATH,
    PROCESS_DEFERRED_JOB_PATH,
    InMemoryDeferredQueue,
)
from logify.infrastructure.queue.in_memory import FAILED, FINISHED, QUEUED

pytestmark = pytest.mark.unit


def _message(sequence: int, operation_id: str = "op-1") -> DeferredMessage:
    return DeferredMessage(
        name="deferred.actor_active",
        operation_id=operation_id,
        sequence=sequence,
        captured_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        payload="{}",
    )


def test_enqueue_serializes_message_for_the_deferred_job():
    queue = InMemoryDeferredQueue()
    job_id = queue.enqueue(_message(1))

    job = queue.get(job_id)
    assert job.job_path == PROCESS_DEFERRED_JOB_PATH
    assert DeferredMessage.model_validate_json(job.args[0]) == _message(1)
    assert job.status == QUEUED


def test_dependent_job_waits_for_its_predecessor():
    queue = InMemoryDeferredQueue()
    first = queue.enqueue(_message(1))
    second = queue.enqueue(_message(2), depends_on=first)

    assert [job.id for job in queue.runnable()] == [first]

    queue.get(first).status = FINISHED
    assert [job.id for job in queue.runnable()] == [second]


def test_run_executes_in_chain_order_and_survives_failures():
    queue = InMemoryDeferredQueue()
    first = queue.enqueue(_message(1))
    second = queue.enqueue(_message(2), depends_on=first)
    queue.enqueue(_message(3), depends_on=second)

    def processor(message: DeferredMessage) -> None:
        if message.sequence == 1:
            raise RuntimeError("boom")

    executed = queue.run(processor)

    assert [m.sequence for m in executed] == [1, 2, 3]
    assert queue.get(first).status == FAILED
    assert queue.get(second).status == FINISHED
    assert queue.runnable() == []


def test_unknown_dependency_does_not_block():
    queue = InMemoryDeferredQueue()
    job_id = queue.enqueue(_message(1), depends_on="job-gone")
    assert [job.id for job in queue.runnable()] == [job_id]


def test_scheduled_jobs_are_kept_apart_from_deferred_units():
    queue = InMemoryDeferredQueue()
    queue.enqueue(_message(1))
    job_id = queue.schedule(
        CLEANUP_EVENTS_JOB_PATH, args=(86400,), delay=timedelta(days=1)
    )

    scheduled = queue.scheduled(CLEANUP_EVENTS_JOB_PATH)
    assert [job.id for job in scheduled] == [job_id]
    assert scheduled[0].delay == timedelta(days=1)
    assert len(queue.runnable()) == 1
    assert queue.scheduled("logify.worker.jobs.other") == []


def test_clear_drops_everything():
    queue = InMemoryDeferredQueue()
    queue.enqueue(_message(1))
    queue.schedule(CLEANUP_EVENTS_JOB_PATH)
    queue.clear()

    assert queue.runnable() == []
    assert queue.scheduled() == []
