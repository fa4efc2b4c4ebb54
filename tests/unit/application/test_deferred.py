"""
Name: Deferred Execution Tests

Responsibilities:
  - Validate snapshot capture and per-operation chaining
  - Validate processor statuses (ok / invalid / unknown_kind / failed)
  - Validate FIFO per operation under interleaved execution
  - End-to-end "Post Updated" scenario through the queue
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from logify.application.deferred import (
    FAILED,
    INVALID,
    OK,
    UNKNOWN_KIND,
    ActorActive,
    ActorSnapshot,
    DeferredCapture,
    DeferredMessage,
    DeferredProcessor,
    EventLogged,
    HandlerRegistry,
    PropertySnapshot,
    SubjectChanged,
    SubjectCreated,
    SubjectDeleted,
    SubjectSnapshot,
    build_default_registry,
)
from logify.domain.properties import Property
from logify.domain.subjects import SubjectKind, SubjectLoaderRegistry
from logify.infrastructure.queue import InMemoryDeferredQueue

pytestmark = pytest.mark.unit


@pytest.fixture
def loaders() -> SubjectLoaderRegistry:
    return SubjectLoaderRegistry()


@pytest.fixture
def registry(engine, audit_logger, activity_tracker, loaders) -> HandlerRegistry:
    return build_default_registry(
        engine=engine,
        audit_logger=audit_logger,
        activity_tracker=activity_tracker,
        loaders=loaders,
    )


@pytest.fixture
def processor(registry, repo) -> DeferredProcessor:
    return DeferredProcessor(registry, repo)


@pytest.fixture
def queue() -> InMemoryDeferredQueue:
    return InMemoryDeferredQueue()


def _changed(admin, post, before, after, **kwargs) -> SubjectChanged:
    return SubjectChanged(
        classification="Post Updated",
        subject=SubjectSnapshot.from_ref(post),
        before=before,
        after=after,
        actor=ActorSnapshot.from_actor(admin),
        **kwargs,
    )


def _message(name: str, payload: str, sequence: int = 1) -> DeferredMessage:
    return DeferredMessage(
        name=name,
        operation_id="op-1",
        sequence=sequence,
        captured_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        payload=payload,
    )


class TestCapture:
    def test_messages_are_numbered_and_chained(self, queue, admin, post):
        capture = DeferredCapture(queue, operation_id="op-1")
        first = capture.capture(_changed(admin, post, {"a": 1}, {"a": 2}))
        second = capture.capture(_changed(admin, post, {"a": 2}, {"a": 3}))

        job1, job2 = queue.get(first), queue.get(second)
        assert job1.depends_on is None
        assert job2.depends_on == first
        assert job1.message.name == "deferred.subject_changed"
        assert job1.message.kind == "subject_changed"
        assert (job1.message.sequence, job2.message.sequence) == (1, 2)
        assert job2.message.operation_id == "op-1"

    def test_enqueue_failure_is_swallowed_and_chain_continues(self, admin, post):
        queue = MagicMock()
        queue.enqueue.side_effect = ["job-1", RuntimeError("redis down"), "job-3"]
        capture = DeferredCapture(queue)

        assert capture.capture(_changed(admin, post, {"a": 1}, {"a": 2})) == "job-1"
        assert capture.capture(_changed(admin, post, {"a": 2}, {"a": 3})) is None
        assert capture.capture(_changed(admin, post, {"a": 3}, {"a": 4})) == "job-3"
        assert queue.enqueue.call_args.kwargs["depends_on"] == "job-1"

    def test_snapshot_is_immutable(self, admin, post):
        notification = _changed(admin, post, {"a": 1}, {"a": 2})
        with pytest.raises(Exception):
            notification.classification = "Other"


class TestProcessorStatuses:
    def test_unparseable_message_is_invalid(self, processor):
        assert processor.process("not json") == INVALID

    def test_missing_prefix_is_invalid(self, processor):
        assert processor.process(_message("subject_changed", "{}")) == INVALID

    def test_unknown_kind(self, processor):
        assert processor.process(_message("deferred.mystery", "{}")) == UNKNOWN_KIND

    def test_payload_that_does_not_validate_is_invalid(self, processor):
        message = _message("deferred.subject_changed", '{"kind": "subject_changed"}')
        assert processor.process(message) == INVALID

    def test_payload_kind_mismatch_is_invalid(self, processor, admin):
        payload = ActorActive(
            actor=ActorSnapshot.from_actor(admin),
            occurred_at="2025-01-01T00:00:00+00:00",
        ).model_dump_json()
        assert processor.process(_message("deferred.subject_changed", payload)) == INVALID

    def test_handler_failure_is_reported_and_nothing_saved(self, repo, admin, post):
        registry = HandlerRegistry()

        def boom(notification, operation):
            raise RuntimeError("handler bug")

        registry.register(SubjectChanged, boom)
        processor = DeferredProcessor(registry, repo)
        payload = _changed(admin, post, {"a": 1}, {"a": 2}).model_dump_json()

        assert processor.process(_message("deferred.subject_changed", payload)) == FAILED
        assert repo.count() == 0

    def test_unregistered_type_is_unknown_kind(self, repo, admin, post):
        processor = DeferredProcessor(HandlerRegistry(), repo)
        payload = _changed(admin, post, {"a": 1}, {"a": 2}).model_dump_json()
        assert processor.process(_message("deferred.subject_changed", payload)) == UNKNOWN_KIND

    def test_message_json_is_accepted(self, processor, repo, admin, post):
        payload = _changed(admin, post, {"a": 1}, {"a": 2}).model_dump_json()
        raw = _message("deferred.subject_changed", payload).model_dump_json()
        assert processor.process(raw) == OK
        assert repo.count() == 1


class TestRegistry:
    def test_duplicate_registration_raises(self):
        registry = HandlerRegistry()
        registry.register(SubjectChanged, lambda n, op: None)
        with pytest.raises(ValueError):
            registry.register(SubjectChanged, lambda n, op: None)

    def test_periodic_callbacks(self):
        registry = HandlerRegistry()
        callback = MagicMock()
        registry.register_periodic("error-log", callback)
        assert registry.periodic("error-log") is callback
        assert registry.periodic("missing") is None
        with pytest.raises(ValueError):
            registry.register_periodic("error-log", callback)


class TestHandlers:
    def test_subject_created_logs_metadata_event(self, queue, processor, repo, admin, post):
        capture = DeferredCapture(queue)
        capture.capture(
            SubjectCreated(
                classification="Post Created",
                subject=SubjectSnapshot.from_ref(post),
                attributes={"post_type": "post", "menu_order": "3"},
                actor=ActorSnapshot.from_actor(admin),
            )
        )
        queue.run(processor.process)

        event = repo.list_events()[0]
        assert event.classification == "Post Created"
        assert event.get_meta("menu_order") == 3

    def test_subject_deleted_keeps_subject_name(self, queue, processor, repo, admin, post):
        DeferredCapture(queue).capture(
            SubjectDeleted(
                classification="Post Deleted",
                subject=SubjectSnapshot.from_ref(post),
                actor=ActorSnapshot.from_actor(admin),
            )
        )
        queue.run(processor.process)
        assert repo.list_events()[0].subject_name == "Hello World"

    def test_changed_without_after_reads_current_state(
        self, queue, processor, repo, loaders, admin, post
    ):
        loader = MagicMock()
        loader.load.return_value = {"title": "Live"}
        loaders.register(SubjectKind.CONTENT, loader)

        DeferredCapture(queue).capture(_changed(admin, post, {"title": "Old"}, None))
        queue.run(processor.process)

        loader.load.assert_called_once_with("42")
        prop = repo.list_events()[0].get_property("title")
        assert (prop.before, prop.after) == ("Old", "Live")

    def test_changed_without_after_and_no_loader_is_dropped(
        self, queue, processor, repo, admin, post
    ):
        DeferredCapture(queue).capture(_changed(admin, post, {"title": "Old"}, None))
        queue.run(processor.process)
        assert repo.count() == 0

    def test_actor_active(self, queue, processor, repo, admin, clock):
        DeferredCapture(queue).capture(
            ActorActive(actor=ActorSnapshot.from_actor(admin), occurred_at=clock.now)
        )
        queue.run(processor.process)
        assert repo.list_events()[0].classification == "Actor Active"

    def test_event_logged_keeps_no_after_marker(self, queue, processor, repo, admin):
        DeferredCapture(queue).capture(
            EventLogged(
                classification="Settings Changed",
                properties=[
                    PropertySnapshot.from_property(Property(key="blogname", before="A")),
                    PropertySnapshot.from_property(
                        Property(key="tagline", before="x", after=None)
                    ),
                ],
                actor=ActorSnapshot.from_actor(admin),
            )
        )
        queue.run(processor.process)

        event = repo.list_events()[0]
        assert not event.get_property("blogname").has_after
        tagline = event.get_property("tagline")
        assert tagline.has_after and tagline.after is None


class TestOrdering:
    def test_fifo_per_operation_with_interleaving(self, queue, admin, post):
        a = DeferredCapture(queue, operation_id="A")
        b = DeferredCapture(queue, operation_id="B")
        for i in range(3):
            a.capture(_changed(admin, post, {"n": i}, {"n": i + 1}))
            b.capture(_changed(admin, post, {"n": i}, {"n": i + 1}))

        # Simula workers que siempre toman el job listo más nuevo.
        executed = queue.run(lambda message: None, picker=lambda ready: ready[-1])

        assert len(executed) == 6
        for op in ("A", "B"):
            sequences = [m.sequence for m in executed if m.operation_id == op]
            assert sequences == [1, 2, 3]

    def test_failed_unit_does_not_block_the_next(self, queue, admin, post):
        capture = DeferredCapture(queue, operation_id="A")
        capture.capture(_changed(admin, post, {"n": 0}, {"n": 1}))
        capture.capture(_changed(admin, post, {"n": 1}, {"n": 2}))

        def processor(message):
            if message.sequence == 1:
                raise RuntimeError("boom")

        executed = queue.run(processor)
        assert [m.sequence for m in executed] == [1, 2]


class TestEndToEnd:
    def test_post_update_becomes_one_event(
        self, queue, processor, repo, clock, admin, post
    ):
        capture = DeferredCapture(queue, operation_id="request-1")
        capture.capture(
            _changed(
                admin,
                post,
                {"post_title": "Draft", "status": "draft"},
                {"post_title": "Final", "status": "draft"},
            )
        )
        capture.capture(
            _changed(
                admin,
                post,
                {"post_title": "Final", "status": "draft"},
                {"post_title": "Final", "status": "publish"},
            )
        )
        statuses = []
        queue.run(lambda message: statuses.append(processor.process(message)))

        assert statuses == [OK, OK]
        assert repo.count() == 1
        event = repo.list_events()[0]
        title = event.get_property("post_title")
        status = event.get_property("status")
        assert (title.before, title.after) == ("Draft", "Final")
        assert (status.before, status.after) == ("draft", "publish")
        assert event.actor_name == "alice"

    def test_burst_outside_window_produces_two_events(
        self, queue, processor, repo, clock, admin, post
    ):
        capture = DeferredCapture(queue)
        capture.capture(_changed(admin, post, {"title": "A"}, {"title": "B"}))
        queue.run(processor.process)
        clock.advance(timedelta(minutes=6).total_seconds())
        capture.capture(_changed(admin, post, {"title": "B"}, {"title": "C"}))
        queue.run(processor.process)

        assert repo.count() == 2
