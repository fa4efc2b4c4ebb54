"""
Name: Coalescing Engine Tests

Responsibilities:
  - Validate reuse inside the operation and inside the stored window
  - Validate pinned-before chains and changeless cleanup
  - Document the window boundary (edits inside the window merge)
"""

from unittest.mock import MagicMock

import pytest

from logify.application.coalescing import CoalescingEngine
from logify.application.operation import OperationContext
from logify.crosscutting.exceptions import DatabaseError

pytestmark = pytest.mark.unit


def _update(engine, operation, post, admin, before, after):
    return engine.record_changes(
        operation, "Post Updated", post, before, after, actor=admin
    )


class TestDiffing:
    def test_no_differences_creates_nothing(self, engine, operation, post, admin):
        assert _update(engine, operation, post, admin, {"a": "1"}, {"a": 1}) is None
        assert operation.events == ()

    def test_raw_values_are_normalized_before_diffing(
        self, engine, operation, post, admin
    ):
        event = _update(
            engine, operation, post, admin, {"count": "5", "title": "A"}, {"count": 5, "title": "B"}
        )
        assert list(event.properties) == ["title"]

    def test_missing_keys_count_as_none(self, engine, operation, post, admin):
        event = _update(engine, operation, post, admin, {}, {"excerpt": "new"})
        prop = event.get_property("excerpt")
        assert prop.before is None
        assert prop.after == "new"

    def test_unchanged_intrinsic_key_is_shown_without_after(
        self, engine, operation, post, admin
    ):
        event = _update(
            engine,
            operation,
            post,
            admin,
            {"post_title": "Hello", "status": "draft"},
            {"post_title": "Hello", "status": "publish"},
        )
        title = event.get_property("post_title")
        assert title.before == "Hello"
        assert not title.has_after
        assert event.get_property("status").is_changed()

    def test_explicit_keys_limit_the_diff(self, engine, operation, post, admin):
        event = engine.record_changes(
            operation,
            "Post Updated",
            post,
            {"a": 1, "b": 1},
            {"a": 2, "b": 2},
            actor=admin,
            keys=["b"],
        )
        assert list(event.properties) == ["b"]

    def test_untracked_actor_creates_nothing(self, engine, operation, post, subscriber):
        event = engine.record_changes(
            operation, "Post Updated", post, {"a": 1}, {"a": 2}, actor=subscriber
        )
        assert event is None
        assert operation.events == ()


class TestReuseInOperation:
    def test_pinned_before_across_notifications(self, engine, operation, post, admin):
        for before, after in (("v0", "v1"), ("v1", "v2"), ("v2", "v3")):
            event = _update(
                engine, operation, post, admin, {"title": before}, {"title": after}
            )
        assert len(operation.events) == 1
        prop = event.get_property("title")
        assert (prop.before, prop.after) == ("v0", "v3")

    def test_record_change_single_key(self, engine, operation, post, admin):
        engine.record_change(
            operation, "Post Updated", post, "color", "red", "blue", origin="meta", actor=admin
        )
        event = engine.record_change(
            operation, "Post Updated", post, "color", "blue", "green", actor=admin
        )
        prop = event.get_property("color")
        assert (prop.before, prop.after, prop.origin) == ("red", "green", "meta")


class TestReuseFromStore:
    def _store_first_edit(self, engine, repo, post, admin):
        first = OperationContext(repo)
        _update(engine, first, post, admin, {"title": "Draft"}, {"title": "Final"})
        first.flush()
        assert repo.count() == 1

    def test_edit_inside_window_merges_into_stored_event(
        self, engine, repo, clock, post, admin
    ):
        self._store_first_edit(engine, repo, post, admin)
        stored_at = repo.list_events()[0].occurred_at

        clock.advance(299)
        second = OperationContext(repo)
        _update(engine, second, post, admin, {"status": "draft"}, {"status": "publish"})
        second.flush()

        assert repo.count() == 1
        event = repo.list_events()[0]
        assert set(event.properties) == {"title", "status"}
        assert event.occurred_at == stored_at

    def test_edit_after_window_creates_new_event(self, engine, repo, clock, post, admin):
        self._store_first_edit(engine, repo, post, admin)

        clock.advance(301)
        second = OperationContext(repo)
        _update(engine, second, post, admin, {"status": "draft"}, {"status": "publish"})
        second.flush()

        assert repo.count() == 2

    def test_two_separate_edits_inside_window_are_merged(
        self, engine, repo, clock, post, admin
    ):
        # Tradeoff aceptado: dos ediciones distintas dentro de la ventana
        # quedan como un único evento.
        self._store_first_edit(engine, repo, post, admin)
        clock.advance(120)
        second = OperationContext(repo)
        _update(engine, second, post, admin, {"title": "Final"}, {"title": "Final 2"})
        second.flush()

        event = repo.list_events()[0]
        prop = event.get_property("title")
        assert repo.count() == 1
        assert (prop.before, prop.after) == ("Draft", "Final 2")

    def test_revert_inside_window_deletes_stored_event(
        self, engine, repo, clock, post, admin
    ):
        self._store_first_edit(engine, repo, post, admin)
        clock.advance(10)
        second = OperationContext(repo)
        _update(engine, second, post, admin, {"title": "Final"}, {"title": "Draft"})
        report = second.flush()

        assert report.deleted == 1
        assert repo.count() == 0

    def test_other_subject_is_not_reused(self, engine, repo, clock, post, admin):
        from logify.domain.subjects import SubjectKind, SubjectRef

        self._store_first_edit(engine, repo, post, admin)
        other = SubjectRef.of(SubjectKind.CONTENT, 43, "Other")
        second = OperationContext(repo)
        _update(engine, second, other, admin, {"title": "A"}, {"title": "B"})
        second.flush()
        assert repo.count() == 2

    def test_lookup_failure_falls_back_to_new_event(self, policy, rules, clock, post, admin):
        repository = MagicMock()
        repository.find_most_recent.side_effect = DatabaseError("down")
        engine = CoalescingEngine(repository, policy=policy, rules=rules, clock=clock)
        operation = OperationContext(repository)

        event = _update(engine, operation, post, admin, {"a": 1}, {"a": 2})
        assert event is not None
        assert event.is_new()


class TestSubjectlessEvents:
    def _setting(self):
        from logify.domain.subjects import SubjectKind, SubjectRef

        return SubjectRef.of(SubjectKind.SETTING, "blogname", "blogname")

    def test_subjectless_change_does_not_reuse_another_subject(
        self, engine, repo, clock, admin
    ):
        first = OperationContext(repo)
        engine.record_changes(
            first, "Settings Updated", self._setting(), {"v": 1}, {"v": 2}, actor=admin
        )
        first.flush()

        clock.advance(10)
        second = OperationContext(repo)
        event = engine.record_changes(
            second, "Settings Updated", None, {"w": 1}, {"w": 2}, actor=admin
        )
        second.flush()

        assert repo.count() == 2
        assert event.subject_type is None
        assert list(event.properties) == ["w"]
        stored = repo.find_most_recent("Settings Updated", subject=self._setting())
        assert list(stored.properties) == ["v"]

    def test_subjectless_changes_merge_with_each_other(self, engine, repo, clock, admin):
        for before, after in ((1, 2), (2, 3)):
            operation = OperationContext(repo)
            engine.record_changes(
                operation, "Settings Updated", None, {"w": before}, {"w": after}, actor=admin
            )
            operation.flush()
            clock.advance(10)

        assert repo.count() == 1
        prop = repo.list_events()[0].get_property("w")
        assert (prop.before, prop.after) == (1, 3)

    def test_lookup_result_for_other_subject_is_ignored(
        self, policy, rules, clock, admin, post
    ):
        from logify.domain.event import Event

        stored = Event.create(
            "Settings Updated", post, actor=admin, policy=policy, now=clock.now
        )
        stored.id = 9
        repository = MagicMock()
        repository.find_most_recent.return_value = stored
        engine = CoalescingEngine(repository, policy=policy, rules=rules, clock=clock)

        event = engine.event_for(
            OperationContext(repository), "Settings Updated", None, actor=admin
        )
        assert event is not stored
        assert event.is_new()
        repository.find_most_recent.assert_called_once_with(
            "Settings Updated", subject=None, exact_subject=True
        )


class TestInterleavedReuse:
    def _store_title_edit(self, engine, repo, post, admin):
        first = OperationContext(repo)
        _update(engine, first, post, admin, {"title": "A"}, {"title": "B"})
        first.flush()

    def test_two_operations_reusing_one_event_keep_both_changes(
        self, engine, repo, clock, post, admin
    ):
        self._store_title_edit(engine, repo, post, admin)
        clock.advance(10)

        op1 = OperationContext(repo)
        op2 = OperationContext(repo)
        _update(engine, op1, post, admin, {"status": "draft"}, {"status": "publish"})
        _update(engine, op2, post, admin, {"excerpt": ""}, {"excerpt": "x"})
        op1.flush()
        op2.flush()

        assert repo.count() == 1
        event = repo.list_events()[0]
        assert set(event.properties) == {"title", "status", "excerpt"}
        assert event.get_property("title").after == "B"

    def test_revert_does_not_delete_changes_of_another_operation(
        self, engine, repo, clock, post, admin
    ):
        self._store_title_edit(engine, repo, post, admin)
        clock.advance(10)

        op1 = OperationContext(repo)
        op2 = OperationContext(repo)
        _update(engine, op1, post, admin, {"status": "draft"}, {"status": "publish"})
        _update(engine, op2, post, admin, {"title": "B"}, {"title": "A"})
        op1.flush()
        report = op2.flush()

        assert report.deleted == 0
        assert repo.count() == 1
        assert set(repo.list_events()[0].properties) == {"status"}

    def test_same_key_from_two_operations_keeps_pinned_before(
        self, engine, repo, clock, post, admin
    ):
        self._store_title_edit(engine, repo, post, admin)
        clock.advance(10)

        op1 = OperationContext(repo)
        op2 = OperationContext(repo)
        _update(engine, op1, post, admin, {"title": "B"}, {"title": "C"})
        _update(engine, op2, post, admin, {"title": "B"}, {"title": "D"})
        op1.flush()
        op2.flush()

        prop = repo.list_events()[0].get_property("title")
        assert (prop.before, prop.after) == ("A", "D")
