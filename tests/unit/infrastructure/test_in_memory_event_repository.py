"""
Name: In-Memory Event Repository Tests

Responsibilities:
  - Validate all-or-nothing saves across event / properties / metadata
  - Validate concurrent inserts on the same (classification, subject)
  - Validate concurrent updates of one stored event (no lost updates)
  - Validate the "no after" marker through the text codec
  - Validate listing, filters and id validation
"""

import threading
from datetime import timedelta

import pytest

from logify.crosscutting.exceptions import InvariantViolationError
from logify.domain.event import Event
from logify.domain.repositories import EventFilters

pytestmark = pytest.mark.unit


def _explode(*args, **kwargs):
    raise RuntimeError("disk full")


def _new(repo, admin, policy, rules, clock, classification="Settings Changed", subject=None, **props):
    event = Event.create(
        classification,
        subject,
        actor=admin,
        policy=policy,
        rules=rules,
        repository=repo,
        now=clock.now,
    )
    for key, (before, after) in props.items():
        event.set_property(key, None, before, after)
    return event


class TestAtomicity:
    def test_failed_child_write_leaves_no_rows(
        self, repo, admin, policy, rules, clock, monkeypatch
    ):
        event = _new(repo, admin, policy, rules, clock, title=("A", "B"))
        event.set_meta("post_type", "post")

        monkeypatch.setattr(repo, "_write_properties", _explode)
        assert event.save() is False
        assert event.is_new()
        assert repo.count() == 0

    def test_failed_update_keeps_previous_state(
        self, repo, admin, policy, rules, clock, monkeypatch
    ):
        event = _new(repo, admin, policy, rules, clock, title=("A", "B"))
        assert event.save()

        event.set_property("title", None, "A", "C")
        event.set_meta("extra", 1)
        monkeypatch.setattr(repo, "_write_eventmeta", _explode)
        assert event.save() is False

        stored = repo.load(event.id)
        assert stored.get_property("title").after == "B"
        assert not stored.has_meta("extra")

    def test_update_of_missing_event_fails(self, repo, admin, policy, rules, clock):
        event = _new(repo, admin, policy, rules, clock)
        event.id = 999
        assert event.save() is False

    def test_removed_children_are_deleted_on_update(
        self, repo, admin, policy, rules, clock
    ):
        event = _new(repo, admin, policy, rules, clock, a=(1, 2), b=(1, 2))
        event.set_meta("m", 1)
        assert event.save()

        event.remove_property("a")
        event.metadata.clear()
        assert event.save()

        stored = repo.load(event.id)
        assert list(stored.properties) == ["b"]
        assert stored.metadata == {}


class TestIdentity:
    def test_ids_are_assigned_after_commit(self, repo, admin, policy, rules, clock):
        event = _new(repo, admin, policy, rules, clock, title=("A", "B"))
        event.set_meta("m", "x")
        assert event.save()

        assert event.id == 1
        assert event.get_property("title").id is not None
        assert event.get_property("title").event_id == 1
        assert event.get_eventmeta("m").event_id == 1

    def test_loaded_event_is_bound_and_detached(self, repo, admin, policy, rules, clock):
        event = _new(repo, admin, policy, rules, clock, title=("A", "B"))
        event.save()
        loaded = repo.load(event.id)
        loaded.set_property("title", None, "A", "Z")

        assert loaded.repository is repo
        assert repo.load(event.id).get_property("title").after == "B"


class TestValueCodec:
    def test_no_after_and_real_none_survive_storage(
        self, repo, admin, policy, rules, clock
    ):
        event = _new(repo, admin, policy, rules, clock)
        event.set_property("shown", None, "kept")
        event.set_property("cleared", None, "text", None)
        event.set_meta("when", clock.now)
        event.save()

        stored = repo.load(event.id)
        assert not stored.get_property("shown").has_after
        cleared = stored.get_property("cleared")
        assert cleared.has_after and cleared.after is None
        assert stored.get_meta("when") == clock.now


class TestConcurrentInserts:
    def test_same_subject_inside_window_yields_one_event(
        self, repo, admin, policy, rules, clock, post
    ):
        first = _new(repo, admin, policy, rules, clock, "Post Updated", post, title=("A", "B"))
        second = _new(repo, admin, policy, rules, clock, "Post Updated", post, status=("draft", "publish"))
        barrier = threading.Barrier(2)
        results = []

        def worker(event):
            barrier.wait()
            results.append(event.save())

        threads = [threading.Thread(target=worker, args=(e,)) for e in (first, second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [True, True]
        assert repo.count() == 1
        stored = repo.list_events()[0]
        assert set(stored.properties) == {"title", "status"}
        assert first.id == second.id == stored.id

    def test_without_window_inserts_are_independent(
        self, repo, admin, policy, rules, clock, post
    ):
        for _ in range(2):
            assert _new(repo, admin, policy, rules, clock, "Post Deleted", post).save()
        assert repo.count() == 2


class TestConcurrentUpdates:
    def test_two_stale_copies_keep_both_edits(
        self, repo, admin, policy, rules, clock, post
    ):
        event = _new(repo, admin, policy, rules, clock, "Post Updated", post, title=("A", "B"))
        assert event.save()
        first, second = repo.load(event.id), repo.load(event.id)
        first.merge_property("status", None, "draft", "publish")
        second.merge_property("excerpt", None, "", "x")
        barrier = threading.Barrier(2)
        results = []

        def worker(copy):
            barrier.wait()
            results.append(copy.save())

        threads = [threading.Thread(target=worker, args=(c,)) for c in (first, second)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [True, True]
        stored = repo.load(event.id)
        assert set(stored.properties) == {"title", "status", "excerpt"}

    def test_saved_copy_reflects_merged_state(
        self, repo, admin, policy, rules, clock, post
    ):
        event = _new(repo, admin, policy, rules, clock, "Post Updated", post, title=("A", "B"))
        assert event.save()
        stale = repo.load(event.id)
        event.set_meta("revision", 2)
        assert event.save()

        stale.set_property("status", None, "draft", "publish")
        assert stale.save()
        assert set(stale.properties) == {"title", "status"}
        assert stale.get_meta("revision") == 2


class TestDeleteAndValidation:
    @pytest.mark.parametrize("bad_id", [0, -1, True, "1", None])
    def test_delete_rejects_invalid_ids(self, repo, bad_id):
        with pytest.raises(InvariantViolationError):
            repo.delete(bad_id)

    def test_save_rejects_wrong_type(self, repo):
        with pytest.raises(InvariantViolationError):
            repo.save("not an event")

    def test_delete_missing_returns_false(self, repo):
        assert repo.delete(12345) is False

    def test_delete_removes_children(self, repo, admin, policy, rules, clock):
        event = _new(repo, admin, policy, rules, clock, title=("A", "B"))
        event.save()
        assert repo.delete(event.id) is True
        assert repo.load(event.id) is None


class TestQueries:
    def _seed(self, repo, admin, other, policy, rules, clock, post):
        for i in range(3):
            clock.advance(60)
            _new(repo, admin, policy, rules, clock, f"Event {i}").save()
        clock.advance(60)
        _new(repo, other, policy, rules, clock, "Post Deleted", post).save()

    @pytest.fixture
    def other_admin(self):
        from logify.domain.actors import Actor

        return Actor(id="5", name="carol", roles=("editor",))

    def test_listing_is_newest_first_with_pagination(
        self, repo, admin, other_admin, policy, rules, clock, post
    ):
        self._seed(repo, admin, other_admin, policy, rules, clock, post)
        page = repo.list_events(limit=2, offset=1)
        assert [e.classification for e in page] == ["Event 2", "Event 1"]

    def test_filters(self, repo, admin, other_admin, policy, rules, clock, post):
        self._seed(repo, admin, other_admin, policy, rules, clock, post)
        assert len(repo.list_events(EventFilters(actor_id="5"))) == 1
        assert len(repo.list_events(EventFilters(subject_type="content", subject_id="42"))) == 1
        assert len(repo.list_events(EventFilters(classification="Event 0"))) == 1
        window = EventFilters(
            start_at=clock.now - timedelta(seconds=90), end_at=clock.now
        )
        assert len(repo.list_events(window)) == 2

    def test_facets(self, repo, admin, other_admin, policy, rules, clock, post):
        start = clock.now
        self._seed(repo, admin, other_admin, policy, rules, clock, post)
        assert repo.get_classifications() == ["Event 0", "Event 1", "Event 2", "Post Deleted"]
        assert repo.get_earliest_date() == start + timedelta(seconds=60)
        assert repo.get_latest_date() == clock.now

    def test_find_most_recent_by_actor(self, repo, admin, other_admin, policy, rules, clock, post):
        self._seed(repo, admin, other_admin, policy, rules, clock, post)
        assert repo.find_most_recent("Post Deleted", actor_id="1") is None
        assert repo.find_most_recent("Post Deleted", subject=post).actor_id == "5"

    def test_exact_subject_lookup_separates_subjectless_events(
        self, repo, admin, policy, rules, clock, post
    ):
        _new(repo, admin, policy, rules, clock, "Settings Changed", post).save()
        clock.advance(1)
        _new(repo, admin, policy, rules, clock, "Settings Changed").save()

        same = repo.find_most_recent("Settings Changed", subject=post, exact_subject=True)
        assert same.subject_id == "42"
        subjectless = repo.find_most_recent("Settings Changed", exact_subject=True)
        assert subjectless.subject_type is None

        clock.advance(1)
        _new(repo, admin, policy, rules, clock, "Settings Changed", post).save()
        assert repo.find_most_recent("Settings Changed", exact_subject=True).subject_type is None
        assert repo.find_most_recent("Settings Changed").subject_type == "content"

    def test_zero_limit_returns_nothing(self, repo):
        assert repo.list_events(limit=0) == []
