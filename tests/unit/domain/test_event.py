"""
Name: Event Aggregate Tests

Responsibilities:
  - Validate the tracking policy gate in Event.create
  - Validate rule lookup copied onto the event
  - Validate metadata / property helpers and persistence delegation
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from logify.crosscutting.exceptions import InvariantViolationError
from logify.domain.actors import Actor, StaticActorProvider
from logify.domain.event import Event
from logify.domain.properties import Property
from logify.domain.rules import ClassificationRules
from logify.domain.subjects import SubjectKind, SubjectRef

pytestmark = pytest.mark.unit


class TestCreatePolicy:
    def test_tracked_actor_creates_event(self, admin, policy, post):
        event = Event.create("Post Updated", post, actor=admin, policy=policy)
        assert event is not None
        assert event.actor_id == "1"
        assert event.actor_role == "administrator"
        assert event.actor_ip == "10.0.0.1"
        assert event.subject_type == "content"
        assert event.subject_id == "42"
        assert event.subject_name == "Hello World"
        assert event.is_new()

    def test_untracked_role_is_rejected(self, subscriber, policy, post):
        assert Event.create("Post Updated", post, actor=subscriber, policy=policy) is None

    def test_policy_allows_exempts_all_actors(self, admin, subscriber, policy):
        assert policy.allows(admin)
        assert not policy.allows(subscriber)
        assert policy.allows(subscriber, all_actors=True)

    def test_no_actor_is_rejected(self, policy):
        assert Event.create("Login Failed", policy=policy) is None

    def test_all_actors_without_actor_uses_anonymous(self, policy):
        event = Event.create("Login Failed", all_actors=True, policy=policy)
        assert event is not None
        assert event.actor_id is None
        assert event.actor_name == "Unknown"
        assert event.actor_role == "none"

    def test_all_actors_bypasses_role_check(self, subscriber, policy):
        event = Event.create(
            "Login Failed", actor=subscriber, all_actors=True, policy=policy
        )
        assert event is not None
        assert event.actor_role == "subscriber"

    def test_actor_is_resolved_from_provider(self, admin, policy):
        event = Event.create(
            "Settings Changed",
            policy=policy,
            actor_provider=StaticActorProvider(admin),
        )
        assert event.actor_name == "alice"

    @pytest.mark.parametrize("classification", ["", "   "])
    def test_empty_classification_raises(self, classification, admin, policy):
        with pytest.raises(InvariantViolationError):
            Event.create(classification, actor=admin, policy=policy)

    def test_actor_without_roles_reports_none(self):
        assert Actor(id="9").role == "none"
        assert Actor(id="9", roles=("editor", "author")).role == "editor, author"


class TestRules:
    def test_updated_classification_uses_content_window(self, admin, policy, rules):
        event = Event.create("Post Updated", actor=admin, policy=policy, rules=rules)
        assert event.reuse_window == timedelta(seconds=300)
        assert event.intrinsic_keys == frozenset({"post_title"})
        assert not event.is_creation

    @pytest.mark.parametrize(
        "classification", ["Post Created", "Media Uploaded", "Term Added"]
    )
    def test_creation_suffixes(self, classification, admin, policy, rules):
        event = Event.create(classification, actor=admin, policy=policy, rules=rules)
        assert event.is_creation
        assert event.reuse_window is None

    def test_overrides_and_zero_window(self):
        rules = ClassificationRules.from_config(
            content_reuse_window_seconds=0,
            reuse_windows={"Widget Moved": 60},
            creation_classifications=frozenset({"Plugin Installed"}),
        )
        assert rules.reuse_window_for("Post Updated") is None
        assert rules.reuse_window_for("Widget Moved") == timedelta(seconds=60)
        assert rules.reuse_window_for("Settings Changed") is None
        assert rules.is_creation("Plugin Installed")


class TestHelpers:
    def test_metadata_and_properties(self, admin, policy, post):
        event = Event.create(
            "Post Updated",
            post,
            metadata={"post_type": "post"},
            properties=[Property(key="title", before="A", after="B")],
            actor=admin,
            policy=policy,
        )
        assert event.get_meta("post_type") == "post"
        assert event.get_meta("missing", "default") == "default"
        assert event.has_meta("post_type")
        assert event.has_changes()
        event.remove_property("title")
        assert not event.has_changes()

    def test_subject_roundtrip(self, admin, policy, post):
        event = Event.create("Post Updated", post, actor=admin, policy=policy)
        assert event.subject == SubjectRef(SubjectKind.CONTENT, "42", "Hello World")

    def test_save_without_repository_raises(self, admin, policy):
        event = Event.create("Settings Changed", actor=admin, policy=policy)
        with pytest.raises(InvariantViolationError):
            event.save()

    def test_save_and_delete_delegate_to_repository(self, admin, policy):
        repository = MagicMock()
        repository.save.return_value = True
        repository.delete.return_value = True
        event = Event.create(
            "Settings Changed", actor=admin, policy=policy, repository=repository
        )

        assert event.delete() is False
        repository.delete.assert_not_called()

        assert event.save() is True
        event.id = 7
        assert event.delete() is True
        repository.delete.assert_called_once_with(7)
