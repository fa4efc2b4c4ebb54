"""
Name: Pytest Configuration and Shared Fixtures

Responsibilities:
  - Configure the test environment (APP_ENV=test, no .env file)
  - Reset cached settings / container singletons between tests
  - Provide in-memory repositories, a fixed clock and ready-made engines

Notes:
  - Fixtures are auto-discovered by pytest
  - Everything here is function-scoped for per-test isolation
"""

import os
from datetime import datetime, timedelta, timezone

import pytest

os.environ.setdefault("APP_ENV", "test")

from logify.crosscutting import config as app_config  # noqa: E402

app_config.Settings.model_config["env_file"] = None

from logify.application import (  # noqa: E402
    ActivityTracker,
    AuditLogger,
    CoalescingEngine,
    OperationContext,
)
from logify.container import reset_container  # noqa: E402
from logify.domain.actors import Actor, TrackingPolicy  # noqa: E402
from logify.domain.rules import ClassificationRules  # noqa: E402
from logify.domain.subjects import SubjectKind, SubjectRef  # noqa: E402
from logify.infrastructure.repositories import (  # noqa: E402
    InMemoryEventRepository,
    InMemoryNoteRepository,
)

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Reloj manual: los tests avanzan el tiempo explícitamente."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture(autouse=True)
def _isolated_settings():
    """R: Settings y singletons del container limpios por test."""
    app_config.get_settings.cache_clear()
    reset_container()
    yield
    app_config.get_settings.cache_clear()
    reset_container()


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def admin() -> Actor:
    return Actor(id="1", name="alice", roles=("administrator",), ip="10.0.0.1")


@pytest.fixture
def subscriber() -> Actor:
    return Actor(id="2", name="bob", roles=("subscriber",))


@pytest.fixture
def post() -> SubjectRef:
    return SubjectRef.of(SubjectKind.CONTENT, 42, "Hello World")


@pytest.fixture
def policy() -> TrackingPolicy:
    return TrackingPolicy(tracked_roles=frozenset({"administrator", "editor"}))


@pytest.fixture
def rules() -> ClassificationRules:
    return ClassificationRules.from_config(
        content_reuse_window_seconds=300,
        intrinsic_keys={"Post Updated": ["post_title"]},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Repository / Service Fixtures
# ============================================================================


@pytest.fixture
def repo() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def note_repo() -> InMemoryNoteRepository:
    return InMemoryNoteRepository()


@pytest.fixture
def operation(repo) -> OperationContext:
    return OperationContext(repo, operation_id="op-test")


@pytest.fixture
def engine(repo, policy, rules, clock) -> CoalescingEngine:
    return CoalescingEngine(repo, policy=policy, rules=rules, clock=clock)


@pytest.fixture
def audit_logger(repo, policy, rules, clock) -> AuditLogger:
    return AuditLogger(repo, policy=policy, rules=rules, clock=clock)


@pytest.fixture
def activity_tracker(repo, policy, rules, clock) -> ActivityTracker:
    return ActivityTracker(
        repo, policy=policy, rules=rules, window=timedelta(seconds=2), clock=clock
    )
