"""
Application layer: operation scope, coalescing, inbound logger, deferred
execution and retention.
"""

from .coalescing import (
    ACTIVITY_CLASSIFICATION,
    ActivityTracker,
    CoalescingEngine,
)
from .deferred import (
    ActorActive,
    DeferredCapture,
    DeferredMessage,
    DeferredProcessor,
    EventLogged,
    HandlerRegistry,
    SubjectChanged,
    SubjectCreated,
    SubjectDeleted,
    build_default_registry,
)
from .event_logger import AuditLogger
from .operation import FlushReport, OperationContext
from .retention import RetentionPolicy, purge_expired_events

__all__ = [
    "ACTIVITY_CLASSIFICATION",
    "ActivityTracker",
    "ActorActive",
    "AuditLogger",
    "CoalescingEngine",
    "DeferredCapture",
    "DeferredMessage",
    "DeferredProcessor",
    "EventLogged",
    "FlushReport",
    "HandlerRegistry",
    "OperationContext",
    "RetentionPolicy",
    "SubjectChanged",
    "SubjectCreated",
    "SubjectDeleted",
    "build_default_registry",
    "purge_expired_events",
]
