"""
===============================================================================
TARJETA CRC — domain/__init__.py
===============================================================================

Módulo:
    Exportaciones de la capa de dominio (modelo de auditoría + puertos)

Reglas:
    - Solo re-exporta contratos/entidades del dominio.
    - No importar infraestructura aquí.
===============================================================================
"""

from .actors import ANONYMOUS_ACTOR, Actor, ActorProvider, StaticActorProvider, TrackingPolicy
from .event import Event
from .note import Note
from .properties import UNCHANGED, Eventmeta, Property
from .repositories import EventFilters, EventRepository, NoteRepository
from .rules import ClassificationRule, ClassificationRules
from .subjects import SubjectKind, SubjectLoaderRegistry, SubjectRef

__all__ = [
    "ANONYMOUS_ACTOR",
    "Actor",
    "ActorProvider",
    "ClassificationRule",
    "ClassificationRules",
    "Event",
    "EventFilters",
    "EventRepository",
    "Eventmeta",
    "Note",
    "NoteRepository",
    "Property",
    "StaticActorProvider",
    "SubjectKind",
    "SubjectLoaderRegistry",
    "SubjectRef",
    "TrackingPolicy",
    "UNCHANGED",
]
