from .event import InMemoryEventRepository
from .note import InMemoryNoteRepository

__all__ = ["InMemoryEventRepository", "InMemoryNoteRepository"]
