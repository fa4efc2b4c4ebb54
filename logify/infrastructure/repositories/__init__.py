"""
Repository adapters for the audit log.

  - postgres: producción (psycopg 3 + psycopg_pool)
  - in_memory: tests y desarrollo local
"""

from .in_memory import InMemoryEventRepository, InMemoryNoteRepository
from .postgres import PostgresEventRepository, PostgresNoteRepository

__all__ = [
    "InMemoryEventRepository",
    "InMemoryNoteRepository",
    "PostgresEventRepository",
    "PostgresNoteRepository",
]
