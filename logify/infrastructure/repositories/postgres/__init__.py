"""
PostgreSQL Repository Implementations.

Production-ready implementations using psycopg 3 + psycopg_pool.
"""

from .event import PostgresEventRepository
from .note import PostgresNoteRepository

__all__ = ["PostgresEventRepository", "PostgresNoteRepository"]
