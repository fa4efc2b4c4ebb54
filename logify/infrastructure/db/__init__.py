"""
Infraestructura DB: pool singleton instrumentado (psycopg 3 + psycopg_pool).

Los errores del pool viven en crosscutting.exceptions (EventStoreUnavailableError
y derivadas) para que la API los mapee sin depender de infraestructura.
"""

from .pool import close_pool, get_pool, init_pool, reset_pool

__all__ = [
    "close_pool",
    "get_pool",
    "init_pool",
    "reset_pool",
]
