"""
===============================================================================
CRC CARD — infrastructure/db/instrumentation.py
===============================================================================

Clases:
  - TimedConnection (Proxy)
  - InstrumentedConnectionPool (Facade/Proxy)

Responsabilidades:
  - Medir duración de conn.execute(...) sin tocar repositorios.
  - Loguear queries lentas (baja cardinalidad: solo el tipo de statement).
  - Dejar la conexión limpia al adquirirla (rollback de restos + SELECT 1).

Colaboradores:
  - crosscutting.logger
  - crosscutting.metrics.observe_db_query_duration
  - psycopg_pool.ConnectionPool (pool real)
===============================================================================
"""

from __future__ import annotations

import time
from typing import Any, ContextManager

from ...crosscutting.exceptions import DatabaseConnectionError
from ...crosscutting.logger import logger
from ...crosscutting.metrics import observe_db_query_duration


def statement_kind(sql: Any) -> str:
    """Primer token del statement (SELECT/INSERT/...), para métricas y logs."""
    tokens = str(sql).split(None, 1)
    return tokens[0].upper() if tokens else "UNKNOWN"


class TimedConnection:
    """
    Proxy de conexión: solo envuelve execute(); el resto se delega
    (transaction(), cursor(), commit()...).
    """

    def __init__(self, inner_conn, *, slow_query_seconds: float) -> None:
        self._conn = inner_conn
        self._slow = slow_query_seconds

    def execute(self, sql, *args, **kwargs):
        start = time.perf_counter()
        try:
            return self._conn.execute(sql, *args, **kwargs)
        finally:
            elapsed = time.perf_counter() - start
            kind = statement_kind(sql)
            observe_db_query_duration(kind, elapsed)
            if elapsed >= self._slow:
                logger.warning(
                    "DB query lenta",
                    extra={"kind": kind, "seconds": round(elapsed, 4)},
                )

    def __getattr__(self, item: str):
        return getattr(self._conn, item)


class _ConnectionContext(ContextManager[TimedConnection]):
    """Context manager que envuelve el del pool real."""

    def __init__(
        self, inner_ctx, *, slow_query_seconds: float, healthcheck: bool
    ) -> None:
        self._inner_ctx = inner_ctx
        self._slow = slow_query_seconds
        self._healthcheck = healthcheck

    def __enter__(self) -> TimedConnection:
        try:
            conn = self._inner_ctx.__enter__()
            if self._healthcheck:
                conn.rollback()
                conn.execute("SELECT 1")
            return TimedConnection(conn, slow_query_seconds=self._slow)
        except Exception as exc:
            raise DatabaseConnectionError(
                "No se pudo adquirir/validar conexión DB."
            ) from exc

    def __exit__(self, exc_type, exc, tb) -> bool:
        return self._inner_ctx.__exit__(exc_type, exc, tb)


class InstrumentedConnectionPool:
    """
    Facade del pool real: los repositorios siguen haciendo
    `with pool.connection() as conn:` pero reciben un TimedConnection.
    """

    def __init__(
        self,
        inner_pool,
        *,
        slow_query_seconds: float = 0.25,
        healthcheck: bool = True,
    ) -> None:
        self._pool = inner_pool
        self._slow_seconds = slow_query_seconds
        self._healthcheck = healthcheck

    def connection(self, *args, **kwargs) -> ContextManager[TimedConnection]:
        return _ConnectionContext(
            self._pool.connection(*args, **kwargs),
            slow_query_seconds=self._slow_seconds,
            healthcheck=self._healthcheck,
        )

    def __getattr__(self, item: str):
        return getattr(self._pool, item)
