"""
===============================================================================
TARJETA CRC — worker/worker.py (Entrypoint del proceso Worker)
===============================================================================

Responsabilidades:
  - Levantar un RQ Worker sobre la cola diferida, con scheduler (enqueue_in
    de capturas periódicas y retención).
  - Inicializar dependencias del proceso: Redis + pool de BD.
  - Apagar recursos de forma ordenada.

Patrones aplicados:
  - Process Bootstrap: inicializa recursos antes de trabajar.
  - Fail-fast: sin Redis/BD al inicio no arranca.

Colaboradores:
  - crosscutting.config.get_settings
  - infrastructure.db.pool.init_pool / close_pool
  - redis.Redis + rq.Worker
===============================================================================
"""

from __future__ import annotations

from redis import Redis
from rq import Queue, Worker

from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..infrastructure.db.pool import close_pool, init_pool


def _build_redis_connection(redis_url: str) -> Redis:
    return Redis.from_url(
        redis_url,
        socket_connect_timeout=2,
        socket_timeout=5,
        health_check_interval=30,
    )


def main() -> None:
    settings = get_settings()

    redis_url = settings.redis_url.strip()
    if not redis_url:
        raise SystemExit("REDIS_URL es requerido para ejecutar el worker.")

    redis_conn = _build_redis_connection(redis_url)
    try:
        redis_conn.ping()
    except Exception as exc:
        logger.error("Redis no disponible para worker", extra={"error": str(exc)})
        raise SystemExit("Redis no disponible.") from exc

    init_pool(
        database_url=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )

    try:
        logger.info(
            "Worker arrancando",
            extra={
                "queue": settings.deferred_queue_name,
                "db_pool_min": settings.db_pool_min_size,
                "db_pool_max": settings.db_pool_max_size,
            },
        )
        queue = Queue(name=settings.deferred_queue_name, connection=redis_conn)
        worker = Worker([queue], connection=redis_conn)
        worker.work(with_scheduler=True)
    except KeyboardInterrupt:
        logger.info("Worker detenido por señal (KeyboardInterrupt)")
    finally:
        close_pool()
        logger.info("Worker apagado")


if __name__ == "__main__":
    main()
