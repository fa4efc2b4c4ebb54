"""
Name: FastAPI Application Entry Point

Responsibilities:
  - Initialize the FastAPI application (title, version, lifespan)
  - Configure request context middleware
  - Mount the audit log router under the /v1 prefix
  - Expose health check and metrics endpoints

Collaborators:
  - RequestContextMiddleware: request ID and logging context
  - interfaces.api.http.router: events and notes endpoints
  - infrastructure.db.pool: pool lifecycle bound to the app lifespan

Notes:
  - In test environments the pool is not opened (in-memory repositories)
  - /healthz follows the Kubernetes health check convention
  - /metrics exposes the private Prometheus registry
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from ..container import get_event_repository
from ..crosscutting.config import get_settings
from ..crosscutting.logger import logger
from ..crosscutting.metrics import get_metrics_response
from ..crosscutting.middleware import RequestContextMiddleware
from ..infrastructure.db.pool import close_pool, init_pool
from ..interfaces.api.http.router import router
from .exception_handlers import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle. Opens the pool outside test environments."""
    settings = get_settings()
    use_pool = not settings.is_test_env()

    if use_pool:
        init_pool(
            database_url=settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    try:
        logger.info(
            "Logify API starting up",
            extra={
                "app_env": settings.app_env,
                "tracked_roles": sorted(settings.get_tracked_roles()),
                "db_pool_min": settings.db_pool_min_size,
                "db_pool_max": settings.db_pool_max_size,
            },
        )
        yield
    finally:
        if use_pool:
            close_pool()
        logger.info("Logify API shutting down")


app = FastAPI(
    title="Logify API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "events", "description": "Audit events (read-only)"},
        {"name": "notes", "description": "Reviewer notes attached to events"},
    ],
)

app.add_middleware(RequestContextMiddleware)

# R: Rutas versionadas bajo /v1
app.include_router(router, prefix="/v1")

register_exception_handlers(app)


@app.get("/healthz")
def healthz(request: Request):
    """
    R: Health check that probes the event store.

    Returns:
        ok: True if the store answered
        db: "connected" or "disconnected"
        request_id: correlation ID for this request
    """
    db_status = "disconnected"
    try:
        get_event_repository().get_earliest_date()
        db_status = "connected"
    except Exception as e:
        logger.warning("Health check: DB unavailable", extra={"error": str(e)})

    return {
        "ok": db_status == "connected",
        "db": db_status,
        "request_id": getattr(request.state, "request_id", None),
    }


@app.get("/metrics")
def metrics():
    """R: Prometheus exposition format."""
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
