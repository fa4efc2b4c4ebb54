"""
===============================================================================
TARJETA CRC — router.py (Router raíz / Composición)
===============================================================================

Responsabilidades:
  - Definir el APIRouter raíz que se incluye en FastAPI (app.include_router).
  - Centralizar responses RFC7807 para OpenAPI.
  - Componer routers por recurso (events / notes).

Notas:
  - Este router se incluye desde logify/api/main.py con prefix="/v1".
===============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter

from ....crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from .routers.events import router as events_router
from .routers.notes import router as notes_router


def build_router() -> APIRouter:
    """Construye el router raíz v1 (testeable sin importar la app)."""
    api_router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)
    api_router.include_router(events_router)
    api_router.include_router(notes_router)
    return api_router


router = build_router()

__all__ = ["router", "build_router"]
