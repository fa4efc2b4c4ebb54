"""
===============================================================================
TARJETA CRC — logify/api/exception_handlers.py (Manejo Centralizado de Excepciones)
===============================================================================

Responsabilidades:
  - Traducir excepciones del núcleo de auditoría a respuestas RFC7807.
  - Mapear store no disponible (pool/conexión) a 503 SERVICE_UNAVAILABLE.
  - Loguear con request_id + error_id; no filtrar internos en producción.

Colaboradores:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, app_exception_handler
  - crosscutting.exceptions: LogifyError y derivadas (EventStoreUnavailableError
    para pool/conexión)
  - crosscutting.config.get_settings (nivel de detalle)
===============================================================================
"""

from __future__ import annotations

from typing import Awaitable, Callable
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse

from ..crosscutting.config import get_settings
from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    app_exception_handler,
)
from ..crosscutting.exceptions import (
    DatabaseError,
    EventStoreUnavailableError,
    InvariantViolationError,
    LogifyError,
    NoteValidationError,
)
from ..crosscutting.logger import logger

Handler = Callable[[Request, Exception], Awaitable[JSONResponse]]

# Tipo de error -> (código estable, status HTTP). Starlette resuelve por MRO,
# así que una subclase gana sobre LogifyError.
_LOGIFY_ERRORS: dict[type[LogifyError], tuple[ErrorCode, int]] = {
    DatabaseError: (ErrorCode.DATABASE_ERROR, 503),
    NoteValidationError: (ErrorCode.VALIDATION_ERROR, 422),
    InvariantViolationError: (ErrorCode.VALIDATION_ERROR, 422),
    LogifyError: (ErrorCode.INTERNAL_ERROR, 500),
}


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


async def _problem(
    request: Request,
    *,
    code: ErrorCode,
    status_code: int,
    detail: str,
    error_id: str,
) -> JSONResponse:
    app_exc = AppHTTPException(
        status_code=status_code,
        code=code,
        detail=detail,
        errors=[{"error_id": error_id}],
    )
    return await app_exception_handler(request, app_exc)


def _logify_handler(code: ErrorCode, status_code: int) -> Handler:
    async def handler(request: Request, exc: LogifyError) -> JSONResponse:
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Error de auditoría",
            extra={
                "code": code.value,
                "error_code": exc.error_code,
                "error_id": exc.error_id,
                "message": exc.message,
                "request_id": _request_id_from(request),
            },
        )
        return await _problem(
            request,
            code=code,
            status_code=status_code,
            detail=exc.message,
            error_id=exc.error_id,
        )

    return handler


async def pool_error_handler(
    request: Request, exc: EventStoreUnavailableError
) -> JSONResponse:
    """Pool sin inicializar o conexión inválida: el store no está disponible."""
    error_id = exc.error_id
    logger.error(
        "Store de eventos no disponible",
        extra={
            "error_id": error_id,
            "error": str(exc),
            "request_id": _request_id_from(request),
        },
    )
    return await _problem(
        request,
        code=ErrorCode.SERVICE_UNAVAILABLE,
        status_code=503,
        detail="Store de eventos no disponible temporalmente.",
        error_id=error_id,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Excepciones no tipadas: stacktrace al log, mensaje genérico en producción."""
    error_id = str(uuid4())
    logger.error(
        "Excepción no controlada",
        exc_info=True,
        extra={"error_id": error_id, "request_id": _request_id_from(request)},
    )
    return await _problem(
        request,
        code=ErrorCode.INTERNAL_ERROR,
        status_code=500,
        detail="Error interno." if get_settings().is_production() else str(exc),
        error_id=error_id,
    )


def register_exception_handlers(app) -> None:
    """Registra los handlers en la app FastAPI."""
    for exc_type, (code, status_code) in _LOGIFY_ERRORS.items():
        app.add_exception_handler(exc_type, _logify_handler(code, status_code))
    app.add_exception_handler(EventStoreUnavailableError, pool_error_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = ["register_exception_handlers"]
