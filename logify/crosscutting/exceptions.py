# logify/crosscutting/exceptions.py
"""
===============================================================================
MÓDULO: Excepciones tipadas del núcleo de auditoría
===============================================================================

Objetivo
--------
Separar las dos familias de error que el núcleo distingue:
- Violaciones de invariantes (bugs del colaborador): se lanzan SIEMPRE.
- Fallas de infraestructura (DB, cola): se loguean y se traducen a bool o
  a respuestas HTTP, nunca llegan al usuario final del host.

Las políticas de tracking (actor no resuelto, rol no trackeado) NO son errores:
Event.create devuelve None.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  LogifyError + subclases

Responsabilidades:
  - Estandarizar error_code + error_id para correlación con logs
  - Dar semántica a "invariante violada" vs "falla de DB"
  - Distinguir "store no disponible" (pool/conexión) del resto de fallas de DB

Colaboradores:
  - api/exception_handlers.py (mapea a AppHTTPException)
  - infrastructure/repositories (DatabaseError, InvariantViolationError)
  - infrastructure/db (errores del pool)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Estructura mínima para responder errores de forma consistente."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class LogifyError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      LogifyError

    Responsabilidades:
      - Base para errores internos del sistema
      - Proveer error_code + error_id + message

    Colaboradores:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "LOGIFY_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class DatabaseError(LogifyError):
    """Errores de DB (conexión, query, timeout, pool)."""

    error_code: str = "DATABASE_ERROR"


class InvariantViolationError(LogifyError, ValueError):
    """
    Error de programación de un colaborador (tipo de agregado incorrecto,
    id no positivo, evento sin repositorio). Nunca se traga.
    """

    error_code: str = "INVARIANT_VIOLATION"


class NoteValidationError(LogifyError, ValueError):
    """Nota incompleta (evento, autor o cuerpo faltante)."""

    error_code: str = "NOTE_VALIDATION_ERROR"


class EventStoreUnavailableError(DatabaseError):
    """El store de eventos no se puede usar: pool sin abrir o conexión rota."""

    error_code: str = "EVENT_STORE_UNAVAILABLE"


class PoolNotInitializedError(EventStoreUnavailableError):
    """Se pidió el pool antes de init_pool() (o después de close_pool())."""


class DatabaseConnectionError(EventStoreUnavailableError):
    """La conexión del pool no pasó el healthcheck al adquirirse."""


class PoolAlreadyInitializedError(InvariantViolationError):
    """init_pool() llamado dos veces en el mismo proceso."""

    error_code: str = "POOL_ALREADY_INITIALIZED"
