# logify/crosscutting/logger.py
"""
===============================================================================
MÓDULO: Logger estructurado (JSON) con contexto de operación
===============================================================================

Objetivo
--------
Los diagnósticos del núcleo de auditoría son la única superficie visible de
sus fallas (normalización, saves fallidos, jobs descartados). Por eso se loguea
en JSON, correlacionado por request_id / operation_id / job_id, y con los
snapshots de sujetos saneados antes de salir (pueden traer user_pass,
activation keys, tokens de sesión).

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  SnapshotSanitizer + JSONFormatter + setup_logger()

Responsabilidades:
  - Formatear LogRecord -> JSON con el contexto de logify/context.py
  - Sanear extras: claves sensibles por sufijo, valores de auditoría
    (UNCHANGED, sets, datetimes) y tamaños
  - Configurar nivel / formato desde Settings

Colaboradores:
  - logify/context.py (ContextVars)
  - crosscutting/config.py (log_level / log_json)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

# Atributos propios de LogRecord: todo lo demás vino por `extra=`.
_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__
) | {"message", "taskName"}


class SnapshotSanitizer:
    """
    Sanea los extras de un log.

    Reglas:
      - claves sensibles: nombre exacto o sufijo (`*_pass`, `*_token`, `*api_key`)
      - profundidad y largo de strings acotados
      - sets ordenados, datetimes en ISO, Decimal como texto
    """

    SENSITIVE_NAMES = frozenset(
        {"password", "passwd", "secret", "authorization", "cookie", "credential"}
    )
    SENSITIVE_SUFFIXES = (
        "_pass",
        "_password",
        "_token",
        "_secret",
        "activation_key",
        "api_key",
        "private_key",
    )

    REDACTED = "***REDACTADO***"

    def __init__(self, max_str: int = 4_000, max_depth: int = 4, max_items: int = 100):
        self._max_str = max_str
        self._max_depth = max_depth
        self._max_items = max_items

    def is_sensitive(self, key: str) -> bool:
        k = key.lower()
        return k in self.SENSITIVE_NAMES or k.endswith(self.SENSITIVE_SUFFIXES)

    def sanitize(self, value: Any, *, depth: int = 0, key: str | None = None) -> Any:
        if key and self.is_sensitive(key):
            return self.REDACTED
        if depth > self._max_depth:
            return "***TRUNCADO***"

        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, str):
            if len(value) <= self._max_str:
                return value
            return value[: self._max_str] + "…(truncado)"
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            return f"<bytes {len(value)}B>"
        if isinstance(value, dict):
            return {
                str(k): self.sanitize(v, depth=depth + 1, key=str(k))
                for k, v in list(value.items())[: self._max_items]
            }
        if isinstance(value, (set, frozenset)):
            value = sorted(value, key=repr)
        if isinstance(value, (list, tuple)):
            return [
                self.sanitize(v, depth=depth + 1, key=key)
                for v in value[: self._max_items]
            ]
        # UNCHANGED y objetos de dominio: su repr es suficiente para diagnóstico.
        return repr(value)


class JSONFormatter(logging.Formatter):
    """LogRecord -> una línea JSON (contexto + extras saneados + excepción)."""

    def __init__(self, sanitizer: SnapshotSanitizer | None = None):
        super().__init__()
        self._sanitizer = sanitizer or SnapshotSanitizer()

    def format(self, record: logging.LogRecord) -> str:
        from ..context import get_context_dict

        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "pid": os.getpid(),
            **get_context_dict(),
        }

        for k, v in record.__dict__.items():
            if k not in _RECORD_ATTRS:
                payload[k] = self._sanitizer.sanitize(v, key=k)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "stacktrace": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(payload, ensure_ascii=False, default=str, separators=(",", ":"))


def setup_logger(name: str = "logify") -> logging.Logger:
    """
    Crea y configura el logger del paquete (idempotente ante reimport).

    Si Settings es inválido en import-time (alembic, herramientas) se usan
    INFO + JSON; la validación real ocurre al arrancar la app o el worker.
    """
    log = logging.getLogger(name)

    level, use_json = "INFO", True
    try:
        from .config import get_settings

        settings = get_settings()
        level, use_json = (settings.log_level or "INFO").upper(), settings.log_json
    except ValidationError:
        pass

    log.setLevel(getattr(logging, level, logging.INFO))

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if use_json
            else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)

    return log


logger = setup_logger()
