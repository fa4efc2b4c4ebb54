"""
===============================================================================
TARJETA CRC — logify/context.py (Contexto de correlación por request / job)
===============================================================================

Responsabilidades:
  - Mantener identificadores de correlación usando ContextVars (async-safe).
  - Permitir que los logs lleven request_id / operation_id / job_id sin pasar
    parámetros por todo el stack.

Colaboradores:
  - crosscutting.logger: enriquece logs leyendo get_context_dict().
  - crosscutting.middleware: setea request_id/method/path por request HTTP.
  - worker.jobs: setea job_id/operation_id por job y limpia al finalizar.

Restricciones:
  - Solo correlación para observabilidad. El estado de los eventos en
    construcción vive en OperationContext, nunca acá.
  - Solo strings; "" significa "no disponible".
===============================================================================
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Final, Iterator

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
operation_id_var: ContextVar[str] = ContextVar("operation_id", default="")
job_id_var: ContextVar[str] = ContextVar("job_id", default="")
http_method_var: ContextVar[str] = ContextVar("http_method", default="")
http_path_var: ContextVar[str] = ContextVar("http_path", default="")

_CTX_REQUEST_ID: Final[str] = "request_id"
_CTX_OPERATION_ID: Final[str] = "operation_id"
_CTX_JOB_ID: Final[str] = "job_id"
_CTX_METHOD: Final[str] = "method"
_CTX_PATH: Final[str] = "path"


def set_request_context(
    *, request_id: str = "", method: str = "", path: str = ""
) -> None:
    """Setea el contexto mínimo del request HTTP."""
    request_id_var.set(request_id or "")
    http_method_var.set(method or "")
    http_path_var.set(path or "")


def set_job_context(*, job_id: str = "", operation_id: str = "") -> None:
    """Setea el contexto de un job diferido."""
    job_id_var.set(job_id or "")
    operation_id_var.set(operation_id or "")


def get_context_dict() -> dict[str, str]:
    """Devuelve el contexto actual como dict, omitiendo claves vacías."""
    ctx: dict[str, str] = {}

    if val := request_id_var.get():
        ctx[_CTX_REQUEST_ID] = val
    if val := operation_id_var.get():
        ctx[_CTX_OPERATION_ID] = val
    if val := job_id_var.get():
        ctx[_CTX_JOB_ID] = val
    if val := http_method_var.get():
        ctx[_CTX_METHOD] = val
    if val := http_path_var.get():
        ctx[_CTX_PATH] = val

    return ctx


def clear_context() -> None:
    """Limpia el contexto al final del request/job (evita filtración entre jobs)."""
    request_id_var.set("")
    operation_id_var.set("")
    job_id_var.set("")
    http_method_var.set("")
    http_path_var.set("")


@contextmanager
def operation_scope(operation_id: str) -> Iterator[None]:
    """Liga operation_id a los logs mientras dura una unidad de trabajo."""
    token = operation_id_var.set(operation_id or "")
    try:
        yield
    finally:
        operation_id_var.reset(token)
