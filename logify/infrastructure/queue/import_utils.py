"""
===============================================================================
SUBSISTEMA: Infraestructura / Queue
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Validación de rutas de jobs

Responsabilidades:
    - Confirmar que un "dotted path" (modulo.funcion) es importable y callable
      antes de encolar: un path roto se detecta al iniciar, no en el worker.

Colaboradores:
    - rq_queue.RQDeferredQueue
    - importlib
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache
from importlib import import_module


@lru_cache(maxsize=128)
def is_importable_dotted_path(dotted_path: str) -> bool:
    """True si `dotted_path` existe y es callable. No valida la firma."""
    try:
        module_name, attr_name = split_dotted_path(dotted_path)
        module = import_module(module_name)
        return callable(getattr(module, attr_name))
    except (ModuleNotFoundError, AttributeError, ValueError):
        return False


def split_dotted_path(dotted_path: str) -> tuple[str, str]:
    if not dotted_path or "." not in dotted_path:
        raise ValueError("dotted_path debe ser 'modulo.atributo'")
    module_name, attr_name = dotted_path.rsplit(".", 1)
    if not module_name or not attr_name:
        raise ValueError("dotted_path inválido")
    return module_name, attr_name
