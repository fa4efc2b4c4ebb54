"""
===============================================================================
TARJETA CRC — domain/subjects.py (Referencia a sujeto: unión etiquetada)
===============================================================================

Responsabilidades:
  - Identificar el objeto afectado por un evento: {kind, id, name}.
  - Mantener un conjunto cerrado de kinds (sin inspección de tipos runtime).
  - Definir el contrato explícito de lectura (SubjectLoader) que usan las
    unidades diferidas para re-leer estado vivo.

Colaboradores:
  - domain.event.Event (subject_type / subject_id / subject_name)
  - application.deferred (handlers que re-leen sujetos)

Notas:
  - subject_name se captura siempre: el sujeto puede borrarse después y el
    reporte no podría resolver su nombre.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Protocol


class SubjectKind(str, Enum):
    CONTENT = "content"
    USER = "user"
    TERM = "term"
    COMMENT = "comment"
    PLUGIN = "plugin"
    THEME = "theme"
    SETTING = "setting"
    SYSTEM = "system"


@dataclass(frozen=True, slots=True)
class SubjectRef:
    """Referencia inmutable al sujeto de un evento."""

    kind: SubjectKind
    id: str | None
    name: str

    @classmethod
    def of(cls, kind: SubjectKind | str, id: object, name: str | None) -> "SubjectRef":
        """Construye una referencia coercionando kind e id (ids se guardan como texto)."""
        return cls(
            kind=SubjectKind(kind),
            id=None if id is None else str(id),
            name=name or "",
        )


class SubjectLoader(Protocol):
    """Lee el estado vivo de un sujeto (o None si ya no existe)."""

    def load(self, subject_id: str) -> Mapping[str, Any] | None: ...


class SubjectLoaderRegistry:
    """Un loader por kind, registrado explícitamente en el composition root."""

    def __init__(self) -> None:
        self._loaders: dict[SubjectKind, SubjectLoader] = {}

    def register(self, kind: SubjectKind, loader: SubjectLoader) -> None:
        self._loaders[SubjectKind(kind)] = loader

    def load(self, subject: SubjectRef) -> Mapping[str, Any] | None:
        loader = self._loaders.get(subject.kind)
        if loader is None or subject.id is None:
            return None
        return loader.load(subject.id)

    def supports(self, kind: SubjectKind) -> bool:
        return SubjectKind(kind) in self._loaders
