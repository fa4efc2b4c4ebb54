"""
===============================================================================
TARJETA CRC — domain/rules.py (Reglas por clasificación)
===============================================================================

Responsabilidades:
  - Decir, para cada clasificación de evento:
      * ventana de reutilización (None = nunca se fusiona)
      * si es un evento de "creación" (se guarda aunque no tenga cambios)
      * qué propiedades son intrínsecas (se conservan sin after al revertir)
  - Resolver reglas por override exacto y por convención de sufijo.

Colaboradores:
  - domain.event.Event.create (copia la regla al evento)
  - application.coalescing.CoalescingEngine
  - container (construye ClassificationRules desde Settings)

Notas:
  - No hay una constante universal de ventana: es configuración por
    clasificación ("* Updated" usa la ventana de contenido por defecto).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping

UPDATED_SUFFIX = "Updated"
CREATION_SUFFIXES: tuple[str, ...] = ("Created", "Added", "Uploaded")


@dataclass(frozen=True)
class ClassificationRule:
    reuse_window: timedelta | None = None
    creation: bool = False
    intrinsic_keys: frozenset[str] = frozenset()


@dataclass(frozen=True)
class ClassificationRules:
    """Catálogo de reglas (inmutable, construido una vez por proceso)."""

    content_reuse_window: timedelta | None = timedelta(seconds=300)
    reuse_windows: Mapping[str, timedelta] = field(default_factory=dict)
    creation_classifications: frozenset[str] = frozenset()
    intrinsic_keys: Mapping[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls,
        *,
        content_reuse_window_seconds: float,
        reuse_windows: Mapping[str, float] | None = None,
        creation_classifications: frozenset[str] = frozenset(),
        intrinsic_keys: Mapping[str, list[str]] | None = None,
    ) -> "ClassificationRules":
        return cls(
            content_reuse_window=_window(content_reuse_window_seconds),
            reuse_windows={
                name: timedelta(seconds=seconds)
                for name, seconds in (reuse_windows or {}).items()
            },
            creation_classifications=frozenset(creation_classifications),
            intrinsic_keys={
                name: frozenset(keys) for name, keys in (intrinsic_keys or {}).items()
            },
        )

    def rule_for(self, classification: str) -> ClassificationRule:
        return ClassificationRule(
            reuse_window=self.reuse_window_for(classification),
            creation=self.is_creation(classification),
            intrinsic_keys=self.intrinsic_keys.get(classification, frozenset()),
        )

    def reuse_window_for(self, classification: str) -> timedelta | None:
        if classification in self.reuse_windows:
            return _window(self.reuse_windows[classification].total_seconds())
        if classification.endswith(UPDATED_SUFFIX):
            return self.content_reuse_window
        return None

    def is_creation(self, classification: str) -> bool:
        return classification in self.creation_classifications or classification.endswith(
            CREATION_SUFFIXES
        )


def _window(seconds: float) -> timedelta | None:
    # Ventana 0 desactiva la reutilización.
    return timedelta(seconds=seconds) if seconds > 0 else None
