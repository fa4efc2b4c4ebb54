"""
===============================================================================
TARJETA CRC — domain/actors.py (Actor + política de tracking)
===============================================================================

Responsabilidades:
  - Describir quién ejecutó la mutación (id, nombre, roles, IP, ubicación, agente).
  - Definir la política de tracking: qué roles se auditan.
  - Definir el puerto ActorProvider (resolución del actor actual del host).

Colaboradores:
  - domain.event.Event.create (gate de política)
  - application.event_logger.AuditLogger
  - crosscutting.config (tracked_roles)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True, slots=True)
class Actor:
    """Actor que originó la mutación."""

    id: str | None
    name: str = ""
    roles: tuple[str, ...] = field(default_factory=tuple)
    ip: str | None = None
    location: str | None = None
    agent: str | None = None

    @property
    def role(self) -> str:
        """Roles como texto ("editor, author"); "none" si no tiene."""
        return ", ".join(self.roles) if self.roles else "none"


# R: eventos "all actors" (login fallido) sin nadie resoluble.
ANONYMOUS_ACTOR = Actor(id=None, name="Unknown", roles=())


class ActorProvider(Protocol):
    """Resuelve el actor de la operación actual (o None)."""

    def current_actor(self) -> Actor | None: ...


class StaticActorProvider:
    """Provider fijo: workers y tests (el actor viaja en el snapshot)."""

    def __init__(self, actor: Actor | None = None) -> None:
        self._actor = actor

    def current_actor(self) -> Actor | None:
        return self._actor


@dataclass(frozen=True)
class TrackingPolicy:
    """Roles auditados. Un actor se trackea si tiene al menos uno."""

    tracked_roles: frozenset[str]

    def is_tracked(self, actor: Actor) -> bool:
        return any(role in self.tracked_roles for role in actor.roles)

    def allows(self, actor: Actor, all_actors: bool = False) -> bool:
        """all_actors exime del chequeo de roles (login fallido, etc.)."""
        return all_actors or self.is_tracked(actor)
