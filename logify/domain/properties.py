"""
===============================================================================
TARJETA CRC — domain/properties.py (Modelo de diff: Property + Eventmeta)
===============================================================================

Responsabilidades:
  - Representar un atributo con origen, valor "before" y "after" opcional.
  - Upsert last-writer-wins dentro de la construcción de un evento.
  - Merge con "before" fijado al valor más antiguo de la cadena (coalescing).
  - Representar metadata descriptiva (Eventmeta): se guarda tal cual, sin diff.

Colaboradores:
  - domain.values.are_equal
  - domain.event.Event (dueño de los mapas)
  - infrastructure.repositories (filas hijas)

Notas:
  - UNCHANGED es el "sin after". after=None es un cambio real a null.
  - Invariante: una Property nunca queda con after igual a before.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from .values import are_equal


class _Unchanged:
    """Sentinel singleton: la propiedad no tiene valor "after"."""

    _instance: "_Unchanged | None" = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __reduce__(self):
        return "UNCHANGED"


UNCHANGED: Any = _Unchanged()


@dataclass
class Property:
    """Diff de un atributo del sujeto."""

    key: str
    origin: str | None = None
    before: Any = None
    after: Any = UNCHANGED
    id: int | None = None
    event_id: int | None = None

    @property
    def has_after(self) -> bool:
        return self.after is not UNCHANGED

    def is_changed(self) -> bool:
        return self.has_after and not are_equal(self.before, self.after)


@dataclass
class Eventmeta:
    """Dato descriptivo del evento (no se compara ni se diffea)."""

    key: str
    value: Any = None
    id: int | None = None
    event_id: int | None = None


PropertyMap = dict[str, Property]
EventmetaMap = dict[str, Eventmeta]


def upsert_property(
    props: PropertyMap,
    key: str,
    origin: str | None,
    before: Any,
    after: Any = UNCHANGED,
) -> Property:
    """
    Inserta o sobrescribe la propiedad `key` (last-writer-wins).

    Si after es igual a before, after se limpia: la propiedad queda como
    "sin cambio" en vez de como un cambio falso.
    """
    if after is not UNCHANGED and are_equal(before, after):
        after = UNCHANGED

    prop = props.get(key)
    if prop is None:
        prop = Property(key=key, origin=origin, before=before, after=after)
        props[key] = prop
    else:
        prop.origin = origin
        prop.before = before
        prop.after = after
    return prop


def has_changes(props: Mapping[str, Property]) -> bool:
    return any(prop.is_changed() for prop in props.values())


def merge_property(
    props: PropertyMap,
    key: str,
    origin: str | None,
    before: Any,
    after: Any = UNCHANGED,
    *,
    intrinsic: bool = False,
) -> Property | None:
    """
    Fusiona una nueva observación contra el estado ya acumulado.

    - before queda fijado al valor más antiguo conocido (el de la propiedad
      existente); el before transitorio de la notificación se ignora.
    - after avanza siempre al último valor observado.
    - Si after vuelve a ser igual al before fijado: la propiedad se elimina,
      salvo que sea intrínseca (se conserva sin after, para mostrarla).

    Devuelve la propiedad resultante o None si fue eliminada.
    """
    existing = props.get(key)
    if existing is not None:
        pinned = existing.before
        if origin is None:
            origin = existing.origin
    else:
        pinned = before

    if after is UNCHANGED:
        if existing is None:
            return upsert_property(props, key, origin, before)
        return existing

    if not are_equal(pinned, after):
        return upsert_property(props, key, origin, pinned, after)

    if intrinsic:
        return upsert_property(props, key, origin, pinned)

    props.pop(key, None)
    return None


def merge_properties(
    target: PropertyMap,
    incoming: Iterable[Property],
    *,
    intrinsic_keys: frozenset[str] = frozenset(),
) -> None:
    """Fusiona una colección completa de propiedades (ver merge_property)."""
    for prop in incoming:
        merge_property(
            target,
            prop.key,
            prop.origin,
            prop.before,
            prop.after,
            intrinsic=prop.key in intrinsic_keys,
        )


def set_eventmeta(metas: EventmetaMap, key: str, value: Any) -> Eventmeta:
    meta = metas.get(key)
    if meta is None:
        meta = Eventmeta(key=key, value=value)
        metas[key] = meta
    else:
        meta.value = value
    return meta


def snapshot_properties(props: Mapping[str, Property]) -> PropertyMap:
    """Copia independiente del mapa (los valores no se mutan in-place)."""
    return {key: replace(prop) for key, prop in props.items()}


def snapshot_eventmeta(metas: Mapping[str, Eventmeta]) -> EventmetaMap:
    return {key: replace(meta) for key, meta in metas.items()}


def same_property(a: Property | None, b: Property | None) -> bool:
    if a is None or b is None:
        return a is b
    if a.origin != b.origin or not are_equal(a.before, b.before):
        return False
    if a.has_after != b.has_after:
        return False
    return not a.has_after or are_equal(a.after, b.after)


def rebase_properties(
    current: PropertyMap,
    baseline: Mapping[str, Property],
    mine: Mapping[str, Property],
    *,
    intrinsic_keys: frozenset[str] = frozenset(),
) -> None:
    """
    Aplica sobre `current` (estado vigente en el store) solo lo que `mine`
    cambió respecto de `baseline` (el estado que se cargó).

    - Clave que nadie más tocó: queda exactamente como en `mine`.
    - Clave que otra operación cambió en el medio: merge con el before
      vigente fijado; after pasa a ser el de `mine`.
    - Clave que `mine` quitó: se borra solo si sigue igual al baseline.
    - Claves que `mine` no tocó: quedan como estén en `current`.
    """
    for key, prop in mine.items():
        base = baseline.get(key)
        if base is not None and same_property(base, prop):
            continue
        if same_property(current.get(key), base):
            current[key] = replace(prop)
            continue
        merge_property(
            current,
            key,
            prop.origin,
            prop.before,
            prop.after,
            intrinsic=key in intrinsic_keys,
        )

    for key, base in baseline.items():
        if key not in mine and same_property(current.get(key), base):
            del current[key]


def rebase_eventmeta(
    current: EventmetaMap,
    baseline: Mapping[str, Eventmeta],
    mine: Mapping[str, Eventmeta],
) -> None:
    """Igual que rebase_properties para metadata (last-writer-wins por clave)."""
    for key, meta in mine.items():
        base = baseline.get(key)
        if base is not None and are_equal(base.value, meta.value):
            continue
        set_eventmeta(current, key, meta.value)

    for key, base in baseline.items():
        stored = current.get(key)
        if key not in mine and stored is not None and are_equal(stored.value, base.value):
            del current[key]
