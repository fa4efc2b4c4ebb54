"""
===============================================================================
TARJETA CRC — domain/values.py (Normalizador de valores + igualdad tipada)
===============================================================================

Responsabilidades:
  - Convertir valores heterogéneos (strings crudos, blobs serializados,
    escalares ya tipados) a una representación canónica en memoria.
  - Comparar valores por tipo + contenido (igualdad estable para diffs).
  - Codificar/decodificar valores compuestos para las columnas de texto de
    Properties / Eventmeta.
  - Formatear duraciones de actividad ("1 hour, 5 minutes").

Colaboradores:
  - domain.properties: usa are_equal para decidir si hay cambio.
  - application.coalescing: normaliza before/after antes de diffear.
  - infrastructure.repositories: encode_value / decode_value.
  - crosscutting.logger: diagnósticos de valores no decodificables.

Reglas:
  - normalize NUNCA lanza: ante un blob ilegible devuelve el string crudo.
  - Solo se coerciona lo que matchea sin ambigüedad ("007" sigue siendo str).
  - Idempotente: normalize(k, normalize(k, v)) == normalize(k, v).
===============================================================================
"""

from __future__ import annotations

import dataclasses
import json
import math
import re
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ..crosscutting.logger import logger

# Keys con este sufijo guardan fechas en UTC; el resto, en hora local del sitio.
UTC_KEY_SUFFIXES: tuple[str, ...] = ("_gmt", "_utc")

_FLOAT_RE = re.compile(r"^-?\d+\.\d+$")
_DATETIME_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})?$"
)

_TYPE_TAG = "__type__"

_COMPOSITE_TYPES = (dict, list, tuple, set, frozenset)


# =============================================================================
# Normalización
# =============================================================================


def normalize(key: str, raw: Any, *, local_tz: tzinfo | None = None) -> Any:
    """
    Convierte un valor crudo a su forma canónica.

    Orden de reglas:
      1. None -> None
      2. contenedor de un solo elemento -> ese elemento (normalizado)
      3. string con pinta de compuesto ("{...}" / "[...]") -> decodificado
      4. "null" / "true" / "false" / entero / float / fecha-hora -> tipado
      5. cualquier otra cosa -> sin cambios
    """
    if raw is None:
        return None

    if isinstance(raw, (list, tuple)) and len(raw) == 1:
        return normalize(key, raw[0], local_tz=local_tz)

    if not isinstance(raw, str):
        return raw

    text = raw
    if text[:1] in ("{", "["):
        ok, value = try_decode_value(text)
        if ok:
            return normalize(key, value, local_tz=local_tz)
        logger.warning(
            "Valor compuesto no decodificable; se conserva el string crudo",
            extra={"key": key, "length": len(text)},
        )
        return text

    return _coerce_scalar(key, text, local_tz=local_tz)


def _coerce_scalar(key: str, text: str, *, local_tz: tzinfo | None) -> Any:
    if text == "null":
        return None
    if text == "true":
        return True
    if text == "false":
        return False

    if _looks_like_int(text):
        return int(text)

    if _FLOAT_RE.match(text):
        number = float(text)
        if repr(number) == text:
            return number
        return text

    if _DATETIME_RE.match(text):
        return _parse_datetime(key, text, local_tz=local_tz)

    return text


def _looks_like_int(text: str) -> bool:
    try:
        return str(int(text)) == text
    except ValueError:
        return False


def _parse_datetime(key: str, text: str, *, local_tz: tzinfo | None) -> Any:
    iso = text.replace(" ", "T", 1)
    if iso.endswith("Z"):
        iso = iso[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(iso)
    except ValueError:
        # "2024-02-30 10:00:00": matchea el patrón pero no es una fecha real.
        return text
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone_for_key(key, local_tz=local_tz))
    return value


def timezone_for_key(key: str, *, local_tz: tzinfo | None = None) -> tzinfo:
    """UTC para keys *_gmt / *_utc; hora local (o UTC si no hay) para el resto."""
    if key.lower().endswith(UTC_KEY_SUFFIXES):
        return timezone.utc
    return local_tz or timezone.utc


# =============================================================================
# Igualdad
# =============================================================================


def are_equal(a: Any, b: Any) -> bool:
    """
    Igualdad tipada.

    - Compuestos (dict/list/tuple/set/objetos): mismo tipo + misma forma
      canónica serializada. Dos referencias distintas con los mismos datos
      son iguales.
    - Escalares: mismo tipo + ==. Así 1 != True, 1 != 1.0 y "1" != 1.
    """
    if _is_composite(a) or _is_composite(b):
        if type(a) is not type(b):
            return False
        return canonical_form(a) == canonical_form(b)

    if type(a) is not type(b):
        return False
    if isinstance(a, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


def _is_composite(value: Any) -> bool:
    if isinstance(value, _COMPOSITE_TYPES):
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return True
    return _is_plain_object(value)


def _is_plain_object(value: Any) -> bool:
    if isinstance(value, Enum):
        return False
    return hasattr(value, "model_dump") or (
        hasattr(value, "__dict__")
        and not isinstance(value, (type, str, bytes, int, float, bool))
        and not callable(value)
    )


def canonical_form(value: Any) -> str:
    """Serialización determinística (sort_keys) usada por are_equal."""
    return json.dumps(_to_jsonable(value), sort_keys=True, separators=(",", ":"))


# =============================================================================
# Codec de valores (columnas TEXT de properties / eventmeta)
# =============================================================================


def encode_value(value: Any) -> str:
    """Codifica un valor tipado a JSON con tags para tipos no nativos."""
    return json.dumps(
        _to_jsonable(value), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def decode_value(text: str) -> Any:
    """Inversa de encode_value. Lanza ValueError si el texto no es JSON."""
    return json.loads(text, object_hook=_decode_tagged)


def try_decode_value(text: str) -> tuple[bool, Any]:
    """decode_value sin excepciones: (ok, valor)."""
    try:
        return True, decode_value(text)
    except (ValueError, TypeError, KeyError, InvalidOperation):
        return False, None


def _to_jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return {_TYPE_TAG: "float", "value": repr(value)}
        return value
    if isinstance(value, Enum):
        return _to_jsonable(value.value)
    if isinstance(value, datetime):
        return {_TYPE_TAG: "datetime", "value": value.isoformat()}
    if isinstance(value, date):
        return {_TYPE_TAG: "date", "value": value.isoformat()}
    if isinstance(value, Decimal):
        return {_TYPE_TAG: "decimal", "value": str(value)}
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, tuple):
        return {_TYPE_TAG: "tuple", "items": [_to_jsonable(v) for v in value]}
    if isinstance(value, (set, frozenset)):
        items = [_to_jsonable(v) for v in value]
        items.sort(key=lambda item: json.dumps(item, sort_keys=True))
        return {_TYPE_TAG: "set", "items": items}
    if hasattr(value, "model_dump"):
        return _to_jsonable(value.model_dump(mode="python"))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _to_jsonable(dataclasses.asdict(value))
    if hasattr(value, "__dict__"):
        return _to_jsonable(
            {k: v for k, v in vars(value).items() if not k.startswith("_")}
        )
    return str(value)


def _decode_tagged(obj: dict) -> Any:
    tag = obj.get(_TYPE_TAG)
    if tag is None:
        return obj
    if tag == "datetime":
        return datetime.fromisoformat(obj["value"])
    if tag == "date":
        return date.fromisoformat(obj["value"])
    if tag == "decimal":
        return Decimal(obj["value"])
    if tag == "float":
        return float(obj["value"])
    if tag == "tuple":
        return tuple(obj["items"])
    if tag == "set":
        # Items no hasheables (dicts, listas): se devuelve la lista ordenada.
        try:
            return set(obj["items"])
        except TypeError:
            return obj["items"]
    return obj


# =============================================================================
# Duraciones
# =============================================================================


def duration_string(start: datetime, end: datetime) -> str:
    """
    Duración legible redondeada hacia arriba al minuto.

    0 segundos -> "0 minutes"; 3700 segundos -> "1 hour, 2 minutes".
    """
    seconds = int((end - start).total_seconds())
    if seconds <= 0:
        return "0 minutes"

    minutes = math.ceil(seconds / 60)
    hours, minutes = divmod(minutes, 60)

    parts: list[str] = []
    if hours > 0:
        parts.append(f"{hours} hour" + ("" if hours == 1 else "s"))
    if minutes > 0:
        parts.append(f"{minutes} minute" + ("" if minutes == 1 else "s"))
    return ", ".join(parts)
