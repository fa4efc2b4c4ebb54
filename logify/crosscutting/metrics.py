"""
===============================================================================
ARCHIVO: crosscutting/metrics.py
===============================================================================

CRC CARD (Módulo)
-------------------------------------------------------------------------------
Nombre:
    Métricas (Prometheus) del núcleo de auditoría

Responsabilidades:
    - Definir métricas Prometheus en un registry propio.
    - Proveer funciones pequeñas y estables para registrar eventos/duraciones.
    - Cuidar cardinalidad (NO event_id, NO actor_id, NO SQL completo).
    - Exponer helpers para generar la respuesta /metrics.

Colaboradores:
    - infrastructure/repositories: saves, fallas, borrados.
    - application/coalescing: reutilizaciones de eventos.
    - infrastructure/db/instrumentation: duración de queries.
    - worker/jobs: unidades diferidas procesadas/descartadas.
===============================================================================
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_registry = CollectorRegistry()

# ------------------------
# Eventos
# ------------------------
_events_saved_total = Counter(
    "logify_events_saved_total",
    "Eventos persistidos (insert o update)",
    ["mode"],
    registry=_registry,
)

_events_save_failed_total = Counter(
    "logify_events_save_failed_total",
    "Saves de eventos revertidos por falla",
    registry=_registry,
)

_events_deleted_total = Counter(
    "logify_events_deleted_total",
    "Eventos borrados (flush sin cambios, retención o manual)",
    ["reason"],
    registry=_registry,
)

_events_coalesced_total = Counter(
    "logify_events_coalesced_total",
    "Notificaciones fusionadas en un evento existente",
    ["source"],
    registry=_registry,
)

# ------------------------
# Cola diferida
# ------------------------
_deferred_enqueued_total = Counter(
    "logify_deferred_enqueued_total",
    "Unidades diferidas encoladas",
    ["kind"],
    registry=_registry,
)

_deferred_processed_total = Counter(
    "logify_deferred_processed_total",
    "Unidades diferidas procesadas por status",
    ["status"],
    registry=_registry,
)

_deferred_duration = Histogram(
    "logify_deferred_duration_seconds",
    "Duración de procesamiento de una unidad diferida (segundos)",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
    registry=_registry,
)

# ------------------------
# DB (baja cardinalidad)
# ------------------------
_db_query_duration = Histogram(
    "logify_db_query_duration_seconds",
    "Duración de queries DB por tipo de statement (segundos)",
    ["kind"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
    registry=_registry,
)


def record_event_saved(mode: str) -> None:
    """Cuenta saves exitosos (mode: insert/update/merge)."""
    _events_saved_total.labels(mode=mode).inc()


def record_event_save_failed(count: int = 1) -> None:
    _events_save_failed_total.inc(count)


def record_event_deleted(reason: str, count: int = 1) -> None:
    """Cuenta borrados (reason: changeless/retention/manual)."""
    if count > 0:
        _events_deleted_total.labels(reason=reason).inc(count)


def record_event_coalesced(source: str) -> None:
    """Cuenta reutilizaciones (source: operation/store/concurrent/activity)."""
    _events_coalesced_total.labels(source=source).inc()


def record_deferred_enqueued(kind: str) -> None:
    _deferred_enqueued_total.labels(kind=kind).inc()


def record_deferred_processed(status: str) -> None:
    _deferred_processed_total.labels(status=status).inc()


def observe_deferred_duration(duration_seconds: float) -> None:
    _deferred_duration.observe(duration_seconds)


def observe_db_query_duration(kind: str, seconds: float) -> None:
    """Observa duración de una query DB.

    Reglas:
      - `kind` debe ser baja cardinalidad (SELECT/INSERT/UPDATE/...).
      - NO incluir SQL completo.
    """
    _db_query_duration.labels(kind=(kind or "UNKNOWN").upper()).observe(seconds)


def get_metrics_response() -> tuple[bytes, str]:
    """Genera el body y content-type para /metrics."""
    return generate_latest(_registry), CONTENT_TYPE_LATEST


def get_registry() -> CollectorRegistry:
    return _registry
