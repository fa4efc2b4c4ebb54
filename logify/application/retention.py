# =============================================================================
# FILE: application/retention.py
# =============================================================================
"""
===============================================================================
SERVICE: Retention cleanup
===============================================================================

Qué es:
    Borra eventos más viejos que el período configurado
    (KEEP_PERIOD_QUANTITY x KEEP_PERIOD_UNITS). Lo corre un job periódico.

Conversión a días (redondeo hacia arriba):
    day = 1, week = 7, month = 30.436875, year = 365.2425
===============================================================================
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from ..crosscutting.logger import logger
from ..crosscutting.metrics import record_event_deleted
from ..domain.repositories import EventRepository
from .coalescing import utc_now

DAYS_PER_UNIT: Final[dict[str, float]] = {
    "day": 1,
    "week": 7,
    "month": 30.436875,
    "year": 365.2425,
}


@dataclass(frozen=True)
class RetentionPolicy:
    quantity: int
    units: str

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError("quantity debe ser > 0")
        if self.units not in DAYS_PER_UNIT:
            raise ValueError(f"Unidad inválida: {self.units}")

    @property
    def days(self) -> int:
        return math.ceil(self.quantity * DAYS_PER_UNIT[self.units])

    def cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.days)


def purge_expired_events(
    repository: EventRepository,
    policy: RetentionPolicy,
    *,
    now: datetime | None = None,
) -> int:
    """Borra eventos con occurred_at anterior al corte; devuelve cuántos."""
    cutoff = policy.cutoff(now or utc_now())
    deleted = repository.delete_older_than(cutoff)
    record_event_deleted("retention", deleted)
    logger.info(
        "Retención aplicada",
        extra={"cutoff": cutoff.isoformat(), "deleted": deleted, "days": policy.days},
    )
    return deleted
