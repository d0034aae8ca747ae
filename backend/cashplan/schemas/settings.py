from __future__ import annotations

from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class CnyWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


class PlanningSettings(BaseModel):
    """Typed planning settings consumed by the cash-event engine.

    Rates ending in ``_pct`` are percentages (19 means 19 %). ``fx_rate`` is quoted as
    source-currency units per EUR, so ``eur = source_amount / fx_rate``.
    """

    model_config = ConfigDict(frozen=True)

    fx_rate: float = 0.0
    fx_fee_pct: float = 0.0
    eur_usd_rate: float = 0.0

    duty_rate_pct: float = 0.0
    duty_include_freight: bool = True
    eust_rate_pct: float = 0.0

    vat_refund_enabled: bool = True
    vat_refund_lag_months: int = 0
    freight_lag_days: int = 0

    # Legacy single window, applied to every year.
    cny_window: Optional[CnyWindow] = None
    cny_blackout_by_year: Dict[int, CnyWindow] = Field(default_factory=dict)
