from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from cashplan.schemas.settings import CnyWindow, PlanningSettings
from cashplan.services.normalize import parse_bool, parse_date, parse_int, parse_number, pick

logger = logging.getLogger("cashplan.settings")

# External field -> ordered aliases. First present, non-blank alias wins.
_FIELDS: dict[str, tuple[str, ...]] = {
    "fx_rate": ("fxRate", "fx_rate"),
    "fx_fee_pct": ("fxFeePct", "fx_fee_pct"),
    "eur_usd_rate": ("eurUsdRate", "eur_usd_rate"),
    "duty_rate_pct": ("dutyRatePct", "duty_rate_pct"),
    "duty_include_freight": ("dutyIncludeFreight", "duty_include_freight"),
    "eust_rate_pct": ("eustRatePct", "eust_rate_pct"),
    "vat_refund_enabled": ("vatRefundEnabled", "vat_refund_enabled"),
    "vat_refund_lag_months": ("vatRefundLagMonths", "vat_refund_lag_months"),
    "freight_lag_days": ("freightLagDays", "freight_lag_days"),
    "cny_window": ("cny", "cny_window"),
    "cny_blackout_by_year": ("cnyBlackoutByYear", "cny_blackout_by_year"),
}


def _number(raw: Mapping[str, Any], field: str) -> float:
    value = parse_number(pick(raw, _FIELDS[field]))
    return float(value) if value is not None else 0.0


def _lag(raw: Mapping[str, Any], field: str) -> int:
    return max(0, parse_int(pick(raw, _FIELDS[field]), default=0))


def _window(raw: Any, *, label: str) -> Optional[CnyWindow]:
    if not isinstance(raw, Mapping):
        return None
    start = parse_date(raw.get("start"))
    end = parse_date(raw.get("end"))
    if start is None and end is None:
        return None
    if start is None or end is None or end < start:
        logger.warning(
            "cny_window_invalid",
            extra={"window": label, "start": raw.get("start"), "end": raw.get("end")},
        )
        return None
    return CnyWindow(start=start, end=end)


def normalize_settings(raw: Optional[Mapping[str, Any]]) -> PlanningSettings:
    """Parse a raw settings mapping (UI/storage shape) into ``PlanningSettings``."""

    raw = raw if isinstance(raw, Mapping) else {}

    by_year: dict[int, CnyWindow] = {}
    raw_by_year = pick(raw, _FIELDS["cny_blackout_by_year"])
    if isinstance(raw_by_year, Mapping):
        for year_key, entry in raw_by_year.items():
            year = parse_int(year_key, default=0)
            if year <= 0:
                continue
            window = _window(entry, label=str(year_key))
            if window is not None:
                by_year[year] = window

    return PlanningSettings(
        fx_rate=max(0.0, _number(raw, "fx_rate")),
        fx_fee_pct=max(0.0, _number(raw, "fx_fee_pct")),
        eur_usd_rate=max(0.0, _number(raw, "eur_usd_rate")),
        duty_rate_pct=max(0.0, _number(raw, "duty_rate_pct")),
        duty_include_freight=parse_bool(pick(raw, _FIELDS["duty_include_freight"]), default=True),
        eust_rate_pct=max(0.0, _number(raw, "eust_rate_pct")),
        vat_refund_enabled=parse_bool(pick(raw, _FIELDS["vat_refund_enabled"]), default=True),
        vat_refund_lag_months=_lag(raw, "vat_refund_lag_months"),
        freight_lag_days=_lag(raw, "freight_lag_days"),
        cny_window=_window(pick(raw, _FIELDS["cny_window"]), label="global"),
        cny_blackout_by_year=by_year,
    )
