from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from cashplan.schemas.orders import OrderBase
from cashplan.schemas.settings import CnyWindow, PlanningSettings

DEFAULT_TRANSIT_DAYS: dict[str, int] = {"sea": 60, "rail": 30, "air": 10}


@dataclass(frozen=True)
class OrderAnchors:
    order_date: Optional[date]
    prod_done: Optional[date]
    etd: Optional[date]
    eta: Optional[date]
    blackout_days: int = 0
    blackout_start: Optional[date] = None
    blackout_end: Optional[date] = None

    def get(self, anchor: Optional[str]) -> Optional[date]:
        if anchor == "ORDER_DATE":
            return self.order_date
        if anchor == "PROD_DONE":
            return self.prod_done
        if anchor == "ETD":
            return self.etd
        if anchor == "ETA":
            return self.eta
        return None


def transit_days_for(order: OrderBase) -> int:
    if order.transit_days is not None:
        return max(0, int(order.transit_days))
    return DEFAULT_TRANSIT_DAYS.get(order.transport, DEFAULT_TRANSIT_DAYS["sea"])


def _windows_for(day: date, settings: PlanningSettings) -> list[CnyWindow]:
    windows: list[CnyWindow] = []
    if settings.cny_window is not None:
        windows.append(settings.cny_window)
    # A window keyed by the previous year may run past New Year.
    for year in (day.year, day.year - 1):
        window = settings.cny_blackout_by_year.get(year)
        if window is not None:
            windows.append(window)
    return windows


def production_done(
    order_date: date, prod_days: int, settings: PlanningSettings
) -> tuple[date, int, Optional[date], Optional[date]]:
    """Walk ``prod_days`` production days forward from ``order_date``.

    Days inside a blackout window do not consume production days. Returns
    ``(prod_done, blackout_days, first_window_start, last_window_end)``.
    """

    current = order_date
    remaining = max(0, int(prod_days or 0))
    blackout_days = 0
    used_start: Optional[date] = None
    used_end: Optional[date] = None

    while remaining > 0:
        current = current + timedelta(days=1)
        hit = next((w for w in _windows_for(current, settings) if w.contains(current)), None)
        if hit is None:
            remaining -= 1
            continue
        blackout_days += 1
        used_start = hit.start if used_start is None or hit.start < used_start else used_start
        used_end = hit.end if used_end is None or hit.end > used_end else used_end

    return current, blackout_days, used_start, used_end


def resolve_anchors(order: OrderBase, settings: PlanningSettings) -> OrderAnchors:
    order_date = order.order_date
    prod_done: Optional[date] = None
    blackout_days = 0
    blackout_start: Optional[date] = None
    blackout_end: Optional[date] = None

    if order_date is not None:
        try:
            prod_done, blackout_days, blackout_start, blackout_end = production_done(
                order_date, order.prod_days, settings
            )
        except OverflowError:
            prod_done = None

    etd = order.etd_manual or prod_done
    eta = order.eta_manual
    if eta is None and etd is not None:
        try:
            eta = etd + timedelta(days=transit_days_for(order))
        except OverflowError:
            eta = None

    return OrderAnchors(
        order_date=order_date,
        prod_done=prod_done,
        etd=etd,
        eta=eta,
        blackout_days=blackout_days,
        blackout_start=blackout_start,
        blackout_end=blackout_end,
    )
