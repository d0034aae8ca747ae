from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from cashplan.schemas.events import CashEvent, MonthlyCashBucket
from cashplan.schemas.journal import JournalMonthTotals, JournalRow
from cashplan.services.normalize import month_key, normalize_month, round2


def aggregate_events_by_month(
    events: Iterable[CashEvent], months: Optional[Sequence[str]] = None
) -> List[MonthlyCashBucket]:
    """Bucket events by calendar month.

    ``months`` fixes the output months (empty buckets included); otherwise every month
    that has an event is returned in ascending order. ``net`` is computed from the
    rounded inflow/outflow so ``net == inflow - outflow`` holds exactly.
    """

    by_month: Dict[str, List[CashEvent]] = {}
    for event in events:
        by_month.setdefault(month_key(event.date), []).append(event)

    if months is not None:
        wanted = [m for m in (normalize_month(m) for m in months) if m]
    else:
        wanted = sorted(by_month)

    buckets: List[MonthlyCashBucket] = []
    for month in wanted:
        items = sorted(by_month.get(month, []), key=lambda e: (e.date, e.key))
        inflow = round2(sum(e.amount_eur for e in items if e.amount_eur >= 0)) or 0.0
        outflow = round2(sum(abs(e.amount_eur) for e in items if e.amount_eur < 0)) or 0.0
        buckets.append(
            MonthlyCashBucket(
                month=month,
                inflow=inflow,
                outflow=outflow,
                net=round2(inflow - outflow) or 0.0,
                items=items,
            )
        )
    return buckets


def summarize_journal_by_month(rows: Iterable[JournalRow]) -> List[JournalMonthTotals]:
    """Per-month planned/actual sums and paid/open counts, keyed by effective month."""

    totals: Dict[str, dict] = {}
    for row in rows:
        month = month_key(row.effective_date) or row.month
        if not month:
            continue
        bucket = totals.setdefault(month, {"planned": 0.0, "actual": 0.0, "paid": 0, "open": 0})
        bucket["planned"] += row.amount_planned_eur or 0.0
        bucket["actual"] += row.amount_actual_eur or 0.0
        if row.status == "PAID":
            bucket["paid"] += 1
        else:
            bucket["open"] += 1

    return [
        JournalMonthTotals(
            month=month,
            planned_eur=round2(bucket["planned"]) or 0.0,
            actual_eur=round2(bucket["actual"]) or 0.0,
            paid_count=bucket["paid"],
            open_count=bucket["open"],
        )
        for month, bucket in sorted(totals.items())
    ]
