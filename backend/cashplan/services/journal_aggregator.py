from __future__ import annotations

import logging
import time
from typing import Any, Iterable, List, Mapping, Optional, Union

from cashplan.schemas.journal import JournalRow, WorkspaceSnapshot
from cashplan.services.display_lookup import build_display_lookup
from cashplan.services.normalize import month_key, normalize_month
from cashplan.services.payment_index import build_payment_index
from cashplan.services.reconciliation import (
    merge_grouped_payments,
    reconcile_forecast_orders,
    reconcile_purchase_orders,
)
from cashplan.services.snapshot_normalizer import normalize_snapshot

logger = logging.getLogger("cashplan.journal")

_SCOPES = {"paid", "open", "both"}


def dedupe_rows(rows: Iterable[JournalRow]) -> List[JournalRow]:
    seen: set[str] = set()
    out: List[JournalRow] = []
    for row in rows:
        if row.row_id in seen:
            continue
        seen.add(row.row_id)
        out.append(row)
    return out


def filter_rows(rows: Iterable[JournalRow], *, month: Optional[str], scope: str) -> List[JournalRow]:
    scope = scope if scope in _SCOPES else "both"
    month = normalize_month(month)

    def keep(row: JournalRow) -> bool:
        if scope == "paid" and row.status != "PAID":
            return False
        if scope == "open" and row.status != "OPEN":
            return False
        if month and month_key(row.effective_date) != month:
            return False
        return True

    return [row for row in rows if keep(row)]


def sort_rows(rows: Iterable[JournalRow]) -> List[JournalRow]:
    def key(row: JournalRow) -> tuple[str, str]:
        effective = row.effective_date
        ref = f"{row.entity_type}:{row.po_number or row.fo_number}:{row.payment_type}:{row.row_id}"
        return (effective.isoformat() if effective else "", ref)

    return sorted(rows, key=key)


def build_payment_journal(
    snapshot: Union[WorkspaceSnapshot, Mapping[str, Any], None],
    *,
    month: Optional[str] = None,
    scope: str = "both",
    include_fo: bool = True,
) -> List[JournalRow]:
    """Build the ordered payment journal for one workspace snapshot.

    Accepts either a typed snapshot or the raw mapping a UI would persist; raw input is
    normalized first. Output order is a total order, so repeated calls are stable.
    """

    started = time.perf_counter()
    if not isinstance(snapshot, WorkspaceSnapshot):
        snapshot = normalize_snapshot(snapshot)

    settings = snapshot.settings
    index = build_payment_index(snapshot.payments)
    lookup = build_display_lookup(snapshot)

    po_rows = merge_grouped_payments(reconcile_purchase_orders(snapshot, settings, index, lookup), index)
    fo_rows = reconcile_forecast_orders(snapshot, settings, lookup) if include_fo else []

    rows = sort_rows(filter_rows(dedupe_rows(po_rows + fo_rows), month=month, scope=scope))

    logger.info(
        "payment_journal_built",
        extra={
            "rows": len(rows),
            "purchase_orders": len(snapshot.purchase_orders),
            "forecast_orders": len(snapshot.forecast_orders) if include_fo else 0,
            "payments": len(snapshot.payments),
            "month": normalize_month(month) or None,
            "scope": scope if scope in _SCOPES else "both",
            "duration_ms": int((time.perf_counter() - started) * 1000),
        },
    )
    return rows
