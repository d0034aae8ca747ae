"""Reconcile expected order cash events against recorded payments.

Every outgoing PO event ends in one of two states, PAID or OPEN. Ambiguity never raises:
it is reported through per-row issue codes so callers can decide how to present it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from cashplan.schemas.events import CashEvent
from cashplan.schemas.journal import JournalRow, WorkspaceSnapshot
from cashplan.schemas.orders import ForecastOrder, PaymentLogEntry, PurchaseOrder
from cashplan.schemas.payments import Payment
from cashplan.schemas.settings import PlanningSettings
from cashplan.services.display_lookup import PLACEHOLDER, DisplayLookup, combine_display, unique
from cashplan.services.event_expander import expand_order_events
from cashplan.services.normalize import is_paid_like, month_key, round2
from cashplan.services.payment_index import PaymentIndex

logger = logging.getLogger("cashplan.reconciliation")

MISSING_ACTUAL_AMOUNT = "MISSING_ACTUAL_AMOUNT"
IST_FEHLT = "IST_FEHLT"
PRO_RATA_ALLOCATION = "PRO_RATA_ALLOCATION"
GROUPED_PAYMENT = "GROUPED_PAYMENT"
DATE_UNCERTAIN = "DATE_UNCERTAIN"
PAID_WITHOUT_DATE = "PAID_WITHOUT_DATE"
AUTO_GENERATED = "AUTO_GENERATED"

POSITION_ORDER = (
    "Deposit",
    "Balance",
    "Balance2",
    "Shipping",
    "EUSt",
    "Zoll",
    "EUSt-Erstattung",
    "Other",
)
RELEVANT_POSITIONS = frozenset(POSITION_ORDER[:-1])

FO_PLANNING_STATUSES = frozenset({"DRAFT", "ACTIVE"})


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------


def sort_positions(values: Iterable[str]) -> List[str]:
    def rank(value: str) -> int:
        return POSITION_ORDER.index(value) if value in POSITION_ORDER else len(POSITION_ORDER) + 1

    return sorted(unique(values), key=rank)


def classify_positions(label: str, event_type: str = "") -> List[str]:
    """Map an event label/type to bookkeeping positions.

    FX events return an empty list; anything unrecognised returns ``["Other"]``.
    """

    lowered = (label or "").lower()
    kind = (event_type or "").lower()
    if kind == "fx_fee" or "fx" in lowered:
        return []

    found: List[str] = []
    if kind == "freight":
        found.append("Shipping")
    if kind == "duty":
        found.append("Zoll")
    if kind == "eust":
        found.append("EUSt")
    if kind in ("vat_refund", "eust_refund"):
        found.append("EUSt-Erstattung")

    if "deposit" in lowered or "anzahlung" in lowered:
        found.append("Deposit")
    if "balance2" in lowered or "balance 2" in lowered or "second balance" in lowered:
        found.append("Balance2")
    elif "balance" in lowered or "rest" in lowered:
        found.append("Balance")
    if "shipping" in lowered or "fracht" in lowered:
        found.append("Shipping")
    if "eust" in lowered:
        found.append("EUSt")
    if "zoll" in lowered or "custom" in lowered or "duty" in lowered:
        found.append("Zoll")
    if "refund" in lowered and "eust" in lowered:
        found.append("EUSt-Erstattung")

    return sort_positions(found) or ["Other"]


def has_relevant_position(positions: Iterable[str]) -> bool:
    return any(p in RELEVANT_POSITIONS for p in positions)


def format_positions(positions: Iterable[str]) -> str:
    return "+".join(sort_positions(positions)) or "Other"


def payment_channel(method: Optional[str]) -> str:
    text = (method or "").strip().lower()
    if not text:
        return "OTHER"
    if "wise" in text or "transferwise" in text:
        return "WISE"
    if "alibaba" in text or "trade assurance" in text:
        return "ALIBABA_TA"
    if "paypal" in text:
        return "PAYPAL"
    if "sepa" in text or "bank transfer" in text or "ueberweisung" in text:
        return "SEPA"
    return "OTHER"


def normalize_fo_status(value: Optional[str]) -> str:
    raw = (value or "").strip().upper()
    if not raw:
        return "DRAFT"
    if raw == "PLANNED":
        return "ACTIVE"
    if raw == "CANCELLED":
        return "ARCHIVED"
    return raw


def is_fo_planning_status(value: Optional[str]) -> bool:
    return normalize_fo_status(value) in FO_PLANNING_STATUSES


def is_actual_usable(amount: Optional[float], planned: Optional[float]) -> bool:
    if amount is None:
        return False
    if amount > 0:
        return True
    return amount == 0 and planned is not None and planned == 0


def allocate_pro_rata(total: float, planned: Sequence[float]) -> Optional[List[float]]:
    """Split ``total`` proportionally to ``planned``, rounded to the cent.

    The rounding remainder goes to the largest planned amount; on a tie the last of the
    tied entries receives it. Returns ``None`` when nothing is planned.
    """

    values = [float(p or 0.0) for p in planned]
    planned_sum = sum(values)
    if not values or planned_sum <= 0:
        return None

    shares = [round2(total * value / planned_sum) or 0.0 for value in values]
    remainder = round2(total - sum(shares)) or 0.0
    if remainder != 0:
        largest = max(values)
        target = max(i for i, value in enumerate(values) if value == largest)
        shares[target] = round2(shares[target] + remainder) or 0.0
    return shares


# ---------------------------------------------------------------------------
# PO event lines
# ---------------------------------------------------------------------------


@dataclass
class _Line:
    order: PurchaseOrder
    event: CashEvent
    log: Optional[PaymentLogEntry]
    positions: List[str]
    payment_id: str
    payment: Optional[Payment]
    linked_directly: bool
    status: str
    planned: float
    due_date: Optional[date]
    paid_date: Optional[date]
    issues: List[str] = field(default_factory=list)


def _is_active_po(order: PurchaseOrder) -> bool:
    return not order.archived and order.status.strip().upper() != "CANCELLED"


def _line_status(log: Optional[PaymentLogEntry], payment: Optional[Payment]) -> str:
    if log is not None and (is_paid_like(log.status) or log.paid is True):
        return "PAID"
    if payment is not None and (payment.status is None or is_paid_like(payment.status)):
        return "PAID"
    return "OPEN"


def _collect_lines(
    order: PurchaseOrder, events: List[CashEvent], index: PaymentIndex
) -> List[_Line]:
    lines: List[_Line] = []
    for event in events:
        if event.amount_eur >= 0 or event.kind == "fx_fee":
            continue
        positions = classify_positions(event.label, event.kind)
        if not has_relevant_position(positions):
            continue

        log = order.payment_log.get(event.event_id)
        log_payment_id = log.payment_id if log is not None else None
        payment_id = log_payment_id or index.payment_id_by_event.get(event.event_id) or ""
        payment = index.payment(payment_id)
        status = _line_status(log, payment)

        paid_date = (payment.paid_date if payment else None) or (log.paid_date if log else None)
        issues: List[str] = []
        if status == "PAID" and paid_date is None:
            paid_date = event.date
            issues.append(DATE_UNCERTAIN)

        lines.append(
            _Line(
                order=order,
                event=event,
                log=log,
                positions=positions,
                payment_id=payment_id,
                payment=payment,
                linked_directly=bool(log_payment_id) or event.event_id in index.allocation_by_event,
                status=status,
                planned=abs(event.amount_eur),
                due_date=event.date,
                paid_date=paid_date,
                issues=issues,
            )
        )
    return lines


def _resolve_actual(
    line: _Line,
    shared: Dict[str, List[_Line]],
    index: PaymentIndex,
) -> Optional[float]:
    planned = line.planned
    event_id = line.event.event_id

    direct = line.log.amount_actual_eur if line.log is not None else None
    if direct is not None:
        if not is_actual_usable(direct, planned):
            line.issues.append(MISSING_ACTUAL_AMOUNT)
        return direct

    allocation = index.allocation_for(line.payment_id, event_id)
    if allocation is not None and is_actual_usable(allocation.amount_eur, planned):
        return allocation.amount_eur

    payment = line.payment
    if payment is not None and line.linked_directly and payment.amount_actual_eur_total is not None:
        related = shared.get(line.payment_id, [])
        if len(related) > 1:
            shares = allocate_pro_rata(payment.amount_actual_eur_total, [r.planned for r in related])
            if shares is not None:
                share = shares[next(i for i, r in enumerate(related) if r is line)]
                if is_actual_usable(share, planned):
                    line.issues.append(PRO_RATA_ALLOCATION)
                    return share
        elif is_actual_usable(payment.amount_actual_eur_total, planned):
            return payment.amount_actual_eur_total

    if not line.linked_directly and line.paid_date is not None:
        for payment_id in index.covered_by_event.get(event_id, ()):
            candidate = index.payment(payment_id)
            if candidate is None or candidate.paid_date != line.paid_date:
                continue
            if is_actual_usable(candidate.amount_actual_eur_total, planned):
                return candidate.amount_actual_eur_total

    line.issues.append(MISSING_ACTUAL_AMOUNT)
    return None


def _row_from_line(line: _Line, actual: Optional[float], lookup: DisplayLookup) -> JournalRow:
    order = line.order
    log = line.log
    payment = line.payment
    issues = list(line.issues)

    if line.status == "PAID":
        if not is_actual_usable(actual, line.planned):
            actual = line.planned
            issues.append(IST_FEHLT)
        if not line.payment_id or payment is None:
            issues.append(AUTO_GENERATED)
    else:
        actual = None

    method = (payment.method if payment else "") or (log.method if log else "")
    meta = lookup.item_meta(order)
    effective = line.paid_date if line.status == "PAID" else line.due_date
    return JournalRow(
        row_id=f"PO-EVT-{order.id}-{line.event.event_id}",
        event_id=line.event.event_id,
        month=month_key(effective),
        entity_type="PO",
        po_number=order.display_number,
        supplier_name=lookup.supplier_name(order),
        sku_aliases=meta.sku_aliases,
        item_summary=meta.item_summary,
        payment_type=format_positions(line.positions),
        included_positions=line.positions,
        status=line.status,
        due_date=line.due_date,
        paid_date=line.paid_date,
        payment_id=line.payment_id,
        payment_channel=payment_channel(method),
        amount_planned_eur=round2(line.planned),
        amount_actual_eur=round2(actual),
        payer=(payment.payer if payment else "") or (log.payer if log else ""),
        payment_method=method,
        note=(log.note if log else "") or (payment.note if payment else ""),
        internal_id=(log.payment_internal_id if log else "") or line.event.event_id,
        issues=unique(issues),
    )


def _legacy_rows(
    order: PurchaseOrder,
    known_event_ids: set,
    index: PaymentIndex,
    lookup: DisplayLookup,
) -> List[JournalRow]:
    """Rows for paid log entries whose event no longer exists on the order."""

    rows: List[JournalRow] = []
    for event_id, log in order.payment_log.items():
        if event_id in known_event_ids:
            continue
        if not (is_paid_like(log.status) or log.paid is True):
            continue
        positions = classify_positions(log.label or event_id, log.event_type)
        if not has_relevant_position(positions):
            continue

        payment_id = log.payment_id or index.payment_id_by_event.get(event_id) or ""
        payment = index.payment(payment_id)
        issues = [AUTO_GENERATED]

        due_date = log.due_date
        paid_date = (payment.paid_date if payment else None) or log.paid_date
        if paid_date is None and due_date is not None:
            paid_date = due_date
            issues.append(DATE_UNCERTAIN)
        if paid_date is None:
            issues.append(PAID_WITHOUT_DATE)

        planned = log.amount_planned_eur
        actual = log.amount_actual_eur
        if actual is None and payment is not None:
            actual = payment.amount_actual_eur_total
        if not is_actual_usable(actual, planned):
            actual = planned
            issues.append(IST_FEHLT)

        method = (payment.method if payment else "") or log.method
        meta = lookup.item_meta(order)
        rows.append(
            JournalRow(
                row_id=f"PO-LEGACY-{order.id}-{event_id}",
                event_id=event_id,
                month=month_key(paid_date),
                entity_type="PO",
                po_number=order.display_number,
                supplier_name=lookup.supplier_name(order),
                sku_aliases=meta.sku_aliases,
                item_summary=meta.item_summary,
                payment_type=format_positions(positions),
                included_positions=positions,
                status="PAID",
                due_date=due_date,
                paid_date=paid_date,
                payment_id=payment_id,
                payment_channel=payment_channel(method),
                amount_planned_eur=round2(planned),
                amount_actual_eur=round2(actual),
                payer=(payment.payer if payment else "") or log.payer,
                payment_method=method,
                note=(payment.note if payment else "") or log.note,
                internal_id=log.payment_internal_id or event_id,
                issues=unique(issues),
            )
        )
    return rows


def reconcile_purchase_orders(
    snapshot: WorkspaceSnapshot,
    settings: PlanningSettings,
    index: PaymentIndex,
    lookup: DisplayLookup,
) -> List[JournalRow]:
    """One row per reconcilable outgoing PO event, plus legacy rows for orphaned paid logs."""

    lines: List[_Line] = []
    legacy: List[JournalRow] = []
    for order in snapshot.purchase_orders:
        if not _is_active_po(order):
            continue
        events = expand_order_events(order, settings)
        lines.extend(_collect_lines(order, events, index))
        legacy.extend(_legacy_rows(order, {e.event_id for e in events}, index, lookup))

    # Pro-rata splits span every PO in the snapshot that links to the same payment.
    shared: Dict[str, List[_Line]] = {}
    for line in lines:
        if line.status == "PAID" and line.linked_directly and line.payment_id:
            shared.setdefault(line.payment_id, []).append(line)

    rows: List[JournalRow] = []
    for line in lines:
        actual = _resolve_actual(line, shared, index) if line.status == "PAID" else None
        rows.append(_row_from_line(line, actual, lookup))

    logger.debug("purchase_orders_reconciled", extra={"rows": len(rows), "legacy_rows": len(legacy)})
    return rows + legacy


def merge_grouped_payments(rows: Iterable[JournalRow], index: PaymentIndex) -> List[JournalRow]:
    """Collapse PAID rows that share a payment id into one grouped row."""

    output: List[JournalRow] = []
    groups: Dict[str, List[JournalRow]] = {}
    for row in rows:
        if row.status == "PAID" and row.payment_id:
            groups.setdefault(row.payment_id, []).append(row)
        else:
            output.append(row)

    for payment_id, group in groups.items():
        if len(group) == 1:
            output.append(group[0])
            continue
        output.append(_merge_group(payment_id, group, index))
    return output


def _merge_group(payment_id: str, group: List[JournalRow], index: PaymentIndex) -> JournalRow:
    payment = index.payment(payment_id)
    positions = sort_positions(p for row in group for p in row.included_positions)
    issues = unique([issue for row in group for issue in row.issues] + [GROUPED_PAYMENT])

    planned = round2(sum(row.amount_planned_eur or 0.0 for row in group)) or 0.0
    actual = payment.amount_actual_eur_total if payment else None
    if not is_actual_usable(actual, planned):
        actual = round2(sum(row.amount_actual_eur or 0.0 for row in group))
    if not is_actual_usable(actual, planned):
        actual = planned
        issues.append(IST_FEHLT)

    due_dates = sorted(row.due_date for row in group if row.due_date is not None)
    due_date = due_dates[0] if due_dates else None
    paid_candidates = sorted(row.paid_date for row in group if row.paid_date is not None)
    paid_date = (payment.paid_date if payment else None) or (paid_candidates[0] if paid_candidates else None)
    if paid_date is None and due_date is not None:
        paid_date = due_date
        issues.append(DATE_UNCERTAIN)

    month = month_key(paid_date)
    po_numbers = unique(row.po_number for row in group)
    aliases = unique(
        alias.strip()
        for row in group
        for alias in row.sku_aliases.split(",")
        if alias.strip() and alias.strip() != PLACEHOLDER
    )
    method = (payment.method if payment else "") or next(
        (r.payment_method for r in group if r.payment_method), ""
    )

    return JournalRow(
        row_id=f"PO-PAY-{payment_id}-{month or 'undated'}-{po_numbers[0] if po_numbers else 'po'}",
        event_id="|".join(row.event_id for row in group),
        month=month,
        entity_type="PO",
        po_number=combine_display(po_numbers) or PLACEHOLDER,
        supplier_name=combine_display([row.supplier_name for row in group]) or PLACEHOLDER,
        sku_aliases=", ".join(aliases) or PLACEHOLDER,
        item_summary=combine_display(aliases) or PLACEHOLDER,
        payment_type=format_positions(positions),
        included_positions=positions,
        status="PAID",
        due_date=due_date,
        paid_date=paid_date,
        payment_id=payment_id,
        payment_channel=payment_channel(method),
        amount_planned_eur=planned,
        amount_actual_eur=round2(actual),
        payer=(payment.payer if payment else "") or next((r.payer for r in group if r.payer), ""),
        payment_method=method,
        note=(payment.note if payment else "") or next((r.note for r in group if r.note), ""),
        internal_id=payment_id,
        issues=unique(issues),
    )


def _planned_from_payments(order: ForecastOrder) -> List[tuple]:
    """``(event_id, due_date, label, category, planned_eur)`` for stored FO payments."""

    fx = float(order.fx_override or 0.0)
    planned: List[tuple] = []
    for payment in order.payments:
        if payment.category == "eust_refund" or payment.amount <= 0:
            continue
        label = payment.label or payment.category
        positions = classify_positions(label, payment.category)
        if payment.currency == "EUR" or fx <= 0:
            amount = payment.amount
        else:
            amount = payment.amount / fx
        due = payment.due_date.isoformat() if payment.due_date else ""
        event_id = payment.id or f"{order.id}-{format_positions(positions)}-{due}"
        planned.append((event_id, payment.due_date, label, payment.category, amount))
    return planned


def _planned_from_events(order: ForecastOrder, settings: PlanningSettings) -> List[tuple]:
    return [
        (event.event_id, event.date, event.label, event.kind, abs(event.amount_eur))
        for event in expand_order_events(order, settings)
        if event.kind not in ("fx_fee", "vat_refund") and event.amount_eur != 0
    ]


def _forecast_rows(
    order: ForecastOrder, settings: PlanningSettings, lookup: DisplayLookup
) -> List[JournalRow]:
    if order.payments:
        planned = _planned_from_payments(order)
    else:
        planned = _planned_from_events(order, settings)

    rows: List[JournalRow] = []
    meta = lookup.item_meta(order)
    for event_id, due_date, label, kind, amount in planned:
        positions = classify_positions(label, kind)
        if not has_relevant_position(positions):
            continue
        rows.append(
            JournalRow(
                row_id=f"FO-{order.id}-{event_id}",
                event_id=event_id,
                month=month_key(due_date),
                entity_type="FO",
                po_number=order.converted_po_no,
                fo_number=order.display_number,
                supplier_name=lookup.supplier_name(order),
                sku_aliases=meta.sku_aliases,
                item_summary=meta.item_summary,
                payment_type=format_positions(positions),
                included_positions=positions,
                status="OPEN",
                due_date=due_date,
                amount_planned_eur=round2(amount),
                internal_id=order.id,
            )
        )
    return rows


def reconcile_forecast_orders(
    snapshot: WorkspaceSnapshot, settings: PlanningSettings, lookup: DisplayLookup
) -> List[JournalRow]:
    """Forecast orders are never paid; planning-status records yield OPEN rows."""

    rows: List[JournalRow] = []
    for order in snapshot.forecast_orders:
        if order.archived or not is_fo_planning_status(order.status):
            continue
        rows.extend(_forecast_rows(order, settings, lookup))
    return rows
