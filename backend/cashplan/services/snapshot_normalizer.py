"""Normalize raw workspace snapshots into typed, immutable records.

Each external field is read through exactly one ordered alias tuple below; the first
present, non-blank alias wins. Records that cannot be identified (no id and no number)
are dropped silently.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from cashplan.schemas.journal import Product, Supplier, WorkspaceSnapshot
from cashplan.schemas.orders import (
    ANCHORS,
    AUTO_EVENT_TYPES,
    AutoEvent,
    ForecastOrder,
    ForecastPayment,
    Milestone,
    OrderItem,
    PaymentLogEntry,
    PurchaseOrder,
)
from cashplan.schemas.payments import Allocation, Payment
from cashplan.services.normalize import (
    is_paid_like,
    parse_bool,
    parse_date,
    parse_int,
    parse_number,
    pick,
    round2,
    text,
)
from cashplan.services.settings_normalizer import normalize_settings

logger = logging.getLogger("cashplan.snapshot")

_ORDER_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "po_number": ("poNo", "poNumber", "number"),
    "fo_number": ("foNo", "foNumber", "number"),
    "converted_po_no": ("convertedPoNo", "converted_po_no"),
    "status": ("status",),
    "archived": ("archived",),
    "order_date": ("orderDate", "order_date", "date"),
    "supplier_id": ("supplierId", "supplier_id", "supplier"),
    "supplier_name": ("supplierName", "supplier_name", "supplier"),
    "goods_value": ("goodsValueUsd", "goodsUsd", "goodsAmountUsd", "goods_value"),
    "source_currency": ("currency", "sourceCurrency", "source_currency"),
    "goods_eur": ("goodsEurOverride", "goods_eur"),
    "fx_override": ("fxOverride", "fx_override", "fxRate"),
    "fx_fee_pct": ("fxFeePct", "fx_fee_pct"),
    "prod_days": ("prodDays", "productionDays", "prod_days"),
    "transport": ("transport", "transportMode", "mode"),
    "transit_days": ("transitDays", "transportDays", "transit_days"),
    "etd_manual": ("etdManual", "etd_manual"),
    "eta_manual": ("etaManual", "eta_manual"),
    "ddp": ("ddp",),
    "freight_eur": ("freightEur", "freight_eur"),
    "freight_mode": ("freightMode", "freight_mode"),
    "freight_per_unit_eur": ("freightPerUnitEur", "freight_per_unit_eur"),
    "duty_rate_pct": ("dutyRatePct", "dutyPct", "duty_rate_pct"),
    "duty_include_freight": ("dutyIncludeFreight", "duty_include_freight"),
    "duty_override_eur": ("dutyOverrideEur", "duty_override_eur"),
    "eust_rate_pct": ("eustRatePct", "eust_rate_pct"),
    "eust_override_eur": ("eustOverrideEur", "eust_override_eur"),
    "vat_refund_enabled": ("vatRefundEnabled", "vat_refund_enabled"),
    "vat_refund_lag_months": ("vatRefundLagMonths", "vat_refund_lag_months"),
    "milestones": ("milestones",),
    "auto_events": ("autoEvents", "auto_events"),
    "payment_log": ("paymentLog", "payment_log"),
    "fo_payments": ("payments", "foPayments"),
    "items": ("items",),
}

_ITEM_FIELDS: dict[str, tuple[str, ...]] = {
    "sku": ("sku",),
    "units": ("units", "qty"),
    "unit_cost": ("unitCostUsd", "unitPriceUsd", "unit_cost"),
    "unit_extra": ("unitExtraUsd", "unit_extra"),
    "extra_flat": ("extraFlatUsd", "extra_flat"),
}

_MILESTONE_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "label": ("label", "name"),
    "percent": ("percent", "pct"),
    "anchor": ("anchor",),
    "lag_days": ("lagDays", "lag_days"),
    "currency": ("currency",),
    "value_eur": ("valueEur", "value_eur"),
}

_AUTO_EVENT_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "type": ("type",),
    "label": ("label",),
    "percent": ("percent",),
    "anchor": ("anchor",),
    "lag_days": ("lagDays", "lag_days"),
    "lag_months": ("lagMonths", "lag_months"),
    "enabled": ("enabled",),
    "ddp_backup": ("_ddpEnabledBackup",),
}

_LOG_FIELDS: dict[str, tuple[str, ...]] = {
    "status": ("status",),
    "paid": ("paid",),
    "paid_date": ("paidDate", "paid_date"),
    "due_date": ("dueDate", "due_date"),
    "amount_actual_eur": ("amountActualEur", "paidEurActual", "amount_actual_eur"),
    "amount_actual_usd": ("amountActualUsd", "paidUsdActual", "amount_actual_usd"),
    "amount_planned_eur": ("amountPlannedEur", "plannedEur", "amount_planned_eur"),
    "payment_id": ("paymentId", "payment_id"),
    "method": ("method",),
    "payer": ("payer", "paidBy"),
    "note": ("note",),
    "label": ("label",),
    "event_type": ("eventType", "event_type"),
    "payment_internal_id": ("paymentInternalId", "payment_internal_id"),
}

_PAYMENT_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "paid_date": ("paidDate", "paid_date"),
    "method": ("method",),
    "payer": ("payer",),
    "currency": ("currency",),
    "status": ("status",),
    "amount_actual_eur_total": ("amountActualEurTotal", "amount_actual_eur_total"),
    "amount_actual_usd_total": ("amountActualUsdTotal", "amount_actual_usd_total"),
    "allocations": ("allocations",),
    "covered_event_ids": ("coveredEventIds", "covered_event_ids"),
    "note": ("note",),
    "invoice_id_or_number": ("invoiceIdOrNumber", "invoice_id_or_number"),
    "transfer_reference": ("transferReference", "transfer_reference"),
}

_ALLOCATION_FIELDS: dict[str, tuple[str, ...]] = {
    "event_id": ("eventId", "plannedId", "event_id"),
    "amount_eur": ("amountEur", "amountActualEur", "actualEur", "actual", "amount_eur"),
    "amount_usd": ("amountUsd", "amountActualUsd", "actualUsd", "amount_usd"),
}

_FO_PAYMENT_FIELDS: dict[str, tuple[str, ...]] = {
    "id": ("id",),
    "label": ("label",),
    "category": ("category", "type"),
    "amount": ("amount", "amountEur"),
    "currency": ("currency",),
    "due_date": ("dueDate", "due_date"),
}

_SNAPSHOT_FIELDS: dict[str, tuple[str, ...]] = {
    "settings": ("settings",),
    "purchase_orders": ("pos", "purchaseOrders", "purchase_orders"),
    "forecast_orders": ("fos", "forecastOrders", "forecast_orders"),
    "payments": ("payments",),
    "suppliers": ("suppliers",),
    "products": ("products",),
}

_DEFAULT_TRANSPORT = "sea"
_MAX_PROD_DAYS = 3650
_TRANSPORTS = {"sea", "rail", "air"}


def _get(raw: Mapping[str, Any], table: Mapping[str, tuple[str, ...]], field: str) -> Any:
    return pick(raw, table[field])


def _opt_number(value: Any) -> Optional[float]:
    return parse_number(value)


def _opt_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    return int(round(number)) if number is not None else None


def _mappings(value: Any) -> list[Mapping[str, Any]]:
    if not isinstance(value, (list, tuple)):
        return []
    return [entry for entry in value if isinstance(entry, Mapping)]


def _normalize_item(raw: Mapping[str, Any]) -> OrderItem:
    return OrderItem(
        sku=text(_get(raw, _ITEM_FIELDS, "sku")),
        units=max(0, parse_int(_get(raw, _ITEM_FIELDS, "units"), default=0)),
        unit_cost=parse_number(_get(raw, _ITEM_FIELDS, "unit_cost")) or 0.0,
        unit_extra=parse_number(_get(raw, _ITEM_FIELDS, "unit_extra")) or 0.0,
        extra_flat=parse_number(_get(raw, _ITEM_FIELDS, "extra_flat")) or 0.0,
    )


def _items(raw: Mapping[str, Any]) -> list[OrderItem]:
    items = [_normalize_item(entry) for entry in _mappings(_get(raw, _ORDER_FIELDS, "items"))]
    if items:
        return items
    sku = text(raw.get("sku"))
    if sku:
        return [OrderItem(sku=sku, units=max(0, parse_int(raw.get("units"), default=0)))]
    return []


def _goods_value(raw: Mapping[str, Any], items: list[OrderItem]) -> float:
    # Sign is kept so validation can report negative values.
    header = parse_number(_get(raw, _ORDER_FIELDS, "goods_value"))
    if header is not None:
        return header
    total = sum((item.unit_cost + item.unit_extra) * item.units + item.extra_flat for item in items)
    return round2(total) or 0.0


def _freight_eur(raw: Mapping[str, Any], items: list[OrderItem]) -> float:
    mode = text(_get(raw, _ORDER_FIELDS, "freight_mode")).lower()
    if mode in {"per_unit", "per_unit_eur"}:
        per_unit = parse_number(_get(raw, _ORDER_FIELDS, "freight_per_unit_eur")) or 0.0
        units = sum(item.units for item in items)
        return max(0.0, round2(per_unit * units) or 0.0)
    return abs(parse_number(_get(raw, _ORDER_FIELDS, "freight_eur")) or 0.0)


def _normalize_milestone(raw: Mapping[str, Any], index: int) -> Milestone:
    # Id-less milestones are kept with an empty id; validation reports them.
    milestone_id = text(_get(raw, _MILESTONE_FIELDS, "id"))
    anchor = text(_get(raw, _MILESTONE_FIELDS, "anchor")).upper()
    currency = text(_get(raw, _MILESTONE_FIELDS, "currency")).upper() or None
    return Milestone(
        id=milestone_id,
        label=text(_get(raw, _MILESTONE_FIELDS, "label")) or f"MS {index + 1}",
        percent=parse_number(_get(raw, _MILESTONE_FIELDS, "percent")) or 0.0,
        anchor=anchor if anchor in ANCHORS else "ORDER_DATE",
        lag_days=parse_int(_get(raw, _MILESTONE_FIELDS, "lag_days"), default=0),
        currency=currency,
        value_eur=parse_number(_get(raw, _MILESTONE_FIELDS, "value_eur")),
    )


def _normalize_auto_event(raw: Mapping[str, Any], *, ddp: bool) -> Optional[AutoEvent]:
    event_type = text(_get(raw, _AUTO_EVENT_FIELDS, "type")).lower()
    if event_type not in AUTO_EVENT_TYPES:
        return None
    anchor = text(_get(raw, _AUTO_EVENT_FIELDS, "anchor")).upper()
    enabled = parse_bool(_get(raw, _AUTO_EVENT_FIELDS, "enabled"), default=True)

    # Records saved while DDP was on carry the pre-DDP flag; restore it once DDP is off.
    backup = parse_bool(_get(raw, _AUTO_EVENT_FIELDS, "ddp_backup"))
    if not ddp and backup is not None:
        enabled = backup

    return AutoEvent(
        id=text(_get(raw, _AUTO_EVENT_FIELDS, "id")) or f"auto-{event_type}",
        type=event_type,
        label=text(_get(raw, _AUTO_EVENT_FIELDS, "label")),
        percent=parse_number(_get(raw, _AUTO_EVENT_FIELDS, "percent")),
        anchor=anchor if anchor in ANCHORS else None,
        lag_days=_opt_int(_get(raw, _AUTO_EVENT_FIELDS, "lag_days")),
        lag_months=_opt_int(_get(raw, _AUTO_EVENT_FIELDS, "lag_months")),
        enabled=bool(enabled),
    )


def _paid_flag(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return is_paid_like(value) or parse_bool(value, default=False)


def _normalize_log_entry(raw: Mapping[str, Any]) -> PaymentLogEntry:
    return PaymentLogEntry(
        status=text(_get(raw, _LOG_FIELDS, "status")) or None,
        paid=_paid_flag(_get(raw, _LOG_FIELDS, "paid")),
        paid_date=parse_date(_get(raw, _LOG_FIELDS, "paid_date")),
        due_date=parse_date(_get(raw, _LOG_FIELDS, "due_date")),
        amount_actual_eur=_opt_number(_get(raw, _LOG_FIELDS, "amount_actual_eur")),
        amount_actual_usd=_opt_number(_get(raw, _LOG_FIELDS, "amount_actual_usd")),
        amount_planned_eur=_opt_number(_get(raw, _LOG_FIELDS, "amount_planned_eur")),
        payment_id=text(_get(raw, _LOG_FIELDS, "payment_id")) or None,
        method=text(_get(raw, _LOG_FIELDS, "method")),
        payer=text(_get(raw, _LOG_FIELDS, "payer")),
        note=text(_get(raw, _LOG_FIELDS, "note")),
        label=text(_get(raw, _LOG_FIELDS, "label")),
        event_type=text(_get(raw, _LOG_FIELDS, "event_type")).lower(),
        payment_internal_id=text(_get(raw, _LOG_FIELDS, "payment_internal_id")),
    )


def _normalize_fo_payment(raw: Mapping[str, Any]) -> ForecastPayment:
    return ForecastPayment(
        id=text(_get(raw, _FO_PAYMENT_FIELDS, "id")),
        label=text(_get(raw, _FO_PAYMENT_FIELDS, "label")),
        category=text(_get(raw, _FO_PAYMENT_FIELDS, "category")).lower(),
        amount=parse_number(_get(raw, _FO_PAYMENT_FIELDS, "amount")) or 0.0,
        currency=text(_get(raw, _FO_PAYMENT_FIELDS, "currency")).upper() or "EUR",
        due_date=parse_date(_get(raw, _FO_PAYMENT_FIELDS, "due_date")),
    )


def _payment_log(raw: Mapping[str, Any]) -> dict[str, PaymentLogEntry]:
    log = _get(raw, _ORDER_FIELDS, "payment_log")
    if not isinstance(log, Mapping):
        return {}
    out: dict[str, PaymentLogEntry] = {}
    for event_id, entry in log.items():
        key = text(event_id)
        if key and isinstance(entry, Mapping):
            out[key] = _normalize_log_entry(entry)
    return out


def normalize_order(
    raw: Mapping[str, Any], *, kind: str = "po"
) -> Optional[Union[PurchaseOrder, ForecastOrder]]:
    """Build a typed order from a raw PO/FO mapping, or ``None`` if unidentifiable."""

    if not isinstance(raw, Mapping):
        return None

    number_field = "fo_number" if kind == "fo" else "po_number"
    number = text(_get(raw, _ORDER_FIELDS, number_field))
    order_id = text(_get(raw, _ORDER_FIELDS, "id")) or number
    if not order_id:
        return None

    ddp = bool(parse_bool(_get(raw, _ORDER_FIELDS, "ddp"), default=False))
    items = _items(raw)
    transport = text(_get(raw, _ORDER_FIELDS, "transport")).lower()
    milestones = [
        _normalize_milestone(entry, idx)
        for idx, entry in enumerate(_mappings(_get(raw, _ORDER_FIELDS, "milestones")))
    ]
    auto_events = [
        evt
        for evt in (
            _normalize_auto_event(entry, ddp=ddp)
            for entry in _mappings(_get(raw, _ORDER_FIELDS, "auto_events"))
        )
        if evt is not None
    ]
    fx_override = parse_number(_get(raw, _ORDER_FIELDS, "fx_override"))

    fields: dict[str, Any] = dict(
        id=order_id,
        number=number,
        status=text(_get(raw, _ORDER_FIELDS, "status")),
        archived=bool(parse_bool(_get(raw, _ORDER_FIELDS, "archived"), default=False)),
        order_date=parse_date(_get(raw, _ORDER_FIELDS, "order_date")),
        supplier_id=text(_get(raw, _ORDER_FIELDS, "supplier_id")),
        supplier_name=text(_get(raw, _ORDER_FIELDS, "supplier_name")),
        items=items,
        goods_value=_goods_value(raw, items),
        source_currency=text(_get(raw, _ORDER_FIELDS, "source_currency")).upper() or "USD",
        goods_eur=parse_number(_get(raw, _ORDER_FIELDS, "goods_eur")),
        fx_override=fx_override if fx_override and fx_override > 0 else None,
        fx_fee_pct=parse_number(_get(raw, _ORDER_FIELDS, "fx_fee_pct")),
        prod_days=min(_MAX_PROD_DAYS, max(0, parse_int(_get(raw, _ORDER_FIELDS, "prod_days"), default=0))),
        transport=transport if transport in _TRANSPORTS else _DEFAULT_TRANSPORT,
        transit_days=_opt_int(_get(raw, _ORDER_FIELDS, "transit_days")),
        etd_manual=parse_date(_get(raw, _ORDER_FIELDS, "etd_manual")),
        eta_manual=parse_date(_get(raw, _ORDER_FIELDS, "eta_manual")),
        ddp=ddp,
        freight_eur=_freight_eur(raw, items),
        duty_rate_pct=parse_number(_get(raw, _ORDER_FIELDS, "duty_rate_pct")),
        duty_include_freight=parse_bool(_get(raw, _ORDER_FIELDS, "duty_include_freight")),
        duty_override_eur=parse_number(_get(raw, _ORDER_FIELDS, "duty_override_eur")),
        eust_rate_pct=parse_number(_get(raw, _ORDER_FIELDS, "eust_rate_pct")),
        eust_override_eur=parse_number(_get(raw, _ORDER_FIELDS, "eust_override_eur")),
        vat_refund_enabled=parse_bool(_get(raw, _ORDER_FIELDS, "vat_refund_enabled")),
        vat_refund_lag_months=_opt_int(_get(raw, _ORDER_FIELDS, "vat_refund_lag_months")),
        milestones=milestones,
        auto_events=auto_events,
        payment_log=_payment_log(raw),
    )

    if kind == "fo":
        return ForecastOrder(
            converted_po_no=text(_get(raw, _ORDER_FIELDS, "converted_po_no")),
            payments=[
                _normalize_fo_payment(entry)
                for entry in _mappings(_get(raw, _ORDER_FIELDS, "fo_payments"))
            ],
            **fields,
        )
    return PurchaseOrder(**fields)


def _normalize_allocation(raw: Mapping[str, Any]) -> Optional[Allocation]:
    event_id = text(_get(raw, _ALLOCATION_FIELDS, "event_id"))
    if not event_id:
        return None
    return Allocation(
        event_id=event_id,
        amount_eur=_opt_number(_get(raw, _ALLOCATION_FIELDS, "amount_eur")),
        amount_usd=_opt_number(_get(raw, _ALLOCATION_FIELDS, "amount_usd")),
    )


def normalize_payment(raw: Mapping[str, Any]) -> Optional[Payment]:
    if not isinstance(raw, Mapping):
        return None
    payment_id = text(_get(raw, _PAYMENT_FIELDS, "id"))
    if not payment_id:
        return None

    covered = _get(raw, _PAYMENT_FIELDS, "covered_event_ids")
    covered_ids = [text(v) for v in covered if text(v)] if isinstance(covered, (list, tuple)) else []

    return Payment(
        id=payment_id,
        paid_date=parse_date(_get(raw, _PAYMENT_FIELDS, "paid_date")),
        method=text(_get(raw, _PAYMENT_FIELDS, "method")),
        payer=text(_get(raw, _PAYMENT_FIELDS, "payer")),
        currency=text(_get(raw, _PAYMENT_FIELDS, "currency")).upper() or "EUR",
        status=text(_get(raw, _PAYMENT_FIELDS, "status")) or None,
        amount_actual_eur_total=_opt_number(_get(raw, _PAYMENT_FIELDS, "amount_actual_eur_total")),
        amount_actual_usd_total=_opt_number(_get(raw, _PAYMENT_FIELDS, "amount_actual_usd_total")),
        allocations=[
            a
            for a in (
                _normalize_allocation(entry)
                for entry in _mappings(_get(raw, _PAYMENT_FIELDS, "allocations"))
            )
            if a is not None
        ],
        covered_event_ids=covered_ids,
        note=text(_get(raw, _PAYMENT_FIELDS, "note")),
        invoice_id_or_number=text(_get(raw, _PAYMENT_FIELDS, "invoice_id_or_number")),
        transfer_reference=text(_get(raw, _PAYMENT_FIELDS, "transfer_reference")),
    )


def _collect(raw_list: Any, build) -> list:
    out = []
    for entry in _mappings(raw_list):
        item = build(entry)
        if item is not None:
            out.append(item)
    return out


def _supplier(raw: Mapping[str, Any]) -> Optional[Supplier]:
    name = text(raw.get("name"))
    return Supplier(id=text(raw.get("id")), name=name) if name else None


def _product(raw: Mapping[str, Any]) -> Optional[Product]:
    sku = text(raw.get("sku"))
    return Product(sku=sku, alias=text(raw.get("alias"))) if sku else None


def normalize_snapshot(raw: Optional[Mapping[str, Any]]) -> WorkspaceSnapshot:
    raw = raw if isinstance(raw, Mapping) else {}

    purchase_orders = _collect(
        _get(raw, _SNAPSHOT_FIELDS, "purchase_orders"), lambda r: normalize_order(r, kind="po")
    )
    forecast_orders = _collect(
        _get(raw, _SNAPSHOT_FIELDS, "forecast_orders"), lambda r: normalize_order(r, kind="fo")
    )

    snapshot = WorkspaceSnapshot(
        settings=normalize_settings(_get(raw, _SNAPSHOT_FIELDS, "settings")),
        purchase_orders=purchase_orders,
        forecast_orders=forecast_orders,
        payments=_collect(_get(raw, _SNAPSHOT_FIELDS, "payments"), normalize_payment),
        suppliers=_collect(_get(raw, _SNAPSHOT_FIELDS, "suppliers"), _supplier),
        products=_collect(_get(raw, _SNAPSHOT_FIELDS, "products"), _product),
    )
    logger.debug(
        "snapshot_normalized",
        extra={
            "purchase_orders": len(snapshot.purchase_orders),
            "forecast_orders": len(snapshot.forecast_orders),
            "payments": len(snapshot.payments),
        },
    )
    return snapshot
