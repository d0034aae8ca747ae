"""Expand order records into dated, signed EUR cash events.

Auto-events (freight, duty, EUSt, VAT refund, FX fee) are derived fresh on every call from
the stored order plus settings; the stored record is never modified. DDP marks the import
cost events as disabled without touching their stored ``enabled`` flag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from cashplan.schemas.events import CashEvent, OrderExpansion, OrderValidation
from cashplan.schemas.orders import (
    AUTO_EVENT_TYPES,
    DDP_SUPPRESSED_TYPES,
    AutoEvent,
    Milestone,
    OrderBase,
)
from cashplan.schemas.settings import PlanningSettings
from cashplan.services.anchor_resolver import OrderAnchors, resolve_anchors
from cashplan.services.normalize import add_days, clamp_pct, month_end_after, round2

logger = logging.getLogger("cashplan.events")

_PERCENT_TOLERANCE = 1e-6

_DEFAULT_LABELS = {
    "freight": "Fracht",
    "duty": "Zoll",
    "eust": "EUSt",
    "vat_refund": "EUSt-Erstattung",
    "fx_fee": "FX-Gebühr",
}


def _first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _stored(order: OrderBase, event_type: str) -> Optional[AutoEvent]:
    return next((evt for evt in order.auto_events if evt.type == event_type), None)


def fx_rate_for(order: OrderBase, settings: PlanningSettings) -> float:
    if order.fx_override is not None and order.fx_override > 0:
        return float(order.fx_override)
    return float(settings.fx_rate or 0.0)


def to_eur(amount: float, fx: float) -> float:
    return amount / fx if fx > 0 else amount


def is_eur_denominated(order: OrderBase) -> bool:
    return order.source_currency == "EUR" or order.goods_eur is not None


def goods_eur(order: OrderBase, settings: PlanningSettings) -> float:
    if order.goods_eur is not None:
        return float(order.goods_eur)
    goods = max(0.0, float(order.goods_value))
    if order.source_currency == "EUR":
        return goods
    return to_eur(goods, fx_rate_for(order, settings))


def derive_auto_events(order: OrderBase, settings: PlanningSettings) -> List[AutoEvent]:
    """Return the five auto-events with defaults filled in, in evaluation order."""

    stored = {event_type: _stored(order, event_type) for event_type in AUTO_EVENT_TYPES}

    def build(event_type: str, **defaults) -> AutoEvent:
        current = stored[event_type]
        fields = {
            "id": f"auto-{event_type}",
            "type": event_type,
            "label": _DEFAULT_LABELS[event_type],
            "enabled": True,
            **defaults,
        }
        if current is not None:
            overrides = current.model_dump(exclude={"disabled_reason"})
            for name, value in overrides.items():
                if value is None or (name == "label" and not value):
                    continue
                fields[name] = value
        return AutoEvent(**fields)

    freight = build("freight", anchor="ETA", lag_days=settings.freight_lag_days)
    duty = build(
        "duty",
        percent=_first(order.duty_rate_pct, settings.duty_rate_pct),
        anchor="ETA",
        lag_days=0,
    )
    eust = build(
        "eust",
        percent=_first(order.eust_rate_pct, settings.eust_rate_pct),
        anchor=duty.anchor,
        lag_days=duty.lag_days,
    )
    refund_default = settings.vat_refund_enabled and order.vat_refund_enabled is not False
    vat_refund = build(
        "vat_refund",
        percent=100.0,
        anchor="ETA",
        lag_days=0,
        lag_months=_first(order.vat_refund_lag_months, settings.vat_refund_lag_months),
        enabled=refund_default,
    )
    first_ms = order.milestones[0] if order.milestones else None
    fx_fee = build(
        "fx_fee",
        percent=_first(order.fx_fee_pct, settings.fx_fee_pct),
        anchor=first_ms.anchor if first_ms else "ORDER_DATE",
        lag_days=first_ms.lag_days if first_ms else 0,
    )
    fx_fee = fx_fee.model_copy(update={"enabled": fx_fee.enabled and (fx_fee.percent or 0) > 0})

    derived = [freight, duty, eust, vat_refund, fx_fee]
    if order.ddp:
        derived = [
            evt.model_copy(update={"disabled_reason": "ddp"}) if evt.type in DDP_SUPPRESSED_TYPES else evt
            for evt in derived
        ]
    return derived


@dataclass
class _ExpansionContext:
    order: OrderBase
    settings: PlanningSettings
    anchors: OrderAnchors
    fx: float

    def event(
        self,
        *,
        day: date,
        event_type: str,
        kind: str,
        event_id: str,
        label: str,
        amount: float,
        auto: bool,
        milestone_id: Optional[str] = None,
        src_currency: Optional[str] = "EUR",
        src_amount: Optional[float] = None,
    ) -> CashEvent:
        key_parts = [day.isoformat(), event_type, self.order.id]
        if milestone_id:
            key_parts.append(milestone_id)
        return CashEvent(
            key="|".join(key_parts),
            event_id=event_id,
            date=day,
            type=event_type,
            kind=kind,
            label=label,
            order_id=self.order.id,
            order_number=self.order.display_number,
            entity_type=self.order.entity_type,
            amount_eur=amount,
            src_currency=src_currency,
            src_amount=src_amount if src_amount is not None else abs(amount),
            auto=auto,
            milestone_id=milestone_id,
        )


def _milestone_events(
    ctx: _ExpansionContext, milestone: Milestone, fx_fee: AutoEvent
) -> List[CashEvent]:
    base = ctx.anchors.get(milestone.anchor)
    due = add_days(base, milestone.lag_days)
    # No stable event id without a milestone id.
    if due is None or not milestone.id:
        return []

    order = ctx.order
    pct = clamp_pct(milestone.percent)
    if milestone.currency == "EUR" and milestone.value_eur is not None:
        converted = False
        src_currency = "EUR"
        src_amount = round2(abs(milestone.value_eur))
        eur = abs(milestone.value_eur)
    elif is_eur_denominated(order):
        converted = False
        src_currency = "EUR"
        eur = goods_eur(order, ctx.settings) * pct / 100
        src_amount = round2(eur)
    else:
        converted = ctx.fx > 0
        src_currency = order.source_currency
        source = max(0.0, order.goods_value) * pct / 100
        src_amount = round2(source)
        eur = to_eur(source, ctx.fx)

    amount = round2(-eur) or 0.0
    if amount == 0:
        return []

    events = [
        ctx.event(
            day=due,
            event_type=order.entity_type,
            kind="milestone",
            event_id=milestone.id,
            label=milestone.label,
            amount=amount,
            auto=False,
            milestone_id=milestone.id,
            src_currency=src_currency,
            src_amount=src_amount,
        )
    ]

    if converted and fx_fee.active:
        fee = round2(-(abs(amount) * clamp_pct(fx_fee.percent) / 100)) or 0.0
        if fee != 0:
            events.append(
                ctx.event(
                    day=due,
                    event_type="FX_FEE",
                    kind="fx_fee",
                    event_id=f"{milestone.id}-fx",
                    label=f"{fx_fee.label} {milestone.label}".strip(),
                    amount=fee,
                    auto=True,
                    milestone_id=milestone.id,
                )
            )
    return events


def _auto_due(ctx: _ExpansionContext, evt: AutoEvent) -> Optional[date]:
    return add_days(ctx.anchors.get(evt.anchor or "ETA"), evt.lag_days or 0)


def expand_order_events(order: OrderBase, settings: PlanningSettings) -> List[CashEvent]:
    """Expand one order into its cash events, sorted by ``(date, key)``."""

    anchors = resolve_anchors(order, settings)
    ctx = _ExpansionContext(order=order, settings=settings, anchors=anchors, fx=fx_rate_for(order, settings))
    auto = {evt.type: evt for evt in derive_auto_events(order, settings)}

    events: List[CashEvent] = []
    for milestone in order.milestones:
        events.extend(_milestone_events(ctx, milestone, auto["fx_fee"]))

    goods = goods_eur(order, settings)
    freight_abs = abs(order.freight_eur or 0.0)

    freight = auto["freight"]
    if freight.active and freight_abs:
        due = _auto_due(ctx, freight)
        if due is not None:
            events.append(
                ctx.event(
                    day=due,
                    event_type="FREIGHT",
                    kind="freight",
                    event_id=freight.id,
                    label=freight.label,
                    amount=-(round2(freight_abs) or 0.0),
                    auto=True,
                )
            )

    duty_amount = 0.0
    duty = auto["duty"]
    if duty.active:
        if order.duty_override_eur is not None:
            duty_amount = -(round2(abs(order.duty_override_eur)) or 0.0)
        else:
            include_freight = _first(order.duty_include_freight, settings.duty_include_freight)
            base = goods + (freight_abs if include_freight else 0.0)
            duty_amount = round2(-(base * clamp_pct(duty.percent) / 100)) or 0.0
        due = _auto_due(ctx, duty)
        if duty_amount != 0 and due is not None:
            events.append(
                ctx.event(
                    day=due,
                    event_type="DUTY",
                    kind="duty",
                    event_id=duty.id,
                    label=duty.label,
                    amount=duty_amount,
                    auto=True,
                )
            )
        elif due is None:
            duty_amount = 0.0

    eust_amount = 0.0
    eust_due: Optional[date] = None
    eust = auto["eust"]
    if eust.active:
        if order.eust_override_eur is not None:
            eust_amount = -(round2(abs(order.eust_override_eur)) or 0.0)
        else:
            base = goods + freight_abs + abs(duty_amount)
            eust_amount = round2(-(base * clamp_pct(eust.percent) / 100)) or 0.0
        eust_due = _auto_due(ctx, eust)
        if eust_amount != 0 and eust_due is not None:
            events.append(
                ctx.event(
                    day=eust_due,
                    event_type="EUST",
                    kind="eust",
                    event_id=eust.id,
                    label=eust.label,
                    amount=eust_amount,
                    auto=True,
                )
            )

    refund = auto["vat_refund"]
    refund_allowed = settings.vat_refund_enabled and order.vat_refund_enabled is not False
    if refund.active and refund_allowed and eust_amount != 0 and eust_due is not None:
        base_day = add_days(eust_due, refund.lag_days or 0)
        if base_day is not None:
            due = month_end_after(base_day, refund.lag_months or 0)
            amount = round2(abs(eust_amount) * clamp_pct(refund.percent) / 100) or 0.0
            if amount != 0:
                events.append(
                    ctx.event(
                        day=due,
                        event_type="VAT_REFUND",
                        kind="vat_refund",
                        event_id=refund.id,
                        label=refund.label,
                        amount=amount,
                        auto=True,
                    )
                )

    return sort_events(events)


def sort_events(events: Iterable[CashEvent]) -> List[CashEvent]:
    return sorted(events, key=lambda e: (e.date, e.key))


def validate_order(order: OrderBase) -> OrderValidation:
    errors: List[str] = []
    label = order.entity_type
    if not order.id:
        errors.append(f"{label} id is required")
    if not order.number:
        errors.append(f"{label} number is required")
    if order.order_date is None:
        errors.append("order date is required")
    if order.goods_value < 0:
        errors.append("goods value must be >= 0")
    if not order.milestones:
        errors.append("at least one milestone is required")

    total = 0.0
    for milestone in order.milestones:
        if not milestone.id:
            errors.append("milestone id is required")
        if milestone.percent < 0 or milestone.percent > 100:
            errors.append(f"milestone {milestone.id or milestone.label} percent must be between 0 and 100")
        total += milestone.percent
    if order.milestones and abs(total - 100) > _PERCENT_TOLERANCE:
        errors.append(f"milestone percent total must equal 100 (got {total:g})")

    return OrderValidation(ok=not errors, errors=errors)


def expand_order(order: OrderBase, settings: PlanningSettings) -> OrderExpansion:
    validation = validate_order(order)
    if not validation.ok:
        logger.info(
            "order_expansion_invalid",
            extra={"order_id": order.id, "entity_type": order.entity_type, "errors": validation.errors},
        )
    return OrderExpansion(
        order_id=order.id,
        entity_type=order.entity_type,
        events=expand_order_events(order, settings),
        validation=validation,
    )


def expand_all_orders(orders: Iterable[OrderBase], settings: PlanningSettings) -> List[CashEvent]:
    events: List[CashEvent] = []
    for order in orders:
        events.extend(expand_order_events(order, settings))
    return sort_events(events)
