from datetime import date

import pytest

from cashplan.services.event_expander import (
    derive_auto_events,
    expand_order,
    expand_order_events,
    validate_order,
)
from cashplan.services.settings_normalizer import normalize_settings
from cashplan.services.snapshot_normalizer import normalize_order


def _expand(raw_po, raw_settings):
    return expand_order_events(normalize_order(raw_po), normalize_settings(raw_settings))


def _by_type(events, event_type):
    return [e for e in events if e.type == event_type]


def test_reference_po_expands_to_expected_schedule(reference_po, reference_settings):
    events = _expand(reference_po, reference_settings)

    assert [(e.date, e.type) for e in events] == [
        (date(2025, 2, 21), "FX_FEE"),
        (date(2025, 2, 21), "PO"),
        (date(2025, 4, 22), "FX_FEE"),
        (date(2025, 4, 22), "PO"),
        (date(2025, 6, 21), "DUTY"),
        (date(2025, 6, 21), "EUST"),
        (date(2025, 7, 5), "FREIGHT"),
        (date(2025, 8, 31), "VAT_REFUND"),
    ]

    deposit, balance = _by_type(events, "PO")
    assert deposit.amount_eur == -1426.74
    assert deposit.src_currency == "USD"
    assert deposit.src_amount == 1227.0
    assert balance.amount_eur == -3329.07
    assert balance.key == "2025-04-22|PO|po-25007|m2"

    deposit_fee = _by_type(events, "FX_FEE")[0]
    assert deposit_fee.amount_eur == -7.13
    assert deposit_fee.event_id == "m1-fx"
    assert deposit_fee.label == "FX-Gebühr Deposit 30%"

    assert _by_type(events, "FREIGHT")[0].amount_eur == -368.5
    assert _by_type(events, "DUTY")[0].amount_eur == -309.13
    assert _by_type(events, "EUST")[0].amount_eur == -1032.35
    assert _by_type(events, "VAT_REFUND")[0].amount_eur == 1032.35


def test_expansion_is_idempotent(reference_po, reference_settings):
    first = _expand(reference_po, reference_settings)
    second = _expand(reference_po, reference_settings)

    assert [e.model_dump() for e in first] == [e.model_dump() for e in second]


def test_event_signs_follow_direction(reference_po, reference_settings):
    events = _expand(reference_po, reference_settings)

    assert all(e.amount_eur > 0 for e in events if e.type == "VAT_REFUND")
    assert all(e.amount_eur < 0 for e in events if e.type != "VAT_REFUND")


def test_invalid_percent_total_still_returns_events(reference_po, reference_settings):
    reference_po["milestones"][1]["percent"] = 60

    expansion = expand_order(normalize_order(reference_po), normalize_settings(reference_settings))

    assert expansion.validation.ok is False
    assert any("total must equal 100" in err for err in expansion.validation.errors)
    assert len(_by_type(expansion.events, "PO")) == 2


def test_validate_order_reports_missing_fields():
    order = normalize_order({"id": "po-x", "goodsValueUsd": -5})

    result = validate_order(order)

    assert result.ok is False
    assert "PO number is required" in result.errors
    assert "order date is required" in result.errors
    assert "goods value must be >= 0" in result.errors
    assert "at least one milestone is required" in result.errors


def test_ddp_suppresses_import_costs_but_keeps_fx_fees(reference_po, reference_settings):
    reference_po["ddp"] = True

    events = _expand(reference_po, reference_settings)

    assert {e.type for e in events} == {"PO", "FX_FEE"}
    derived = {
        evt.type: evt
        for evt in derive_auto_events(normalize_order(reference_po), normalize_settings(reference_settings))
    }
    assert derived["freight"].enabled is True
    assert derived["freight"].disabled_reason == "ddp"
    assert derived["fx_fee"].disabled_reason is None


def test_ddp_backup_flag_restored_when_ddp_is_off(reference_po, reference_settings):
    reference_po["autoEvents"] = [
        {"id": "auto-freight", "type": "freight", "enabled": False, "_ddpEnabledBackup": True}
    ]

    events = _expand(reference_po, reference_settings)

    assert len(_by_type(events, "FREIGHT")) == 1


def test_stored_disabled_auto_event_is_respected(reference_po, reference_settings):
    reference_po["autoEvents"] = [{"id": "auto-freight", "type": "freight", "enabled": False}]

    events = _expand(reference_po, reference_settings)

    assert _by_type(events, "FREIGHT") == []


def test_eur_milestone_value_skips_conversion_and_fee(reference_po, reference_settings):
    reference_po["milestones"][0].update({"currency": "EUR", "valueEur": 500})

    events = _expand(reference_po, reference_settings)

    deposit = next(e for e in events if e.milestone_id == "m1" and e.type == "PO")
    assert deposit.amount_eur == -500.0
    assert deposit.src_currency == "EUR"
    assert [e.event_id for e in _by_type(events, "FX_FEE")] == ["m2-fx"]


def test_eur_denominated_order_has_no_fx_fee(eur_po, reference_settings):
    events = _expand(eur_po, reference_settings)

    assert _by_type(events, "FX_FEE") == []
    assert [e.amount_eur for e in _by_type(events, "PO")] == [-300.0, -700.0]


def test_duty_override_feeds_eust_base(reference_po, reference_settings):
    reference_po["dutyOverrideEur"] = 400

    events = _expand(reference_po, reference_settings)

    assert _by_type(events, "DUTY")[0].amount_eur == -400.0
    assert _by_type(events, "EUST")[0].amount_eur == -1049.62


def test_duty_base_includes_freight_when_configured(reference_po, reference_settings):
    reference_po["dutyIncludeFreight"] = True

    events = _expand(reference_po, reference_settings)

    # (4755.81 + 368.50) * 6.5 %
    assert _by_type(events, "DUTY")[0].amount_eur == pytest.approx(-333.08, abs=0.01)


def test_vat_refund_disabled_on_order(reference_po, reference_settings):
    reference_po["vatRefundEnabled"] = False

    events = _expand(reference_po, reference_settings)

    assert _by_type(events, "VAT_REFUND") == []
    assert len(_by_type(events, "EUST")) == 1


def test_vat_refund_disabled_in_settings(reference_po, reference_settings):
    reference_settings["vatRefundEnabled"] = False

    events = _expand(reference_po, reference_settings)

    assert _by_type(events, "VAT_REFUND") == []


def test_zero_amount_events_are_not_emitted(reference_po, reference_settings):
    reference_po["freightEur"] = 0
    reference_settings["fxFeePct"] = 0

    events = _expand(reference_po, reference_settings)

    assert _by_type(events, "FREIGHT") == []
    assert _by_type(events, "FX_FEE") == []
    assert all(e.amount_eur != 0 for e in events)


def test_negative_goods_and_idless_milestones_are_reported(reference_po, reference_settings):
    reference_po["goodsValueUsd"] = -500
    reference_po["milestones"][1].pop("id")

    order = normalize_order(reference_po)
    expansion = expand_order(order, normalize_settings(reference_settings))

    assert order.goods_value == -500.0
    assert [ms.id for ms in order.milestones] == ["m1", ""]
    assert "goods value must be >= 0" in expansion.validation.errors
    assert "milestone id is required" in expansion.validation.errors
    # Amounts are clamped at zero during expansion, so no goods-based events remain.
    assert _by_type(expansion.events, "PO") == []
    assert _by_type(expansion.events, "DUTY") == []
