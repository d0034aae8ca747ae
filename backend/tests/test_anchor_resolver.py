from datetime import date

from cashplan.schemas.orders import Milestone, PurchaseOrder
from cashplan.schemas.settings import CnyWindow, PlanningSettings
from cashplan.services.anchor_resolver import resolve_anchors
from cashplan.services.event_expander import expand_order_events


def _po(**overrides) -> PurchaseOrder:
    fields = dict(
        id="po-1",
        number="PO-1",
        order_date=date(2025, 1, 1),
        goods_value=1000,
        source_currency="EUR",
        prod_days=10,
        transit_days=30,
        milestones=[Milestone(id="m1", label="Balance", percent=100, anchor="PROD_DONE")],
    )
    fields.update(overrides)
    return PurchaseOrder(**fields)


def test_blackout_extends_production_by_overlapping_days():
    settings = PlanningSettings(
        cny_blackout_by_year={2025: CnyWindow(start=date(2025, 1, 5), end=date(2025, 1, 7))}
    )

    anchors = resolve_anchors(_po(), settings)

    assert anchors.prod_done == date(2025, 1, 14)
    assert anchors.blackout_days == 3
    assert anchors.blackout_start == date(2025, 1, 5)
    assert anchors.blackout_end == date(2025, 1, 7)
    assert anchors.etd == date(2025, 1, 14)
    assert anchors.eta == date(2025, 2, 13)


def test_blackout_moves_prod_done_milestone():
    settings = PlanningSettings(
        cny_blackout_by_year={2025: CnyWindow(start=date(2025, 1, 5), end=date(2025, 1, 7))}
    )

    events = expand_order_events(_po(), settings)

    assert [(e.date, e.type) for e in events] == [(date(2025, 1, 14), "PO")]
    assert events[0].amount_eur == -1000.0


def test_no_blackout_configured_uses_plain_day_count():
    anchors = resolve_anchors(_po(), PlanningSettings())

    assert anchors.prod_done == date(2025, 1, 11)
    assert anchors.blackout_days == 0


def test_window_of_previous_year_applies_across_new_year():
    settings = PlanningSettings(
        cny_blackout_by_year={2024: CnyWindow(start=date(2024, 12, 30), end=date(2025, 1, 2))}
    )

    anchors = resolve_anchors(_po(order_date=date(2024, 12, 28), prod_days=5), settings)

    assert anchors.blackout_days == 4
    assert anchors.prod_done == date(2025, 1, 6)


def test_global_window_applies_to_every_year():
    settings = PlanningSettings(cny_window=CnyWindow(start=date(2025, 1, 2), end=date(2025, 1, 3)))

    anchors = resolve_anchors(_po(prod_days=2), settings)

    assert anchors.prod_done == date(2025, 1, 5)


def test_manual_dates_win_over_computed_ones():
    anchors = resolve_anchors(
        _po(etd_manual=date(2025, 3, 1), eta_manual=date(2025, 4, 15)), PlanningSettings()
    )

    assert anchors.prod_done == date(2025, 1, 11)
    assert anchors.etd == date(2025, 3, 1)
    assert anchors.eta == date(2025, 4, 15)


def test_manual_etd_shifts_computed_eta():
    anchors = resolve_anchors(_po(etd_manual=date(2025, 3, 1), transit_days=10), PlanningSettings())

    assert anchors.eta == date(2025, 3, 11)


def test_transit_days_default_by_transport_mode():
    settings = PlanningSettings()

    assert resolve_anchors(_po(transport="air", transit_days=None), settings).eta == date(2025, 1, 21)
    assert resolve_anchors(_po(transport="rail", transit_days=None), settings).eta == date(2025, 2, 10)
    assert resolve_anchors(_po(transport="sea", transit_days=None), settings).eta == date(2025, 3, 12)


def test_missing_order_date_yields_null_anchors_and_skips_events():
    order = _po(order_date=None, eta_manual=date(2025, 5, 1))

    anchors = resolve_anchors(order, PlanningSettings())

    assert anchors.order_date is None
    assert anchors.prod_done is None
    assert anchors.etd is None
    assert anchors.eta == date(2025, 5, 1)
    assert expand_order_events(order, PlanningSettings()) == []


def test_production_days_are_capped_on_normalization():
    from cashplan.services.snapshot_normalizer import normalize_order

    order = normalize_order({"id": "po-1", "poNo": "PO-1", "orderDate": "2025-01-01", "prodDays": 1e9})

    assert order.prod_days == 3650
    assert resolve_anchors(order, PlanningSettings()).prod_done == date(2034, 12, 30)
