from datetime import date

from cashplan.schemas.events import CashEvent
from cashplan.schemas.journal import JournalRow
from cashplan.services.event_expander import expand_all_orders
from cashplan.services.monthly_summary import aggregate_events_by_month, summarize_journal_by_month
from cashplan.services.settings_normalizer import normalize_settings
from cashplan.services.snapshot_normalizer import normalize_order


def _event(day, amount, event_type="PO", event_id="m1"):
    return CashEvent(
        key=f"{day.isoformat()}|{event_type}|po-1|{event_id}",
        event_id=event_id,
        date=day,
        type=event_type,
        kind="milestone" if event_type == "PO" else "vat_refund",
        label=event_id,
        order_id="po-1",
        order_number="PO-1",
        entity_type="PO",
        amount_eur=amount,
    )


def test_month_bucket_sums_inflow_and_outflow():
    events = [
        _event(date(2025, 3, 3), -100.0, event_id="m1"),
        _event(date(2025, 3, 20), 20.0, event_type="VAT_REFUND", event_id="auto-vat_refund"),
        _event(date(2025, 3, 28), -50.0, event_id="m2"),
    ]

    (bucket,) = aggregate_events_by_month(events)

    assert bucket.month == "2025-03"
    assert bucket.inflow == 20.0
    assert bucket.outflow == 150.0
    assert bucket.net == -130.0
    assert [e.event_id for e in bucket.items] == ["m1", "auto-vat_refund", "m2"]


def test_requested_months_include_empty_buckets():
    events = [_event(date(2025, 3, 3), -100.0)]

    buckets = aggregate_events_by_month(events, ["2025-02", "2025-03", "garbage"])

    assert [b.month for b in buckets] == ["2025-02", "2025-03"]
    assert buckets[0].items == []
    assert buckets[0].net == 0.0


def test_net_identity_over_reference_order(reference_po, reference_settings):
    events = expand_all_orders([normalize_order(reference_po)], normalize_settings(reference_settings))

    buckets = aggregate_events_by_month(events)

    assert [b.month for b in buckets] == ["2025-02", "2025-04", "2025-06", "2025-07", "2025-08"]
    for bucket in buckets:
        assert bucket.net == round(bucket.inflow - bucket.outflow, 2)
    assert buckets[-1].inflow == 1032.35
    assert buckets[-1].outflow == 0.0


def test_journal_totals_by_effective_month():
    rows = [
        JournalRow(
            row_id="a",
            event_id="m1",
            month="2025-02",
            entity_type="PO",
            payment_type="Deposit",
            status="PAID",
            due_date=date(2025, 3, 1),
            paid_date=date(2025, 2, 27),
            amount_planned_eur=300.0,
            amount_actual_eur=295.0,
        ),
        JournalRow(
            row_id="b",
            event_id="m2",
            month="2025-03",
            entity_type="PO",
            payment_type="Balance",
            status="OPEN",
            due_date=date(2025, 3, 31),
            amount_planned_eur=700.0,
        ),
    ]

    totals = summarize_journal_by_month(rows)

    assert [(t.month, t.planned_eur, t.actual_eur, t.paid_count, t.open_count) for t in totals] == [
        ("2025-02", 300.0, 295.0, 1, 0),
        ("2025-03", 700.0, 0.0, 0, 1),
    ]
