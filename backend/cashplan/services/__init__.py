from cashplan.services.anchor_resolver import OrderAnchors, resolve_anchors
from cashplan.services.event_expander import (
    derive_auto_events,
    expand_all_orders,
    expand_order,
    expand_order_events,
    validate_order,
)
from cashplan.services.journal_aggregator import build_payment_journal
from cashplan.services.monthly_summary import aggregate_events_by_month, summarize_journal_by_month
from cashplan.services.payment_index import PaymentIndex, build_payment_index
from cashplan.services.reconciliation import (
    allocate_pro_rata,
    merge_grouped_payments,
    reconcile_forecast_orders,
    reconcile_purchase_orders,
)
from cashplan.services.settings_normalizer import normalize_settings
from cashplan.services.snapshot_normalizer import normalize_snapshot

__all__ = [
    "OrderAnchors",
    "PaymentIndex",
    "aggregate_events_by_month",
    "allocate_pro_rata",
    "build_payment_index",
    "build_payment_journal",
    "derive_auto_events",
    "expand_all_orders",
    "expand_order",
    "expand_order_events",
    "merge_grouped_payments",
    "normalize_settings",
    "normalize_snapshot",
    "reconcile_forecast_orders",
    "reconcile_purchase_orders",
    "resolve_anchors",
    "summarize_journal_by_month",
    "validate_order",
]
