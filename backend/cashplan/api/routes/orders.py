from typing import List

from fastapi import APIRouter, status

from cashplan.schemas.events import MonthlyCashBucket
from cashplan.schemas.requests import (
    CashflowMonthlyRequest,
    OrderEventsRequest,
    OrderEventsResponse,
)
from cashplan.services.event_expander import expand_order, sort_events
from cashplan.services.monthly_summary import aggregate_events_by_month
from cashplan.services.snapshot_normalizer import normalize_snapshot

router = APIRouter(prefix="/orders", tags=["orders"])


def _expansions(payload: OrderEventsRequest):
    snapshot = normalize_snapshot(payload.snapshot)
    orders = list(snapshot.purchase_orders)
    if payload.include_fo:
        orders.extend(snapshot.forecast_orders)
    return [expand_order(order, snapshot.settings) for order in orders]


@router.post("/events", response_model=OrderEventsResponse, status_code=status.HTTP_200_OK)
def order_events(payload: OrderEventsRequest) -> OrderEventsResponse:
    """Expand every order in the snapshot into dated EUR cash events.

    Validation problems are reported per order and never block expansion.
    """
    expansions = _expansions(payload)
    events = sort_events(event for expansion in expansions for event in expansion.events)
    return OrderEventsResponse(orders=expansions, events=events)


@router.post("/cashflow/monthly", response_model=List[MonthlyCashBucket])
def monthly_cashflow(payload: CashflowMonthlyRequest) -> List[MonthlyCashBucket]:
    events = [event for expansion in _expansions(payload) for event in expansion.events]
    return aggregate_events_by_month(events, payload.months)
