from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from cashplan.schemas.payments import Allocation, Payment


@dataclass(frozen=True)
class PaymentIndex:
    """Lookups over one snapshot's payments. Built per call, never cached."""

    by_id: Dict[str, Payment] = field(default_factory=dict)
    allocation_by_event: Dict[str, Tuple[str, Allocation]] = field(default_factory=dict)
    payment_id_by_event: Dict[str, str] = field(default_factory=dict)
    covered_by_event: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    def payment(self, payment_id: Optional[str]) -> Optional[Payment]:
        if not payment_id:
            return None
        return self.by_id.get(payment_id)

    def allocation_for(self, payment_id: Optional[str], event_id: str) -> Optional[Allocation]:
        payment = self.payment(payment_id)
        if payment is None:
            return None
        return next((a for a in payment.allocations if a.event_id == event_id), None)


def build_payment_index(payments: Iterable[Payment]) -> PaymentIndex:
    by_id: Dict[str, Payment] = {}
    allocation_by_event: Dict[str, Tuple[str, Allocation]] = {}
    payment_id_by_event: Dict[str, str] = {}
    covered: Dict[str, list[str]] = {}

    for payment in payments:
        if not payment.id:
            continue
        by_id[payment.id] = payment

        # Later payments win when two claim the same event.
        for allocation in payment.allocations:
            allocation_by_event[allocation.event_id] = (payment.id, allocation)
            payment_id_by_event[allocation.event_id] = payment.id

        for event_id in payment.covered_event_ids:
            payment_id_by_event[event_id] = payment.id
            bucket = covered.setdefault(event_id, [])
            if payment.id not in bucket:
                bucket.append(payment.id)

    return PaymentIndex(
        by_id=by_id,
        allocation_by_event=allocation_by_event,
        payment_id_by_event=payment_id_by_event,
        covered_by_event={event_id: tuple(ids) for event_id, ids in covered.items()},
    )
