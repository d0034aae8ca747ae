from __future__ import annotations

import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CashEventType = Literal["PO", "FO", "FX_FEE", "FREIGHT", "DUTY", "EUST", "VAT_REFUND"]
CashEventKind = Literal["milestone", "freight", "duty", "eust", "vat_refund", "fx_fee"]
EntityType = Literal["PO", "FO"]


class CashEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    event_id: str
    date: datetime.date
    type: CashEventType
    kind: CashEventKind
    label: str

    order_id: str
    order_number: str
    entity_type: EntityType

    # Signed: negative is an outflow, positive an inflow.
    amount_eur: float
    src_currency: Optional[str] = None
    src_amount: Optional[float] = None

    auto: bool = False
    milestone_id: Optional[str] = None


class OrderValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    errors: List[str] = Field(default_factory=list)


class OrderExpansion(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: str
    entity_type: EntityType
    events: List[CashEvent] = Field(default_factory=list)
    validation: OrderValidation


class MonthlyCashBucket(BaseModel):
    month: str
    inflow: float
    outflow: float
    net: float
    items: List[CashEvent] = Field(default_factory=list)
