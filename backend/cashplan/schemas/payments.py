from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Allocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    amount_eur: Optional[float] = None
    amount_usd: Optional[float] = None


class Payment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    paid_date: Optional[date] = None
    method: str = ""
    payer: str = ""
    currency: str = "EUR"
    status: Optional[str] = None

    amount_actual_eur_total: Optional[float] = None
    amount_actual_usd_total: Optional[float] = None

    allocations: List[Allocation] = Field(default_factory=list)
    covered_event_ids: List[str] = Field(default_factory=list)

    note: str = ""
    invoice_id_or_number: str = ""
    transfer_reference: str = ""
