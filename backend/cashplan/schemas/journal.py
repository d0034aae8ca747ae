from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from cashplan.schemas.events import EntityType
from cashplan.schemas.orders import ForecastOrder, PurchaseOrder
from cashplan.schemas.payments import Payment
from cashplan.schemas.settings import PlanningSettings

JournalStatus = Literal["PAID", "OPEN"]
JournalScope = Literal["paid", "open", "both"]
PaymentChannel = Literal["WISE", "ALIBABA_TA", "PAYPAL", "SEPA", "OTHER"]


class Supplier(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""


class Product(BaseModel):
    model_config = ConfigDict(frozen=True)

    sku: str
    alias: str = ""


class WorkspaceSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    settings: PlanningSettings = Field(default_factory=PlanningSettings)
    purchase_orders: List[PurchaseOrder] = Field(default_factory=list)
    forecast_orders: List[ForecastOrder] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)
    suppliers: List[Supplier] = Field(default_factory=list)
    products: List[Product] = Field(default_factory=list)


class JournalRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    row_id: str
    event_id: str
    month: str
    entity_type: EntityType

    po_number: str = ""
    fo_number: str = ""
    supplier_name: str = ""
    sku_aliases: str = ""
    item_summary: str = ""

    payment_type: str
    included_positions: List[str] = Field(default_factory=list)
    status: JournalStatus

    due_date: Optional[date] = None
    paid_date: Optional[date] = None
    payment_id: str = ""
    payment_channel: PaymentChannel = "OTHER"

    amount_planned_eur: Optional[float] = None
    amount_actual_eur: Optional[float] = None

    payer: str = ""
    payment_method: str = ""
    note: str = ""
    internal_id: str = ""
    issues: List[str] = Field(default_factory=list)

    @property
    def effective_date(self) -> Optional[date]:
        if self.status == "PAID":
            return self.paid_date or self.due_date
        return self.due_date or self.paid_date


class JournalMonthTotals(BaseModel):
    month: str
    planned_eur: float
    actual_eur: float
    paid_count: int
    open_count: int

