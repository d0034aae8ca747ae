from __future__ import annotations

from datetime import date
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

Anchor = Literal["ORDER_DATE", "PROD_DONE", "ETD", "ETA"]
AutoEventType = Literal["freight", "duty", "eust", "vat_refund", "fx_fee"]
TransportMode = Literal["sea", "rail", "air"]

ANCHORS: tuple[str, ...] = ("ORDER_DATE", "PROD_DONE", "ETD", "ETA")
AUTO_EVENT_TYPES: tuple[str, ...] = ("freight", "duty", "eust", "vat_refund", "fx_fee")
DDP_SUPPRESSED_TYPES = frozenset({"freight", "duty", "eust", "vat_refund"})


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    sku: str = ""
    units: int = 0
    unit_cost: float = 0.0
    unit_extra: float = 0.0
    extra_flat: float = 0.0


class Milestone(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    percent: float = 0.0
    anchor: Anchor = "ORDER_DATE"
    lag_days: int = 0

    # A milestone fixed directly in EUR skips percent-of-goods and FX conversion.
    currency: Optional[str] = None
    value_eur: Optional[float] = None


class AutoEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: AutoEventType
    label: str = ""
    percent: Optional[float] = None
    anchor: Optional[Anchor] = None
    lag_days: Optional[int] = None
    lag_months: Optional[int] = None
    enabled: bool = True

    # Only set on derived auto-events; the stored ``enabled`` flag is left untouched.
    disabled_reason: Optional[Literal["ddp"]] = None

    @property
    def active(self) -> bool:
        return self.enabled and self.disabled_reason is None


class PaymentLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Optional[str] = None
    paid: Optional[bool] = None
    paid_date: Optional[date] = None
    due_date: Optional[date] = None
    amount_actual_eur: Optional[float] = None
    amount_actual_usd: Optional[float] = None
    amount_planned_eur: Optional[float] = None
    payment_id: Optional[str] = None
    method: str = ""
    payer: str = ""
    note: str = ""
    label: str = ""
    event_type: str = ""
    payment_internal_id: str = ""


class OrderBase(BaseModel):
    """Fields shared by purchase and forecast orders; the engine reads only these."""

    model_config = ConfigDict(frozen=True)

    id: str
    number: str = ""
    status: str = ""
    archived: bool = False

    order_date: Optional[date] = None
    supplier_id: str = ""
    supplier_name: str = ""
    items: List[OrderItem] = Field(default_factory=list)

    goods_value: float = 0.0
    source_currency: str = "USD"
    goods_eur: Optional[float] = None
    fx_override: Optional[float] = None
    fx_fee_pct: Optional[float] = None

    prod_days: int = 0
    transport: TransportMode = "sea"
    transit_days: Optional[int] = None
    etd_manual: Optional[date] = None
    eta_manual: Optional[date] = None
    ddp: bool = False

    freight_eur: float = 0.0
    duty_rate_pct: Optional[float] = None
    duty_include_freight: Optional[bool] = None
    duty_override_eur: Optional[float] = None
    eust_rate_pct: Optional[float] = None
    eust_override_eur: Optional[float] = None
    vat_refund_enabled: Optional[bool] = None
    vat_refund_lag_months: Optional[int] = None

    milestones: List[Milestone] = Field(default_factory=list)
    auto_events: List[AutoEvent] = Field(default_factory=list)
    payment_log: Dict[str, PaymentLogEntry] = Field(default_factory=dict)

    @property
    def display_number(self) -> str:
        return self.number or self.id


class PurchaseOrder(OrderBase):
    kind: Literal["po"] = "po"

    @property
    def entity_type(self) -> str:
        return "PO"


class ForecastPayment(BaseModel):
    """One planned payment stored directly on a forecast order."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    label: str = ""
    category: str = ""
    amount: float = 0.0
    currency: str = "EUR"
    due_date: Optional[date] = None


class ForecastOrder(OrderBase):
    kind: Literal["fo"] = "fo"
    converted_po_no: str = ""
    # When present, these replace milestone expansion for journal rows.
    payments: List[ForecastPayment] = Field(default_factory=list)

    @property
    def entity_type(self) -> str:
        return "FO"


OrderRecord = Annotated[Union[PurchaseOrder, ForecastOrder], Field(discriminator="kind")]
