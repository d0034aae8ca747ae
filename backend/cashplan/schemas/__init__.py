from cashplan.schemas.events import (
    CashEvent,
    MonthlyCashBucket,
    OrderExpansion,
    OrderValidation,
)
from cashplan.schemas.journal import (
    JournalMonthTotals,
    JournalRow,
    Product,
    Supplier,
    WorkspaceSnapshot,
)
from cashplan.schemas.orders import (
    AutoEvent,
    ForecastOrder,
    ForecastPayment,
    Milestone,
    OrderBase,
    OrderItem,
    OrderRecord,
    PaymentLogEntry,
    PurchaseOrder,
)
from cashplan.schemas.payments import Allocation, Payment
from cashplan.schemas.requests import (
    CashflowMonthlyRequest,
    JournalPreviewRequest,
    JournalPreviewResponse,
    OrderEventsRequest,
    OrderEventsResponse,
    SnapshotRequest,
)
from cashplan.schemas.settings import CnyWindow, PlanningSettings

__all__ = [
    "Allocation",
    "AutoEvent",
    "CashEvent",
    "CashflowMonthlyRequest",
    "CnyWindow",
    "ForecastOrder",
    "ForecastPayment",
    "JournalMonthTotals",
    "JournalPreviewRequest",
    "JournalPreviewResponse",
    "JournalRow",
    "Milestone",
    "MonthlyCashBucket",
    "OrderBase",
    "OrderEventsRequest",
    "OrderEventsResponse",
    "OrderExpansion",
    "OrderItem",
    "OrderRecord",
    "OrderValidation",
    "Payment",
    "PaymentLogEntry",
    "PlanningSettings",
    "Product",
    "PurchaseOrder",
    "SnapshotRequest",
    "Supplier",
    "WorkspaceSnapshot",
]
