from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cashplan.schemas.events import CashEvent, OrderExpansion
from cashplan.schemas.journal import JournalRow


class SnapshotRequest(BaseModel):
    """Envelope for a raw workspace snapshot as persisted by the UI."""

    snapshot: Dict[str, Any] = Field(default_factory=dict)


class OrderEventsRequest(SnapshotRequest):
    include_fo: bool = True


class OrderEventsResponse(BaseModel):
    orders: List[OrderExpansion] = Field(default_factory=list)
    events: List[CashEvent] = Field(default_factory=list)


class CashflowMonthlyRequest(OrderEventsRequest):
    # "YYYY-MM" values; when omitted every month with an event is returned.
    months: Optional[List[str]] = None


class JournalPreviewRequest(SnapshotRequest):
    month: Optional[str] = None
    # Unknown scopes fall back to "both" instead of failing validation.
    scope: str = "both"
    include_fo: bool = True


class JournalPreviewResponse(BaseModel):
    month: Optional[str] = None
    scope: str
    count: int
    rows: List[JournalRow] = Field(default_factory=list)
