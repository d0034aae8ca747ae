from typing import List

from fastapi import APIRouter

from cashplan.schemas.journal import JournalMonthTotals
from cashplan.schemas.requests import JournalPreviewRequest, JournalPreviewResponse
from cashplan.services.journal_aggregator import build_payment_journal
from cashplan.services.monthly_summary import summarize_journal_by_month
from cashplan.services.normalize import normalize_month

router = APIRouter(prefix="/journal", tags=["journal"])


@router.post("/preview", response_model=JournalPreviewResponse)
def journal_preview(payload: JournalPreviewRequest) -> JournalPreviewResponse:
    """Reconciled payment journal for a workspace snapshot. Nothing is persisted."""
    rows = build_payment_journal(
        payload.snapshot,
        month=payload.month,
        scope=payload.scope,
        include_fo=payload.include_fo,
    )
    return JournalPreviewResponse(
        month=normalize_month(payload.month) or None,
        scope=payload.scope if payload.scope in {"paid", "open", "both"} else "both",
        count=len(rows),
        rows=rows,
    )


@router.post("/monthly", response_model=List[JournalMonthTotals])
def journal_monthly(payload: JournalPreviewRequest) -> List[JournalMonthTotals]:
    rows = build_payment_journal(
        payload.snapshot,
        month=payload.month,
        scope=payload.scope,
        include_fo=payload.include_fo,
    )
    return summarize_journal_by_month(rows)
