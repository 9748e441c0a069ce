"""API endpoints for the fee engine."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.fees.scheduler import NextSemesterScheduler
from src.modules.fees.schemas import (
    InvoiceDraftRequest,
    InvoiceDraftResponse,
    NextSemesterRunResponse,
    SchedulerOutcomeResponse,
    draft_to_response,
    scheduler_to_response,
)
from src.modules.fees.service import SettlementEngine
from src.shared.schemas.base import ApiResponse

router = APIRouter(prefix="/fees", tags=["Fees"])


@router.post(
    "/drafts",
    response_model=ApiResponse[InvoiceDraftResponse],
)
async def preview_invoice(
    data: InvoiceDraftRequest,
    db: AsyncSession = Depends(get_db),
):
    """Compute an invoice (fee, academic year, due, remarks) without saving it."""
    engine = SettlementEngine(db)
    draft = await engine.draft(data)
    return ApiResponse(success=True, data=draft_to_response(draft))


@router.post(
    "/next-semester",
    response_model=ApiResponse[NextSemesterRunResponse],
)
async def run_next_semester(
    today: date | None = Query(None, description="Evaluation date, defaults to today"),
    db: AsyncSession = Depends(get_db),
):
    """Apply the next-semester rule to every student."""
    scheduler = NextSemesterScheduler(db)
    outcomes = await scheduler.run_all(today=today)
    generated = [o for o in outcomes if o.invoice_number]
    return ApiResponse(
        success=True,
        message=f"{len(generated)} next-semester invoice(s) generated",
        data=NextSemesterRunResponse(
            evaluated=len(outcomes),
            generated=len(generated),
            outcomes=[scheduler_to_response(o) for o in outcomes],
            notices=[o.notice for o in outcomes if o.notice is not None],
        ),
    )


@router.post(
    "/next-semester/{student_id}",
    response_model=ApiResponse[SchedulerOutcomeResponse],
)
async def run_next_semester_for_student(
    student_id: str,
    today: date | None = Query(None, description="Evaluation date, defaults to today"),
    db: AsyncSession = Depends(get_db),
):
    """Apply the next-semester rule to one student."""
    scheduler = NextSemesterScheduler(db)
    outcome = await scheduler.evaluate(student_id, today=today)
    return ApiResponse(success=True, data=scheduler_to_response(outcome))
