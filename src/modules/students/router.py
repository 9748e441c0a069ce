"""API endpoints for Students module."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.core.exceptions import StudentMasterError
from src.integrations.student_master.client import StudentMasterClient
from src.modules.fees.ledger import BalanceLedger
from src.modules.fees.schemas import SettlementResponse, settlement_to_response
from src.modules.students.models import StudentFeeProfile
from src.modules.students.schemas import (
    AcademicYearMapResponse,
    AcademicYearUpdate,
    BalanceResponse,
    BalancesResponse,
    BalanceUpdate,
    SemesterFeeResponse,
    SettleSemesterRequest,
    StudentFeeProfileIn,
    StudentFeeProfileResponse,
    StudentSyncResult,
)
from src.modules.students.service import StudentService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/students", tags=["Students"])
academic_year_router = APIRouter(prefix="/student-academic-year", tags=["Students"])


def _profile_to_response(profile: StudentFeeProfile) -> StudentFeeProfileResponse:
    """Convert StudentFeeProfile model to response schema."""
    return StudentFeeProfileResponse(
        student_id=profile.student_id,
        student_name=profile.student_name,
        program_id=profile.program_id,
        admission_date=profile.admission_date,
        total_program_fee=float(profile.total_program_fee),
        scholarship_amount=float(profile.scholarship_amount),
        current_semester=profile.current_semester,
        balance=float(profile.balance),
        due_amount=float(profile.due_amount),
        first_semester_invoice_number=profile.first_semester_invoice_number,
        academic_year_label=profile.academic_year.label if profile.academic_year else None,
        semester_fees=[SemesterFeeResponse.model_validate(e) for e in profile.semester_fees],
    )


# --- Profile Endpoints ---


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[StudentFeeProfileResponse]],
)
async def list_students(
    search: str | None = Query(None),
    program_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List student fee profiles."""
    service = StudentService(db)
    profiles, total = await service.list_profiles(
        search=search, program_id=program_id, page=page, limit=limit
    )
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[_profile_to_response(p) for p in profiles],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.post(
    "/sync",
    response_model=ApiResponse[StudentSyncResult],
)
async def sync_students(
    db: AsyncSession = Depends(get_db),
):
    """Pull every student record from the student master and upsert the profiles."""
    client = StudentMasterClient.from_settings()
    if client is None:
        raise StudentMasterError("Student master URL is not configured")
    service = StudentService(db)
    result = await service.sync_from_records(await client.fetch_students())
    return ApiResponse(
        success=True,
        message=f"{result.created} created, {result.updated} updated",
        data=result,
    )


# --- Balance Endpoints ---
# Declared before /{student_id} so "balances" is not taken for an id.


@router.get(
    "/balances",
    response_model=ApiResponse[BalancesResponse],
)
async def get_balances(
    student_ids: str = Query(..., description="Comma-separated student ids"),
    db: AsyncSession = Depends(get_db),
):
    """Balances of many students; null marks a balance that could not be read."""
    ledger = BalanceLedger(db)
    ids = [s.strip() for s in student_ids.split(",") if s.strip()]
    balances = await ledger.get_many(ids)
    return ApiResponse(
        success=True,
        data=BalancesResponse(
            balances={k: float(v) if v is not None else None for k, v in balances.items()}
        ),
    )


@router.put(
    "/balance",
    response_model=ApiResponse[BalanceResponse],
)
async def set_balance(
    data: BalanceUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Overwrite a student's balance."""
    ledger = BalanceLedger(db)
    balance = await ledger.set(data.student_id, data.balance)
    return ApiResponse(
        success=True,
        message="Balance updated",
        data=BalanceResponse(student_id=data.student_id, balance=float(balance), source="ledger"),
    )


@router.post(
    "/settle-semester",
    response_model=ApiResponse[SettlementResponse],
)
async def settle_semester(
    data: SettleSemesterRequest,
    db: AsyncSession = Depends(get_db),
):
    """Zero a semester's ledger entry and reduce the balance by `amount`. Idempotent."""
    ledger = BalanceLedger(db, student_master=StudentMasterClient.from_settings())
    outcome = await ledger.settle(
        data.student_id,
        data.semester,
        data.amount,
        invoice_number=data.invoice_number,
    )
    return ApiResponse(
        success=outcome.succeeded,
        message=f"Semester {data.semester}: {outcome.status}",
        data=settlement_to_response(outcome),
    )


@router.get(
    "/{student_id}",
    response_model=ApiResponse[StudentFeeProfileResponse],
)
async def get_student(
    student_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get a student's fee profile."""
    service = StudentService(db)
    profile = await service.get_profile(student_id)
    return ApiResponse(success=True, data=_profile_to_response(profile))


@router.put(
    "/{student_id}",
    response_model=ApiResponse[StudentFeeProfileResponse],
)
async def upsert_student(
    student_id: str,
    data: StudentFeeProfileIn,
    db: AsyncSession = Depends(get_db),
):
    """Create or update a student's fee profile from a student-master record."""
    service = StudentService(db)
    profile = await service.upsert_profile(data, student_id=student_id)
    return ApiResponse(
        success=True,
        message="Student saved",
        data=_profile_to_response(profile),
    )


@router.get(
    "/{student_id}/balance",
    response_model=ApiResponse[BalanceResponse],
)
async def get_balance(
    student_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Current balance of a student."""
    ledger = BalanceLedger(db)
    balance, source = await ledger.read(student_id)
    return ApiResponse(
        success=True,
        data=BalanceResponse(student_id=student_id, balance=float(balance), source=source),
    )


# --- Academic Year Endpoints ---


@academic_year_router.get(
    "",
    response_model=ApiResponse[AcademicYearMapResponse],
)
async def list_academic_years(
    db: AsyncSession = Depends(get_db),
):
    """Recorded academic-year labels by student id."""
    service = StudentService(db)
    return ApiResponse(
        success=True,
        data=AcademicYearMapResponse(academic_years=await service.list_academic_years()),
    )


@academic_year_router.put(
    "/{student_id}",
    response_model=ApiResponse[AcademicYearMapResponse],
)
async def set_academic_year(
    student_id: str,
    data: AcademicYearUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Record a student's academic-year label."""
    service = StudentService(db)
    record = await service.set_academic_year(student_id, data.label)
    return ApiResponse(
        success=True,
        message="Academic year saved",
        data=AcademicYearMapResponse(academic_years={record.student_id: record.label}),
    )
