"""API endpoints for Fee Structures module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.fee_structures.schemas import (
    FeeStructureCreate,
    FeeStructureFilters,
    FeeStructureResponse,
)
from src.modules.fee_structures.service import FeeStructureService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/fee-structures", tags=["Fee Structures"])


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[FeeStructureResponse]],
)
async def list_fee_structures(
    student_id: str | None = Query(None),
    semester: int | None = Query(None, ge=1),
    program_id: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List fee structure rows, filtered by student, semester and/or program."""
    service = FeeStructureService(db)
    filters = FeeStructureFilters(
        student_id=student_id,
        semester=semester,
        program_id=program_id,
        page=page,
        limit=limit,
    )
    rows, total = await service.list_fee_structures(filters)
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[FeeStructureResponse.model_validate(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.post(
    "",
    response_model=ApiResponse[FeeStructureResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_structure(
    data: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a fee structure row."""
    service = FeeStructureService(db)
    row = await service.create(data)
    return ApiResponse(
        success=True,
        message="Fee structure created successfully",
        data=FeeStructureResponse.model_validate(row),
    )
