"""Service for Fee Structures module."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import NotFoundError, ValidationError
from src.modules.fee_structures.models import FeeStructure
from src.modules.fee_structures.schemas import FeeStructureCreate, FeeStructureFilters
from src.modules.students.models import StudentFeeProfile
from src.shared.schemas import page_offset
from src.shared.utils.money import round_money


class FeeStructureService:
    """Service for managing fee structure rows."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    async def create(self, data: FeeStructureCreate, actor: str | None = None) -> FeeStructure:
        """Create a program-level or per-student fee structure row."""
        if not data.program_id and not data.student_id:
            raise ValidationError(
                "Either program_id or student_id is required", field="program_id"
            )

        program_id = data.program_id
        if data.student_id:
            profile = await self.db.scalar(
                select(StudentFeeProfile).where(StudentFeeProfile.student_id == data.student_id)
            )
            if profile is None:
                raise NotFoundError("Student", data.student_id)
            program_id = program_id or profile.program_id

        row = FeeStructure(
            program_id=program_id,
            semester=data.semester,
            fee_head=data.fee_head.strip(),
            amount=round_money(data.amount),
            student_id=data.student_id,
        )
        self.db.add(row)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            entity_type="FeeStructure",
            entity_identifier=str(row.id),
            actor=actor,
            new_values={
                "program_id": row.program_id,
                "semester": row.semester,
                "fee_head": row.fee_head,
                "amount": str(row.amount),
                "student_id": row.student_id,
            },
        )

        await self.db.commit()
        await self.db.refresh(row)
        return row

    async def list_fee_structures(
        self, filters: FeeStructureFilters
    ) -> tuple[list[FeeStructure], int]:
        """List fee structure rows with optional filters."""
        query = select(FeeStructure)
        if filters.student_id:
            query = query.where(FeeStructure.student_id == filters.student_id.strip())
        if filters.semester is not None:
            query = query.where(FeeStructure.semester == filters.semester)
        if filters.program_id:
            query = query.where(
                func.upper(FeeStructure.program_id) == filters.program_id.strip().upper()
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            query.order_by(FeeStructure.program_id, FeeStructure.semester, FeeStructure.id)
            .offset(page_offset(filters.page, filters.limit))
            .limit(filters.limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total
