"""Service for Students module."""

import logging
from decimal import Decimal
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.audit.service import AuditAction, AuditService
from src.core.exceptions import NotFoundError, ValidationError
from src.shared.schemas import page_offset
from src.shared.utils.money import non_negative, round_money
from src.modules.students.models import (
    SemesterFee,
    StudentAcademicYear,
    StudentFeeProfile,
)
from src.modules.students.schemas import StudentFeeProfileIn, StudentSyncResult

logger = logging.getLogger(__name__)


class StudentService:
    """Service for student fee profiles and academic-year records."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.audit = AuditService(db)

    # --- Profile Methods ---

    async def get_profile(
        self, student_id: str, with_relations: bool = True
    ) -> StudentFeeProfile:
        """Get a fee profile by student id."""
        query = select(StudentFeeProfile).where(StudentFeeProfile.student_id == student_id)
        if with_relations:
            query = query.options(
                selectinload(StudentFeeProfile.semester_fees),
                selectinload(StudentFeeProfile.academic_year),
            )
        # Ledger writes bypass the in-memory collections
        result = await self.db.execute(query.execution_options(populate_existing=True))
        profile = result.scalar_one_or_none()
        if not profile:
            raise NotFoundError("Student", student_id)
        return profile

    async def list_profiles(
        self,
        search: str | None = None,
        program_id: str | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> tuple[list[StudentFeeProfile], int]:
        """List fee profiles ordered by name, then id."""
        query = select(StudentFeeProfile)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    StudentFeeProfile.student_id.ilike(pattern),
                    StudentFeeProfile.student_name.ilike(pattern),
                )
            )
        if program_id:
            query = query.where(StudentFeeProfile.program_id == program_id.strip().upper())

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            query.options(
                selectinload(StudentFeeProfile.semester_fees),
                selectinload(StudentFeeProfile.academic_year),
            )
            .order_by(StudentFeeProfile.student_name, StudentFeeProfile.student_id)
            .offset(page_offset(page, limit))
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def list_student_ids(self) -> list[str]:
        result = await self.db.execute(
            select(StudentFeeProfile.student_id).order_by(StudentFeeProfile.student_id)
        )
        return list(result.scalars().all())

    async def upsert_profile(
        self, data: StudentFeeProfileIn, student_id: str | None = None, actor: str | None = None
    ) -> StudentFeeProfile:
        """Create or update a profile from a student-master record."""
        student_id = student_id or data.student_id
        if not student_id:
            raise ValidationError("Student id is required", field="student_id")

        await self._apply_record(student_id, data, actor)
        await self.db.commit()
        return await self.get_profile(student_id)

    async def _apply_record(
        self, student_id: str, data: StudentFeeProfileIn, actor: str | None
    ) -> tuple[StudentFeeProfile, bool]:
        """Write one record into the session without committing. Returns (profile, created)."""
        result = await self.db.execute(
            select(StudentFeeProfile)
            .where(StudentFeeProfile.student_id == student_id)
            .options(selectinload(StudentFeeProfile.semester_fees))
            .execution_options(populate_existing=True)
        )
        profile = result.scalar_one_or_none()
        created = profile is None

        if created:
            profile = StudentFeeProfile(
                student_id=student_id,
                current_semester=data.current_semester,
                balance=non_negative(data.balance or Decimal("0.00")),
                due_amount=non_negative(data.due_amount or Decimal("0.00")),
            )
            profile.semester_fees = []
            self.db.add(profile)
        elif data.current_semester < profile.current_semester:
            # Semester only moves forward
            logger.warning(
                "Ignoring semester rollback for %s: %s -> %s",
                student_id,
                profile.current_semester,
                data.current_semester,
            )
        else:
            profile.current_semester = data.current_semester

        old_values = (
            None
            if created
            else {
                "total_program_fee": str(profile.total_program_fee),
                "scholarship_amount": str(profile.scholarship_amount),
                "program_id": profile.program_id,
            }
        )

        profile.student_name = data.student_name or profile.student_name
        profile.program_id = data.program_id or profile.program_id
        profile.admission_date = data.admission_date or profile.admission_date
        profile.total_program_fee = round_money(data.total_program_fee)
        profile.scholarship_amount = round_money(data.scholarship_amount)
        if not created and data.balance is not None:
            profile.balance = non_negative(round_money(data.balance))
        if not created and data.due_amount is not None:
            profile.due_amount = non_negative(round_money(data.due_amount))

        existing = {entry.semester: entry for entry in profile.semester_fees}
        for semester, amount in sorted(data.semester_fees.items()):
            amount = non_negative(round_money(amount))
            entry = existing.get(semester)
            if entry is None:
                profile.semester_fees.append(
                    SemesterFee(
                        student_id=student_id,
                        semester=semester,
                        amount=amount,
                        outstanding=amount,
                    )
                )
            else:
                entry.amount = amount
                if not entry.is_settled:
                    entry.outstanding = amount

        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPSERT_PROFILE,
            entity_type="Student",
            entity_identifier=student_id,
            actor=actor,
            old_values=old_values,
            new_values={
                "total_program_fee": str(profile.total_program_fee),
                "scholarship_amount": str(profile.scholarship_amount),
                "program_id": profile.program_id,
                "current_semester": profile.current_semester,
                "semester_fees": {str(k): str(v) for k, v in data.semester_fees.items()},
            },
        )
        return profile, created

    async def sync_from_records(
        self, records: list[dict[str, Any]], actor: str | None = None
    ) -> StudentSyncResult:
        """Upsert many student-master records in one transaction. Unusable records are skipped."""
        created = updated = skipped = 0
        for raw in records:
            try:
                record = StudentFeeProfileIn.model_validate(raw)
            except PydanticValidationError as exc:
                logger.warning("Skipping student-master record: %s", exc.errors()[0]["msg"])
                skipped += 1
                continue
            if not record.student_id:
                skipped += 1
                continue
            _, was_created = await self._apply_record(record.student_id, record, actor)
            if was_created:
                created += 1
            else:
                updated += 1
        await self.db.commit()
        logger.info("Student sync: %s created, %s updated, %s skipped", created, updated, skipped)
        return StudentSyncResult(created=created, updated=updated, skipped=skipped)

    # --- Engine write-backs (flush only, caller commits) ---

    async def record_first_semester_invoice(
        self, profile: StudentFeeProfile, invoice_number: str
    ) -> bool:
        """Remember the first-semester bill. Returns False when one is already recorded."""
        if profile.first_semester_invoice_number:
            return False
        profile.first_semester_invoice_number = invoice_number
        await self.db.flush()
        return True

    async def advance_semester(
        self, profile: StudentFeeProfile, to_semester: int, actor: str | None = None
    ) -> StudentFeeProfile:
        """Move a student forward to `to_semester`."""
        if to_semester < profile.current_semester:
            raise ValidationError(
                f"Semester cannot move backwards ({profile.current_semester} -> {to_semester})",
                field="current_semester",
            )
        old = profile.current_semester
        profile.current_semester = to_semester
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.ADVANCE_SEMESTER,
            entity_type="Student",
            entity_identifier=profile.student_id,
            actor=actor,
            old_values={"current_semester": old},
            new_values={"current_semester": to_semester},
        )
        return profile

    # --- Academic Year Methods ---

    async def list_academic_years(self) -> dict[str, str]:
        result = await self.db.execute(
            select(StudentAcademicYear.student_id, StudentAcademicYear.label)
        )
        return {student_id: label for student_id, label in result.all()}

    async def set_academic_year(self, student_id: str, label: str) -> StudentAcademicYear:
        """Create or replace the explicit academic-year label of a student."""
        await self.get_profile(student_id, with_relations=False)
        result = await self.db.execute(
            select(StudentAcademicYear).where(StudentAcademicYear.student_id == student_id)
        )
        record = result.scalar_one_or_none()
        if record is None:
            record = StudentAcademicYear(student_id=student_id, label=label.strip())
            self.db.add(record)
        else:
            record.label = label.strip()
        await self.db.commit()
        await self.db.refresh(record)
        return record
