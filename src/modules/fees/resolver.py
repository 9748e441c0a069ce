"""Semester fee resolution with an ordered fallback chain."""

import logging
from collections import defaultdict
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.fee_structures.models import FeeStructure
from src.modules.fees.schemas import FeeResolution, FeeSource
from src.modules.students.models import StudentFeeProfile
from src.shared.utils.money import ZERO, round_money

logger = logging.getLogger(__name__)


def _program_key(program_id: str | None) -> str:
    return (program_id or "").strip().upper()


class FeeStructureCache:
    """
    Program-level fee structure rows, loaded once per owner.

    Rows with a student_id are never cached; they are looked up per call.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._by_program: dict[str, dict[int, list[Decimal]]] | None = None

    @property
    def loaded(self) -> bool:
        return self._by_program is not None

    def invalidate(self) -> None:
        """Drop cached rows; the next read reloads them."""
        self._by_program = None

    async def _load(self) -> dict[str, dict[int, list[Decimal]]]:
        if self._by_program is None:
            result = await self.db.execute(
                select(FeeStructure.program_id, FeeStructure.semester, FeeStructure.amount).where(
                    FeeStructure.student_id.is_(None)
                )
            )
            by_program: dict[str, dict[int, list[Decimal]]] = defaultdict(lambda: defaultdict(list))
            count = 0
            for program_id, semester, amount in result.all():
                by_program[_program_key(program_id)][semester].append(amount or ZERO)
                count += 1
            self._by_program = by_program
            logger.debug("Loaded %s program fee structure rows", count)
        return self._by_program

    async def semester_total(self, program_id: str | None, semester: int) -> Decimal:
        """Sum of every fee head of a program for one semester."""
        key = _program_key(program_id)
        if not key:
            return ZERO
        rows = await self._load()
        program = rows.get(key, {})
        return round_money(sum(program.get(semester, []), ZERO))

    async def program_total(self, program_id: str | None) -> Decimal:
        """Sum across all semesters and fee heads of a program."""
        key = _program_key(program_id)
        if not key:
            return ZERO
        rows = await self._load()
        program = rows.get(key, {})
        return round_money(sum((sum(v, ZERO) for v in program.values()), ZERO))


class FeeScheduleResolver:
    """
    Resolves the fee owed for a student's semester. First hit wins:

    1. the profile's own per-semester fee, when positive
    2. the first positive per-student fee structure row for the semester
    3. the sum of the program's fee structure rows for the semester

    Nothing found resolves to 0 with source `not_found`.
    """

    def __init__(self, db: AsyncSession, cache: FeeStructureCache | None = None):
        self.db = db
        self.cache = cache or FeeStructureCache(db)

    async def resolve(self, profile: StudentFeeProfile, semester: int) -> FeeResolution:
        """Resolve the fee for `semester`, first hit wins."""
        profile_fee = profile.semester_fee(semester)
        if profile_fee is not None and profile_fee > ZERO:
            return FeeResolution(amount=round_money(profile_fee), source=FeeSource.STUDENT_PROFILE)

        student_fee = await self._student_structure_fee(profile.student_id, semester)
        if student_fee is not None:
            return FeeResolution(
                amount=round_money(student_fee), source=FeeSource.STUDENT_FEE_STRUCTURE
            )

        program_fee = await self.cache.semester_total(profile.program_id, semester)
        if program_fee > ZERO:
            return FeeResolution(amount=program_fee, source=FeeSource.PROGRAM_FEE_STRUCTURE)

        logger.info(
            "No fee schedule for student %s semester %s (program %s)",
            profile.student_id,
            semester,
            profile.program_id,
        )
        return FeeResolution(amount=ZERO, source=FeeSource.NOT_FOUND)

    async def _student_structure_fee(self, student_id: str, semester: int) -> Decimal | None:
        result = await self.db.execute(
            select(FeeStructure.amount)
            .where(
                FeeStructure.student_id == student_id,
                FeeStructure.semester == semester,
                FeeStructure.amount > 0,
            )
            .order_by(FeeStructure.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def program_total(self, program_id: str | None) -> Decimal:
        return await self.cache.program_total(program_id)

    async def total_program_fee(self, profile: StudentFeeProfile) -> Decimal:
        """Profile total when positive, otherwise the program's fee structure total."""
        if profile.total_program_fee and profile.total_program_fee > ZERO:
            return round_money(profile.total_program_fee)
        return await self.program_total(profile.program_id)
