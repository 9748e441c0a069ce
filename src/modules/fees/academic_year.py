"""Academic-year label derivation."""

from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.modules.students.models import StudentAcademicYear

NOT_AVAILABLE = "NA"


def academic_year_from_admission(admission_date: date | str | Any | None) -> str:
    """
    "Y-(Y+1)" from the leading 4-digit year of an admission date.

        >>> academic_year_from_admission(date(2021, 7, 15))
        '2021-2022'
        >>> academic_year_from_admission(None)
        'NA'
    """
    if admission_date is None:
        return NOT_AVAILABLE
    prefix = str(admission_date).strip()[:4]
    if len(prefix) != 4 or not prefix.isdigit():
        return NOT_AVAILABLE
    year = int(prefix)
    return f"{year}-{year + 1}"


class AcademicYearDeriver:
    """Prefers the student's recorded academic year, then the admission date."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def derive(self, student_id: str, admission_date: date | None) -> str:
        result = await self.db.execute(
            select(StudentAcademicYear.label).where(StudentAcademicYear.student_id == student_id)
        )
        label = result.scalar_one_or_none()
        if label and label.strip():
            return label.strip()
        return academic_year_from_admission(admission_date)
