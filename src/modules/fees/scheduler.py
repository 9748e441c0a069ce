"""Next-semester rule: advance a student and bill the next semester after ~6 months."""

import logging
from collections.abc import Iterable
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.audit.service import AuditAction, AuditService
from src.core.config import settings
from src.core.documents.number_generator import InvoiceNumberAllocator
from src.core.exceptions import AppException
from src.modules.fees.academic_year import AcademicYearDeriver
from src.modules.fees.due import next_semester_remarks
from src.modules.fees.resolver import FeeScheduleResolver
from src.modules.fees.schemas import EngineNotice, NoticeKind, SchedulerOutcome
from src.modules.invoices.models import FeeComponentCode, Invoice, InvoiceComponent
from src.modules.students.models import StudentFeeProfile
from src.modules.students.service import StudentService
from src.shared.utils.money import ZERO

logger = logging.getLogger(__name__)


def last_relevant_date(profile: StudentFeeProfile, invoices: Iterable[Invoice]) -> date | None:
    """Latest paid date (due date when unpaid) over the invoices, else the admission date."""
    dates = [inv.last_relevant_date for inv in invoices if inv.last_relevant_date is not None]
    if dates:
        return max(dates)
    return profile.admission_date


class NextSemesterScheduler:
    """
    Rolls a student into the next semester once `threshold_days` have passed
    since the last invoice-relevant date, emitting an unpaid invoice for it.

    The emitted invoice is due today, which restarts the clock.
    """

    def __init__(
        self,
        db: AsyncSession,
        resolver: FeeScheduleResolver | None = None,
        threshold_days: int | None = None,
    ):
        self.db = db
        self.audit = AuditService(db)
        self.students = StudentService(db)
        self.resolver = resolver or FeeScheduleResolver(db)
        self.threshold_days = (
            threshold_days
            if threshold_days is not None
            else settings.next_semester_threshold_days
        )

    async def evaluate(
        self, student_id: str, today: date | None = None, actor: str | None = None
    ) -> SchedulerOutcome:
        """Apply the rule to one student; commits when an invoice is emitted."""
        today = today or date.today()
        profile = await self.students.get_profile(student_id)
        invoices = await self._invoices(student_id)

        last = last_relevant_date(profile, invoices)
        if last is None:
            return SchedulerOutcome(student_id=student_id)

        days = (today - last).days
        outcome = SchedulerOutcome(
            student_id=student_id, days_elapsed=days, last_relevant_date=last
        )
        if days < self.threshold_days:
            return outcome

        next_semester = profile.current_semester + 1
        outcome.triggered = True
        outcome.next_semester = next_semester

        fee = await self.resolver.resolve(profile, next_semester)
        if fee.amount <= ZERO:
            logger.info(
                "Next semester due for %s but no fee for semester %s", student_id, next_semester
            )
            outcome.notice = EngineNotice(
                kind=NoticeKind.NEXT_SEMESTER_AMOUNT_NOT_FOUND,
                message="Next semester amount not found; invoice not generated.",
            )
            return outcome

        invoice_number = await InvoiceNumberAllocator(self.db).allocate()
        academic_year = await AcademicYearDeriver(self.db).derive(
            student_id, profile.admission_date
        )
        invoice = Invoice(
            invoice_number=invoice_number,
            student_id=student_id,
            semester=next_semester,
            academic_year_label=academic_year,
            fee_head=FeeComponentCode.TUITION.label,
            amount=fee.amount,
            tuition_amount=fee.amount,
            added_due=ZERO,
            late_fine=ZERO,
            due_date=today,
            is_paid=False,
            remarks=next_semester_remarks(next_semester),
            is_system_generated=True,
        )
        invoice.components = [
            InvoiceComponent(
                code=FeeComponentCode.TUITION.value,
                label=FeeComponentCode.TUITION.label,
                amount=fee.amount,
                is_deduction=False,
            )
        ]
        self.db.add(invoice)
        await self.db.flush()

        await self.students.advance_semester(profile, next_semester, actor=actor)
        await self.audit.log(
            action=AuditAction.CREATE_INVOICE,
            entity_type="Invoice",
            entity_identifier=invoice_number,
            actor=actor,
            new_values={
                "student_id": student_id,
                "semester": next_semester,
                "amount": str(fee.amount),
                "source": fee.source.value,
            },
            comment="next semester",
        )
        await self.db.commit()

        logger.info(
            "Advanced %s to semester %s after %s days, emitted %s",
            student_id,
            next_semester,
            days,
            invoice_number,
        )
        outcome.invoice_number = invoice_number
        outcome.amount = fee.amount
        return outcome

    async def run_all(
        self, today: date | None = None, actor: str | None = None
    ) -> list[SchedulerOutcome]:
        """Evaluate every student. A failure is reported for that student only."""
        today = today or date.today()
        outcomes = []
        for student_id in await self.students.list_student_ids():
            try:
                outcomes.append(await self.evaluate(student_id, today=today, actor=actor))
            except (AppException, SQLAlchemyError) as exc:
                logger.exception("Next-semester evaluation failed for %s", student_id)
                await self.db.rollback()
                reason = exc.message if isinstance(exc, AppException) else type(exc).__name__
                outcomes.append(
                    SchedulerOutcome(
                        student_id=student_id,
                        notice=EngineNotice(
                            kind=NoticeKind.NEXT_SEMESTER_FAILED,
                            message=f"Could not auto-generate next-semester invoice. ({reason})",
                        ),
                    )
                )
        return outcomes

    async def _invoices(self, student_id: str) -> list[Invoice]:
        result = await self.db.execute(
            select(Invoice).where(Invoice.student_id == student_id)
        )
        return list(result.scalars().all())
