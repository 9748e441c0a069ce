"""Settlement engine: invoice drafts and submits."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.audit.service import AuditAction, AuditService
from src.core.documents.number_generator import InvoiceNumberAllocator
from src.core.exceptions import (
    DuplicateError,
    FeeScheduleNotFoundError,
    NotFoundError,
    ValidationError,
)
from src.integrations.student_master.client import StudentMasterClient
from src.modules.fees.academic_year import AcademicYearDeriver
from src.modules.fees.due import (
    build_remarks,
    compute_due,
    evaluate_first_semester_lock,
    scholarship_applies,
)
from src.modules.fees.ledger import BalanceLedger
from src.modules.fees.resolver import FeeScheduleResolver
from src.modules.fees.scheduler import NextSemesterScheduler
from src.modules.fees.schemas import (
    DraftComponent,
    EngineNotice,
    FeeComponentIn,
    FeeResolution,
    InvoiceDraft,
    InvoiceDraftRequest,
    InvoiceSubmit,
    NoticeKind,
    SchedulerOutcome,
    SettlementOutcome,
    SubmitState,
)
from src.modules.fees.validation import validate_submission
from src.modules.invoices.models import FeeComponentCode, Invoice, InvoiceComponent
from src.modules.students.models import StudentFeeProfile
from src.modules.students.service import StudentService
from src.shared.utils.money import ZERO, non_negative, round_money

logger = logging.getLogger(__name__)


class SubmitResult:
    """Outcome of a submit: the stored invoice plus what happened afterwards."""

    def __init__(
        self,
        invoice: Invoice,
        state: SubmitState,
        due_after_payment: Decimal,
        balance_after: Decimal | None = None,
        settlement: SettlementOutcome | None = None,
        next_semester: SchedulerOutcome | None = None,
        notices: list[EngineNotice] | None = None,
    ):
        self.invoice = invoice
        self.state = state
        self.due_after_payment = due_after_payment
        self.balance_after = balance_after
        self.settlement = settlement
        self.next_semester = next_semester
        self.notices = notices or []


def compose_components(
    components: list[FeeComponentIn] | None, fee: FeeResolution
) -> tuple[list[DraftComponent], bool]:
    """
    Line items for an invoice. Returns (components, tuition_supplied).

    When no tuition line is given, one is added with the resolved fee.
    """
    resolved = [
        DraftComponent(
            code=c.code,
            label=c.label or c.code.label,
            amount=round_money(c.amount),
            is_deduction=c.code.is_deduction,
        )
        for c in components or []
    ]
    tuition_supplied = any(c.code == FeeComponentCode.TUITION for c in resolved)
    if not tuition_supplied and fee.amount > ZERO:
        resolved.insert(
            0,
            DraftComponent(
                code=FeeComponentCode.TUITION,
                label=FeeComponentCode.TUITION.label,
                amount=fee.amount,
                is_deduction=False,
            ),
        )
    return resolved, tuition_supplied


def component_total(components: list[DraftComponent]) -> Decimal:
    """Sum of line items, deductions subtracted."""
    total = sum((-c.amount if c.is_deduction else c.amount for c in components), ZERO)
    return round_money(total)


def tuition_total(components: list[DraftComponent]) -> Decimal:
    return round_money(
        sum((c.amount for c in components if c.code == FeeComponentCode.TUITION), ZERO)
    )


class SettlementEngine:
    """
    Computes invoice drafts and runs submits through
    validate -> commit invoice -> settle ledger -> reconcile -> next semester.
    """

    def __init__(self, db: AsyncSession, student_master: StudentMasterClient | None = None):
        self.db = db
        self.audit = AuditService(db)
        self.students = StudentService(db)
        self.resolver = FeeScheduleResolver(db)
        self.academic_years = AcademicYearDeriver(db)
        self.student_master = student_master or StudentMasterClient.from_settings()
        self.ledger = BalanceLedger(db, student_master=self.student_master)
        self.scheduler = NextSemesterScheduler(db, resolver=self.resolver)

    async def draft(self, data: InvoiceDraftRequest) -> InvoiceDraft:
        """Compute an invoice without writing anything."""
        if not data.student_id:
            raise ValidationError("Select a student.", field="student_id")
        profile = await self.students.get_profile(data.student_id)
        return await self._compute(profile, data)

    async def _compute(
        self, profile: StudentFeeProfile, data: InvoiceDraftRequest
    ) -> InvoiceDraft:
        semester = data.semester if data.semester is not None else profile.current_semester
        if semester < 1:
            raise ValidationError("Semester must be 1 or higher.", field="semester")

        fee = await self.resolver.resolve(profile, semester)
        total_program_fee = await self.resolver.total_program_fee(profile)
        academic_year = await self.academic_years.derive(
            profile.student_id, profile.admission_date
        )
        lock = evaluate_first_semester_lock(
            profile, await self._invoices(profile.student_id), data.invoice_number
        )
        current_balance = await self.ledger.get(profile.student_id)

        components, tuition_supplied = compose_components(data.components, fee)
        base_total = component_total(components)
        tuition_amount = tuition_total(components)

        if data.include_previous_due:
            previous_due = round_money(
                data.previous_due if data.previous_due is not None else profile.due_amount
            )
            late_fine = round_money(data.late_fine)
            added_due = round_money(previous_due + late_fine)
        else:
            previous_due = late_fine = added_due = ZERO
        amount = non_negative(round_money(base_total + added_due))

        scholarship = round_money(profile.scholarship_amount or ZERO)
        due = compute_due(
            semester=semester,
            locked=lock.locked,
            current_balance=current_balance,
            total_program_fee=total_program_fee,
            scholarship_amount=scholarship,
            tuition_amount=tuition_amount,
        )
        remarks = build_remarks(
            semester=semester,
            tuition_amount=tuition_amount,
            due_after_payment=due,
            semester_fee=fee.amount,
            scholarship_applied=(
                scholarship if scholarship_applies(semester, lock.locked, scholarship) else None
            ),
            added_due=added_due if data.include_previous_due else None,
            final_amount=amount,
        )

        notices = []
        if not fee.found and not tuition_supplied:
            notices.append(
                EngineNotice(
                    kind=NoticeKind.FEE_SCHEDULE_NOT_FOUND,
                    message=(
                        f"No fee schedule found for semester {semester}; "
                        "enter the tuition amount."
                    ),
                )
            )

        return InvoiceDraft(
            student_id=profile.student_id,
            student_name=profile.student_name,
            invoice_number=data.invoice_number,
            semester=semester,
            academic_year_label=academic_year,
            fee=fee,
            total_program_fee=total_program_fee,
            scholarship_amount=scholarship,
            components=components,
            component_total=base_total,
            tuition_amount=tuition_amount,
            previous_due=previous_due,
            late_fine=late_fine,
            added_due=added_due,
            amount=amount,
            lock=lock,
            current_balance=current_balance,
            due_after_payment=due,
            remarks=remarks,
            notices=notices,
        )

    async def submit(
        self,
        data: InvoiceSubmit,
        invoice_number: str | None = None,
        actor: str | None = None,
        today: date | None = None,
    ) -> SubmitResult:
        """
        Create (no `invoice_number`) or update an invoice.

        The invoice is committed before the ledger is touched; a failed
        settlement leaves it committed and adds a `balance_not_reconciled`
        notice.
        """
        today = today or date.today()
        existing = None
        if invoice_number:
            existing = await self._get_invoice(invoice_number)
            data = data.model_copy(
                update={
                    "student_id": data.student_id or existing.student_id,
                    "semester": data.semester if data.semester is not None else existing.semester,
                    "invoice_number": invoice_number,
                }
            )
            if data.student_id != existing.student_id:
                raise ValidationError(
                    "Invoice belongs to a different student.", field="student_id"
                )

        validate_submission(data)
        profile = await self.students.get_profile(data.student_id)
        draft = await self._compute(profile, data)

        fee_missing = any(n.kind == NoticeKind.FEE_SCHEDULE_NOT_FOUND for n in draft.notices)
        if fee_missing:
            raise FeeScheduleNotFoundError(profile.student_id, draft.semester)

        # --- Committed ---
        invoice = existing or Invoice(
            invoice_number=await InvoiceNumberAllocator(self.db).allocate(),
            student_id=profile.student_id,
        )
        old_values = self._snapshot(existing) if existing else None
        self._apply(invoice, data, draft, today)
        if existing is None:
            self.db.add(invoice)
        number = invoice.invoice_number
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateError("Invoice", "invoice_number", number)

        if draft.semester == 1:
            await self.students.record_first_semester_invoice(profile, invoice.invoice_number)

        await self.audit.log(
            action=AuditAction.UPDATE_INVOICE if existing else AuditAction.CREATE_INVOICE,
            entity_type="Invoice",
            entity_identifier=invoice.invoice_number,
            actor=actor,
            old_values=old_values,
            new_values=self._snapshot(invoice),
        )
        await self.db.commit()
        # Ledger failures roll the session back and expire loaded objects
        student_id = profile.student_id
        logger.info(
            "%s invoice %s for %s semester %s (%s)",
            "Updated" if existing else "Created",
            number,
            student_id,
            draft.semester,
            "paid" if data.is_paid else "unpaid",
        )

        result = SubmitResult(
            invoice=invoice,
            state=SubmitState.COMMITTED,
            due_after_payment=draft.due_after_payment,
        )

        if data.is_paid:
            result.settlement = await self.ledger.settle(
                student_id,
                draft.semester,
                draft.tuition_amount,
                invoice_number=number,
                due_after_payment=draft.due_after_payment,
                actor=actor,
            )
            if not result.settlement.succeeded:
                result.notices.append(
                    EngineNotice(
                        kind=NoticeKind.BALANCE_NOT_RECONCILED,
                        message=(
                            f"Invoice {number} was saved but the balance could not be updated."
                        ),
                    )
                )
                result.invoice = await self._get_invoice(number)
                return result

        # --- Reconciled ---
        result.balance_after = await self.ledger.get(student_id)
        if not await self.ledger.record_due(student_id, draft.due_after_payment):
            result.notices.append(
                EngineNotice(
                    kind=NoticeKind.DUE_NOT_RECORDED,
                    message="Could not update the student's due amount.",
                )
            )
        result.state = SubmitState.RECONCILED

        try:
            result.next_semester = await self.scheduler.evaluate(
                student_id, today=today, actor=actor
            )
        except SQLAlchemyError:
            logger.exception("Next-semester evaluation failed for %s", student_id)
            await self.db.rollback()
            result.notices.append(
                EngineNotice(
                    kind=NoticeKind.NEXT_SEMESTER_FAILED,
                    message="Could not auto-generate next-semester invoice.",
                )
            )
        else:
            if result.next_semester.notice is not None:
                result.notices.append(result.next_semester.notice)

        result.invoice = await self._get_invoice(number)
        return result

    def _apply(
        self, invoice: Invoice, data: InvoiceSubmit, draft: InvoiceDraft, today: date
    ) -> None:
        invoice.semester = draft.semester
        invoice.academic_year_label = data.academic_year_label or draft.academic_year_label
        invoice.fee_head = data.fee_head or FeeComponentCode.TUITION.label
        invoice.amount = draft.amount
        invoice.tuition_amount = draft.tuition_amount
        invoice.added_due = draft.added_due
        invoice.late_fine = draft.late_fine
        invoice.due_date = data.due_date
        invoice.is_paid = data.is_paid
        invoice.payment_mode = data.payment_mode.value if data.payment_mode else None
        invoice.doc_type = data.doc_type.value if data.doc_type else None
        invoice.doc_number = data.doc_number
        invoice.remarks = draft.remarks

        if data.is_paid:
            invoice.paid_date = data.paid_date or invoice.paid_date or today
            invoice.transaction_ref = (
                data.transaction_ref if data.payment_mode.requires_transaction_ref else None
            )
        else:
            invoice.paid_date = None
            invoice.transaction_ref = None

        invoice.components = [
            InvoiceComponent(
                code=c.code.value,
                label=c.label,
                amount=c.amount,
                is_deduction=c.is_deduction,
            )
            for c in draft.components
        ]

    @staticmethod
    def _snapshot(invoice: Invoice) -> dict:
        return {
            "semester": invoice.semester,
            "amount": str(invoice.amount),
            "tuition_amount": str(invoice.tuition_amount),
            "is_paid": invoice.is_paid,
            "paid_date": invoice.paid_date.isoformat() if invoice.paid_date else None,
            "payment_mode": invoice.payment_mode,
        }

    async def _get_invoice(self, invoice_number: str) -> Invoice:
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.invoice_number == invoice_number)
            .options(selectinload(Invoice.components), selectinload(Invoice.student))
            .execution_options(populate_existing=True)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice", invoice_number)
        return invoice

    async def _invoices(self, student_id: str) -> list[Invoice]:
        result = await self.db.execute(select(Invoice).where(Invoice.student_id == student_id))
        return list(result.scalars().all())
