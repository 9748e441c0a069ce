"""Schemas for the fee engine: drafts, submits, settlement and scheduler results."""

from datetime import date
from decimal import Decimal
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, Field, field_validator

from src.modules.invoices.models import DocType, FeeComponentCode, PaymentMode


class FeeSource(StrEnum):
    """Where a resolved semester fee came from."""

    STUDENT_PROFILE = "student_profile"
    STUDENT_FEE_STRUCTURE = "student_fee_structure"
    PROGRAM_FEE_STRUCTURE = "program_fee_structure"
    NOT_FOUND = "not_found"


class NoticeKind(StrEnum):
    """Non-fatal conditions reported alongside a result."""

    FEE_SCHEDULE_NOT_FOUND = "fee_schedule_not_found"
    BALANCE_NOT_RECONCILED = "balance_not_reconciled"
    DUE_NOT_RECORDED = "due_not_recorded"
    NEXT_SEMESTER_AMOUNT_NOT_FOUND = "next_semester_amount_not_found"
    NEXT_SEMESTER_FAILED = "next_semester_failed"


class SettlementStatus(StrEnum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"
    FALLBACK = "fallback"
    FAILED = "failed"


class SubmitState(StrEnum):
    COMMITTED = "committed"
    RECONCILED = "reconciled"


class EngineNotice(BaseModel):
    kind: NoticeKind
    message: str


# --- Internal results (Decimal amounts) ---


class FeeResolution(BaseModel):
    """Fee owed for one semester and the tier that produced it."""

    amount: Decimal
    source: FeeSource

    @property
    def found(self) -> bool:
        return self.source != FeeSource.NOT_FOUND


class FirstSemesterLock(BaseModel):
    """Whether the first semester has already been billed."""

    locked: bool
    reference_amount: Decimal | None = None
    reference_invoice_number: str | None = None


class SettlementOutcome(BaseModel):
    """Result of settling one semester ledger entry."""

    student_id: str
    semester: int
    status: SettlementStatus
    balance_before: Decimal | None = None
    balance_after: Decimal | None = None
    amount_applied: Decimal = Decimal("0.00")
    invoice_number: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status != SettlementStatus.FAILED


class DraftComponent(BaseModel):
    """A resolved invoice line item."""

    code: FeeComponentCode
    label: str
    amount: Decimal
    is_deduction: bool


class InvoiceDraft(BaseModel):
    """Everything the engine computes before an invoice is written."""

    student_id: str
    student_name: str | None = None
    invoice_number: str | None = None
    semester: int
    academic_year_label: str
    fee: FeeResolution
    total_program_fee: Decimal
    scholarship_amount: Decimal
    components: list[DraftComponent]
    component_total: Decimal
    tuition_amount: Decimal
    previous_due: Decimal
    late_fine: Decimal
    added_due: Decimal
    amount: Decimal
    lock: FirstSemesterLock
    current_balance: Decimal
    due_after_payment: Decimal
    remarks: str
    notices: list[EngineNotice] = Field(default_factory=list)


class SchedulerOutcome(BaseModel):
    """Result of evaluating the next-semester rule for one student."""

    student_id: str
    triggered: bool = False
    days_elapsed: int | None = None
    last_relevant_date: date | None = None
    next_semester: int | None = None
    invoice_number: str | None = None
    amount: Decimal | None = None
    notice: EngineNotice | None = None


# --- Requests ---


class FeeComponentIn(BaseModel):
    """An invoice line item as entered on the invoice form."""

    code: FeeComponentCode
    amount: Decimal = Field(..., ge=0)
    label: str | None = Field(None, max_length=100)


class InvoiceDraftRequest(BaseModel):
    """Inputs of the invoice form that drive the computation."""

    student_id: str | None = Field(None, validation_alias=AliasChoices("student_id", "stuid"))
    semester: int | None = None
    components: list[FeeComponentIn] | None = None
    include_previous_due: bool = False
    previous_due: Decimal | None = Field(None, ge=0)
    late_fine: Decimal = Field(Decimal("0.00"), ge=0)
    # Number of the invoice being edited; excluded from the first-semester check
    invoice_number: str | None = None

    model_config = {"populate_by_name": True}

    @field_validator("student_id", "invoice_number", mode="before")
    @classmethod
    def strip_text(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class InvoiceSubmit(InvoiceDraftRequest):
    """Schema for creating or updating an invoice through the engine."""

    academic_year_label: str | None = Field(None, max_length=20)
    fee_head: str | None = Field("Tuition Fee", max_length=100)
    due_date: date | None = None
    is_paid: bool = False
    paid_date: date | None = None
    payment_mode: PaymentMode | None = None
    transaction_ref: str | None = Field(None, max_length=100)
    doc_type: DocType | None = None
    doc_number: str | None = Field(None, max_length=64)

    @field_validator("transaction_ref", "doc_number", "academic_year_label", mode="before")
    @classmethod
    def strip_optional(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("payment_mode", "doc_type", mode="before")
    @classmethod
    def empty_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


# --- Responses ---


class DraftComponentResponse(BaseModel):
    code: str
    label: str
    amount: float
    is_deduction: bool


class InvoiceDraftResponse(BaseModel):
    """Computed invoice preview."""

    student_id: str
    student_name: str | None
    invoice_number: str | None
    semester: int
    academic_year_label: str
    fee_amount: float
    fee_source: FeeSource
    total_program_fee: float
    scholarship_amount: float
    components: list[DraftComponentResponse]
    component_total: float
    tuition_amount: float
    previous_due: float
    late_fine: float
    added_due: float
    amount: float
    first_semester_locked: bool
    first_semester_invoice_number: str | None
    current_balance: float
    due_after_payment: float
    remarks: str
    notices: list[EngineNotice]


class SettlementResponse(BaseModel):
    student_id: str
    semester: int
    status: SettlementStatus
    balance_before: float | None
    balance_after: float | None
    amount_applied: float
    invoice_number: str | None


class SchedulerOutcomeResponse(BaseModel):
    student_id: str
    triggered: bool
    days_elapsed: int | None
    last_relevant_date: date | None
    next_semester: int | None
    invoice_number: str | None
    amount: float | None
    notice: EngineNotice | None


class NextSemesterRunResponse(BaseModel):
    """Result of evaluating the next-semester rule for every student."""

    evaluated: int
    generated: int
    outcomes: list[SchedulerOutcomeResponse]
    notices: list[EngineNotice]


def _optional_float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def draft_to_response(draft: InvoiceDraft) -> InvoiceDraftResponse:
    """Convert an internal draft to its response schema."""
    return InvoiceDraftResponse(
        student_id=draft.student_id,
        student_name=draft.student_name,
        invoice_number=draft.invoice_number,
        semester=draft.semester,
        academic_year_label=draft.academic_year_label,
        fee_amount=float(draft.fee.amount),
        fee_source=draft.fee.source,
        total_program_fee=float(draft.total_program_fee),
        scholarship_amount=float(draft.scholarship_amount),
        components=[
            DraftComponentResponse(
                code=c.code,
                label=c.label,
                amount=float(c.amount),
                is_deduction=c.is_deduction,
            )
            for c in draft.components
        ],
        component_total=float(draft.component_total),
        tuition_amount=float(draft.tuition_amount),
        previous_due=float(draft.previous_due),
        late_fine=float(draft.late_fine),
        added_due=float(draft.added_due),
        amount=float(draft.amount),
        first_semester_locked=draft.lock.locked,
        first_semester_invoice_number=draft.lock.reference_invoice_number,
        current_balance=float(draft.current_balance),
        due_after_payment=float(draft.due_after_payment),
        remarks=draft.remarks,
        notices=draft.notices,
    )


def settlement_to_response(outcome: SettlementOutcome) -> SettlementResponse:
    return SettlementResponse(
        student_id=outcome.student_id,
        semester=outcome.semester,
        status=outcome.status,
        balance_before=_optional_float(outcome.balance_before),
        balance_after=_optional_float(outcome.balance_after),
        amount_applied=float(outcome.amount_applied),
        invoice_number=outcome.invoice_number,
    )


def scheduler_to_response(outcome: SchedulerOutcome) -> SchedulerOutcomeResponse:
    return SchedulerOutcomeResponse(
        student_id=outcome.student_id,
        triggered=outcome.triggered,
        days_elapsed=outcome.days_elapsed,
        last_relevant_date=outcome.last_relevant_date,
        next_semester=outcome.next_semester,
        invoice_number=outcome.invoice_number,
        amount=_optional_float(outcome.amount),
        notice=outcome.notice,
    )
