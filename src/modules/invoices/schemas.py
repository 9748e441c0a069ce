"""Schemas for Invoices module."""

from datetime import date, datetime

from pydantic import BaseModel

from src.modules.fees.schemas import (
    EngineNotice,
    SchedulerOutcomeResponse,
    SettlementResponse,
    SubmitState,
)


class InvoiceFilters(BaseModel):
    """Filters for listing invoices."""

    student_id: str | None = None
    semester: int | None = None
    is_paid: bool | None = None
    search: str | None = None
    page: int = 1
    limit: int = 100


class InvoiceComponentResponse(BaseModel):
    """Schema for invoice component response."""

    code: str
    label: str
    amount: float
    is_deduction: bool

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    """Schema for invoice response."""

    id: int
    invoice_number: str
    student_id: str
    student_name: str | None = None
    semester: int | None
    academic_year_label: str
    fee_head: str | None
    amount: float
    tuition_amount: float
    added_due: float
    late_fine: float
    due_date: date | None
    paid_date: date | None
    is_paid: bool
    payment_mode: str | None
    transaction_ref: str | None
    doc_type: str | None
    doc_number: str | None
    remarks: str | None
    is_system_generated: bool
    created_at: datetime | None = None
    components: list[InvoiceComponentResponse] = []


class InvoiceSummary(BaseModel):
    """Schema for invoice list rows."""

    id: int
    invoice_number: str
    student_id: str
    student_name: str | None = None
    semester: int | None
    academic_year_label: str
    fee_head: str | None
    amount: float
    due_date: date | None
    paid_date: date | None
    is_paid: bool
    payment_mode: str | None
    is_system_generated: bool


class InvoiceSubmitResponse(BaseModel):
    """Stored invoice plus what the engine did after saving it."""

    invoice: InvoiceResponse
    state: SubmitState
    settlement: SettlementResponse | None = None
    balance_after: float | None = None
    due_after_payment: float
    next_semester: SchedulerOutcomeResponse | None = None
    notices: list[EngineNotice] = []
