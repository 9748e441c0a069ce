"""API endpoints for Invoices module."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database.session import get_db
from src.modules.fees.schemas import (
    InvoiceSubmit,
    scheduler_to_response,
    settlement_to_response,
)
from src.modules.fees.service import SettlementEngine, SubmitResult
from src.modules.invoices.schemas import (
    InvoiceComponentResponse,
    InvoiceFilters,
    InvoiceResponse,
    InvoiceSubmitResponse,
    InvoiceSummary,
)
from src.modules.invoices.service import InvoiceService
from src.shared.schemas.base import ApiResponse, PaginatedResponse

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def _invoice_to_response(invoice) -> InvoiceResponse:
    """Convert Invoice model to response schema."""
    return InvoiceResponse(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        student_id=invoice.student_id,
        student_name=invoice.student.student_name if invoice.student else None,
        semester=invoice.semester,
        academic_year_label=invoice.academic_year_label,
        fee_head=invoice.fee_head,
        amount=float(invoice.amount),
        tuition_amount=float(invoice.tuition_amount),
        added_due=float(invoice.added_due),
        late_fine=float(invoice.late_fine),
        due_date=invoice.due_date,
        paid_date=invoice.paid_date,
        is_paid=invoice.is_paid,
        payment_mode=invoice.payment_mode,
        transaction_ref=invoice.transaction_ref,
        doc_type=invoice.doc_type,
        doc_number=invoice.doc_number,
        remarks=invoice.remarks,
        is_system_generated=invoice.is_system_generated,
        created_at=invoice.created_at,
        components=[InvoiceComponentResponse.model_validate(c) for c in invoice.components],
    )


def _invoice_to_summary(invoice) -> InvoiceSummary:
    """Convert Invoice model to summary schema."""
    return InvoiceSummary(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        student_id=invoice.student_id,
        student_name=invoice.student.student_name if invoice.student else None,
        semester=invoice.semester,
        academic_year_label=invoice.academic_year_label,
        fee_head=invoice.fee_head,
        amount=float(invoice.amount),
        due_date=invoice.due_date,
        paid_date=invoice.paid_date,
        is_paid=invoice.is_paid,
        payment_mode=invoice.payment_mode,
        is_system_generated=invoice.is_system_generated,
    )


def _submit_to_response(result: SubmitResult) -> InvoiceSubmitResponse:
    return InvoiceSubmitResponse(
        invoice=_invoice_to_response(result.invoice),
        state=result.state,
        settlement=settlement_to_response(result.settlement) if result.settlement else None,
        balance_after=float(result.balance_after) if result.balance_after is not None else None,
        due_after_payment=float(result.due_after_payment),
        next_semester=(
            scheduler_to_response(result.next_semester) if result.next_semester else None
        ),
        notices=result.notices,
    )


@router.get(
    "",
    response_model=ApiResponse[PaginatedResponse[InvoiceSummary]],
)
async def list_invoices(
    student_id: str | None = Query(None),
    semester: int | None = Query(None, ge=1),
    is_paid: bool | None = Query(None),
    search: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List invoices with optional filters."""
    service = InvoiceService(db)
    filters = InvoiceFilters(
        student_id=student_id,
        semester=semester,
        is_paid=is_paid,
        search=search,
        page=page,
        limit=limit,
    )
    invoices, total = await service.list_invoices(filters)
    return ApiResponse(
        success=True,
        data=PaginatedResponse.create(
            items=[_invoice_to_summary(i) for i in invoices],
            total=total,
            page=page,
            limit=limit,
        ),
    )


@router.get(
    "/{invoice_number}",
    response_model=ApiResponse[InvoiceResponse],
)
async def get_invoice(
    invoice_number: str,
    db: AsyncSession = Depends(get_db),
):
    """Get invoice by number."""
    service = InvoiceService(db)
    invoice = await service.get_by_number(invoice_number)
    return ApiResponse(success=True, data=_invoice_to_response(invoice))


@router.post(
    "",
    response_model=ApiResponse[InvoiceSubmitResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceSubmit,
    db: AsyncSession = Depends(get_db),
):
    """Create an invoice; a paid invoice settles its semester."""
    engine = SettlementEngine(db)
    result = await engine.submit(data)
    return ApiResponse(
        success=True,
        message="Invoice created.",
        data=_submit_to_response(result),
    )


@router.put(
    "/{invoice_number}",
    response_model=ApiResponse[InvoiceSubmitResponse],
)
async def update_invoice(
    invoice_number: str,
    data: InvoiceSubmit,
    db: AsyncSession = Depends(get_db),
):
    """Update an invoice; marking it paid settles its semester."""
    engine = SettlementEngine(db)
    result = await engine.submit(data, invoice_number=invoice_number)
    return ApiResponse(
        success=True,
        message="Invoice updated.",
        data=_submit_to_response(result),
    )
