"""Service for Invoices module (reads; writes go through the settlement engine)."""

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.exceptions import NotFoundError
from src.modules.invoices.models import Invoice
from src.modules.invoices.schemas import InvoiceFilters
from src.shared.schemas import page_offset


class InvoiceService:
    """Service for reading invoices."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_number(self, invoice_number: str) -> Invoice:
        """Get invoice by number with components and student loaded."""
        result = await self.db.execute(
            select(Invoice)
            .where(Invoice.invoice_number == invoice_number)
            .options(selectinload(Invoice.components), selectinload(Invoice.student))
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError("Invoice", invoice_number)
        return invoice

    async def list_invoices(self, filters: InvoiceFilters) -> tuple[list[Invoice], int]:
        """List invoices, newest due date first."""
        query = select(Invoice)

        if filters.student_id:
            query = query.where(Invoice.student_id == filters.student_id)
        if filters.semester is not None:
            query = query.where(Invoice.semester == filters.semester)
        if filters.is_paid is not None:
            query = query.where(Invoice.is_paid == filters.is_paid)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(
                    Invoice.invoice_number.ilike(pattern),
                    Invoice.student_id.ilike(pattern),
                    Invoice.fee_head.ilike(pattern),
                    Invoice.doc_type.ilike(pattern),
                    Invoice.doc_number.ilike(pattern),
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            query.options(selectinload(Invoice.student))
            .order_by(Invoice.due_date.desc().nulls_last(), Invoice.invoice_number.desc())
            .offset(page_offset(filters.page, filters.limit))
            .limit(filters.limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all()), total
