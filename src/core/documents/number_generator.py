import re
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings


def next_document_number(
    existing: Iterable[str | None],
    prefix: str | None = None,
    width: int | None = None,
) -> str:
    """
    Next sequential number in format PREFIX-NNNN, one past the highest seen.

    Ids that do not match PREFIX-<digits> are ignored.

    Examples:
        [] -> INV-0001
        ["INV-0007", "INV-0003"] -> INV-0008
        ["INV-0002", "legacy-77", None] -> INV-0003
    """
    prefix = prefix or settings.invoice_number_prefix
    width = width or settings.invoice_number_width
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$")

    highest = 0
    for value in existing:
        match = pattern.match((value or "").strip())
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}-{highest + 1:0{width}d}"


class InvoiceNumberAllocator:
    """
    Allocates invoice numbers by scanning the invoices already stored.

    Examples:
        INV-0001
        INV-0042

    The unique constraint on invoices.invoice_number rejects a concurrent
    duplicate; callers serialize submits per student.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def allocate(self) -> str:
        """Return the next free invoice number."""
        from src.modules.invoices.models import Invoice

        result = await self.session.execute(select(Invoice.invoice_number))
        return next_document_number(result.scalars().all())


async def get_invoice_number(session: AsyncSession) -> str:
    """Convenience function to allocate an invoice number."""
    return await InvoiceNumberAllocator(session).allocate()
