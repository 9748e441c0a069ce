from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.documents import get_invoice_number, next_document_number
from src.modules.invoices.models import Invoice
from src.modules.students.models import StudentFeeProfile


class TestNextDocumentNumber:
    """Tests for the INV-NNNN sequence."""

    def test_first_number(self):
        assert next_document_number([]) == "INV-0001"

    def test_one_past_highest(self):
        assert next_document_number(["INV-0007", "INV-0003"]) == "INV-0008"

    def test_non_conforming_ids_ignored(self):
        """Legacy ids and blanks do not take part in the sequence."""
        assert next_document_number(["INV-0002", "legacy-77", None, "INV-12A", ""]) == "INV-0003"

    def test_width_grows_past_padding(self):
        assert next_document_number(["INV-9999"]) == "INV-10000"

    def test_custom_prefix_and_width(self):
        assert next_document_number(["RC-001", "INV-0099"], prefix="RC", width=3) == "RC-002"


class TestInvoiceNumberAllocator:
    """Tests for allocating numbers from stored invoices."""

    async def test_empty_table(self, db_session: AsyncSession):
        assert await get_invoice_number(db_session) == "INV-0001"

    async def test_follows_stored_invoices(self, db_session: AsyncSession):
        db_session.add(StudentFeeProfile(student_id="S1", current_semester=1))
        await db_session.flush()
        for number in ("INV-0004", "OLD-17"):
            db_session.add(
                Invoice(
                    invoice_number=number,
                    student_id="S1",
                    semester=1,
                    amount=Decimal("100.00"),
                )
            )
        await db_session.commit()

        assert await get_invoice_number(db_session) == "INV-0005"
