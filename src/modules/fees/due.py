"""
Due-after-payment computation and the first-semester lock.

Only the tuition line reduces what a student still owes. Previous due and
late fine are added to the billed amount but never to the due, so a paid
invoice lowers the balance by exactly its tuition component.
"""

import re
from collections.abc import Iterable
from decimal import Decimal

from src.core.config import settings
from src.modules.fees.schemas import FirstSemesterLock
from src.modules.invoices.models import Invoice
from src.modules.students.models import StudentFeeProfile
from src.shared.utils.money import ZERO, non_negative, round_money

# Legacy invoices without a semester column carry the semester in their remark
SEMESTER_ONE_TAG = re.compile(r"\bSemester:\s*1\b")


def _is_first_semester_invoice(invoice: Invoice) -> bool:
    if invoice.semester is not None:
        return invoice.semester == 1
    return bool(invoice.remarks and SEMESTER_ONE_TAG.search(invoice.remarks))


def evaluate_first_semester_lock(
    profile: StudentFeeProfile,
    invoices: Iterable[Invoice],
    exclude_invoice_number: str | None = None,
) -> FirstSemesterLock:
    """
    Decide whether the first semester has already been billed.

    Locked when the profile records a first-semester invoice, when another
    invoice bills semester 1, or when the student is past semester 1 and has
    any invoice at all. The invoice being edited is ignored.
    """
    others = [
        inv
        for inv in invoices
        if not exclude_invoice_number or inv.invoice_number != exclude_invoice_number
    ]

    recorded = profile.first_semester_invoice_number
    if recorded and recorded != exclude_invoice_number:
        reference = next((inv for inv in others if inv.invoice_number == recorded), None)
        return FirstSemesterLock(
            locked=True,
            reference_amount=reference.amount if reference is not None else None,
            reference_invoice_number=recorded,
        )

    first = next((inv for inv in others if _is_first_semester_invoice(inv)), None)
    if first is not None:
        return FirstSemesterLock(
            locked=True,
            reference_amount=first.amount,
            reference_invoice_number=first.invoice_number,
        )

    if profile.current_semester > 1 and others:
        return FirstSemesterLock(locked=True)

    return FirstSemesterLock(locked=False)


def compute_due(
    semester: int,
    locked: bool,
    current_balance: Decimal,
    total_program_fee: Decimal,
    scholarship_amount: Decimal,
    tuition_amount: Decimal,
) -> Decimal:
    """
    Amount still owed after paying `tuition_amount`.

    An unbilled first semester starts from the program fee less scholarship;
    every other case starts from the current balance. Never negative.

        >>> D = Decimal
        >>> compute_due(1, False, D("0"), D("100000"), D("10000"), D("25000"))
        Decimal('65000.00')
        >>> compute_due(2, False, D("40000"), D("100000"), D("0"), D("25000"))
        Decimal('15000.00')
    """
    treat_as_locked = semester != 1 or locked
    if treat_as_locked:
        base = current_balance or ZERO
    else:
        base = (total_program_fee or ZERO) - (scholarship_amount or ZERO)
    return non_negative(round_money(base - (tuition_amount or ZERO)))


def scholarship_applies(semester: int, locked: bool, scholarship_amount: Decimal) -> bool:
    return semester == 1 and not locked and scholarship_amount > ZERO


def _money(value: Decimal) -> str:
    return f"{settings.currency_symbol}{round_money(value):.2f}"


def build_remarks(
    semester: int,
    tuition_amount: Decimal,
    due_after_payment: Decimal,
    semester_fee: Decimal,
    scholarship_applied: Decimal | None = None,
    added_due: Decimal | None = None,
    final_amount: Decimal | None = None,
) -> str:
    """
    Canonical computed breakdown stored in Invoice.remarks.

        Semester: 1; Amount (Sem 1) = ₹25000.00; Scholarship Applied: ₹10000.00;
        Due after payment: ₹65000.00 (Semester Fee: ₹25000.00)

    The added-due part is present only when `added_due` is given.
    """
    parts = [f"Semester: {semester}", f"Amount (Sem {semester}) = {_money(tuition_amount)}"]
    if scholarship_applied:
        parts.append(f"Scholarship Applied: {_money(scholarship_applied)}")
    if added_due is not None:
        final = final_amount if final_amount is not None else tuition_amount + added_due
        parts.append(f"+ Due Added (incl. fine) = {_money(added_due)}")
        parts.append(f"Final = {_money(final)}")
    parts.append(
        f"Due after payment: {_money(due_after_payment)} (Semester Fee: {_money(semester_fee)})"
    )
    return "; ".join(parts)


def next_semester_remarks(semester: int) -> str:
    return f"Auto-generated for Semester {semester} (6-month rule)."
