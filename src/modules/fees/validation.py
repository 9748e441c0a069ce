"""Submit-time checks. Messages are shown to the operator as-is."""

import re

from src.core.exceptions import ValidationError
from src.modules.fees.schemas import InvoiceSubmit
from src.modules.invoices.models import DocType

ALPHANUMERIC = re.compile(r"^[A-Za-z0-9]+$")
AADHAAR = re.compile(r"^\d{12}$")
PAN = re.compile(r"^[A-Z]{5}\d{4}[A-Z]$")


def document_error(doc_type: DocType | None, doc_number: str | None) -> str | None:
    """Problem with an identity document, or None when it is acceptable."""
    if not doc_type and not doc_number:
        return None
    if doc_type and not doc_number:
        return "Enter Document Number."
    if not ALPHANUMERIC.match(doc_number):
        return "Document Number must be alphanumeric."
    if doc_type == DocType.AADHAAR and not AADHAAR.match(doc_number):
        return "Aadhaar must be exactly 12 digits."
    if doc_type == DocType.PAN and not PAN.match(doc_number):
        return "PAN must match AAAAA9999A."
    if doc_type and doc_type not in (DocType.AADHAAR, DocType.PAN):
        if not 4 <= len(doc_number) <= 32:
            return "Document Number must be 4–32 characters for this type."
    return None


def validate_submission(data: InvoiceSubmit) -> None:
    """Reject an invoice before anything is written."""
    if not data.student_id:
        raise ValidationError("Select a student.", field="student_id")
    if data.semester is not None and data.semester < 1:
        raise ValidationError("Semester must be 1 or higher.", field="semester")

    message = document_error(data.doc_type, data.doc_number)
    if message:
        raise ValidationError(message, field="doc_number")

    if data.is_paid:
        if not data.payment_mode:
            raise ValidationError(
                "Select a Payment Mode for completed payments.", field="payment_mode"
            )
        if data.payment_mode.requires_transaction_ref and not data.transaction_ref:
            raise ValidationError(
                "Enter the required reference/transaction number.", field="transaction_ref"
            )
