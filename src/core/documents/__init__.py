from src.core.documents.number_generator import (
    InvoiceNumberAllocator,
    get_invoice_number,
    next_document_number,
)

__all__ = ["InvoiceNumberAllocator", "get_invoice_number", "next_document_number"]
