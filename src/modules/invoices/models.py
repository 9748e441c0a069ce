"""Invoice and InvoiceComponent models."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, BigIntPK


class PaymentMode(StrEnum):
    """Payment mode enumeration (values as shown on receipts)."""

    CASH = "Cash"
    UPI = "Online(UPI)"
    NEFT = "Online(NEFT)"
    CHEQUE_DEPT = "Cheque/Dept"

    @property
    def requires_transaction_ref(self) -> bool:
        return self in (PaymentMode.UPI, PaymentMode.NEFT, PaymentMode.CHEQUE_DEPT)


class DocType(StrEnum):
    """Identity document attached to an invoice."""

    AADHAAR = "AADHAAR"
    PAN = "PAN"
    PASSPORT = "PASSPORT"
    DRIVING_LICENSE = "DRIVING_LICENSE"
    VOTER_ID = "VOTER_ID"
    OTHER = "OTHER"


class FeeComponentCode(StrEnum):
    """Invoice line items. Scholarship and concession are deductions."""

    ADMISSION = "admission"
    TUITION = "tuition"
    LIBRARY = "library"
    ACTIVITIES = "activities"
    SKILLS = "skills"
    LAPTOP = "laptop"
    SCHOLARSHIP = "scholarship"
    REGISTRATION = "registration"
    EXAM = "exam"
    CONCESSION = "concession"

    @property
    def label(self) -> str:
        return FEE_COMPONENT_LABELS[self]

    @property
    def is_deduction(self) -> bool:
        return self in (FeeComponentCode.SCHOLARSHIP, FeeComponentCode.CONCESSION)


FEE_COMPONENT_LABELS = {
    FeeComponentCode.ADMISSION: "Admission Fee",
    FeeComponentCode.TUITION: "Tuition Fee",
    FeeComponentCode.LIBRARY: "Library Book Bank Facility",
    FeeComponentCode.ACTIVITIES: "Student Activities Fee",
    FeeComponentCode.SKILLS: "Skills Development Fee",
    FeeComponentCode.LAPTOP: "Laptop",
    FeeComponentCode.SCHOLARSHIP: "Scholarship",
    FeeComponentCode.REGISTRATION: "Registration Fee",
    FeeComponentCode.EXAM: "Examination Fee",
    FeeComponentCode.CONCESSION: "Concession",
}


class Invoice(Base):
    """Fee invoice for a student and semester."""

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    invoice_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )  # INV-NNNN

    # Relations
    student_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("student_fee_profiles.student_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Billing term; NULL only on rows imported from before the column existed
    semester: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    academic_year_label: Mapped[str] = mapped_column(
        String(20), nullable=False, default="NA"
    )  # "2024-2025" | "NA"
    fee_head: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Amounts (Decimal with 2 decimal places)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )  # component total + added_due
    tuition_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )  # the only part that reduces balance
    added_due: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )  # previous due + late fine
    late_fine: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )

    # Dates
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paid_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Payment
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    payment_mode: Mapped[str | None] = mapped_column(String(30), nullable=True)
    transaction_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Identity document
    doc_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    doc_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Metadata
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    student: Mapped["StudentFeeProfile"] = relationship("StudentFeeProfile")
    components: Mapped[list["InvoiceComponent"]] = relationship(
        "InvoiceComponent",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceComponent.id",
    )

    @property
    def last_relevant_date(self) -> date | None:
        """Paid date when known, otherwise the due date."""
        return self.paid_date or self.due_date


class InvoiceComponent(Base):
    """Line item in an invoice."""

    __tablename__ = "invoice_components"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code: Mapped[str] = mapped_column(String(30), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    is_deduction: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Relationships
    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="components")


# Import at the end to avoid circular imports
from src.modules.students.models import StudentFeeProfile
