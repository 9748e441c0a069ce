"""Student fee profile, per-semester fee ledger, balance and academic-year models."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database.base import Base, BigIntPK, TimestampMixin


class StudentFeeProfile(TimestampMixin, Base):
    """Fee-relevant view of a student, maintained by the student master.

    The engine writes back only balance, due_amount, current_semester and
    first_semester_invoice_number.
    """

    __tablename__ = "student_fee_profiles"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, index=True
    )
    student_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    program_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True
    )  # upper-cased, matches fee_structures.program_id
    admission_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Amounts (Decimal with 2 decimal places)
    total_program_fee: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    scholarship_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    # Cached copy; student_balances is authoritative when a row exists
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00"), server_default="0.00"
    )
    # Last reconciled "due after payment", display only
    due_amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00"), server_default="0.00"
    )

    current_semester: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_semester_invoice_number: Mapped[str | None] = mapped_column(
        String(50), nullable=True
    )

    # Relationships
    semester_fees: Mapped[list["SemesterFee"]] = relationship(
        "SemesterFee",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="SemesterFee.semester",
    )
    balance_record: Mapped["StudentBalance | None"] = relationship(
        "StudentBalance", back_populates="profile", uselist=False
    )
    academic_year: Mapped["StudentAcademicYear | None"] = relationship(
        "StudentAcademicYear", uselist=False
    )

    def semester_fee(self, semester: int) -> Decimal | None:
        """Scheduled fee for a semester, if the profile carries one.

        Note: semester_fees must be loaded.
        """
        for entry in self.semester_fees:
            if entry.semester == semester:
                return entry.amount
        return None


class SemesterFee(Base):
    """Per-semester fee of a student and its ledger entry.

    `amount` is the scheduled fee; `outstanding` is zeroed when the semester
    is settled.
    """

    __tablename__ = "student_semester_fees"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("student_fee_profiles.student_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    semester: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    outstanding: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    settled_invoice_number: Mapped[str | None] = mapped_column(String(50), nullable=True)

    profile: Mapped["StudentFeeProfile"] = relationship(
        "StudentFeeProfile", back_populates="semester_fees"
    )

    __table_args__ = (
        UniqueConstraint("student_id", "semester", name="uq_student_semester_fee"),
    )

    @property
    def is_settled(self) -> bool:
        return self.settled_at is not None


class StudentBalance(Base):
    """Authoritative running balance of a student (amount still owed)."""

    __tablename__ = "student_balances"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("student_fee_profiles.student_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    profile: Mapped["StudentFeeProfile"] = relationship(
        "StudentFeeProfile", back_populates="balance_record"
    )


class StudentAcademicYear(Base):
    """Explicit academic-year label for a student, e.g. "2023-2024"."""

    __tablename__ = "student_academic_years"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("student_fee_profiles.student_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    label: Mapped[str] = mapped_column(String(20), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
