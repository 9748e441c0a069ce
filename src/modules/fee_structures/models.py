"""Fee structure model: program-level and per-student fee schedule rows."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database.base import Base, BigIntPK, TimestampMixin


class FeeStructure(TimestampMixin, Base):
    """
    One fee head of one semester.

    Rows with student_id set are per-student overrides; rows without it
    apply to every student of the program.
    """

    __tablename__ = "fee_structures"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    program_id: Mapped[str | None] = mapped_column(
        String(50), nullable=True, index=True
    )  # upper-cased
    semester: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    fee_head: Mapped[str] = mapped_column(String(100), nullable=False, default="Tuition Fee")
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2), nullable=False, default=Decimal("0.00")
    )
    student_id: Mapped[str | None] = mapped_column(
        String(50),
        ForeignKey("student_fee_profiles.student_id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
