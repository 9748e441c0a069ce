"""Schemas for Students module.

Records pushed by (or pulled from) the student master use many different key
names for the same field; the input schema accepts all known variants.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from src.shared.utils.money import to_money

MAX_SEMESTERS = 12


def _parse_date(value: Any) -> date | None:
    """Accept date, datetime or an ISO-ish string; anything else is None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def collect_semester_fees(record: dict[str, Any]) -> dict[int, Decimal]:
    """
    Gather per-semester fees from every layout the student master uses:

    - flat columns: sem1..sem12 or semester_1_fee..semester_12_fee
    - a nested mapping: {"semester_fees": {"sem1": ..., "sem2": ...}}
    - a nested list: {"semester_fees": [{"semester": 1, "amount": ...}]}

    Later layouts win over earlier ones for the same semester.
    """
    fees: dict[int, Decimal] = {}
    for i in range(1, MAX_SEMESTERS + 1):
        for key in (f"sem{i}", f"semester_{i}_fee"):
            if record.get(key) is not None:
                fees[i] = to_money(record[key])

    nested = record.get("semester_fees")
    if isinstance(nested, dict):
        for key, value in nested.items():
            raw = str(key).lower().removeprefix("sem").removeprefix("ester_")
            if raw.isdigit() and 1 <= int(raw) <= MAX_SEMESTERS and value is not None:
                fees[int(raw)] = to_money(value)
    elif isinstance(nested, list):
        for item in nested:
            if not isinstance(item, dict):
                continue
            semester = str(item.get("semester", "")).strip()
            if semester.isdigit() and 1 <= int(semester) <= MAX_SEMESTERS and item.get("amount"):
                fees[int(semester)] = to_money(item["amount"])
    return fees


# --- Profile Schemas ---


class StudentFeeProfileIn(BaseModel):
    """Student-master record (create or update). Unknown keys are ignored."""

    student_id: str | None = Field(
        None, validation_alias=AliasChoices("student_id", "stuid", "stu_id", "studentId", "id")
    )
    student_name: str | None = Field(
        None, validation_alias=AliasChoices("student_name", "stuname", "name", "full_name")
    )
    program_id: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "program_id",
            "stu_course_id",
            "courseid",
            "programId",
            "prg_id",
            "course_id",
            "degree_id",
        ),
    )
    admission_date: date | None = Field(
        None,
        validation_alias=AliasChoices("admission_date", "stuadmissiondt", "admission_dt", "doj"),
    )
    total_program_fee: Decimal = Field(
        Decimal("0.00"),
        validation_alias=AliasChoices("total_program_fee", "semfees", "total_fees", "program_fee"),
    )
    scholarship_amount: Decimal = Field(
        Decimal("0.00"),
        validation_alias=AliasChoices("scholarship_amount", "scholrshipfees", "scholarship"),
    )
    current_semester: int = Field(
        1,
        validation_alias=AliasChoices(
            "current_semester", "stu_curr_semester", "semester_no", "currentSemester"
        ),
    )
    balance: Decimal | None = Field(None, validation_alias=AliasChoices("balance"))
    due_amount: Decimal | None = Field(
        None,
        validation_alias=AliasChoices(
            "due_amount", "fees_due", "balance_due", "semfees_due", "remaining_fees", "outstanding"
        ),
    )
    semester_fees: dict[int, Decimal] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def gather_semester_fees(cls, data: Any) -> Any:
        """Fold the flat/nested semester fee layouts into `semester_fees`."""
        if isinstance(data, dict):
            data = dict(data)
            data["semester_fees"] = collect_semester_fees(data)
        return data

    @field_validator("student_id", "student_name", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str | None:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("program_id", mode="before")
    @classmethod
    def normalize_program(cls, v: Any) -> str | None:
        """Program ids are matched case-insensitively; store upper-case."""
        if v is None:
            return None
        v = str(v).strip().upper()
        return v or None

    @field_validator("admission_date", mode="before")
    @classmethod
    def lenient_date(cls, v: Any) -> date | None:
        return _parse_date(v)

    @field_validator("total_program_fee", "scholarship_amount", mode="before")
    @classmethod
    def lenient_money(cls, v: Any) -> Decimal:
        return to_money(v)

    @field_validator("balance", "due_amount", mode="before")
    @classmethod
    def lenient_optional_money(cls, v: Any) -> Decimal | None:
        if v is None or v == "":
            return None
        return to_money(v)

    @field_validator("current_semester", mode="before")
    @classmethod
    def lenient_semester(cls, v: Any) -> int:
        try:
            semester = int(str(v).strip())
        except (TypeError, ValueError):
            return 1
        return semester if semester >= 1 else 1

    @field_validator("scholarship_amount", "total_program_fee")
    @classmethod
    def not_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Amount must not be negative")
        return v


class SemesterFeeResponse(BaseModel):
    """Per-semester fee and ledger entry."""

    semester: int
    amount: float
    outstanding: float
    settled_at: datetime | None = None
    settled_invoice_number: str | None = None

    model_config = {"from_attributes": True}


class StudentFeeProfileResponse(BaseModel):
    """Schema for student fee profile response."""

    student_id: str
    student_name: str | None
    program_id: str | None
    admission_date: date | None
    total_program_fee: float
    scholarship_amount: float
    current_semester: int
    balance: float
    due_amount: float
    first_semester_invoice_number: str | None
    academic_year_label: str | None = None
    semester_fees: list[SemesterFeeResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class StudentSyncResult(BaseModel):
    """Result of pulling profiles from the student master."""

    created: int
    updated: int
    skipped: int


# --- Balance Schemas ---


class BalanceResponse(BaseModel):
    """Current balance of a student."""

    student_id: str
    balance: float
    source: str  # ledger | profile


class BalanceUpdate(BaseModel):
    """Overwrite a student's balance."""

    student_id: str = Field(..., validation_alias=AliasChoices("student_id", "stuid", "id"))
    balance: Decimal = Field(..., ge=0)


class BalancesResponse(BaseModel):
    """Batched balances; None marks a student whose balance could not be read."""

    balances: dict[str, float | None]


class SettleSemesterRequest(BaseModel):
    """Settle one semester ledger entry and reduce the balance."""

    student_id: str = Field(..., validation_alias=AliasChoices("student_id", "stuid", "id"))
    semester: int = Field(..., ge=1)
    amount: Decimal = Field(..., ge=0)
    invoice_number: str | None = None


# --- Academic Year Schemas ---


class AcademicYearUpdate(BaseModel):
    """Explicit academic-year label for a student."""

    label: str = Field(..., min_length=1, max_length=20)


class AcademicYearMapResponse(BaseModel):
    """student_id -> academic-year label."""

    academic_years: dict[str, str]
