"""Schemas for Fee Structures module."""

from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field, field_validator


class FeeStructureCreate(BaseModel):
    """Schema for creating a fee structure row."""

    program_id: str | None = Field(
        None, validation_alias=AliasChoices("program_id", "course_id", "stu_course_id")
    )
    semester: int = Field(..., ge=1)
    fee_head: str = Field("Tuition Fee", min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    student_id: str | None = Field(None, validation_alias=AliasChoices("student_id", "stuid"))

    model_config = {"populate_by_name": True}

    @field_validator("program_id", mode="before")
    @classmethod
    def normalize_program(cls, v):
        if v is None:
            return None
        v = str(v).strip().upper()
        return v or None

    @field_validator("student_id", mode="before")
    @classmethod
    def strip_student(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class FeeStructureFilters(BaseModel):
    """Filters for listing fee structures."""

    student_id: str | None = None
    semester: int | None = None
    program_id: str | None = None
    page: int = 1
    limit: int = 100


class FeeStructureResponse(BaseModel):
    """Schema for fee structure response."""

    id: int
    program_id: str | None
    semester: int
    fee_head: str
    amount: float
    student_id: str | None

    model_config = {"from_attributes": True}
