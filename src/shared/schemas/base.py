from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for every successful response."""

    success: bool = True
    data: T
    message: str | None = None


class ErrorDetail(BaseModel):
    field: str | None = None
    message: str


class ErrorResponse(BaseModel):
    """
    Envelope for failures.

    `kind` names the failure class (validation, not_found, duplicate,
    fee_schedule_not_found, student_master_unavailable, database, error) so
    clients can branch without parsing `message`.
    """

    success: bool = False
    data: None = None
    message: str
    kind: str = "error"
    errors: list[ErrorDetail] = Field(default_factory=list)


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        pages = (total + limit - 1) // limit if limit > 0 else 0
        return cls(items=items, total=total, page=page, limit=limit, pages=pages)


def page_offset(page: int, limit: int) -> int:
    """Row offset of a 1-based page."""
    return max(page - 1, 0) * limit
