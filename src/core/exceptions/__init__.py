from src.core.exceptions.base import (
    AppException,
    NotFoundError,
    ValidationError,
    DuplicateError,
    FeeScheduleNotFoundError,
    StudentMasterError,
)

__all__ = [
    "AppException",
    "NotFoundError",
    "ValidationError",
    "DuplicateError",
    "FeeScheduleNotFoundError",
    "StudentMasterError",
]
