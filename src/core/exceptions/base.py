from typing import Any


class AppException(Exception):
    """Base application exception."""

    kind: str = "error"

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
        kind: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if kind is not None:
            self.kind = kind
        super().__init__(self.message)


class NotFoundError(AppException):
    """Resource not found."""

    kind = "not_found"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id={identifier} not found"
        super().__init__(message=message, status_code=404)


class ValidationError(AppException):
    """Validation error. Raised before any write; message is shown verbatim."""

    kind = "validation"

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message=message, status_code=422, details=details)


class DuplicateError(AppException):
    """Duplicate resource."""

    kind = "duplicate"

    def __init__(self, resource: str, field: str, value: Any):
        message = f"{resource} with {field}={value} already exists"
        super().__init__(message=message, status_code=409, details={"field": field, "value": value})


class FeeScheduleNotFoundError(AppException):
    """No fee could be resolved for a student/semester and none was supplied."""

    kind = "fee_schedule_not_found"

    def __init__(self, student_id: str, semester: int):
        message = f"Fee schedule not found for student {student_id}, semester {semester}"
        super().__init__(
            message=message,
            status_code=422,
            details={"field": "semester", "student_id": student_id, "semester": semester},
        )


class StudentMasterError(AppException):
    """External student-master call failed."""

    kind = "student_master_unavailable"

    def __init__(self, message: str = "Student master is unavailable"):
        super().__init__(message=message, status_code=502)
