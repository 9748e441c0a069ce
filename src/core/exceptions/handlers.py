import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.exceptions import AppException
from src.shared.schemas import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

VALUE_ERROR_PREFIX = "Value error, "


def _error_response(
    status_code: int, message: str, kind: str, errors: list[ErrorDetail]
) -> JSONResponse:
    response = ErrorResponse(message=message, kind=kind, errors=errors)
    return JSONResponse(status_code=status_code, content=response.model_dump())


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Engine and service errors; the message is user-facing and returned verbatim."""
    if exc.status_code >= 500:
        logger.warning(
            "%s on %s %s: %s", exc.kind, request.method, request.url.path, exc.message
        )
    return _error_response(
        exc.status_code,
        exc.message,
        exc.kind,
        [ErrorDetail(field=exc.details.get("field"), message=exc.message)],
    )


def _format_validation_errors(errors: list[dict]) -> list[ErrorDetail]:
    details: list[ErrorDetail] = []
    for error in errors:
        loc = error.get("loc", ())
        # "body" / "query" prefixes add nothing for the client
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        field = ".".join(str(part) for part in loc) if loc else None
        message = str(error.get("msg", "Invalid value")).removeprefix(VALUE_ERROR_PREFIX)
        details.append(ErrorDetail(field=field, message=message))
    return details


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies. A single problem is promoted to the top-level message."""
    errors = _format_validation_errors(exc.errors())
    message = errors[0].message if len(errors) == 1 else "Validation error"
    return _error_response(422, message, "validation", errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = str(exc.detail) if exc.detail else "HTTP error"
    return _error_response(exc.status_code, message, "http", [ErrorDetail(message=message)])


def _friendly_db_error(exc: Exception) -> tuple[str, str | None, int]:
    """
    Map constraint failures to a stable message, field and status.

    Full DB error text is only exposed when debug is enabled.
    """
    raw = str(getattr(exc, "orig", exc))
    lower = raw.lower()

    if ("does not exist" in lower or "no such" in lower) and (
        "column" in lower or "table" in lower
    ):
        return (
            "Database schema is out of date. Run the latest migrations and try again.",
            None,
            500,
        )

    if "unique" in lower or "duplicate" in lower:
        if "invoice_number" in lower:
            return (
                "Invoice number already exists. Reload invoices and try again.",
                "invoice_number",
                409,
            )
        if "semester" in lower:
            return ("This semester is already recorded for the student.", "semester", 409)

    if settings.debug:
        return (raw, None, 500)

    return ("Database error", None, 500)


async def sqlalchemy_db_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    message, field, status_code = _friendly_db_error(exc)
    return _error_response(
        status_code, message, "database", [ErrorDetail(field=field, message=message)]
    )
