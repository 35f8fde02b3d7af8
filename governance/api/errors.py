"""Translate governance errors into HTTP responses."""

from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from governance.errors import (
    GovernanceError,
    NotFoundError,
    PersistenceFailure,
    PolicyViolation,
    ValidationError,
)

logger = structlog.get_logger(__name__)

STATUS_BY_ERROR: dict[type[GovernanceError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    PolicyViolation: 409,
    PersistenceFailure: 503,
}


def status_for(exc: GovernanceError) -> int:
    for error_type, status_code in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def _error_response(
    request: Request, status_code: int, kind: str, detail: str, **extra
) -> JSONResponse:
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    content = {"error": kind, "detail": detail, "correlation_id": correlation_id}
    content.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers={"X-Correlation-Id": correlation_id},
    )


async def governance_error_handler(request: Request, exc: GovernanceError) -> JSONResponse:
    """Structured error body so callers can tell a policy block from a retryable failure."""
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log("governance_request_failed", kind=exc.kind, status_code=status_code, detail=exc.message)

    extra = {}
    if isinstance(exc, PolicyViolation) and exc.details:
        extra["details"] = exc.details
    return _error_response(request, status_code, exc.kind, exc.message, **extra)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request body/query validation failures share the validation_error shape."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning("validation_error", detail=detail)
    return _error_response(request, 400, ValidationError.kind, detail)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GovernanceError, governance_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
