# core/errors.py
"""
Domain exceptions and their HTTP rendering.

Services raise `ServiceError` subclasses; the handlers registered in main.py
turn them into `{"error": code, "message": ..., "details": ...}` responses
using the status from `ERROR_CATALOG`.
"""
from typing import Any, Optional, Dict

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = structlog.get_logger(__name__)


# code -> (HTTP status, default user-facing message)
ERROR_CATALOG: Dict[str, tuple[int, str]] = {
    "VALIDATION_ERROR": (status.HTTP_400_BAD_REQUEST, "Request validation failed"),
    "NOT_FOUND": (status.HTTP_404_NOT_FOUND, "Resource not found"),
    "CONFLICT": (status.HTTP_409_CONFLICT, "Request conflicts with current state"),
    "INVALID_STATUS": (status.HTTP_409_CONFLICT, "Invalid status for this operation"),
    "INVALID_STATUS_TRANSITION": (status.HTTP_409_CONFLICT, "Invalid status transition"),
    "JOB_LOCKED": (status.HTTP_409_CONFLICT, "Another job currently holds this lock"),
    "DOWNLOAD_LINK_INVALID": (status.HTTP_403_FORBIDDEN, "Download link is invalid or has expired"),
    "VERIFICATION_DEADLINE_EXPIRED": (
        status.HTTP_400_BAD_REQUEST,
        "The verification deadline for this database has passed",
    ),
    "SWISH_PAYMENT_FAILED": (status.HTTP_502_BAD_GATEWAY, "Customer reward payout failed"),
    "INTERNAL_SERVER_ERROR": (status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal server error occurred"),
}


class ServiceError(Exception):
    """Base class for errors raised by the service layer."""

    code = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
    ):
        if code is not None:
            self.code = code
        self.message = message or ERROR_CATALOG[self.code][1]
        self.details = details or {}
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_CATALOG.get(self.code, ERROR_CATALOG["INTERNAL_SERVER_ERROR"])[0]


class ValidationFailedError(ServiceError):
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    code = "CONFLICT"


class InvalidStatusError(ConflictError):
    """Raised when an entity is in the wrong status for an operation."""
    code = "INVALID_STATUS"


class InvalidTransitionError(ConflictError):
    """Raised when a status change is not in the allowed transition table."""
    code = "INVALID_STATUS_TRANSITION"


class JobLockedError(ConflictError):
    code = "JOB_LOCKED"


class DeadlineExpiredError(ServiceError):
    code = "VERIFICATION_DEADLINE_EXPIRED"


class DownloadLinkError(ServiceError):
    code = "DOWNLOAD_LINK_INVALID"


class PayoutError(ServiceError):
    """Raised by the payout client when the provider rejects a payment."""
    code = "SWISH_PAYMENT_FAILED"


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> dict:
    body: dict[str, Any] = {"error": code, "message": message}
    if details:
        body["details"] = details
    return body


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.info(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        error=exc.code,
        message=exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_body(exc.code, exc.message, exc.details)),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    message = "Request validation failed"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("VALIDATION_ERROR", message, {"errors": errors}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
