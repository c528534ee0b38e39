from __future__ import annotations

from typing import Any

from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

ERROR_CODES = {
    "validation": "VALIDATION_ERROR",
    "not_found": "NOT_FOUND",
    "forbidden": "FORBIDDEN",
    "expired": "EXPIRED",
    "conflict": "CONFLICT",
    "delivery": "DELIVERY_FAILED",
    "http": "HTTP_ERROR",
    "internal": "INTERNAL_ERROR",
}


class DomainError(Exception):
    """Base for errors returned to callers with a stable error kind."""

    kind = ERROR_CODES["internal"]
    status_code = 500

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DomainError):
    kind = ERROR_CODES["not_found"]
    status_code = 404


class ForbiddenError(DomainError):
    kind = ERROR_CODES["forbidden"]
    status_code = 403


class ExpiredError(DomainError):
    kind = ERROR_CODES["expired"]
    status_code = 410


class ConflictError(DomainError):
    # Internal only: exhausted invite-code retries surface as a 500.
    kind = ERROR_CODES["conflict"]
    status_code = 500


class ValidationError(DomainError):
    kind = ERROR_CODES["validation"]
    status_code = 422


class DeliveryError(DomainError):
    kind = ERROR_CODES["delivery"]
    status_code = 502


def make_error_payload(code: str, message: str, details: Any | None = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
        }
    }


def format_validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    formatted: list[dict[str, Any]] = []
    for err in exc.errors():
        formatted.append(
            {
                "loc": err.get("loc"),
                "msg": err.get("msg"),
                "type": err.get("type"),
            }
        )
    return formatted


def http_error_payload(exc: HTTPException) -> dict[str, Any]:
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    return make_error_payload(ERROR_CODES["http"], message, {"status_code": exc.status_code})


def domain_error_payload(exc: DomainError) -> dict[str, Any]:
    if isinstance(exc, ConflictError):
        return make_error_payload(ERROR_CODES["internal"], "Unexpected error", None)
    return make_error_payload(exc.kind, exc.message, exc.details)
