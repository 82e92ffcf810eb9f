"""Error types, FastAPI handlers and user-safe error messages.

Domain code raises the exceptions below; routers let them propagate and the
handlers registered in ``create_app`` turn them into JSON responses. Anything
that is not a ``DomainError`` is logged with its traceback and answered with a
generic message so database or provider internals never reach the client.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger("finivis.errors")

DEFAULT_ERROR_MESSAGE = (
    "An error occurred. Please try again or contact support if the issue persists."
)

ERROR_CODE_MAP = {
    # SQL / constraint errors
    "insufficient_privilege": "Access denied. You do not have permission for this action.",
    "unique_violation": "This record already exists.",
    "foreign_key_violation": "Related record not found.",
    "check_violation": "The provided data is invalid.",
    "not_null_violation": "A required field is missing.",
    "23505": "This record already exists.",
    "23503": "Related record not found.",
    "23514": "The provided data is invalid.",
    "23502": "A required field is missing.",
    "42501": "Access denied. You do not have permission for this action.",
    # Auth errors
    "invalid_credentials": "Invalid email or password.",
    "user_not_found": "Account not found.",
    "invalid_grant": "Session expired. Please log in again.",
    # Rate limiting
    "rate_limit_exceeded": "Too many requests. Please try again later.",
    # Network errors
    "ConnectError": "Network error. Please check your connection.",
    "TimeoutException": "Network error. Please check your connection.",
    "TypeError": "Something went wrong. Please try again.",
}

# sqlite reports constraint failures as message text rather than codes
_SQLITE_MESSAGE_CODES = (
    ("unique constraint failed", "unique_violation"),
    ("foreign key constraint failed", "foreign_key_violation"),
    ("check constraint failed", "check_violation"),
    ("not null constraint failed", "not_null_violation"),
)

_STATUS_MESSAGES = {
    401: "Session expired. Please log in again.",
    403: "Access denied. You do not have permission for this action.",
    404: "Record not found.",
    429: "Too many requests. Please try again later.",
}


class DomainError(Exception):
    """Business rule violation; message is safe to show to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class PermissionDeniedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "forbidden"


class AuthenticationError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "unauthorized"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    error = "conflict"


class InsufficientBalanceError(DomainError):
    error = "insufficient_balance"


class RateLimitedError(DomainError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "rate_limited"

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class ServiceUnavailableError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "service_unavailable"


def sanitize_error(error: Any) -> str:
    """Return a user-friendly message for ``error`` without leaking internals."""
    if not error:
        return DEFAULT_ERROR_MESSAGE

    if isinstance(error, DomainError):
        return error.message

    if isinstance(error, str):
        lowered = error.lower()
        for code, message in ERROR_CODE_MAP.items():
            if code.lower() in lowered:
                return message
        return DEFAULT_ERROR_MESSAGE

    if isinstance(error, sqlite3.Error):
        lowered = str(error).lower()
        for needle, code in _SQLITE_MESSAGE_CODES:
            if needle in lowered:
                return ERROR_CODE_MAP[code]
        return DEFAULT_ERROR_MESSAGE

    if isinstance(error, BaseException):
        code = getattr(error, "code", None)
        if isinstance(code, str) and code in ERROR_CODE_MAP:
            return ERROR_CODE_MAP[code]
        name = type(error).__name__
        if name in ERROR_CODE_MAP:
            return ERROR_CODE_MAP[name]
        status_code = getattr(error, "status_code", None)
        if isinstance(status_code, int):
            return _message_for_status(status_code)
        return DEFAULT_ERROR_MESSAGE

    if isinstance(error, dict):
        code = error.get("code")
        if isinstance(code, str) and code in ERROR_CODE_MAP:
            return ERROR_CODE_MAP[code]
        status_code = error.get("status")
        if isinstance(status_code, int):
            return _message_for_status(status_code)

    return DEFAULT_ERROR_MESSAGE


def _message_for_status(status_code: int) -> str:
    if status_code in _STATUS_MESSAGES:
        return _STATUS_MESSAGES[status_code]
    if status_code >= 500:
        return "Service temporarily unavailable. Please try again later."
    return DEFAULT_ERROR_MESSAGE


def mask_sensitive_data(value: Optional[str], visible_chars: int = 4) -> str:
    """Show only the last ``visible_chars`` characters of ``value``."""
    if not value:
        return "-"
    trimmed = value.strip()
    if len(trimmed) <= visible_chars:
        return "*" * len(trimmed)
    return "*" * (len(trimmed) - visible_chars) + trimmed[-visible_chars:]


def mask_iban(iban: Optional[str]) -> str:
    if not iban:
        return "-"
    cleaned = "".join(iban.split())
    if len(cleaned) <= 8:
        return mask_sensitive_data(cleaned, 4)
    return cleaned[:4] + "*" * (len(cleaned) - 8) + cleaned[-4:]


def mask_swift(swift: Optional[str]) -> str:
    if not swift:
        return "-"
    if len(swift) <= 4:
        return swift
    return swift[:4] + "*" * (len(swift) - 4)


# ----------------------------------------------------------------------
# FastAPI handlers


def not_found_handler(request: Request, exc):  # type: ignore
    if getattr(exc, "status_code", 404) != 404:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    detail = getattr(exc, "detail", None)
    if not detail or detail == "Not Found":
        detail = f"No route for {request.method} {request.url.path}"
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "not_found", "detail": detail},
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": [
                {k: v for k, v in e.items() if k in ("loc", "msg", "type")}
                for e in exc.errors()
            ],
        },
    )


def domain_error_handler(request: Request, exc: DomainError):  # type: ignore
    logger.info(
        "domain error on %s %s: %s", request.method, request.url.path, exc.message
    )
    headers = None
    content = {"error": exc.error, "detail": exc.message}
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
        content["retry_after"] = exc.retry_after
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "detail": sanitize_error(exc),
        },
    )
