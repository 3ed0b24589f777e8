"""
JSON error envelope for the BarberBook API.

Every failure leaves the API in the same shape, so the booking page and the
shop dashboard can switch on `code` to pick the message shown to the user:

    {"error": {"message": "Invalid confirmation code", "code": "INVALID_CODE"}}

Business exceptions (app.utils.exceptions) carry their own code and status
and are rendered by business_error(); the helpers below cover request-level
failures raised before any service runs.
"""
import logging
from enum import Enum
from typing import Optional, Union

from flask import jsonify

from .exceptions import BarberBookError

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Request-level error codes (business codes live on the exceptions)."""

    # Tenant resolution (401, 403, 404)
    AUTH_REQUIRED = "AUTH_REQUIRED"
    TENANT_INACTIVE = "TENANT_INACTIVE"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"

    # Webhooks
    INVALID_SIGNATURE = "INVALID_SIGNATURE"

    # Malformed requests (400)
    INVALID_REQUEST = "INVALID_REQUEST"

    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def error_response(
    message: str,
    code: Union[ErrorCode, str] = ErrorCode.INTERNAL_ERROR,
    status_code: int = 500,
    log_error: bool = True,
    details: Optional[dict] = None
) -> tuple:
    """
    Build the (response, status) pair for Flask.

    Args:
        message: Human readable message
        code: ErrorCode member or a business exception's code string
        status_code: HTTP status
        log_error: Log 5xx as errors and 4xx as warnings
        details: Extra context for the log line only
    """
    code_value = code.value if isinstance(code, ErrorCode) else code

    if log_error:
        level = logging.ERROR if status_code >= 500 else logging.WARNING
        logger.log(level, f"API error {status_code} [{code_value}]: {message}", extra={"details": details})

    return jsonify({"error": {"message": message, "code": code_value}}), status_code


def business_error(error: BarberBookError) -> tuple:
    """Render a service exception; only gateway/config failures are logged."""
    return error_response(error.message, error.code, error.status_code, log_error=error.status_code >= 500)


def bad_request(message: str) -> tuple:
    return error_response(message, ErrorCode.INVALID_REQUEST, 400, log_error=False)


def unauthorized(message: str = "Missing barbershop identifier") -> tuple:
    return error_response(message, ErrorCode.AUTH_REQUIRED, 401, log_error=False)


def forbidden(message: str) -> tuple:
    return error_response(message, ErrorCode.TENANT_INACTIVE, 403, log_error=False)


def not_found(message: str, code: ErrorCode = ErrorCode.NOT_FOUND) -> tuple:
    return error_response(message, code, 404, log_error=False)


def internal_error(message: str = "An unexpected error occurred") -> tuple:
    return error_response(message, ErrorCode.INTERNAL_ERROR, 500)
