"""
Utility modules for BarberBook.
"""
from .logging_config import setup_logging, get_logger
from .errors import (
    ErrorCode,
    error_response,
    business_error,
    bad_request,
    unauthorized,
    forbidden,
    not_found,
    internal_error
)
from .exceptions import (
    BarberBookError,
    ValidationError,
    InvalidStatusTransitionError,
    NotFoundError,
    InvalidCodeError,
    ExpiredCodeError,
    InsufficientPointsError,
    AlreadyRefundedError,
    PaymentMismatchError,
    GatewayError,
    ConfigurationError
)
