"""
Custom exceptions for BarberBook business logic.

Every failure the booking, payment and loyalty flows can produce has its own
exception type and error code, so API clients can tell "invalid code" apart
from "expired code" or "insufficient points" and render a specific message.
"""


class BarberBookError(Exception):
    """Base exception for all BarberBook business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "BARBERBOOK_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(BarberBookError):
    """Invalid input data or ownership (rejected before any write)."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InvalidStatusTransitionError(ValidationError):
    """Invalid status transition for a resource."""

    status_code = 409

    def __init__(self, resource: str, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot change {resource} status from '{from_status}' to '{to_status}'")
        self.code = "INVALID_STATUS_TRANSITION"


class NotFoundError(BarberBookError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class InvalidCodeError(BarberBookError):
    """Submitted confirmation/validation code does not match."""

    def __init__(self, message: str = "Invalid code"):
        super().__init__(message, "INVALID_CODE")


class ExpiredCodeError(BarberBookError):
    """Validation code is past its expiry."""

    status_code = 410

    def __init__(self, message: str = "Code has expired"):
        super().__init__(message, "EXPIRED_CODE")


class InsufficientPointsError(BarberBookError):
    """Not enough loyalty points for the operation."""

    status_code = 422

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        message = f"Insufficient points. Current: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_POINTS")


class AlreadyRefundedError(BarberBookError):
    """Appointment prepayment was already refunded."""

    status_code = 409

    def __init__(self, appointment_id=None):
        message = "Appointment has already been refunded"
        if appointment_id:
            message = f"Appointment {appointment_id} has already been refunded"
        super().__init__(message, "ALREADY_REFUNDED")


class PaymentMismatchError(BarberBookError):
    """Charge does not belong to the appointment."""

    status_code = 409

    def __init__(self, charge_id: str, appointment_id=None):
        self.charge_id = charge_id
        message = f"Charge {charge_id} does not match appointment {appointment_id}"
        super().__init__(message, "PAYMENT_MISMATCH")


class GatewayError(BarberBookError):
    """Error communicating with a payment or messaging provider."""

    status_code = 502

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(message, "GATEWAY_ERROR")


class ConfigurationError(BarberBookError):
    """Application or tenant configuration error."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")
