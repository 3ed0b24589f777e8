"""
Business logic services for the BarberBook platform.
"""
from .appointment_service import AppointmentService
from .loyalty_service import LoyaltyService, calculate_points
from .payment_service import PaymentService
from .notification_service import NotificationService
from .whatsapp_service import WhatsAppService

__all__ = [
    'AppointmentService',
    'LoyaltyService',
    'calculate_points',
    'PaymentService',
    'NotificationService',
    'WhatsAppService',
]
