"""
Database models for BarberBook.
Appointments, prepayments and loyalty points for multi-tenant barbershops.
"""
from .tenant import Tenant
from .catalog import Professional, Service
from .client import Client
from .appointment import (
    Appointment,
    AppointmentStatus,
    PaymentMethod,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    TOLERANCE_WINDOW,
)
from .loyalty import (
    # Enums
    PointsType,
    LoyaltyRewardType,
    RedemptionStatus,
    # Models
    LoyaltyConfig,
    LoyaltyBalance,
    LoyaltyReward,
    LoyaltyRedemption,
    LoyaltyAccrual,
    REDEMPTION_CODE_TTL,
)
from .notification import Notification, NotificationType

__all__ = [
    'Tenant',
    'Professional',
    'Service',
    'Client',
    'Appointment',
    'AppointmentStatus',
    'PaymentMethod',
    'ALLOWED_TRANSITIONS',
    'TERMINAL_STATUSES',
    'TOLERANCE_WINDOW',
    'PointsType',
    'LoyaltyRewardType',
    'RedemptionStatus',
    'LoyaltyConfig',
    'LoyaltyBalance',
    'LoyaltyReward',
    'LoyaltyRedemption',
    'LoyaltyAccrual',
    'REDEMPTION_CODE_TTL',
    'Notification',
    'NotificationType',
]
