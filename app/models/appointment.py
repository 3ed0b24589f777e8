"""
Appointment model and its lifecycle states.

An appointment is created by the booking flow and then only ever changes
status; cancellation and completion are terminal statuses, rows are never
deleted.

    pending_payment -> confirmed | cancelled
    pending         -> confirmed | cancelled
    confirmed       -> waiting | no_show | completed | cancelled
    waiting         -> completed | no_show
"""
import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict
from ..extensions import db


# Grace period after the scheduled start during which check-in is honored
TOLERANCE_WINDOW = timedelta(minutes=10)

CONFIRMATION_CODE_LENGTH = 4


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""
    PENDING_PAYMENT = 'pending_payment'  # Online booking awaiting gateway confirmation
    PENDING = 'pending'                  # Local booking awaiting shop confirmation
    CONFIRMED = 'confirmed'
    WAITING = 'waiting'                  # Late arrival waiting for a free slot
    COMPLETED = 'completed'
    NO_SHOW = 'no_show'
    CANCELLED = 'cancelled'


class PaymentMethod(str, Enum):
    """How the client pays."""
    ONLINE = 'online'  # Prepaid via PIX
    LOCAL = 'local'    # Paid at the shop


ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING_PAYMENT: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.WAITING,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.WAITING: {AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.NO_SHOW: set(),
    AppointmentStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = {
    AppointmentStatus.COMPLETED,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.CANCELLED,
}


class Appointment(db.Model):
    """
    A booked slot with a professional for a service.

    Design notes:
    - confirmation_code and tolerance_expires_at exist only for online
      (prepaid) bookings; tolerance_expires_at is start + 10 min and is
      never changed after creation
    - refunded implies status cancelled and refund_amount <= prepaid_amount
    - service_price is a snapshot of the list price at booking time
    """
    __tablename__ = 'appointments'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)
    professional_id = db.Column(db.Integer, db.ForeignKey('professionals.id'), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey('services.id'), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'))

    # Schedule
    scheduled_at = db.Column(db.DateTime, nullable=False)

    # Client details (snapshot at booking time)
    client_name = db.Column(db.String(255), nullable=False)
    client_phone = db.Column(db.String(30), nullable=False)
    notes = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, default=AppointmentStatus.PENDING.value)

    # Check-in (online bookings only)
    confirmation_code = db.Column(db.String(4))
    tolerance_expires_at = db.Column(db.DateTime)

    # Payment
    payment_method = db.Column(db.String(10), nullable=False, default=PaymentMethod.LOCAL.value)
    service_price = db.Column(db.Numeric(10, 2))
    prepaid_amount = db.Column(db.Numeric(10, 2), default=0)
    pix_payment_id = db.Column(db.String(100))
    payment_expires_at = db.Column(db.DateTime)  # Hold deadline while pending_payment

    # Refund
    refunded = db.Column(db.Boolean, default=False, nullable=False)
    refunded_at = db.Column(db.DateTime)
    refund_amount = db.Column(db.Numeric(10, 2))
    refund_reason = db.Column(db.String(500))

    # Timestamps
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    professional = db.relationship('Professional')
    service = db.relationship('Service')
    client = db.relationship('Client', backref='appointments')

    __table_args__ = (
        db.Index('ix_appointments_tenant_scheduled', 'tenant_id', 'scheduled_at'),
        db.Index('ix_appointments_tenant_status', 'tenant_id', 'status'),
        db.Index('ix_appointments_pix_payment', 'pix_payment_id'),
    )

    def __repr__(self):
        return f'<Appointment {self.id}: {self.status} at {self.scheduled_at}>'

    @property
    def is_online(self) -> bool:
        return self.payment_method == PaymentMethod.ONLINE.value

    def can_transition_to(self, new_status: str) -> bool:
        """Check the lifecycle table for a status change."""
        try:
            current = AppointmentStatus(self.status)
            target = AppointmentStatus(new_status)
        except ValueError:
            return False
        if current in TERMINAL_STATUSES:
            return False
        return target in ALLOWED_TRANSITIONS[current]

    def is_within_tolerance(self, now: datetime) -> bool:
        """True if check-in at `now` is unconditionally honored."""
        if self.tolerance_expires_at is None:
            return True
        return now <= self.tolerance_expires_at

    @staticmethod
    def generate_confirmation_code() -> str:
        """Random 4-digit check-in code, kept as a string to preserve leading zeros."""
        return f'{secrets.randbelow(10 ** CONFIRMATION_CODE_LENGTH):0{CONFIRMATION_CODE_LENGTH}d}'

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            'id': self.id,
            'professional_id': self.professional_id,
            'service_id': self.service_id,
            'client_id': self.client_id,
            'scheduled_at': self.scheduled_at.isoformat() if self.scheduled_at else None,
            'client_name': self.client_name,
            'client_phone': self.client_phone,
            'notes': self.notes,
            'status': self.status,
            'tolerance_expires_at': self.tolerance_expires_at.isoformat() if self.tolerance_expires_at else None,
            'payment_method': self.payment_method,
            'service_price': float(self.service_price) if self.service_price is not None else None,
            'prepaid_amount': float(self.prepaid_amount or 0),
            'pix_payment_id': self.pix_payment_id,
            'payment_expires_at': self.payment_expires_at.isoformat() if self.payment_expires_at else None,
            'refunded': self.refunded,
            'refunded_at': self.refunded_at.isoformat() if self.refunded_at else None,
            'refund_amount': float(self.refund_amount) if self.refund_amount is not None else None,
            'refund_reason': self.refund_reason,
            'professional': self.professional.to_dict() if self.professional else None,
            'service': self.service.to_dict() if self.service else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def to_dict_detailed(self) -> Dict[str, Any]:
        """Staff view including the check-in code."""
        data = self.to_dict()
        data['confirmation_code'] = self.confirmation_code
        return data
