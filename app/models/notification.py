"""
Admin notification feed.
"""
from datetime import datetime
from enum import Enum
from ..extensions import db


class NotificationType(str, Enum):
    PAYMENT_CONFIRMED = 'payment_confirmed'
    APPOINTMENT_CANCELLED = 'appointment_cancelled'
    REFUND_PROCESSED = 'refund_processed'
    PAYMENT_EXPIRED = 'payment_expired'


class Notification(db.Model):
    """An entry in the shop owner's notifications panel."""
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'))

    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(1000))
    read = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_notifications_tenant_created', 'tenant_id', 'created_at'),
    )

    def __repr__(self):
        return f'<Notification {self.type} tenant={self.tenant_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'appointment_id': self.appointment_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'read': self.read,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
