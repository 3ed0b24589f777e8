"""
Client model - a barbershop customer identified by their WhatsApp number.
"""
from datetime import datetime
from ..extensions import db


class Client(db.Model):
    """
    A customer of one tenant.

    The phone number is the contact handle used for messaging and as the
    key of the loyalty balance, so it is unique per tenant.
    """
    __tablename__ = 'clients'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(30), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'phone', name='uq_clients_tenant_phone'),
    )

    def __repr__(self):
        return f'<Client {self.phone}>'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'phone': self.phone,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
