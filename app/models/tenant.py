"""
Tenant model for the multi-tenant booking platform.
"""
from datetime import datetime
from typing import Any, Dict
from ..extensions import db


class Tenant(db.Model):
    """
    Barbershop account using the platform.
    Global table - every other entity is scoped to exactly one tenant.
    """
    __tablename__ = 'tenants'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)

    # Settings (JSON for flexibility):
    #   payments: {'provider': 'mercado_pago'|'stripe', 'access_token': ..., 'secret_key': ...}
    #   integrations: {'whatsapp': {'enabled': bool, 'api_token': ..., 'instance_name': ...}}
    settings = db.Column(db.JSON, default=dict)

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    professionals = db.relationship('Professional', backref='tenant', lazy='dynamic')
    services = db.relationship('Service', backref='tenant', lazy='dynamic')

    def __repr__(self):
        return f'<Tenant {self.slug}>'

    def get_setting(self, *path, default=None) -> Any:
        """Read a nested settings value, e.g. get_setting('payments', 'provider')."""
        value = self.settings or {}
        for key in path:
            if not isinstance(value, dict):
                return default
            value = value.get(key)
            if value is None:
                return default
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'is_active': self.is_active,
        }
