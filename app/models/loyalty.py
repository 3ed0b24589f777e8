"""
Loyalty program models.

This module implements a visit/amount based points program where:
- Clients EARN points when an appointment is completed
- Clients REDEEM points for catalog rewards presented in person at the shop
- A redemption is a time-boxed, single-use 6-digit code; points are deducted
  only when the barber validates that code, never when it is issued

Balances are keyed by (tenant, contact handle) because clients are identified
by their WhatsApp number. Balance math is always done with single UPDATE
statements (see LoyaltyService) so concurrent requests cannot lose increments.
"""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from ..extensions import db


# ==================== Constants ====================

REDEMPTION_CODE_LENGTH = 6
REDEMPTION_CODE_TTL = timedelta(hours=24)


# ==================== Enums ====================

class PointsType(str, Enum):
    """How points are earned."""
    VISIT = 'visit'    # Flat points per completed visit
    AMOUNT = 'amount'  # Points per currency unit of the service price


class LoyaltyRewardType(str, Enum):
    """Types of catalog rewards."""
    SERVICE = 'service'    # Free service
    DISCOUNT = 'discount'  # Discount of reward_value
    CUSTOM = 'custom'      # Fulfilled manually by the shop


class RedemptionStatus(str, Enum):
    """Status of a reward redemption."""
    PENDING = 'pending'      # Code issued, waiting to be presented
    COMPLETED = 'completed'  # Code validated, points deducted
    CANCELLED = 'cancelled'  # Cancelled; no balance effect


# ==================== Models ====================

class LoyaltyConfig(db.Model):
    """
    Loyalty program configuration, one per tenant.

    Absence of a row, or enabled=False, means no points are awarded.
    """
    __tablename__ = 'loyalty_configs'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False, unique=True)

    enabled = db.Column(db.Boolean, default=False, nullable=False)
    points_type = db.Column(db.String(10), default=PointsType.VISIT.value, nullable=False)
    points_per_visit = db.Column(db.Integer, default=0, nullable=False)
    points_per_currency_unit = db.Column(db.Numeric(8, 4), default=Decimal('0'), nullable=False)
    min_amount_for_points = db.Column(db.Numeric(10, 2), default=Decimal('0'), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('points_per_visit >= 0', name='ck_loyalty_configs_points_per_visit'),
        db.CheckConstraint('points_per_currency_unit >= 0', name='ck_loyalty_configs_points_per_unit'),
        db.CheckConstraint('min_amount_for_points >= 0', name='ck_loyalty_configs_min_amount'),
    )

    def __repr__(self):
        return f'<LoyaltyConfig tenant={self.tenant_id} enabled={self.enabled}>'

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary (also the cached representation)."""
        return {
            'tenant_id': self.tenant_id,
            'enabled': bool(self.enabled),
            'points_type': self.points_type,
            'points_per_visit': self.points_per_visit or 0,
            'points_per_currency_unit': str(self.points_per_currency_unit or 0),
            'min_amount_for_points': str(self.min_amount_for_points or 0),
        }


class LoyaltyBalance(db.Model):
    """
    Current points balance for one client of one tenant.

    Invariants:
    - points == total_earned - total_redeemed
    - points never negative
    - total_earned and total_redeemed only ever grow
    """
    __tablename__ = 'loyalty_balances'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)
    contact_handle = db.Column(db.String(30), nullable=False)

    points = db.Column(db.Integer, default=0, nullable=False)
    total_earned = db.Column(db.Integer, default=0, nullable=False)
    total_redeemed = db.Column(db.Integer, default=0, nullable=False)

    last_earn_at = db.Column(db.DateTime)
    last_redeem_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('tenant_id', 'contact_handle', name='uq_loyalty_balances_tenant_contact'),
        db.CheckConstraint('points >= 0', name='ck_loyalty_balances_points_non_negative'),
    )

    def __repr__(self):
        return f'<LoyaltyBalance {self.contact_handle} pts={self.points}>'

    @property
    def is_consistent(self) -> bool:
        return self.points == (self.total_earned or 0) - (self.total_redeemed or 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contact_handle': self.contact_handle,
            'points': self.points,
            'total_earned': self.total_earned,
            'total_redeemed': self.total_redeemed,
            'last_earn_at': self.last_earn_at.isoformat() if self.last_earn_at else None,
            'last_redeem_at': self.last_redeem_at.isoformat() if self.last_redeem_at else None,
        }


class LoyaltyReward(db.Model):
    """
    Tenant-defined rewards catalog.

    Rewards are deactivated rather than deleted once redemptions point at them.
    """
    __tablename__ = 'loyalty_rewards'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)

    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500))
    points_required = db.Column(db.Integer, nullable=False)
    reward_type = db.Column(db.String(20), nullable=False, default=LoyaltyRewardType.SERVICE.value)
    reward_value = db.Column(db.Numeric(10, 2), default=Decimal('0'))
    active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    redemptions = db.relationship('LoyaltyRedemption', backref='reward', lazy='dynamic')

    __table_args__ = (
        db.Index('ix_loyalty_rewards_tenant_active', 'tenant_id', 'active'),
        db.CheckConstraint('points_required >= 1', name='ck_loyalty_rewards_points_required'),
    )

    def __repr__(self):
        return f'<LoyaltyReward {self.name}: {self.points_required} pts>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'points_required': self.points_required,
            'reward_type': self.reward_type,
            'reward_value': float(self.reward_value or 0),
            'active': self.active,
        }


class LoyaltyRedemption(db.Model):
    """
    A client's claim against a catalog reward.

    Design notes:
    - points_spent is the reward's points_required at issuance time
    - no points move at issuance; validation deducts, cancellation is a
      pure status change
    - an expired pending redemption stays pending until someone cancels it
    """
    __tablename__ = 'loyalty_redemptions'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey('clients.id'), nullable=False)
    reward_id = db.Column(db.Integer, db.ForeignKey('loyalty_rewards.id'), nullable=False)

    points_spent = db.Column(db.Integer, nullable=False)
    validation_code = db.Column(db.String(6), nullable=False)
    status = db.Column(db.String(20), default=RedemptionStatus.PENDING.value, nullable=False)

    # Snapshot for display after the catalog changes
    reward_name = db.Column(db.String(100))

    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime)
    cancelled_at = db.Column(db.DateTime)

    # Relationships
    client = db.relationship('Client', backref='loyalty_redemptions')

    __table_args__ = (
        db.Index('ix_loyalty_redemptions_tenant_status', 'tenant_id', 'status'),
        db.Index('ix_loyalty_redemptions_client', 'client_id', 'created_at'),
    )

    def __repr__(self):
        return f'<LoyaltyRedemption {self.id}: {self.points_spent} pts ({self.status})>'

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at

    @staticmethod
    def generate_validation_code() -> str:
        """Uniform random 6-digit code, as a string to preserve leading zeros."""
        return f'{secrets.randbelow(10 ** REDEMPTION_CODE_LENGTH):0{REDEMPTION_CODE_LENGTH}d}'

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Serialize to dictionary for API responses (code omitted)."""
        return {
            'id': self.id,
            'client_id': self.client_id,
            'client': self.client.to_dict() if self.client else None,
            'reward_id': self.reward_id,
            'reward_name': self.reward_name,
            'points_spent': self.points_spent,
            'status': self.status,
            'is_expired': self.status == RedemptionStatus.PENDING.value and self.is_expired(now),
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'cancelled_at': self.cancelled_at.isoformat() if self.cancelled_at else None,
        }


class LoyaltyAccrual(db.Model):
    """
    Marker that an appointment's completion already awarded points.

    The unique appointment_id makes a replayed completion a no-op for the
    ledger.
    """
    __tablename__ = 'loyalty_accruals'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), nullable=False)
    appointment_id = db.Column(db.Integer, db.ForeignKey('appointments.id'), nullable=False, unique=True)
    contact_handle = db.Column(db.String(30), nullable=False)
    points = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<LoyaltyAccrual appointment={self.appointment_id} +{self.points}>'
