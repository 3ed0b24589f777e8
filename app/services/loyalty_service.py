"""
Loyalty Service for BarberBook.

Points program for barbershop clients:
- Accrual when an appointment is completed (flat per visit, or per currency
  unit of the service price above a minimum)
- Reward catalog managed by the shop
- Redemption with a 6-digit code presented in person

ARCHITECTURE:
- LoyaltyBalance rows are keyed by (tenant, client phone)
- Every balance change is a single UPDATE with column arithmetic, so concurrent
  requests never overwrite each other's increments
- Points are deducted when a redemption code is VALIDATED, never when it is
  issued; cancelling a pending redemption therefore needs no compensation
- LoyaltyAccrual rows make accrual idempotent per appointment
- The tenant's config is cached and invalidated on save
"""

import hmac
from datetime import datetime
from decimal import Decimal, ROUND_FLOOR, InvalidOperation
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models.appointment import Appointment, AppointmentStatus
from ..models.client import Client
from ..models.loyalty import (
    LoyaltyAccrual,
    LoyaltyBalance,
    LoyaltyConfig,
    LoyaltyRedemption,
    LoyaltyReward,
    LoyaltyRewardType,
    PointsType,
    RedemptionStatus,
    REDEMPTION_CODE_TTL,
)
from ..utils.cache import cache_key, get_or_load, invalidate
from ..utils.exceptions import (
    ExpiredCodeError,
    InsufficientPointsError,
    InvalidCodeError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)


CONFIG_CACHE_TIMEOUT = 300

DISABLED_CONFIG = {
    'enabled': False,
    'points_type': PointsType.VISIT.value,
    'points_per_visit': 0,
    'points_per_currency_unit': '0',
    'min_amount_for_points': '0',
}


def calculate_points(config: Optional[Dict[str, Any]], service_price) -> int:
    """
    Points a completed service is worth under a loyalty config.

    Args:
        config: Config dict as returned by LoyaltyService.get_config()
        service_price: Price of the completed service

    Returns:
        Non-negative integer number of points (0 when disabled)
    """
    if not config or not config.get('enabled'):
        return 0

    if config.get('points_type') == PointsType.AMOUNT.value:
        price = Decimal(str(service_price or 0))
        if price < Decimal(str(config.get('min_amount_for_points') or 0)):
            return 0
        rate = Decimal(str(config.get('points_per_currency_unit') or 0))
        return max(0, int((price * rate).to_integral_value(rounding=ROUND_FLOOR)))

    return max(0, int(config.get('points_per_visit') or 0))


class LoyaltyService:
    """
    Loyalty ledger for one tenant.

    Usage:
        service = LoyaltyService(tenant_id)

        # Award points for a completed appointment
        points = service.accrue_on_completion('5511999990000', Decimal('25.00'), appointment_id=42)

        # Issue and validate a redemption
        result = service.issue_redemption(client_id, reward_id)
        service.validate_redemption(result['redemption']['id'], '123456')
    """

    def __init__(self, tenant_id: int, messenger=None):
        """
        Args:
            tenant_id: Tenant ID for multi-tenancy
            messenger: Optional messaging service (defaults to WhatsAppService)
        """
        self.tenant_id = tenant_id
        self._messenger = messenger

    @property
    def messenger(self):
        if self._messenger is None:
            from .whatsapp_service import WhatsAppService
            self._messenger = WhatsAppService(self.tenant_id)
        return self._messenger

    # ==================== Configuration ====================

    def _config_cache_key(self) -> str:
        return cache_key('loyalty_config', tenant_id=self.tenant_id)

    def _load_config(self) -> Dict[str, Any]:
        config = LoyaltyConfig.query.filter_by(tenant_id=self.tenant_id).first()
        if config:
            return config.to_dict()
        return dict(DISABLED_CONFIG, tenant_id=self.tenant_id)

    def get_config(self) -> Dict[str, Any]:
        """Tenant's loyalty configuration; disabled defaults when none saved."""
        return get_or_load(self._config_cache_key(), self._load_config, timeout=CONFIG_CACHE_TIMEOUT)

    def save_config(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create or update the tenant's loyalty configuration.

        Raises:
            ValidationError: invalid points type or negative values
        """
        points_type = data.get('points_type', PointsType.VISIT.value)
        if points_type not in [t.value for t in PointsType]:
            raise ValidationError(f"Invalid points type: {points_type}", field='points_type')

        try:
            points_per_visit = int(data.get('points_per_visit') or 0)
            per_unit = Decimal(str(data.get('points_per_currency_unit') or 0))
            min_amount = Decimal(str(data.get('min_amount_for_points') or 0))
        except (TypeError, ValueError, InvalidOperation):
            raise ValidationError("Loyalty values must be numeric")

        if points_per_visit < 0 or per_unit < 0 or min_amount < 0:
            raise ValidationError("Loyalty values cannot be negative")

        config = LoyaltyConfig.query.filter_by(tenant_id=self.tenant_id).first()
        if not config:
            config = LoyaltyConfig(tenant_id=self.tenant_id)
            db.session.add(config)

        config.enabled = bool(data.get('enabled', False))
        config.points_type = points_type
        config.points_per_visit = points_per_visit
        config.points_per_currency_unit = per_unit
        config.min_amount_for_points = min_amount

        db.session.commit()
        invalidate(self._config_cache_key())

        current_app.logger.info(
            f"Loyalty config saved for tenant {self.tenant_id}: "
            f"enabled={config.enabled} type={config.points_type}"
        )
        return config.to_dict()

    # ==================== Balances ====================

    def get_balance(self, contact_handle: str) -> Dict[str, Any]:
        """Balance for a client; zeros when the client never earned points."""
        balance = LoyaltyBalance.query.filter_by(
            tenant_id=self.tenant_id,
            contact_handle=contact_handle
        ).first()
        if balance:
            return balance.to_dict()
        return {
            'contact_handle': contact_handle,
            'points': 0,
            'total_earned': 0,
            'total_redeemed': 0,
            'last_earn_at': None,
            'last_redeem_at': None,
        }

    def _increment_balance(self, contact_handle: str, points: int, now: datetime) -> None:
        """
        Add earned points with a single UPDATE, creating the row if missing.

        Raises IntegrityError when a concurrent request created the row first;
        the caller rolls back and retries, and the retry takes the UPDATE path.
        """
        updated = LoyaltyBalance.query.filter_by(
            tenant_id=self.tenant_id,
            contact_handle=contact_handle
        ).update({
            LoyaltyBalance.points: LoyaltyBalance.points + points,
            LoyaltyBalance.total_earned: LoyaltyBalance.total_earned + points,
            LoyaltyBalance.last_earn_at: now,
            LoyaltyBalance.updated_at: now,
        }, synchronize_session=False)

        if updated == 0:
            db.session.add(LoyaltyBalance(
                tenant_id=self.tenant_id,
                contact_handle=contact_handle,
                points=points,
                total_earned=points,
                total_redeemed=0,
                last_earn_at=now,
            ))
            db.session.flush()

    def accrue_on_completion(
        self,
        contact_handle: str,
        service_price,
        appointment_id: int = None,
        now: datetime = None
    ) -> int:
        """
        Credit points for a completed service.

        Args:
            contact_handle: Client phone
            service_price: Price of the service performed
            appointment_id: When given, accrual happens at most once per appointment
            now: Clock override

        Returns:
            Points actually awarded (0 is a valid outcome)
        """
        points = calculate_points(self.get_config(), service_price)
        if points <= 0:
            return 0

        now = now or datetime.utcnow()

        for attempt in range(2):
            if appointment_id is not None:
                db.session.add(LoyaltyAccrual(
                    tenant_id=self.tenant_id,
                    appointment_id=appointment_id,
                    contact_handle=contact_handle,
                    points=points,
                ))
                try:
                    db.session.flush()
                except IntegrityError:
                    db.session.rollback()
                    current_app.logger.info(
                        f"Points for appointment {appointment_id} already accrued, skipping"
                    )
                    return 0

            try:
                self._increment_balance(contact_handle, points, now)
                db.session.commit()
                break
            except IntegrityError:
                db.session.rollback()
                if attempt:
                    raise

        current_app.logger.info(
            f"Accrued {points} points to {contact_handle} (tenant {self.tenant_id})"
        )
        return points

    def audit_balances(self) -> List[Dict[str, Any]]:
        """Balance rows where points != total_earned - total_redeemed."""
        rows = LoyaltyBalance.query.filter(
            LoyaltyBalance.tenant_id == self.tenant_id,
            LoyaltyBalance.points != LoyaltyBalance.total_earned - LoyaltyBalance.total_redeemed
        ).all()
        return [dict(row.to_dict(), tenant_id=row.tenant_id) for row in rows]

    def credit_points(self, contact_handle: str, points, reason: str = None, now: datetime = None) -> Dict[str, Any]:
        """
        Manually credit points to a client from the dashboard.

        Counts as earned points, so the balance invariant still holds.

        Raises:
            ValidationError: missing phone or points not a positive integer
        """
        contact_handle = (contact_handle or '').strip()
        if not contact_handle:
            raise ValidationError("phone is required", field='phone')
        try:
            points = int(points)
        except (TypeError, ValueError):
            raise ValidationError("points must be an integer", field='points')
        if points < 1:
            raise ValidationError("points must be at least 1", field='points')

        now = now or datetime.utcnow()
        for attempt in range(2):
            try:
                self._increment_balance(contact_handle, points, now)
                db.session.commit()
                break
            except IntegrityError:
                db.session.rollback()
                if attempt:
                    raise

        current_app.logger.info(
            f"Credited {points} points to {contact_handle} (tenant {self.tenant_id}): "
            f"{reason or 'manual adjustment'}"
        )
        return self.get_balance(contact_handle)

    def list_clients(self) -> List[Dict[str, Any]]:
        """Tenant's clients with their balance and completed visit count."""
        clients = Client.query.filter_by(tenant_id=self.tenant_id).order_by(Client.name).all()
        balances = {
            b.contact_handle: b
            for b in LoyaltyBalance.query.filter_by(tenant_id=self.tenant_id).all()
        }
        visits = dict(
            db.session.query(Appointment.client_phone, func.count(Appointment.id))
            .filter(
                Appointment.tenant_id == self.tenant_id,
                Appointment.status == AppointmentStatus.COMPLETED.value
            )
            .group_by(Appointment.client_phone)
            .all()
        )

        result = []
        for client in clients:
            balance = balances.get(client.phone)
            result.append(dict(
                client.to_dict(),
                points=balance.points if balance else 0,
                total_earned=balance.total_earned if balance else 0,
                total_redeemed=balance.total_redeemed if balance else 0,
                visits=visits.get(client.phone, 0),
            ))
        return result

    def get_client_by_phone(self, phone: str) -> Client:
        client = Client.query.filter_by(tenant_id=self.tenant_id, phone=(phone or '').strip()).first()
        if not client:
            raise NotFoundError('Client')
        return client

    # ==================== Rewards Catalog ====================

    def list_rewards(self, active_only: bool = False) -> List[Dict[str, Any]]:
        query = LoyaltyReward.query.filter_by(tenant_id=self.tenant_id)
        if active_only:
            query = query.filter_by(active=True)
        return [r.to_dict() for r in query.order_by(LoyaltyReward.points_required).all()]

    def _get_reward(self, reward_id: int) -> LoyaltyReward:
        reward = LoyaltyReward.query.filter_by(id=reward_id, tenant_id=self.tenant_id).first()
        if not reward:
            raise NotFoundError('Reward', reward_id)
        return reward

    def _apply_reward_fields(self, reward: LoyaltyReward, data: Dict[str, Any]) -> None:
        if 'name' in data:
            if not (data['name'] or '').strip():
                raise ValidationError("Reward name is required", field='name')
            reward.name = data['name'].strip()
        if 'description' in data:
            reward.description = data['description']
        if 'points_required' in data:
            try:
                points_required = int(data['points_required'])
            except (TypeError, ValueError):
                raise ValidationError("points_required must be an integer", field='points_required')
            if points_required < 1:
                raise ValidationError("points_required must be at least 1", field='points_required')
            reward.points_required = points_required
        if 'reward_type' in data:
            if data['reward_type'] not in [t.value for t in LoyaltyRewardType]:
                raise ValidationError(f"Invalid reward type: {data['reward_type']}", field='reward_type')
            reward.reward_type = data['reward_type']
        if 'reward_value' in data:
            try:
                reward.reward_value = Decimal(str(data['reward_value'] or 0))
            except InvalidOperation:
                raise ValidationError("reward_value must be numeric", field='reward_value')
        if 'active' in data:
            reward.active = bool(data['active'])

    def create_reward(self, data: Dict[str, Any]) -> Dict[str, Any]:
        for field in ('name', 'points_required'):
            if data.get(field) in (None, ''):
                raise ValidationError(f"{field} is required", field=field)

        reward = LoyaltyReward(tenant_id=self.tenant_id)
        self._apply_reward_fields(reward, data)
        db.session.add(reward)
        db.session.commit()
        return reward.to_dict()

    def update_reward(self, reward_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        reward = self._get_reward(reward_id)
        self._apply_reward_fields(reward, data)
        db.session.commit()
        return reward.to_dict()

    def deactivate_reward(self, reward_id: int) -> Dict[str, Any]:
        """Hide a reward from the catalog; existing redemptions keep pointing at it."""
        reward = self._get_reward(reward_id)
        reward.active = False
        db.session.commit()
        return reward.to_dict()

    # ==================== Redemptions ====================

    def _get_redemption(self, redemption_id: int) -> LoyaltyRedemption:
        redemption = LoyaltyRedemption.query.filter_by(
            id=redemption_id,
            tenant_id=self.tenant_id
        ).first()
        if not redemption:
            raise NotFoundError('Redemption', redemption_id)
        return redemption

    def list_redemptions(self, status: str = None, now: datetime = None) -> List[Dict[str, Any]]:
        query = LoyaltyRedemption.query.filter_by(tenant_id=self.tenant_id)
        if status:
            query = query.filter_by(status=status)
        redemptions = query.order_by(LoyaltyRedemption.created_at.desc()).all()
        return [r.to_dict(now) for r in redemptions]

    def issue_redemption(self, client_id: int, reward_id: int, now: datetime = None) -> Dict[str, Any]:
        """
        Create a pending redemption and send its code to the client.

        Points are NOT deducted here.

        Returns:
            Dict with the redemption, its validation code and whether the
            message was delivered

        Raises:
            NotFoundError: client or reward absent
            ValidationError: reward inactive
            InsufficientPointsError: balance below the reward's cost
        """
        now = now or datetime.utcnow()

        client = Client.query.filter_by(id=client_id, tenant_id=self.tenant_id).first()
        if not client:
            raise NotFoundError('Client', client_id)

        reward = self._get_reward(reward_id)
        if not reward.active:
            raise ValidationError("Reward is not active", field='reward_id')

        balance = self.get_balance(client.phone)
        if balance['points'] < reward.points_required:
            raise InsufficientPointsError(balance['points'], reward.points_required)

        redemption = LoyaltyRedemption(
            tenant_id=self.tenant_id,
            client_id=client.id,
            reward_id=reward.id,
            reward_name=reward.name,
            points_spent=reward.points_required,
            validation_code=LoyaltyRedemption.generate_validation_code(),
            status=RedemptionStatus.PENDING.value,
            expires_at=now + REDEMPTION_CODE_TTL,
            created_at=now,
        )
        db.session.add(redemption)
        db.session.commit()

        current_app.logger.info(
            f"Redemption {redemption.id} issued: client {client.id}, reward {reward.id}, "
            f"{redemption.points_spent} pts"
        )

        message_sent = False
        try:
            result = self.messenger.send_template(
                'redemption_code',
                client.phone,
                client_name=client.name,
                reward_name=reward.name,
                validation_code=redemption.validation_code,
            )
            message_sent = bool(result.get('success'))
            if not message_sent:
                current_app.logger.warning(
                    f"Redemption {redemption.id} code not delivered: {result.get('error')}"
                )
        except Exception as e:
            current_app.logger.warning(f"Redemption {redemption.id} code not delivered: {e}")

        return {
            'redemption': redemption.to_dict(now),
            'validation_code': redemption.validation_code,
            'message_sent': message_sent,
        }

    def validate_redemption(self, redemption_id: int, submitted_code: str, now: datetime = None) -> Dict[str, Any]:
        """
        Validate a code presented at the shop and deduct the points.

        The balance is clamped at zero when points were spent elsewhere since
        issuance; total_redeemed always grows by the full cost.

        Raises:
            NotFoundError: redemption absent
            InvalidStatusTransitionError: redemption no longer pending
            ExpiredCodeError: past expires_at (no state change)
            InvalidCodeError: code mismatch (no state change)
        """
        now = now or datetime.utcnow()
        redemption = self._get_redemption(redemption_id)

        if redemption.status != RedemptionStatus.PENDING.value:
            raise InvalidStatusTransitionError(
                'redemption', redemption.status, RedemptionStatus.COMPLETED.value
            )
        if redemption.is_expired(now):
            raise ExpiredCodeError("Redemption code has expired")
        submitted = str(submitted_code or '').strip().encode('utf-8')
        if not hmac.compare_digest(submitted, redemption.validation_code.encode('utf-8')):
            raise InvalidCodeError("Invalid redemption code")

        points = redemption.points_spent
        contact_handle = redemption.client.phone

        # Claim the redemption first so concurrent validations cannot both deduct
        claimed = LoyaltyRedemption.query.filter_by(
            id=redemption.id,
            status=RedemptionStatus.PENDING.value
        ).update({
            LoyaltyRedemption.status: RedemptionStatus.COMPLETED.value,
            LoyaltyRedemption.completed_at: now,
        }, synchronize_session=False)
        if claimed == 0:
            db.session.rollback()
            raise InvalidStatusTransitionError(
                'redemption', RedemptionStatus.COMPLETED.value, RedemptionStatus.COMPLETED.value
            )

        # Spendable points never go below zero, even if spent since issuance
        deducted = LoyaltyBalance.query.filter_by(
            tenant_id=self.tenant_id,
            contact_handle=contact_handle
        ).update({
            LoyaltyBalance.points: case(
                (LoyaltyBalance.points >= points, LoyaltyBalance.points - points),
                else_=0
            ),
            LoyaltyBalance.total_redeemed: LoyaltyBalance.total_redeemed + points,
            LoyaltyBalance.last_redeem_at: now,
            LoyaltyBalance.updated_at: now,
        }, synchronize_session=False)

        if deducted == 0:
            current_app.logger.warning(
                f"No balance row for {contact_handle} while validating redemption "
                f"{redemption.id}; recording redemption against an empty balance"
            )
            db.session.add(LoyaltyBalance(
                tenant_id=self.tenant_id,
                contact_handle=contact_handle,
                points=0,
                total_earned=0,
                total_redeemed=points,
                last_redeem_at=now,
            ))

        db.session.commit()
        db.session.refresh(redemption)

        current_app.logger.info(
            f"Redemption {redemption.id} validated: {points} pts deducted from {contact_handle}"
        )

        return {
            'redemption': redemption.to_dict(now),
            'balance': self.get_balance(contact_handle),
        }

    def cancel_redemption(self, redemption_id: int, now: datetime = None) -> Dict[str, Any]:
        """
        Cancel a pending redemption. No balance effect.

        Cancelling an already cancelled redemption is a no-op.

        Raises:
            InvalidStatusTransitionError: redemption already completed
        """
        now = now or datetime.utcnow()
        redemption = self._get_redemption(redemption_id)

        if redemption.status == RedemptionStatus.CANCELLED.value:
            return redemption.to_dict(now)

        cancelled = LoyaltyRedemption.query.filter_by(
            id=redemption.id,
            status=RedemptionStatus.PENDING.value
        ).update({
            LoyaltyRedemption.status: RedemptionStatus.CANCELLED.value,
            LoyaltyRedemption.cancelled_at: now,
        }, synchronize_session=False)

        if cancelled == 0:
            db.session.rollback()
            db.session.refresh(redemption)
            raise InvalidStatusTransitionError(
                'redemption', redemption.status, RedemptionStatus.CANCELLED.value
            )

        db.session.commit()
        db.session.refresh(redemption)

        current_app.logger.info(f"Redemption {redemption.id} cancelled")
        return redemption.to_dict(now)
