"""
Payment Service for BarberBook.

Bridges the tenant's PIX gateway to appointment state:
- create_charge / check_status: thin, idempotent gateway calls
- request_prepayment: charge the prepaid half of an online booking
- sync_payment: apply the gateway's status to the appointment (polling and webhooks)
- refund: full refund of the prepaid amount, guarded against double refunds

Local state is only written after the gateway answered successfully; a gateway
failure raises GatewayError and leaves the appointment untouched.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from flask import current_app

from ..extensions import db
from ..models.appointment import Appointment, AppointmentStatus
from ..models.notification import NotificationType
from ..utils.exceptions import (
    AlreadyRefundedError,
    NotFoundError,
    PaymentMismatchError,
    ValidationError,
)
from .payment_gateway import ChargeStatus, build_idempotency_key, get_payment_gateway


def find_appointment_by_charge(charge_id: str) -> Optional[Appointment]:
    """Appointment holding a gateway charge id, across tenants (webhooks)."""
    if not charge_id:
        return None
    return Appointment.query.filter_by(pix_payment_id=str(charge_id)).first()


class PaymentService:
    """
    Prepayment and refund operations for one tenant.

    Usage:
        service = PaymentService(tenant_id)
        pix = service.request_prepayment(appointment_id)
        service.sync_payment(appointment_id)
        service.refund(pix['charge_id'], appointment_id, 'Cliente desistiu')
    """

    def __init__(self, tenant_id: int, gateway=None, appointment_service=None, notifications=None):
        self.tenant_id = tenant_id
        self._gateway = gateway
        self._appointments = appointment_service
        self._notifications = notifications

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_payment_gateway(self.tenant_id)
        return self._gateway

    @property
    def appointments(self):
        if self._appointments is None:
            from .appointment_service import AppointmentService
            self._appointments = AppointmentService(self.tenant_id)
        return self._appointments

    @property
    def notifications(self):
        if self._notifications is None:
            from .notification_service import NotificationService
            self._notifications = NotificationService(self.tenant_id)
        return self._notifications

    def _get_appointment(self, appointment_id: int) -> Appointment:
        appointment = Appointment.query.filter_by(id=appointment_id, tenant_id=self.tenant_id).first()
        if not appointment:
            raise NotFoundError('Appointment', appointment_id)
        return appointment

    # ==================== Gateway operations ====================

    def create_charge(
        self,
        amount,
        description: str,
        payer_contact: str = None,
        external_reference: str = None,
        payer_name: str = None
    ) -> Dict[str, Any]:
        """
        Create a PIX charge.

        The idempotency key is derived from external_reference, so retrying
        with the same reference never charges twice.

        Returns:
            Dict with charge_id, status and the scannable artifact
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("Charge amount must be positive", field='amount')

        return self.gateway.create_charge(
            amount,
            description,
            idempotency_key=build_idempotency_key(external_reference),
            payer_name=payer_name,
            payer_contact=payer_contact,
            external_reference=external_reference,
        )

    def check_status(self, charge_id: str) -> str:
        """Normalised gateway status of a charge. Read only."""
        return self.gateway.get_charge(charge_id)['status']

    # ==================== Appointment payments ====================

    def request_prepayment(self, appointment_id: int, now: datetime = None) -> Dict[str, Any]:
        """
        Charge the prepaid amount of an online booking.

        Raises:
            ValidationError: not an online booking awaiting payment, or hold expired
        """
        now = now or datetime.utcnow()
        appointment = self._get_appointment(appointment_id)

        if not appointment.is_online:
            raise ValidationError("Appointment is not an online booking", field='payment_method')
        if appointment.status != AppointmentStatus.PENDING_PAYMENT.value:
            raise ValidationError(f"Appointment is {appointment.status}, not awaiting payment", field='status')
        if appointment.payment_expires_at and now > appointment.payment_expires_at:
            self.appointments.cancel_unpaid(appointment, expired=True, now=now)
            raise ValidationError("Payment window has expired", field='payment_expires_at')

        service_name = appointment.service.name if appointment.service else 'Serviço'
        charge = self.create_charge(
            appointment.prepaid_amount,
            f"{service_name} - {appointment.scheduled_at.strftime('%d/%m/%Y %H:%M')}",
            payer_contact=appointment.client_phone,
            external_reference=str(appointment.id),
            payer_name=appointment.client_name,
        )

        appointment.pix_payment_id = charge['charge_id']
        db.session.commit()

        current_app.logger.info(
            f"Prepayment charge {charge['charge_id']} requested for appointment {appointment.id}"
        )
        return dict(
            charge,
            appointment_id=appointment.id,
            amount=float(appointment.prepaid_amount),
            expires_at=appointment.payment_expires_at.isoformat() if appointment.payment_expires_at else None,
        )

    def sync_payment(self, appointment_id: int, now: datetime = None) -> Dict[str, Any]:
        """
        Apply the gateway status of the appointment's charge.

        approved -> confirmed; rejected/cancelled -> cancelled; still pending
        after the hold -> cancelled as expired; anything else -> no change.
        """
        now = now or datetime.utcnow()
        appointment = self._get_appointment(appointment_id)
        if not appointment.pix_payment_id:
            raise ValidationError("Appointment has no charge to sync", field='pix_payment_id')

        status = self.check_status(appointment.pix_payment_id)
        changed = False

        if status == ChargeStatus.APPROVED.value:
            changed = self.appointments.confirm_payment(appointment, now=now)
        elif status in (ChargeStatus.REJECTED.value, ChargeStatus.CANCELLED.value):
            changed = self.appointments.cancel_unpaid(appointment, expired=False, now=now)
        elif (
            status == ChargeStatus.PENDING.value
            and appointment.payment_expires_at
            and now > appointment.payment_expires_at
        ):
            changed = self.appointments.cancel_unpaid(appointment, expired=True, now=now)

        return {
            'payment_status': status,
            'changed': changed,
            'appointment': appointment.to_dict(),
        }

    def refund(self, charge_id: str, appointment_id: int, reason: str = None, now: datetime = None) -> Dict[str, Any]:
        """
        Refund the full prepaid amount and cancel the appointment.

        Raises:
            NotFoundError: appointment absent
            AlreadyRefundedError: refunded before
            PaymentMismatchError: charge_id is not the appointment's charge
            GatewayError: provider refused; nothing changed locally
        """
        now = now or datetime.utcnow()
        appointment = self._get_appointment(appointment_id)

        if appointment.refunded:
            raise AlreadyRefundedError(appointment.id)
        if not charge_id or str(charge_id) != appointment.pix_payment_id:
            raise PaymentMismatchError(charge_id, appointment.id)

        amount = Decimal(str(appointment.prepaid_amount or 0))
        if amount <= 0:
            raise ValidationError("Appointment has no prepaid amount to refund", field='prepaid_amount')

        result = self.gateway.refund(
            appointment.pix_payment_id,
            amount,
            idempotency_key=build_idempotency_key(str(appointment.id), prefix='refund'),
        )

        appointment.refunded = True
        appointment.refunded_at = now
        appointment.refund_amount = amount
        appointment.refund_reason = reason
        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = appointment.cancelled_at or now

        self.notifications.create(
            NotificationType.REFUND_PROCESSED,
            'Reembolso processado',
            f"R$ {amount} devolvidos a {appointment.client_name}"
            + (f": {reason}" if reason else ''),
            appointment_id=appointment.id,
            commit=False,
        )
        db.session.commit()

        current_app.logger.info(
            f"Refund {result.get('refund_id')} of {amount} processed for appointment {appointment.id}"
        )
        return {
            'refund_id': result.get('refund_id'),
            'refund_status': result.get('status'),
            'appointment': appointment.to_dict(),
        }
