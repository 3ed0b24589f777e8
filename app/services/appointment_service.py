"""
Appointment Service for BarberBook.

Owns the appointment lifecycle:
- Booking (online/prepaid or local), with client get-or-create by phone
- Check-in with the 4-digit confirmation code and the 10 minute tolerance
- Late-arrival decisions after the tolerance window
- Manual status changes from the dashboard
- Payment confirmation and expiry of unpaid reservations

Completion always attempts loyalty accrual once. Accrual and messaging are
secondary effects: failures are logged and never undo the status change.
"""

import hmac
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app

from ..extensions import db
from ..models.appointment import (
    Appointment,
    AppointmentStatus,
    PaymentMethod,
    TOLERANCE_WINDOW,
)
from ..models.catalog import Professional, Service
from ..models.client import Client
from ..models.notification import NotificationType
from ..utils.exceptions import (
    InvalidCodeError,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)


# Outcomes of a check-in attempt
CHECK_IN_COMPLETED = 'completed'
CHECK_IN_TOLERANCE_EXPIRED = 'tolerance_expired'

LATE_ARRIVAL_DECISIONS = {
    AppointmentStatus.WAITING.value,
    AppointmentStatus.NO_SHOW.value,
    AppointmentStatus.COMPLETED.value,
}


def parse_datetime(value, field: str = 'scheduled_at') -> datetime:
    """Accept a datetime or an ISO-8601 string; aware values are converted to naive UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid datetime: {value}", field=field)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class AppointmentService:
    """
    Appointment lifecycle for one tenant.

    Usage:
        service = AppointmentService(tenant_id)

        appointment = service.create_appointment({...})
        result = service.validate_check_in(appointment['id'], '0427')
        if result['outcome'] == 'tolerance_expired':
            service.resolve_late_arrival(appointment['id'], 'waiting')
    """

    def __init__(self, tenant_id: int, loyalty_service=None, messenger=None, notifications=None):
        self.tenant_id = tenant_id
        self._loyalty = loyalty_service
        self._messenger = messenger
        self._notifications = notifications

    @property
    def loyalty(self):
        if self._loyalty is None:
            from .loyalty_service import LoyaltyService
            self._loyalty = LoyaltyService(self.tenant_id)
        return self._loyalty

    @property
    def messenger(self):
        if self._messenger is None:
            from .whatsapp_service import WhatsAppService
            self._messenger = WhatsAppService(self.tenant_id)
        return self._messenger

    @property
    def notifications(self):
        if self._notifications is None:
            from .notification_service import NotificationService
            self._notifications = NotificationService(self.tenant_id)
        return self._notifications

    # ==================== Booking ====================

    def _get_or_create_client(self, name: str, phone: str) -> Client:
        client = Client.query.filter_by(tenant_id=self.tenant_id, phone=phone).first()
        if client:
            if name and client.name != name:
                client.name = name
            return client

        client = Client(tenant_id=self.tenant_id, name=name, phone=phone)
        db.session.add(client)
        db.session.flush()
        return client

    def create_appointment(
        self,
        data: Dict[str, Any],
        created_by_admin: bool = False,
        now: datetime = None
    ) -> Dict[str, Any]:
        """
        Book an appointment.

        Args:
            data: professional_id, service_id, scheduled_at, client_name,
                client_phone, payment_method ('online'|'local'), notes
            created_by_admin: local bookings made from the dashboard start confirmed
            now: Clock override

        Returns:
            Appointment dict including the confirmation code

        Raises:
            ValidationError: missing fields, foreign professional/service, past start
        """
        now = now or datetime.utcnow()

        for field in ('professional_id', 'service_id', 'scheduled_at', 'client_name', 'client_phone'):
            if data.get(field) in (None, ''):
                raise ValidationError(f"{field} is required", field=field)

        payment_method = data.get('payment_method') or PaymentMethod.LOCAL.value
        if payment_method not in [m.value for m in PaymentMethod]:
            raise ValidationError(f"Invalid payment method: {payment_method}", field='payment_method')

        professional = Professional.query.filter_by(
            id=data['professional_id'], tenant_id=self.tenant_id
        ).first()
        if not professional or not professional.is_active:
            raise ValidationError("Professional does not belong to this barbershop", field='professional_id')

        service = Service.query.filter_by(id=data['service_id'], tenant_id=self.tenant_id).first()
        if not service or not service.is_active:
            raise ValidationError("Service does not belong to this barbershop", field='service_id')

        scheduled_at = parse_datetime(data['scheduled_at'])
        if scheduled_at <= now:
            raise ValidationError("Appointment start must be in the future", field='scheduled_at')

        client_name = str(data['client_name']).strip()
        client_phone = str(data['client_phone']).strip()
        client = self._get_or_create_client(client_name, client_phone)

        appointment = Appointment(
            tenant_id=self.tenant_id,
            professional_id=professional.id,
            service_id=service.id,
            client_id=client.id,
            scheduled_at=scheduled_at,
            client_name=client_name,
            client_phone=client_phone,
            notes=data.get('notes'),
            payment_method=payment_method,
            service_price=service.price,
            created_at=now,
        )

        if payment_method == PaymentMethod.ONLINE.value:
            rate = Decimal(str(current_app.config.get('PREPAYMENT_RATE', '0.50')))
            hold = current_app.config.get('PAYMENT_HOLD_MINUTES', 15)
            appointment.status = AppointmentStatus.PENDING_PAYMENT.value
            appointment.confirmation_code = Appointment.generate_confirmation_code()
            appointment.tolerance_expires_at = scheduled_at + TOLERANCE_WINDOW
            appointment.prepaid_amount = (Decimal(str(service.price)) * rate).quantize(Decimal('0.01'))
            appointment.payment_expires_at = now + timedelta(minutes=hold)
        elif created_by_admin:
            appointment.status = AppointmentStatus.CONFIRMED.value
        else:
            appointment.status = AppointmentStatus.PENDING.value

        db.session.add(appointment)
        db.session.commit()

        current_app.logger.info(
            f"Appointment {appointment.id} created for tenant {self.tenant_id}: "
            f"{appointment.status} at {appointment.scheduled_at.isoformat()} ({payment_method})"
        )
        return appointment.to_dict_detailed()

    # ==================== Queries ====================

    def _get(self, appointment_id: int) -> Appointment:
        appointment = Appointment.query.filter_by(id=appointment_id, tenant_id=self.tenant_id).first()
        if not appointment:
            raise NotFoundError('Appointment', appointment_id)
        return appointment

    def get_appointment(self, appointment_id: int) -> Dict[str, Any]:
        return self._get(appointment_id).to_dict_detailed()

    def list_appointments(self, day: Optional[date] = None, status: str = None) -> List[Dict[str, Any]]:
        """Appointments of a day (all days when day is None), ordered by start."""
        query = Appointment.query.filter_by(tenant_id=self.tenant_id)
        if day:
            start = datetime.combine(day, datetime.min.time())
            query = query.filter(
                Appointment.scheduled_at >= start,
                Appointment.scheduled_at < start + timedelta(days=1)
            )
        if status:
            query = query.filter_by(status=status)
        return [a.to_dict() for a in query.order_by(Appointment.scheduled_at).all()]

    # ==================== Transitions ====================

    def _transition(self, appointment: Appointment, new_status: str, now: datetime) -> Dict[str, Any]:
        """Apply a lifecycle transition; completion triggers accrual."""
        if not appointment.can_transition_to(new_status):
            raise InvalidStatusTransitionError('appointment', appointment.status, new_status)

        old_status = appointment.status
        appointment.status = new_status
        if new_status == AppointmentStatus.COMPLETED.value:
            appointment.completed_at = now
        elif new_status == AppointmentStatus.CANCELLED.value:
            appointment.cancelled_at = now
        db.session.commit()

        current_app.logger.info(
            f"Appointment {appointment.id} status changed: {old_status} -> {new_status}"
        )

        points = 0
        if new_status == AppointmentStatus.COMPLETED.value:
            points = self._accrue(appointment, now)

        return {
            'appointment': appointment.to_dict(),
            'points_awarded': points,
        }

    def _accrue(self, appointment: Appointment, now: datetime) -> int:
        """Best-effort loyalty accrual for a completed appointment."""
        price = appointment.service_price
        if price is None and appointment.service:
            price = appointment.service.price
        try:
            return self.loyalty.accrue_on_completion(
                appointment.client_phone,
                price,
                appointment_id=appointment.id,
                now=now,
            )
        except Exception as e:
            db.session.rollback()
            current_app.logger.warning(
                f"Loyalty accrual failed for appointment {appointment.id}: {e}"
            )
            return 0

    def update_status(self, appointment_id: int, new_status: str, now: datetime = None) -> Dict[str, Any]:
        """Direct status change from the dashboard (e.g. mark complete)."""
        now = now or datetime.utcnow()
        if new_status not in [s.value for s in AppointmentStatus]:
            raise ValidationError(f"Invalid status: {new_status}", field='status')
        return self._transition(self._get(appointment_id), new_status, now)

    def validate_check_in(self, appointment_id: int, submitted_code: str, now: datetime = None) -> Dict[str, Any]:
        """
        Check a client in with their confirmation code.

        Within the tolerance window the appointment is completed. Past it, no
        status changes: the outcome is 'tolerance_expired' and the caller picks
        one of resolve_late_arrival's decisions. A client already put in the
        waiting line is completed on a correct code.

        Returns:
            Dict with outcome, appointment and points_awarded

        Raises:
            NotFoundError, ValidationError, InvalidStatusTransitionError,
            InvalidCodeError (no state change)
        """
        now = now or datetime.utcnow()
        appointment = self._get(appointment_id)

        if not appointment.confirmation_code:
            raise ValidationError("Appointment has no confirmation code", field='code')

        if appointment.status not in (AppointmentStatus.CONFIRMED.value, AppointmentStatus.WAITING.value):
            raise InvalidStatusTransitionError(
                'appointment', appointment.status, AppointmentStatus.COMPLETED.value
            )

        submitted = str(submitted_code or '').strip().encode('utf-8')
        if not hmac.compare_digest(submitted, appointment.confirmation_code.encode('utf-8')):
            current_app.logger.info(f"Invalid check-in code for appointment {appointment.id}")
            raise InvalidCodeError("Invalid confirmation code")

        if appointment.status == AppointmentStatus.CONFIRMED.value and not appointment.is_within_tolerance(now):
            current_app.logger.info(
                f"Check-in for appointment {appointment.id} after tolerance "
                f"({appointment.tolerance_expires_at.isoformat()})"
            )
            return {
                'outcome': CHECK_IN_TOLERANCE_EXPIRED,
                'appointment': appointment.to_dict(),
                'points_awarded': 0,
                'options': sorted(LATE_ARRIVAL_DECISIONS),
            }

        result = self._transition(appointment, AppointmentStatus.COMPLETED.value, now)
        result['outcome'] = CHECK_IN_COMPLETED
        return result

    def resolve_late_arrival(self, appointment_id: int, decision: str, now: datetime = None) -> Dict[str, Any]:
        """
        Apply the barber's choice for a client who arrived after the tolerance.

        Args:
            decision: 'waiting', 'no_show' or 'completed'
        """
        now = now or datetime.utcnow()
        if decision not in LATE_ARRIVAL_DECISIONS:
            raise ValidationError(f"Invalid decision: {decision}", field='decision')

        appointment = self._get(appointment_id)
        if appointment.status == decision == AppointmentStatus.WAITING.value:
            return {'appointment': appointment.to_dict(), 'points_awarded': 0}

        return self._transition(appointment, decision, now)

    # ==================== Payment-driven transitions ====================

    def confirm_payment(self, appointment: Appointment, now: datetime = None) -> bool:
        """
        pending_payment -> confirmed after gateway approval.

        Records a payment_confirmed notification and sends the confirmation
        code to the client. Returns False when there was nothing to do.
        """
        now = now or datetime.utcnow()
        if appointment.status != AppointmentStatus.PENDING_PAYMENT.value:
            return False

        appointment.status = AppointmentStatus.CONFIRMED.value
        self.notifications.create(
            NotificationType.PAYMENT_CONFIRMED,
            'Pagamento confirmado',
            f"{appointment.client_name} pagou R$ {appointment.prepaid_amount} "
            f"do horário de {appointment.scheduled_at.strftime('%d/%m %H:%M')}",
            appointment_id=appointment.id,
            commit=False,
        )
        db.session.commit()

        current_app.logger.info(f"Appointment {appointment.id} payment confirmed")
        self._send(
            'payment_confirmed',
            appointment,
            confirmation_code=appointment.confirmation_code,
        )
        return True

    def cancel_unpaid(self, appointment: Appointment, expired: bool, now: datetime = None) -> bool:
        """
        pending_payment -> cancelled when the PIX was rejected or not paid in time.
        """
        now = now or datetime.utcnow()
        if appointment.status != AppointmentStatus.PENDING_PAYMENT.value:
            return False

        appointment.status = AppointmentStatus.CANCELLED.value
        appointment.cancelled_at = now
        if expired:
            self.notifications.create(
                NotificationType.PAYMENT_EXPIRED,
                'Pagamento expirado',
                f"A reserva de {appointment.client_name} para "
                f"{appointment.scheduled_at.strftime('%d/%m %H:%M')} foi cancelada por falta de pagamento",
                appointment_id=appointment.id,
                commit=False,
            )
        else:
            self.notifications.create(
                NotificationType.APPOINTMENT_CANCELLED,
                'Agendamento cancelado',
                f"O pagamento de {appointment.client_name} foi recusado",
                appointment_id=appointment.id,
                commit=False,
            )
        db.session.commit()

        current_app.logger.info(
            f"Appointment {appointment.id} cancelled ({'payment expired' if expired else 'payment rejected'})"
        )
        if expired:
            self._send('payment_expired', appointment)
        return True

    def expire_unpaid_reservations(self, now: datetime = None, dry_run: bool = False) -> List[int]:
        """
        Cancel pending_payment appointments whose hold has passed.

        Returns:
            IDs of expired (or, with dry_run, expirable) appointments
        """
        now = now or datetime.utcnow()
        expired = Appointment.query.filter(
            Appointment.tenant_id == self.tenant_id,
            Appointment.status == AppointmentStatus.PENDING_PAYMENT.value,
            Appointment.payment_expires_at.isnot(None),
            Appointment.payment_expires_at < now
        ).order_by(Appointment.id).all()

        ids = [a.id for a in expired]
        if dry_run:
            return ids

        for appointment in expired:
            self.cancel_unpaid(appointment, expired=True, now=now)
        return ids

    def _send(self, template: str, appointment: Appointment, **context) -> None:
        try:
            result = self.messenger.send_template(
                template,
                appointment.client_phone,
                client_name=appointment.client_name,
                scheduled_at=appointment.scheduled_at.strftime('%d/%m/%Y %H:%M'),
                **context
            )
            if not result.get('success'):
                current_app.logger.warning(
                    f"WhatsApp '{template}' not delivered for appointment {appointment.id}: "
                    f"{result.get('error')}"
                )
        except Exception as e:
            current_app.logger.warning(
                f"WhatsApp '{template}' failed for appointment {appointment.id}: {e}"
            )
