"""
Tests for the Payment Service.

The gateway is a MagicMock throughout; provider adapters have their own tests.
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from app.models import Appointment, Notification
from app.services.appointment_service import AppointmentService
from app.services.mercado_pago_service import MercadoPagoService
from app.services.payment_gateway import build_idempotency_key, get_payment_gateway
from app.services.payment_service import PaymentService, find_appointment_by_charge
from app.services.stripe_service import StripePixService
from app.utils.exceptions import (
    AlreadyRefundedError,
    GatewayError,
    NotFoundError,
    PaymentMismatchError,
    ValidationError,
)


@pytest.fixture
def gateway():
    gateway = MagicMock()
    gateway.create_charge.return_value = {
        'charge_id': '1234567890',
        'status': 'pending',
        'qr_code': '00020126580014br.gov.bcb.pix',
        'qr_code_base64': 'iVBORw0KGgo=',
        'ticket_url': 'https://mercadopago.test/ticket',
    }
    gateway.get_charge.return_value = {'charge_id': '1234567890', 'status': 'pending'}
    gateway.refund.return_value = {'refund_id': 'rf_1', 'status': 'approved'}
    return gateway


@pytest.fixture
def appointments(sample_tenant, mock_messenger):
    return AppointmentService(sample_tenant.id, messenger=mock_messenger)


@pytest.fixture
def payments(sample_tenant, gateway, appointments):
    return PaymentService(sample_tenant.id, gateway=gateway, appointment_service=appointments)


@pytest.fixture
def online_appointment(appointments, sample_professional, sample_service, booking_now):
    created = appointments.create_appointment({
        'professional_id': sample_professional.id,
        'service_id': sample_service.id,
        'scheduled_at': '2024-01-15T10:00:00',
        'client_name': 'Carlos',
        'client_phone': '5511999990000',
        'payment_method': 'online',
    }, now=booking_now)
    return Appointment.query.get(created['id'])


@pytest.fixture
def paid_appointment(payments, appointments, online_appointment, booking_now):
    payments.request_prepayment(online_appointment.id, now=booking_now)
    appointments.confirm_payment(online_appointment, now=booking_now)
    return online_appointment


class TestIdempotencyKey:

    def test_derived_from_reference(self):
        assert build_idempotency_key('42') == 'charge-42'
        assert build_idempotency_key('42', prefix='refund') == 'refund-42'

    def test_fallback_is_unique(self):
        assert build_idempotency_key() != build_idempotency_key()


class TestGatewaySelection:

    def test_defaults_to_mercado_pago(self, app, sample_tenant):
        assert isinstance(get_payment_gateway(sample_tenant.id), MercadoPagoService)

    def test_stripe_when_configured(self, app, other_tenant):
        other_tenant.settings = {'payments': {'provider': 'stripe'}}

        assert isinstance(get_payment_gateway(other_tenant.id), StripePixService)


class TestCreateCharge:

    def test_passes_idempotency_key(self, app, payments, gateway):
        payments.create_charge(Decimal('25.00'), 'Corte', external_reference='7')

        kwargs = gateway.create_charge.call_args[1]
        assert kwargs['idempotency_key'] == 'charge-7'
        assert kwargs['external_reference'] == '7'

    def test_rejects_non_positive_amount(self, app, payments, gateway):
        with pytest.raises(ValidationError):
            payments.create_charge(0, 'Corte')

        gateway.create_charge.assert_not_called()


class TestRequestPrepayment:
    """Tests for PaymentService.request_prepayment."""

    def test_charges_prepaid_amount(self, app, payments, gateway, online_appointment, booking_now):
        result = payments.request_prepayment(online_appointment.id, now=booking_now)

        args = gateway.create_charge.call_args[0]
        assert args[0] == Decimal('25.00')
        assert result['charge_id'] == '1234567890'
        assert result['amount'] == 25.0
        assert result['qr_code'].startswith('000201')
        assert online_appointment.pix_payment_id == '1234567890'

    def test_local_booking_rejected(
        self, app, payments, appointments, sample_professional, sample_service, booking_now
    ):
        created = appointments.create_appointment({
            'professional_id': sample_professional.id,
            'service_id': sample_service.id,
            'scheduled_at': '2024-01-15T10:00:00',
            'client_name': 'Carlos',
            'client_phone': '5511999990000',
            'payment_method': 'local',
        }, now=booking_now)

        with pytest.raises(ValidationError):
            payments.request_prepayment(created['id'], now=booking_now)

    def test_expired_hold_cancels_booking(self, app, payments, gateway, online_appointment, booking_now):
        with pytest.raises(ValidationError):
            payments.request_prepayment(online_appointment.id, now=booking_now + timedelta(minutes=20))

        gateway.create_charge.assert_not_called()
        assert online_appointment.status == 'cancelled'

    def test_gateway_failure_leaves_appointment_untouched(
        self, app, payments, gateway, online_appointment, booking_now
    ):
        gateway.create_charge.side_effect = GatewayError('Mercado Pago unavailable')

        with pytest.raises(GatewayError):
            payments.request_prepayment(online_appointment.id, now=booking_now)

        assert online_appointment.pix_payment_id is None
        assert online_appointment.status == 'pending_payment'


class TestSyncPayment:
    """Tests for PaymentService.sync_payment."""

    @pytest.fixture
    def charged(self, payments, online_appointment, booking_now):
        payments.request_prepayment(online_appointment.id, now=booking_now)
        return online_appointment

    def test_approved_confirms(self, app, payments, gateway, charged, booking_now, mock_messenger):
        gateway.get_charge.return_value = {'charge_id': '1234567890', 'status': 'approved'}

        result = payments.sync_payment(charged.id, now=booking_now)

        assert result['changed'] is True
        assert result['appointment']['status'] == 'confirmed'
        assert Notification.query.filter_by(type='payment_confirmed').count() == 1
        assert mock_messenger.send_template.call_args[0][0] == 'payment_confirmed'

    def test_approved_twice_is_idempotent(self, app, payments, gateway, charged, booking_now):
        gateway.get_charge.return_value = {'charge_id': '1234567890', 'status': 'approved'}

        payments.sync_payment(charged.id, now=booking_now)
        result = payments.sync_payment(charged.id, now=booking_now)

        assert result['changed'] is False
        assert Notification.query.filter_by(type='payment_confirmed').count() == 1

    def test_rejected_cancels(self, app, payments, gateway, charged, booking_now):
        gateway.get_charge.return_value = {'charge_id': '1234567890', 'status': 'rejected'}

        result = payments.sync_payment(charged.id, now=booking_now)

        assert result['appointment']['status'] == 'cancelled'
        assert Notification.query.filter_by(type='appointment_cancelled').count() == 1

    def test_pending_within_hold_changes_nothing(self, app, payments, charged, booking_now):
        result = payments.sync_payment(charged.id, now=booking_now + timedelta(minutes=5))

        assert result['changed'] is False
        assert result['appointment']['status'] == 'pending_payment'

    def test_pending_after_hold_expires(self, app, payments, charged, booking_now):
        result = payments.sync_payment(charged.id, now=booking_now + timedelta(minutes=16))

        assert result['changed'] is True
        assert result['appointment']['status'] == 'cancelled'
        assert Notification.query.filter_by(type='payment_expired').count() == 1

    def test_no_charge_rejected(self, app, payments, online_appointment):
        with pytest.raises(ValidationError):
            payments.sync_payment(online_appointment.id)


class TestRefund:
    """Tests for PaymentService.refund."""

    def test_refund_cancels_and_notifies(self, app, payments, gateway, paid_appointment, booking_now):
        result = payments.refund('1234567890', paid_appointment.id, 'Cliente desistiu', now=booking_now)

        assert result['refund_id'] == 'rf_1'
        assert result['appointment']['status'] == 'cancelled'
        assert result['appointment']['refunded'] is True
        assert result['appointment']['refund_amount'] == 25.0
        assert result['appointment']['refund_reason'] == 'Cliente desistiu'
        gateway.refund.assert_called_once_with(
            '1234567890', Decimal('25.00'), idempotency_key=f'refund-{paid_appointment.id}'
        )
        assert Notification.query.filter_by(type='refund_processed').count() == 1

    def test_second_refund_rejected(self, app, payments, gateway, paid_appointment):
        payments.refund('1234567890', paid_appointment.id)

        with pytest.raises(AlreadyRefundedError):
            payments.refund('1234567890', paid_appointment.id)

        assert gateway.refund.call_count == 1

    def test_charge_mismatch(self, app, payments, gateway, paid_appointment):
        with pytest.raises(PaymentMismatchError):
            payments.refund('999', paid_appointment.id)

        gateway.refund.assert_not_called()
        assert paid_appointment.refunded is False

    def test_gateway_failure_changes_nothing(self, app, payments, gateway, paid_appointment):
        gateway.refund.side_effect = GatewayError('refund refused')

        with pytest.raises(GatewayError):
            payments.refund('1234567890', paid_appointment.id)

        appointment = Appointment.query.get(paid_appointment.id)
        assert appointment.refunded is False
        assert appointment.status == 'confirmed'
        assert Notification.query.filter_by(type='refund_processed').count() == 0

    def test_unknown_appointment(self, app, payments):
        with pytest.raises(NotFoundError):
            payments.refund('1234567890', 9999)


class TestFindAppointmentByCharge:

    def test_lookup(self, app, payments, online_appointment, booking_now):
        payments.request_prepayment(online_appointment.id, now=booking_now)

        assert find_appointment_by_charge('1234567890').id == online_appointment.id
        assert find_appointment_by_charge('nope') is None
        assert find_appointment_by_charge(None) is None
