"""
Tests for payment webhooks (Mercado Pago and Stripe).
"""
import hashlib
import hmac
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from app.extensions import db
from app.models import Appointment
from app.webhooks.mercado_pago import parse_signature_header, verify_signature


@pytest.fixture
def unpaid_appointment(sample_tenant, sample_professional, sample_service):
    now = datetime.utcnow()
    appointment = Appointment(
        tenant_id=sample_tenant.id,
        professional_id=sample_professional.id,
        service_id=sample_service.id,
        scheduled_at=now + timedelta(hours=2),
        client_name='Carlos',
        client_phone='5511999990000',
        status='pending_payment',
        payment_method='online',
        service_price=sample_service.price,
        prepaid_amount=sample_service.price / 2,
        confirmation_code='0427',
        tolerance_expires_at=now + timedelta(hours=2, minutes=10),
        payment_expires_at=now + timedelta(minutes=15),
        pix_payment_id='987',
    )
    db.session.add(appointment)
    db.session.commit()
    return appointment


@pytest.fixture
def whatsapp_off():
    with patch('app.services.whatsapp_service.requests.post') as mock_post:
        mock_post.return_value = MagicMock(status_code=503)
        yield mock_post


def sign(secret, data_id, request_id, ts='1704908010'):
    manifest = f'id:{data_id};request-id:{request_id};ts:{ts};'
    digest = hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return f'ts={ts},v1={digest}'


class TestMercadoPagoSignature:

    def test_parse_header(self):
        assert parse_signature_header('ts=1704908010, v1=abc') == {'ts': '1704908010', 'v1': 'abc'}
        assert parse_signature_header(None) == {}

    def test_verify(self):
        header = sign('s3cret', '987', 'req-1')

        assert verify_signature('s3cret', header, 'req-1', '987') is True
        assert verify_signature('s3cret', header, 'req-1', '988') is False
        assert verify_signature('other', header, 'req-1', '987') is False
        assert verify_signature('s3cret', 'v1=abc', 'req-1', '987') is False


class TestMercadoPagoWebhook:
    """Tests for POST /webhook/mercado-pago."""

    @patch('app.services.mercado_pago_service.requests.request')
    def test_approved_payment_confirms(self, mock_request, client, unpaid_appointment, whatsapp_off):
        mock_request.return_value = MagicMock(status_code=200, json=MagicMock(return_value={
            'id': 987, 'status': 'approved',
        }))

        response = client.post('/webhook/mercado-pago', json={'type': 'payment', 'data': {'id': '987'}})

        assert response.status_code == 200
        data = response.get_json()
        assert data['handled'] is True
        assert data['changed'] is True
        assert Appointment.query.get(unpaid_appointment.id).status == 'confirmed'

    @patch('app.services.mercado_pago_service.requests.request')
    def test_replayed_notification_is_noop(self, mock_request, client, unpaid_appointment, whatsapp_off):
        mock_request.return_value = MagicMock(status_code=200, json=MagicMock(return_value={
            'id': 987, 'status': 'approved',
        }))

        client.post('/webhook/mercado-pago', json={'type': 'payment', 'data': {'id': '987'}})
        response = client.post('/webhook/mercado-pago', json={'type': 'payment', 'data': {'id': '987'}})

        assert response.get_json()['changed'] is False

    @patch('app.services.mercado_pago_service.requests.request')
    def test_query_string_notification(self, mock_request, client, unpaid_appointment):
        mock_request.return_value = MagicMock(status_code=200, json=MagicMock(return_value={
            'id': 987, 'status': 'rejected',
        }))

        response = client.post('/webhook/mercado-pago?type=payment&data.id=987')

        assert response.get_json()['payment_status'] == 'rejected'
        assert Appointment.query.get(unpaid_appointment.id).status == 'cancelled'

    def test_other_topics_ignored(self, client):
        response = client.post('/webhook/mercado-pago', json={'type': 'merchant_order', 'data': {'id': '1'}})

        assert response.status_code == 200
        assert response.get_json()['handled'] is False

    def test_unknown_payment(self, client):
        response = client.post('/webhook/mercado-pago', json={'type': 'payment', 'data': {'id': '404'}})

        assert response.get_json()['handled'] is False

    def test_bad_signature_rejected(self, app, client, unpaid_appointment):
        app.config['MERCADO_PAGO_WEBHOOK_SECRET'] = 's3cret'

        response = client.post(
            '/webhook/mercado-pago',
            json={'type': 'payment', 'data': {'id': '987'}},
            headers={'x-signature': 'ts=1,v1=deadbeef', 'x-request-id': 'req-1'},
        )

        assert response.status_code == 401
        assert Appointment.query.get(unpaid_appointment.id).status == 'pending_payment'

    @patch('app.services.mercado_pago_service.requests.request')
    def test_valid_signature_accepted(self, mock_request, app, client, unpaid_appointment, whatsapp_off):
        app.config['MERCADO_PAGO_WEBHOOK_SECRET'] = 's3cret'
        mock_request.return_value = MagicMock(status_code=200, json=MagicMock(return_value={
            'id': 987, 'status': 'approved',
        }))

        response = client.post(
            '/webhook/mercado-pago',
            json={'type': 'payment', 'data': {'id': '987'}},
            headers={'x-signature': sign('s3cret', '987', 'req-1'), 'x-request-id': 'req-1'},
        )

        assert response.status_code == 200
        assert response.get_json()['handled'] is True


class TestStripeWebhook:
    """Tests for POST /webhook/stripe."""

    @pytest.fixture
    def stripe_appointment(self, sample_tenant, unpaid_appointment):
        sample_tenant.settings = {'payments': {'provider': 'stripe'}}
        unpaid_appointment.pix_payment_id = 'pi_123'
        db.session.commit()
        return unpaid_appointment

    def event(self, event_type, intent_id='pi_123'):
        return {'type': event_type, 'data': {'object': {'id': intent_id}}}

    def test_missing_signature_header(self, client):
        response = client.post('/webhook/stripe', data=b'{}')

        assert response.status_code == 400

    def test_missing_secret(self, app, client):
        app.config['STRIPE_WEBHOOK_SECRET'] = None

        response = client.post('/webhook/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert response.status_code == 500

    def test_invalid_signature(self, client):
        response = client.post(
            '/webhook/stripe',
            data=b'{"type": "payment_intent.succeeded"}',
            headers={'Stripe-Signature': 't=1,v1=deadbeef'},
        )

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_SIGNATURE'

    @patch('app.services.stripe_service.stripe.PaymentIntent.retrieve')
    @patch('app.webhooks.stripe.StripePixService.construct_webhook_event')
    def test_succeeded_confirms(self, mock_construct, mock_retrieve, client, stripe_appointment, whatsapp_off):
        mock_construct.return_value = self.event('payment_intent.succeeded')
        mock_retrieve.return_value = {'id': 'pi_123', 'status': 'succeeded', 'metadata': {}}

        response = client.post('/webhook/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert response.status_code == 200
        data = response.get_json()
        assert data['handled'] is True
        assert data['payment_status'] == 'approved'
        assert Appointment.query.get(stripe_appointment.id).status == 'confirmed'

    @patch('app.services.stripe_service.stripe.PaymentIntent.retrieve')
    @patch('app.webhooks.stripe.StripePixService.construct_webhook_event')
    def test_canceled_cancels(self, mock_construct, mock_retrieve, client, stripe_appointment):
        mock_construct.return_value = self.event('payment_intent.canceled')
        mock_retrieve.return_value = {'id': 'pi_123', 'status': 'canceled', 'metadata': {}}

        client.post('/webhook/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert Appointment.query.get(stripe_appointment.id).status == 'cancelled'

    @patch('app.services.stripe_service.stripe.PaymentIntent.retrieve')
    @patch('app.webhooks.stripe.StripePixService.construct_webhook_event')
    def test_payment_failed_cancels(self, mock_construct, mock_retrieve, client, stripe_appointment):
        mock_construct.return_value = self.event('payment_intent.payment_failed')
        mock_retrieve.return_value = {
            'id': 'pi_123',
            'status': 'requires_payment_method',
            'last_payment_error': {'code': 'payment_intent_payment_attempt_failed'},
            'metadata': {},
        }

        response = client.post('/webhook/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert response.get_json()['payment_status'] == 'rejected'
        assert Appointment.query.get(stripe_appointment.id).status == 'cancelled'

    @patch('app.webhooks.stripe.StripePixService.construct_webhook_event')
    def test_unhandled_event(self, mock_construct, client):
        mock_construct.return_value = self.event('charge.dispute.created')

        response = client.post('/webhook/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert response.get_json()['handled'] is False

    @patch('app.webhooks.stripe.StripePixService.construct_webhook_event')
    def test_unknown_intent(self, mock_construct, client):
        mock_construct.return_value = self.event('payment_intent.succeeded', intent_id='pi_unknown')

        response = client.post('/webhook/stripe', data=b'{}', headers={'Stripe-Signature': 't=1,v1=x'})

        assert response.get_json()['handled'] is False
