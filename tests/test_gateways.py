"""
Tests for provider adapters: Mercado Pago, Stripe and WhatsApp (WUZAPI).

HTTP and SDK calls are patched; no network access.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests
import stripe

from app.services.mercado_pago_service import MercadoPagoService, normalize_status
from app.services.notification_service import NotificationService
from app.services.stripe_service import StripePixService, to_cents
from app.services.whatsapp_service import WhatsAppService
from app.utils.exceptions import ConfigurationError, GatewayError, NotFoundError


def mock_response(status_code=200, json_data=None, text=''):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data or {}
    response.text = text
    return response


class TestMercadoPagoService:
    """Tests for the Mercado Pago adapter."""

    @patch('app.services.mercado_pago_service.requests.request')
    def test_create_charge(self, mock_request, app, sample_tenant):
        mock_request.return_value = mock_response(201, {
            'id': 1234567890,
            'status': 'pending',
            'point_of_interaction': {
                'transaction_data': {
                    'qr_code': '00020126580014br.gov.bcb.pix',
                    'qr_code_base64': 'iVBORw0KGgo=',
                    'ticket_url': 'https://mercadopago.test/ticket',
                },
            },
        })

        charge = MercadoPagoService(sample_tenant.id).create_charge(
            Decimal('25.00'), 'Corte', 'charge-42', payer_name='Carlos', external_reference='42'
        )

        assert charge['charge_id'] == '1234567890'
        assert charge['status'] == 'pending'
        assert charge['qr_code'].startswith('000201')

        method, url = mock_request.call_args[0]
        kwargs = mock_request.call_args[1]
        assert method == 'POST'
        assert url.endswith('/v1/payments')
        assert kwargs['headers']['X-Idempotency-Key'] == 'charge-42'
        assert kwargs['headers']['Authorization'] == 'Bearer TEST-tenant-token'
        assert kwargs['json']['transaction_amount'] == 25.0
        assert kwargs['json']['payment_method_id'] == 'pix'
        assert kwargs['json']['external_reference'] == '42'

    @patch('app.services.mercado_pago_service.requests.request')
    def test_falls_back_to_platform_token(self, mock_request, app, other_tenant):
        mock_request.return_value = mock_response(200, {'id': 1, 'status': 'approved'})

        MercadoPagoService(other_tenant.id).get_charge('1')

        headers = mock_request.call_args[1]['headers']
        assert headers['Authorization'] == 'Bearer TEST-access-token'

    def test_missing_token_is_configuration_error(self, app, other_tenant):
        app.config['MERCADO_PAGO_ACCESS_TOKEN'] = None

        with pytest.raises(ConfigurationError):
            MercadoPagoService(other_tenant.id).get_charge('1')

    @patch('app.services.mercado_pago_service.requests.request')
    def test_get_charge_normalizes_status(self, mock_request, app, sample_tenant):
        mock_request.return_value = mock_response(200, {
            'id': 1234567890, 'status': 'approved', 'external_reference': '42'
        })

        charge = MercadoPagoService(sample_tenant.id).get_charge('1234567890')

        assert charge['status'] == 'approved'
        assert charge['external_reference'] == '42'

    @patch('app.services.mercado_pago_service.requests.request')
    def test_error_status_raises(self, mock_request, app, sample_tenant):
        mock_request.return_value = mock_response(400, text='{"message": "bad request"}')

        with pytest.raises(GatewayError):
            MercadoPagoService(sample_tenant.id).refund('1', Decimal('25.00'), 'refund-1')

    @patch('app.services.mercado_pago_service.requests.request')
    def test_transport_error_raises(self, mock_request, app, sample_tenant):
        mock_request.side_effect = requests.exceptions.ConnectionError('timeout')

        with pytest.raises(GatewayError):
            MercadoPagoService(sample_tenant.id).get_charge('1')

    @patch('app.services.mercado_pago_service.requests.request')
    def test_refund(self, mock_request, app, sample_tenant):
        mock_request.return_value = mock_response(201, {'id': 555, 'status': 'approved'})

        result = MercadoPagoService(sample_tenant.id).refund('1234567890', Decimal('25.00'), 'refund-42')

        assert result == {'refund_id': '555', 'status': 'approved'}
        assert mock_request.call_args[0][1].endswith('/v1/payments/1234567890/refunds')
        assert mock_request.call_args[1]['headers']['X-Idempotency-Key'] == 'refund-42'

    def test_normalize_status(self):
        assert normalize_status('approved') == 'approved'
        assert normalize_status('in_mediation') == 'in_process'
        assert normalize_status('charged_back') == 'refunded'
        assert normalize_status('something_new') == 'pending'


class TestStripePixService:
    """Tests for the Stripe adapter."""

    @pytest.fixture
    def stripe_tenant(self, other_tenant):
        other_tenant.settings = {'payments': {'provider': 'stripe'}}
        return other_tenant

    def test_to_cents(self):
        assert to_cents(Decimal('25.00')) == 2500
        assert to_cents('17.5') == 1750

    @patch('app.services.stripe_service.stripe.PaymentIntent.create')
    def test_create_charge(self, mock_create, app, stripe_tenant):
        mock_create.return_value = {
            'id': 'pi_123',
            'status': 'requires_action',
            'next_action': {
                'pix_display_qr_code': {
                    'data': '00020126580014br.gov.bcb.pix',
                    'image_url_png': 'https://stripe.test/qr.png',
                    'hosted_instructions_url': 'https://stripe.test/pix',
                },
            },
        }

        charge = StripePixService(stripe_tenant.id).create_charge(
            Decimal('25.00'), 'Corte', 'charge-42', external_reference='42'
        )

        assert charge['charge_id'] == 'pi_123'
        assert charge['status'] == 'pending'
        assert charge['qr_code'].startswith('000201')
        assert charge['ticket_url'] == 'https://stripe.test/pix'

        kwargs = mock_create.call_args[1]
        assert kwargs['amount'] == 2500
        assert kwargs['currency'] == 'brl'
        assert kwargs['payment_method_types'] == ['pix']
        assert kwargs['idempotency_key'] == 'charge-42'
        assert kwargs['api_key'] == 'sk_test_barberbook'
        assert kwargs['metadata']['appointment_id'] == '42'

    @patch('app.services.stripe_service.stripe.PaymentIntent.create')
    def test_stripe_error_becomes_gateway_error(self, mock_create, app, stripe_tenant):
        mock_create.side_effect = stripe.StripeError('card_declined')

        with pytest.raises(GatewayError):
            StripePixService(stripe_tenant.id).create_charge(Decimal('25.00'), 'Corte', 'charge-42')

    @patch('app.services.stripe_service.stripe.PaymentIntent.retrieve')
    def test_get_charge(self, mock_retrieve, app, stripe_tenant):
        mock_retrieve.return_value = {
            'id': 'pi_123', 'status': 'succeeded', 'metadata': {'appointment_id': '42'}
        }

        charge = StripePixService(stripe_tenant.id).get_charge('pi_123')

        assert charge['status'] == 'approved'
        assert charge['external_reference'] == '42'

    @patch('app.services.stripe_service.stripe.PaymentIntent.retrieve')
    def test_failed_pix_attempt_is_rejected(self, mock_retrieve, app, stripe_tenant):
        mock_retrieve.return_value = {
            'id': 'pi_123',
            'status': 'requires_payment_method',
            'last_payment_error': {'code': 'payment_intent_payment_attempt_failed'},
            'metadata': {'appointment_id': '42'},
        }

        charge = StripePixService(stripe_tenant.id).get_charge('pi_123')

        assert charge['status'] == 'rejected'
        assert charge['raw_status'] == 'requires_payment_method'

    @patch('app.services.stripe_service.stripe.PaymentIntent.retrieve')
    def test_unattempted_intent_stays_pending(self, mock_retrieve, app, stripe_tenant):
        mock_retrieve.return_value = {
            'id': 'pi_123', 'status': 'requires_payment_method', 'last_payment_error': None
        }

        assert StripePixService(stripe_tenant.id).get_charge('pi_123')['status'] == 'pending'

    @patch('app.services.stripe_service.stripe.Refund.create')
    def test_refund(self, mock_refund, app, stripe_tenant):
        mock_refund.return_value = {'id': 're_1', 'status': 'succeeded'}

        result = StripePixService(stripe_tenant.id).refund('pi_123', Decimal('25.00'), 'refund-42')

        assert result == {'refund_id': 're_1', 'status': 'succeeded'}
        kwargs = mock_refund.call_args[1]
        assert kwargs['payment_intent'] == 'pi_123'
        assert kwargs['amount'] == 2500
        assert kwargs['idempotency_key'] == 'refund-42'


class TestWhatsAppService:
    """Tests for the WUZAPI client."""

    def check_ok(self, phone='5511999990000', exists=True):
        return mock_response(200, {
            'success': True,
            'data': {'Users': [{'IsInWhatsapp': exists, 'JID': f'{phone}@s.whatsapp.net'}]},
        })

    def test_clean_phone(self):
        assert WhatsAppService.clean_phone('+55 (11) 99999-0000') == '5511999990000'
        assert WhatsAppService.clean_phone(None) == ''

    def test_disabled_without_settings(self, app, other_tenant):
        service = WhatsAppService(other_tenant.id)

        assert service.is_enabled() is False
        assert service.send_text('5511999990000', 'Olá')['success'] is False

    @patch('app.services.whatsapp_service.requests.post')
    def test_send_text(self, mock_post, app, sample_tenant):
        mock_post.side_effect = [self.check_ok(), mock_response(200, {'success': True})]

        result = WhatsAppService(sample_tenant.id).send_text('+55 11 99999-0000', 'Olá')

        assert result['success'] is True
        check_call, send_call = mock_post.call_args_list
        assert check_call[0][0] == 'https://whatsapp.test/user/check'
        assert check_call[1]['json'] == {'Phone': ['5511999990000']}
        assert send_call[0][0] == 'https://whatsapp.test/chat/send/text'
        assert send_call[1]['json'] == {'Phone': '5511999990000', 'Body': 'Olá'}
        assert send_call[1]['headers']['Token'] == 'wuz-token'

    @patch('app.services.whatsapp_service.requests.post')
    def test_number_without_whatsapp(self, mock_post, app, sample_tenant):
        mock_post.return_value = self.check_ok(exists=False)

        result = WhatsAppService(sample_tenant.id).send_text('5511999990000', 'Olá')

        assert result['success'] is False
        assert mock_post.call_count == 1

    @patch('app.services.whatsapp_service.requests.post')
    def test_transport_error_never_raises(self, mock_post, app, sample_tenant):
        mock_post.side_effect = requests.exceptions.ConnectionError('refused')

        result = WhatsAppService(sample_tenant.id).send_text('5511999990000', 'Olá')

        assert result['success'] is False

    @patch('app.services.whatsapp_service.requests.post')
    def test_send_template_renders_code(self, mock_post, app, sample_tenant):
        mock_post.side_effect = [self.check_ok(), mock_response(200)]

        result = WhatsAppService(sample_tenant.id).send_template(
            'payment_confirmed',
            '5511999990000',
            client_name='Carlos',
            scheduled_at='15/01/2024 10:00',
            confirmation_code='0427',
        )

        assert result['success'] is True
        body = mock_post.call_args_list[1][1]['json']['Body']
        assert '0427' in body
        assert 'Barbearia do Zé' in body

    def test_template_missing_value(self, app, sample_tenant):
        result = WhatsAppService(sample_tenant.id).send_template('redemption_code', '5511999990000')

        assert result['success'] is False


class TestNotificationService:

    def test_create_list_and_mark_read(self, app, sample_tenant):
        service = NotificationService(sample_tenant.id)
        first = service.create('payment_confirmed', 'Pagamento confirmado')
        service.create('refund_processed', 'Reembolso processado')

        assert len(service.list_notifications()) == 2

        service.mark_read(first.id)

        unread = service.list_notifications(unread_only=True)
        assert [n['type'] for n in unread] == ['refund_processed']

    def test_other_tenant_cannot_mark_read(self, app, sample_tenant, other_tenant):
        notification = NotificationService(sample_tenant.id).create('payment_expired', 'Pagamento expirado')

        with pytest.raises(NotFoundError):
            NotificationService(other_tenant.id).mark_read(notification.id)

    def test_unknown_type_rejected(self, app, sample_tenant):
        with pytest.raises(ValueError):
            NotificationService(sample_tenant.id).create('birthday', 'Parabéns')
