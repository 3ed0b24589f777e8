"""
Mercado Pago PIX integration.

API Documentation: https://www.mercadopago.com.br/developers/en/reference

Creates PIX payments, reads their status and refunds them. The tenant's own
access token (settings.payments.access_token) is used when present, otherwise
the platform token from MERCADO_PAGO_ACCESS_TOKEN.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict

import requests
from flask import current_app

from ..utils.exceptions import ConfigurationError, GatewayError
from .payment_gateway import ChargeStatus, PaymentGateway, PaymentProvider


STATUS_MAP = {
    'pending': ChargeStatus.PENDING,
    'authorized': ChargeStatus.IN_PROCESS,
    'in_process': ChargeStatus.IN_PROCESS,
    'in_mediation': ChargeStatus.IN_PROCESS,
    'approved': ChargeStatus.APPROVED,
    'rejected': ChargeStatus.REJECTED,
    'cancelled': ChargeStatus.CANCELLED,
    'refunded': ChargeStatus.REFUNDED,
    'charged_back': ChargeStatus.REFUNDED,
}


def normalize_status(status: str) -> str:
    return STATUS_MAP.get(status, ChargeStatus.PENDING).value


class MercadoPagoService(PaymentGateway):
    """
    Mercado Pago adapter.

    Usage:
        gateway = MercadoPagoService(tenant_id)
        charge = gateway.create_charge(Decimal('25.00'), 'Corte', 'charge-42')
        gateway.get_charge(charge['charge_id'])
    """

    provider = PaymentProvider.MERCADO_PAGO.value

    @property
    def base_url(self) -> str:
        return current_app.config.get('MERCADO_PAGO_API_URL', 'https://api.mercadopago.com')

    @property
    def access_token(self) -> str:
        token = self.settings.get('access_token') or current_app.config.get('MERCADO_PAGO_ACCESS_TOKEN')
        if not token:
            raise ConfigurationError("Mercado Pago access token not configured")
        return token

    def _get_headers(self, idempotency_key: str = None) -> Dict[str, str]:
        headers = {
            'Authorization': f'Bearer {self.access_token}',
            'Content-Type': 'application/json'
        }
        if idempotency_key:
            headers['X-Idempotency-Key'] = idempotency_key
        return headers

    def _request(self, method: str, path: str, idempotency_key: str = None, **kwargs) -> Dict[str, Any]:
        """Call the API; any transport error or non-2xx response raises GatewayError."""
        try:
            response = requests.request(
                method,
                f'{self.base_url}{path}',
                headers=self._get_headers(idempotency_key),
                timeout=15,
                **kwargs
            )
        except requests.exceptions.RequestException as e:
            current_app.logger.error(f"Mercado Pago {method} {path} failed: {e}")
            raise GatewayError(f"Mercado Pago unreachable: {e}", original_error=e)

        if response.status_code not in [200, 201]:
            current_app.logger.error(
                f"Mercado Pago {method} {path} returned {response.status_code}: {response.text}"
            )
            raise GatewayError(f"Mercado Pago error: {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise GatewayError("Mercado Pago returned an invalid response", original_error=e)

    def create_charge(
        self,
        amount: Decimal,
        description: str,
        idempotency_key: str,
        payer_name: str = None,
        payer_contact: str = None,
        external_reference: str = None,
    ) -> Dict[str, Any]:
        hold_minutes = current_app.config.get('PAYMENT_HOLD_MINUTES', 15)
        expires = datetime.utcnow() + timedelta(minutes=hold_minutes)

        payer = {}
        if payer_name:
            payer['first_name'] = payer_name
        if self.settings.get('payer_email'):
            payer['email'] = self.settings['payer_email']

        payload = {
            'transaction_amount': float(Decimal(str(amount)).quantize(Decimal('0.01'))),
            'description': description,
            'payment_method_id': 'pix',
            'date_of_expiration': expires.strftime('%Y-%m-%dT%H:%M:%S.000+00:00'),
            'payer': payer,
        }
        if external_reference:
            payload['external_reference'] = str(external_reference)

        data = self._request('POST', '/v1/payments', idempotency_key=idempotency_key, json=payload)

        transaction = (data.get('point_of_interaction') or {}).get('transaction_data') or {}
        current_app.logger.info(
            f"Mercado Pago charge {data.get('id')} created for tenant {self.tenant_id} "
            f"(ref {external_reference})"
        )
        return {
            'charge_id': str(data.get('id')),
            'status': normalize_status(data.get('status')),
            'qr_code': transaction.get('qr_code'),
            'qr_code_base64': transaction.get('qr_code_base64'),
            'ticket_url': transaction.get('ticket_url'),
        }

    def get_charge(self, charge_id: str) -> Dict[str, Any]:
        data = self._request('GET', f'/v1/payments/{charge_id}')
        return {
            'charge_id': str(data.get('id', charge_id)),
            'status': normalize_status(data.get('status')),
            'raw_status': data.get('status'),
            'external_reference': data.get('external_reference'),
        }

    def refund(self, charge_id: str, amount: Decimal, idempotency_key: str) -> Dict[str, Any]:
        data = self._request(
            'POST',
            f'/v1/payments/{charge_id}/refunds',
            idempotency_key=idempotency_key,
            json={'amount': float(Decimal(str(amount)).quantize(Decimal('0.01')))}
        )
        current_app.logger.info(f"Mercado Pago refund {data.get('id')} issued for charge {charge_id}")
        return {
            'refund_id': str(data.get('id')),
            'status': data.get('status'),
        }
