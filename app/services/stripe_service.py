"""
Stripe integration for PIX prepayments.
Charges are PaymentIntents confirmed with the pix payment method; refunds go
through the Refunds API. Webhook events are verified with the signing secret.
"""
from decimal import Decimal
from typing import Any, Dict

import stripe
from flask import current_app

from ..utils.exceptions import ConfigurationError, GatewayError
from .payment_gateway import ChargeStatus, PaymentGateway, PaymentProvider


STATUS_MAP = {
    'succeeded': ChargeStatus.APPROVED,
    'processing': ChargeStatus.IN_PROCESS,
    'requires_payment_method': ChargeStatus.PENDING,
    'requires_confirmation': ChargeStatus.PENDING,
    'requires_action': ChargeStatus.PENDING,
    'requires_capture': ChargeStatus.IN_PROCESS,
    'canceled': ChargeStatus.CANCELLED,
}


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal('1')))


def _field(obj, key):
    """Optional field of a Stripe object."""
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def charge_status(intent) -> ChargeStatus:
    """
    Normalised status of a PaymentIntent.

    A failed PIX attempt leaves the intent in requires_payment_method with
    last_payment_error set, which counts as rejected.
    """
    if intent['status'] == 'requires_payment_method' and _field(intent, 'last_payment_error'):
        return ChargeStatus.REJECTED
    return STATUS_MAP.get(intent['status'], ChargeStatus.PENDING)


class StripePixService(PaymentGateway):
    """Stripe adapter for PIX charges."""

    provider = PaymentProvider.STRIPE.value

    @property
    def api_key(self) -> str:
        key = self.settings.get('secret_key') or current_app.config.get('STRIPE_SECRET_KEY')
        if not key:
            raise ConfigurationError("Stripe secret key not configured")
        return key

    def create_charge(
        self,
        amount: Decimal,
        description: str,
        idempotency_key: str,
        payer_name: str = None,
        payer_contact: str = None,
        external_reference: str = None,
    ) -> Dict[str, Any]:
        """
        Create and confirm a PIX PaymentIntent.

        Returns:
            Dict with charge_id (pi_xxxxx), status and the PIX QR artifacts
        """
        metadata = {'tenant_id': str(self.tenant_id)}
        if external_reference:
            metadata['appointment_id'] = str(external_reference)

        try:
            intent = stripe.PaymentIntent.create(
                amount=to_cents(amount),
                currency='brl',
                description=description,
                payment_method_types=['pix'],
                payment_method_data={'type': 'pix'},
                confirm=True,
                metadata=metadata,
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe PIX charge failed for tenant {self.tenant_id}: {e}")
            raise GatewayError(f"Stripe error: {e}", original_error=e)

        qr = _field(_field(intent, 'next_action'), 'pix_display_qr_code') or {}
        current_app.logger.info(
            f"Stripe charge {intent['id']} created for tenant {self.tenant_id} (ref {external_reference})"
        )
        return {
            'charge_id': intent['id'],
            'status': charge_status(intent).value,
            'qr_code': _field(qr, 'data'),
            'qr_code_base64': None,
            'qr_code_image_url': _field(qr, 'image_url_png'),
            'ticket_url': _field(qr, 'hosted_instructions_url'),
        }

    def get_charge(self, charge_id: str) -> Dict[str, Any]:
        try:
            intent = stripe.PaymentIntent.retrieve(charge_id, api_key=self.api_key)
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe retrieve {charge_id} failed: {e}")
            raise GatewayError(f"Stripe error: {e}", original_error=e)

        return {
            'charge_id': intent['id'],
            'status': charge_status(intent).value,
            'raw_status': intent['status'],
            'external_reference': _field(_field(intent, 'metadata'), 'appointment_id'),
        }

    def refund(self, charge_id: str, amount: Decimal, idempotency_key: str) -> Dict[str, Any]:
        try:
            refund = stripe.Refund.create(
                payment_intent=charge_id,
                amount=to_cents(amount),
                idempotency_key=idempotency_key,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            current_app.logger.error(f"Stripe refund for {charge_id} failed: {e}")
            raise GatewayError(f"Stripe error: {e}", original_error=e)

        current_app.logger.info(f"Stripe refund {refund['id']} issued for charge {charge_id}")
        return {
            'refund_id': refund['id'],
            'status': refund['status'],
        }

    @staticmethod
    def construct_webhook_event(payload: bytes, sig_header: str, webhook_secret: str):
        """
        Construct and verify a Stripe webhook event.

        Raises:
            stripe.SignatureVerificationError: If signature invalid
        """
        return stripe.Webhook.construct_event(
            payload, sig_header, webhook_secret
        )
