"""
Stripe webhook endpoint.
Handles PIX PaymentIntent events from Stripe.
"""
import stripe
from flask import Blueprint, request, jsonify, current_app

from ..services.payment_service import PaymentService, find_appointment_by_charge
from ..services.stripe_service import StripePixService
from ..utils.errors import ErrorCode, bad_request, error_response

stripe_webhook_bp = Blueprint('stripe_webhook', __name__)

HANDLED_EVENTS = {
    'payment_intent.succeeded',
    'payment_intent.payment_failed',
    'payment_intent.canceled',
    'payment_intent.processing',
}


@stripe_webhook_bp.route('', methods=['POST'])
def handle_stripe_webhook():
    """
    Handle incoming Stripe webhook events.

    Stripe sends events for:
    - payment_intent.succeeded (PIX paid)
    - payment_intent.payment_failed
    - payment_intent.canceled (PIX expired)
    """
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')
    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')

    if not webhook_secret:
        return error_response('Webhook secret not configured', ErrorCode.INTERNAL_ERROR, 500)

    if not sig_header:
        return bad_request('Missing Stripe-Signature header')

    # Verify and construct the event
    try:
        event = StripePixService.construct_webhook_event(
            payload, sig_header, webhook_secret
        )
    except (ValueError, stripe.SignatureVerificationError) as e:
        return error_response(
            f'Webhook signature verification failed: {e}', ErrorCode.INVALID_SIGNATURE, 400
        )

    event_type = event['type']
    if event_type not in HANDLED_EVENTS:
        return jsonify({'handled': False, 'event_type': event_type})

    intent_id = event['data']['object']['id']
    appointment = find_appointment_by_charge(intent_id)
    if not appointment:
        current_app.logger.info(f"[Stripe Webhook] {event_type}: no appointment for {intent_id}")
        return jsonify({'handled': False, 'event_type': event_type, 'reason': 'unknown payment'})

    result = PaymentService(appointment.tenant_id).sync_payment(appointment.id)
    current_app.logger.info(
        f"[Stripe Webhook] {event_type}: appointment {appointment.id} "
        f"{result['payment_status']} (changed={result['changed']})"
    )

    return jsonify({
        'handled': True,
        'event_type': event_type,
        'appointment_id': appointment.id,
        'payment_status': result['payment_status'],
        'changed': result['changed'],
    })
