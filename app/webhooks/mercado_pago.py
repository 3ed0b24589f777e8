"""
Mercado Pago webhook endpoint.
Receives payment notifications and re-syncs the matching appointment.

When MERCADO_PAGO_WEBHOOK_SECRET is configured, the x-signature header is
verified (HMAC-SHA256 over "id:{data.id};request-id:{x-request-id};ts:{ts};").
"""
import hashlib
import hmac

from flask import Blueprint, request, jsonify, current_app

from ..services.payment_service import PaymentService, find_appointment_by_charge
from ..utils.errors import ErrorCode, error_response

mercado_pago_webhook_bp = Blueprint('mercado_pago_webhook', __name__)


def parse_signature_header(header: str) -> dict:
    """'ts=1704908010,v1=abc...' -> {'ts': '1704908010', 'v1': 'abc...'}"""
    parts = {}
    for item in (header or '').split(','):
        key, sep, value = item.strip().partition('=')
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_signature(secret: str, signature_header: str, request_id: str, data_id: str) -> bool:
    parts = parse_signature_header(signature_header)
    ts, received = parts.get('ts'), parts.get('v1')
    if not ts or not received:
        return False

    manifest = f'id:{data_id};request-id:{request_id or ""};ts:{ts};'
    expected = hmac.new(secret.encode('utf-8'), manifest.encode('utf-8'), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


@mercado_pago_webhook_bp.route('', methods=['POST'])
def handle_mercado_pago_webhook():
    """
    Handle a Mercado Pago notification.

    Only 'payment' notifications are processed; everything else is
    acknowledged so Mercado Pago stops retrying.
    """
    payload = request.get_json(silent=True) or {}
    topic = payload.get('type') or request.args.get('type') or request.args.get('topic')
    data_id = (payload.get('data') or {}).get('id') or request.args.get('data.id') or request.args.get('id')

    secret = current_app.config.get('MERCADO_PAGO_WEBHOOK_SECRET')
    if secret:
        if not verify_signature(
            secret,
            request.headers.get('x-signature', ''),
            request.headers.get('x-request-id', ''),
            str(data_id or '')
        ):
            return error_response('Invalid webhook signature', ErrorCode.INVALID_SIGNATURE, 401)

    if topic != 'payment' or not data_id:
        return jsonify({'handled': False, 'reason': 'ignored notification'})

    appointment = find_appointment_by_charge(str(data_id))
    if not appointment:
        current_app.logger.info(f"[Mercado Pago Webhook] no appointment for payment {data_id}")
        return jsonify({'handled': False, 'reason': 'unknown payment'})

    result = PaymentService(appointment.tenant_id).sync_payment(appointment.id)
    current_app.logger.info(
        f"[Mercado Pago Webhook] payment {data_id}: {result['payment_status']} "
        f"(appointment {appointment.id}, changed={result['changed']})"
    )

    return jsonify({
        'handled': True,
        'appointment_id': appointment.id,
        'payment_status': result['payment_status'],
        'changed': result['changed'],
    })
