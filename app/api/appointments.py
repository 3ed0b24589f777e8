"""
Appointments API Endpoints

Booking, check-in, late arrivals, status changes and PIX prepayments.
Business errors raised by the services are rendered by the app error handler.
"""
from datetime import datetime

from flask import Blueprint, request, jsonify, g

from ..middleware.tenant_auth import require_tenant
from ..services.appointment_service import AppointmentService, CHECK_IN_COMPLETED
from ..services.payment_service import PaymentService
from ..utils.errors import bad_request

appointments_bp = Blueprint('appointments', __name__)


@appointments_bp.route('', methods=['GET'])
@require_tenant
def list_appointments():
    """List appointments of a day (?date=YYYY-MM-DD) and optional ?status=."""
    day = None
    if request.args.get('date'):
        try:
            day = datetime.strptime(request.args['date'], '%Y-%m-%d').date()
        except ValueError:
            return bad_request('date must be YYYY-MM-DD')

    appointments = AppointmentService(g.tenant_id).list_appointments(
        day=day,
        status=request.args.get('status')
    )
    return jsonify({'success': True, 'appointments': appointments})


@appointments_bp.route('', methods=['POST'])
@require_tenant
def create_appointment():
    """Book an appointment from the booking page or the dashboard."""
    data = request.get_json(silent=True)
    if not data:
        return bad_request('No data provided')

    appointment = AppointmentService(g.tenant_id).create_appointment(
        data,
        created_by_admin=bool(data.get('created_by_admin'))
    )
    return jsonify({'success': True, 'appointment': appointment}), 201


@appointments_bp.route('/<int:appointment_id>', methods=['GET'])
@require_tenant
def get_appointment(appointment_id):
    appointment = AppointmentService(g.tenant_id).get_appointment(appointment_id)
    return jsonify({'success': True, 'appointment': appointment})


@appointments_bp.route('/<int:appointment_id>/check-in', methods=['POST'])
@require_tenant
def check_in(appointment_id):
    """
    Validate the client's confirmation code.

    Responds with outcome 'completed' or 'tolerance_expired'; the latter
    expects a follow-up POST to /late-arrival.
    """
    data = request.get_json(silent=True) or {}
    if not data.get('code'):
        return bad_request('code is required')

    result = AppointmentService(g.tenant_id).validate_check_in(appointment_id, data['code'])
    status_code = 200 if result['outcome'] == CHECK_IN_COMPLETED else 202
    return jsonify(dict(result, success=True)), status_code


@appointments_bp.route('/<int:appointment_id>/late-arrival', methods=['POST'])
@require_tenant
def late_arrival(appointment_id):
    """Apply the decision for a late client: waiting, no_show or completed."""
    data = request.get_json(silent=True) or {}
    if not data.get('decision'):
        return bad_request('decision is required')

    result = AppointmentService(g.tenant_id).resolve_late_arrival(appointment_id, data['decision'])
    return jsonify(dict(result, success=True))


@appointments_bp.route('/<int:appointment_id>/status', methods=['PATCH'])
@require_tenant
def update_status(appointment_id):
    data = request.get_json(silent=True) or {}
    if not data.get('status'):
        return bad_request('status is required')

    result = AppointmentService(g.tenant_id).update_status(appointment_id, data['status'])
    return jsonify(dict(result, success=True))


@appointments_bp.route('/<int:appointment_id>/payment', methods=['POST'])
@require_tenant
def request_payment(appointment_id):
    """Create the PIX charge for an online booking."""
    payment = PaymentService(g.tenant_id).request_prepayment(appointment_id)
    return jsonify({'success': True, 'payment': payment}), 201


@appointments_bp.route('/<int:appointment_id>/payment/sync', methods=['POST'])
@require_tenant
def sync_payment(appointment_id):
    """Polled by the booking page while the PIX dialog is open."""
    result = PaymentService(g.tenant_id).sync_payment(appointment_id)
    return jsonify(dict(result, success=True))


@appointments_bp.route('/<int:appointment_id>/refund', methods=['POST'])
@require_tenant
def refund(appointment_id):
    data = request.get_json(silent=True) or {}
    if not data.get('charge_id'):
        return bad_request('charge_id is required')

    result = PaymentService(g.tenant_id).refund(
        str(data['charge_id']),
        appointment_id,
        reason=data.get('reason')
    )
    return jsonify(dict(result, success=True))
