"""
Loyalty API Endpoints

Program configuration, rewards catalog, client balances and redemptions.
"""
from flask import Blueprint, request, jsonify, g

from ..middleware.tenant_auth import require_tenant
from ..services.loyalty_service import LoyaltyService
from ..utils.errors import bad_request

loyalty_bp = Blueprint('loyalty', __name__)


def get_service() -> LoyaltyService:
    """Get loyalty service for current tenant."""
    return LoyaltyService(g.tenant_id)


# ==================== Configuration ====================

@loyalty_bp.route('/config', methods=['GET'])
@require_tenant
def get_config():
    return jsonify({'success': True, 'config': get_service().get_config()})


@loyalty_bp.route('/config', methods=['PUT'])
@require_tenant
def save_config():
    data = request.get_json(silent=True)
    if not data:
        return bad_request('No data provided')

    config = get_service().save_config(data)
    return jsonify({'success': True, 'config': config})


# ==================== Rewards ====================

@loyalty_bp.route('/rewards', methods=['GET'])
@require_tenant
def list_rewards():
    """List rewards; ?active=true for the client-facing catalog."""
    active_only = request.args.get('active', '').lower() in ('1', 'true', 'yes')
    return jsonify({'success': True, 'rewards': get_service().list_rewards(active_only=active_only)})


@loyalty_bp.route('/rewards', methods=['POST'])
@require_tenant
def create_reward():
    data = request.get_json(silent=True)
    if not data:
        return bad_request('No data provided')

    reward = get_service().create_reward(data)
    return jsonify({'success': True, 'reward': reward}), 201


@loyalty_bp.route('/rewards/<int:reward_id>', methods=['PUT'])
@require_tenant
def update_reward(reward_id):
    data = request.get_json(silent=True)
    if not data:
        return bad_request('No data provided')

    reward = get_service().update_reward(reward_id, data)
    return jsonify({'success': True, 'reward': reward})


@loyalty_bp.route('/rewards/<int:reward_id>', methods=['DELETE'])
@require_tenant
def deactivate_reward(reward_id):
    """Rewards are deactivated, never deleted."""
    reward = get_service().deactivate_reward(reward_id)
    return jsonify({'success': True, 'reward': reward})


# ==================== Balances ====================

@loyalty_bp.route('/balance', methods=['GET'])
@require_tenant
def get_balance():
    phone = request.args.get('phone')
    if not phone:
        return bad_request('phone is required')

    return jsonify({'success': True, 'balance': get_service().get_balance(phone)})


@loyalty_bp.route('/clients', methods=['GET'])
@require_tenant
def list_clients():
    """Clients with balances and completed visits, for the dashboard."""
    return jsonify({'success': True, 'clients': get_service().list_clients()})


@loyalty_bp.route('/points', methods=['POST'])
@require_tenant
def credit_points():
    """Manual credit by the shop: {phone, points, reason}."""
    data = request.get_json(silent=True) or {}
    if not data.get('phone') or data.get('points') in (None, ''):
        return bad_request('phone and points are required')

    balance = get_service().credit_points(data['phone'], data['points'], reason=data.get('reason'))
    return jsonify({'success': True, 'balance': balance})


# ==================== Redemptions ====================

@loyalty_bp.route('/redemptions', methods=['GET'])
@require_tenant
def list_redemptions():
    redemptions = get_service().list_redemptions(status=request.args.get('status'))
    return jsonify({'success': True, 'redemptions': redemptions})


@loyalty_bp.route('/redemptions', methods=['POST'])
@require_tenant
def issue_redemption():
    """
    Request a reward. The client is given by client_id (dashboard) or by
    phone (client's own points page).
    """
    data = request.get_json(silent=True) or {}
    if not (data.get('client_id') or data.get('phone')) or not data.get('reward_id'):
        return bad_request('client_id or phone, and reward_id, are required')

    try:
        reward_id = int(data['reward_id'])
        client_id = int(data['client_id']) if data.get('client_id') else None
    except (TypeError, ValueError):
        return bad_request('client_id and reward_id must be integers')

    service = get_service()
    if client_id is None:
        client_id = service.get_client_by_phone(str(data['phone'])).id

    result = service.issue_redemption(client_id, reward_id)
    return jsonify(dict(result, success=True)), 201


@loyalty_bp.route('/redemptions/<int:redemption_id>/validate', methods=['POST'])
@require_tenant
def validate_redemption(redemption_id):
    data = request.get_json(silent=True) or {}
    if not data.get('code'):
        return bad_request('code is required')

    result = get_service().validate_redemption(redemption_id, data['code'])
    return jsonify(dict(result, success=True))


@loyalty_bp.route('/redemptions/<int:redemption_id>/cancel', methods=['POST'])
@require_tenant
def cancel_redemption(redemption_id):
    redemption = get_service().cancel_redemption(redemption_id)
    return jsonify({'success': True, 'redemption': redemption})
