"""
Notifications API Endpoints

Admin notifications panel.
"""
from flask import Blueprint, request, jsonify, g

from ..middleware.tenant_auth import require_tenant
from ..services.notification_service import NotificationService

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('', methods=['GET'])
@require_tenant
def list_notifications():
    """List notifications, newest first (?unread=true to filter)."""
    unread_only = request.args.get('unread', '').lower() in ('1', 'true', 'yes')
    limit = min(request.args.get('limit', 50, type=int), 200)

    notifications = NotificationService(g.tenant_id).list_notifications(
        unread_only=unread_only,
        limit=limit
    )
    return jsonify({
        'success': True,
        'notifications': notifications,
        'unread_count': sum(1 for n in notifications if not n['read']),
    })


@notifications_bp.route('/<int:notification_id>/read', methods=['POST'])
@require_tenant
def mark_read(notification_id):
    notification = NotificationService(g.tenant_id).mark_read(notification_id)
    return jsonify({'success': True, 'notification': notification})
