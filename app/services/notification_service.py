"""
Notification Service for BarberBook.

Feeds the shop owner's notifications panel:
- Payment confirmed (PIX approved)
- Appointment cancelled (payment rejected)
- Payment expired (PIX not paid within the hold window)
- Refund processed

Client-facing messages go through WhatsAppService; these are admin-only.
"""
from typing import Any, Dict, List

from flask import current_app

from ..extensions import db
from ..models.notification import Notification, NotificationType
from ..utils.exceptions import NotFoundError


class NotificationService:
    """
    Admin notifications for one tenant.

    Usage:
        service = NotificationService(tenant_id)
        service.create(NotificationType.REFUND_PROCESSED, 'Reembolso processado', appointment_id=42)
    """

    def __init__(self, tenant_id: int):
        self.tenant_id = tenant_id

    def create(
        self,
        notification_type: NotificationType,
        title: str,
        message: str = None,
        appointment_id: int = None,
        commit: bool = True
    ) -> Notification:
        """
        Record a notification.

        With commit=False the row joins the caller's transaction.
        """
        notification = Notification(
            tenant_id=self.tenant_id,
            appointment_id=appointment_id,
            type=NotificationType(notification_type).value,
            title=title,
            message=message,
        )
        db.session.add(notification)
        if commit:
            db.session.commit()

        current_app.logger.debug(
            f"Notification '{notification.type}' recorded for tenant {self.tenant_id}"
        )
        return notification

    def list_notifications(self, unread_only: bool = False, limit: int = 50) -> List[Dict[str, Any]]:
        query = Notification.query.filter_by(tenant_id=self.tenant_id)
        if unread_only:
            query = query.filter_by(read=False)
        notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
        return [n.to_dict() for n in notifications]

    def mark_read(self, notification_id: int) -> Dict[str, Any]:
        notification = Notification.query.filter_by(
            id=notification_id,
            tenant_id=self.tenant_id
        ).first()
        if not notification:
            raise NotFoundError('Notification', notification_id)

        notification.read = True
        db.session.commit()
        return notification.to_dict()
