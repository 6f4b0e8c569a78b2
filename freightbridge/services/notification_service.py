"""
Notification Service - Create and dispatch user notifications
"""
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional, List, Iterable
from datetime import datetime
import logging

from freightbridge.core.config import settings
from freightbridge.db.models import Notification
from freightbridge.services.notification_queue import notification_queue

logger = logging.getLogger(__name__)


class NotificationType:
    """Notification type constants"""
    WINNER_SELECTED = "winner_selected"
    BID_SELECTED = "bid_selected"
    BID_REJECTED = "bid_rejected"
    BOOKING_CONFIRMED = "booking_confirmed"
    DRAFT_BL_UPLOADED = "draft_bl_uploaded"
    FINAL_BL_UPLOADED = "final_bl_uploaded"
    BL_APPROVED = "bl_approved"
    AMENDMENT_REQUESTED = "amendment_requested"
    AMENDMENT_PUSHED = "amendment_pushed"
    AMENDMENT_DECIDED = "amendment_decided"
    INVOICE_PAID = "invoice_paid"
    TRACKING_UPDATED = "tracking_updated"


def create_notification(
    db: Session,
    user_id: UUID,
    notification_type: str,
    title: str,
    message: str,
    related_shipment_id: Optional[UUID] = None,
    related_amendment_id: Optional[UUID] = None,
) -> Notification:
    """
    Add a notification to the current transaction.

    The caller commits together with the change the notification is about and
    then hands the rows to ``queue_delivery``.
    """
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        related_shipment_id=related_shipment_id,
        related_amendment_id=related_amendment_id,
    )
    db.add(notification)
    return notification


def queue_delivery(notifications: Iterable[Notification]):
    """Hand committed notifications to the delivery worker; failures are logged only"""
    for notification in notifications:
        if not settings.NOTIFICATION_QUEUE_ENABLED:
            logger.debug(f"Notification {notification.id} stored; delivery queue disabled")
            continue
        try:
            job = notification_queue.enqueue(
                "freightbridge.services.notification_worker.deliver_notification",
                notification_id=str(notification.id),
            )
            logger.info(f"Queued delivery for notification {notification.id}: job {job.id}")
        except Exception as e:
            logger.error(f"Failed to queue notification {notification.id}: {str(e)}")


def list_for_user(db: Session, user_id: UUID, unread_only: bool = False):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc())


def mark_read(db: Session, user_id: UUID, notification_ids: List[UUID]) -> int:
    """Mark the user's own notifications read; returns how many changed"""
    updated = (
        db.query(Notification)
        .filter(
            Notification.id.in_(notification_ids),
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated
