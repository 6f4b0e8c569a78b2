from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from freightbridge.core.deps import get_current_user, get_db
from freightbridge.schemas.notification import NotificationOut, NotificationMarkRead
from freightbridge.services import notification_service
from freightbridge.utils.pagination import PaginationParams, create_paginated_response, paginate_query
from freightbridge.utils.permissions import CurrentUser

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    pagination: PaginationParams = Depends(),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    unread_only: bool = False
):
    """
    Get all notifications for the current user with pagination
    Optionally filter for unread notifications only.
    """
    query = notification_service.list_for_user(db, current_user.id, unread_only=unread_only)
    items, total = paginate_query(query, pagination.skip, pagination.limit)
    return create_paginated_response(items, total, pagination.skip, pagination.limit, schema=NotificationOut)


@router.post("/mark-read")
def mark_notifications_read(
    payload: NotificationMarkRead,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Mark one or more notifications as read"""
    count = notification_service.mark_read(db, current_user.id, payload.notification_ids)
    return {
        "message": f"Marked {count} notification(s) as read",
        "count": count
    }
