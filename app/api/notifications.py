"""Notification API: in-app notifications for the current visitor."""

from fastapi import APIRouter, Depends

from app.core.auth_middleware import VisitorContext, get_visitor, require_visitor
from app.db.notifications import (
    list_notifications as db_list_notifications,
    mark_notification_read as db_mark_notification_read,
)

router = APIRouter()


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
    visitor: VisitorContext = Depends(get_visitor),
) -> list[dict]:
    """List persisted notifications for the current visitor, newest first."""
    return db_list_notifications(
        user_id=visitor.user_id,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )


@router.patch("/{notification_id}/read", dependencies=[Depends(require_visitor)])
async def mark_read(notification_id: str) -> dict:
    """Mark a single notification as read."""
    db_mark_notification_read(notification_id)
    return {"ok": True}
