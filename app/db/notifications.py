"""Database operations for notifications table."""

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def create_notification(
    user_id: str,
    type: str,
    title: str,
    description: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict | None = None,
) -> dict:
    """Persist a published notification."""
    supabase = get_supabase()
    row: dict = {
        "user_id": user_id,
        "type": type,
        "title": title,
    }
    if description:
        row["description"] = description
    if entity_type:
        row["entity_type"] = entity_type
    if entity_id:
        row["entity_id"] = entity_id
    if metadata:
        row["metadata"] = metadata

    result = supabase.table("notifications").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from notification insert")
    return result.data[0]


def list_notifications(
    user_id: str,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[dict]:
    """List notifications for a user, newest first."""
    supabase = get_supabase()
    query = (
        supabase.table("notifications")
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
    )
    if unread_only:
        query = query.eq("is_read", False)
    result = query.execute()
    return result.data or []


def mark_notification_read(notification_id: str) -> None:
    """Mark a single notification as read."""
    supabase = get_supabase()
    supabase.table("notifications").update({"is_read": True}).eq("id", notification_id).execute()
