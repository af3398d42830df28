"""Database operations for conversations and messages tables."""

from datetime import datetime, timezone

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def create_conversation(
    title: str,
    category: str = "general",
    visitor_id: str | None = None,
) -> dict:
    """
    Create a conversation.

    Returns:
        Created conversation row

    Raises:
        ValueError: If the insert returns no data
    """
    supabase = get_supabase()
    row = {"title": title, "category": category}
    if visitor_id:
        row["visitor_id"] = visitor_id

    result = supabase.table("conversations").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from conversation insert")
    logger.info(f"Created conversation {result.data[0]['id']}")
    return result.data[0]


def get_conversation(conversation_id: str) -> dict | None:
    """Get a conversation row, or None when it does not exist."""
    supabase = get_supabase()
    result = (
        supabase.table("conversations")
        .select("*")
        .eq("id", conversation_id)
        .maybe_single()
        .execute()
    )
    return result.data if result else None


def list_messages(conversation_id: str) -> list[dict]:
    """Messages of a conversation in insertion order."""
    supabase = get_supabase()
    result = (
        supabase.table("messages")
        .select("*")
        .eq("conversation_id", conversation_id)
        .order("created_at")
        .execute()
    )
    return result.data or []


def insert_message(
    conversation_id: str,
    role: str,
    content: str,
    metadata: dict | None = None,
) -> dict:
    """
    Append a message and bump the conversation's updated_at.

    Raises:
        ValueError: If the insert returns no data
    """
    supabase = get_supabase()
    row = {
        "conversation_id": conversation_id,
        "role": role,
        "content": content,
        "metadata": metadata,
    }
    result = supabase.table("messages").insert(row).execute()
    if not result.data:
        raise ValueError("No data returned from message insert")

    supabase.table("conversations").update(
        {"updated_at": datetime.now(timezone.utc).isoformat()}
    ).eq("id", conversation_id).execute()
    return result.data[0]


def update_conversation_category(conversation_id: str, category: str) -> dict | None:
    """Set a conversation's category. Returns the updated row, or None when missing."""
    supabase = get_supabase()
    result = (
        supabase.table("conversations")
        .update({"category": category, "updated_at": datetime.now(timezone.utc).isoformat()})
        .eq("id", conversation_id)
        .execute()
    )
    return result.data[0] if result.data else None
