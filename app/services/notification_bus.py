"""In-process publish/subscribe bus for user notifications."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable

from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class NotificationType(str, Enum):
    APPROVAL_PENDING = "approval_pending"
    APPROVAL_DECIDED = "approval_decided"
    RISK_ALERT = "risk_alert"
    RESEARCH_COMPLETE = "research_complete"
    RESEARCH_FAILED = "research_failed"
    CREDITS_LOW = "credits_low"


class Notification(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: NotificationType
    user_id: str
    title: str
    body: str | None = None
    created_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    is_read: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


Handler = Callable[[Notification], None]


class NotificationBus:
    """
    Fan out notifications to subscribers in subscription order.

    A failing handler is logged and skipped; it never stops delivery to the
    remaining subscribers or reaches the publisher. When ``persist`` is set,
    every published notification is also written to the notifications table.
    """

    def __init__(self, persist: bool = False):
        self._persist = persist
        self._subscribers: list[tuple[int, NotificationType | None, Handler]] = []
        self._next_token = 0

    def subscribe(self, type: NotificationType | None, handler: Handler) -> Callable[[], None]:
        """Subscribe to one type, or to everything with ``None``. Returns an unsubscribe callable."""
        token = self._next_token
        self._next_token += 1
        self._subscribers.append((token, type, handler))

        def unsubscribe() -> None:
            self._subscribers = [s for s in self._subscribers if s[0] != token]

        return unsubscribe

    def publish(self, notification: Notification) -> int:
        """Deliver a notification. Returns how many handlers ran without error."""
        delivered = 0
        for _, type, handler in list(self._subscribers):
            if type is not None and type != notification.type:
                continue
            try:
                handler(notification)
                delivered += 1
            except Exception:
                logger.exception(
                    f"Notification handler failed for {notification.type.value}",
                    extra={"extra_data": {"notification_id": notification.id}},
                )

        if self._persist:
            self._store(notification)
        return delivered

    def _store(self, notification: Notification) -> None:
        from app.db.notifications import create_notification

        try:
            create_notification(
                user_id=notification.user_id,
                type=notification.type.value,
                title=notification.title,
                description=notification.body,
                entity_type=notification.metadata.get("entity_type"),
                entity_id=notification.metadata.get("entity_id"),
                metadata=notification.metadata,
            )
        except Exception as e:
            logger.warning(f"Failed to persist notification {notification.id}: {e}")


@lru_cache(maxsize=1)
def get_notification_bus() -> NotificationBus:
    """Process-wide bus. Persists to Supabase unless the memory backend is configured."""
    return NotificationBus(persist=get_settings().CONVERSATION_STORE_BACKEND != "memory")
