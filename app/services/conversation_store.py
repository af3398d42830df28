"""
Conversation store.

Append-only message log per conversation. Writes for one conversation are
serialized through a per-conversation asyncio.Lock; different conversations
never wait on each other. The backend is either Supabase (``app.db.conversations``)
or an in-process dict, chosen by ``CONVERSATION_STORE_BACKEND``.

A conversation's category is auto-labeled from the intent of its first
assistant message and never relabeled afterwards.
"""

import asyncio
import uuid
import weakref
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Protocol

from pydantic import BaseModel, Field

from app.core.config import get_settings
from app.core.domain import IntentCategory
from app.core.errors import (
    BadInputError,
    ConversationNotFoundError,
    EngineError,
    StoreUnavailableError,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ConversationCategory(str, Enum):
    GENERAL = "general"
    SUPPLIERS = "suppliers"
    RISK = "risk"
    RESEARCH = "research"


CATEGORY_BY_INTENT: dict[IntentCategory, ConversationCategory] = {
    IntentCategory.SUPPLIER_DEEP_DIVE: ConversationCategory.SUPPLIERS,
    IntentCategory.FILTERED_DISCOVERY: ConversationCategory.SUPPLIERS,
    IntentCategory.COMPARISON: ConversationCategory.SUPPLIERS,
    IntentCategory.PORTFOLIO_OVERVIEW: ConversationCategory.RISK,
    IntentCategory.TREND_DETECTION: ConversationCategory.RISK,
    IntentCategory.EXPLANATION_WHY: ConversationCategory.RISK,
    IntentCategory.RESTRICTED_QUERY: ConversationCategory.RISK,
    IntentCategory.MARKET_CONTEXT: ConversationCategory.RESEARCH,
}


def category_for_intent(intent: IntentCategory | str | None) -> ConversationCategory:
    if intent is None:
        return ConversationCategory.GENERAL
    try:
        intent = IntentCategory(intent)
    except ValueError:
        return ConversationCategory.GENERAL
    return CATEGORY_BY_INTENT.get(intent, ConversationCategory.GENERAL)


class Conversation(BaseModel):
    id: str
    visitor_id: str | None = None
    title: str
    category: str = ConversationCategory.GENERAL.value
    created_at: str
    updated_at: str | None = None


class ConversationMessage(BaseModel):
    id: str
    conversation_id: str
    role: MessageRole
    content: str
    metadata: dict[str, Any] | None = None
    created_at: str


class ConversationWithMessages(Conversation):
    messages: list[ConversationMessage] = Field(default_factory=list)


# ============================================================================
# Backends
# ============================================================================


class ConversationBackend(Protocol):
    def create_conversation(self, title: str, category: str, visitor_id: str | None) -> dict: ...

    def get_conversation(self, conversation_id: str) -> dict | None: ...

    def list_messages(self, conversation_id: str) -> list[dict]: ...

    def insert_message(
        self, conversation_id: str, role: str, content: str, metadata: dict | None
    ) -> dict: ...

    def update_conversation_category(self, conversation_id: str, category: str) -> dict | None: ...


class SupabaseConversationBackend:
    """Rows live in the ``conversations`` and ``messages`` tables."""

    def create_conversation(self, title: str, category: str, visitor_id: str | None) -> dict:
        from app.db.conversations import create_conversation

        return create_conversation(title, category=category, visitor_id=visitor_id)

    def get_conversation(self, conversation_id: str) -> dict | None:
        from app.db.conversations import get_conversation

        return get_conversation(conversation_id)

    def list_messages(self, conversation_id: str) -> list[dict]:
        from app.db.conversations import list_messages

        return list_messages(conversation_id)

    def insert_message(
        self, conversation_id: str, role: str, content: str, metadata: dict | None
    ) -> dict:
        from app.db.conversations import insert_message

        return insert_message(conversation_id, role, content, metadata)

    def update_conversation_category(self, conversation_id: str, category: str) -> dict | None:
        from app.db.conversations import update_conversation_category

        return update_conversation_category(conversation_id, category)


class MemoryConversationBackend:
    """Process-local rows. Lost on restart."""

    def __init__(self) -> None:
        self.conversations: dict[str, dict] = {}
        self.messages: dict[str, list[dict]] = {}

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def create_conversation(self, title: str, category: str, visitor_id: str | None) -> dict:
        now = self._now()
        row = {
            "id": str(uuid.uuid4()),
            "visitor_id": visitor_id,
            "title": title,
            "category": category,
            "created_at": now,
            "updated_at": now,
        }
        self.conversations[row["id"]] = row
        self.messages[row["id"]] = []
        return dict(row)

    def get_conversation(self, conversation_id: str) -> dict | None:
        row = self.conversations.get(conversation_id)
        return dict(row) if row else None

    def list_messages(self, conversation_id: str) -> list[dict]:
        return [dict(m) for m in self.messages.get(conversation_id, [])]

    def insert_message(
        self, conversation_id: str, role: str, content: str, metadata: dict | None
    ) -> dict:
        row = {
            "id": str(uuid.uuid4()),
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "metadata": metadata,
            "created_at": self._now(),
        }
        self.messages.setdefault(conversation_id, []).append(row)
        self.conversations[conversation_id]["updated_at"] = row["created_at"]
        return dict(row)

    def update_conversation_category(self, conversation_id: str, category: str) -> dict | None:
        row = self.conversations.get(conversation_id)
        if row is None:
            return None
        row["category"] = category
        row["updated_at"] = self._now()
        return dict(row)


# ============================================================================
# Store
# ============================================================================


class ConversationStore:
    def __init__(self, backend: ConversationBackend):
        self.backend = backend
        # Dropped once no writer holds or awaits them
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def _call(self, operation: str, fn, *args):
        """Run a backend call, mapping infrastructure failures to StoreUnavailableError."""
        try:
            return fn(*args)
        except EngineError:
            raise
        except Exception as e:
            logger.exception(f"Conversation store {operation} failed")
            raise StoreUnavailableError(f"Conversation store unavailable: {e}") from e

    def _require(self, conversation_id: str) -> dict:
        row = self._call("get", self.backend.get_conversation, conversation_id)
        if row is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        return row

    async def create_conversation(
        self,
        title: str,
        category: str = ConversationCategory.GENERAL.value,
        visitor_id: str | None = None,
    ) -> Conversation:
        title = (title or "").strip() or "New conversation"
        row = self._call("create", self.backend.create_conversation, title, category, visitor_id)
        return Conversation(**row)

    async def append_message(
        self,
        conversation_id: str,
        role: MessageRole | str,
        content: str,
        metadata: dict[str, Any] | None = None,
        intent_category: IntentCategory | str | None = None,
    ) -> ConversationMessage:
        """
        Append a message in order.

        ``metadata`` is stored as given and never read. The first assistant
        message labels the conversation from ``intent_category``.

        Raises:
            ConversationNotFoundError: Unknown conversation
            BadInputError: Invalid role, or an assistant message with no user message before it
            StoreUnavailableError: The backend failed
        """
        try:
            role = MessageRole(role)
        except ValueError as e:
            raise BadInputError(f"Invalid message role: {role}") from e

        async with self._lock(conversation_id):
            self._require(conversation_id)
            existing = self._call("list", self.backend.list_messages, conversation_id)

            has_user = any(m["role"] == MessageRole.USER.value for m in existing)
            if role == MessageRole.ASSISTANT and not has_user:
                raise BadInputError("Assistant message requires a preceding user message")

            row = self._call(
                "insert", self.backend.insert_message, conversation_id, role.value, content, metadata
            )

            first_reply = role == MessageRole.ASSISTANT and not any(
                m["role"] == MessageRole.ASSISTANT.value for m in existing
            )
            if first_reply:
                self._label(conversation_id, intent_category)

        return ConversationMessage(**row)

    def _label(self, conversation_id: str, intent_category: IntentCategory | str | None) -> None:
        category = category_for_intent(intent_category)
        if category == ConversationCategory.GENERAL:
            return
        self._call("label", self.backend.update_conversation_category, conversation_id, category.value)
        logger.info(f"Labeled conversation {conversation_id} as {category.value}")

    async def fetch_conversation(self, conversation_id: str) -> ConversationWithMessages:
        row = self._require(conversation_id)
        messages = self._call("list", self.backend.list_messages, conversation_id)
        return ConversationWithMessages(
            **row, messages=[ConversationMessage(**m) for m in messages]
        )

    async def update_conversation_category(self, conversation_id: str, category: str) -> Conversation:
        async with self._lock(conversation_id):
            row = self._call(
                "update", self.backend.update_conversation_category, conversation_id, category
            )
        if row is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        return Conversation(**row)


@lru_cache(maxsize=1)
def get_conversation_store() -> ConversationStore:
    """Process-wide store on the configured backend (cached singleton)."""
    settings = get_settings()
    if settings.CONVERSATION_STORE_BACKEND == "memory":
        return ConversationStore(MemoryConversationBackend())
    return ConversationStore(SupabaseConversationBackend())
