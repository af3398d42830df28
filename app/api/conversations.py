"""API endpoints for conversations."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from app.core.auth_middleware import VisitorContext, get_visitor, require_csrf
from app.core.errors import ConversationNotFoundError
from app.core.logging import get_logger
from app.services.conversation_store import (
    Conversation,
    ConversationCategory,
    get_conversation_store,
)

logger = get_logger(__name__)

router = APIRouter()


class CreateConversationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    visitor_id: Optional[str] = Field(default=None, alias="visitorId")
    title: str = "New conversation"
    category: ConversationCategory = ConversationCategory.GENERAL


class UpdateCategoryRequest(BaseModel):
    category: ConversationCategory


def _conversation_body(conversation: Conversation) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "visitorId": conversation.visitor_id,
        "title": conversation.title,
        "category": conversation.category,
        "createdAt": conversation.created_at,
        "updatedAt": conversation.updated_at,
    }


@router.post("", dependencies=[Depends(require_csrf)])
async def create_conversation(
    request: CreateConversationRequest,
    visitor: VisitorContext = Depends(get_visitor),
) -> dict:
    """
    Create a conversation.

    The visitor id falls back to the signed visitor cookie.

    Returns:
        {id, title, category, createdAt}
    """
    try:
        conversation = await get_conversation_store().create_conversation(
            title=request.title,
            category=request.category.value,
            visitor_id=request.visitor_id or visitor.visitor_id,
        )
        return _conversation_body(conversation)

    except Exception:
        logger.exception("Failed to create conversation")
        raise HTTPException(status_code=500, detail="Failed to create conversation")


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str) -> dict:
    """
    Get a conversation with its messages in insertion order.

    Raises:
        HTTPException 404: If conversation not found
        HTTPException 500: If database error
    """
    try:
        conversation = await get_conversation_store().fetch_conversation(conversation_id)
        body = _conversation_body(conversation)
        body["messages"] = [
            {
                "id": m.id,
                "conversationId": m.conversation_id,
                "role": m.role.value,
                "content": m.content,
                "metadata": m.metadata,
                "createdAt": m.created_at,
            }
            for m in conversation.messages
        ]
        return body

    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except Exception:
        logger.exception(f"Failed to get conversation {conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve conversation")


@router.patch("/{conversation_id}", dependencies=[Depends(require_csrf)])
async def update_conversation(conversation_id: str, request: UpdateCategoryRequest) -> dict:
    """
    Set a conversation's category.

    Raises:
        HTTPException 404: If conversation not found
        HTTPException 500: If database error
    """
    try:
        conversation = await get_conversation_store().update_conversation_category(
            conversation_id, request.category.value
        )
        return _conversation_body(conversation)

    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except Exception:
        logger.exception(f"Failed to update conversation {conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to update conversation")
