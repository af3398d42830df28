"""API endpoints for conversation messages."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from app.core.auth_middleware import require_csrf
from app.core.errors import BadInputError, ConversationNotFoundError
from app.core.logging import get_logger
from app.services.conversation_store import MessageRole, get_conversation_store

logger = get_logger(__name__)

router = APIRouter()


class AppendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId")
    role: MessageRole
    content: str
    metadata: Optional[dict[str, Any]] = None


@router.post("", dependencies=[Depends(require_csrf)])
async def append_message(request: AppendMessageRequest) -> dict:
    """
    Append a message to a conversation.

    Returns:
        {id} of the persisted message

    Raises:
        HTTPException 400: Assistant message with no user message before it
        HTTPException 404: If conversation not found
        HTTPException 500: If database error
    """
    try:
        message = await get_conversation_store().append_message(
            request.conversation_id, request.role, request.content, request.metadata
        )
        return {"id": message.id}

    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except BadInputError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except Exception:
        logger.exception(f"Failed to append message to {request.conversation_id}")
        raise HTTPException(status_code=500, detail="Failed to save message")
