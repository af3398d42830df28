"""API endpoint for conversational engine turns."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from app.core.auth_middleware import VisitorContext, require_visitor
from app.core.domain import BuilderHint, IntentCategory
from app.core.logging import get_logger
from app.core.rate_limiter import check_message_rate_limit
from app.core.widget_registry import RenderContext
from app.services.engine import EngineMode, HistoryMessage, SendMessageRequest, get_engine
from app.services.response_assembler import CanonicalResponse

logger = get_logger(__name__)

router = APIRouter()


class HistoryItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str
    content: str
    intent_category: Optional[IntentCategory] = Field(default=None, alias="intentCategory")


class SendMessageBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    mode: EngineMode = EngineMode.FAST
    web_search_enabled: bool = Field(default=False, alias="webSearchEnabled")
    deep_research_mode: bool = Field(default=False, alias="deepResearchMode")
    credits_available: int = Field(default=0, alias="creditsAvailable")
    builder_meta: Optional[BuilderHint] = Field(default=None, alias="builderMeta")
    conversation_history: list[HistoryItem] = Field(default_factory=list, alias="conversationHistory")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    render_context: RenderContext = Field(default=RenderContext.CHAT, alias="renderContext")

    def to_request(self) -> SendMessageRequest:
        return SendMessageRequest(
            text=self.text,
            mode=self.mode,
            web_search_enabled=self.web_search_enabled,
            deep_research_mode=self.deep_research_mode,
            credits_available=self.credits_available,
            builder_meta=self.builder_meta,
            conversation_history=[
                HistoryMessage(role=m.role, content=m.content, intent_category=m.intent_category)
                for m in self.conversation_history
            ],
            conversation_id=self.conversation_id,
            render_context=self.render_context,
        )


@router.post("/messages", response_model=CanonicalResponse)
async def send_message(
    body: SendMessageBody,
    visitor: VisitorContext = Depends(require_visitor),
) -> CanonicalResponse:
    """
    Run one conversational turn.

    Failures inside the turn come back as a canonical response with ``error``
    set, so this endpoint only answers non-200 for CSRF and rate limiting.

    Raises:
        HTTPException 403: CSRF check failed
        HTTPException 429: Visitor is over its turn budget
    """
    check_message_rate_limit(visitor.visitor_id)

    logger.info(
        "Engine turn",
        extra={"visitor_id": visitor.visitor_id, "conversation_id": body.conversation_id},
    )
    return await get_engine().send_message(body.to_request(), user_id=visitor.user_id)
