"""API router for engine endpoints."""

from fastapi import APIRouter

from app.api import approvals, conversations, deep_research, engine, messages, notifications

router = APIRouter()

router.include_router(conversations.router, prefix="/conversations", tags=["conversations"])
router.include_router(messages.router, prefix="/messages", tags=["messages"])
router.include_router(engine.router, prefix="/engine", tags=["engine"])
router.include_router(deep_research.router, prefix="/deep-research", tags=["deep_research"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(approvals.router, prefix="/approvals", tags=["approvals"])
