"""Per-turn context for the response engine.

This module provides:
- Intent classification of user queries, with carry-over from recent turns
- Deep research scoring and study type inference
"""

from app.context.deep_research_scoring import build_chat_context, score_deep_research
from app.context.intent_classifier import classify_intent

__all__ = [
    "build_chat_context",
    "classify_intent",
    "score_deep_research",
]
