"""Pick the single inline widget for a response.

Pure and deterministic: identical inputs always return the same widget.
"""

from typing import Any, Mapping

from pydantic import BaseModel

from app.core.domain import IntentCategory, SubIntent
from app.core.logging import get_logger
from app.core.widget_registry import (
    NO_DATA,
    WIDGET_REGISTRY,
    ArtifactType,
    RenderContext,
    WidgetDefinition,
)

logger = get_logger(__name__)

SUB_INTENT_BOOST = 10

# Intents whose widgets may be found by sub-intent alone when no widget lists the intent
FALLBACK_INTENTS = frozenset(
    {IntentCategory.GENERAL, IntentCategory.MARKET_CONTEXT, IntentCategory.REPORTING_EXPORT}
)


class WidgetSelection(BaseModel):
    widget_id: str
    type: str
    component: str
    priority: int
    score: int
    expands_to: ArtifactType | None = None
    matched_sub_intent: bool = False


def _has_data(available_data: Mapping[str, Any], key: str) -> bool:
    if key == NO_DATA:
        return True
    value = available_data.get(key)
    if value is None:
        return False
    if isinstance(value, (list, tuple, dict, set, str)):
        return len(value) > 0
    return True


def _data_satisfied(widget: WidgetDefinition, available_data: Mapping[str, Any]) -> bool:
    return all(_has_data(available_data, key) for key in widget.required_data)


def select_widget(
    intent: IntentCategory,
    sub_intent: SubIntent | None,
    available_data: Mapping[str, Any],
    render_context: RenderContext = RenderContext.CHAT,
) -> WidgetSelection | None:
    """
    Select the best widget for an intent.

    Args:
        intent: Classified intent category
        sub_intent: Optional sub-intent; a match adds a priority boost
        available_data: Response context keyed by data name (portfolio, suppliers, ...)
        render_context: Where the widget will render

    Returns:
        WidgetSelection, or None when nothing fits. Callers must then render no widget.
    """
    in_context = [w for w in WIDGET_REGISTRY if render_context in w.render_contexts]

    candidates = [w for w in in_context if intent in w.intents]
    if not candidates and intent in FALLBACK_INTENTS and sub_intent not in (None, SubIntent.NONE):
        candidates = [w for w in in_context if sub_intent in w.sub_intents]

    candidates = [w for w in candidates if _data_satisfied(w, available_data)]
    if not candidates:
        logger.debug(f"No widget for {intent.value} in {render_context.value}")
        return None

    best: tuple[int, WidgetDefinition, bool] | None = None
    for widget in candidates:
        matched = sub_intent is not None and sub_intent in widget.sub_intents
        score = widget.priority + (SUB_INTENT_BOOST if matched else 0)
        # Strictly greater keeps the earliest declaration on ties
        if best is None or score > best[0]:
            best = (score, widget, matched)

    score, widget, matched = best
    return WidgetSelection(
        widget_id=widget.id,
        type=widget.type,
        component=widget.component,
        priority=widget.priority,
        score=score,
        expands_to=widget.expands_to,
        matched_sub_intent=matched,
    )
