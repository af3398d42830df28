"""
Response assembler.

Glues a classified intent, retrieved material and the widget selection into
the canonical response: prose body, inline widget, expandable artifact,
sources, source-enhancement offers, value ladder and follow-up suggestions.

The assembler is the last line of defence for restricted-tier data. Prose is
scrubbed of every number in a sentence naming a restricted factor, and a payload that
still carries a restricted score is replaced by the handoff widget.
"""

import re
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from pydantic import BaseModel, Field

from app.context.intent_classifier import HANDOFF_REASON
from app.core.artifact_builder import ArtifactContext, build_checked_payload, contains_restricted_score
from app.core.domain import (
    IntentCategory,
    IntentResult,
    Portfolio,
    RiskChange,
    Source,
    SubIntent,
    Supplier,
    ValueLadder,
    determine_source_mix,
    is_restricted_query,
    restricted_factor_mentioned,
)
from app.core.errors import EngineError, RestrictedLeakError, TurnInProgressError
from app.core.logging import get_logger
from app.core.schemas_artifacts import ArtifactPayload
from app.core.schemas_research import DeepResearchJob, DeepResearchScore
from app.core.suggestions import Suggestion, generate_suggestions
from app.core.value_ladder import SourceEnhancement, build_source_enhancement, build_value_ladder
from app.core.widget_registry import ArtifactType, RenderContext, get_widget
from app.core.widget_selector import WidgetSelection, select_widget

logger = get_logger(__name__)

HANDOFF_LINK_TEXT = "View Full Risk Profile in Dashboard"
REDACTED = "[restricted]"

ACKNOWLEDGEMENTS: dict[IntentCategory, str] = {
    IntentCategory.PORTFOLIO_OVERVIEW: "Here's your portfolio overview.",
    IntentCategory.FILTERED_DISCOVERY: "Here are the matching suppliers.",
    IntentCategory.SUPPLIER_DEEP_DIVE: "Here's the detailed profile.",
    IntentCategory.TREND_DETECTION: "Here's what's shifted recently.",
    IntentCategory.COMPARISON: "Here's how they stack up.",
    IntentCategory.EXPLANATION_WHY: "Let me explain that.",
    IntentCategory.RESTRICTED_QUERY: "Let me help with that.",
    IntentCategory.GENERAL: "Here's what I found.",
}

ARTIFACT_TITLES: dict[ArtifactType, str] = {
    ArtifactType.SUPPLIER_TABLE: "All Suppliers",
    ArtifactType.SUPPLIER_DETAIL: "Supplier Risk Profile",
    ArtifactType.SUPPLIER_COMPARISON: "Supplier Comparison",
    ArtifactType.PORTFOLIO_DASHBOARD: "Risk Portfolio Dashboard",
    ArtifactType.SUPPLIER_ALTERNATIVES: "Alternative Suppliers",
    ArtifactType.INFLATION_DASHBOARD: "Inflation Dashboard",
    ArtifactType.DRIVER_ANALYSIS: "Price Driver Analysis",
    ArtifactType.IMPACT_ANALYSIS: "Spend Impact Analysis",
    ArtifactType.JUSTIFICATION_REPORT: "Price Increase Justification",
    ArtifactType.SCENARIO_PLANNER: "Scenario Planner",
    ArtifactType.EXECUTIVE_PRESENTATION: "Executive Brief",
    ArtifactType.COMMODITY_DASHBOARD: "Commodity Dashboard",
    ArtifactType.DEEP_RESEARCH_REPORT: "Research Report",
}

# Restricted factor names. Any sentence naming one has all its numbers redacted.
_RESTRICTED_FACTOR_RE = re.compile(
    r"\b(?:financial|cyber\w*|sanctions?|pep|politically exposed|ame|adverse media)\b", re.I
)
# Standalone numbers only, so "Q3" or "3M" stay intact.
_NUMBER_RE = re.compile(r"(?<![\w.])\d+(?:[.,]\d+)*(?![A-Za-z_])(?:\s*/\s*\d+|\s*%|\s*points?\b)?")
_SENTENCE_BREAK_RE = re.compile(r"((?<=[.!?])\s+|\n+)")

_FACTOR_LABELS = {
    "financial": "financial health",
    "cybersecurity": "cybersecurity",
    "sanctions": "sanctions screening",
    "pep": "politically exposed persons screening",
    "ame": "adverse media",
}


# ============================================================================
# Models
# ============================================================================


class RetrievedMaterial(BaseModel):
    """What retrieval produced for one turn."""

    body: str = ""
    sources: list[Source] = Field(default_factory=list)
    suppliers: list[Supplier] = Field(default_factory=list)
    portfolio: Portfolio | None = None
    risk_changes: list[RiskChange] = Field(default_factory=list)
    widget_data: dict[str, Any] = Field(default_factory=dict)


class ResponseWidget(BaseModel):
    id: str
    type: str
    component: str
    score: int
    expands_to: ArtifactType | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class ResponseArtifact(BaseModel):
    type: ArtifactType
    title: str
    payload: ArtifactPayload


class Handoff(BaseModel):
    required: bool = True
    reason: str = HANDOFF_REASON
    link_text: str = HANDOFF_LINK_TEXT


class CanonicalLayer(BaseModel):
    body: str
    source_enhancement: SourceEnhancement
    value_ladder: ValueLadder | None = None


class DeepResearchBlock(BaseModel):
    score: DeepResearchScore
    job: DeepResearchJob | None = None


class Milestone(BaseModel):
    """One progress event of a turn, in emission order."""

    id: str
    event: str
    label: str
    timestamp: str
    data: dict[str, Any] = Field(default_factory=dict)


class ResponseError(BaseModel):
    message: str
    can_retry: bool


class CanonicalResponse(BaseModel):
    id: str
    timestamp: str
    content: str
    intent: IntentResult
    sources: list[Source] = Field(default_factory=list)
    canonical: CanonicalLayer
    suggestions: list[Suggestion] = Field(default_factory=list)
    acknowledgement: str | None = None
    widget: ResponseWidget | None = None
    artifact: ResponseArtifact | None = None
    handoff: Handoff | None = None
    deep_research: DeepResearchBlock | None = None
    error: ResponseError | None = None
    milestones: list[Milestone] = Field(default_factory=list)


# ============================================================================
# Prose
# ============================================================================


def scrub_restricted_numbers(text: str) -> str:
    """Redact every number in a sentence that names a restricted factor."""
    parts = _SENTENCE_BREAK_RE.split(text)
    for i in range(0, len(parts), 2):
        if _RESTRICTED_FACTOR_RE.search(parts[i]):
            parts[i] = _NUMBER_RE.sub(REDACTED, parts[i])
    return "".join(parts)


def apply_restricted_policy(text: str, intent: IntentResult) -> IntentResult:
    """Reroute to ``restricted_query`` when the utterance asks for a restricted factor's score."""
    if intent.category == IntentCategory.RESTRICTED_QUERY:
        return intent
    if not (is_restricted_query(text) and restricted_factor_mentioned(text)):
        return intent
    logger.info(f"Restricted factor query, rerouting {intent.category.value} to handoff")
    return intent.model_copy(
        update={
            "category": IntentCategory.RESTRICTED_QUERY,
            "sub_intent": SubIntent.NONE,
            "requires_handoff": True,
            "handoff_reason": HANDOFF_REASON,
        }
    )


def restricted_body(text: str, supplier_name: str | None = None) -> str:
    factor = restricted_factor_mentioned(text)
    subject = f"{supplier_name}'s" if supplier_name else "This supplier's"
    detail = f" The {_FACTOR_LABELS[factor]} component" if factor else " Some of these factors"
    return (
        f"{subject} risk score is calculated from multiple weighted factors including financial "
        "health, operational metrics, and compliance indicators."
        f"{detail} comes from partners with viewing restrictions, so it can't be shown here.\n\n"
        "To see the full breakdown of contributing factors and scores, open the detailed risk "
        "profile in the dashboard."
    )


def fallback_body(intent: IntentResult, material: RetrievedMaterial) -> str:
    """Plain summary used when retrieval returned no prose."""
    portfolio = material.portfolio
    suppliers = material.suppliers

    if intent.category == IntentCategory.PORTFOLIO_OVERVIEW and portfolio is not None:
        body = (
            f"You're monitoring {portfolio.total_suppliers} suppliers with "
            f"{portfolio.total_spend_formatted or '$0'} total spend."
        )
        if portfolio.distribution.unrated > 2:
            body += f" The {portfolio.distribution.unrated} unrated suppliers may need risk assessment."
        elif portfolio.distribution.high > 0:
            body += f" You have {portfolio.distribution.high} high-risk suppliers requiring attention."
        return body

    if intent.category == IntentCategory.FILTERED_DISCOVERY:
        return f"Found {len(suppliers)} suppliers matching your criteria."

    if intent.category == IntentCategory.SUPPLIER_DEEP_DIVE and suppliers:
        s = suppliers[0]
        return (
            f"{s.name} has a risk score of {s.srs.score:g} ({s.srs.level.value}) "
            f"and its trend is {s.srs.trend.value}."
        )

    if intent.category == IntentCategory.TREND_DETECTION:
        worsened = sum(1 for c in material.risk_changes if c.direction == "worsened")
        return (
            f"{len(material.risk_changes)} suppliers changed risk level recently; "
            f"{worsened} of them worsened."
        )

    if intent.category == IntentCategory.COMPARISON and len(suppliers) >= 2:
        names = ", ".join(s.name for s in suppliers)
        return f"Here is a side-by-side view of {names}."

    return "I can help you explore supplier risk, market conditions and price movements in your portfolio."


# ============================================================================
# Widget and artifact
# ============================================================================


def available_data(material: RetrievedMaterial) -> dict[str, Any]:
    """Data keys the widget selector can test for."""
    data: dict[str, Any] = dict(material.widget_data)
    if material.portfolio is not None:
        data["portfolio"] = material.portfolio
    if material.suppliers:
        data["suppliers"] = material.suppliers
        data["supplier"] = material.suppliers[0]
    if material.risk_changes:
        data["risk_changes"] = material.risk_changes
        data.setdefault("events", material.risk_changes)
    return data


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


def _to_widget(selection: WidgetSelection, data: dict[str, Any]) -> ResponseWidget:
    definition = get_widget(selection.widget_id)
    keys = definition.required_data if definition else ()
    return ResponseWidget(
        id=selection.widget_id,
        type=selection.type,
        component=selection.component,
        score=selection.score,
        expands_to=selection.expands_to,
        data={k: _dump(data[k]) for k in keys if k in data},
    )


def _handoff_widget(render_context: RenderContext) -> ResponseWidget | None:
    selection = select_widget(IntentCategory.RESTRICTED_QUERY, None, {}, render_context)
    return _to_widget(selection, {}) if selection else None


# ============================================================================
# Assembler
# ============================================================================


class ResponseAssembler:
    """
    Builds canonical responses and linearizes turns per conversation.

    ``turn(conversation_id)`` must wrap the whole turn; a second turn for the
    same conversation raises TurnInProgressError until the first one exits.
    """

    def __init__(self) -> None:
        self._active_turns: set[str] = set()

    @asynccontextmanager
    async def turn(self, conversation_id: str | None) -> AsyncIterator[None]:
        if conversation_id is None:
            yield
            return
        if conversation_id in self._active_turns:
            raise TurnInProgressError(
                f"Conversation {conversation_id} already has a turn in progress"
            )
        self._active_turns.add(conversation_id)
        try:
            yield
        finally:
            self._active_turns.discard(conversation_id)

    def assemble(
        self,
        text: str,
        intent: IntentResult,
        material: RetrievedMaterial | None = None,
        render_context: RenderContext = RenderContext.CHAT,
        deep_research: DeepResearchBlock | None = None,
        history: list[IntentCategory] | None = None,
        now: datetime | None = None,
    ) -> CanonicalResponse:
        now = now or datetime.now(timezone.utc)
        material = material or RetrievedMaterial()
        intent = apply_restricted_policy(text, intent)
        restricted = intent.category == IntentCategory.RESTRICTED_QUERY
        lead_name = (
            material.suppliers[0].name if material.suppliers else intent.extracted_entities.supplier
        )

        if restricted:
            body = restricted_body(text, lead_name)
        else:
            body = material.body or fallback_body(intent, material)
        body = scrub_restricted_numbers(body)

        widget, artifact = self._select(intent, material, render_context, now)
        handoff = None
        if restricted or (widget is not None and widget.type == "handoff_card"):
            handoff = Handoff(reason=intent.handoff_reason or HANDOFF_REASON)

        entities = intent.extracted_entities
        mix = determine_source_mix(material.sources)
        ladder = build_value_ladder(
            intent.category,
            commodity=entities.commodity,
            category=entities.category,
            supplier=entities.supplier,
        )
        suggestions = generate_suggestions(
            intent,
            suppliers=material.suppliers,
            portfolio=material.portfolio,
            risk_changes=material.risk_changes,
            history=history,
        )

        return CanonicalResponse(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            timestamp=now.isoformat(),
            content=body,
            intent=intent,
            sources=material.sources,
            canonical=CanonicalLayer(
                body=body,
                source_enhancement=build_source_enhancement(mix, intent.category),
                value_ladder=ladder,
            ),
            suggestions=suggestions,
            acknowledgement=ACKNOWLEDGEMENTS.get(intent.category, ACKNOWLEDGEMENTS[IntentCategory.GENERAL]),
            widget=widget,
            artifact=artifact,
            handoff=handoff,
            deep_research=deep_research,
        )

    def _select(
        self,
        intent: IntentResult,
        material: RetrievedMaterial,
        render_context: RenderContext,
        now: datetime,
    ) -> tuple[ResponseWidget | None, ResponseArtifact | None]:
        data = available_data(material)
        selection = select_widget(intent.category, intent.sub_intent, data, render_context)
        if selection is None:
            return None, None

        widget = _to_widget(selection, data)
        if contains_restricted_score(widget.data):
            logger.error(f"Restricted score in widget {widget.id} data, using handoff")
            return _handoff_widget(render_context), None

        if selection.expands_to is None:
            return widget, None

        context = ArtifactContext(
            suppliers=material.suppliers,
            portfolio=material.portfolio,
            risk_changes=material.risk_changes or None,
            widget_data=material.widget_data or None,
        )
        try:
            payload = build_checked_payload(selection.expands_to, context, now)
        except RestrictedLeakError as e:
            logger.error(f"{e.message}, using handoff", extra={"widget_id": widget.id})
            return _handoff_widget(render_context), None

        if payload is None:
            return widget, None
        artifact = ResponseArtifact(
            type=selection.expands_to,
            title=ARTIFACT_TITLES[selection.expands_to],
            payload=payload,
        )
        return widget, artifact

    def error_response(
        self, text: str, error: EngineError, intent: IntentResult | None = None
    ) -> CanonicalResponse:
        """Structured failure response. Built from constants only so it cannot fail itself."""
        intent = intent or IntentResult()
        now = datetime.now(timezone.utc)
        logger.warning(
            f"Returning error response: {error.message}",
            extra={"error_type": type(error).__name__, "can_retry": error.can_retry},
        )
        return CanonicalResponse(
            id=f"msg_{uuid.uuid4().hex[:12]}",
            timestamp=now.isoformat(),
            content=error.message,
            intent=intent,
            canonical=CanonicalLayer(
                body=error.message,
                source_enhancement=SourceEnhancement(current_source_type=determine_source_mix([])),
            ),
            suggestions=generate_suggestions(IntentResult()),
            error=ResponseError(message=error.message, can_retry=error.can_retry),
        )
