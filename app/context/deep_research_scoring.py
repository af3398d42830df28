"""Deep research intent scoring.

Decides whether an utterance is worth a multi-minute research job:

- score >= 0.75: show the interstitial (start / skip)
- 0.45 <= score < 0.75: add a deep research suggestion to follow-ups
- score < 0.45: normal flow
"""

import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from app.core.config import get_settings
from app.core.schemas_research import (
    ChatContext,
    DeepResearchScore,
    SignalCategory,
    SignalMatch,
    StudyType,
)


@dataclass(frozen=True)
class SignalPattern:
    pattern: re.Pattern[str]
    weight: float
    label: str


def _signal(pattern: str, weight: float, label: str) -> SignalPattern:
    return SignalPattern(re.compile(pattern, re.I), weight, label)


_YEARS = r"(\d+[-\s]?year|Q[1-4]\s*\d{4}|20[2-3]\d)"

# Strong indicators of research intent
HIGH_SIGNALS: tuple[SignalPattern, ...] = (
    _signal(r"comprehensive\s+(\w+\s+)?(analysis|study|report|review|assessment)", 0.35, "comprehensive analysis"),
    _signal(r"deep\s+dive", 0.30, "deep dive"),
    _signal(r"full\s+market\s+analysis", 0.35, "full market analysis"),
    _signal(r"in[-\s]?depth\s+(analysis|study|research|report)", 0.30, "in-depth analysis"),
    _signal(r"thorough\s+(analysis|study|research|review)", 0.28, "thorough analysis"),
    _signal(r"sourcing\s+study", 0.35, "sourcing study"),
    _signal(r"cost\s+model(ing)?", 0.32, "cost model"),
    _signal(r"cost\s+breakdown", 0.28, "cost breakdown"),
    _signal(rf"(forecast|outlook|projection).*{_YEARS}", 0.32, "forecast with timeframe"),
    _signal(rf"{_YEARS}.*(forecast|outlook|projection)", 0.32, "timeframe with forecast"),
    _signal(r"5[-\s]?year\s+(outlook|forecast|plan|projection)", 0.35, "5-year outlook"),
    _signal(r"supplier\s+(landscape|assessment|evaluation|analysis)", 0.30, "supplier landscape"),
    _signal(r"vendor\s+(landscape|assessment|analysis)", 0.28, "vendor landscape"),
    _signal(r"risk\s+assessment", 0.28, "risk assessment"),
    _signal(r"market\s+intelligence\s+report", 0.32, "market intelligence report"),
    _signal(r"industry\s+analysis", 0.28, "industry analysis"),
    _signal(r"prepare\s+(a\s+)?(research|report|analysis|study)", 0.30, "prepare research"),
    _signal(r"generate\s+(a\s+)?(comprehensive|detailed|full)\s+report", 0.32, "generate report"),
)

# Moderate indicators
MEDIUM_SIGNALS: tuple[SignalPattern, ...] = (
    _signal(r"benchmark(ing)?", 0.18, "benchmark"),
    _signal(r"compare\s+(to\s+)?peers", 0.16, "compare to peers"),
    _signal(r"competitive\s+analysis", 0.18, "competitive analysis"),
    _signal(r"competitive\s+landscape", 0.20, "competitive landscape"),
    _signal(r"strateg(y|ic)\s+(analysis|review|assessment)", 0.18, "strategic analysis"),
    _signal(r"strateg(y|ic)\s+recommendation", 0.16, "strategic recommendation"),
    _signal(r"supply\s+chain\s+analysis", 0.20, "supply chain analysis"),
    _signal(r"supply\s+chain\s+risk", 0.18, "supply chain risk"),
    _signal(r"multiple\s+(regions?|suppliers?|markets?)", 0.15, "multiple regions/suppliers"),
    _signal(r"(global|worldwide|international)\s+(analysis|overview|perspective)", 0.16, "global analysis"),
    _signal(r"across\s+(regions?|countries|markets)", 0.14, "across regions"),
    _signal(r"market\s+(trends?|dynamics?)", 0.16, "market trends"),
    _signal(r"pricing\s+trends?", 0.15, "pricing trends"),
    _signal(r"key\s+trends", 0.14, "key trends"),
    _signal(r"risk\s+(factors?|drivers?)", 0.14, "risk factors"),
    _signal(r"supplier\s+risk", 0.16, "supplier risk"),
    _signal(r"detailed\s+(analysis|breakdown|overview)", 0.15, "detailed analysis"),
    _signal(r"overview\s+of\s+.{10,}", 0.12, "broad overview"),
)

# Indicators of simple lookups; weights are negative
NEGATIVE_SIGNALS: tuple[SignalPattern, ...] = (
    _signal(r"^what\s+is\s+(the\s+)?(current\s+)?", -0.20, "what is query"),
    _signal(r"^(what|when|where|who)\s+", -0.10, "simple question"),
    _signal(r"^how\s+much\s+(is|does|are)", -0.15, "how much query"),
    _signal(r"show\s+me\s+(my|the|our)", -0.25, "show me query"),
    _signal(r"display\s+(my|the|our)", -0.20, "display query"),
    _signal(r"list\s+(my|the|our)", -0.18, "list query"),
    _signal(r"\b(quick|brief|short|simple)\b", -0.20, "explicit simple"),
    _signal(r"just\s+(tell|show|give)", -0.15, "just tell me"),
    _signal(r"in\s+(a\s+)?few\s+words", -0.18, "few words"),
    _signal(r"^(yes|no|ok|okay|sure|thanks|thank\s+you|got\s+it)\.?$", -0.50, "conversational"),
    _signal(r"^(hi|hello|hey)\b", -0.50, "greeting"),
)

# Successive high-signal matches count for less
DIMINISHING_MULTIPLIERS = (1.0, 0.75, 0.5, 0.25)

TOPIC_PATTERNS = (
    re.compile(r"\b(steel|aluminum|copper|lithium|battery|batteries)\b", re.I),
    re.compile(r"\b(packaging|corrugated|plastics|chemicals)\b", re.I),
    re.compile(r"\b(logistics|freight|shipping|transportation)\b", re.I),
    re.compile(r"\b(electronics|semiconductors?|chips?)\b", re.I),
    re.compile(r"\b(raw\s+materials?|commodit(?:y|ies))\b", re.I),
)

COMPLEXITY_INDICATORS = (
    re.compile(r"compare", re.I),
    re.compile(r"analy[sz]e", re.I),
    re.compile(r"trends?", re.I),
    re.compile(r"forecast", re.I),
    re.compile(r"multiple", re.I),
    re.compile(r"across", re.I),
    re.compile(r"breakdown", re.I),
)

STUDY_TYPE_ESTIMATES: dict[StudyType, tuple[int, str]] = {
    StudyType.SOURCING_STUDY: (750, "8-12 minutes"),
    StudyType.COST_MODEL: (600, "6-10 minutes"),
    StudyType.MARKET_ANALYSIS: (500, "5-10 minutes"),
    StudyType.SUPPLIER_ASSESSMENT: (550, "6-10 minutes"),
    StudyType.RISK_ASSESSMENT: (500, "5-8 minutes"),
    StudyType.CUSTOM: (500, "5-10 minutes"),
}

STUDY_TYPE_LABELS: dict[StudyType, str] = {
    StudyType.SOURCING_STUDY: "Sourcing Study",
    StudyType.COST_MODEL: "Cost Model",
    StudyType.MARKET_ANALYSIS: "Market Analysis",
    StudyType.SUPPLIER_ASSESSMENT: "Supplier Assessment",
    StudyType.RISK_ASSESSMENT: "Risk Assessment",
    StudyType.CUSTOM: "Custom Research",
}

STUDY_TYPE_DESCRIPTIONS: dict[StudyType, str] = {
    StudyType.SOURCING_STUDY: "Comprehensive supplier landscape and sourcing strategy analysis",
    StudyType.COST_MODEL: "Detailed cost breakdown and pricing structure analysis",
    StudyType.MARKET_ANALYSIS: "Market trends, dynamics, and competitive intelligence",
    StudyType.SUPPLIER_ASSESSMENT: "In-depth supplier evaluation and risk profiling",
    StudyType.RISK_ASSESSMENT: "Supply chain risk identification and mitigation strategies",
    StudyType.CUSTOM: "Tailored research based on your specific requirements",
}


def get_estimates(study_type: StudyType) -> tuple[int, str]:
    """Credits and wall-clock estimate for a study type."""
    return STUDY_TYPE_ESTIMATES.get(study_type, STUDY_TYPE_ESTIMATES[StudyType.MARKET_ANALYSIS])


def get_study_type_label(study_type: StudyType) -> str:
    return STUDY_TYPE_LABELS.get(study_type, "Market Analysis")


def get_study_type_description(study_type: StudyType) -> str:
    return STUDY_TYPE_DESCRIPTIONS.get(study_type, STUDY_TYPE_DESCRIPTIONS[StudyType.MARKET_ANALYSIS])


def infer_study_type(query: str) -> StudyType:
    """Substring rules, first match wins."""
    q = query.lower()
    if "sourcing" in q:
        return StudyType.SOURCING_STUDY
    if "cost" in q and ("model" in q or "breakdown" in q):
        return StudyType.COST_MODEL
    if "supplier" in q and ("assessment" in q or "evaluation" in q):
        return StudyType.SUPPLIER_ASSESSMENT
    if "risk" in q and "assessment" in q:
        return StudyType.RISK_ASSESSMENT
    return StudyType.MARKET_ANALYSIS


def build_chat_context(messages: Iterable[Mapping[str, str]]) -> ChatContext:
    """
    Build scoring context from conversation history.

    Args:
        messages: Dicts with ``role`` and ``content``, oldest first

    Returns:
        ChatContext with follow-up count, topics and complexity flag
    """
    messages = list(messages)
    previous_queries = [m.get("content", "") for m in messages if m.get("role") == "user"]

    topics: list[str] = []
    for query in previous_queries:
        for pattern in TOPIC_PATTERNS:
            for match in pattern.finditer(query):
                topic = match.group(0).lower()
                if topic not in topics:
                    topics.append(topic)

    has_complexity = any(
        indicator.search(query) for query in previous_queries for indicator in COMPLEXITY_INDICATORS
    )

    return ChatContext(
        message_count=len(messages),
        follow_up_count=max(0, len(previous_queries) - 1),
        topics_discussed=topics,
        has_complexity_indicators=has_complexity,
        previous_queries=previous_queries,
    )


def _context_boost(chat_context: ChatContext | None) -> float:
    if chat_context is None:
        return 0.0

    boost = 0.0
    if chat_context.follow_up_count >= 3:
        boost += 0.15
    elif chat_context.follow_up_count >= 2:
        boost += 0.08

    if chat_context.has_complexity_indicators:
        boost += 0.10

    if len(chat_context.topics_discussed) >= 2:
        boost += 0.05

    return boost


def _build_reason(matched: list[SignalMatch], context_boost: float, score: float) -> str:
    high = [s for s in matched if s.category == SignalCategory.HIGH]
    medium = [s for s in matched if s.category == SignalCategory.MEDIUM]

    if high:
        top = high[0].pattern
        if len(high) > 1:
            return f'Detected "{top}" and {len(high) - 1} other research indicators'
        return f'Detected "{top}" - this looks like a research request'

    if len(medium) >= 2:
        labels = ", ".join(s.pattern for s in medium[:2])
        return f"Multiple analysis indicators detected: {labels}"

    if context_boost > 0.10:
        return "Complex conversation context suggests deeper research may help"

    if score < get_settings().DEEP_RESEARCH_SUGGEST_THRESHOLD:
        return "Standard query - no deep research needed"

    return "Analysis indicators detected"


def _match(signals: Iterable[SignalPattern], query: str, category: SignalCategory) -> list[SignalMatch]:
    return [
        SignalMatch(pattern=s.label, weight=s.weight, category=category)
        for s in signals
        if s.pattern.search(query)
    ]


def score_deep_research(query: str, chat_context: ChatContext | None = None) -> DeepResearchScore:
    """
    Score a query for deep research intent.

    Pure and idempotent: the same query and context always give the same score.

    Args:
        query: User utterance
        chat_context: Optional conversation features from ``build_chat_context``

    Returns:
        DeepResearchScore
    """
    settings = get_settings()
    normalized = (query or "").strip()

    if len(normalized) < settings.DEEP_RESEARCH_MIN_QUERY_CHARS:
        credits, time_estimate = get_estimates(StudyType.MARKET_ANALYSIS)
        return DeepResearchScore(
            score=0.0,
            inferred_study_type=StudyType.MARKET_ANALYSIS,
            reason="Query too short",
            should_trigger_interstitial=False,
            should_suggest=False,
            estimated_credits=credits,
            estimated_time=time_estimate,
        )

    high = _match(HIGH_SIGNALS, normalized, SignalCategory.HIGH)
    medium = _match(MEDIUM_SIGNALS, normalized, SignalCategory.MEDIUM)
    negative = _match(NEGATIVE_SIGNALS, normalized, SignalCategory.NEGATIVE)

    high_weights = sorted((s.weight for s in high), reverse=True)
    raw = sum(
        weight * DIMINISHING_MULTIPLIERS[min(i, len(DIMINISHING_MULTIPLIERS) - 1)]
        for i, weight in enumerate(high_weights)
    )
    raw += sum(s.weight for s in medium)
    raw += sum(s.weight for s in negative)

    word_count = len(normalized.split())
    if word_count > 20:
        raw += 0.10
    elif word_count > 15:
        raw += 0.05

    # Context only amplifies an utterance that already scores on its own
    boost = _context_boost(chat_context) if raw > 0 else 0.0
    raw += boost

    score = round(max(0.0, min(1.0, raw)), 2)
    matched = high + medium + negative
    study_type = infer_study_type(normalized)
    credits, time_estimate = get_estimates(study_type)

    return DeepResearchScore(
        score=score,
        matched_signals=matched,
        inferred_study_type=study_type,
        reason=_build_reason(matched, boost, score),
        should_trigger_interstitial=score >= settings.DEEP_RESEARCH_INTERSTITIAL_THRESHOLD,
        should_suggest=settings.DEEP_RESEARCH_SUGGEST_THRESHOLD
        <= score
        < settings.DEEP_RESEARCH_INTERSTITIAL_THRESHOLD,
        estimated_credits=credits,
        estimated_time=time_estimate,
    )
