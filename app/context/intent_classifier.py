"""Rule-based intent classification for procurement risk conversations.

Each category owns a fixed list of regex patterns. The category with the most
matching patterns wins; ties go to the category declared first in
``IntentCategory``. A builder hint from the UI bypasses classification.
"""

import re

from app.core.domain import (
    BuilderHint,
    ExtractedEntities,
    IntentCategory,
    IntentResult,
    SubIntent,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

HANDOFF_REASON = "Detailed factor scores require dashboard access due to partner data restrictions."


def _compile(*patterns: str) -> list[re.Pattern[str]]:
    return [re.compile(p, re.I) for p in patterns]


# Category -> patterns. Order of keys does not matter; tie-break uses enum order.
INTENT_PATTERNS: dict[IntentCategory, list[re.Pattern[str]]] = {
    IntentCategory.PORTFOLIO_OVERVIEW: _compile(
        r"risk (exposure|overview|summary|posture)",
        r"how.*(risk|portfolio)",
        r"show.*(my|me).*(risk|portfolio)",
        r"what('?s| is) my.*risk",
        r"how many.*(supplier|high risk)",
    ),
    IntentCategory.FILTERED_DISCOVERY: _compile(
        r"show.*(supplier|high|medium|low)",
        r"which supplier",
        r"list.*(supplier|high|risk)",
        r"filter.*by",
        r"supplier.*\b(in|with|from)\b",
        r"(high|medium|low).risk.supplier",
    ),
    IntentCategory.SUPPLIER_DEEP_DIVE: _compile(
        r"tell me about",
        r"what('?s| is) the.*(score|risk).*(for|of)",
        r"show me.*detail",
        r"(view|see|look at).*supplier",
        r"profile (for|of)",
    ),
    IntentCategory.TREND_DETECTION: _compile(
        r"what.*changed",
        r"recent.*change",
        r"moved.*(to|from)",
        r"\btrend",
        r"worsening|improving",
        r"this (week|month)",
        r"any.*alert",
    ),
    IntentCategory.EXPLANATION_WHY: _compile(
        r"why.*(high|low|medium|risk|score)",
        r"what('?s| is) (driving|causing)",
        r"explain.*(score|risk)",
        r"how.*(calculated|computed)",
        r"what.*factors",
    ),
    IntentCategory.ACTION_TRIGGER: _compile(
        r"find alternative",
        r"what.*(should|can) i do",
        r"help me.*(mitigate|reduce)",
        r"create.*(plan|workflow)",
    ),
    IntentCategory.COMPARISON: _compile(
        r"compare",
        r"\bversus\b|\bvs\b\.?",
        r"which.*(safer|better|riskier)",
        r"side by side",
        r"rank.*(supplier|by)",
    ),
    IntentCategory.SETUP_CONFIG: _compile(
        r"set.?up.*alert",
        r"add.*supplier",
        r"configure",
        r"\bimport\b",
        r"\bfollow\b",
        r"\bunfollow\b",
    ),
    IntentCategory.REPORTING_EXPORT: _compile(
        r"\bexport\b",
        r"\bdownload\b",
        r"generate.*(report|summary)",
        r"create.*presentation",
        r"summarize.*for",
    ),
    IntentCategory.MARKET_CONTEXT: _compile(
        r"what('?s| is) happening.*(market|industry|sector)",
        r"any news",
        r"market.*(event|condition|trend)",
        r"industry.*(trend|outlook|risk)",
        r"is this normal",
        r"how.*(compare|benchmark)",
        r"geopolitical",
        r"supply chain.*(disruption|issue)",
    ),
    IntentCategory.RESTRICTED_QUERY: _compile(
        r"breakdown.*score",
        r"factor.*(score|detail|breakdown)",
        r"show.*individual.*factor",
        r"specific.*(score|rating)",
    ),
    IntentCategory.INFLATION_SUMMARY: _compile(
        r"inflation (summary|update|overview|report)",
        r"what('?s| is| has) inflation",
        r"price (changes|movements?) (this|last) (month|quarter)",
        r"(top|biggest) (price )?(movers|increases)",
    ),
    IntentCategory.INFLATION_DRIVERS: _compile(
        r"what('?s| is) driving.*(price|cost|inflation)",
        r"why (did|have|are|is).*(price|cost)s?.*(go|gone|going|ris|increas|up)",
        r"(price|cost) drivers?",
        r"drivers? (of|behind).*(inflation|price)",
    ),
    IntentCategory.INFLATION_IMPACT: _compile(
        r"(impact|affect).*(my )?(spend|budget|portfolio)",
        r"inflation.*(impact|exposure)",
        r"how much.*(more|extra).*(pay|spend|cost)",
        r"exposure to.*(price|inflation|commodit)",
    ),
    IntentCategory.INFLATION_JUSTIFICATION: _compile(
        r"justif(y|ied|ication)",
        r"price increase.*(fair|valid|reasonable)",
        r"supplier.*(asking|requesting|wants).*(increase|more)",
        r"(validate|challenge).*(increase|price)",
    ),
    IntentCategory.INFLATION_SCENARIOS: _compile(
        r"what if",
        r"scenario",
        r"if .*(prices?|costs?) (rise|increase|go up|fall|drop)",
        r"(forecast|projection).*(price|cost)",
    ),
    IntentCategory.INFLATION_COMMUNICATION: _compile(
        r"(executive|leadership|cfo|stakeholder).*(brief|summary|update|deck)",
        r"(brief|explain|present).*(leadership|executives?|stakeholders?|cfo)",
        r"talking points",
    ),
    IntentCategory.INFLATION_BENCHMARK: _compile(
        r"(compare|benchmark).*(market|index) (price|rate)",
        r"(paying|price).*(above|below|vs\.?|versus).*(market|index)",
        r"market (price|rate|index) (benchmark|comparison)",
    ),
}

# Queries that should pull in external research
RESEARCH_TRIGGERS = _compile(
    r"what('?s| is) happening",
    r"any news",
    r"in the news",
    r"market.*(event|condition|trend|outlook)",
    r"industry.*(trend|outlook|risk|average|normal)",
    r"is this normal",
    r"how.*(compare|benchmark).*peer",
    r"geopolitical",
    r"supply chain.*(disruption|issue)",
    r"what.*(might|could|will).*change",
    r"forecast|predict|projection",
    r"regulatory|compliance.*news",
    r"what.*(others|peers|companies) do",
    r"best practice",
)

RESEARCH_SUB_INTENTS = {
    SubIntent.BENCHMARK,
    SubIntent.NEWS_EVENTS,
    SubIntent.INDUSTRY_CONTEXT,
    SubIntent.PROJECTIONS,
    SubIntent.STRATEGIC_ADVICE,
}

REGION_PATTERNS: dict[str, re.Pattern[str]] = {
    "North America": re.compile(
        r"north america|\busa?\b|united states|canada|mexico", re.I
    ),
    "Europe": re.compile(r"europe|\beu\b|\buk\b|germany|france|belgium", re.I),
    "Asia Pacific": re.compile(
        r"\basia|\bapac\b|china|japan|india|singapore|thailand|vietnam", re.I
    ),
    "Latin America": re.compile(r"latin america|south america|brazil|chile", re.I),
}

COMMODITIES = (
    "steel",
    "aluminum",
    "copper",
    "lithium",
    "nickel",
    "zinc",
    "cobalt",
    "resin",
    "plastic",
    "corrugated",
    "pulp",
    "natural gas",
    "crude oil",
    "diesel",
    "cotton",
)

CATEGORIES = (
    "packaging",
    "logistics",
    "freight",
    "electronics",
    "semiconductors",
    "chemicals",
    "metals",
    "raw materials",
    "it services",
    "mro",
    "energy",
)

_RISK_LEVEL_RE = re.compile(r"(high|medium-high|medium|low)[\s-]*risk", re.I)
_TIMEFRAME_RE = re.compile(
    r"\b((last|past|next) (\d+ )?(week|month|quarter|year)s?"
    r"|this (week|month|quarter|year)"
    r"|\d+[- ]?(month|year)s?"
    r"|q[1-4]( \d{4})?"
    r"|ytd)\b",
    re.I,
)
_ACTION_RE = re.compile(r"\b(find|create|export|download|compare|follow|unfollow|set.?up)\b", re.I)
_QUOTED_RE = re.compile(r"[\"']([^\"']{2,60})[\"']")
_ABOUT_RE = re.compile(r"(?:about|for|of) ([A-Z][\w&.\-]*(?: [A-Z][\w&.\-]*)*)")
_FACTOR_RE = re.compile(r"\b(esg|financial|cyber\w*|quality|delivery|sanction\w*|diversity)\b", re.I)


def extract_entities(query: str) -> ExtractedEntities:
    """Pull risk level, region, commodity, category, timeframe, action and supplier from a query."""
    entities = ExtractedEntities()
    lowered = query.lower()

    risk_match = _RISK_LEVEL_RE.search(query)
    if risk_match:
        entities.risk_level = risk_match.group(1).lower()

    for region, pattern in REGION_PATTERNS.items():
        if pattern.search(query):
            entities.region = region
            break

    for commodity in COMMODITIES:
        if re.search(rf"\b{commodity}\b", lowered):
            entities.commodity = commodity
            break

    for category in CATEGORIES:
        if re.search(rf"\b{category}\b", lowered):
            entities.category = category
            break

    timeframe_match = _TIMEFRAME_RE.search(query)
    if timeframe_match:
        entities.timeframe = timeframe_match.group(1).lower()

    action_match = _ACTION_RE.search(query)
    if action_match:
        entities.action = action_match.group(1).lower()

    quoted = _QUOTED_RE.search(query)
    if quoted:
        entities.supplier = quoted.group(1).strip()
    else:
        about = _ABOUT_RE.search(query)
        if about:
            entities.supplier = about.group(1).strip()

    return entities


def detect_sub_intent(query: str, category: IntentCategory) -> SubIntent:
    """Refine a category into a sub-intent for granular routing."""
    q = query.lower()

    if category == IntentCategory.PORTFOLIO_OVERVIEW:
        if re.search(r"spend|dollar|exposure", q):
            return SubIntent.SPEND_WEIGHTED
        if re.search(r"by.*(category|region|location)", q):
            return SubIntent.BY_DIMENSION
        if re.search(r"compare.*peer|benchmark|normal", q):
            return SubIntent.BENCHMARK
        return SubIntent.OVERALL_SUMMARY

    if category == IntentCategory.FILTERED_DISCOVERY:
        has_level = bool(_RISK_LEVEL_RE.search(q))
        has_region = any(p.search(q) for p in REGION_PATTERNS.values())
        if has_level and has_region:
            return SubIntent.COMPOUND_FILTER
        if _FACTOR_RE.search(q):
            return SubIntent.BY_RISK_FACTOR
        if has_level:
            return SubIntent.BY_RISK_LEVEL
        return SubIntent.BY_ATTRIBUTE

    if category == IntentCategory.SUPPLIER_DEEP_DIVE:
        if re.search(r"news|event|happening", q):
            return SubIntent.NEWS_EVENTS
        if re.search(r"industry|market|sector", q):
            return SubIntent.INDUSTRY_CONTEXT
        if re.search(r"history|historical|over time", q):
            return SubIntent.HISTORICAL
        if "score" in q:
            return SubIntent.SCORE_INQUIRY
        return SubIntent.SUPPLIER_OVERVIEW

    if category == IntentCategory.TREND_DETECTION:
        if re.search(r"why.*change", q):
            return SubIntent.WHY_CHANGED
        if re.search(r"might|could|will|predict|forecast", q):
            return SubIntent.PROJECTIONS
        if re.search(r"worsen|improv", q):
            return SubIntent.CHANGE_DIRECTION
        return SubIntent.RECENT_CHANGES

    if category == IntentCategory.ACTION_TRIGGER:
        if "alternative" in q:
            return SubIntent.FIND_ALTERNATIVES
        if re.search(r"plan|strategy", q):
            return SubIntent.MITIGATION_PLAN
        if re.search(r"explain|present|stakeholder", q):
            return SubIntent.COMMUNICATION_HELP
        if re.search(r"should|advice|recommend", q):
            return SubIntent.STRATEGIC_ADVICE
        return SubIntent.NONE

    if category == IntentCategory.INFLATION_SUMMARY:
        if re.search(r"top|biggest|movers", q):
            return SubIntent.TOP_MOVERS
        return SubIntent.MONTHLY_CHANGES

    if category == IntentCategory.INFLATION_DRIVERS:
        if re.search(r"market|macro|econom|global", q):
            return SubIntent.MARKET_DRIVERS
        return SubIntent.COMMODITY_DRIVERS

    if category == IntentCategory.INFLATION_IMPACT:
        if re.search(r"categor", q):
            return SubIntent.CATEGORY_EXPOSURE
        return SubIntent.SPEND_IMPACT

    if category == IntentCategory.INFLATION_JUSTIFICATION:
        if re.search(r"negotiat|push back|leverage", q):
            return SubIntent.NEGOTIATE_SUPPORT
        if re.search(r"fair|market rate|reasonable", q):
            return SubIntent.MARKET_FAIRNESS
        return SubIntent.VALIDATE_INCREASE

    if category == IntentCategory.INFLATION_SCENARIOS:
        if re.search(r"forecast|predict|outlook|next (quarter|year)", q):
            return SubIntent.PRICE_FORECAST
        if "budget" in q:
            return SubIntent.BUDGET_IMPACT
        return SubIntent.WHAT_IF_INCREASE

    if category == IntentCategory.INFLATION_COMMUNICATION:
        if re.search(r"deck|presentation|slides|stakeholder", q):
            return SubIntent.STAKEHOLDER_DECK
        return SubIntent.EXECUTIVE_BRIEF

    if category == IntentCategory.INFLATION_BENCHMARK:
        return SubIntent.MARKET_FAIRNESS

    return SubIntent.NONE


def _score_categories(query: str) -> dict[IntentCategory, int]:
    return {
        category: sum(1 for pattern in patterns if pattern.search(query))
        for category, patterns in INTENT_PATTERNS.items()
    }


def _carry_over_entities(entities: ExtractedEntities, context: list[str]) -> ExtractedEntities:
    """Fill supplier/commodity/region gaps from the most recent prior turn that names them."""
    for prior in reversed(context):
        prior_entities = extract_entities(prior)
        for field in ("supplier", "commodity", "region"):
            if getattr(entities, field) is None and getattr(prior_entities, field) is not None:
                setattr(entities, field, getattr(prior_entities, field))
    return entities


def _classify(query: str, context: list[str] | None) -> IntentResult:
    normalized = query.strip()
    entities = extract_entities(normalized)
    if context:
        entities = _carry_over_entities(entities, context)

    requires_research = any(p.search(normalized) for p in RESEARCH_TRIGGERS)

    scores = _score_categories(normalized)
    best_count = max(scores.values(), default=0)

    if best_count == 0:
        return IntentResult(
            category=IntentCategory.GENERAL,
            sub_intent=SubIntent.NONE,
            confidence=0.0,
            extracted_entities=entities,
            requires_research=requires_research,
        )

    # First category in declaration order with the best count
    category = next(c for c in IntentCategory if scores.get(c, 0) == best_count)
    sub_intent = detect_sub_intent(normalized, category)
    confidence = min(0.95, 0.6 + best_count * 0.1)

    return IntentResult(
        category=category,
        sub_intent=sub_intent,
        confidence=round(confidence, 2),
        extracted_entities=entities,
        requires_research=(
            requires_research
            or sub_intent in RESEARCH_SUB_INTENTS
            or category == IntentCategory.MARKET_CONTEXT
        ),
        requires_handoff=category == IntentCategory.RESTRICTED_QUERY,
        handoff_reason=HANDOFF_REASON if category == IntentCategory.RESTRICTED_QUERY else None,
    )


def classify_intent(
    query: str,
    builder_hint: BuilderHint | None = None,
    context: list[str] | None = None,
) -> IntentResult:
    """
    Classify a user utterance.

    Args:
        query: Raw utterance text
        builder_hint: Routing forced by the UI; copied verbatim when present
        context: Recent prior user utterances, oldest first

    Returns:
        IntentResult. Never raises; falls back to ``general`` with zero confidence.
    """
    if builder_hint is not None:
        return IntentResult(
            category=builder_hint.category,
            sub_intent=builder_hint.sub_intent,
            confidence=1.0,
            extracted_entities=builder_hint.entities or ExtractedEntities(),
            requires_handoff=builder_hint.category == IntentCategory.RESTRICTED_QUERY,
            handoff_reason=(
                HANDOFF_REASON if builder_hint.category == IntentCategory.RESTRICTED_QUERY else None
            ),
        )

    try:
        result = _classify(query or "", context)
    except Exception as e:
        logger.warning(f"Intent classification failed, using general: {e}")
        return IntentResult()

    logger.debug(
        f"Classified intent {result.category.value}/{result.sub_intent.value} "
        f"confidence={result.confidence}"
    )
    return result
