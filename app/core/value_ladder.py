"""
Value ladder and source-enhancement offers attached to a response.

Both are pure functions of the response context: the analyst is matched by
category or commodity through a fixed specialty table, the expert by an
expertise substring, and source enhancement by the source mix alone.
"""

from typing import Literal

from pydantic import BaseModel, Field

from app.core.domain import (
    Analyst,
    AnalystConnect,
    Expert,
    ExpertDeepDive,
    IntentCategory,
    Recommendation,
    SourceMix,
    ValueLadder,
)

# Negotiation and scenario analysis are covered by the justification and
# scenario intents of the inflation family.
COMPLEX_INTENTS = frozenset(
    {
        IntentCategory.MARKET_CONTEXT,
        IntentCategory.COMPARISON,
        IntentCategory.EXPLANATION_WHY,
        IntentCategory.INFLATION_JUSTIFICATION,
        IntentCategory.INFLATION_SCENARIOS,
    }
)


# ============================================================================
# People
# ============================================================================

ANALYSTS: tuple[Analyst, ...] = (
    Analyst(
        id="analyst_001",
        name="Sarah Chen",
        title="Senior Category Analyst",
        specialty="Metals & Mining",
        response_time="~2 hours",
    ),
    Analyst(
        id="analyst_002",
        name="Michael Torres",
        title="Principal Analyst",
        specialty="Packaging & Paper",
        response_time="~4 hours",
    ),
    Analyst(
        id="analyst_003",
        name="Emma Williams",
        title="Category Lead",
        specialty="Chemicals & Energy",
        availability="busy",
        response_time="~1 day",
    ),
    Analyst(
        id="analyst_004",
        name="James Park",
        title="Senior Analyst",
        specialty="Logistics & Freight",
        response_time="~3 hours",
    ),
)

EXPERTS: tuple[Expert, ...] = (
    Expert(
        id="expert_001",
        name="Dr. Robert Hayes",
        title="Former VP Supply Chain",
        former_company="Tesla",
        expertise=["EV Battery Materials", "Lithium Supply Chain"],
        is_top_voice=True,
    ),
    Expert(
        id="expert_002",
        name="Patricia Morgan",
        title="Former Chief Procurement Officer",
        former_company="Unilever",
        expertise=["Sustainable Packaging", "FMCG Supply"],
        is_top_voice=True,
    ),
    Expert(
        id="expert_003",
        name="Thomas Schmidt",
        title="Former Managing Director",
        former_company="ThyssenKrupp",
        expertise=["Steel Markets", "European Manufacturing"],
    ),
    Expert(
        id="expert_004",
        name="Lisa Chang",
        title="Former Head of Strategic Sourcing",
        former_company="Apple",
        expertise=["Electronics", "Asia-Pacific Supply Chain"],
        is_top_voice=True,
    ),
)

# Keyword in a category/commodity -> analyst specialty. Checked in order.
SPECIALTY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("metals", "Metals & Mining"),
    ("steel", "Metals & Mining"),
    ("aluminum", "Metals & Mining"),
    ("copper", "Metals & Mining"),
    ("packaging", "Packaging & Paper"),
    ("corrugated", "Packaging & Paper"),
    ("paper", "Packaging & Paper"),
    ("chemicals", "Chemicals & Energy"),
    ("energy", "Chemicals & Energy"),
    ("lithium", "Chemicals & Energy"),
    ("logistics", "Logistics & Freight"),
    ("freight", "Logistics & Freight"),
    ("shipping", "Logistics & Freight"),
)


def _search_terms(
    commodity: str | None, category: str | None, supplier: str | None
) -> list[str]:
    return [term.lower() for term in (commodity, category, supplier) if term]


def match_analyst(terms: list[str]) -> Analyst:
    """First analyst whose specialty matches a term, else the first analyst."""
    for term in terms:
        for keyword, specialty in SPECIALTY_KEYWORDS:
            if keyword in term:
                return next(a for a in ANALYSTS if a.specialty == specialty)
    return ANALYSTS[0]


def match_expert(terms: list[str]) -> Expert:
    """First expert whose expertise contains a term, else the first expert."""
    for expert in EXPERTS:
        expertise = ", ".join(expert.expertise).lower()
        if any(term in expertise for term in terms):
            return expert
    return EXPERTS[0]


def build_value_ladder(
    intent: IntentCategory,
    commodity: str | None = None,
    category: str | None = None,
    supplier: str | None = None,
) -> ValueLadder:
    terms = _search_terms(commodity, category, supplier)
    analyst = match_analyst(terms)
    ladder = ValueLadder(
        analyst_connect=AnalystConnect(
            available=True,
            analyst=analyst,
            cta=f"Ask {analyst.name.split(' ')[0]} about this",
        )
    )

    if intent in COMPLEX_INTENTS:
        expert = match_expert(terms)
        ladder.expert_deep_dive = ExpertDeepDive(
            available=True,
            expert=expert,
            cta="Request expert intro",
            recommended_by=Recommendation(
                analyst_name=analyst.name,
                reason=f"{expert.name} has deep expertise in this area",
            ),
        )
    return ladder


# ============================================================================
# Source enhancement
# ============================================================================


EnhancementType = Literal["add_web", "deep_research", "analyst", "expert"]


class EnhancementSuggestion(BaseModel):
    type: EnhancementType
    text: str
    description: str
    icon: str


class SourceEnhancement(BaseModel):
    current_source_type: SourceMix
    suggestions: list[EnhancementSuggestion] = Field(default_factory=list)


def build_source_enhancement(mix: SourceMix, intent: IntentCategory | None = None) -> SourceEnhancement:
    """Suggest richer sourcing for a response, from its source mix."""
    suggestions: list[EnhancementSuggestion] = []

    if mix == SourceMix.INTERNAL_ONLY:
        suggestions.append(
            EnhancementSuggestion(
                type="add_web",
                text="Add web sources",
                description="Include recent news, filings, and market reports",
                icon="globe",
            )
        )

    if mix != SourceMix.ALL:
        suggestions.append(
            EnhancementSuggestion(
                type="deep_research",
                text="Deep research",
                description="Multi-source analysis with verification",
                icon="search",
            )
        )

    if intent in COMPLEX_INTENTS:
        if mix in (SourceMix.INTERNAL_ONLY, SourceMix.INTERNAL_PLUS_PARTNERS):
            suggestions.append(
                EnhancementSuggestion(
                    type="analyst",
                    text="Ask an analyst",
                    description="Get expert validation from the research team",
                    icon="user",
                )
            )
        suggestions.append(
            EnhancementSuggestion(
                type="expert",
                text="Expert consultation",
                description="Connect with industry specialists",
                icon="sparkles",
            )
        )

    return SourceEnhancement(current_source_type=mix, suggestions=suggestions)
