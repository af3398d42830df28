"""Canonical domain model: suppliers, risk scores, portfolios, commodities, sources.

These are read-only snapshots from the engine's point of view. Two invariants
are enforced on construction:

- ``RiskScore.level`` is always ``level_from_score(score)``.
- A restricted-tier ``RiskFactor`` never carries a numeric score.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Vocabularies
# ============================================================================


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM_HIGH = "medium-high"
    MEDIUM = "medium"
    LOW = "low"
    UNRATED = "unrated"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


class DataTier(str, Enum):
    """Displayability class of a risk factor."""

    FREELY_DISPLAYABLE = "freely-displayable"
    CONDITIONALLY_DISPLAYABLE = "conditionally-displayable"
    RESTRICTED = "restricted"


class Criticality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IntentCategory(str, Enum):
    """Closed intent vocabulary. Declaration order is the tie-break priority."""

    PORTFOLIO_OVERVIEW = "portfolio_overview"
    FILTERED_DISCOVERY = "filtered_discovery"
    SUPPLIER_DEEP_DIVE = "supplier_deep_dive"
    TREND_DETECTION = "trend_detection"
    EXPLANATION_WHY = "explanation_why"
    ACTION_TRIGGER = "action_trigger"
    COMPARISON = "comparison"
    SETUP_CONFIG = "setup_config"
    REPORTING_EXPORT = "reporting_export"
    MARKET_CONTEXT = "market_context"
    RESTRICTED_QUERY = "restricted_query"
    INFLATION_SUMMARY = "inflation_summary"
    INFLATION_DRIVERS = "inflation_drivers"
    INFLATION_IMPACT = "inflation_impact"
    INFLATION_JUSTIFICATION = "inflation_justification"
    INFLATION_SCENARIOS = "inflation_scenarios"
    INFLATION_COMMUNICATION = "inflation_communication"
    INFLATION_BENCHMARK = "inflation_benchmark"
    GENERAL = "general"


class SubIntent(str, Enum):
    # Portfolio
    OVERALL_SUMMARY = "overall_summary"
    SPEND_WEIGHTED = "spend_weighted"
    BY_DIMENSION = "by_dimension"
    BENCHMARK = "benchmark"
    # Discovery
    BY_RISK_LEVEL = "by_risk_level"
    BY_RISK_FACTOR = "by_risk_factor"
    BY_ATTRIBUTE = "by_attribute"
    COMPOUND_FILTER = "compound_filter"
    # Supplier
    SUPPLIER_OVERVIEW = "supplier_overview"
    SCORE_INQUIRY = "score_inquiry"
    NEWS_EVENTS = "news_events"
    INDUSTRY_CONTEXT = "industry_context"
    HISTORICAL = "historical"
    # Trend
    RECENT_CHANGES = "recent_changes"
    CHANGE_DIRECTION = "change_direction"
    WHY_CHANGED = "why_changed"
    PROJECTIONS = "projections"
    # Action
    FIND_ALTERNATIVES = "find_alternatives"
    MITIGATION_PLAN = "mitigation_plan"
    COMMUNICATION_HELP = "communication_help"
    STRATEGIC_ADVICE = "strategic_advice"
    # Inflation
    MONTHLY_CHANGES = "monthly_changes"
    TOP_MOVERS = "top_movers"
    COMMODITY_DRIVERS = "commodity_drivers"
    MARKET_DRIVERS = "market_drivers"
    SPEND_IMPACT = "spend_impact"
    CATEGORY_EXPOSURE = "category_exposure"
    VALIDATE_INCREASE = "validate_increase"
    NEGOTIATE_SUPPORT = "negotiate_support"
    MARKET_FAIRNESS = "market_fairness"
    WHAT_IF_INCREASE = "what_if_increase"
    BUDGET_IMPACT = "budget_impact"
    PRICE_FORECAST = "price_forecast"
    EXECUTIVE_BRIEF = "executive_brief"
    STAKEHOLDER_DECK = "stakeholder_deck"
    NONE = "none"


class SourceType(str, Enum):
    WEB = "web"
    NEWS = "news"
    BEROE = "beroe"
    INTERNAL_DATA = "internal_data"
    SUPPLIER_DATA = "supplier_data"
    REPORT = "report"
    DATA = "data"
    ANALYSIS = "analysis"
    DND = "dnd"
    ECOVADIS = "ecovadis"


class SourceMix(str, Enum):
    INTERNAL_ONLY = "internal_only"
    INTERNAL_PLUS_PARTNERS = "internal_plus_partners"
    INTERNAL_PLUS_WEB = "internal_plus_web"
    WEB_ONLY = "web_only"
    ALL = "all"


WEB_SOURCE_TYPES = frozenset({SourceType.WEB, SourceType.NEWS})
INTERNAL_SOURCE_TYPES = frozenset(
    {
        SourceType.BEROE,
        SourceType.INTERNAL_DATA,
        SourceType.SUPPLIER_DATA,
        SourceType.REPORT,
        SourceType.DATA,
        SourceType.ANALYSIS,
    }
)
PARTNER_SOURCE_TYPES = frozenset({SourceType.DND, SourceType.ECOVADIS})


# Factor id -> displayability tier
RISK_FACTOR_TIERS: dict[str, DataTier] = {
    "overall_srs": DataTier.FREELY_DISPLAYABLE,
    "esg": DataTier.CONDITIONALLY_DISPLAYABLE,
    "delivery": DataTier.CONDITIONALLY_DISPLAYABLE,
    "quality": DataTier.CONDITIONALLY_DISPLAYABLE,
    "diversity": DataTier.CONDITIONALLY_DISPLAYABLE,
    "scalability": DataTier.CONDITIONALLY_DISPLAYABLE,
    "freight": DataTier.CONDITIONALLY_DISPLAYABLE,
    "financial": DataTier.RESTRICTED,
    "cybersecurity": DataTier.RESTRICTED,
    "sanctions": DataTier.RESTRICTED,
    "pep": DataTier.RESTRICTED,
    "ame": DataTier.RESTRICTED,
}

# How users refer to restricted factors in free text
RESTRICTED_FACTOR_ALIASES: dict[str, re.Pattern[str]] = {
    "financial": re.compile(r"\bfinancial|\bcredit (score|rating|health)", re.I),
    "cybersecurity": re.compile(r"\bcyber", re.I),
    "sanctions": re.compile(r"\bsanction", re.I),
    "pep": re.compile(r"\bpep\b|politically exposed", re.I),
    "ame": re.compile(r"\bame\b|adverse media", re.I),
}


# ============================================================================
# Helpers
# ============================================================================


def level_from_score(score: float) -> RiskLevel:
    """Map an SRS score to its risk level using the fixed cutoffs."""
    if score >= 75:
        return RiskLevel.HIGH
    if score >= 60:
        return RiskLevel.MEDIUM_HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    if score > 0:
        return RiskLevel.LOW
    return RiskLevel.UNRATED


def format_spend(amount: float) -> str:
    """Format a dollar amount with a B/M/K suffix and one decimal."""
    if amount >= 1_000_000_000:
        return f"${amount / 1_000_000_000:.1f}B"
    if amount >= 1_000_000:
        return f"${amount / 1_000_000:.1f}M"
    if amount >= 1_000:
        return f"${amount / 1_000:.1f}K"
    return f"${amount:.0f}"


RESTRICTED_QUERY_PATTERNS = [
    re.compile(r"why.*(score|risk|rating)", re.I),
    re.compile(r"what.*(driving|causing|factors)", re.I),
    re.compile(r"explain.*(score|risk)", re.I),
    re.compile(r"breakdown", re.I),
    re.compile(r"financial.*(score|health|rating)", re.I),
    re.compile(r"cyber.*(score|security)", re.I),
    re.compile(r"sanction", re.I),
]


def is_restricted_query(text: str) -> bool:
    """Advisory check for questions that dig into restricted factor detail."""
    return any(pattern.search(text) for pattern in RESTRICTED_QUERY_PATTERNS)


def restricted_factor_mentioned(text: str) -> str | None:
    """Return the id of the first restricted factor the text refers to."""
    for factor_id, pattern in RESTRICTED_FACTOR_ALIASES.items():
        if pattern.search(text):
            return factor_id
    return None


def tier_for_factor(factor_id: str) -> DataTier:
    """Unknown factors default to conditionally displayable."""
    return RISK_FACTOR_TIERS.get(factor_id, DataTier.CONDITIONALLY_DISPLAYABLE)


# ============================================================================
# Entities
# ============================================================================


class Location(BaseModel):
    city: str = ""
    country: str = ""
    region: str = ""


class RiskFactor(BaseModel):
    """One component of a supplier risk score."""

    id: str
    name: str
    tier: DataTier
    weight: float = Field(default=0.0, ge=0.0, le=1.0)
    score: float | None = Field(default=None, description="Omitted for restricted factors")
    rating: str | None = None

    @model_validator(mode="after")
    def _strip_restricted_score(self) -> "RiskFactor":
        if self.tier == DataTier.RESTRICTED:
            self.score = None
        return self

    @property
    def is_restricted(self) -> bool:
        return self.tier == DataTier.RESTRICTED


class ScoreHistoryPoint(BaseModel):
    date: str
    score: float


class RiskScore(BaseModel):
    """Supplier Risk Score (SRS)."""

    score: float = Field(..., ge=0, le=100)
    previous_score: float | None = Field(default=None, ge=0, le=100)
    level: RiskLevel
    trend: Trend = Trend.STABLE
    last_updated: str = ""
    factors: list[RiskFactor] = Field(default_factory=list)
    score_history: list[ScoreHistoryPoint] | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_level(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("level") is None and "score" in data:
            data = {**data, "level": level_from_score(float(data["score"]))}
        return data

    @model_validator(mode="after")
    def _check_level(self) -> "RiskScore":
        expected = level_from_score(self.score)
        if self.level != expected:
            raise ValueError(
                f"level {self.level.value} does not match score {self.score} (expected {expected.value})"
            )
        return self


class Supplier(BaseModel):
    id: str
    name: str
    category: str = ""
    industry: str = ""
    location: Location = Field(default_factory=Location)
    spend: float = 0.0
    spend_formatted: str = ""
    criticality: Criticality = Criticality.MEDIUM
    is_followed: bool = True
    srs: RiskScore

    @model_validator(mode="after")
    def _fill_spend_formatted(self) -> "Supplier":
        if not self.spend_formatted:
            self.spend_formatted = format_spend(self.spend)
        return self


class RiskChange(BaseModel):
    supplier_id: str
    supplier_name: str
    previous_score: float
    current_score: float
    previous_level: RiskLevel | None = None
    current_level: RiskLevel | None = None
    changed_at: str = ""
    direction: str = Field(default="worsened", description="worsened or improved")

    @model_validator(mode="after")
    def _derive(self) -> "RiskChange":
        if self.previous_level is None:
            self.previous_level = level_from_score(self.previous_score)
        if self.current_level is None:
            self.current_level = level_from_score(self.current_score)
        self.direction = "worsened" if self.current_score > self.previous_score else "improved"
        return self

    @property
    def delta(self) -> float:
        return self.current_score - self.previous_score


class RiskDistribution(BaseModel):
    high: int = 0
    medium_high: int = 0
    medium: int = 0
    low: int = 0
    unrated: int = 0

    @property
    def total(self) -> int:
        return self.high + self.medium_high + self.medium + self.low + self.unrated


class Portfolio(BaseModel):
    total_suppliers: int
    total_spend: float = 0.0
    total_spend_formatted: str = ""
    distribution: RiskDistribution
    recent_changes: list[RiskChange] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_distribution(self) -> "Portfolio":
        if self.distribution.total != self.total_suppliers:
            raise ValueError(
                f"distribution sums to {self.distribution.total}, expected {self.total_suppliers}"
            )
        if not self.total_spend_formatted:
            self.total_spend_formatted = format_spend(self.total_spend)
        return self


_DISTRIBUTION_FIELD = {
    RiskLevel.HIGH: "high",
    RiskLevel.MEDIUM_HIGH: "medium_high",
    RiskLevel.MEDIUM: "medium",
    RiskLevel.LOW: "low",
    RiskLevel.UNRATED: "unrated",
}


def build_portfolio(suppliers: Iterable[Supplier], changes: Iterable[RiskChange] = ()) -> Portfolio:
    """Summarize the followed subset of suppliers into a portfolio snapshot."""
    followed = [s for s in suppliers if s.is_followed]
    counts = {field: 0 for field in _DISTRIBUTION_FIELD.values()}
    for supplier in followed:
        counts[_DISTRIBUTION_FIELD[supplier.srs.level]] += 1

    return Portfolio(
        total_suppliers=len(followed),
        total_spend=sum(s.spend for s in followed),
        distribution=RiskDistribution(**counts),
        recent_changes=list(changes),
    )


class Commodity(BaseModel):
    id: str
    name: str
    category: str = ""
    current_price: float
    previous_price: float
    unit: str = "mt"
    currency: str = "USD"
    market: str = ""
    last_updated: str = ""

    @property
    def change_percent(self) -> float:
        if not self.previous_price:
            return 0.0
        return round((self.current_price - self.previous_price) / self.previous_price * 100, 2)


class InflationSnapshot(BaseModel):
    """Period-level view of commodity price movement against the portfolio."""

    period: str
    commodities: list[Commodity] = Field(default_factory=list)
    portfolio_exposure: float = 0.0

    @property
    def overall_change_percent(self) -> float:
        if not self.commodities:
            return 0.0
        return round(sum(c.change_percent for c in self.commodities) / len(self.commodities), 2)


class Source(BaseModel):
    """Retrieved material. ``type`` is the union tag."""

    type: SourceType
    name: str
    url: str | None = None
    snippet: str | None = None
    published_at: datetime | None = None


def determine_source_mix(sources: Iterable[Source]) -> SourceMix:
    """Derive the source mix from the set of source types present."""
    types = {s.type for s in sources}
    has_web = bool(types & WEB_SOURCE_TYPES)
    has_internal = bool(types & INTERNAL_SOURCE_TYPES)
    has_partner = bool(types & PARTNER_SOURCE_TYPES)

    if has_internal and has_web and has_partner:
        return SourceMix.ALL
    if has_internal and has_web:
        return SourceMix.INTERNAL_PLUS_WEB
    if has_internal and has_partner:
        return SourceMix.INTERNAL_PLUS_PARTNERS
    if has_internal:
        return SourceMix.INTERNAL_ONLY
    if has_web and has_partner:
        return SourceMix.ALL
    if has_web:
        return SourceMix.WEB_ONLY
    if has_partner:
        return SourceMix.INTERNAL_PLUS_PARTNERS
    return SourceMix.INTERNAL_ONLY


# ============================================================================
# Intent result
# ============================================================================


class ExtractedEntities(BaseModel):
    commodity: str | None = None
    category: str | None = None
    supplier: str | None = None
    region: str | None = None
    timeframe: str | None = None
    risk_level: str | None = None
    action: str | None = None


class BuilderHint(BaseModel):
    """Forces routing when the UI already knows the intent."""

    category: IntentCategory
    sub_intent: SubIntent = SubIntent.NONE
    entities: ExtractedEntities | None = None


class IntentResult(BaseModel):
    category: IntentCategory = IntentCategory.GENERAL
    sub_intent: SubIntent = SubIntent.NONE
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)
    requires_research: bool = False
    requires_handoff: bool = False
    handoff_reason: str | None = None


class Utterance(BaseModel):
    text: str
    timestamp: datetime | None = None
    builder_hint: BuilderHint | None = None


# ============================================================================
# Value ladder
# ============================================================================


class Analyst(BaseModel):
    id: str
    name: str
    title: str = ""
    specialty: str
    availability: str = "available"
    response_time: str = "~2 hours"


class Expert(BaseModel):
    id: str
    name: str
    title: str
    former_company: str = ""
    expertise: list[str] = Field(default_factory=list)
    is_top_voice: bool = False


class AnalystConnect(BaseModel):
    available: bool
    analyst: Analyst
    cta: str


class Recommendation(BaseModel):
    analyst_name: str
    reason: str


class ExpertDeepDive(BaseModel):
    available: bool
    expert: Expert
    cta: str
    is_premium: bool = True
    recommended_by: Recommendation | None = None


class CommunityLink(BaseModel):
    available: bool
    related_thread_count: int = 0
    cta: str = "Ask the community"


class ValueLadder(BaseModel):
    analyst_connect: AnalystConnect | None = None
    expert_deep_dive: ExpertDeepDive | None = None
    community: CommunityLink | None = None
