"""Pydantic schemas for artifact payloads.

``ArtifactPayload`` is a discriminated union on ``type``; every artifact type
the builder can produce has exactly one variant.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from app.core.domain import Criticality, DataTier, RiskDistribution, RiskLevel, Source, Trend


# ============================================================================
# Supplier family
# ============================================================================


class SrsSummary(BaseModel):
    score: float | None
    level: RiskLevel
    trend: Trend


class SupplierTableRow(BaseModel):
    id: str
    name: str
    category: str
    location: str
    spend: float
    spend_formatted: str
    srs: SrsSummary


class SupplierTablePayload(BaseModel):
    type: Literal["supplier_table"] = "supplier_table"
    suppliers: list[SupplierTableRow]
    total_count: int
    categories: list[str]
    locations: list[str]


class DetailRiskFactor(BaseModel):
    name: str
    weight: float
    tier: DataTier
    is_restricted: bool
    category: Literal["financial", "compliance", "operational", "external"]
    score: float | None = None


class SupplierEvent(BaseModel):
    id: str
    date: str
    title: str
    type: Literal["alert", "update"]
    summary: str


class HistoryPoint(BaseModel):
    date: str
    score: float
    level: RiskLevel
    change: float | None = None


class SupplierDetail(BaseModel):
    id: str
    name: str
    category: str
    city: str
    country: str
    spend: float
    spend_formatted: str
    criticality: Criticality
    srs: SrsSummary
    last_updated: str
    risk_factors: list[DetailRiskFactor]
    events: list[SupplierEvent]
    history: list[HistoryPoint]


class SupplierDetailPayload(BaseModel):
    type: Literal["supplier_detail"] = "supplier_detail"
    supplier: SupplierDetail


class ComparisonEntry(BaseModel):
    id: str
    name: str
    category: str
    location: str
    srs: SrsSummary
    metrics: dict[str, float | Literal["restricted"]]
    spend: str
    relationship: Literal["Strategic", "Preferred", "Approved"]
    pros: list[str]
    cons: list[str]


class SupplierComparisonPayload(BaseModel):
    type: Literal["supplier_comparison"] = "supplier_comparison"
    suppliers: list[ComparisonEntry]


class PortfolioTrends(BaseModel):
    period: str = "30d"
    new_high_risk: int
    improved: int
    deteriorated: int


class PortfolioAlert(BaseModel):
    id: str
    headline: str
    type: Literal["critical"] = "critical"
    affected_count: int = 1
    timestamp: str


class TopMover(BaseModel):
    id: str
    name: str
    previous_score: float
    current_score: float
    direction: Literal["up", "down"]


class PortfolioDashboardPayload(BaseModel):
    type: Literal["portfolio_dashboard"] = "portfolio_dashboard"
    total_suppliers: int
    distribution: RiskDistribution
    trends: PortfolioTrends
    alerts: list[PortfolioAlert]
    top_movers: list[TopMover]
    last_updated: str


class AlternativeSupplier(BaseModel):
    id: str
    name: str
    category: str
    location: str
    srs: SrsSummary
    spend_formatted: str
    match_score: int = Field(..., ge=70, le=98)
    match_reasons: list[str]


class SupplierAlternativesPayload(BaseModel):
    type: Literal["supplier_alternatives"] = "supplier_alternatives"
    current_supplier: SupplierTableRow
    alternatives: list[AlternativeSupplier]
    total_count: int


# ============================================================================
# Inflation family
# ============================================================================


class PriceChange(BaseModel):
    absolute: float = 0.0
    percent: float = 0.0
    direction: Literal["up", "down", "stable"] = "stable"


class MoneyAmount(BaseModel):
    amount: float
    formatted: str


class PriceMovement(BaseModel):
    commodity: str
    change: float
    impact: MoneyAmount | None = None
    direction: Literal["up", "down"]


class InflationAlert(BaseModel):
    id: str
    type: Literal["spike", "drop"]
    commodity: str
    message: str
    severity: Literal["high", "medium", "low"]


class InflationDashboardPayload(BaseModel):
    type: Literal["inflation_dashboard"] = "inflation_dashboard"
    period: str
    headline: str
    overall_change: PriceChange
    portfolio_impact: MoneyAmount
    impact_percent: float
    impact_direction: Literal["increase", "decrease"]
    price_movements: list[PriceMovement]
    key_drivers: list[str]
    alerts: list[InflationAlert]


class DriverContribution(BaseModel):
    driver: str
    category: str
    contribution: float
    direction: Literal["up", "down"]
    description: str = ""


class MarketNewsItem(BaseModel):
    title: str
    source: str
    url: str | None = None


class DriverAnalysisPayload(BaseModel):
    type: Literal["driver_analysis"] = "driver_analysis"
    commodity: str
    period: str
    price_change: PriceChange
    drivers: list[DriverContribution]
    total_contribution: float
    market_context: str | None = None
    market_news: list[MarketNewsItem]


class ImpactBreakdown(BaseModel):
    category: str
    amount: MoneyAmount
    percent: float
    direction: Literal["up", "down"]
    share_of_total: float


class MostAffected(BaseModel):
    type: Literal["category", "supplier", "commodity"]
    name: str
    impact: MoneyAmount


class ImpactAnalysisPayload(BaseModel):
    type: Literal["impact_analysis"] = "impact_analysis"
    timeframe: str
    total_impact: MoneyAmount
    direction: Literal["increase", "decrease"]
    impact_percent: float
    breakdown: list[ImpactBreakdown]
    most_affected: MostAffected | None = None
    recommendation: str | None = None


class JustificationReportPayload(BaseModel):
    type: Literal["justification_report"] = "justification_report"
    supplier_name: str
    commodity: str
    requested_increase: float
    market_benchmark: float
    variance: float
    verdict: str
    verdict_label: str
    supporting_points: list[str]
    disputing_points: list[str]
    recommendation: str
    negotiation_leverage: Literal["strong", "moderate", "weak"]


class ScenarioPlannerPayload(BaseModel):
    type: Literal["scenario_planner"] = "scenario_planner"
    scenario_name: str
    description: str
    assumption: str
    baseline: MoneyAmount
    projected: MoneyAmount
    delta: MoneyAmount
    delta_percent: float
    direction: Literal["up", "down"]
    confidence: Literal["high", "medium", "low"]
    top_impacts: list[str]
    recommendation: str | None = None


class BriefMetric(BaseModel):
    label: str
    value: str
    status: Literal["positive", "negative", "neutral"] = "neutral"


class ExecutivePresentationPayload(BaseModel):
    type: Literal["executive_presentation"] = "executive_presentation"
    title: str
    period: str
    summary: str
    key_metrics: list[BriefMetric]
    concerns: list[str]
    opportunities: list[str]
    actions: list[str]
    outlook: str


class PriceRange(BaseModel):
    min: float
    max: float
    position: float = Field(..., ge=0, le=100)


class CommodityDashboardPayload(BaseModel):
    type: Literal["commodity_dashboard"] = "commodity_dashboard"
    commodity: str
    category: str
    current_price: float
    unit: str
    currency: str
    market: str
    change: PriceChange
    range: PriceRange | None = None
    exposure: MoneyAmount | None = None
    supplier_count: int = 0
    trend: Literal["bullish", "bearish", "stable"]


class DeepResearchReportPayload(BaseModel):
    type: Literal["deep_research_report"] = "deep_research_report"
    id: str
    title: str
    category: str
    published_date: str
    author: str | None = None
    summary: str
    sections: list[dict[str, str]]
    sources: list[Source]
    citations: int
    credits_used: int
    total_processing_time: float
    pdf_url: str | None = None


ArtifactPayload = Annotated[
    Union[
        SupplierTablePayload,
        SupplierDetailPayload,
        SupplierComparisonPayload,
        PortfolioDashboardPayload,
        SupplierAlternativesPayload,
        InflationDashboardPayload,
        DriverAnalysisPayload,
        ImpactAnalysisPayload,
        JustificationReportPayload,
        ScenarioPlannerPayload,
        ExecutivePresentationPayload,
        CommodityDashboardPayload,
        DeepResearchReportPayload,
    ],
    Field(discriminator="type"),
]
