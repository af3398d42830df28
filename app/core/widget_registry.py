"""
Widget Registry

Process-wide, read-only table of inline widgets. Each entry declares which
intents and sub-intents it serves, what response data it needs, where it can
render and which artifact it expands into.

Declaration order matters: it is the final tie-break in widget selection.
"""

from dataclasses import dataclass
from enum import Enum

from app.core.domain import IntentCategory, SubIntent


class RenderContext(str, Enum):
    CHAT = "chat"
    CHAT_COMPACT = "chat_compact"
    PANEL = "panel"
    ARTIFACT = "artifact"


class WidgetSize(str, Enum):
    SMALL = "S"
    MEDIUM = "M"
    LARGE = "L"


class ArtifactType(str, Enum):
    SUPPLIER_TABLE = "supplier_table"
    SUPPLIER_DETAIL = "supplier_detail"
    SUPPLIER_COMPARISON = "supplier_comparison"
    PORTFOLIO_DASHBOARD = "portfolio_dashboard"
    SUPPLIER_ALTERNATIVES = "supplier_alternatives"
    INFLATION_DASHBOARD = "inflation_dashboard"
    DRIVER_ANALYSIS = "driver_analysis"
    IMPACT_ANALYSIS = "impact_analysis"
    JUSTIFICATION_REPORT = "justification_report"
    SCENARIO_PLANNER = "scenario_planner"
    EXECUTIVE_PRESENTATION = "executive_presentation"
    COMMODITY_DASHBOARD = "commodity_dashboard"
    DEEP_RESEARCH_REPORT = "deep_research_report"


# Data key that is satisfied by any response context
NO_DATA = "none"


@dataclass(frozen=True)
class WidgetDefinition:
    """One registry entry."""
    id: str
    type: str
    component: str
    category: str  # risk, supplier, market, inflation, action, general
    intents: tuple[IntentCategory, ...]
    priority: int
    required_data: tuple[str, ...]
    render_contexts: tuple[RenderContext, ...]
    sub_intents: tuple[SubIntent, ...] = ()
    sizes: tuple[WidgetSize, ...] = (WidgetSize.MEDIUM,)
    expands_to: ArtifactType | None = None
    description: str = ""


_CHAT_PANEL = (RenderContext.CHAT, RenderContext.PANEL)
_CHAT = (RenderContext.CHAT,)
_COMPACT = (RenderContext.CHAT_COMPACT,)


# ============================================================================
# Registry
# ============================================================================

WIDGET_REGISTRY: tuple[WidgetDefinition, ...] = (
    # Risk
    WidgetDefinition(
        id="risk-distribution-widget",
        type="risk_distribution",
        component="RiskDistributionWidget",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW,),
        sub_intents=(SubIntent.OVERALL_SUMMARY,),
        priority=110,
        required_data=("portfolio",),
        render_contexts=_CHAT_PANEL,
        sizes=(WidgetSize.MEDIUM, WidgetSize.LARGE),
        expands_to=ArtifactType.PORTFOLIO_DASHBOARD,
        description="Risk level distribution across the followed portfolio",
    ),
    WidgetDefinition(
        id="metric-row-widget",
        type="metric_row",
        component="MetricRowWidget",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW, IntentCategory.FILTERED_DISCOVERY),
        priority=80,
        required_data=("portfolio",),
        render_contexts=(RenderContext.CHAT, RenderContext.CHAT_COMPACT),
        sizes=(WidgetSize.SMALL, WidgetSize.MEDIUM),
    ),
    WidgetDefinition(
        id="spend-exposure-widget",
        type="spend_exposure",
        component="SpendExposureWidget",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW,),
        sub_intents=(SubIntent.SPEND_WEIGHTED,),
        priority=105,
        required_data=("portfolio",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.PORTFOLIO_DASHBOARD,
    ),
    WidgetDefinition(
        id="health-scorecard-widget",
        type="health_scorecard",
        component="HealthScorecardWidget",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW,),
        sub_intents=(SubIntent.BENCHMARK,),
        priority=95,
        required_data=("portfolio",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.PORTFOLIO_DASHBOARD,
    ),
    # Supplier
    WidgetDefinition(
        id="supplier-risk-card-widget",
        type="supplier_risk_card",
        component="SupplierRiskCardWidget",
        category="supplier",
        intents=(IntentCategory.SUPPLIER_DEEP_DIVE,),
        sub_intents=(SubIntent.SUPPLIER_OVERVIEW, SubIntent.SCORE_INQUIRY),
        priority=100,
        required_data=("supplier",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.SUPPLIER_DETAIL,
    ),
    WidgetDefinition(
        id="supplier-table-widget",
        type="supplier_table",
        component="SupplierTableWidget",
        category="supplier",
        intents=(IntentCategory.FILTERED_DISCOVERY, IntentCategory.ACTION_TRIGGER, IntentCategory.EXPLANATION_WHY),
        sub_intents=(SubIntent.BY_RISK_LEVEL, SubIntent.BY_RISK_FACTOR, SubIntent.BY_ATTRIBUTE, SubIntent.COMPOUND_FILTER),
        priority=100,
        required_data=("suppliers",),
        render_contexts=_CHAT_PANEL,
        sizes=(WidgetSize.MEDIUM, WidgetSize.LARGE),
        expands_to=ArtifactType.SUPPLIER_TABLE,
    ),
    WidgetDefinition(
        id="supplier-mini-card",
        type="supplier_mini",
        component="SupplierMiniCard",
        category="supplier",
        intents=(IntentCategory.SUPPLIER_DEEP_DIVE, IntentCategory.FILTERED_DISCOVERY),
        priority=60,
        required_data=("supplier",),
        render_contexts=_COMPACT,
        sizes=(WidgetSize.SMALL,),
        expands_to=ArtifactType.SUPPLIER_DETAIL,
    ),
    WidgetDefinition(
        id="comparison-table-widget",
        type="comparison_table",
        component="ComparisonTableWidget",
        category="supplier",
        intents=(IntentCategory.COMPARISON,),
        priority=100,
        required_data=("suppliers",),
        render_contexts=_CHAT_PANEL,
        sizes=(WidgetSize.LARGE,),
        expands_to=ArtifactType.SUPPLIER_COMPARISON,
    ),
    # Trends and events
    WidgetDefinition(
        id="alert-card-widget",
        type="alert_card",
        component="AlertCardWidget",
        category="risk",
        intents=(IntentCategory.TREND_DETECTION,),
        sub_intents=(SubIntent.RECENT_CHANGES, SubIntent.CHANGE_DIRECTION),
        priority=100,
        required_data=("risk_changes",),
        render_contexts=_CHAT,
        expands_to=ArtifactType.SUPPLIER_TABLE,
    ),
    WidgetDefinition(
        id="trend-chart-widget",
        type="trend_chart",
        component="TrendChartWidget",
        category="risk",
        intents=(IntentCategory.TREND_DETECTION, IntentCategory.SUPPLIER_DEEP_DIVE),
        sub_intents=(SubIntent.HISTORICAL,),
        priority=90,
        required_data=("risk_changes",),
        render_contexts=_CHAT_PANEL,
        sizes=(WidgetSize.MEDIUM, WidgetSize.LARGE),
    ),
    WidgetDefinition(
        id="trend-change-indicator",
        type="trend_change_indicator",
        component="TrendChangeIndicator",
        category="risk",
        intents=(IntentCategory.TREND_DETECTION,),
        priority=70,
        required_data=("risk_changes",),
        render_contexts=_COMPACT,
        sizes=(WidgetSize.SMALL,),
    ),
    WidgetDefinition(
        id="event-timeline-widget",
        type="event_timeline",
        component="EventTimelineWidget",
        category="market",
        intents=(IntentCategory.TREND_DETECTION, IntentCategory.SUPPLIER_DEEP_DIVE),
        priority=85,
        required_data=("events",),
        render_contexts=_CHAT_PANEL,
    ),
    WidgetDefinition(
        id="events-feed-widget",
        type="events_feed",
        component="EventsFeedWidget",
        category="market",
        intents=(IntentCategory.TREND_DETECTION, IntentCategory.MARKET_CONTEXT),
        sub_intents=(SubIntent.NEWS_EVENTS,),
        priority=95,
        required_data=("events",),
        render_contexts=_CHAT_PANEL,
    ),
    # Market
    WidgetDefinition(
        id="price-gauge-widget",
        type="price_gauge",
        component="PriceGaugeWidget",
        category="market",
        intents=(IntentCategory.MARKET_CONTEXT, IntentCategory.INFLATION_SCENARIOS, IntentCategory.INFLATION_BENCHMARK),
        sub_intents=(SubIntent.COMMODITY_DRIVERS, SubIntent.PRICE_FORECAST, SubIntent.MARKET_FAIRNESS),
        priority=110,
        required_data=("commodity_data",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.COMMODITY_DASHBOARD,
    ),
    WidgetDefinition(
        id="news-item-card",
        type="news_item",
        component="NewsItemCard",
        category="market",
        intents=(IntentCategory.MARKET_CONTEXT, IntentCategory.INFLATION_BENCHMARK),
        priority=85,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="category-breakdown-widget",
        type="category_breakdown",
        component="CategoryBreakdownWidget",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW, IntentCategory.FILTERED_DISCOVERY),
        sub_intents=(SubIntent.BY_DIMENSION,),
        priority=105,
        required_data=("portfolio", "suppliers"),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.PORTFOLIO_DASHBOARD,
    ),
    WidgetDefinition(
        id="region-list-widget",
        type="region_list",
        component="RegionListWidget",
        category="risk",
        intents=(IntentCategory.FILTERED_DISCOVERY, IntentCategory.PORTFOLIO_OVERVIEW),
        sub_intents=(SubIntent.BY_DIMENSION, SubIntent.BY_ATTRIBUTE),
        priority=90,
        required_data=("suppliers",),
        render_contexts=_CHAT_PANEL,
    ),
    WidgetDefinition(
        id="category-badge",
        type="category_badge",
        component="CategoryBadge",
        category="general",
        intents=(IntentCategory.FILTERED_DISCOVERY, IntentCategory.SUPPLIER_DEEP_DIVE),
        priority=50,
        required_data=("supplier",),
        render_contexts=_COMPACT,
        sizes=(WidgetSize.SMALL,),
    ),
    WidgetDefinition(
        id="status-badge",
        type="status_badge",
        component="StatusBadge",
        category="general",
        intents=(IntentCategory.SETUP_CONFIG, IntentCategory.ACTION_TRIGGER),
        priority=50,
        required_data=(NO_DATA,),
        render_contexts=_COMPACT,
        sizes=(WidgetSize.SMALL,),
    ),
    # Explanation
    WidgetDefinition(
        id="score-breakdown-widget",
        type="score_breakdown",
        component="ScoreBreakdownWidget",
        category="supplier",
        intents=(IntentCategory.SUPPLIER_DEEP_DIVE, IntentCategory.EXPLANATION_WHY),
        priority=95,
        required_data=("supplier",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.SUPPLIER_DETAIL,
    ),
    WidgetDefinition(
        id="factor-breakdown-card",
        type="factor_breakdown",
        component="FactorBreakdownCard",
        category="supplier",
        intents=(IntentCategory.SUPPLIER_DEEP_DIVE, IntentCategory.EXPLANATION_WHY),
        sub_intents=(SubIntent.SCORE_INQUIRY,),
        priority=90,
        required_data=("supplier",),
        render_contexts=_CHAT,
        expands_to=ArtifactType.SUPPLIER_DETAIL,
    ),
    # General purpose cards
    WidgetDefinition(
        id="stat-card",
        type="stat_card",
        component="StatCard",
        category="general",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW, IntentCategory.MARKET_CONTEXT),
        priority=70,
        required_data=(NO_DATA,),
        render_contexts=(RenderContext.CHAT, RenderContext.CHAT_COMPACT),
        sizes=(WidgetSize.SMALL,),
    ),
    WidgetDefinition(
        id="info-card",
        type="info_card",
        component="InfoCard",
        category="general",
        intents=(IntentCategory.EXPLANATION_WHY, IntentCategory.SETUP_CONFIG),
        priority=75,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="quote-card",
        type="quote_card",
        component="QuoteCard",
        category="market",
        intents=(IntentCategory.MARKET_CONTEXT,),
        sub_intents=(SubIntent.INDUSTRY_CONTEXT,),
        priority=75,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="recommendation-card",
        type="recommendation_card",
        component="RecommendationCard",
        category="action",
        intents=(IntentCategory.ACTION_TRIGGER, IntentCategory.EXPLANATION_WHY),
        sub_intents=(SubIntent.MITIGATION_PLAN, SubIntent.STRATEGIC_ADVICE),
        priority=85,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="checklist-card",
        type="checklist_card",
        component="ChecklistCard",
        category="action",
        intents=(IntentCategory.ACTION_TRIGGER, IntentCategory.SETUP_CONFIG),
        priority=80,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="progress-card",
        type="progress_card",
        component="ProgressCard",
        category="action",
        intents=(IntentCategory.SETUP_CONFIG,),
        priority=85,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="executive-summary-card",
        type="executive_summary",
        component="ExecutiveSummaryCard",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW, IntentCategory.REPORTING_EXPORT),
        priority=80,
        required_data=("portfolio",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.PORTFOLIO_DASHBOARD,
    ),
    WidgetDefinition(
        id="data-list-card",
        type="data_list",
        component="DataListCard",
        category="general",
        intents=(IntentCategory.FILTERED_DISCOVERY, IntentCategory.REPORTING_EXPORT),
        priority=70,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    # Action
    WidgetDefinition(
        id="handoff-card",
        type="handoff_card",
        component="HandoffCard",
        category="action",
        intents=(IntentCategory.RESTRICTED_QUERY,),
        priority=100,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="action-confirmation-card",
        type="action_confirmation",
        component="ActionConfirmationCard",
        category="action",
        intents=(IntentCategory.ACTION_TRIGGER,),
        priority=100,
        required_data=(NO_DATA,),
        render_contexts=_CHAT,
    ),
    WidgetDefinition(
        id="alternatives-preview-card",
        type="alternatives_preview",
        component="AlternativesPreviewCard",
        category="action",
        intents=(IntentCategory.ACTION_TRIGGER,),
        sub_intents=(SubIntent.FIND_ALTERNATIVES,),
        priority=115,
        required_data=("suppliers",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.SUPPLIER_ALTERNATIVES,
    ),
    WidgetDefinition(
        id="concentration-warning-card",
        type="concentration_warning",
        component="ConcentrationWarningCard",
        category="risk",
        intents=(IntentCategory.PORTFOLIO_OVERVIEW, IntentCategory.INFLATION_IMPACT),
        sub_intents=(SubIntent.CATEGORY_EXPOSURE,),
        priority=85,
        required_data=("portfolio",),
        render_contexts=_CHAT,
    ),
    # Inflation
    WidgetDefinition(
        id="inflation-summary-card",
        type="inflation_summary",
        component="InflationSummaryCard",
        category="inflation",
        intents=(IntentCategory.INFLATION_SUMMARY,),
        sub_intents=(SubIntent.MONTHLY_CHANGES, SubIntent.TOP_MOVERS),
        priority=100,
        required_data=("inflation_summary",),
        render_contexts=_CHAT_PANEL,
        sizes=(WidgetSize.MEDIUM, WidgetSize.LARGE),
        expands_to=ArtifactType.INFLATION_DASHBOARD,
    ),
    WidgetDefinition(
        id="driver-breakdown-card",
        type="driver_breakdown",
        component="DriverBreakdownCard",
        category="inflation",
        intents=(IntentCategory.INFLATION_DRIVERS,),
        sub_intents=(SubIntent.COMMODITY_DRIVERS, SubIntent.MARKET_DRIVERS),
        priority=100,
        required_data=("commodity_drivers",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.DRIVER_ANALYSIS,
    ),
    WidgetDefinition(
        id="spend-impact-card",
        type="spend_impact",
        component="SpendImpactCard",
        category="inflation",
        intents=(IntentCategory.INFLATION_IMPACT,),
        sub_intents=(SubIntent.SPEND_IMPACT, SubIntent.CATEGORY_EXPOSURE),
        priority=100,
        required_data=("portfolio_exposure",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.IMPACT_ANALYSIS,
    ),
    WidgetDefinition(
        id="justification-card",
        type="justification",
        component="JustificationCard",
        category="inflation",
        intents=(IntentCategory.INFLATION_JUSTIFICATION,),
        sub_intents=(SubIntent.VALIDATE_INCREASE, SubIntent.NEGOTIATE_SUPPORT, SubIntent.MARKET_FAIRNESS),
        priority=100,
        required_data=("justification_data",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.JUSTIFICATION_REPORT,
    ),
    WidgetDefinition(
        id="scenario-card",
        type="scenario",
        component="ScenarioCard",
        category="inflation",
        intents=(IntentCategory.INFLATION_SCENARIOS,),
        sub_intents=(SubIntent.WHAT_IF_INCREASE, SubIntent.BUDGET_IMPACT),
        priority=100,
        required_data=("scenario_data",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.SCENARIO_PLANNER,
    ),
    WidgetDefinition(
        id="executive-brief-card",
        type="executive_brief",
        component="ExecutiveBriefCard",
        category="inflation",
        intents=(IntentCategory.INFLATION_COMMUNICATION,),
        sub_intents=(SubIntent.EXECUTIVE_BRIEF, SubIntent.STAKEHOLDER_DECK),
        priority=100,
        required_data=("inflation_summary",),
        render_contexts=_CHAT_PANEL,
        expands_to=ArtifactType.EXECUTIVE_PRESENTATION,
    ),
)

# Intents that must always have at least one widget
CORE_INTENTS: tuple[IntentCategory, ...] = tuple(i for i in IntentCategory if i != IntentCategory.GENERAL)

_BY_ID: dict[str, WidgetDefinition] = {w.id: w for w in WIDGET_REGISTRY}


def get_widget(widget_id: str) -> WidgetDefinition | None:
    """Look up a registry entry by id."""
    return _BY_ID.get(widget_id)


def get_widgets_for_intent(intent: IntentCategory) -> list[WidgetDefinition]:
    """All widgets serving an intent, in declaration order."""
    return [w for w in WIDGET_REGISTRY if intent in w.intents]


def get_expand_target(widget_id: str) -> ArtifactType | None:
    """Artifact type the widget opens into, if any."""
    widget = _BY_ID.get(widget_id)
    return widget.expands_to if widget else None


def validate_intent_coverage() -> list[IntentCategory]:
    """
    Check that every core intent is served by at least one widget.

    Returns:
        Intents with no widget (empty when coverage is complete)
    """
    covered = {intent for widget in WIDGET_REGISTRY for intent in widget.intents}
    return [intent for intent in CORE_INTENTS if intent not in covered]
