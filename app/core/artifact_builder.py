"""
Artifact Payload Builder

Deterministic transformer from canonical entities to a typed artifact payload.
Every builder returns None when its required inputs are missing and never
returns a partially constructed payload. The only clock read is a single
``now`` per build, used for synthetic history and event timestamps.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pydantic import BaseModel, Field

from app.core.domain import (
    RISK_FACTOR_TIERS,
    DataTier,
    Portfolio,
    RiskChange,
    RiskLevel,
    Supplier,
    Trend,
    format_spend,
    level_from_score,
)
from app.core.errors import RestrictedLeakError
from app.core.inflation_payloads import (
    build_commodity_dashboard,
    build_driver_analysis,
    build_executive_presentation,
    build_impact_analysis,
    build_inflation_dashboard,
    build_justification_report,
    build_scenario_planner,
)
from app.core.logging import get_logger
from app.core.schemas_artifacts import (
    AlternativeSupplier,
    ComparisonEntry,
    DeepResearchReportPayload,
    DetailRiskFactor,
    HistoryPoint,
    PortfolioAlert,
    PortfolioDashboardPayload,
    PortfolioTrends,
    SrsSummary,
    SupplierAlternativesPayload,
    SupplierComparisonPayload,
    SupplierDetail,
    SupplierDetailPayload,
    SupplierEvent,
    SupplierTablePayload,
    SupplierTableRow,
    TopMover,
)
from app.core.schemas_research import DeepResearchReport
from app.core.widget_registry import ArtifactType

logger = get_logger(__name__)

HISTORY_STEP = timedelta(days=30)
TOP_MOVER_COUNT = 4
ALERT_COUNT = 3

MATCH_BASE = 70
MATCH_MAX = 98


class ArtifactContext(BaseModel):
    """Entity snapshot an artifact is built from. Any subset may be present."""

    suppliers: list[Supplier] = Field(default_factory=list)
    portfolio: Portfolio | None = None
    risk_changes: list[RiskChange] | None = None
    widget_data: dict[str, Any] | None = None
    report: DeepResearchReport | None = None


# ============================================================================
# Shared helpers
# ============================================================================


def _num(value: float) -> str:
    """Render a score without a trailing .0."""
    return str(int(value)) if float(value).is_integer() else str(value)


def location_label(supplier: Supplier) -> str:
    loc = supplier.location
    if loc.city and loc.country:
        return f"{loc.city}, {loc.country}"
    return loc.country or loc.region or "Unknown"


def unique_values(values: list[str]) -> list[str]:
    """Distinct non-empty values in first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def factor_category(name: str) -> str:
    normalized = name.lower()
    if "financial" in normalized or "credit" in normalized:
        return "financial"
    if any(k in normalized for k in ("compliance", "sanction", "esg", "diversity")):
        return "compliance"
    if any(k in normalized for k in ("quality", "delivery", "scalability", "freight")):
        return "operational"
    return "external"


def _srs(supplier: Supplier) -> SrsSummary:
    return SrsSummary(score=supplier.srs.score, level=supplier.srs.level, trend=supplier.srs.trend)


def _table_row(supplier: Supplier) -> SupplierTableRow:
    return SupplierTableRow(
        id=supplier.id,
        name=supplier.name,
        category=supplier.category,
        location=location_label(supplier),
        spend=supplier.spend,
        spend_formatted=supplier.spend_formatted or format_spend(supplier.spend),
        srs=_srs(supplier),
    )


def build_history(supplier: Supplier, now: datetime) -> list[HistoryPoint]:
    """Score history from recorded points, else [previous, current], else [current]."""
    if supplier.srs.score_history:
        scores = [point.score for point in supplier.srs.score_history]
    else:
        scores = [s for s in (supplier.srs.previous_score, supplier.srs.score) if s is not None]
    if not scores:
        scores = [supplier.srs.score]

    points = []
    for index, score in enumerate(scores):
        change = score - scores[index - 1] if index > 0 else None
        date = now - HISTORY_STEP * (len(scores) - 1 - index)
        points.append(
            HistoryPoint(date=date.isoformat(), score=score, level=level_from_score(score), change=change)
        )
    return points


def build_events(
    supplier: Supplier, risk_changes: list[RiskChange] | None, now: datetime
) -> list[SupplierEvent]:
    matches = [c for c in (risk_changes or []) if c.supplier_id == supplier.id]
    if not matches:
        return [
            SupplierEvent(
                id=f"{supplier.id}-update",
                date=supplier.srs.last_updated or now.isoformat(),
                title="Risk score updated",
                type="update",
                summary="Latest risk assessment completed.",
            )
        ]

    events = []
    for index, change in enumerate(matches):
        worsened = change.direction == "worsened"
        events.append(
            SupplierEvent(
                id=f"{supplier.id}-{change.changed_at}-{index}",
                date=change.changed_at,
                title=f"Risk score {'increased' if worsened else 'decreased'} to {_num(change.current_score)}",
                type="alert" if worsened else "update",
                summary=(
                    f"Score moved from {_num(change.previous_score)} to "
                    f"{_num(change.current_score)} ({change.current_level.value})."
                ),
            )
        )
    return events


# ============================================================================
# Supplier family
# ============================================================================


def build_supplier_table(context: ArtifactContext, now: datetime) -> SupplierTablePayload | None:
    if not context.suppliers:
        return None
    return SupplierTablePayload(
        suppliers=[_table_row(s) for s in context.suppliers],
        total_count=len(context.suppliers),
        categories=unique_values([s.category for s in context.suppliers]),
        locations=unique_values([location_label(s) for s in context.suppliers]),
    )


def build_supplier_detail(context: ArtifactContext, now: datetime) -> SupplierDetailPayload | None:
    if not context.suppliers:
        return None
    supplier = context.suppliers[0]
    factors = [
        DetailRiskFactor(
            name=f.name,
            weight=f.weight,
            tier=f.tier,
            is_restricted=f.is_restricted,
            category=factor_category(f.name),
            score=None if f.is_restricted else f.score,
        )
        for f in supplier.srs.factors
    ]
    detail = SupplierDetail(
        id=supplier.id,
        name=supplier.name,
        category=supplier.category,
        city=supplier.location.city,
        country=supplier.location.country or supplier.location.region or "Unknown",
        spend=supplier.spend,
        spend_formatted=supplier.spend_formatted or format_spend(supplier.spend),
        criticality=supplier.criticality,
        srs=_srs(supplier),
        last_updated=supplier.srs.last_updated or now.isoformat(),
        risk_factors=factors,
        events=build_events(supplier, context.risk_changes, now),
        history=build_history(supplier, now),
    )
    return SupplierDetailPayload(supplier=detail)


# Metric key -> name keyword. Restricted metric keys always render the sentinel.
_COMPARISON_METRICS = (
    ("esg", "esg"),
    ("quality", "quality"),
    ("delivery", "delivery"),
    ("diversity", "diversity"),
    ("scalability", "scalability"),
    ("financial", "financial"),
    ("cybersecurity", "cyber"),
    ("sanctions", "sanction"),
)

_RELATIONSHIP = {"high": "Strategic", "medium": "Preferred", "low": "Approved"}


def _comparison_entry(supplier: Supplier) -> ComparisonEntry:
    metrics: dict[str, float | str] = {}
    for factor in supplier.srs.factors:
        name = factor.name.lower()
        value = factor.score if factor.score is not None else round(factor.weight * 100)
        for key, keyword in _COMPARISON_METRICS:
            if keyword not in name:
                continue
            restricted = factor.is_restricted or RISK_FACTOR_TIERS.get(key) == DataTier.RESTRICTED
            metrics[key] = "restricted" if restricted else value

    pros: list[str] = []
    cons: list[str] = []
    if supplier.srs.trend == Trend.IMPROVING:
        pros.append("Improving risk trend")
    elif supplier.srs.trend == Trend.STABLE:
        pros.append("Stable risk profile")
    else:
        cons.append("Risk trend worsening")

    if supplier.srs.level in (RiskLevel.LOW, RiskLevel.MEDIUM):
        pros.append("Moderate risk score")
    elif supplier.srs.level in (RiskLevel.HIGH, RiskLevel.MEDIUM_HIGH):
        cons.append("Elevated risk score")

    return ComparisonEntry(
        id=supplier.id,
        name=supplier.name,
        category=supplier.category,
        location=location_label(supplier),
        srs=_srs(supplier),
        metrics=metrics,
        spend=supplier.spend_formatted or format_spend(supplier.spend),
        relationship=_RELATIONSHIP[supplier.criticality.value],
        pros=pros or ["Established supplier relationship"],
        cons=cons or ["Limited comparative benchmarks"],
    )


def build_supplier_comparison(
    context: ArtifactContext, now: datetime
) -> SupplierComparisonPayload | None:
    if len(context.suppliers) < 2:
        return None
    return SupplierComparisonPayload(suppliers=[_comparison_entry(s) for s in context.suppliers])


def build_portfolio_dashboard(
    context: ArtifactContext, now: datetime
) -> PortfolioDashboardPayload | None:
    portfolio = context.portfolio
    if portfolio is None:
        return None

    changes = context.risk_changes if context.risk_changes is not None else portfolio.recent_changes
    worsened = [c for c in changes if c.direction == "worsened"]

    trends = PortfolioTrends(
        new_high_risk=sum(
            1 for c in changes if c.current_level in (RiskLevel.HIGH, RiskLevel.MEDIUM_HIGH)
        ),
        improved=sum(1 for c in changes if c.direction == "improved"),
        deteriorated=len(worsened),
    )

    movers = sorted(changes, key=lambda c: abs(c.delta), reverse=True)[:TOP_MOVER_COUNT]
    top_movers = [
        TopMover(
            id=c.supplier_id,
            name=c.supplier_name,
            previous_score=c.previous_score,
            current_score=c.current_score,
            direction="up" if c.delta > 0 else "down",
        )
        for c in movers
    ]

    alerts = [
        PortfolioAlert(
            id=f"alert-{c.supplier_id}",
            headline=f"{c.supplier_name} risk increased",
            timestamp=c.changed_at or now.isoformat(),
        )
        for c in worsened[:ALERT_COUNT]
    ]

    return PortfolioDashboardPayload(
        total_suppliers=portfolio.total_suppliers,
        distribution=portfolio.distribution,
        trends=trends,
        alerts=alerts,
        top_movers=top_movers,
        last_updated=now.isoformat(),
    )


def match_score(current: Supplier, candidate: Supplier) -> tuple[int, list[str]]:
    """Similarity of a candidate to the current supplier, clamped to 70..98."""
    score = MATCH_BASE
    reasons = []
    if candidate.category and candidate.category == current.category:
        score += 15
        reasons.append(f"Same category ({candidate.category})")
    if candidate.location.region and candidate.location.region == current.location.region:
        score += 5
        reasons.append(f"Same region ({candidate.location.region})")
    if candidate.location.country and candidate.location.country == current.location.country:
        score += 5
        reasons.append(f"Same country ({candidate.location.country})")
    if candidate.srs.score < current.srs.score:
        score += 5
        reasons.append("Lower risk score")
    return min(MATCH_MAX, score), reasons


def build_supplier_alternatives(
    context: ArtifactContext, now: datetime
) -> SupplierAlternativesPayload | None:
    if len(context.suppliers) < 2:
        return None
    current, *candidates = context.suppliers

    alternatives = []
    for candidate in candidates:
        score, reasons = match_score(current, candidate)
        alternatives.append(
            AlternativeSupplier(
                id=candidate.id,
                name=candidate.name,
                category=candidate.category,
                location=location_label(candidate),
                srs=_srs(candidate),
                spend_formatted=candidate.spend_formatted or format_spend(candidate.spend),
                match_score=score,
                match_reasons=reasons,
            )
        )
    alternatives.sort(key=lambda a: a.match_score, reverse=True)

    return SupplierAlternativesPayload(
        current_supplier=_table_row(current),
        alternatives=alternatives,
        total_count=len(alternatives),
    )


def build_deep_research_report(
    context: ArtifactContext, now: datetime
) -> DeepResearchReportPayload | None:
    report = context.report
    if report is None:
        return None
    return DeepResearchReportPayload(
        id=report.id,
        title=report.title,
        category=report.category,
        published_date=report.published_date,
        author=report.author,
        summary=report.summary,
        sections=[{"title": s.title, "content": s.content} for s in report.sections],
        sources=report.sources,
        citations=report.citations,
        credits_used=report.credits_used,
        total_processing_time=report.total_processing_time,
        pdf_url=report.pdf_url,
    )


def _from_widget_data(builder: Callable[[dict[str, Any]], BaseModel | None]):
    def build(context: ArtifactContext, now: datetime) -> BaseModel | None:
        if not context.widget_data:
            return None
        return builder(context.widget_data)

    return build


BUILDERS: dict[ArtifactType, Callable[[ArtifactContext, datetime], BaseModel | None]] = {
    ArtifactType.SUPPLIER_TABLE: build_supplier_table,
    ArtifactType.SUPPLIER_DETAIL: build_supplier_detail,
    ArtifactType.SUPPLIER_COMPARISON: build_supplier_comparison,
    ArtifactType.PORTFOLIO_DASHBOARD: build_portfolio_dashboard,
    ArtifactType.SUPPLIER_ALTERNATIVES: build_supplier_alternatives,
    ArtifactType.INFLATION_DASHBOARD: _from_widget_data(build_inflation_dashboard),
    ArtifactType.DRIVER_ANALYSIS: _from_widget_data(build_driver_analysis),
    ArtifactType.IMPACT_ANALYSIS: _from_widget_data(build_impact_analysis),
    ArtifactType.JUSTIFICATION_REPORT: _from_widget_data(build_justification_report),
    ArtifactType.SCENARIO_PLANNER: _from_widget_data(build_scenario_planner),
    ArtifactType.EXECUTIVE_PRESENTATION: _from_widget_data(build_executive_presentation),
    ArtifactType.COMMODITY_DASHBOARD: _from_widget_data(build_commodity_dashboard),
    ArtifactType.DEEP_RESEARCH_REPORT: build_deep_research_report,
}


# ============================================================================
# Restricted-score guard
# ============================================================================

_RESTRICTED_KEYS = frozenset(k for k, tier in RISK_FACTOR_TIERS.items() if tier == DataTier.RESTRICTED)
_NUMBER = (int, float)


def contains_restricted_score(data: Any) -> bool:
    """True when any restricted-tier factor in a dumped payload carries a number."""
    if isinstance(data, list):
        return any(contains_restricted_score(item) for item in data)
    if not isinstance(data, dict):
        return False

    restricted = data.get("is_restricted") is True or data.get("tier") == DataTier.RESTRICTED.value
    if restricted and isinstance(data.get("score"), _NUMBER):
        return True

    metrics = data.get("metrics")
    if isinstance(metrics, dict):
        for key in _RESTRICTED_KEYS & metrics.keys():
            value = metrics[key]
            if isinstance(value, _NUMBER) and not isinstance(value, bool):
                return True

    return any(contains_restricted_score(v) for v in data.values() if isinstance(v, (dict, list)))


def build_checked_payload(
    artifact_type: ArtifactType,
    context: ArtifactContext,
    now: datetime | None = None,
) -> BaseModel | None:
    """
    Build the artifact payload for a type from an entity snapshot.

    Args:
        artifact_type: Which artifact to build
        context: Entities available to the builder
        now: Clock reading for synthetic timestamps (defaults to the current UTC time)

    Returns:
        A payload variant of ArtifactPayload, or None when inputs are missing

    Raises:
        RestrictedLeakError: A restricted factor score made it into the payload
    """
    now = now or datetime.now(timezone.utc)
    builder = BUILDERS[artifact_type]

    payload = builder(context, now)
    if payload is None:
        logger.debug(f"Artifact {artifact_type.value} skipped: required inputs missing")
        return None

    if contains_restricted_score(payload.model_dump(mode="json")):
        raise RestrictedLeakError(f"Restricted score in {artifact_type.value} payload")

    return payload


def build_artifact_payload(
    artifact_type: ArtifactType,
    context: ArtifactContext,
    now: datetime | None = None,
) -> BaseModel | None:
    """Like ``build_checked_payload``, but a leaking payload is dropped and None returned."""
    try:
        return build_checked_payload(artifact_type, context, now)
    except RestrictedLeakError as e:
        logger.error(f"{e.message}, dropping it", extra={"artifact_type": artifact_type.value})
        return None
