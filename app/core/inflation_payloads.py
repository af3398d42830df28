"""Inflation-family artifact payloads built from inline widget data.

Widget data arrives as plain dicts (snake_case keys) with money already
formatted for display ("$10.2B", "$5.2M impact", "-$450K"). Builders parse
those strings back to exact numbers.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any

from app.core.schemas_artifacts import (
    BriefMetric,
    CommodityDashboardPayload,
    DriverAnalysisPayload,
    DriverContribution,
    ExecutivePresentationPayload,
    ImpactAnalysisPayload,
    ImpactBreakdown,
    InflationAlert,
    InflationDashboardPayload,
    JustificationReportPayload,
    MarketNewsItem,
    MoneyAmount,
    MostAffected,
    PriceChange,
    PriceMovement,
    PriceRange,
    ScenarioPlannerPayload,
)

_CURRENCY_RE = re.compile(
    r"^\s*([+-])?\s*\$?\s*([+-])?\s*(\d[\d,]*(?:\.\d+)?|\.\d+)\s*([KMBT](?![A-Za-z]))?", re.I
)
_MULTIPLIERS = {
    "K": Decimal(1_000),
    "M": Decimal(1_000_000),
    "B": Decimal(1_000_000_000),
    "T": Decimal(1_000_000_000_000),
}

# Percent change at or beyond which a price movement becomes an alert
SPIKE_HIGH = 10.0
SPIKE_MEDIUM = 5.0


def parse_currency(value: str | int | float | None) -> int | float | None:
    """
    Parse a formatted money string to an exact number.

    "$10.2B" -> 10200000000, "$5.2M impact" -> 5200000, "-$450K" -> -450000.
    Numbers pass through unchanged. Returns None when nothing parses.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value

    match = _CURRENCY_RE.match(value)
    if not match:
        return None
    sign_before, sign_after, digits, suffix = match.groups()
    try:
        amount = Decimal(digits.replace(",", ""))
    except InvalidOperation:
        return None
    if suffix:
        amount *= _MULTIPLIERS[suffix.upper()]
    if "-" in (sign_before, sign_after):
        amount = -amount
    return int(amount) if amount == amount.to_integral_value() else float(amount)


def _money(value: Any) -> MoneyAmount | None:
    amount = parse_currency(value)
    if amount is None:
        return None
    formatted = value if isinstance(value, str) else f"${amount:,}"
    return MoneyAmount(amount=amount, formatted=formatted.strip())


def _price_change(data: Any) -> PriceChange:
    if isinstance(data, dict):
        return PriceChange.model_validate(data)
    if isinstance(data, (int, float)):
        direction = "up" if data > 0 else "down" if data < 0 else "stable"
        return PriceChange(percent=data, direction=direction)
    return PriceChange()


def _has(data: dict[str, Any], *keys: str) -> bool:
    return all(data.get(key) not in (None, "", [], {}) for key in keys)


# ============================================================================
# Builders
# ============================================================================


def _price_alerts(movements: list[PriceMovement]) -> list[InflationAlert]:
    alerts = []
    for movement in movements:
        magnitude = abs(movement.change)
        if magnitude < SPIKE_MEDIUM:
            continue
        spike = movement.change > 0
        alerts.append(
            InflationAlert(
                id=f"{'spike' if spike else 'drop'}-{movement.commodity.lower().replace(' ', '-')}",
                type="spike" if spike else "drop",
                commodity=movement.commodity,
                message=f"{movement.commodity} {'up' if spike else 'down'} {magnitude:g}%",
                severity="high" if magnitude >= SPIKE_HIGH else "medium",
            )
        )
    return alerts


def build_inflation_dashboard(data: dict[str, Any]) -> InflationDashboardPayload | None:
    if not _has(data, "period", "portfolio_impact"):
        return None
    impact = data["portfolio_impact"]
    impact_amount = _money(impact.get("amount"))
    if impact_amount is None:
        return None

    movements = [
        PriceMovement(
            commodity=item["commodity"],
            change=item["change"],
            impact=_money(item.get("impact")),
            direction="up",
        )
        for item in data.get("top_increases", [])
    ] + [
        PriceMovement(
            commodity=item["commodity"],
            change=item["change"],
            impact=_money(item.get("benefit")),
            direction="down",
        )
        for item in data.get("top_decreases", [])
    ]

    return InflationDashboardPayload(
        period=data["period"],
        headline=data.get("headline", ""),
        overall_change=_price_change(data.get("overall_change")),
        portfolio_impact=impact_amount,
        impact_percent=impact.get("percent", 0.0),
        impact_direction=impact.get("direction", "increase"),
        price_movements=movements,
        key_drivers=list(data.get("key_drivers", [])),
        alerts=_price_alerts(movements),
    )


def build_driver_analysis(data: dict[str, Any]) -> DriverAnalysisPayload | None:
    if not _has(data, "commodity", "drivers"):
        return None

    drivers = sorted(
        (
            DriverContribution(
                driver=d["name"],
                category=d.get("category", "other"),
                contribution=d.get("contribution", 0.0),
                direction=d.get("direction", "up"),
                description=d.get("description", ""),
            )
            for d in data["drivers"]
        ),
        key=lambda d: d.contribution,
        reverse=True,
    )

    return DriverAnalysisPayload(
        commodity=data["commodity"],
        period=data.get("period", ""),
        price_change=_price_change(data.get("price_change")),
        drivers=drivers,
        total_contribution=round(sum(d.contribution for d in drivers), 2),
        market_context=data.get("market_context"),
        market_news=[MarketNewsItem.model_validate(s) for s in data.get("sources", [])],
    )


def build_impact_analysis(data: dict[str, Any]) -> ImpactAnalysisPayload | None:
    if not _has(data, "total_impact", "breakdown"):
        return None
    total = _money(data["total_impact"])
    if total is None:
        return None

    breakdown = []
    for item in data["breakdown"]:
        amount = _money(item.get("amount"))
        if amount is None:
            return None
        share = round(amount.amount / total.amount * 100, 1) if total.amount else 0.0
        breakdown.append(
            ImpactBreakdown(
                category=item["category"],
                amount=amount,
                percent=item.get("percent", 0.0),
                direction=item.get("direction", "up"),
                share_of_total=share,
            )
        )

    most_affected = None
    if data.get("most_affected"):
        raw = data["most_affected"]
        impact = _money(raw.get("impact"))
        if impact is not None:
            most_affected = MostAffected(type=raw["type"], name=raw["name"], impact=impact)

    return ImpactAnalysisPayload(
        timeframe=data.get("timeframe", ""),
        total_impact=total,
        direction=data.get("total_impact_direction", "increase"),
        impact_percent=data.get("impact_percent", 0.0),
        breakdown=breakdown,
        most_affected=most_affected,
        recommendation=data.get("recommendation"),
    )


def build_justification_report(data: dict[str, Any]) -> JustificationReportPayload | None:
    if not _has(data, "supplier_name") or data.get("requested_increase") is None:
        return None
    if data.get("market_benchmark") is None:
        return None

    points = data.get("key_points", [])
    requested = data["requested_increase"]
    benchmark = data["market_benchmark"]

    return JustificationReportPayload(
        supplier_name=data["supplier_name"],
        commodity=data.get("commodity", ""),
        requested_increase=requested,
        market_benchmark=benchmark,
        variance=round(requested - benchmark, 2),
        verdict=data.get("verdict", "partially_justified"),
        verdict_label=data.get("verdict_label", ""),
        supporting_points=[p["point"] for p in points if p.get("supports")],
        disputing_points=[p["point"] for p in points if not p.get("supports")],
        recommendation=data.get("recommendation", ""),
        negotiation_leverage=data.get("negotiation_leverage", "moderate"),
    )


def build_scenario_planner(data: dict[str, Any]) -> ScenarioPlannerPayload | None:
    if not _has(data, "scenario_name", "current_state", "projected_state"):
        return None
    baseline = _money(data["current_state"].get("value"))
    projected = _money(data["projected_state"].get("value"))
    if baseline is None or projected is None:
        return None

    raw_delta = data.get("delta") or {}
    delta_amount = projected.amount - baseline.amount
    delta = _money(raw_delta.get("amount")) or MoneyAmount(
        amount=delta_amount, formatted=f"${abs(delta_amount):,}"
    )
    percent = raw_delta.get("percent")
    if percent is None:
        percent = round(delta_amount / baseline.amount * 100, 2) if baseline.amount else 0.0

    return ScenarioPlannerPayload(
        scenario_name=data["scenario_name"],
        description=data.get("description", ""),
        assumption=data.get("assumption", ""),
        baseline=baseline,
        projected=projected,
        delta=delta,
        delta_percent=percent,
        direction=raw_delta.get("direction") or ("up" if delta_amount >= 0 else "down"),
        confidence=data.get("confidence", "medium"),
        top_impacts=list(data.get("top_impacts", [])),
        recommendation=data.get("recommendation"),
    )


def build_executive_presentation(data: dict[str, Any]) -> ExecutivePresentationPayload | None:
    if not _has(data, "title", "summary"):
        return None
    highlights = data.get("highlights", [])

    def texts(kind: str) -> list[str]:
        return [h["text"] for h in highlights if h.get("type") == kind]

    return ExecutivePresentationPayload(
        title=data["title"],
        period=data.get("period", ""),
        summary=data["summary"],
        key_metrics=[
            BriefMetric(label=m["label"], value=m["value"], status=m.get("status", "neutral"))
            for m in data.get("key_metrics", [])
        ],
        concerns=texts("concern"),
        opportunities=texts("opportunity"),
        actions=texts("action"),
        outlook=data.get("outlook", ""),
    )


def _trend_from_change(change: PriceChange) -> str:
    if change.direction == "up":
        return "bullish"
    if change.direction == "down":
        return "bearish"
    return "stable"


def build_commodity_dashboard(data: dict[str, Any]) -> CommodityDashboardPayload | None:
    """Gauge-shaped data (``gauge`` + ``changes``) or flat price data (``previous_price``)."""
    if "gauge" in data and "changes" in data:
        return _commodity_from_gauge(data)
    if "current_price" in data and "previous_price" in data:
        return _commodity_from_prices(data)
    return None


def _commodity_from_gauge(data: dict[str, Any]) -> CommodityDashboardPayload | None:
    if not _has(data, "commodity") or data.get("current_price") is None:
        return None
    gauge = data["gauge"]
    change = _price_change(data["changes"].get("monthly"))
    exposure = data.get("portfolio_exposure") or {}

    return CommodityDashboardPayload(
        commodity=data["commodity"],
        category=data.get("category", ""),
        current_price=data["current_price"],
        unit=data.get("unit", ""),
        currency=data.get("currency", "USD"),
        market=data.get("market", ""),
        change=change,
        range=PriceRange(min=gauge["min"], max=gauge["max"], position=gauge["position"]),
        exposure=_money(exposure.get("amount")),
        supplier_count=exposure.get("supplier_count", 0),
        trend=data.get("trend") or _trend_from_change(change),
    )


def _commodity_from_prices(data: dict[str, Any]) -> CommodityDashboardPayload | None:
    name = data.get("commodity") or data.get("name")
    current = data["current_price"]
    previous = data["previous_price"]
    if not name or current is None or previous is None:
        return None

    absolute = round(current - previous, 4)
    percent = round(absolute / previous * 100, 2) if previous else 0.0
    change = PriceChange(
        absolute=absolute,
        percent=percent,
        direction="up" if absolute > 0 else "down" if absolute < 0 else "stable",
    )

    return CommodityDashboardPayload(
        commodity=name,
        category=data.get("category", ""),
        current_price=current,
        unit=data.get("unit", ""),
        currency=data.get("currency", "USD"),
        market=data.get("market", ""),
        change=change,
        exposure=_money(data.get("portfolio_exposure")),
        trend=_trend_from_change(change),
    )
