"""Tests for inflation-family payload builders."""

import pytest

from app.core.inflation_payloads import (
    build_commodity_dashboard,
    build_driver_analysis,
    build_executive_presentation,
    build_impact_analysis,
    build_inflation_dashboard,
    build_justification_report,
    build_scenario_planner,
    parse_currency,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("$10.2B", 10_200_000_000),
        ("$5.2M impact", 5_200_000),
        ("-$450K", -450_000),
        ("$1,250", 1250),
        ("$0.5M", 500_000),
        (42, 42),
        (3.5, 3.5),
        (None, None),
        ("n/a", None),
    ],
)
def test_parse_currency(value, expected):
    assert parse_currency(value) == expected


def test_parse_currency_rejects_bool():
    assert parse_currency(True) is None


class TestInflationDashboard:
    DATA = {
        "period": "Q1 2024",
        "headline": "Input costs up across metals",
        "overall_change": {"absolute": 0, "percent": 4.2, "direction": "up"},
        "portfolio_impact": {"amount": "$5.2M", "percent": 3.1, "direction": "increase"},
        "top_increases": [
            {"commodity": "Steel", "change": 12.5, "impact": "$2.1M"},
            {"commodity": "Aluminum", "change": 6.0, "impact": "$800K"},
            {"commodity": "Copper", "change": 2.0, "impact": "$100K"},
        ],
        "top_decreases": [{"commodity": "Natural Gas", "change": -8.0, "benefit": "$350K"}],
        "key_drivers": ["Energy costs"],
    }

    def test_movements_and_impact(self):
        payload = build_inflation_dashboard(self.DATA)

        assert payload.type == "inflation_dashboard"
        assert payload.portfolio_impact.amount == 5_200_000
        assert payload.portfolio_impact.formatted == "$5.2M"
        assert [m.direction for m in payload.price_movements] == ["up", "up", "up", "down"]
        assert payload.price_movements[-1].impact.amount == 350_000

    def test_alerts_for_large_moves(self):
        payload = build_inflation_dashboard(self.DATA)
        alerts = {a.commodity: a for a in payload.alerts}

        assert set(alerts) == {"Steel", "Aluminum", "Natural Gas"}
        assert alerts["Steel"].severity == "high"
        assert alerts["Aluminum"].severity == "medium"
        assert alerts["Natural Gas"].type == "drop"
        assert alerts["Natural Gas"].id == "drop-natural-gas"

    def test_missing_impact_returns_none(self):
        assert build_inflation_dashboard({"period": "Q1 2024"}) is None
        assert build_inflation_dashboard({**self.DATA, "portfolio_impact": {"amount": "tbd"}}) is None


def test_driver_analysis_sorted_by_contribution():
    payload = build_driver_analysis(
        {
            "commodity": "Steel",
            "period": "Last 6 months",
            "price_change": 8.5,
            "drivers": [
                {"name": "Energy", "category": "cost", "contribution": 2.5},
                {"name": "Demand", "category": "demand", "contribution": 4.0},
                {"name": "Tariffs", "category": "policy", "contribution": 1.25},
            ],
            "sources": [{"title": "Mill prices climb", "source": "Metals Weekly"}],
        }
    )

    assert [d.driver for d in payload.drivers] == ["Demand", "Energy", "Tariffs"]
    assert payload.total_contribution == 7.75
    assert payload.price_change.direction == "up"
    assert payload.market_news[0].source == "Metals Weekly"


def test_driver_analysis_requires_drivers():
    assert build_driver_analysis({"commodity": "Steel", "drivers": []}) is None


def test_impact_analysis_share_of_total():
    payload = build_impact_analysis(
        {
            "timeframe": "FY2024",
            "total_impact": "$4M",
            "breakdown": [
                {"category": "Metals", "amount": "$3M", "percent": 6.0},
                {"category": "Packaging", "amount": "$1M", "percent": 2.0},
            ],
            "most_affected": {"type": "category", "name": "Metals", "impact": "$3M"},
        }
    )

    assert payload.total_impact.amount == 4_000_000
    assert [b.share_of_total for b in payload.breakdown] == [75.0, 25.0]
    assert payload.most_affected.name == "Metals"


def test_impact_analysis_unparseable_breakdown_returns_none():
    data = {"total_impact": "$4M", "breakdown": [{"category": "Metals", "amount": "unknown"}]}
    assert build_impact_analysis(data) is None


def test_justification_report_variance_and_points():
    payload = build_justification_report(
        {
            "supplier_name": "Northern Steelworks",
            "commodity": "Steel",
            "requested_increase": 12.0,
            "market_benchmark": 7.5,
            "key_points": [
                {"point": "Energy surcharges rose", "supports": True},
                {"point": "Index prices flattened", "supports": False},
            ],
        }
    )

    assert payload.variance == 4.5
    assert payload.supporting_points == ["Energy surcharges rose"]
    assert payload.disputing_points == ["Index prices flattened"]


def test_justification_report_requires_benchmark():
    assert build_justification_report({"supplier_name": "X", "requested_increase": 5}) is None


def test_scenario_planner_computes_delta():
    payload = build_scenario_planner(
        {
            "scenario_name": "Steel +10%",
            "current_state": {"value": "$10M"},
            "projected_state": {"value": "$11M"},
        }
    )

    assert payload.baseline.amount == 10_000_000
    assert payload.delta.amount == 1_000_000
    assert payload.delta_percent == 10.0
    assert payload.direction == "up"


def test_executive_presentation_groups_highlights():
    payload = build_executive_presentation(
        {
            "title": "Q2 Cost Brief",
            "summary": "Costs rose modestly.",
            "highlights": [
                {"type": "concern", "text": "Steel volatility"},
                {"type": "opportunity", "text": "Resin prices easing"},
                {"type": "action", "text": "Renegotiate freight"},
            ],
            "key_metrics": [{"label": "Impact", "value": "$5.2M", "status": "negative"}],
        }
    )

    assert payload.concerns == ["Steel volatility"]
    assert payload.opportunities == ["Resin prices easing"]
    assert payload.actions == ["Renegotiate freight"]
    assert payload.key_metrics[0].status == "negative"


class TestCommodityDashboard:
    def test_gauge_shape(self):
        payload = build_commodity_dashboard(
            {
                "commodity": "Lithium",
                "current_price": 14500,
                "gauge": {"min": 12000, "max": 22000, "position": 25},
                "changes": {"monthly": {"absolute": -500, "percent": -3.3, "direction": "down"}},
            }
        )

        assert payload.range.position == 25
        assert payload.trend == "bearish"

    def test_price_shape(self):
        payload = build_commodity_dashboard(
            {"name": "Copper", "current_price": 110.0, "previous_price": 100.0}
        )

        assert payload.commodity == "Copper"
        assert payload.change.percent == 10.0
        assert payload.change.direction == "up"
        assert payload.trend == "bullish"

    def test_unknown_shape_returns_none(self):
        assert build_commodity_dashboard({"commodity": "Copper"}) is None
