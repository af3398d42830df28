"""Tests for artifact payload building and the restricted-score guard."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from app.core.artifact_builder import (
    BUILDERS,
    MATCH_MAX,
    ArtifactContext,
    build_artifact_payload,
    build_checked_payload,
    build_history,
    contains_restricted_score,
    match_score,
)
from app.core.domain import Criticality, DataTier, RiskFactor, RiskLevel
from app.core.errors import RestrictedLeakError
from app.core.schemas_artifacts import ComparisonEntry, SrsSummary, SupplierComparisonPayload
from app.core.widget_registry import ArtifactType
from tests.fixtures_risk import ACME, BOXCO, PORTFOLIO_14, RISK_CHANGES, STEELWORKS, make_supplier

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class TestMatchScore:
    def test_same_category_lower_risk_different_region(self):
        score, reasons = match_score(ACME, BOXCO)
        assert score == 90
        assert "Same category (Packaging)" in reasons
        assert "Lower risk score" in reasons

    def test_clamped_to_max(self):
        twin = make_supplier("sup-twin", "Acme Twin", 20)
        score, _ = match_score(ACME, twin)
        # 70 + 15 + 5 + 5 + 5 = 100 before clamping
        assert score == MATCH_MAX

    def test_unrelated_candidate_keeps_base(self):
        other = make_supplier(
            "sup-o", "Other", 95, category="Chemicals", country="Japan", region="Asia Pacific"
        )
        assert match_score(ACME, other) == (70, [])


def test_alternatives_payload_sorted_and_bounded():
    payload = build_checked_payload(
        ArtifactType.SUPPLIER_ALTERNATIVES,
        ArtifactContext(suppliers=[ACME, STEELWORKS, BOXCO]),
        NOW,
    )

    assert payload.type == "supplier_alternatives"
    assert payload.current_supplier.id == ACME.id
    assert [a.id for a in payload.alternatives] == ["sup-boxco", "sup-steel"]
    assert all(70 <= a.match_score <= 98 for a in payload.alternatives)


def test_portfolio_dashboard_counts_trends_from_recent_changes():
    payload = build_checked_payload(
        ArtifactType.PORTFOLIO_DASHBOARD, ArtifactContext(portfolio=PORTFOLIO_14), NOW
    )

    assert payload.total_suppliers == 14
    assert payload.distribution.unrated == 8
    assert payload.trends.deteriorated == 1
    assert payload.trends.improved == 1
    assert payload.trends.new_high_risk == 1
    assert payload.top_movers[0].name == "Acme Packaging Corp"
    assert payload.top_movers[0].direction == "up"
    assert [a.headline for a in payload.alerts] == ["Acme Packaging Corp risk increased"]
    assert payload.last_updated == NOW.isoformat()


def test_build_is_deterministic_for_fixed_clock():
    context = ArtifactContext(suppliers=[ACME], risk_changes=RISK_CHANGES)
    first = build_checked_payload(ArtifactType.SUPPLIER_DETAIL, context, NOW)
    second = build_checked_payload(ArtifactType.SUPPLIER_DETAIL, context, NOW)
    assert first.model_dump_json() == second.model_dump_json()


def test_supplier_detail_omits_restricted_scores():
    payload = build_checked_payload(
        ArtifactType.SUPPLIER_DETAIL, ArtifactContext(suppliers=[ACME]), NOW
    )
    factors = {f.name: f for f in payload.supplier.risk_factors}

    assert factors["Financial Health"].is_restricted is True
    assert factors["Financial Health"].score is None
    assert factors["Financial Health"].category == "financial"
    assert factors["ESG"].score == 62
    assert factors["ESG"].category == "compliance"


def test_supplier_detail_events_and_history():
    payload = build_checked_payload(
        ArtifactType.SUPPLIER_DETAIL, ArtifactContext(suppliers=[ACME], risk_changes=RISK_CHANGES), NOW
    )
    supplier = payload.supplier

    assert len(supplier.events) == 1
    assert supplier.events[0].type == "alert"
    assert supplier.events[0].title == "Risk score increased to 85"
    assert [h.score for h in supplier.history] == [72, 85]
    assert supplier.history[1].change == 13


def test_history_falls_back_to_current_score():
    history = build_history(BOXCO, NOW)
    assert len(history) == 1
    assert history[0].date == NOW.isoformat()
    assert history[0].level == RiskLevel.MEDIUM


def test_comparison_marks_restricted_metrics():
    payload = build_checked_payload(
        ArtifactType.SUPPLIER_COMPARISON, ArtifactContext(suppliers=[ACME, BOXCO]), NOW
    )
    metrics = payload.suppliers[0].metrics

    assert metrics["financial"] == "restricted"
    assert metrics["cybersecurity"] == "restricted"
    assert metrics["esg"] == 62
    assert payload.suppliers[0].relationship == "Strategic"


def test_supplier_table_collects_categories_and_locations():
    payload = build_checked_payload(
        ArtifactType.SUPPLIER_TABLE, ArtifactContext(suppliers=[ACME, BOXCO, STEELWORKS]), NOW
    )
    assert payload.total_count == 3
    assert payload.categories == ["Packaging", "Metals"]
    assert payload.locations == ["Chicago, USA", "Hamburg, Germany", "Hamilton, Canada"]


@pytest.mark.parametrize(
    "artifact_type,context",
    [
        (ArtifactType.SUPPLIER_TABLE, ArtifactContext()),
        (ArtifactType.SUPPLIER_DETAIL, ArtifactContext()),
        (ArtifactType.SUPPLIER_COMPARISON, ArtifactContext(suppliers=[ACME])),
        (ArtifactType.SUPPLIER_ALTERNATIVES, ArtifactContext(suppliers=[ACME])),
        (ArtifactType.PORTFOLIO_DASHBOARD, ArtifactContext()),
        (ArtifactType.INFLATION_DASHBOARD, ArtifactContext()),
        (ArtifactType.DEEP_RESEARCH_REPORT, ArtifactContext()),
    ],
)
def test_missing_inputs_return_none(artifact_type, context):
    assert build_checked_payload(artifact_type, context, NOW) is None


def _leaky_comparison(context, now):
    entry = ComparisonEntry(
        id="sup-leak",
        name="Leaky Co",
        category="Packaging",
        location="Chicago, USA",
        srs=SrsSummary(score=80, level=RiskLevel.HIGH, trend="stable"),
        metrics={"financial": 72.0},
        spend="$1.0M",
        relationship="Approved",
        pros=["x"],
        cons=["y"],
    )
    return SupplierComparisonPayload(suppliers=[entry, entry])


def test_restricted_leak_raises():
    with patch.dict(BUILDERS, {ArtifactType.SUPPLIER_COMPARISON: _leaky_comparison}):
        with pytest.raises(RestrictedLeakError):
            build_checked_payload(
                ArtifactType.SUPPLIER_COMPARISON, ArtifactContext(suppliers=[ACME, BOXCO]), NOW
            )


def test_restricted_leak_dropped_by_lenient_builder():
    with patch.dict(BUILDERS, {ArtifactType.SUPPLIER_COMPARISON: _leaky_comparison}):
        payload = build_artifact_payload(
            ArtifactType.SUPPLIER_COMPARISON, ArtifactContext(suppliers=[ACME, BOXCO]), NOW
        )
    assert payload is None


class TestContainsRestrictedScore:
    def test_detects_tier_marked_score(self):
        assert contains_restricted_score([{"tier": "restricted", "score": 10}])

    def test_detects_flagged_score_nested(self):
        assert contains_restricted_score({"a": {"b": [{"is_restricted": True, "score": 1.5}]}})

    def test_sentinel_is_safe(self):
        assert not contains_restricted_score({"metrics": {"financial": "restricted", "esg": 40}})

    def test_restricted_without_score_is_safe(self):
        factor = RiskFactor(id="pep", name="PEP", tier=DataTier.RESTRICTED, score=99)
        assert not contains_restricted_score(factor.model_dump(mode="json"))


def test_relationship_follows_criticality():
    low = make_supplier("sup-l", "Low Crit", 30, criticality=Criticality.LOW)
    payload = build_checked_payload(
        ArtifactType.SUPPLIER_COMPARISON, ArtifactContext(suppliers=[low, BOXCO]), NOW
    )
    assert payload.suppliers[0].relationship == "Approved"
    assert payload.suppliers[1].relationship == "Preferred"
