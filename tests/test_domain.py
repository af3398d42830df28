"""Tests for the canonical domain model."""

import pytest
from pydantic import ValidationError

from app.core.domain import (
    DataTier,
    Portfolio,
    RiskChange,
    RiskDistribution,
    RiskFactor,
    RiskLevel,
    RiskScore,
    Source,
    SourceMix,
    SourceType,
    build_portfolio,
    determine_source_mix,
    format_spend,
    is_restricted_query,
    level_from_score,
    restricted_factor_mentioned,
    tier_for_factor,
)
from tests.fixtures_risk import ACME, BOXCO, PORTFOLIO_14, RISK_CHANGES, STEELWORKS, make_supplier


class TestLevelFromScore:
    @pytest.mark.parametrize(
        "score,level",
        [
            (100, RiskLevel.HIGH),
            (75, RiskLevel.HIGH),
            (74.9, RiskLevel.MEDIUM_HIGH),
            (60, RiskLevel.MEDIUM_HIGH),
            (59.9, RiskLevel.MEDIUM),
            (40, RiskLevel.MEDIUM),
            (39.9, RiskLevel.LOW),
            (0.1, RiskLevel.LOW),
            (0, RiskLevel.UNRATED),
        ],
    )
    def test_cutoffs(self, score, level):
        assert level_from_score(score) == level


class TestRiskScore:
    def test_level_derived_when_missing(self):
        assert RiskScore(score=85).level == RiskLevel.HIGH

    def test_matching_level_accepted(self):
        assert RiskScore(score=41, level="medium").level == RiskLevel.MEDIUM

    def test_mismatched_level_rejected(self):
        with pytest.raises(ValidationError):
            RiskScore(score=85, level="low")

    def test_score_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            RiskScore(score=120)


class TestRiskFactor:
    def test_restricted_score_is_stripped(self):
        factor = RiskFactor(id="financial", name="Financial Health", tier=DataTier.RESTRICTED, score=72)
        assert factor.score is None
        assert factor.is_restricted

    def test_conditional_score_kept(self):
        factor = RiskFactor(id="esg", name="ESG", tier=DataTier.CONDITIONALLY_DISPLAYABLE, score=62)
        assert factor.score == 62

    def test_tier_lookup(self):
        assert tier_for_factor("cybersecurity") == DataTier.RESTRICTED
        assert tier_for_factor("overall_srs") == DataTier.FREELY_DISPLAYABLE
        assert tier_for_factor("unknown") == DataTier.CONDITIONALLY_DISPLAYABLE


def test_format_spend():
    assert format_spend(10_200_000_000) == "$10.2B"
    assert format_spend(1_200_000) == "$1.2M"
    assert format_spend(45_000) == "$45.0K"
    assert format_spend(900) == "$900"


def test_supplier_fills_spend_formatted():
    assert ACME.spend_formatted == "$1.2M"
    assert ACME.srs.level == RiskLevel.HIGH


class TestRiskChange:
    def test_worsened(self):
        change = RISK_CHANGES[0]
        assert change.direction == "worsened"
        assert change.previous_level == RiskLevel.MEDIUM_HIGH
        assert change.current_level == RiskLevel.HIGH
        assert change.delta == 13

    def test_improved(self):
        change = RiskChange(
            supplier_id="s", supplier_name="S", previous_score=66, current_score=58
        )
        assert change.direction == "improved"
        assert change.delta == -8


class TestPortfolio:
    def test_distribution_must_sum_to_total(self):
        with pytest.raises(ValidationError):
            Portfolio(total_suppliers=14, distribution=RiskDistribution(high=2))

    def test_total_spend_formatted(self):
        assert PORTFOLIO_14.total_spend_formatted == "$10.2M"

    def test_build_portfolio_counts_followed_only(self):
        unfollowed = make_supplier("sup-x", "Unfollowed Co", 90).model_copy(update={"is_followed": False})
        portfolio = build_portfolio([ACME, BOXCO, STEELWORKS, unfollowed], RISK_CHANGES)

        assert portfolio.total_suppliers == 3
        assert portfolio.distribution.high == 1
        assert portfolio.distribution.medium == 2
        assert portfolio.total_spend == ACME.spend + BOXCO.spend + STEELWORKS.spend
        assert len(portfolio.recent_changes) == 2


class TestRestrictedDetection:
    def test_restricted_query_patterns(self):
        assert is_restricted_query("Why is Acme's score so high?")
        assert is_restricted_query("Show me the financial health rating")
        assert not is_restricted_query("Show my suppliers in Germany")

    def test_factor_mentioned(self):
        assert restricted_factor_mentioned("What is their cyber security score?") == "cybersecurity"
        assert restricted_factor_mentioned("any sanctions hits?") == "sanctions"
        assert restricted_factor_mentioned("politically exposed persons") == "pep"
        assert restricted_factor_mentioned("ESG rating please") is None


class TestSourceMix:
    def _sources(self, *types):
        return [Source(type=t, name=t.value) for t in types]

    def test_empty_is_internal_only(self):
        assert determine_source_mix([]) == SourceMix.INTERNAL_ONLY

    def test_internal_plus_web(self):
        sources = self._sources(SourceType.BEROE, SourceType.NEWS)
        assert determine_source_mix(sources) == SourceMix.INTERNAL_PLUS_WEB

    def test_internal_plus_partners(self):
        sources = self._sources(SourceType.INTERNAL_DATA, SourceType.ECOVADIS)
        assert determine_source_mix(sources) == SourceMix.INTERNAL_PLUS_PARTNERS

    def test_all(self):
        sources = self._sources(SourceType.BEROE, SourceType.WEB, SourceType.DND)
        assert determine_source_mix(sources) == SourceMix.ALL

    def test_web_only(self):
        assert determine_source_mix(self._sources(SourceType.WEB)) == SourceMix.WEB_ONLY
