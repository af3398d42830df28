"""Tests for rule-based intent classification."""

from app.context.intent_classifier import HANDOFF_REASON, classify_intent, extract_entities
from app.core.domain import BuilderHint, ExtractedEntities, IntentCategory, SubIntent


def test_greeting_is_general_with_zero_confidence():
    result = classify_intent("Hello")

    assert result.category == IntentCategory.GENERAL
    assert result.sub_intent == SubIntent.NONE
    assert result.confidence == 0.0


def test_empty_query_is_general():
    assert classify_intent("").category == IntentCategory.GENERAL


def test_portfolio_overview():
    result = classify_intent("How many high risk suppliers do I have?")

    assert result.category == IntentCategory.PORTFOLIO_OVERVIEW
    assert result.sub_intent == SubIntent.OVERALL_SUMMARY
    assert result.confidence == 0.8


def test_compound_filter_discovery():
    result = classify_intent("Show me high risk suppliers in Europe")

    assert result.category == IntentCategory.FILTERED_DISCOVERY
    assert result.sub_intent == SubIntent.COMPOUND_FILTER
    assert result.extracted_entities.region == "Europe"
    assert result.extracted_entities.risk_level == "high"


def test_comparison():
    result = classify_intent("Compare Acme vs BoxCo")
    assert result.category == IntentCategory.COMPARISON


def test_tie_goes_to_earlier_category():
    # One supplier_deep_dive pattern and one trend_detection pattern
    result = classify_intent("Tell me about the trend")
    assert result.category == IntentCategory.SUPPLIER_DEEP_DIVE


def test_confidence_is_capped():
    result = classify_intent(
        "Show me my risk overview: how many suppliers, what's my total risk, how is the portfolio"
    )
    assert result.confidence <= 0.95


def test_restricted_query_requires_handoff():
    result = classify_intent("Show the breakdown of factor scores")

    assert result.category == IntentCategory.RESTRICTED_QUERY
    assert result.requires_handoff is True
    assert result.handoff_reason == HANDOFF_REASON


def test_inflation_drivers():
    result = classify_intent("What are the price drivers behind steel inflation?")

    assert result.category == IntentCategory.INFLATION_DRIVERS
    assert result.sub_intent == SubIntent.COMMODITY_DRIVERS
    assert result.extracted_entities.commodity == "steel"


def test_market_context_requires_research():
    result = classify_intent("What's happening in the packaging market?")

    assert result.category == IntentCategory.MARKET_CONTEXT
    assert result.requires_research is True


def test_builder_hint_bypasses_classification():
    hint = BuilderHint(
        category=IntentCategory.COMPARISON,
        sub_intent=SubIntent.NONE,
        entities=ExtractedEntities(supplier="Acme"),
    )
    result = classify_intent("anything at all", builder_hint=hint)

    assert result.category == IntentCategory.COMPARISON
    assert result.confidence == 1.0
    assert result.extracted_entities.supplier == "Acme"


def test_entities_carry_over_from_context():
    result = classify_intent("What about their trend?", context=["Tell me about Acme Corp"])
    assert result.extracted_entities.supplier == "Acme Corp"


def test_current_entities_win_over_context():
    result = classify_intent("Tell me about BoxCo", context=["Tell me about Acme Corp"])
    assert result.extracted_entities.supplier == "BoxCo"


class TestExtractEntities:
    def test_quoted_supplier(self):
        assert extract_entities('show me "Northern Steelworks" details').supplier == "Northern Steelworks"

    def test_timeframe_and_action(self):
        entities = extract_entities("Export changes from the last 3 months")
        assert entities.timeframe == "last 3 months"
        assert entities.action == "export"

    def test_category(self):
        assert extract_entities("packaging suppliers in China").category == "packaging"
        assert extract_entities("packaging suppliers in China").region == "Asia Pacific"
