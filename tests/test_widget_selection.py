"""Tests for the widget registry and selector."""

from app.core.domain import IntentCategory, SubIntent
from app.core.widget_registry import (
    WIDGET_REGISTRY,
    ArtifactType,
    RenderContext,
    get_expand_target,
    get_widget,
    get_widgets_for_intent,
    validate_intent_coverage,
)
from app.core.widget_selector import SUB_INTENT_BOOST, select_widget
from tests.fixtures_risk import ACME, BOXCO, PORTFOLIO_14, RISK_CHANGES


class TestRegistry:
    def test_every_core_intent_is_covered(self):
        assert validate_intent_coverage() == []

    def test_ids_are_unique(self):
        ids = [w.id for w in WIDGET_REGISTRY]
        assert len(ids) == len(set(ids))

    def test_lookup(self):
        assert get_widget("handoff-card").type == "handoff_card"
        assert get_widget("missing") is None
        assert get_expand_target("risk-distribution-widget") == ArtifactType.PORTFOLIO_DASHBOARD
        assert get_expand_target("handoff-card") is None

    def test_widgets_for_intent_keep_declaration_order(self):
        ids = [w.id for w in get_widgets_for_intent(IntentCategory.PORTFOLIO_OVERVIEW)]
        assert ids[0] == "risk-distribution-widget"


class TestSelectWidget:
    def test_portfolio_overview_picks_risk_distribution(self):
        selection = select_widget(
            IntentCategory.PORTFOLIO_OVERVIEW,
            SubIntent.OVERALL_SUMMARY,
            {"portfolio": PORTFOLIO_14},
        )

        assert selection.widget_id == "risk-distribution-widget"
        assert selection.priority >= 95
        assert selection.score == selection.priority + SUB_INTENT_BOOST
        assert selection.matched_sub_intent is True
        assert selection.expands_to == ArtifactType.PORTFOLIO_DASHBOARD

    def test_spend_sub_intent_changes_winner(self):
        selection = select_widget(
            IntentCategory.PORTFOLIO_OVERVIEW,
            SubIntent.SPEND_WEIGHTED,
            {"portfolio": PORTFOLIO_14},
        )
        # 105 + boost beats the unboosted 110
        assert selection.widget_id == "spend-exposure-widget"
        assert selection.score == 115

    def test_missing_data_falls_back_to_data_free_widget(self):
        selection = select_widget(IntentCategory.PORTFOLIO_OVERVIEW, SubIntent.OVERALL_SUMMARY, {})
        assert selection.widget_id == "stat-card"

    def test_missing_data_returns_none(self):
        assert select_widget(IntentCategory.SUPPLIER_DEEP_DIVE, SubIntent.SUPPLIER_OVERVIEW, {}) is None

    def test_empty_list_counts_as_missing(self):
        selection = select_widget(
            IntentCategory.FILTERED_DISCOVERY, SubIntent.BY_RISK_LEVEL, {"suppliers": []}
        )
        assert selection.widget_id == "data-list-card"

    def test_general_without_data_has_no_widget(self):
        assert select_widget(IntentCategory.GENERAL, SubIntent.NONE, {}) is None

    def test_restricted_query_gets_handoff(self):
        selection = select_widget(IntentCategory.RESTRICTED_QUERY, SubIntent.NONE, {})
        assert selection.widget_id == "handoff-card"
        assert selection.type == "handoff_card"

    def test_render_context_filters_candidates(self):
        selection = select_widget(
            IntentCategory.SUPPLIER_DEEP_DIVE,
            SubIntent.SUPPLIER_OVERVIEW,
            {"supplier": ACME},
            RenderContext.CHAT_COMPACT,
        )
        assert selection.widget_id == "supplier-mini-card"

    def test_alternatives_preview(self):
        selection = select_widget(
            IntentCategory.ACTION_TRIGGER,
            SubIntent.FIND_ALTERNATIVES,
            {"suppliers": [ACME, BOXCO]},
        )
        assert selection.widget_id == "alternatives-preview-card"
        assert selection.expands_to == ArtifactType.SUPPLIER_ALTERNATIVES

    def test_general_falls_back_to_sub_intent(self):
        selection = select_widget(
            IntentCategory.GENERAL, SubIntent.RECENT_CHANGES, {"risk_changes": RISK_CHANGES}
        )
        assert selection.widget_id == "alert-card-widget"

    def test_selection_is_deterministic(self):
        data = {"portfolio": PORTFOLIO_14, "suppliers": [ACME]}
        first = select_widget(IntentCategory.FILTERED_DISCOVERY, SubIntent.BY_ATTRIBUTE, data)
        second = select_widget(IntentCategory.FILTERED_DISCOVERY, SubIntent.BY_ATTRIBUTE, data)
        assert first == second
