"""
Follow-up suggestions.

Rule-based and stateless: each rule applies to some intents, fires on a
condition over the response data, and carries a priority. The top three
distinct suggestions are returned, padded with fixed defaults.
"""

from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel

from app.core.domain import (
    IntentCategory,
    IntentResult,
    Portfolio,
    RiskChange,
    RiskLevel,
    SubIntent,
    Supplier,
    Trend,
)

MAX_SUGGESTIONS = 3


class Suggestion(BaseModel):
    id: str
    text: str
    icon: str


@dataclass
class SuggestionContext:
    intent: IntentResult
    suppliers: list[Supplier] = field(default_factory=list)
    portfolio: Portfolio | None = None
    risk_changes: list[RiskChange] = field(default_factory=list)
    history: list[IntentCategory] = field(default_factory=list)
    result_count: int = 0


@dataclass(frozen=True)
class SuggestionRule:
    id: str
    applies_to: tuple[IntentCategory, ...]
    condition: Callable[[SuggestionContext], bool]
    generate: Callable[[SuggestionContext], Suggestion]
    priority: Callable[[SuggestionContext], int]


DEFAULT_SUGGESTIONS = (
    Suggestion(id="default_overview", text="Show my risk overview", icon="chart"),
    Suggestion(id="default_high_risk", text="Which suppliers are high risk?", icon="search"),
    Suggestion(id="default_changes", text="Any recent risk changes?", icon="alert"),
)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _first_word(name: str) -> str:
    return name.split(" ")[0]


def _high(ctx: SuggestionContext) -> int:
    return ctx.portfolio.distribution.high if ctx.portfolio else 0


def _unrated(ctx: SuggestionContext) -> int:
    return ctx.portfolio.distribution.unrated if ctx.portfolio else 0


def _lead(ctx: SuggestionContext) -> Supplier | None:
    return ctx.suppliers[0] if ctx.suppliers else None


def _first_high(ctx: SuggestionContext) -> Supplier:
    return next(s for s in ctx.suppliers if s.srs.level == RiskLevel.HIGH)


def _level_words(supplier: Supplier) -> str:
    return supplier.srs.level.value.replace("-", " ")


def _worsening(ctx: SuggestionContext) -> list[Supplier]:
    return [s for s in ctx.suppliers if s.srs.trend == Trend.WORSENING]


def _worsened(ctx: SuggestionContext) -> list[RiskChange]:
    return [c for c in ctx.risk_changes if c.direction == "worsened"]


def _biggest_change(ctx: SuggestionContext) -> RiskChange:
    biggest = ctx.risk_changes[0]
    for change in ctx.risk_changes[1:]:
        if abs(change.delta) > abs(biggest.delta):
            biggest = change
    return biggest


def _safest(ctx: SuggestionContext) -> Supplier:
    return min(ctx.suppliers, key=lambda s: s.srs.score)


def _always(ctx: SuggestionContext) -> bool:
    return True


def _fixed(id: str, text: str, icon: str) -> Callable[[SuggestionContext], Suggestion]:
    return lambda ctx: Suggestion(id=id, text=text, icon=icon)


def _const(value: int) -> Callable[[SuggestionContext], int]:
    return lambda ctx: value


_PORTFOLIO = (IntentCategory.PORTFOLIO_OVERVIEW,)
_DISCOVERY = (IntentCategory.FILTERED_DISCOVERY,)
_SUPPLIER = (IntentCategory.SUPPLIER_DEEP_DIVE,)
_TREND = (IntentCategory.TREND_DETECTION,)
_GENERIC = (
    IntentCategory.GENERAL,
    IntentCategory.EXPLANATION_WHY,
    IntentCategory.SETUP_CONFIG,
    IntentCategory.REPORTING_EXPORT,
)


SUGGESTION_RULES: tuple[SuggestionRule, ...] = (
    # Portfolio
    SuggestionRule(
        id="high_risk_drilldown",
        applies_to=_PORTFOLIO,
        condition=lambda ctx: _high(ctx) > 0,
        generate=lambda ctx: Suggestion(
            id="high_risk_drilldown",
            text=f"Review your {_plural(_high(ctx), 'high-risk supplier')}",
            icon="alert",
        ),
        priority=lambda ctx: 100 if _high(ctx) > 3 else 80,
    ),
    SuggestionRule(
        id="unrated_inquiry",
        applies_to=_PORTFOLIO,
        condition=lambda ctx: _unrated(ctx) > 0,
        generate=lambda ctx: Suggestion(
            id="unrated_inquiry", text=f"Why are {_unrated(ctx)} suppliers unrated?", icon="lightbulb"
        ),
        priority=lambda ctx: 60 if _unrated(ctx) > 5 else 40,
    ),
    SuggestionRule(
        id="risk_by_category",
        applies_to=_PORTFOLIO,
        condition=lambda ctx: ctx.portfolio is not None and ctx.portfolio.total_suppliers > 10,
        generate=_fixed("risk_by_category", "View risk breakdown by category", "chart"),
        priority=_const(50),
    ),
    SuggestionRule(
        id="setup_alerts_after_overview",
        applies_to=_PORTFOLIO,
        condition=lambda ctx: IntentCategory.SETUP_CONFIG not in ctx.history,
        generate=_fixed("setup_alerts", "Set up risk change alerts", "alert"),
        priority=_const(30),
    ),
    # Discovery
    SuggestionRule(
        id="compare_filtered",
        applies_to=_DISCOVERY,
        condition=lambda ctx: 2 <= ctx.result_count <= 5,
        generate=lambda ctx: Suggestion(
            id="compare_filtered", text=f"Compare these {ctx.result_count} suppliers", icon="compare"
        ),
        priority=lambda ctx: 90 if ctx.result_count <= 4 else 70,
    ),
    SuggestionRule(
        id="export_large_list",
        applies_to=_DISCOVERY,
        condition=lambda ctx: ctx.result_count > 5,
        generate=lambda ctx: Suggestion(
            id="export_list", text=f"Export all {ctx.result_count} suppliers", icon="document"
        ),
        priority=_const(60),
    ),
    SuggestionRule(
        id="find_alternatives_for_risky",
        applies_to=_DISCOVERY,
        condition=lambda ctx: any(s.srs.level == RiskLevel.HIGH for s in ctx.suppliers),
        generate=lambda ctx: Suggestion(
            id="find_alternatives",
            text=f"Find alternatives for {_first_high(ctx).name}",
            icon="search",
        ),
        priority=_const(85),
    ),
    SuggestionRule(
        id="focus_worsening",
        applies_to=_DISCOVERY,
        condition=lambda ctx: len(_worsening(ctx)) > 0,
        generate=lambda ctx: Suggestion(
            id="focus_worsening",
            text=f"Focus on {_plural(len(_worsening(ctx)), 'worsening supplier')}",
            icon="alert",
        ),
        priority=_const(95),
    ),
    # Supplier deep dive
    SuggestionRule(
        id="explain_score",
        applies_to=_SUPPLIER,
        condition=lambda ctx: _lead(ctx) is not None
        and _lead(ctx).srs.level in (RiskLevel.HIGH, RiskLevel.MEDIUM_HIGH),
        generate=lambda ctx: Suggestion(
            id="explain_score",
            text=f"Why is {_first_word(_lead(ctx).name)} {_level_words(_lead(ctx))} risk?",
            icon="lightbulb",
        ),
        priority=_const(90),
    ),
    SuggestionRule(
        id="find_supplier_alternatives",
        applies_to=_SUPPLIER,
        condition=lambda ctx: _lead(ctx) is not None
        and (_lead(ctx).srs.level == RiskLevel.HIGH or _lead(ctx).srs.trend == Trend.WORSENING),
        generate=lambda ctx: Suggestion(
            id="find_supplier_alternatives",
            text=f"Find alternatives to {_first_word(_lead(ctx).name)}",
            icon="search",
        ),
        priority=lambda ctx: 100 if _lead(ctx).srs.trend == Trend.WORSENING else 80,
    ),
    SuggestionRule(
        id="compare_with_peers",
        applies_to=_SUPPLIER,
        condition=lambda ctx: _lead(ctx) is not None,
        generate=lambda ctx: Suggestion(
            id="compare_with_peers",
            text=f"Compare with other {_lead(ctx).category} suppliers",
            icon="compare",
        ),
        priority=_const(60),
    ),
    SuggestionRule(
        id="view_risk_history",
        applies_to=_SUPPLIER,
        condition=lambda ctx: _lead(ctx) is not None,
        generate=lambda ctx: Suggestion(
            id="view_risk_history",
            text=f"View {_first_word(_lead(ctx).name)}'s risk history",
            icon="chart",
        ),
        priority=_const(50),
    ),
    # Trends
    SuggestionRule(
        id="view_worsened_suppliers",
        applies_to=_TREND,
        condition=lambda ctx: len(_worsened(ctx)) > 0,
        generate=lambda ctx: Suggestion(
            id="view_worsened",
            text=f"Review {_plural(len(_worsened(ctx)), 'supplier')} with increased risk",
            icon="alert",
        ),
        priority=_const(95),
    ),
    SuggestionRule(
        id="investigate_biggest_change",
        applies_to=_TREND,
        condition=lambda ctx: len(ctx.risk_changes) > 0,
        generate=lambda ctx: Suggestion(
            id="investigate_change",
            text=f"Why did {_biggest_change(ctx).supplier_name}'s score change?",
            icon="lightbulb",
        ),
        priority=_const(85),
    ),
    SuggestionRule(
        id="setup_alerts_after_trends",
        applies_to=_TREND,
        condition=lambda ctx: IntentCategory.SETUP_CONFIG not in ctx.history,
        generate=_fixed("setup_alerts_trends", "Set up alerts for future changes", "alert"),
        priority=_const(70),
    ),
    # Comparison
    SuggestionRule(
        id="pick_safest",
        applies_to=(IntentCategory.COMPARISON,),
        condition=lambda ctx: len(ctx.suppliers) >= 2,
        generate=lambda ctx: Suggestion(
            id="pick_safest",
            text=f"Why is {_first_word(_safest(ctx).name)} the safest option?",
            icon="lightbulb",
        ),
        priority=_const(80),
    ),
    SuggestionRule(
        id="find_more_options",
        applies_to=(IntentCategory.COMPARISON,),
        condition=_always,
        generate=_fixed("find_more_options", "Find more supplier options", "search"),
        priority=_const(60),
    ),
    SuggestionRule(
        id="export_comparison",
        applies_to=(IntentCategory.COMPARISON,),
        condition=_always,
        generate=_fixed("export_comparison", "Export this comparison", "document"),
        priority=_const(40),
    ),
    # Actions
    SuggestionRule(
        id="confirm_action",
        applies_to=(IntentCategory.ACTION_TRIGGER,),
        condition=_always,
        generate=_fixed("confirm_action", "Confirm and proceed", "document"),
        priority=_const(90),
    ),
    SuggestionRule(
        id="refine_search",
        applies_to=(IntentCategory.ACTION_TRIGGER,),
        condition=lambda ctx: ctx.intent.sub_intent == SubIntent.FIND_ALTERNATIVES,
        generate=_fixed("refine_search", "Refine search criteria", "search"),
        priority=_const(70),
    ),
    # Market
    SuggestionRule(
        id="show_affected_suppliers",
        applies_to=(IntentCategory.MARKET_CONTEXT,),
        condition=_always,
        generate=_fixed("show_affected", "Show my affected suppliers", "search"),
        priority=_const(90),
    ),
    SuggestionRule(
        id="industry_risk_overview",
        applies_to=(IntentCategory.MARKET_CONTEXT,),
        condition=_always,
        generate=_fixed("industry_overview", "View industry risk overview", "chart"),
        priority=_const(70),
    ),
    # Restricted handoff
    SuggestionRule(
        id="find_alternatives_after_handoff",
        applies_to=(IntentCategory.RESTRICTED_QUERY,),
        condition=_always,
        generate=_fixed("alternatives_handoff", "Find alternative suppliers instead", "search"),
        priority=_const(80),
    ),
    SuggestionRule(
        id="compare_after_handoff",
        applies_to=(IntentCategory.RESTRICTED_QUERY,),
        condition=_always,
        generate=_fixed("compare_handoff", "Compare with other suppliers", "compare"),
        priority=_const(70),
    ),
    # Generic
    SuggestionRule(
        id="show_overview_general",
        applies_to=_GENERIC,
        condition=lambda ctx: IntentCategory.PORTFOLIO_OVERVIEW not in ctx.history,
        generate=_fixed("show_overview", "Show my risk overview", "chart"),
        priority=_const(50),
    ),
    SuggestionRule(
        id="high_risk_general",
        applies_to=_GENERIC,
        condition=_always,
        generate=_fixed("high_risk_general", "Which suppliers are high risk?", "search"),
        priority=_const(40),
    ),
)


def generate_suggestions(
    intent: IntentResult,
    suppliers: list[Supplier] | None = None,
    portfolio: Portfolio | None = None,
    risk_changes: list[RiskChange] | None = None,
    history: list[IntentCategory] | None = None,
    result_count: int | None = None,
) -> list[Suggestion]:
    """Top three follow-ups for a response, padded with defaults."""
    suppliers = suppliers or []
    ctx = SuggestionContext(
        intent=intent,
        suppliers=suppliers,
        portfolio=portfolio,
        risk_changes=risk_changes or [],
        history=history or [],
        result_count=result_count if result_count is not None else len(suppliers),
    )

    scored = [
        (rule.priority(ctx), rule.generate(ctx))
        for rule in SUGGESTION_RULES
        if intent.category in rule.applies_to and rule.condition(ctx)
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)

    suggestions: list[Suggestion] = []
    used: set[str] = set()
    for _, suggestion in scored + [(0, d) for d in DEFAULT_SUGGESTIONS]:
        if len(suggestions) >= MAX_SUGGESTIONS:
            break
        if suggestion.text in used:
            continue
        suggestions.append(suggestion)
        used.add(suggestion.text)
    return suggestions
