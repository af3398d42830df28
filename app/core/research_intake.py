"""
Deep research intake: clarifying questions and slot prefill.

Each study type declares the slots it needs. Slots are filled from entities
found in the query (high confidence) or recent user messages (medium
confidence). Required slots confidently filled from the query are not asked
again; optional slots are offered only when the conversation makes them
relevant, capped at two.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable

from app.context.deep_research_scoring import get_estimates
from app.core.schemas_research import (
    DeepResearchIntake,
    IntakeQuestion,
    QuestionOption,
    QuestionType,
    StudyType,
)

RECENT_MESSAGE_COUNT = 5
MAX_OPTIONAL_QUESTIONS = 2


# ============================================================================
# Entity extraction
# ============================================================================

KNOWN_COMMODITIES = (
    "lithium carbonate", "lithium", "corrugated boxes", "corrugated", "stainless steel",
    "steel", "aluminum", "aluminium", "copper", "plastics", "rubber", "paper", "pulp",
    "resins", "silicones", "natural gas", "crude oil", "oil", "packaging", "freight",
    "zinc", "nickel", "cobalt", "rare earth", "polyethylene", "polypropylene", "pvc",
    "titanium", "palladium", "platinum", "gold", "silver", "iron ore", "coal", "lumber",
    "cotton", "diesel", "ethanol", "hdpe", "ldpe", "nylon",
)

REGION_CODES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("na", re.compile(r"\b(north\s+america|usa|united\s+states|canada|mexico|us\s+market)\b", re.I)),
    ("eu", re.compile(r"\b(europe|european|eu|uk|germany|france|western\s+europe)\b", re.I)),
    ("apac", re.compile(r"\b(asia|apac|china|japan|india|singapore|asia\s+pacific)\b", re.I)),
    ("latam", re.compile(r"\b(latin\s+america|south\s+america|brazil|latam)\b", re.I)),
    ("mea", re.compile(r"\b(middle\s+east|africa|mea|gulf|saudi)\b", re.I)),
    ("global", re.compile(r"\b(global|worldwide|international)\b", re.I)),
)

# First match wins
TIMEFRAME_CODES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(this quarter|current quarter|q[1-4]\s*20\d{2})\b", re.I), "6m"),
    (re.compile(r"\b(last|past)\s+(6|six)\s+months\b", re.I), "6m"),
    (re.compile(r"\b(this year|last year|past year|last\s+12\s+months|annual)\b", re.I), "12m"),
    (re.compile(r"\b(last|past)\s+(2|two)\s+years\b", re.I), "2y"),
    (re.compile(r"\b((last|past)\s+(5|five)\s+years|long.?term)\b", re.I), "5y"),
    (re.compile(r"\b(recent|latest|current|now)\b", re.I), "12m"),
)


def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    spaced = r"[\s-]+".join(re.escape(word) for word in phrase.split())
    return re.compile(rf"\b{spaced}\b", re.I)


_COMMODITY_PATTERNS = tuple((c, _phrase_pattern(c)) for c in KNOWN_COMMODITIES)


def extract_intake_entities(text: str, known_suppliers: Iterable[str] = ()) -> dict[str, Any]:
    """Slot values found in free text: commodity, category, region codes, timeframe, suppliers."""
    entities: dict[str, Any] = {}

    for commodity, pattern in _COMMODITY_PATTERNS:
        if pattern.search(text):
            entities["commodity"] = commodity.title()
            entities["category"] = commodity.title()
            break

    regions = [code for code, pattern in REGION_CODES if pattern.search(text)]
    if regions:
        entities["region"] = regions

    for pattern, code in TIMEFRAME_CODES:
        if pattern.search(text):
            entities["timeframe"] = code
            break

    lower = text.lower()
    suppliers = [name for name in known_suppliers if name.lower() in lower]
    if suppliers:
        entities["suppliers"] = suppliers

    return entities


# ============================================================================
# Slots and questions
# ============================================================================


@dataclass(frozen=True)
class Slot:
    id: str
    required: bool
    label: str
    entity: str | None = None  # entity key that fills this slot


_CATEGORY = Slot("category", True, "Category/Commodity", "category")
_REGION = Slot("region", True, "Region", "region")
_TIMEFRAME = Slot("timeframe", True, "Timeframe", "timeframe")

STUDY_SLOTS: dict[StudyType, tuple[Slot, ...]] = {
    StudyType.MARKET_ANALYSIS: (
        _CATEGORY,
        _REGION,
        _TIMEFRAME,
        Slot("focus_areas", False, "Focus Areas"),
        Slot("analysis_depth", False, "Analysis Depth"),
        Slot("competitor_scope", False, "Competitor Scope"),
    ),
    StudyType.SOURCING_STUDY: (
        _CATEGORY,
        _REGION,
        _TIMEFRAME,
        Slot("supplier_scope", False, "Supplier Scope", "suppliers"),
        Slot("budget", False, "Annual Spend"),
        Slot("focus_areas", False, "Sourcing Priorities"),
    ),
    StudyType.COST_MODEL: (
        _CATEGORY,
        _REGION,
        _TIMEFRAME,
        Slot("cost_drivers", True, "Cost Drivers"),
        Slot("analysis_depth", False, "Analysis Depth"),
    ),
    StudyType.SUPPLIER_ASSESSMENT: (
        Slot("suppliers", True, "Supplier(s)", "suppliers"),
        _REGION,
        Slot("timeframe", False, "Timeframe", "timeframe"),
        Slot("assessment_criteria", True, "Assessment Criteria"),
        Slot("sustainability_focus", False, "Sustainability Focus"),
    ),
    StudyType.RISK_ASSESSMENT: (
        _CATEGORY,
        _REGION,
        _TIMEFRAME,
        Slot("risk_focus", True, "Risk Focus"),
        Slot("sustainability_focus", False, "ESG & Sustainability"),
    ),
    StudyType.CUSTOM: (
        Slot("category", False, "Category/Commodity", "category"),
        _REGION,
        _TIMEFRAME,
        Slot("focus_areas", False, "Focus Areas"),
    ),
}

OPTIONAL_SLOT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "focus_areas": ("focus", "priority", "priorities", "drivers", "trend", "forecast",
                    "pricing", "supply", "demand", "innovation", "regulatory"),
    "analysis_depth": ("deep", "detailed", "comprehensive", "in-depth", "full", "dive"),
    "competitor_scope": ("competitor", "competitive", "market share", "players", "rivals"),
    "supplier_scope": ("supplier", "suppliers", "vendor", "vendors", "manufacturer"),
    "sustainability_focus": ("sustainability", "esg", "carbon", "emissions", "ethical", "green"),
    "budget": ("budget", "spend", "annual spend", "cost target"),
}

STUDY_SLOT_WEIGHTS: dict[StudyType, dict[str, int]] = {
    StudyType.MARKET_ANALYSIS: {"focus_areas": 2, "competitor_scope": 1, "analysis_depth": 1},
    StudyType.SOURCING_STUDY: {"supplier_scope": 2, "focus_areas": 1, "analysis_depth": 1},
    StudyType.COST_MODEL: {"analysis_depth": 1},
    StudyType.SUPPLIER_ASSESSMENT: {"sustainability_focus": 1},
    StudyType.RISK_ASSESSMENT: {"sustainability_focus": 1},
}


def _options(*pairs: tuple[str, str]) -> list[QuestionOption]:
    return [QuestionOption(label=label, value=value) for label, value in pairs]


def _question(slot_id: str) -> IntakeQuestion:
    """Fresh question for a slot. Callers mutate the copy."""
    template = QUESTION_TEMPLATES[slot_id]
    return template.model_copy(deep=True)


QUESTION_TEMPLATES: dict[str, IntakeQuestion] = {
    "category": IntakeQuestion(
        id="category",
        question="Which category or commodity should we research?",
        type=QuestionType.TEXT,
        placeholder="e.g. Corrugated Boxes, Steel",
    ),
    "suppliers": IntakeQuestion(
        id="suppliers",
        question="Which supplier(s) should we assess?",
        type=QuestionType.TEXT,
        placeholder="Supplier names, comma separated",
    ),
    "region": IntakeQuestion(
        id="region",
        question="Which regions should we focus on?",
        type=QuestionType.MULTISELECT,
        options=_options(
            ("North America", "na"),
            ("Europe", "eu"),
            ("Asia Pacific", "apac"),
            ("Latin America", "latam"),
            ("Middle East & Africa", "mea"),
            ("Global", "global"),
        ),
        default_value=["global"],
    ),
    "timeframe": IntakeQuestion(
        id="timeframe",
        question="What timeframe should the analysis cover?",
        type=QuestionType.SELECT,
        options=_options(
            ("Last 6 months", "6m"),
            ("Last 12 months", "12m"),
            ("Last 2 years", "2y"),
            ("Last 5 years", "5y"),
        ),
        default_value="12m",
    ),
    "budget": IntakeQuestion(
        id="budget",
        question="What is your approximate annual spend in this category?",
        type=QuestionType.SELECT,
        options=_options(
            ("Under $1M", "under_1m"),
            ("$1M - $10M", "1m_10m"),
            ("$10M - $50M", "10m_50m"),
            ("Over $50M", "over_50m"),
        ),
        required=False,
    ),
    "cost_drivers": IntakeQuestion(
        id="cost_drivers",
        question="Which cost drivers are most important to analyze?",
        type=QuestionType.MULTISELECT,
        options=_options(
            ("Raw materials", "raw_materials"),
            ("Labor costs", "labor"),
            ("Energy costs", "energy"),
            ("Logistics", "logistics"),
            ("Packaging", "packaging"),
        ),
        default_value=["raw_materials", "labor"],
    ),
    "assessment_criteria": IntakeQuestion(
        id="assessment_criteria",
        question="What criteria matter most for supplier evaluation?",
        type=QuestionType.MULTISELECT,
        options=_options(
            ("Financial stability", "financial"),
            ("Quality certifications", "quality"),
            ("Sustainability", "sustainability"),
            ("Geographic coverage", "geography"),
            ("Innovation capability", "innovation"),
        ),
        default_value=["financial", "quality"],
    ),
    "risk_focus": IntakeQuestion(
        id="risk_focus",
        question="Which risk categories should we prioritize?",
        type=QuestionType.MULTISELECT,
        options=_options(
            ("Supply chain disruption", "supply_chain"),
            ("Price volatility", "price"),
            ("Geopolitical risk", "geopolitical"),
            ("Regulatory/compliance", "regulatory"),
            ("ESG/sustainability", "esg"),
        ),
        default_value=["supply_chain", "price"],
    ),
    "focus_areas": IntakeQuestion(
        id="focus_areas",
        question="Which areas should the study emphasize?",
        type=QuestionType.MULTISELECT,
        options=_options(
            ("Pricing trends", "pricing"),
            ("Supply and demand", "supply_demand"),
            ("Regulatory outlook", "regulatory"),
            ("Innovation", "innovation"),
        ),
        required=False,
    ),
    "analysis_depth": IntakeQuestion(
        id="analysis_depth",
        question="How deep should the analysis go?",
        type=QuestionType.SELECT,
        options=_options(("Executive overview", "overview"), ("Detailed analysis", "detailed")),
        default_value="detailed",
        required=False,
    ),
    "competitor_scope": IntakeQuestion(
        id="competitor_scope",
        question="Which competitors or market players should we include?",
        type=QuestionType.TEXT,
        placeholder="e.g. top 5 producers",
        required=False,
    ),
    "supplier_scope": IntakeQuestion(
        id="supplier_scope",
        question="Should we focus on specific suppliers?",
        type=QuestionType.TEXT,
        placeholder="Leave blank for the whole market",
        required=False,
    ),
    "sustainability_focus": IntakeQuestion(
        id="sustainability_focus",
        question="How much weight should ESG and sustainability carry?",
        type=QuestionType.SELECT,
        options=_options(("Primary focus", "primary"), ("One factor among many", "secondary")),
        default_value="secondary",
        required=False,
    ),
}


def _relevance(slot_id: str, study_type: StudyType, text: str) -> int:
    lowered = text.lower()
    hits = sum(1 for keyword in OPTIONAL_SLOT_KEYWORDS.get(slot_id, ()) if keyword in lowered)
    return hits + STUDY_SLOT_WEIGHTS.get(study_type, {}).get(slot_id, 0)


def _filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(str(value).strip())


# ============================================================================
# Public API
# ============================================================================


def build_intake(
    query: str,
    study_type: StudyType,
    recent_user_messages: Iterable[str] = (),
    known_suppliers: Iterable[str] = (),
) -> DeepResearchIntake:
    """
    Build the intake form for a deep research job.

    Args:
        query: The research request
        study_type: Study type inferred or chosen for the job
        recent_user_messages: Earlier user turns, oldest first
        known_suppliers: Supplier names that may be referenced by name

    Returns:
        DeepResearchIntake with questions, prefilled answers and skip eligibility
    """
    recent = list(recent_user_messages)[-RECENT_MESSAGE_COUNT:]
    known_suppliers = list(known_suppliers)
    from_query = extract_intake_entities(query, known_suppliers)
    from_all = extract_intake_entities(" ".join([query, *recent]), known_suppliers)
    relevance_text = " ".join([query, *recent])

    slots = STUDY_SLOTS.get(study_type, STUDY_SLOTS[StudyType.CUSTOM])
    prefilled: dict[str, Any] = {}
    required_questions: list[IntakeQuestion] = []
    optional_candidates: list[tuple[int, IntakeQuestion]] = []
    required_filled = required_missing = 0
    all_required_high = True

    for slot in slots:
        value = from_all.get(slot.entity) if slot.entity else None
        filled = _filled(value)
        high = filled and _filled(from_query.get(slot.entity))

        if filled:
            prefilled[slot.id] = value
        if slot.required:
            if filled:
                required_filled += 1
            else:
                required_missing += 1
            all_required_high = all_required_high and high
            if high:
                continue

        question = _question(slot.id)
        question.required = slot.required
        if filled:
            question.prefilled_from = "chat history"
            question.default_value = value
            question.help_text = "Detected from your conversation. Please confirm."

        if slot.required:
            required_questions.append(question)
        else:
            score = _relevance(slot.id, study_type, relevance_text)
            if score > 0:
                optional_candidates.append((score, question))

    optional_candidates.sort(key=lambda pair: pair[0], reverse=True)
    optional_questions = [q for _, q in optional_candidates[:MAX_OPTIONAL_QUESTIONS]]

    if all_required_high and not optional_questions:
        questions = []
    else:
        questions = required_questions + optional_questions

    all_required_filled = required_missing == 0
    can_skip = all_required_filled or (required_missing <= 1 and required_filled >= 2)
    if all_required_filled:
        skip_reason = (
            f"All required information detected from your {'conversation' if recent else 'query'}."
        )
    elif can_skip:
        skip_reason = "Most required information was detected. You can skip to start with defaults."
    else:
        skip_reason = None

    credits, time = get_estimates(study_type)
    return DeepResearchIntake(
        questions=questions,
        prefilled_answers=prefilled or None,
        can_skip=can_skip,
        skip_reason=skip_reason,
        estimated_credits=credits,
        estimated_time=time,
    )


def resolve_answers(
    intake: DeepResearchIntake, answers: dict[str, Any] | None
) -> tuple[dict[str, Any], list[str]]:
    """
    Merge prefilled and submitted answers.

    When the intake can be skipped, required questions left blank fall back to
    their defaults. Returns the effective answers and the ids of required
    questions that are still unanswered.
    """
    effective = {**(intake.prefilled_answers or {})}
    effective.update({k: v for k, v in (answers or {}).items() if _filled(v)})

    missing = []
    for question in intake.questions:
        if not question.required or _filled(effective.get(question.id)):
            continue
        if intake.can_skip and _filled(question.default_value):
            effective[question.id] = question.default_value
            continue
        missing.append(question.id)
    return effective, missing
