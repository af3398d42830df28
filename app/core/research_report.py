"""Report templates and report assembly for finished deep research jobs."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from app.core.domain import Source
from app.core.schemas_research import DeepResearchReport, ReportSection, StudyType


@dataclass(frozen=True)
class SectionTemplate:
    id: str
    title: str
    description: str


@dataclass(frozen=True)
class ReportTemplate:
    name: str
    sections: tuple[SectionTemplate, ...]
    min_citations: int


# ============================================================================
# Templates
# ============================================================================

MARKET_ANALYSIS_TEMPLATE = ReportTemplate(
    name="Market Analysis Report",
    min_citations=15,
    sections=(
        SectionTemplate("executive_summary", "Executive Summary",
                        "High-level overview of key findings, market conditions, and strategic recommendations"),
        SectionTemplate("introduction", "Introduction", "Context setting and report scope"),
        SectionTemplate("market_overview", "Market Overview and Outlook",
                        "Market size, trends, supply-demand dynamics, costs, and forecasts"),
        SectionTemplate("supplier_landscape", "Supplier Landscape and Risk Profiles",
                        "Major suppliers, their capabilities, financial health, and risk profiles"),
        SectionTemplate("contracting", "Contracting and Pricing Strategies",
                        "Contracting models, optimal strategies, and risk allocation"),
        SectionTemplate("emerging_risks", "Emerging Risks and Mitigation Strategies",
                        "Regulatory, environmental, and economic risks with mitigation recommendations"),
        SectionTemplate("recommendations", "Strategic Recommendations",
                        "Actionable recommendations for procurement teams"),
        SectionTemplate("conclusion", "Conclusion", "Summary and call to action"),
    ),
)

SOURCING_STUDY_TEMPLATE = ReportTemplate(
    name="Sourcing Study Report",
    min_citations=12,
    sections=(
        SectionTemplate("executive_summary", "Executive Summary",
                        "Overview of sourcing landscape and key recommendations"),
        SectionTemplate("introduction", "Introduction and Scope",
                        "Define the sourcing need and study parameters"),
        SectionTemplate("market_landscape", "Market Landscape",
                        "Supply market structure, pricing, and trends"),
        SectionTemplate("supplier_analysis", "Supplier Analysis",
                        "Evaluation and comparison of potential suppliers"),
        SectionTemplate("risk_assessment", "Risk Assessment", "Sourcing risks and mitigation strategies"),
        SectionTemplate("strategy", "Recommended Sourcing Strategy",
                        "Strategic sourcing recommendations and implementation roadmap"),
        SectionTemplate("conclusion", "Conclusion", "Summary and next steps"),
    ),
)

RISK_ASSESSMENT_TEMPLATE = ReportTemplate(
    name="Risk Assessment Report",
    min_citations=10,
    sections=(
        SectionTemplate("executive_summary", "Executive Summary",
                        "Overview of key risks and mitigation priorities"),
        SectionTemplate("introduction", "Introduction", "Scope and methodology of risk assessment"),
        SectionTemplate("risk_landscape", "Risk Landscape Overview",
                        "Supply chain, supplier, and market risk environment"),
        SectionTemplate("risk_analysis", "Detailed Risk Analysis", "Analysis of key risk categories"),
        SectionTemplate("risk_matrix", "Risk Matrix and Prioritization",
                        "Risk ranking and prioritization framework"),
        SectionTemplate("mitigation", "Mitigation Strategies", "Recommended risk mitigation actions"),
        SectionTemplate("conclusion", "Conclusion and Monitoring Plan",
                        "Summary and ongoing monitoring recommendations"),
    ),
)

SUPPLIER_ASSESSMENT_TEMPLATE = ReportTemplate(
    name="Supplier Assessment Report",
    min_citations=8,
    sections=(
        SectionTemplate("executive_summary", "Executive Summary",
                        "Overview of supplier assessment findings and recommendation"),
        SectionTemplate("introduction", "Introduction", "Assessment scope, criteria, and methodology"),
        SectionTemplate("company_overview", "Company Overview",
                        "Background on the supplier including history, scope, and footprint"),
        SectionTemplate("capabilities", "Capabilities and Capacity",
                        "Technical capabilities, capacity, and certifications"),
        SectionTemplate("financial_analysis", "Financial Analysis",
                        "Financial health including revenue, profitability, and stability"),
        SectionTemplate("risk_profile", "Risk Profile",
                        "Supplier-specific risks across operational and compliance dimensions"),
        SectionTemplate("conclusion", "Assessment Conclusion and Recommendation",
                        "Final assessment rating and recommendation"),
    ),
)

COST_MODEL_TEMPLATE = ReportTemplate(
    name="Cost Model Analysis",
    min_citations=10,
    sections=(
        SectionTemplate("executive_summary", "Executive Summary",
                        "Overview of cost structure, key drivers, and optimization opportunities"),
        SectionTemplate("introduction", "Introduction and Scope",
                        "Cost model scope, assumptions, and methodology"),
        SectionTemplate("cost_structure", "Cost Structure Analysis",
                        "Breakdown of direct and indirect cost components"),
        SectionTemplate("cost_drivers", "Key Cost Drivers",
                        "Primary factors driving costs and their volatility"),
        SectionTemplate("benchmarking", "Cost Benchmarking", "Comparison to market benchmarks"),
        SectionTemplate("projections", "Cost Projections and Optimization",
                        "Cost forecasts and optimization recommendations"),
        SectionTemplate("conclusion", "Conclusion", "Should-cost summary and negotiation leverage points"),
    ),
)

REPORT_TEMPLATES: dict[StudyType, ReportTemplate] = {
    StudyType.MARKET_ANALYSIS: MARKET_ANALYSIS_TEMPLATE,
    StudyType.SOURCING_STUDY: SOURCING_STUDY_TEMPLATE,
    StudyType.RISK_ASSESSMENT: RISK_ASSESSMENT_TEMPLATE,
    StudyType.SUPPLIER_ASSESSMENT: SUPPLIER_ASSESSMENT_TEMPLATE,
    StudyType.COST_MODEL: COST_MODEL_TEMPLATE,
}


def get_report_template(study_type: StudyType) -> ReportTemplate:
    return REPORT_TEMPLATES.get(study_type, MARKET_ANALYSIS_TEMPLATE)


def _subject(query: str, answers: dict[str, Any]) -> str:
    subject = answers.get("category") or answers.get("suppliers")
    if isinstance(subject, list):
        subject = ", ".join(subject)
    return subject or query.rstrip("?.! ")


def _scope(answers: dict[str, Any]) -> str:
    regions = answers.get("region") or ["global"]
    if isinstance(regions, str):
        regions = [regions]
    timeframe = answers.get("timeframe") or "12m"
    return f"Regions: {', '.join(regions)}. Timeframe: {timeframe}."


def build_report(
    job_id: str,
    query: str,
    study_type: StudyType,
    answers: dict[str, Any],
    findings: list[str],
    sources: list[Source],
    credits_used: int,
    processing_time: float,
    published_at: datetime,
) -> DeepResearchReport:
    """
    Fill the study type's template from the collected findings.

    Findings are dealt across the body sections in order; the executive summary
    and conclusion restate the first and last findings.
    """
    template = get_report_template(study_type)
    subject = _subject(query, answers)
    body = template.sections[1:-1]

    buckets: list[list[str]] = [[] for _ in body]
    for index, finding in enumerate(findings):
        buckets[index % len(body)].append(finding)

    summary = findings[0] if findings else f"{template.name} for {subject}."
    closing = findings[-1] if findings else "No further findings."

    sections = [ReportSection(title=template.sections[0].title, content=summary)]
    for section, bucket in zip(body, buckets):
        lines = [f"{section.description}."]
        if section.id == "introduction":
            lines.append(_scope(answers))
        lines.extend(bucket)
        sections.append(ReportSection(title=section.title, content="\n\n".join(lines)))
    sections.append(ReportSection(title=template.sections[-1].title, content=closing))

    return DeepResearchReport(
        id=f"report-{job_id}",
        title=f"{template.name}: {subject}",
        category=study_type.value,
        published_date=published_at.date().isoformat(),
        author="ABI Research",
        summary=summary,
        sections=sections,
        sources=sources,
        citations=len(sources),
        credits_used=credits_used,
        total_processing_time=round(processing_time, 2),
    )
