"""Tests for research report assembly."""

from datetime import datetime, timezone

from app.core.domain import Source, SourceType
from app.core.research_report import build_report, get_report_template
from app.core.schemas_research import StudyType

PUBLISHED = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


def test_report_from_findings():
    sources = [
        Source(type=SourceType.BEROE, name="Beroe Lithium Outlook"),
        Source(type=SourceType.WEB, name="Reuters", url="https://example.com/lithium"),
    ]
    report = build_report(
        "dr_abc",
        "What is the outlook for lithium?",
        StudyType.MARKET_ANALYSIS,
        {"category": "Lithium", "region": ["na", "eu"], "timeframe": "2y"},
        ["Prices fell 20% year over year.", "Supply is consolidating.", "Expect stabilization."],
        sources,
        credits_used=500,
        processing_time=12.5,
        published_at=PUBLISHED,
    )
    titles = [s.title for s in report.sections]

    assert report.id == "report-dr_abc"
    assert report.title == "Market Analysis Report: Lithium"
    assert report.category == "market_analysis"
    assert report.published_date == "2024-05-01"
    assert report.summary == "Prices fell 20% year over year."
    assert report.citations == 2
    assert report.credits_used == 500
    assert titles[0] == "Executive Summary"
    assert titles[-1] == "Conclusion"
    assert len(titles) == len(get_report_template(StudyType.MARKET_ANALYSIS).sections)
    assert report.sections[-1].content == "Expect stabilization."
    assert "Regions: na, eu. Timeframe: 2y." in report.sections[1].content


def test_report_without_findings_uses_query_subject():
    report = build_report(
        "dr_empty",
        "What is the outlook for lithium?",
        StudyType.MARKET_ANALYSIS,
        {},
        [],
        [],
        credits_used=500,
        processing_time=1.0,
        published_at=PUBLISHED,
    )

    assert report.title == "Market Analysis Report: What is the outlook for lithium"
    assert report.summary == "Market Analysis Report for What is the outlook for lithium."
    assert report.citations == 0


def test_cost_model_template():
    report = build_report(
        "dr_cost",
        "Cost model for corrugated boxes",
        StudyType.COST_MODEL,
        {"category": "Corrugated Boxes"},
        ["Raw materials are 60% of cost."],
        [],
        credits_used=600,
        processing_time=3.0,
        published_at=PUBLISHED,
    )
    assert report.title == "Cost Model Analysis: Corrugated Boxes"
