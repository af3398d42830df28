"""Tests for the response engine entry points."""

import asyncio

import pytest

from app.core.domain import IntentCategory, Source, SourceType
from app.core.errors import JobNotFoundError, RetrievalFatalError
from app.core.schemas_research import ResearchPhase, StepResult, StudyType
from app.core.widget_registry import ArtifactType
from app.services.conversation_store import ConversationStore
from app.services.credit_ledger import CreditLedger
from app.services.deep_research import DeepResearchOrchestrator
from app.services.engine import (
    PHASE_MESSAGES,
    HistoryMessage,
    ResponseEngine,
    SendMessageRequest,
)
from app.services.response_assembler import RetrievedMaterial
from tests.fakes.fake_db import FakeDB
from tests.fixtures_risk import PORTFOLIO_14

LITHIUM_QUERY = (
    "Give me a comprehensive market analysis of lithium battery supply chain "
    "including pricing trends, key suppliers, and 5-year outlook"
)
INTAKE_ANSWERS = {"region": ["na"], "timeframe": "12m"}


async def portfolio_retriever(intent, request):
    return RetrievedMaterial(
        portfolio=PORTFOLIO_14,
        sources=[
            Source(type=SourceType.INTERNAL_DATA, name="Portfolio"),
            Source(type=SourceType.NEWS, name="Supply Chain Dive"),
        ],
    )


async def research_retriever(step_id, job):
    return StepResult(
        sources=[Source(type=SourceType.BEROE, name=f"{step_id.value} brief")],
        findings=[f"{step_id.value.title()} finding."],
    )


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def ledger():
    return CreditLedger(default_balance=2500)


@pytest.fixture
def engine(fake_db, ledger):
    return ResponseEngine(
        store=ConversationStore(fake_db),
        orchestrator=DeepResearchOrchestrator(ledger, step_timeout=5),
        retriever=portfolio_retriever,
        research_retriever=research_retriever,
    )


@pytest.fixture
def conversation_id(fake_db):
    return fake_db.create_conversation("Engine test", "general", None)["id"]


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_hello_is_general_without_widget(self, fake_db, ledger):
        engine = ResponseEngine(
            store=ConversationStore(fake_db),
            orchestrator=DeepResearchOrchestrator(ledger),
        )

        response = await engine.send_message(SendMessageRequest(text="Hello"))

        assert response.intent.category == IntentCategory.GENERAL
        assert response.widget is None
        assert response.artifact is None
        assert response.error is None
        assert response.deep_research is None

    @pytest.mark.asyncio
    async def test_portfolio_turn_persists_and_labels(self, engine, conversation_id):
        response = await engine.send_message(
            SendMessageRequest(
                text="How many high risk suppliers do I have?", conversation_id=conversation_id
            )
        )

        assert response.widget.id == "risk-distribution-widget"
        assert response.artifact.type == ArtifactType.PORTFOLIO_DASHBOARD

        conversation = await engine.store.fetch_conversation(conversation_id)
        assert [m.role.value for m in conversation.messages] == ["user", "assistant"]
        assert conversation.messages[1].metadata["widget_id"] == "risk-distribution-widget"
        assert conversation.messages[1].metadata["response_id"] == response.id
        assert conversation.category == "risk"

    @pytest.mark.asyncio
    async def test_web_sources_dropped_when_web_search_off(self, engine):
        response = await engine.send_message(
            SendMessageRequest(text="How many high risk suppliers do I have?")
        )
        assert [s.type for s in response.sources] == [SourceType.INTERNAL_DATA]

    @pytest.mark.asyncio
    async def test_web_sources_kept_when_web_search_on(self, engine):
        response = await engine.send_message(
            SendMessageRequest(
                text="How many high risk suppliers do I have?", web_search_enabled=True
            )
        )
        assert {s.type for s in response.sources} == {SourceType.INTERNAL_DATA, SourceType.NEWS}

    @pytest.mark.asyncio
    async def test_empty_text_is_bad_input(self, engine, fake_db, conversation_id):
        response = await engine.send_message(
            SendMessageRequest(text="   ", conversation_id=conversation_id)
        )

        assert response.error.can_retry is False
        assert "insert_message" not in fake_db.calls

    @pytest.mark.asyncio
    async def test_retrieval_failure_answers_without_data(self, fake_db, ledger):
        async def failing(intent, request):
            raise RetrievalFatalError("search backend down")

        engine = ResponseEngine(
            store=ConversationStore(fake_db),
            orchestrator=DeepResearchOrchestrator(ledger),
            retriever=failing,
        )

        response = await engine.send_message(
            SendMessageRequest(text="How many high risk suppliers do I have?")
        )

        assert response.error is None
        assert response.sources == []

    @pytest.mark.asyncio
    async def test_store_outage_does_not_fail_turn(self, engine, fake_db, conversation_id):
        fake_db.fail_on = "insert_message"

        response = await engine.send_message(
            SendMessageRequest(text="Hello", conversation_id=conversation_id)
        )

        assert response.error is None

    @pytest.mark.asyncio
    async def test_unexpected_retriever_crash_is_retryable(self, fake_db, ledger):
        async def crashing(intent, request):
            raise ZeroDivisionError()

        engine = ResponseEngine(
            store=ConversationStore(fake_db),
            orchestrator=DeepResearchOrchestrator(ledger),
            retriever=crashing,
        )

        response = await engine.send_message(SendMessageRequest(text="Show my risk overview"))

        assert response.error.can_retry is True

    @pytest.mark.asyncio
    async def test_concurrent_turn_on_same_conversation_rejected(self, fake_db, ledger):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def slow(intent, request):
            entered.set()
            await release.wait()
            return RetrievedMaterial()

        engine = ResponseEngine(
            store=ConversationStore(fake_db),
            orchestrator=DeepResearchOrchestrator(ledger),
            retriever=slow,
        )
        conversation = await engine.store.create_conversation("Busy")
        request = SendMessageRequest(text="Show my risk overview", conversation_id=conversation.id)

        first = asyncio.create_task(engine.send_message(request))
        await entered.wait()
        second = await engine.send_message(request)
        release.set()
        first = await first

        assert second.error.can_retry is True
        assert first.error is None

    @pytest.mark.asyncio
    async def test_history_carries_category_context(self, engine):
        response = await engine.send_message(
            SendMessageRequest(
                text="What about the unrated ones?",
                conversation_history=[
                    HistoryMessage(role="user", content="Show my risk overview"),
                    HistoryMessage(
                        role="assistant",
                        content="Here's your overview.",
                        intent_category=IntentCategory.PORTFOLIO_OVERVIEW,
                    ),
                ],
            )
        )
        assert response.error is None


class TestDeepResearch:
    @pytest.mark.asyncio
    async def test_complex_query_opens_intake(self, engine):
        response = await engine.send_message(
            SendMessageRequest(text=LITHIUM_QUERY, credits_available=1000)
        )

        block = response.deep_research
        assert block.score.should_trigger_interstitial is True
        assert block.job.phase == ResearchPhase.INTAKE
        assert block.job.study_type == StudyType.MARKET_ANALYSIS
        assert block.job.intake.estimated_credits == 500

    @pytest.mark.asyncio
    async def test_confirm_then_stream_to_report(self, engine, ledger):
        opened = await engine.send_message(
            SendMessageRequest(text=LITHIUM_QUERY, credits_available=1000)
        )
        job_id = opened.deep_research.job.job_id

        confirmed = await engine.confirm_deep_research_intake(
            job_id, LITHIUM_QUERY, INTAKE_ANSWERS, credits_available=1000
        )
        assert confirmed.deep_research.job.phase == ResearchPhase.PROCESSING
        assert confirmed.content == PHASE_MESSAGES[ResearchPhase.PROCESSING]

        updates = [r async for r in engine.stream_deep_research(job_id)]
        final = updates[-1]

        assert final.deep_research.job.phase == ResearchPhase.COMPLETE
        assert final.artifact.type == ArtifactType.DEEP_RESEARCH_REPORT
        assert final.artifact.payload.credits_used == 500
        assert final.content == final.deep_research.job.report.summary
        assert ledger.balance("anonymous") == 2000

    @pytest.mark.asyncio
    async def test_confirm_unknown_job_starts_it(self, engine):
        response = await engine.confirm_deep_research_intake(
            "dr_from_client", LITHIUM_QUERY, INTAKE_ANSWERS, credits_available=1000
        )

        assert response.deep_research.job.job_id == "dr_from_client"
        assert response.deep_research.job.phase == ResearchPhase.PROCESSING

    @pytest.mark.asyncio
    async def test_insufficient_credits(self, engine, ledger):
        response = await engine.confirm_deep_research_intake(
            "dr_poor", LITHIUM_QUERY, INTAKE_ANSWERS, credits_available=100
        )

        assert response.deep_research.job.phase == ResearchPhase.ERROR
        assert response.error.can_retry is False
        assert ledger.balance("anonymous") == 2500

    @pytest.mark.asyncio
    async def test_missing_answers_is_bad_input(self, engine):
        response = await engine.confirm_deep_research_intake(
            "dr_partial", LITHIUM_QUERY, {}, credits_available=1000
        )
        assert response.error.can_retry is False
        assert "Missing required answers" in response.error.message

    @pytest.mark.asyncio
    async def test_execute_pushes_updates(self, engine):
        await engine.confirm_deep_research_intake(
            "dr_exec", LITHIUM_QUERY, INTAKE_ANSWERS, credits_available=1000
        )
        seen = []

        final = await engine.execute_deep_research("dr_exec", on_update=seen.append)

        assert seen[-1] is final
        assert final.deep_research.job.phase == ResearchPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_execute_starts_unknown_job_from_query(self, engine):
        seen = []

        async def on_update(response):
            seen.append(response.deep_research.job.phase)

        final = await engine.execute_deep_research(
            "dr_cold",
            query=LITHIUM_QUERY,
            answers=INTAKE_ANSWERS,
            on_update=on_update,
            credits_available=1000,
        )

        assert final.deep_research.job.job_id == "dr_cold"
        assert seen[-1] == ResearchPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_execute_survives_failing_update_hook(self, engine, ledger):
        calls = []

        def on_update(response):
            calls.append(response.deep_research.job.phase)
            raise RuntimeError("client disconnected")

        final = await engine.execute_deep_research(
            "dr_hook",
            query=LITHIUM_QUERY,
            answers=INTAKE_ANSWERS,
            on_update=on_update,
            credits_available=1000,
        )

        assert final.deep_research.job.phase == ResearchPhase.COMPLETE
        assert calls[-1] == ResearchPhase.COMPLETE
        assert len(calls) > 1

    @pytest.mark.asyncio
    async def test_execute_unknown_job_with_bad_answers(self, engine):
        final = await engine.execute_deep_research(
            "dr_cold_bad", query=LITHIUM_QUERY, answers={}, credits_available=1000
        )
        assert final.error is not None

    @pytest.mark.asyncio
    async def test_stream_unknown_job_yields_error(self, engine):
        updates = [r async for r in engine.stream_deep_research("dr_missing")]

        assert len(updates) == 1
        assert updates[0].error is not None

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, engine):
        with pytest.raises(JobNotFoundError):
            await engine.cancel_deep_research("dr_missing")

    @pytest.mark.asyncio
    async def test_cancel_refunds(self, engine, ledger):
        await engine.confirm_deep_research_intake(
            "dr_cancel", LITHIUM_QUERY, INTAKE_ANSWERS, credits_available=1000
        )

        job = await engine.cancel_deep_research("dr_cancel")

        assert job.phase == ResearchPhase.ERROR
        assert ledger.balance("anonymous") == 2500


class TestMilestones:
    @pytest.mark.asyncio
    async def test_milestones_in_order(self, engine):
        seen = []

        response = await engine.send_message(
            SendMessageRequest(text="How many high risk suppliers do I have?"),
            on_milestone=lambda m: seen.append(m.event),
        )

        assert seen == [
            "intent_classified",
            "provider_selected",
            "sources_found",
            "data_retrieved",
            "widget_selected",
            "response_ready",
        ]
        assert [m.event for m in response.milestones] == seen
        assert response.milestones[4].data == {"widget_id": "risk-distribution-widget"}

    @pytest.mark.asyncio
    async def test_async_hook_and_no_data_turn(self, fake_db, ledger):
        engine = ResponseEngine(
            store=ConversationStore(fake_db),
            orchestrator=DeepResearchOrchestrator(ledger),
        )
        seen = []

        async def hook(milestone):
            seen.append(milestone.event)

        await engine.send_message(SendMessageRequest(text="Hello"), on_milestone=hook)

        assert seen == ["intent_classified", "provider_selected", "sources_found", "response_ready"]

    @pytest.mark.asyncio
    async def test_broken_hook_does_not_fail_turn(self, engine):
        def broken(milestone):
            raise RuntimeError("client went away")

        response = await engine.send_message(
            SendMessageRequest(text="Show my risk overview"), on_milestone=broken
        )

        assert response.error is None
        assert response.milestones[-1].event == "response_ready"
