"""
Engine entry points.

``send_message`` runs one conversational turn: classify, score for deep
research, retrieve, select a widget, assemble and persist. The deep research
entry points confirm intake, stream the pipeline and cancel a job. None of
them raise; failures come back as a canonical response with ``error`` set.
"""

import inspect
import uuid
from contextlib import aclosing
from datetime import datetime, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, AsyncIterator, Awaitable, Callable

from pydantic import BaseModel, Field

from app.context.deep_research_scoring import build_chat_context, score_deep_research
from app.context.intent_classifier import classify_intent
from app.core.artifact_builder import ArtifactContext, build_artifact_payload
from app.core.domain import BuilderHint, IntentCategory, IntentResult, SourceType
from app.core.errors import (
    BadInputError,
    ConversationNotFoundError,
    EngineError,
    JobNotFoundError,
    StoreUnavailableError,
)
from app.core.logging import get_logger
from app.core.schemas_research import DeepResearchJob, ResearchPhase, StepId, StepResult, StudyType
from app.core.widget_registry import ArtifactType, RenderContext
from app.services.conversation_store import ConversationStore, MessageRole, get_conversation_store
from app.services.credit_ledger import get_credit_ledger
from app.services.deep_research import DeepResearchOrchestrator, Retrieve
from app.services.notification_bus import get_notification_bus
from app.services.response_assembler import (
    ARTIFACT_TITLES,
    CanonicalResponse,
    DeepResearchBlock,
    Milestone,
    ResponseArtifact,
    ResponseAssembler,
    ResponseError,
    RetrievedMaterial,
)

logger = get_logger(__name__)

# Prior user turns handed to the classifier for entity carry-over
CLASSIFIER_CONTEXT_TURNS = 3

UNEXPECTED_ERROR = "Something went wrong while preparing the response. Please try again."

PHASE_MESSAGES = {
    ResearchPhase.INTAKE: "A few quick questions will help focus the research.",
    ResearchPhase.INTAKE_CONFIRMED: "Thanks, starting the research now.",
    ResearchPhase.PROCESSING: "Research in progress.",
    ResearchPhase.COMPLETE: "Your research report is ready.",
}


class EngineMode(str, Enum):
    FAST = "fast"
    REASONING = "reasoning"


class HistoryMessage(BaseModel):
    role: str
    content: str
    intent_category: IntentCategory | None = None


class SendMessageRequest(BaseModel):
    text: str
    mode: EngineMode = EngineMode.FAST
    web_search_enabled: bool = False
    deep_research_mode: bool = False
    credits_available: int = 0
    builder_meta: BuilderHint | None = None
    conversation_history: list[HistoryMessage] = Field(default_factory=list)
    conversation_id: str | None = None
    render_context: RenderContext = RenderContext.CHAT


Retriever = Callable[[IntentResult, SendMessageRequest], Awaitable[RetrievedMaterial]]
OnMilestone = Callable[[Milestone], Awaitable[None] | None]


async def no_retrieval(intent: IntentResult, request: SendMessageRequest) -> RetrievedMaterial:
    return RetrievedMaterial()


async def no_research_retrieval(step_id: StepId, job: DeepResearchJob) -> StepResult:
    return StepResult()


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


async def _notify(on_update: Callable[[Any], Any] | None, response: Any, job_id: str) -> None:
    if on_update is None:
        return
    try:
        await _maybe_await(on_update(response))
    except Exception:
        logger.exception("Deep research update hook failed", extra={"job_id": job_id})


class _MilestoneTracker:
    """Records turn milestones and forwards each to the caller's hook."""

    def __init__(self, on_milestone: OnMilestone | None):
        self.on_milestone = on_milestone
        self.milestones: list[Milestone] = []

    async def mark(self, event: str, label: str, **data: Any) -> None:
        milestone = Milestone(
            id=f"ms_{uuid.uuid4().hex[:8]}",
            event=event,
            label=label,
            timestamp=datetime.now(timezone.utc).isoformat(),
            data=data,
        )
        self.milestones.append(milestone)
        if self.on_milestone is None:
            return
        try:
            await _maybe_await(self.on_milestone(milestone))
        except Exception:
            logger.exception(f"Milestone hook failed on {event}")


class ResponseEngine:
    def __init__(
        self,
        store: ConversationStore,
        orchestrator: DeepResearchOrchestrator,
        assembler: ResponseAssembler | None = None,
        retriever: Retriever | None = None,
        research_retriever: Retrieve | None = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.assembler = assembler or ResponseAssembler()
        self.retriever = retriever or no_retrieval
        self.research_retriever = research_retriever or no_research_retrieval

    # ------------------------------------------------------------------
    # Conversational turn
    # ------------------------------------------------------------------

    async def send_message(
        self,
        request: SendMessageRequest,
        user_id: str = "anonymous",
        on_milestone: OnMilestone | None = None,
    ) -> CanonicalResponse:
        """
        Run one turn. ``on_milestone`` receives each progress event as it
        happens; the same events are returned on ``response.milestones``.
        """
        tracker = _MilestoneTracker(on_milestone)
        try:
            async with self.assembler.turn(request.conversation_id):
                return await self._turn(request, user_id, tracker)
        except EngineError as e:
            return self.assembler.error_response(request.text, e)
        except Exception:
            logger.exception("Unexpected error in send_message")
            return self.assembler.error_response(
                request.text, EngineError(UNEXPECTED_ERROR, can_retry=True)
            )

    async def _turn(
        self, request: SendMessageRequest, user_id: str, tracker: _MilestoneTracker
    ) -> CanonicalResponse:
        text = (request.text or "").strip()
        if not text:
            raise BadInputError("Message text is required")

        history = request.conversation_history
        prior_user_turns = [m.content for m in history if m.role == MessageRole.USER.value]
        intent = classify_intent(
            text,
            builder_hint=request.builder_meta,
            context=prior_user_turns[-CLASSIFIER_CONTEXT_TURNS:],
        )
        await tracker.mark(
            "intent_classified",
            f"Understood as {intent.category.value.replace('_', ' ')}",
            category=intent.category.value,
            confidence=intent.confidence,
        )
        await tracker.mark(
            "provider_selected",
            f"Using {request.mode.value} mode",
            mode=request.mode.value,
            web_search=request.web_search_enabled,
        )

        score = score_deep_research(text, build_chat_context(m.model_dump() for m in history))
        research = None
        if request.deep_research_mode or score.should_trigger_interstitial:
            job = self.orchestrator.start_job(
                text,
                request.credits_available,
                study_type=score.inferred_study_type,
                user_id=user_id,
                recent_user_messages=prior_user_turns,
            )
            research = DeepResearchBlock(score=score, job=job)
        elif score.should_suggest:
            research = DeepResearchBlock(score=score)

        await self._persist(request.conversation_id, MessageRole.USER, text, {"mode": request.mode.value})

        material = await self._retrieve(intent, request)
        await tracker.mark(
            "sources_found", f"Found {len(material.sources)} sources", count=len(material.sources)
        )
        if material.suppliers or material.portfolio is not None:
            await tracker.mark(
                "data_retrieved",
                "Loaded supplier risk data",
                suppliers=len(material.suppliers),
                portfolio=material.portfolio is not None,
            )

        response = self.assembler.assemble(
            text,
            intent,
            material,
            render_context=request.render_context,
            deep_research=research,
            history=[m.intent_category for m in history if m.intent_category is not None],
        )
        if response.widget is not None:
            await tracker.mark(
                "widget_selected", f"Selected {response.widget.id}", widget_id=response.widget.id
            )

        await self._persist(
            request.conversation_id,
            MessageRole.ASSISTANT,
            response.content,
            {
                "response_id": response.id,
                "intent": response.intent.model_dump(mode="json"),
                "widget_id": response.widget.id if response.widget else None,
                "artifact_type": response.artifact.type.value if response.artifact else None,
                "deep_research_job_id": research.job.job_id if research and research.job else None,
                "mode": request.mode.value,
            },
            intent_category=response.intent.category,
        )
        await tracker.mark("response_ready", "Response ready")
        response.milestones = tracker.milestones
        return response

    async def _retrieve(self, intent: IntentResult, request: SendMessageRequest) -> RetrievedMaterial:
        try:
            material = await self.retriever(intent, request)
        except EngineError as e:
            logger.warning(f"Retrieval failed, answering without data: {e.message}")
            return RetrievedMaterial()

        if not request.web_search_enabled:
            material.sources = [
                s for s in material.sources if s.type not in (SourceType.WEB, SourceType.NEWS)
            ]
        return material

    async def _persist(
        self,
        conversation_id: str | None,
        role: MessageRole,
        content: str,
        metadata: dict[str, Any],
        intent_category: IntentCategory | None = None,
    ) -> None:
        """Best-effort write. The turn goes on when the store is down."""
        if conversation_id is None:
            return
        try:
            await self.store.append_message(
                conversation_id, role, content, metadata, intent_category=intent_category
            )
        except (StoreUnavailableError, ConversationNotFoundError) as e:
            logger.warning(
                f"Message not persisted: {e.message}",
                extra={"conversation_id": conversation_id, "role": role.value},
            )

    # ------------------------------------------------------------------
    # Deep research
    # ------------------------------------------------------------------

    def _research_response(self, job: DeepResearchJob) -> CanonicalResponse:
        intent = classify_intent(job.query)
        response = self.assembler.assemble(
            job.query,
            intent,
            deep_research=DeepResearchBlock(score=score_deep_research(job.query), job=job),
        )

        if job.error is not None:
            content = job.error.message
            response.error = ResponseError(message=job.error.message, can_retry=job.error.can_retry)
        else:
            content = PHASE_MESSAGES[job.phase]

        if job.report is not None:
            payload = build_artifact_payload(
                ArtifactType.DEEP_RESEARCH_REPORT, ArtifactContext(report=job.report)
            )
            if payload is not None:
                response.artifact = ResponseArtifact(
                    type=ArtifactType.DEEP_RESEARCH_REPORT,
                    title=ARTIFACT_TITLES[ArtifactType.DEEP_RESEARCH_REPORT],
                    payload=payload,
                )
            content = job.report.summary

        response.content = content
        response.canonical.body = content
        response.widget = None
        return response

    async def confirm_deep_research_intake(
        self,
        job_id: str,
        query: str,
        answers: dict[str, Any] | None,
        study_type: StudyType | None = None,
        credits_available: int = 0,
        user_id: str = "anonymous",
    ) -> CanonicalResponse:
        """
        Confirm intake answers and reserve credits.

        A job unknown to this process is started from the request first.
        """
        try:
            try:
                self.orchestrator.get_job(job_id)
            except JobNotFoundError:
                self.orchestrator.start_job(
                    query, credits_available, study_type=study_type, user_id=user_id, job_id=job_id
                )
            job = await self.orchestrator.confirm_intake(job_id, answers)
            return self._research_response(job)
        except EngineError as e:
            return self.assembler.error_response(query, e)
        except Exception:
            logger.exception(
                "Unexpected error confirming deep research intake", extra={"job_id": job_id}
            )
            return self.assembler.error_response(query, EngineError(UNEXPECTED_ERROR, can_retry=True))

    async def execute_deep_research(
        self,
        job_id: str,
        query: str | None = None,
        answers: dict[str, Any] | None = None,
        study_type: StudyType | None = None,
        on_update: Callable[[CanonicalResponse], Any] | None = None,
        credits_available: int = 0,
        user_id: str = "anonymous",
    ) -> CanonicalResponse:
        """
        Run a confirmed job to completion, pushing each wrapped snapshot to ``on_update``.

        When the job is unknown here and ``query`` is given, it is started and
        confirmed with ``answers`` first. A failing ``on_update`` is logged and
        the job keeps running.
        """
        if query:
            try:
                self.orchestrator.get_job(job_id)
            except JobNotFoundError:
                confirmed = await self.confirm_deep_research_intake(
                    job_id, query, answers, study_type, credits_available, user_id
                )
                if confirmed.error is not None:
                    await _notify(on_update, confirmed, job_id)
                    return confirmed

        last: CanonicalResponse | None = None
        try:
            async with aclosing(self.stream_deep_research(job_id)) as updates:
                async for response in updates:
                    last = response
                    await _notify(on_update, response, job_id)
        except Exception:
            logger.exception("Unexpected error executing deep research", extra={"job_id": job_id})
            last = self.assembler.error_response(
                query or "", EngineError(UNEXPECTED_ERROR, can_retry=True)
            )
        return last

    async def stream_deep_research(self, job_id: str) -> AsyncIterator[CanonicalResponse]:
        """Pull-based progress: one wrapped snapshot per job update, ending in complete or error."""
        try:
            async for job in self.orchestrator.stream(job_id, self.research_retriever):
                yield self._research_response(job)
        except EngineError as e:
            yield self.assembler.error_response("", e)

    async def cancel_deep_research(self, job_id: str) -> DeepResearchJob:
        """
        Raises:
            JobNotFoundError: Unknown job id
        """
        return await self.orchestrator.cancel(job_id)


@lru_cache(maxsize=1)
def get_engine() -> ResponseEngine:
    """Process-wide engine (cached singleton)."""
    return ResponseEngine(
        store=get_conversation_store(),
        orchestrator=DeepResearchOrchestrator(get_credit_ledger(), bus=get_notification_bus()),
    )
