"""
Deep research orchestrator.

Drives one job through intake, credit reservation and the fixed step pipeline
(decompose, beroe, web, internal, synthesize, report). Retrieval is injected
per call: ``retrieve(step_id, job)`` returns a StepResult or raises a
retrieval error. Every state change is emitted as a job snapshot, in order.

Cancellation is cooperative. ``cancel`` flips an event that the running
pipeline checks at each step boundary; a retrieval in flight is abandoned.
Cancelling a terminal job is a no-op.
"""

import asyncio
import inspect
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable

from app.context.deep_research_scoring import get_estimates, infer_study_type
from app.core.config import get_settings
from app.core.domain import Source
from app.core.errors import (
    BadInputError,
    EngineError,
    InsufficientCreditsError,
    InvalidTransitionError,
    JobNotFoundError,
    ResearchCancelledError,
    RetrievalFatalError,
    RetrievalTransientError,
    StepTimeoutError,
)
from app.core.logging import get_logger
from app.core.research_intake import build_intake, resolve_answers
from app.core.research_report import build_report
from app.core.research_state_machine import (
    TERMINAL_PHASES,
    advance_step,
    initial_processing_state,
    transition,
)
from app.core.schemas_research import (
    DeepResearchJob,
    JobError,
    ResearchPhase,
    StepId,
    StepResult,
    StepStatus,
    StudyType,
)
from app.services.credit_ledger import CreditLedger
from app.services.notification_bus import Notification, NotificationBus, NotificationType

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Research cancelled by user"

Retrieve = Callable[[StepId, DeepResearchJob], Awaitable[StepResult]]
OnUpdate = Callable[[DeepResearchJob], Awaitable[None] | None]


@dataclass
class _JobRuntime:
    job: DeepResearchJob
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    running: bool = False
    finished: asyncio.Event = field(default_factory=asyncio.Event)
    created_at: float = 0.0
    ended_at: float | None = None
    sources: list[Source] = field(default_factory=list)
    findings: list[str] = field(default_factory=list)


class DeepResearchOrchestrator:
    def __init__(
        self,
        ledger: CreditLedger,
        step_timeout: float | None = None,
        max_step_retries: int | None = None,
        bus: NotificationBus | None = None,
        job_retention: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.ledger = ledger
        self.bus = bus
        self.step_timeout = (
            step_timeout if step_timeout is not None else settings.RESEARCH_STEP_TIMEOUT_SECONDS
        )
        self.max_step_retries = (
            max_step_retries if max_step_retries is not None else settings.RESEARCH_MAX_STEP_RETRIES
        )
        self.job_retention = (
            job_retention if job_retention is not None else settings.RESEARCH_JOB_RETENTION_SECONDS
        )
        self._clock = clock
        self._jobs: dict[str, _JobRuntime] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _runtime(self, job_id: str) -> _JobRuntime:
        runtime = self._jobs.get(job_id)
        if runtime is None:
            raise JobNotFoundError(f"Deep research job not found: {job_id}")
        return runtime

    def get_job(self, job_id: str) -> DeepResearchJob:
        """Snapshot of a job. Callers cannot mutate orchestrator state through it."""
        return self._runtime(job_id).job.model_copy(deep=True)

    def _mark_ended(self, runtime: _JobRuntime) -> None:
        runtime.ended_at = self._clock()

    def evict_expired(self) -> int:
        """
        Forget jobs past the retention window.

        Terminal jobs age from the moment they ended; jobs still waiting in
        intake age from creation. Running jobs and jobs holding credits are kept.
        """
        now = self._clock()
        expired = [
            job_id
            for job_id, runtime in self._jobs.items()
            if not runtime.running
            and (
                (runtime.ended_at is not None and now - runtime.ended_at >= self.job_retention)
                or (
                    runtime.job.phase == ResearchPhase.INTAKE
                    and now - runtime.created_at >= self.job_retention
                )
            )
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info(f"Evicted {len(expired)} expired deep research jobs")
        return len(expired)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def start_job(
        self,
        query: str,
        credits_available: int,
        study_type: StudyType | None = None,
        user_id: str = "anonymous",
        recent_user_messages: list[str] | None = None,
        job_id: str | None = None,
    ) -> DeepResearchJob:
        """Create a job in the intake phase."""
        if not query or not query.strip():
            raise BadInputError("Research query is empty")

        study_type = study_type or infer_study_type(query)
        job = DeepResearchJob(
            job_id=job_id or f"dr_{uuid.uuid4().hex[:12]}",
            query=query,
            study_type=study_type,
            credits_available=credits_available,
            user_id=user_id,
            intake=build_intake(query, study_type, recent_user_messages or []),
        )
        self.evict_expired()
        self._jobs[job.job_id] = _JobRuntime(job=job, created_at=self._clock())
        logger.info(
            f"Started deep research job ({study_type.value})",
            extra={"job_id": job.job_id, "phase": job.phase.value},
        )
        return job.model_copy(deep=True)

    async def confirm_intake(self, job_id: str, answers: dict[str, Any] | None) -> DeepResearchJob:
        """
        Accept intake answers, reserve credits and enter processing.

        Raises:
            BadInputError: A required answer is missing (the job is unchanged)
            InvalidTransitionError: The job is not in intake

        Insufficient credits do not raise: the job moves to error with
        ``can_retry`` false and keeps its intake.
        """
        runtime = self._runtime(job_id)
        async with runtime.lock:
            job = runtime.job
            if job.phase != ResearchPhase.INTAKE:
                raise InvalidTransitionError(f"Job {job_id} is {job.phase.value}, not intake")

            effective, missing = resolve_answers(job.intake, answers)
            if missing:
                raise BadInputError(f"Missing required answers: {', '.join(missing)}")

            transition(job, ResearchPhase.INTAKE_CONFIRMED)
            job.answers = effective

            estimate = job.intake.estimated_credits if job.intake else get_estimates(job.study_type)[0]
            try:
                if job.credits_available < estimate:
                    raise InsufficientCreditsError(
                        f"This study needs {estimate} credits; {job.credits_available} available"
                    )
                job.reservation_id = await self.ledger.reserve(
                    job.user_id,
                    estimate,
                    idempotency_key=f"research_{job_id}",
                    description=f"Deep research: {job.query[:80]}",
                )
            except InsufficientCreditsError as e:
                transition(job, ResearchPhase.ERROR)
                job.error = JobError(message=e.message, can_retry=False)
                self._mark_ended(runtime)
                logger.warning(f"Deep research not started: {e.message}", extra={"job_id": job_id})
                return job.model_copy(deep=True)

            transition(job, ResearchPhase.PROCESSING)
            job.processing = initial_processing_state()
            logger.info(
                "Intake confirmed, processing",
                extra={"job_id": job_id, "reservation_id": job.reservation_id},
            )
            return job.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _emit(self, runtime: _JobRuntime, on_update: OnUpdate | None) -> None:
        if on_update is None:
            return
        snapshot = runtime.job.model_copy(deep=True)
        try:
            result = on_update(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Deep research update hook failed", extra={"job_id": runtime.job.job_id})

    async def _run_step(self, runtime: _JobRuntime, step_id: StepId, retrieve: Retrieve) -> StepResult:
        """Run one retrieval under the step budget, abandoning it on cancellation."""
        retrieval = asyncio.ensure_future(retrieve(step_id, runtime.job.model_copy(deep=True)))
        cancelled = asyncio.ensure_future(runtime.cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {retrieval, cancelled},
                timeout=self.step_timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            cancelled.cancel()

        if retrieval in done:
            return retrieval.result()

        retrieval.cancel()
        try:
            await retrieval
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Abandoned retrieval raised {type(e).__name__}")

        if cancelled in done:
            raise ResearchCancelledError(CANCELLED_MESSAGE)
        raise StepTimeoutError(f"Step {step_id.value} timed out after {self.step_timeout:g}s")

    def _notify(self, job: DeepResearchJob, type: NotificationType, title: str, body: str) -> None:
        if self.bus is None:
            return
        self.bus.publish(
            Notification(
                type=type,
                user_id=job.user_id,
                title=title,
                body=body,
                metadata={"entity_type": "deep_research_job", "entity_id": job.job_id},
            )
        )

    async def _fail(self, runtime: _JobRuntime, error: EngineError) -> None:
        job = runtime.job
        if job.phase in TERMINAL_PHASES:
            return
        if job.processing is not None and job.phase == ResearchPhase.PROCESSING:
            job.processing.steps[job.processing.current_step_index].status = StepStatus.ERROR
        transition(job, ResearchPhase.ERROR)
        job.error = JobError(message=error.message, can_retry=error.can_retry)
        self._mark_ended(runtime)
        if job.reservation_id:
            await self.ledger.refund(job.reservation_id)
        logger.warning(
            f"Deep research failed: {error.message}",
            extra={"job_id": job.job_id, "reservation_id": job.reservation_id},
        )
        if not isinstance(error, ResearchCancelledError):
            self._notify(job, NotificationType.RESEARCH_FAILED, "Deep research failed", error.message)

    async def _complete(self, runtime: _JobRuntime, started: float) -> None:
        job = runtime.job
        credits_used = job.intake.estimated_credits if job.intake else get_estimates(job.study_type)[0]
        job.report = build_report(
            job_id=job.job_id,
            query=job.query,
            study_type=job.study_type,
            answers=job.answers or {},
            findings=runtime.findings,
            sources=runtime.sources,
            credits_used=credits_used,
            processing_time=time.monotonic() - started,
            published_at=datetime.now(timezone.utc),
        )
        if job.reservation_id:
            await self.ledger.settle(job.reservation_id, credits_used)
        transition(job, ResearchPhase.COMPLETE)
        self._mark_ended(runtime)
        logger.info(
            f"Deep research complete with {len(runtime.sources)} sources",
            extra={"job_id": job.job_id, "reservation_id": job.reservation_id},
        )
        self._notify(job, NotificationType.RESEARCH_COMPLETE, "Research report ready", job.report.title)

    async def _run_pipeline(
        self, runtime: _JobRuntime, retrieve: Retrieve, on_update: OnUpdate | None
    ) -> None:
        job = runtime.job
        state = job.processing
        started = time.monotonic() - state.elapsed_time
        await self._emit(runtime, on_update)

        while True:
            if runtime.cancel_event.is_set():
                raise ResearchCancelledError(CANCELLED_MESSAGE)

            step = state.steps[state.current_step_index]
            while True:
                try:
                    result = await self._run_step(runtime, step.id, retrieve)
                    break
                except RetrievalTransientError as e:
                    step.retries += 1
                    if step.retries > self.max_step_retries:
                        raise RetrievalFatalError(
                            f"{step.label} failed after {step.retries} attempts: {e.message}"
                        ) from e
                    logger.info(
                        f"Retrying step after transient error: {e.message}",
                        extra={"job_id": job.job_id, "step": step.id.value},
                    )
                    await self._emit(runtime, on_update)

            step.sources_found = len(result.sources)
            runtime.sources.extend(result.sources)
            runtime.findings.extend(result.findings)
            state.sources_collected = len(runtime.sources)
            state.elapsed_time = round(time.monotonic() - started, 3)

            if advance_step(state):
                await self._complete(runtime, started)
                await self._emit(runtime, on_update)
                return

            transition(job, ResearchPhase.PROCESSING)
            await self._emit(runtime, on_update)

    async def execute(
        self, job_id: str, retrieve: Retrieve, on_update: OnUpdate | None = None
    ) -> DeepResearchJob:
        """
        Run the pipeline to a terminal phase.

        Failures never raise out of here; they end the job in ``error`` with
        the credits refunded. Returns the final snapshot.
        """
        runtime = self._runtime(job_id)
        job = runtime.job
        if job.phase in TERMINAL_PHASES:
            return job.model_copy(deep=True)
        if job.phase != ResearchPhase.PROCESSING:
            raise InvalidTransitionError(f"Job {job_id} is {job.phase.value}, not processing")
        if runtime.running:
            raise InvalidTransitionError(f"Job {job_id} is already running")

        runtime.running = True
        runtime.finished.clear()
        try:
            await self._run_pipeline(runtime, retrieve, on_update)
        except EngineError as e:
            await self._fail(runtime, e)
            await self._emit(runtime, on_update)
        except Exception as e:
            logger.exception("Unexpected deep research failure", extra={"job_id": job_id})
            await self._fail(runtime, RetrievalFatalError(f"Research failed: {e}"))
            await self._emit(runtime, on_update)
        finally:
            runtime.running = False
            runtime.finished.set()

        return job.model_copy(deep=True)

    async def stream(self, job_id: str, retrieve: Retrieve) -> AsyncIterator[DeepResearchJob]:
        """
        Pull-based view of ``execute``: yields each snapshot until a terminal one.

        Closing the iterator early cancels the job.
        """
        queue: asyncio.Queue[DeepResearchJob] = asyncio.Queue()
        task = asyncio.ensure_future(self.execute(job_id, retrieve, on_update=queue.put_nowait))
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter in done:
                    snapshot = getter.result()
                    yield snapshot
                    if snapshot.phase in TERMINAL_PHASES:
                        return
                    continue

                # execute finished first: drain what it emitted, then its final state
                getter.cancel()
                final = task.result()
                while not queue.empty():
                    snapshot = queue.get_nowait()
                    yield snapshot
                    if snapshot.phase in TERMINAL_PHASES:
                        return
                yield final
                return
        finally:
            if not task.done():
                await self.cancel(job_id)
                await task

    async def cancel(self, job_id: str) -> DeepResearchJob:
        """Cancel a job. Refunds any held credits. No-op on terminal jobs."""
        runtime = self._runtime(job_id)
        if runtime.job.phase in TERMINAL_PHASES:
            return runtime.job.model_copy(deep=True)

        runtime.cancel_event.set()
        if runtime.running:
            await runtime.finished.wait()
        else:
            async with runtime.lock:
                await self._fail(runtime, ResearchCancelledError(CANCELLED_MESSAGE))
        logger.info("Deep research cancelled", extra={"job_id": job_id})
        return runtime.job.model_copy(deep=True)

    async def retry(self, job_id: str) -> DeepResearchJob:
        """Start a fresh job with the failed job's answers. The old reservation is refunded."""
        old = self._runtime(job_id).job
        if old.phase != ResearchPhase.ERROR:
            raise InvalidTransitionError(f"Only failed jobs can be retried; {job_id} is {old.phase.value}")
        if old.reservation_id:
            await self.ledger.refund(old.reservation_id)

        new = self.start_job(
            old.query,
            credits_available=old.credits_available,
            study_type=old.study_type,
            user_id=old.user_id,
        )
        self._jobs[new.job_id].job.retried_from = job_id
        return await self.confirm_intake(new.job_id, old.answers or {})
