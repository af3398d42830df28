"""Deep research job phases and the transitions allowed between them."""

from app.core.errors import InvalidTransitionError
from app.core.schemas_research import (
    DeepResearchJob,
    ProcessingState,
    ProcessingStep,
    ResearchPhase,
    StepId,
    StepStatus,
)

ALLOWED_TRANSITIONS: dict[ResearchPhase, frozenset[ResearchPhase]] = {
    ResearchPhase.INTAKE: frozenset({ResearchPhase.INTAKE_CONFIRMED, ResearchPhase.ERROR}),
    ResearchPhase.INTAKE_CONFIRMED: frozenset({ResearchPhase.PROCESSING, ResearchPhase.ERROR}),
    ResearchPhase.PROCESSING: frozenset(
        {ResearchPhase.PROCESSING, ResearchPhase.COMPLETE, ResearchPhase.ERROR}
    ),
    ResearchPhase.COMPLETE: frozenset(),
    ResearchPhase.ERROR: frozenset(),
}

TERMINAL_PHASES = frozenset({ResearchPhase.COMPLETE, ResearchPhase.ERROR})

# Fixed pipeline, in execution order
PIPELINE: tuple[tuple[StepId, str, str], ...] = (
    (StepId.DECOMPOSE, "Analyzing query", "Breaking down your question into research components"),
    (StepId.BEROE, "Searching Beroe intelligence", "Querying internal market data and reports"),
    (StepId.WEB, "Gathering web sources", "Searching recent news, filings, and market data"),
    (StepId.INTERNAL, "Analyzing your data", "Reviewing spend data and supplier records"),
    (StepId.SYNTHESIZE, "Synthesizing findings", "Combining sources and reasoning through insights"),
    (StepId.REPORT, "Generating report", "Creating your comprehensive research report"),
)


def can_transition(current: ResearchPhase, target: ResearchPhase) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(job: DeepResearchJob, target: ResearchPhase) -> DeepResearchJob:
    """Move a job to a new phase in place, or raise InvalidTransitionError."""
    if not can_transition(job.phase, target):
        raise InvalidTransitionError(
            f"Cannot move job {job.job_id} from {job.phase.value} to {target.value}"
        )
    job.phase = target
    return job


def initial_processing_state() -> ProcessingState:
    """All steps pending except the first, which is active."""
    steps = [
        ProcessingStep(id=step_id, label=label, description=description)
        for step_id, label, description in PIPELINE
    ]
    steps[0].status = StepStatus.ACTIVE
    return ProcessingState(steps=steps, current_step_index=0)


def advance_step(state: ProcessingState) -> bool:
    """
    Complete the active step and activate the next one.

    Returns True when the completed step was the last in the pipeline.
    """
    index = state.current_step_index
    state.steps[index].status = StepStatus.COMPLETE
    if index + 1 >= len(state.steps):
        return True
    state.current_step_index = index + 1
    state.steps[index + 1].status = StepStatus.ACTIVE
    return False


def check_step_invariant(state: ProcessingState) -> None:
    """Steps before the cursor are complete, the cursor step is active or terminal, the rest pending."""
    for index, step in enumerate(state.steps):
        if index < state.current_step_index:
            expected = {StepStatus.COMPLETE}
        elif index == state.current_step_index:
            expected = {StepStatus.ACTIVE, StepStatus.COMPLETE, StepStatus.ERROR}
        else:
            expected = {StepStatus.PENDING}
        if step.status not in expected:
            raise InvalidTransitionError(
                f"Step {step.id.value} is {step.status.value} at cursor {state.current_step_index}"
            )
