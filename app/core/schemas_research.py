"""Pydantic schemas for deep research scoring, intake, jobs and reports."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from app.core.domain import Source


class StudyType(str, Enum):
    SOURCING_STUDY = "sourcing_study"
    COST_MODEL = "cost_model"
    MARKET_ANALYSIS = "market_analysis"
    SUPPLIER_ASSESSMENT = "supplier_assessment"
    RISK_ASSESSMENT = "risk_assessment"
    CUSTOM = "custom"


class SignalCategory(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    NEGATIVE = "negative"


class SignalMatch(BaseModel):
    pattern: str = Field(..., description="Signal label")
    weight: float
    category: SignalCategory


class ChatContext(BaseModel):
    """Conversation features used to boost the deep research score."""

    message_count: int = 0
    follow_up_count: int = 0
    topics_discussed: list[str] = Field(default_factory=list)
    has_complexity_indicators: bool = False
    previous_queries: list[str] = Field(default_factory=list)


class DeepResearchScore(BaseModel):
    score: float = Field(..., ge=0.0, le=1.0)
    matched_signals: list[SignalMatch] = Field(default_factory=list)
    inferred_study_type: StudyType
    reason: str
    should_trigger_interstitial: bool
    should_suggest: bool
    estimated_credits: int
    estimated_time: str


# ============================================================================
# Intake
# ============================================================================


class QuestionType(str, Enum):
    SELECT = "select"
    MULTISELECT = "multiselect"
    TEXT = "text"


class QuestionOption(BaseModel):
    label: str
    value: str


class IntakeQuestion(BaseModel):
    id: str
    question: str
    type: QuestionType
    options: list[QuestionOption] = Field(default_factory=list)
    default_value: str | list[str] | None = None
    required: bool = True
    placeholder: str | None = None
    help_text: str | None = None
    prefilled_from: str | None = Field(default=None, description="e.g. 'chat history'")


class DeepResearchIntake(BaseModel):
    questions: list[IntakeQuestion]
    prefilled_answers: dict[str, Any] | None = None
    can_skip: bool = False
    skip_reason: str | None = None
    estimated_credits: int
    estimated_time: str


# ============================================================================
# Processing
# ============================================================================


class ResearchPhase(str, Enum):
    INTAKE = "intake"
    INTAKE_CONFIRMED = "intake_confirmed"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class StepId(str, Enum):
    DECOMPOSE = "decompose"
    BEROE = "beroe"
    WEB = "web"
    INTERNAL = "internal"
    SYNTHESIZE = "synthesize"
    REPORT = "report"


class StepStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETE = "complete"
    ERROR = "error"


class ProcessingStep(BaseModel):
    id: StepId
    label: str
    description: str | None = None
    status: StepStatus = StepStatus.PENDING
    sources_found: int | None = None
    retries: int = 0


class ProcessingState(BaseModel):
    steps: list[ProcessingStep]
    current_step_index: int = 0
    elapsed_time: float = 0.0
    sources_collected: int = 0


class ReportSection(BaseModel):
    title: str
    content: str


class DeepResearchReport(BaseModel):
    id: str
    title: str
    category: str
    published_date: str
    author: str | None = None
    summary: str
    sections: list[ReportSection]
    sources: list[Source] = Field(default_factory=list)
    citations: int = 0
    credits_used: int
    total_processing_time: float
    pdf_url: str | None = None


class JobError(BaseModel):
    message: str
    can_retry: bool


class DeepResearchJob(BaseModel):
    job_id: str
    phase: ResearchPhase = ResearchPhase.INTAKE
    query: str
    study_type: StudyType
    credits_available: int
    user_id: str = "anonymous"
    intake: DeepResearchIntake | None = None
    answers: dict[str, Any] | None = None
    processing: ProcessingState | None = None
    report: DeepResearchReport | None = None
    error: JobError | None = None
    reservation_id: str | None = None
    retried_from: str | None = None


class StepResult(BaseModel):
    """What an injected retrieval capability returns for one step."""

    sources: list[Source] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)
