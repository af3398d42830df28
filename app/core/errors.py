"""Engine error kinds.

Every error carries ``can_retry`` so the response assembler can surface it as
a structured ``{message, can_retry}`` field without inspecting the type.
"""


class EngineError(Exception):
    """Base class for engine failures."""

    can_retry: bool = False

    def __init__(self, message: str, can_retry: bool | None = None):
        super().__init__(message)
        self.message = message
        if can_retry is not None:
            self.can_retry = can_retry

    def to_dict(self) -> dict:
        return {"message": self.message, "can_retry": self.can_retry}


class BadInputError(EngineError):
    """Empty utterance, missing required intake answer, malformed request."""


class RetrievalTransientError(EngineError):
    """Retrieval hiccup that may succeed on retry within the same step."""

    can_retry = True


class RetrievalFatalError(EngineError):
    """Retrieval failed for good, or transient retries were exhausted."""

    can_retry = True


class StepTimeoutError(EngineError):
    """A processing step exceeded its wall-clock budget."""

    can_retry = True


class InsufficientCreditsError(EngineError):
    """Balance does not cover the reservation."""


class CreditOverageError(EngineError):
    """Settlement amount exceeds the held reservation."""


class ResearchCancelledError(EngineError):
    """Research job cancelled by the user."""

    can_retry = True


class StoreUnavailableError(EngineError):
    """Conversation persistence failed."""

    can_retry = True


class RestrictedLeakError(EngineError):
    """A restricted-tier factor score reached an outbound payload."""


class InvalidTransitionError(EngineError):
    """Raised when a job phase transition is not allowed."""


class TurnInProgressError(EngineError):
    """A conversation already has a turn that has not yielded its response."""

    can_retry = True


class JobNotFoundError(EngineError):
    """Unknown deep research job id."""


class ConversationNotFoundError(EngineError):
    """Unknown conversation id."""


class RequestNotFoundError(EngineError):
    """Unknown approval request id."""
