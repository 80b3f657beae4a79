"""Error taxonomy for the turn pipeline."""


class HealthAgentError(Exception):
    """Base error carrying a stable code and retry hint."""

    code = "INTERNAL_ERROR"
    retryable = False

    def __init__(self, message: str = "", *, retryable: bool | None = None) -> None:
        super().__init__(message or self.code)
        if retryable is not None:
            self.retryable = retryable


class InputError(HealthAgentError):
    """Malformed or oversized query, rejected before the pipeline runs."""

    code = "INPUT_INVALID"


class UpstreamTimeoutError(HealthAgentError):
    """Generation backend did not answer within its timeout."""

    code = "UPSTREAM_TIMEOUT"
    retryable = True


class GenerationFailedError(HealthAgentError):
    """Generation backend returned an error or an unusable answer."""

    code = "GENERATION_FAILED"
    retryable = True


class SessionError(HealthAgentError):
    code = "SESSION_ERROR"
    retryable = True


class SessionNotFoundError(SessionError):
    code = "SESSION_NOT_FOUND"


class SessionExpiredError(SessionError):
    code = "SESSION_EXPIRED"


class SessionCorruptedError(SessionError):
    code = "SESSION_CORRUPTED"


class SessionBusyError(SessionError):
    code = "SESSION_BUSY"


class KnowledgeBaseUnavailableError(HealthAgentError):
    code = "KNOWLEDGE_BASE_UNAVAILABLE"
    retryable = True


class AnalyticsWriteError(HealthAgentError):
    code = "ANALYTICS_WRITE_FAILED"
    retryable = True


class RuleSetError(ValueError):
    """Malformed rule-set data. Raised at load time only."""


class InvalidTransitionError(RuntimeError):
    """Controller attempted a transition not present in the state table."""


class InternalTurnError(HealthAgentError):
    code = "INTERNAL_ERROR"
    retryable = True
