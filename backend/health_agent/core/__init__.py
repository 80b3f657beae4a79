"""Core types, records, errors and logging for the health agent."""
from .errors import (
    GenerationFailedError,
    HealthAgentError,
    InputError,
    InternalTurnError,
    InvalidTransitionError,
    RuleSetError,
    SessionBusyError,
    SessionCorruptedError,
    SessionError,
    SessionExpiredError,
    SessionNotFoundError,
    UpstreamTimeoutError,
)
from .models import (
    CandidateResponse,
    ConversationMessage,
    Disclaimer,
    EmergencyCheck,
    EmergencyIndicator,
    EmergencyLog,
    KnowledgeFact,
    Query,
    QueryMetrics,
    SafetyLog,
    SafetyValidation,
    SafetyViolation,
    Session,
    TurnResult,
)
from .schemas import (
    AcknowledgeRequest,
    DisclaimerResponse,
    SessionCreateRequest,
    SessionEnvelopeResponse,
    SessionResponse,
    StatusResponse,
    TurnRequest,
    TurnResponse,
)
from .types import (
    ChatHistory,
    ChatMessage,
    DisclaimerType,
    Role,
    Severity,
    TurnState,
    UrgencyLevel,
    ViolationType,
)

__all__ = [
    # Errors
    "HealthAgentError",
    "InputError",
    "UpstreamTimeoutError",
    "GenerationFailedError",
    "SessionError",
    "SessionNotFoundError",
    "SessionExpiredError",
    "SessionCorruptedError",
    "SessionBusyError",
    "InternalTurnError",
    "RuleSetError",
    "InvalidTransitionError",
    # Records
    "CandidateResponse",
    "ConversationMessage",
    "Disclaimer",
    "EmergencyCheck",
    "EmergencyIndicator",
    "EmergencyLog",
    "KnowledgeFact",
    "Query",
    "QueryMetrics",
    "SafetyLog",
    "SafetyValidation",
    "SafetyViolation",
    "Session",
    "TurnResult",
    # Schemas
    "AcknowledgeRequest",
    "DisclaimerResponse",
    "SessionCreateRequest",
    "SessionEnvelopeResponse",
    "SessionResponse",
    "StatusResponse",
    "TurnRequest",
    "TurnResponse",
    # Types
    "ChatHistory",
    "ChatMessage",
    "DisclaimerType",
    "Role",
    "Severity",
    "TurnState",
    "UrgencyLevel",
    "ViolationType",
]
