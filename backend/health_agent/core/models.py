"""Domain records shared by the turn pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from .types import (
    ChatHistory,
    DisclaimerType,
    Role,
    Severity,
    TurnState,
    UrgencyLevel,
    ViolationType,
)


def new_record_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class MessageMetadata:
    has_disclaimer: bool = False
    is_emergency: bool = False
    safety_checked: bool = False
    response_time_ms: float | None = None


@dataclass(frozen=True)
class ConversationMessage:
    """One appended message. Never mutated after it enters a session."""

    message_id: str
    role: Role
    content: str
    timestamp: datetime
    language: str
    metadata: MessageMetadata = field(default_factory=MessageMetadata)


@dataclass(frozen=True)
class Session:
    """Snapshot of a conversation session as held by the session store."""

    session_id: str
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    language: str = "en"
    user_id: str | None = None
    messages: tuple[ConversationMessage, ...] = ()
    disclaimer_acknowledged: bool = False
    expired: bool = False

    @property
    def acknowledgment_subject(self) -> str:
        return self.user_id or self.session_id

    def is_usable(self, now: datetime) -> bool:
        return not self.expired and now < self.expires_at


@dataclass(frozen=True)
class Query:
    text: str
    language: str
    session_id: str
    history: tuple[ConversationMessage, ...] = ()

    def history_as_chat(self) -> ChatHistory:
        return [
            {"role": message.role.value, "content": message.content}
            for message in self.history
            if message.role is not Role.SYSTEM
        ]


@dataclass(frozen=True)
class EmergencyIndicator:
    keyword: str
    category: str
    confidence: float
    urgency: UrgencyLevel
    rule_id: str


@dataclass(frozen=True)
class EmergencyCheck:
    is_emergency: bool
    indicators: tuple[EmergencyIndicator, ...] = ()
    urgency_level: UrgencyLevel | None = None
    category: str | None = None
    recommended_action: str = ""


@dataclass(frozen=True)
class CandidateResponse:
    text: str
    attempt: int
    constraints: tuple[str, ...] = ()


@dataclass(frozen=True)
class SafetyViolation:
    type: ViolationType
    severity: Severity
    description: str
    location: tuple[int, int]
    matched_text: str = ""
    rule_id: str | None = None
    confidence: float = 1.0


@dataclass(frozen=True)
class SafetyValidation:
    is_valid: bool
    violations: tuple[SafetyViolation, ...] = ()
    confidence: float = 1.0
    suggested_fixes: tuple[str, ...] = ()
    readability_grade: float | None = None

    @property
    def max_severity(self) -> Severity | None:
        if not self.violations:
            return None
        return max((v.severity for v in self.violations), key=lambda s: s.rank)

    @property
    def is_critical(self) -> bool:
        return any(v.severity is Severity.CRITICAL for v in self.violations)


@dataclass(frozen=True)
class Disclaimer:
    type: DisclaimerType
    language: str
    text: str
    requires_acknowledgment: bool = False
    priority: int = 0


@dataclass(frozen=True)
class KnowledgeFact:
    topic: str
    text: str
    source: str


@dataclass(frozen=True)
class SafetyLog:
    session_id: str
    timestamp: datetime
    action: str  # "blocked" | "modified"
    severity: Severity
    violations: tuple[dict[str, Any], ...] = ()
    attempt: int | None = None
    reason: str | None = None
    record_id: str = field(default_factory=new_record_id)


@dataclass(frozen=True)
class EmergencyLog:
    session_id: str
    timestamp: datetime
    urgency_level: UrgencyLevel | None
    category: str | None
    indicators: tuple[dict[str, Any], ...] = ()
    status: str = "escalated"
    resolves_record_id: str | None = None
    record_id: str = field(default_factory=new_record_id)


@dataclass(frozen=True)
class QueryMetrics:
    session_id: str
    timestamp: datetime
    terminal_state: TurnState
    attempts: int
    response_time_ms: float
    language: str
    record_id: str = field(default_factory=new_record_id)


AnalyticsRecord = SafetyLog | EmergencyLog | QueryMetrics


@dataclass(frozen=True)
class TurnResult:
    """Outcome handed back to the caller of one turn."""

    session_id: str
    content: str
    is_emergency: bool
    has_disclaimer: bool
    response_time_ms: float
    terminal_state: TurnState | None
    sources: tuple[str, ...] = ()
    requires_acknowledgment: bool = False
    attempts: int = 0
