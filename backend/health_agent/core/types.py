"""Common type definitions for the health agent."""
from enum import Enum
from typing import Dict, List


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class UrgencyLevel(str, Enum):
    IMMEDIATE = "immediate"
    URGENT = "urgent"
    SOON = "soon"

    @property
    def rank(self) -> int:
        return _URGENCY_RANK[self]


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


class ViolationType(str, Enum):
    DIAGNOSIS = "diagnosis"
    PRESCRIPTION = "prescription"
    TREATMENT = "treatment"
    BIAS = "bias"
    READABILITY = "readability"


class DisclaimerType(str, Enum):
    INITIAL = "initial"
    INLINE = "inline"
    EMERGENCY = "emergency"
    MEDICATION = "medication"


class TurnState(str, Enum):
    RECEIVED = "RECEIVED"
    EMERGENCY_CHECKED = "EMERGENCY_CHECKED"
    EMERGENCY_RESPONSE = "EMERGENCY_RESPONSE"
    GENERATING = "GENERATING"
    VALIDATING = "VALIDATING"
    REGENERATING = "REGENERATING"
    DISCLAIMED = "DISCLAIMED"
    FALLBACK = "FALLBACK"


_URGENCY_RANK = {
    UrgencyLevel.SOON: 1,
    UrgencyLevel.URGENT: 2,
    UrgencyLevel.IMMEDIATE: 3,
}

_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}

# Plain dict view of a message, used when building prompts.
ChatMessage = Dict[str, str]  # {"role": "user"|"assistant", "content": "text"}
ChatHistory = List[ChatMessage]
