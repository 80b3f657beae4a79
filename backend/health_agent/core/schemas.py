"""API request and response schemas for CareKeep."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============= Request Schemas =============

class TurnRequest(BaseModel):
    """Request schema for the /turn endpoint."""

    session_id: str = Field(..., description="Conversation session id", min_length=1)
    query: str = Field(..., description="Current user question")
    language: str = Field(default="en", description="ISO 639-1 language code")
    model_config = ConfigDict(extra="forbid")


class SessionCreateRequest(BaseModel):
    """Request schema for /sessions."""

    user_id: Optional[str] = Field(default=None, description="Optional authenticated user id")
    language: str = Field(default="en", description="Preferred language")


class AcknowledgeRequest(BaseModel):
    """Request schema for /sessions/{session_id}/acknowledge."""

    disclaimer_type: str = Field(default="initial", description="Disclaimer being acknowledged")


# ============= Response Schemas =============

class TurnResponse(BaseModel):
    """Envelope response from /turn."""

    success: bool = Field(..., description="Whether the turn produced a response")
    data: Dict[str, Any] = Field(
        default_factory=dict,
        description="content, is_emergency, has_disclaimer, sources, response_time_ms",
    )
    error: Optional[Dict[str, Any]] = Field(
        default=None,
        description="User-facing error with code, message and retryable flag",
    )
    model_config = ConfigDict(extra="forbid")


class SessionResponse(BaseModel):
    """Session snapshot returned by session endpoints."""

    session_id: str
    language: str
    disclaimer_acknowledged: bool
    expires_at: str
    initial_disclaimer: Optional[str] = None


class DisclaimerResponse(BaseModel):
    """Disclaimer text for one type and language."""

    type: str
    language: str
    text: str
    requires_acknowledgment: bool
    priority: int


class StatusResponse(BaseModel):
    """Generic status response for health check endpoints."""

    status: str = Field(..., description="Service status")
    system: Optional[str] = Field(None, description="System identifier")
    rule_sets: List[str] = Field(default_factory=list, description="Active rule-set versions")


class SessionEnvelopeResponse(BaseModel):
    """Envelope response from the session endpoints."""

    success: bool = Field(..., description="Whether the session operation succeeded")
    data: Optional[SessionResponse] = Field(default=None, description="Session snapshot")
    error: Optional[Dict[str, Any]] = Field(
        default=None,
        description="User-facing error with code, message and retryable flag",
    )
