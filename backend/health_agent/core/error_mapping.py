"""Shared mapping from internal failures to user-facing error payloads."""
from typing import Any

from .errors import (
    HealthAgentError,
    InputError,
    InternalTurnError,
    SessionBusyError,
    SessionError,
    SessionExpiredError,
)

TURN_ERROR_CODE_INPUT = "INPUT_INVALID"
TURN_ERROR_CODE_SESSION_EXPIRED = "SESSION_EXPIRED"
TURN_ERROR_CODE_SESSION_BUSY = "SESSION_BUSY"
TURN_ERROR_CODE_SESSION = "SESSION_UNAVAILABLE"
TURN_ERROR_CODE_GENERIC = "TURN_FAILED"

_USER_MESSAGES: dict[str, str] = {
    TURN_ERROR_CODE_INPUT: (
        "Your message could not be processed. Please send a shorter question in plain text."
    ),
    TURN_ERROR_CODE_SESSION_EXPIRED: (
        "Your conversation timed out. Send your question again to start a new conversation."
    ),
    TURN_ERROR_CODE_SESSION_BUSY: (
        "Still working on your previous question. Please wait a moment and try again."
    ),
    TURN_ERROR_CODE_SESSION: (
        "We could not load your conversation. Send your question again to start a new one."
    ),
    TURN_ERROR_CODE_GENERIC: (
        "Something went wrong on our side. Please try again in a moment."
    ),
}


def classify_turn_error_code(error: BaseException) -> str:
    """Collapse any failure into one of the stable user-facing codes."""
    if isinstance(error, InputError):
        return TURN_ERROR_CODE_INPUT
    if isinstance(error, SessionExpiredError):
        return TURN_ERROR_CODE_SESSION_EXPIRED
    if isinstance(error, SessionBusyError):
        return TURN_ERROR_CODE_SESSION_BUSY
    if isinstance(error, SessionError):
        return TURN_ERROR_CODE_SESSION
    return TURN_ERROR_CODE_GENERIC


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, HealthAgentError):
        return error.retryable
    return InternalTurnError.retryable


def build_turn_error_payload(error: BaseException) -> dict[str, Any]:
    """Build the standardized, non-technical error payload for a failed turn."""
    code = classify_turn_error_code(error)
    return {
        "code": code,
        "message": _USER_MESSAGES[code],
        "retryable": is_retryable(error),
    }
