import pytest

from health_agent.core.error_mapping import (
    TURN_ERROR_CODE_GENERIC,
    TURN_ERROR_CODE_INPUT,
    TURN_ERROR_CODE_SESSION,
    TURN_ERROR_CODE_SESSION_BUSY,
    TURN_ERROR_CODE_SESSION_EXPIRED,
    build_turn_error_payload,
    classify_turn_error_code,
)
from health_agent.core.errors import (
    GenerationFailedError,
    InputError,
    InternalTurnError,
    SessionBusyError,
    SessionCorruptedError,
    SessionExpiredError,
    SessionNotFoundError,
    UpstreamTimeoutError,
)


@pytest.mark.parametrize(
    ("error", "expected_code"),
    [
        (InputError("empty"), TURN_ERROR_CODE_INPUT),
        (SessionExpiredError("expired"), TURN_ERROR_CODE_SESSION_EXPIRED),
        (SessionBusyError("busy"), TURN_ERROR_CODE_SESSION_BUSY),
        (SessionNotFoundError("missing"), TURN_ERROR_CODE_SESSION),
        (SessionCorruptedError("bad"), TURN_ERROR_CODE_SESSION),
        (UpstreamTimeoutError("slow"), TURN_ERROR_CODE_GENERIC),
        (GenerationFailedError("broken"), TURN_ERROR_CODE_GENERIC),
        (InternalTurnError("boom"), TURN_ERROR_CODE_GENERIC),
        (RuntimeError("unexpected"), TURN_ERROR_CODE_GENERIC),
    ],
)
def test_classify_turn_error_code_matrix(error: BaseException, expected_code: str):
    assert classify_turn_error_code(error) == expected_code


def test_input_errors_are_not_retryable():
    payload = build_turn_error_payload(InputError("query text is empty"))

    assert payload["code"] == TURN_ERROR_CODE_INPUT
    assert payload["retryable"] is False


def test_session_and_internal_errors_are_retryable():
    assert build_turn_error_payload(SessionExpiredError("x"))["retryable"] is True
    assert build_turn_error_payload(SessionBusyError("x"))["retryable"] is True
    assert build_turn_error_payload(InternalTurnError("x"))["retryable"] is True
    assert build_turn_error_payload(ValueError("x"))["retryable"] is True


def test_payload_never_leaks_internal_details():
    payload = build_turn_error_payload(InternalTurnError("KeyError: 'secret_column' at line 42"))

    assert set(payload) == {"code", "message", "retryable"}
    assert "secret_column" not in payload["message"]
    assert payload["message"]


def test_retryable_override_on_instance():
    error = SessionNotFoundError("gone", retryable=False)

    assert build_turn_error_payload(error)["retryable"] is False
