from contextlib import contextmanager
from io import StringIO
import json
import logging

from health_agent.core.logging_utils import (
    LOGGER_NAME,
    clear_log_context,
    log_context,
    log_event,
    set_session_id,
    set_turn_id,
    text_digest,
)
from health_agent.core.types import UrgencyLevel


def _parse_log_lines(raw_output: str) -> list[dict]:
    lines = [line for line in raw_output.splitlines() if line.strip()]
    return [json.loads(line) for line in lines]


@contextmanager
def _capture_structured_logs():
    logger = logging.getLogger(LOGGER_NAME)
    original_handlers = list(logger.handlers)
    original_level = logger.level
    original_propagate = logger.propagate

    buffer = StringIO()
    handler = logging.StreamHandler(buffer)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.handlers = [handler]
    logger.setLevel(logging.INFO)
    logger.propagate = False
    try:
        yield buffer
    finally:
        handler.flush()
        logger.handlers = original_handlers
        logger.setLevel(original_level)
        logger.propagate = original_propagate


def test_log_event_schema_includes_required_fields():
    set_session_id("session-schema")
    set_turn_id(None)

    with _capture_structured_logs() as buffer:
        log_event(component="test_component", event="test_event")
    parsed = _parse_log_lines(buffer.getvalue())
    assert parsed
    record = parsed[-1]

    assert "ts" in record
    assert record["level"] == "INFO"
    assert record["component"] == "test_component"
    assert record["event"] == "test_event"
    assert record["session_id"] == "session-schema"
    assert "turn_id" in record
    assert "details" in record
    assert isinstance(record["details"], dict)

    clear_log_context()


def test_log_context_binds_and_restores_ids():
    clear_log_context()

    with _capture_structured_logs() as buffer:
        with log_context("session-ctx", turn_id=3):
            log_event(component="test_component", event="inside")
        log_event(component="test_component", event="outside")

    inside, outside = _parse_log_lines(buffer.getvalue())
    assert inside["session_id"] == "session-ctx"
    assert inside["turn_id"] == 3
    assert outside["session_id"] is None
    assert outside["turn_id"] is None


def test_explicit_ids_override_context():
    with _capture_structured_logs() as buffer:
        with log_context("session-ctx", turn_id=1):
            log_event(component="c", event="e", session_id="explicit", turn_id=9)

    record = _parse_log_lines(buffer.getvalue())[-1]
    assert record["session_id"] == "explicit"
    assert record["turn_id"] == 9


def test_log_event_serializes_enums_and_datetimes():
    from datetime import datetime, timezone

    with _capture_structured_logs() as buffer:
        log_event(
            component="c",
            event="e",
            level="ERROR",
            details={
                "urgency": UrgencyLevel.IMMEDIATE,
                "at": datetime(2024, 6, 1, tzinfo=timezone.utc),
            },
        )

    record = _parse_log_lines(buffer.getvalue())[-1]
    assert record["level"] == "ERROR"
    assert record["details"]["urgency"] == "immediate"
    assert record["details"]["at"].startswith("2024-06-01")


def test_debug_events_are_filtered_at_info_level():
    with _capture_structured_logs() as buffer:
        log_event(component="c", event="noisy", level="DEBUG")

    assert _parse_log_lines(buffer.getvalue()) == []


def test_text_digest_is_stable_and_short():
    assert text_digest("What is diabetes?") == text_digest("What is diabetes?")
    assert text_digest("What is diabetes?") != text_digest("What is asthma?")
    assert len(text_digest("anything")) == 12
