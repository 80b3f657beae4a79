from contextlib import contextmanager
from io import StringIO
import json
import logging

from health_agent.core.logging_utils import (
    LOGGER_NAME,
    clear_log_context,
    duration_to_ms,
    log_latency_event,
    pop_session_metrics_summary,
    set_session_id,
)


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


def _assert_latency_record(record: dict, expected_component: str, expected_stage: str) -> None:
    assert record["component"] == expected_component
    assert isinstance(record["details"]["duration_ms"], (int, float))
    assert record["details"]["duration_ms"] >= 0
    assert "status" in record["details"]
    assert record["details"]["stage"] == expected_stage


def test_latency_event_schema():
    set_session_id("latency-schema-session")

    with _capture_structured_logs() as buffer:
        log_latency_event(
            component="pipeline_controller",
            event="validation_latency",
            stage="validation",
            duration_s=0.0125,
            status="valid",
            details={"attempt": 1},
        )

    record = _parse_log_lines(buffer.getvalue())[-1]
    _assert_latency_record(record, "pipeline_controller", "validation")
    assert record["details"]["duration_ms"] == 12.5
    assert record["details"]["attempt"] == 1

    pop_session_metrics_summary("latency-schema-session")
    clear_log_context()


def test_session_metrics_summary_aggregates_and_pops():
    session_id = "latency-summary-session"
    set_session_id(session_id)

    with _capture_structured_logs():
        for duration_s, status in ((0.010, "completed"), (0.020, "completed"), (0.030, "timeout")):
            log_latency_event(
                component="generation_gateway",
                event="generation_latency",
                stage="generation",
                duration_s=duration_s,
                status=status,
            )

    summary = pop_session_metrics_summary(session_id)
    generation = summary["stages"]["generation"]
    assert generation["count"] == 3
    assert generation["avg_ms"] == 20.0
    assert generation["max_ms"] == 30.0
    assert generation["status_counts"] == {"completed": 2, "timeout": 1}

    assert pop_session_metrics_summary(session_id) == {"stages": {}}
    clear_log_context()


def test_duration_to_ms_clamps_negative_values():
    assert duration_to_ms(-1.0) == 0.0
    assert duration_to_ms(0.0015) == 1.5
