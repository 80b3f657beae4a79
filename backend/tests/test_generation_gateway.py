import asyncio
import threading
import time
from datetime import datetime, timezone

import pytest

from health_agent.core.errors import GenerationFailedError, UpstreamTimeoutError
from health_agent.core.models import ConversationMessage, KnowledgeFact, Query
from health_agent.core.types import Role
from health_agent.services.generation import GenerationGateway
from health_agent.services.llm import BaseLLMModel, GenerationOptions, LLMDecodeError

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class RecordingLLM(BaseLLMModel):
    def __init__(self, reply: str = "Water helps the body stay healthy.", delay_s: float = 0.0) -> None:
        self.reply = reply
        self.delay_s = delay_s
        self.calls: list[tuple[str, GenerationOptions | None]] = []

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        self.calls.append((prompt, options))
        if self.delay_s:
            time.sleep(self.delay_s)
        return self.reply


class FailingLLM(BaseLLMModel):
    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        raise LLMDecodeError("decoder crashed")


def _query(text: str = "Why is water important?", history=()) -> Query:
    return Query(text=text, language="en", session_id="s-1", history=tuple(history))


@pytest.mark.asyncio
async def test_generate_returns_cleaned_candidate():
    llm = RecordingLLM(reply="Assistant: Water helps the body stay healthy.</s>")
    gateway = GenerationGateway(llm)

    candidate = await gateway.generate(_query(), attempt=2, timeout_s=1.0, constraints=("Be brief.",))

    assert candidate.text == "Water helps the body stay healthy."
    assert candidate.attempt == 2
    assert candidate.constraints == ("Be brief.",)
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_generate_passes_stops_and_chat_messages():
    llm = RecordingLLM()
    gateway = GenerationGateway(llm, max_new_tokens=100)

    await gateway.generate(_query(), attempt=1, timeout_s=1.0)

    prompt, options = llm.calls[0]
    assert prompt.endswith("User: Why is water important?\nAssistant:")
    assert options.max_new_tokens == 100
    assert "\nUser:" in options.stop
    assert [m["role"] for m in options.messages] == ["system", "user"]


def test_request_includes_facts_and_constraints():
    gateway = GenerationGateway(RecordingLLM())
    facts = (KnowledgeFact(topic="diabetes", text="Diabetes affects blood sugar.", source="WHO"),)

    prompt, messages = gateway.build_request(
        _query("What is diabetes?"),
        constraints=("Do not name doses.",),
        facts=facts,
    )

    system = messages[0]["content"]
    assert "REFERENCE FACTS" in system
    assert "Diabetes affects blood sugar. (Source: WHO)" in system
    assert "YOUR PREVIOUS ANSWER WAS REJECTED" in system
    assert "- Do not name doses." in system
    assert system in prompt


def test_request_without_constraints_has_no_rejection_section():
    gateway = GenerationGateway(RecordingLLM())

    _, messages = gateway.build_request(_query())

    assert "REJECTED" not in messages[0]["content"]
    assert "Answer in English." in messages[0]["content"]


def test_oldest_history_is_dropped_to_fit_context():
    history = [
        ConversationMessage(
            message_id=f"m{index}",
            role=Role.USER if index % 2 == 0 else Role.ASSISTANT,
            content=f"{index} " + "x" * 400,
            timestamp=T0,
            language="en",
        )
        for index in range(10)
    ]
    gateway = GenerationGateway(RecordingLLM(), max_new_tokens=32, n_ctx=600, context_margin=0)

    _, messages = gateway.build_request(_query(history=history))

    kept = [message["content"] for message in messages[1:-1]]
    assert 0 < len(kept) < len(history)
    assert kept == [message.content for message in history[-len(kept):]]


@pytest.mark.asyncio
async def test_timeouts_are_retried_then_raise_upstream_timeout():
    llm = RecordingLLM(delay_s=0.2)
    gateway = GenerationGateway(llm, max_retries=3, retry_backoff_s=0.0)

    with pytest.raises(UpstreamTimeoutError):
        await gateway.generate(_query(), attempt=1, timeout_s=0.02)

    # The first call is still running, so the retries never start another one.
    assert len(llm.calls) == 1
    assert gateway.abandoned_calls == 1


class SerializedLLM(BaseLLMModel):
    """One call at a time, like a single loaded model. Slow when the user text says 'slow'."""

    def __init__(self, slow_s: float, fast_s: float = 0.01) -> None:
        self.slow_s = slow_s
        self.fast_s = fast_s
        self._lock = threading.Lock()
        self.started = 0
        self.finished = 0

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        with self._lock:
            self.started += 1
            user_text = prompt.rsplit("User:", 1)[-1]
            time.sleep(self.slow_s if "slow" in user_text else self.fast_s)
            self.finished += 1
        return "Diabetes is a condition that affects blood sugar."


@pytest.mark.asyncio
async def test_abandoned_call_does_not_stack_retries_or_starve_other_queries():
    llm = SerializedLLM(slow_s=0.5)
    gateway = GenerationGateway(llm, max_retries=3, retry_backoff_s=0.0)

    with pytest.raises(UpstreamTimeoutError):
        await gateway.generate(_query("a slow question"), attempt=1, timeout_s=0.1)
    assert llm.started == 1

    candidate = await gateway.generate(_query("What is diabetes?"), attempt=1, timeout_s=1.0)

    assert "blood sugar" in candidate.text
    assert llm.started == 2
    assert llm.finished == 2
    assert gateway.abandoned_calls == 0


@pytest.mark.asyncio
async def test_retry_runs_once_the_abandoned_call_finishes():
    llm = SerializedLLM(slow_s=0.3)
    gateway = GenerationGateway(llm, max_retries=2, retry_backoff_s=0.0)

    async def _speed_up_model() -> None:
        await asyncio.sleep(0.05)
        llm.slow_s = 0.0

    _, candidate = await asyncio.gather(
        _speed_up_model(),
        gateway.generate(_query("a slow question"), attempt=1, timeout_s=0.2),
    )

    assert candidate.attempt == 1
    assert llm.started == 2
    assert llm.finished == 2


@pytest.mark.asyncio
async def test_provider_errors_fail_the_attempt_without_retry():
    gateway = GenerationGateway(FailingLLM())

    with pytest.raises(GenerationFailedError, match="decoder crashed"):
        await gateway.generate(_query(), attempt=1, timeout_s=1.0)


@pytest.mark.asyncio
async def test_empty_output_fails_the_attempt():
    gateway = GenerationGateway(RecordingLLM(reply="  </s> "))

    with pytest.raises(GenerationFailedError, match="empty"):
        await gateway.generate(_query(), attempt=1, timeout_s=1.0)


def test_max_retries_must_be_positive():
    with pytest.raises(ValueError):
        GenerationGateway(RecordingLLM(), max_retries=0)
