"""Generation gateway: prompt assembly and bounded calls to the answer model."""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Sequence

from ..core.errors import GenerationFailedError, UpstreamTimeoutError
from ..core.logging_utils import log_event, log_latency_event
from ..core.models import CandidateResponse, KnowledgeFact, Query
from ..core.types import ChatHistory
from ..prompts import HEALTH_EDUCATION_PROMPT, LANGUAGE_NAMES
from .llm import BaseLLMModel, GenerationOptions, LLMGenerationError

ANSWER_STOPS = ["\nUser:", "\nAssistant:", "</s>", "<s>"]


def _estimate_tokens(text: str) -> int:
    # Practical preflight approximation for prompt budgeting.
    return max(1, len(text) // 4)


def _sanitize_text(text: str) -> str:
    return text.replace("</s>", "").replace("<s>", "").strip()


def _clean_answer(text: str) -> str:
    cleaned = _sanitize_text(text)
    if cleaned.lower().startswith("assistant:"):
        cleaned = cleaned[len("assistant:"):].strip()
    return cleaned


def _build_history_lines(chat_history: ChatHistory) -> list[str]:
    lines: list[str] = []
    for msg in chat_history:
        role_label = "User" if msg.get("role") == "user" else "Assistant"
        content = _sanitize_text(msg.get("content", ""))
        lines.append(f"{role_label}: {content}\n")
    return lines


def _fit_history(
    prefix: str,
    history: ChatHistory,
    suffix: str,
    output_tokens: int,
    n_ctx: int,
    margin: int,
) -> ChatHistory:
    """Drop the oldest history entries until the prompt fits the context window."""
    kept = list(history)
    while kept:
        prompt = prefix + "".join(_build_history_lines(kept)) + suffix
        total = _estimate_tokens(prompt) + output_tokens + margin
        if total <= n_ctx:
            break
        kept.pop(0)
    return kept


def _build_system_prompt(
    language: str,
    constraints: Sequence[str],
    facts: Sequence[KnowledgeFact],
) -> str:
    parts = [
        HEALTH_EDUCATION_PROMPT.format(language=LANGUAGE_NAMES.get(language, "English")).strip()
    ]
    if facts:
        fact_lines = "\n".join(f"- {fact.text} (Source: {fact.source})" for fact in facts)
        parts.append(f"REFERENCE FACTS (use only if relevant):\n{fact_lines}")
    if constraints:
        constraint_lines = "\n".join(f"- {constraint}" for constraint in constraints)
        parts.append(
            "YOUR PREVIOUS ANSWER WAS REJECTED. FOLLOW THESE EXTRA RULES:\n"
            f"{constraint_lines}"
        )
    return "\n\n".join(parts)


async def _run_with_optional_lock(
    lock: Any | None,
    func: Callable[..., Any],
    *args: Any,
) -> Any:
    def _call() -> Any:
        if lock is None:
            return func(*args)
        with lock:
            return func(*args)

    return await asyncio.to_thread(_call)


def _forget(task: asyncio.Future) -> None:
    # Consume the late result so the loop does not report it as unretrieved.
    if not task.cancelled():
        task.exception()


class GenerationGateway:
    """
    The only component allowed to talk to the answer model.

    Each call to :meth:`generate` is one pipeline attempt. Inside an attempt,
    upstream timeouts are retried with exponential backoff; provider errors
    and empty answers fail the attempt immediately.

    A timed-out model call cannot be interrupted: its worker thread runs to
    completion and keeps the model busy. Such calls are tracked as abandoned,
    and no new model call starts until they have finished, so a retry never
    queues a second call behind one that is still running.
    """

    def __init__(
        self,
        llm: BaseLLMModel,
        *,
        llm_lock: Any | None = None,
        max_retries: int = 3,
        retry_backoff_s: float = 0.25,
        max_new_tokens: int = 320,
        n_ctx: int = 4096,
        context_margin: int = 64,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.llm = llm
        self.llm_lock = llm_lock
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s
        self.max_new_tokens = max_new_tokens
        self.n_ctx = n_ctx
        self.context_margin = context_margin
        self._abandoned: set[asyncio.Future] = set()

    @property
    def abandoned_calls(self) -> int:
        return sum(1 for task in self._abandoned if not task.done())

    def _release(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        _forget(task)

    def _abandon(self, task: asyncio.Future, attempt: int) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._release)
        log_event(
            component="generation_gateway",
            event="generation_call_abandoned",
            level="WARNING",
            details={"attempt": attempt, "abandoned_calls": self.abandoned_calls},
        )

    async def _call_model(
        self,
        prompt: str,
        options: GenerationOptions,
        timeout_s: float,
        attempt: int,
    ) -> str:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        # Calls abandoned under a previous event loop can never complete here.
        self._abandoned.difference_update(
            [task for task in self._abandoned if task.get_loop() is not loop]
        )
        busy = {task for task in self._abandoned if not task.done()}
        if busy:
            _, pending = await asyncio.wait(busy, timeout=timeout_s)
            if pending:
                raise asyncio.TimeoutError

        task = asyncio.ensure_future(
            _run_with_optional_lock(self.llm_lock, self.llm.generate, prompt, options)
        )
        try:
            return await asyncio.wait_for(
                asyncio.shield(task),
                timeout=max(0.0, deadline - loop.time()),
            )
        except (asyncio.TimeoutError, asyncio.CancelledError):
            if not task.done():
                self._abandon(task, attempt)
            raise

    def build_request(
        self,
        query: Query,
        constraints: Sequence[str] = (),
        facts: Sequence[KnowledgeFact] = (),
    ) -> tuple[str, list[dict[str, str]]]:
        """Return the flat prompt and the equivalent chat messages."""
        system_prompt = _build_system_prompt(query.language, constraints, facts)
        user_text = _sanitize_text(query.text)
        prefix = f"{system_prompt}\n\n"
        suffix = f"User: {user_text}\nAssistant:"
        history = _fit_history(
            prefix,
            query.history_as_chat(),
            suffix,
            output_tokens=self.max_new_tokens,
            n_ctx=self.n_ctx,
            margin=self.context_margin,
        )
        prompt = prefix + "".join(_build_history_lines(history)) + suffix

        messages: list[dict[str, str]] = [{"role": "system", "content": system_prompt}]
        for msg in history:
            role = "assistant" if msg.get("role") == "assistant" else "user"
            messages.append({"role": role, "content": _sanitize_text(msg.get("content", ""))})
        messages.append({"role": "user", "content": user_text})
        return prompt, messages

    async def generate(
        self,
        query: Query,
        *,
        attempt: int,
        timeout_s: float,
        constraints: Sequence[str] = (),
        facts: Sequence[KnowledgeFact] = (),
    ) -> CandidateResponse:
        prompt, messages = self.build_request(query, constraints, facts)
        options = GenerationOptions(
            stop=ANSWER_STOPS,
            max_new_tokens=self.max_new_tokens,
            messages=messages,
        )

        for try_index in range(1, self.max_retries + 1):
            started_at = time.perf_counter()
            try:
                raw_text = await self._call_model(prompt, options, timeout_s, attempt)
            except asyncio.TimeoutError:
                log_latency_event(
                    component="generation_gateway",
                    event="generation_latency",
                    stage="generation",
                    duration_s=time.perf_counter() - started_at,
                    status="timeout",
                    level="WARNING",
                    details={"attempt": attempt, "try": try_index, "timeout_s": timeout_s},
                )
                if try_index < self.max_retries:
                    await asyncio.sleep(self.retry_backoff_s * 2 ** (try_index - 1))
                continue
            except LLMGenerationError as err:
                log_event(
                    component="generation_gateway",
                    event="generation_failed",
                    level="WARNING",
                    details={"attempt": attempt, "try": try_index, "error": str(err)},
                )
                raise GenerationFailedError(str(err)) from err

            text = _clean_answer(raw_text or "")
            if not text:
                log_event(
                    component="generation_gateway",
                    event="generation_empty",
                    level="WARNING",
                    details={"attempt": attempt, "try": try_index},
                )
                raise GenerationFailedError("answer model returned empty output")

            log_latency_event(
                component="generation_gateway",
                event="generation_latency",
                stage="generation",
                duration_s=time.perf_counter() - started_at,
                status="completed",
                details={
                    "attempt": attempt,
                    "try": try_index,
                    "constraints": len(constraints),
                    "facts": len(facts),
                    "response_chars": len(text),
                },
            )
            return CandidateResponse(text=text, attempt=attempt, constraints=tuple(constraints))

        raise UpstreamTimeoutError(
            f"answer model timed out {self.max_retries} times (timeout {timeout_s:.2f}s)"
        )
