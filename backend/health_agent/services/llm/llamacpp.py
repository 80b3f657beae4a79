"""GGUF answer model served through llama.cpp."""
from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ...core.env import get_int_env
from ...core.logging_utils import log_event
from .base import (
    BaseLLMModel,
    GenerationOptions,
    LLMContextBudgetExceededError,
    LLMDecodeError,
    LLMGenerationError,
    apply_stop_sequences,
)

DEFAULT_STOPS = ("\nUser:", "\nAssistant:", "</s>", "<s>")


@dataclass(frozen=True)
class LlamaCppConfig:
    """Configuration for llama.cpp backend."""

    gguf_path: Path
    n_ctx: int = 4096
    n_threads: int = 0
    n_batch: int = 128
    max_new_tokens: int = 320
    gpu_layers: int = -1
    context_margin: int = 64

    @classmethod
    def from_env(cls) -> "LlamaCppConfig":
        gguf_path_raw = os.getenv("LLAMACPP_GGUF_PATH", "")
        if not gguf_path_raw:
            raise ValueError("LLAMACPP_GGUF_PATH is required for llama.cpp backend.")
        gguf_path = Path(gguf_path_raw)
        if not gguf_path.exists():
            raise FileNotFoundError(f"LLAMACPP_GGUF_PATH does not exist: {gguf_path}")

        return cls(
            gguf_path=gguf_path,
            n_ctx=get_int_env("LLAMACPP_N_CTX", 4096),
            n_threads=get_int_env("LLAMACPP_N_THREADS", 0, min_value=0),
            n_batch=get_int_env("LLAMACPP_N_BATCH", 128),
            max_new_tokens=get_int_env("LLAMACPP_MAX_NEW_TOKENS", 320),
            gpu_layers=get_int_env("LLAMACPP_GPU_LAYERS", -1, min_value=-1),
            context_margin=get_int_env("LLAMACPP_CONTEXT_MARGIN", 64, min_value=0),
        )


class LlamaCppService(BaseLLMModel):
    """Local instruction-tuned model using llama.cpp (GGUF)."""

    def __init__(self, config: LlamaCppConfig | None = None, client: Any | None = None) -> None:
        self.config = config or LlamaCppConfig.from_env()
        self._generate_lock = threading.Lock()

        if client is not None:
            self.client = client
            return

        log_event(
            component="llamacpp",
            event="model_loading",
            details={"gguf_path": str(self.config.gguf_path), "n_ctx": self.config.n_ctx},
        )
        try:
            from llama_cpp import Llama  # type: ignore
        except Exception as err:
            raise ImportError(
                "llama_cpp is required for the llama.cpp backend. Install llama-cpp-python."
            ) from err

        n_threads = self.config.n_threads or (os.cpu_count() or 1)
        self.client = Llama(
            model_path=str(self.config.gguf_path),
            n_ctx=self.config.n_ctx,
            n_threads=n_threads,
            n_batch=self.config.n_batch,
            n_gpu_layers=self.config.gpu_layers,
            verbose=False,
        )
        log_event(component="llamacpp", event="model_loaded")

    @staticmethod
    def _is_context_overflow_error(message: str) -> bool:
        lowered = message.lower()
        return (
            "requested tokens" in lowered and "exceed context window" in lowered
        ) or "context window" in lowered

    @staticmethod
    def _is_decode_error(message: str) -> bool:
        lowered = message.lower()
        return "llama_decode returned -1" in lowered or "decode" in lowered

    def _estimate_prompt_tokens(self, prompt: str) -> int:
        try:
            token_ids = self.client.tokenize(prompt.encode("utf-8"))
            return len(token_ids)
        except Exception:
            # Tokenizer not exposed by every client build.
            return max(1, len(prompt) // 4)

    def _resolve_max_tokens(self, prompt: str, requested_max_tokens: int) -> int:
        prompt_tokens = self._estimate_prompt_tokens(prompt)
        available = self.config.n_ctx - prompt_tokens - self.config.context_margin
        if available < 1:
            raise LLMContextBudgetExceededError("Prompt exceeds llama.cpp context budget.")
        if requested_max_tokens < 1:
            raise LLMContextBudgetExceededError("Requested output tokens must be positive.")
        return min(requested_max_tokens, available)

    def _generate_once(
        self,
        prompt: str,
        generation_options: GenerationOptions,
        max_tokens: int,
        stops: list[str],
    ) -> str:
        temperature = (
            generation_options.temperature
            if generation_options.temperature is not None
            else 0.2
        )
        request_kwargs: dict[str, object] = {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": 1.0,
            "stop": stops,
        }

        if generation_options.messages and hasattr(self.client, "create_chat_completion"):
            response = self.client.create_chat_completion(
                messages=[
                    {"role": message.get("role", "user"), "content": message.get("content", "")}
                    for message in generation_options.messages
                ],
                **request_kwargs,
            )
            text = response.get("choices", [{}])[0].get("message", {}).get("content", "")
        else:
            response = self.client(prompt, **request_kwargs)
            text = response.get("choices", [{}])[0].get("text", "")
        return apply_stop_sequences((text or "").strip(), stops)

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        with self._generate_lock:
            generation_options = options or GenerationOptions()
            stops = list(generation_options.stop) if generation_options.stop else list(DEFAULT_STOPS)
            max_tokens = (
                generation_options.max_new_tokens
                if generation_options.max_new_tokens is not None
                else self.config.max_new_tokens
            )
            # The retry only asks for fewer output tokens. The prompt is never cut here:
            # its head carries the safety rules and regeneration constraints, and
            # history is already fitted to the context window by the caller.
            attempt_token_budgets = [max_tokens, max(32, max_tokens // 2)]
            last_error: Exception | None = None

            for attempt_tokens in attempt_token_budgets:
                try:
                    bounded_tokens = self._resolve_max_tokens(prompt, attempt_tokens)
                    return self._generate_once(
                        prompt,
                        generation_options,
                        bounded_tokens,
                        stops,
                    )
                except LLMContextBudgetExceededError as err:
                    last_error = err
                    continue
                except Exception as err:
                    message = str(err)
                    if self._is_context_overflow_error(message):
                        last_error = LLMContextBudgetExceededError(message)
                        continue
                    if self._is_decode_error(message):
                        last_error = LLMDecodeError(message)
                        continue
                    raise LLMGenerationError(message) from err

            if isinstance(last_error, LLMGenerationError):
                raise last_error
            raise LLMGenerationError("llama.cpp generation failed after retry.")
