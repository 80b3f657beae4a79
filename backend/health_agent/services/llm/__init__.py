"""Language Model service module."""
from .base import (
    BaseLLMModel,
    GenerationOptions,
    LLMContextBudgetExceededError,
    LLMDecodeError,
    LLMGenerationError,
    apply_stop_sequences,
)
from .llamacpp import LlamaCppConfig, LlamaCppService

__all__ = [
    "BaseLLMModel",
    "GenerationOptions",
    "LLMGenerationError",
    "LLMContextBudgetExceededError",
    "LLMDecodeError",
    "LlamaCppConfig",
    "LlamaCppService",
    "apply_stop_sequences",
]
