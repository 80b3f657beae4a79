"""Pipeline collaborators (answer model, stores, knowledge base, analytics)."""
from .analytics import AuditTrail, BaseAnalyticsSink, InMemoryAnalyticsSink, JsonlAnalyticsSink
from .generation import GenerationGateway
from .knowledge import BaseKnowledgeBase, InMemoryKnowledgeBase
from .llm import (
    BaseLLMModel,
    GenerationOptions,
    LLMContextBudgetExceededError,
    LLMDecodeError,
    LLMGenerationError,
    LlamaCppService,
)
from .stores import (
    BaseAcknowledgmentStore,
    BaseSessionStore,
    InMemoryAcknowledgmentStore,
    InMemorySessionStore,
)

__all__ = [
    # Answer model
    "BaseLLMModel",
    "GenerationOptions",
    "LLMGenerationError",
    "LLMContextBudgetExceededError",
    "LLMDecodeError",
    "LlamaCppService",
    "GenerationGateway",
    # Stores
    "BaseSessionStore",
    "InMemorySessionStore",
    "BaseAcknowledgmentStore",
    "InMemoryAcknowledgmentStore",
    # Knowledge and analytics
    "BaseKnowledgeBase",
    "InMemoryKnowledgeBase",
    "BaseAnalyticsSink",
    "InMemoryAnalyticsSink",
    "JsonlAnalyticsSink",
    "AuditTrail",
]
