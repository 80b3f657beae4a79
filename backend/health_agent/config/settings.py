"""Configuration and service factory for the health agent."""
import os
import threading
from datetime import timedelta
from typing import Any, Dict

from ..core.logging_utils import log_event
from ..pipelines import PipelineController, PipelineSettings
from ..safety import DEFAULT_RULE_SETS, DisclaimerManager, RuleSetRegistry
from ..safety.rules import RuleSet, load_rule_set, load_rule_set_file
from ..services.analytics import (
    AuditTrail,
    BaseAnalyticsSink,
    InMemoryAnalyticsSink,
    JsonlAnalyticsSink,
)
from ..services.generation import GenerationGateway
from ..services.knowledge import InMemoryKnowledgeBase
from ..services.llm import BaseLLMModel, LlamaCppConfig, LlamaCppService
from ..services.stores import InMemoryAcknowledgmentStore, InMemorySessionStore


# Singleton service instances
_services: Dict[str, Any] = None
_SUPPORTED_LLM_VALUES = ("llamacpp",)


def _build_llm(service_name: str) -> BaseLLMModel:
    normalized = service_name.strip().lower()
    if normalized in _SUPPORTED_LLM_VALUES:
        log_event(component="services", event="llm_selected", details={"service": normalized})
        return LlamaCppService()
    supported = ", ".join(_SUPPORTED_LLM_VALUES)
    raise ValueError(
        f"Unsupported LLM service '{service_name}'. Supported values: {supported}."
    )


def build_rule_registry(settings: PipelineSettings) -> RuleSetRegistry:
    """Compile the built-in rule sets, replacing any that have a configured JSON override."""
    overrides = {
        "emergency": settings.emergency_rules_path,
        "content": settings.content_rules_path,
        "topics": settings.topic_rules_path,
    }
    rule_sets: list[RuleSet] = []
    for data in DEFAULT_RULE_SETS:
        path = overrides.get(data["name"])
        rule_set = load_rule_set_file(path) if path else load_rule_set(data)
        if rule_set.name != data["name"]:
            raise ValueError(
                f"rule set file {path} defines {rule_set.name!r}, expected {data['name']!r}"
            )
        rule_sets.append(rule_set)

    registry = RuleSetRegistry(tuple(rule_sets))
    log_event(
        component="services",
        event="rule_sets_loaded",
        details={"versions": registry.versions()},
    )
    return registry


def build_services(
    settings: PipelineSettings,
    llm: BaseLLMModel,
    llm_lock: Any | None = None,
) -> Dict[str, Any]:
    """Wire every pipeline collaborator around an already-constructed answer model."""
    registry = build_rule_registry(settings)
    sessions = InMemorySessionStore(expiry_window=timedelta(seconds=settings.session_expiry_s))
    acknowledgments = InMemoryAcknowledgmentStore()
    disclaimers = DisclaimerManager(acknowledgments)
    analytics: BaseAnalyticsSink = (
        JsonlAnalyticsSink(settings.analytics_path)
        if settings.analytics_path
        else InMemoryAnalyticsSink()
    )
    audit = AuditTrail(
        analytics,
        emergency_retries=settings.emergency_log_retries,
        retry_backoff_s=settings.analytics_backoff_s,
        max_requeues=settings.analytics_max_requeues,
    )
    knowledge_base = InMemoryKnowledgeBase()
    # Size the prompt budget from the loaded model when it exposes its context settings.
    llm_config = getattr(llm, "config", None)
    budget: Dict[str, int] = {}
    if isinstance(llm_config, LlamaCppConfig):
        budget = {
            "n_ctx": llm_config.n_ctx,
            "max_new_tokens": llm_config.max_new_tokens,
            "context_margin": llm_config.context_margin,
        }
    gateway = GenerationGateway(
        llm,
        llm_lock=llm_lock,
        max_retries=settings.upstream_max_retries,
        retry_backoff_s=settings.upstream_backoff_s,
        **budget,
    )
    controller = PipelineController(
        registry=registry,
        sessions=sessions,
        disclaimers=disclaimers,
        gateway=gateway,
        knowledge_base=knowledge_base,
        audit=audit,
        settings=settings,
    )
    return {
        "settings": settings,
        "registry": registry,
        "sessions": sessions,
        "acknowledgments": acknowledgments,
        "disclaimers": disclaimers,
        "analytics": analytics,
        "audit": audit,
        "knowledge_base": knowledge_base,
        "llm": llm,
        "llm_lock": llm_lock,
        "gateway": gateway,
        "controller": controller,
    }


def get_services() -> Dict[str, Any]:
    """
    Factory function to get or initialize service instances.

    Returns a dictionary with the pipeline settings, the rule registry, the
    stores, the analytics sink and audit trail, the knowledge base, the
    answer model ('llm') and the 'controller' that ties them together.
    """
    global _services
    if _services is None:
        settings = PipelineSettings.from_env()
        llm = _build_llm(os.environ.get("LLM_SERVICE", "llamacpp"))
        _services = build_services(settings, llm, llm_lock=threading.RLock())
    return _services


def get_controller() -> PipelineController:
    """Get the pipeline controller instance."""
    return get_services()["controller"]


def get_llm_service() -> BaseLLMModel:
    """Get the LLM service instance."""
    return get_services()["llm"]
