"""Configuration module for the health agent."""
from .settings import (
    build_rule_registry,
    build_services,
    get_controller,
    get_llm_service,
    get_services,
)

__all__ = [
    "build_rule_registry",
    "build_services",
    "get_controller",
    "get_llm_service",
    "get_services",
]
