"""
Health Agent Package for safe health-question answering.

This package answers general health questions while refusing diagnosis,
prescription and treatment requests:
- Rule-based emergency detection ahead of every answer
- Generation through a local llama.cpp model
- Content safety validation with constrained regeneration and fallback
- Disclaimers and acknowledgment tracking

Main entry point:
    PipelineController.handle_turn: run one user turn

Core components:
    - core: Records, types, errors and structured logging
    - safety: Rule sets, matcher, emergency detector, content filter, disclaimers
    - services: Answer model, generation gateway, stores, analytics
    - pipelines: Turn state machine and per-session gate
    - config: Settings and service factory
"""

# Turn orchestration (primary public API)
from .pipelines import PipelineController, PipelineSettings

# Core records (for type hints and result handling)
from .core import (
    EmergencyCheck,
    SafetyValidation,
    TurnResult,
    TurnState,
)

# Configuration (for service initialization)
from .config import get_controller, get_services

__all__ = [
    # Pipeline
    "PipelineController",
    "PipelineSettings",
    # Records
    "EmergencyCheck",
    "SafetyValidation",
    "TurnResult",
    "TurnState",
    # Config
    "get_controller",
    "get_services",
]

__version__ = "1.0.0"
