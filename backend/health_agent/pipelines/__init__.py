"""Turn pipeline orchestration."""
from .config import PipelineSettings
from .controller import TERMINAL_STATES, TRANSITIONS, PipelineController, TurnContext
from .session_gate import SessionTurnGate

__all__ = [
    "PipelineController",
    "PipelineSettings",
    "SessionTurnGate",
    "TurnContext",
    "TRANSITIONS",
    "TERMINAL_STATES",
]
