from typing import Any

from fastapi import APIRouter, Depends
from health_agent.config import get_services
from health_agent.core import (
    AcknowledgeRequest,
    DisclaimerResponse,
    DisclaimerType,
    HealthAgentError,
    Session,
    SessionCreateRequest,
    SessionEnvelopeResponse,
    StatusResponse,
    TurnRequest,
    TurnResponse,
    TurnResult,
)
from health_agent.core.error_mapping import build_turn_error_payload
from health_agent.pipelines import PipelineController

router = APIRouter()


def get_ai_services():
    return get_services()


def get_pipeline(services: dict = Depends(get_ai_services)) -> PipelineController:
    return services["controller"]


def _session_payload(controller: PipelineController, session: Session) -> dict[str, Any]:
    initial = None
    if not session.disclaimer_acknowledged:
        initial = controller.disclaimers.get_disclaimer(
            DisclaimerType.INITIAL, session.language
        ).text
    return {
        "session_id": session.session_id,
        "language": session.language,
        "disclaimer_acknowledged": session.disclaimer_acknowledged,
        "expires_at": session.expires_at.isoformat(),
        "initial_disclaimer": initial,
    }


def _turn_payload(result: TurnResult) -> dict[str, Any]:
    return {
        "session_id": result.session_id,
        "content": result.content,
        "is_emergency": result.is_emergency,
        "has_disclaimer": result.has_disclaimer,
        "sources": list(result.sources),
        "response_time_ms": result.response_time_ms,
        "terminal_state": result.terminal_state.value if result.terminal_state else None,
        "requires_acknowledgment": result.requires_acknowledgment,
        "attempts": result.attempts,
    }


@router.get("/", response_model=StatusResponse)
def read_root(services: dict = Depends(get_ai_services)):
    return {
        "status": "online",
        "system": "CareKeep",
        "rule_sets": services["registry"].versions(),
    }


@router.post("/sessions", response_model=SessionEnvelopeResponse)
def create_session(
    request: SessionCreateRequest,
    controller: PipelineController = Depends(get_pipeline),
):
    try:
        session = controller.open_session(user_id=request.user_id, language=request.language)
    except HealthAgentError as err:
        return {"success": False, "data": None, "error": build_turn_error_payload(err)}
    return {"success": True, "data": _session_payload(controller, session), "error": None}


@router.post("/sessions/{session_id}/acknowledge", response_model=SessionEnvelopeResponse)
def acknowledge_disclaimer(
    session_id: str,
    request: AcknowledgeRequest,
    controller: PipelineController = Depends(get_pipeline),
):
    try:
        session = controller.acknowledge(session_id, request.disclaimer_type)
    except HealthAgentError as err:
        return {"success": False, "data": None, "error": build_turn_error_payload(err)}
    return {"success": True, "data": _session_payload(controller, session), "error": None}


@router.get("/disclaimers/{disclaimer_type}", response_model=DisclaimerResponse)
def read_disclaimer(
    disclaimer_type: DisclaimerType,
    language: str = "en",
    controller: PipelineController = Depends(get_pipeline),
):
    disclaimer = controller.disclaimers.get_disclaimer(disclaimer_type, language)
    return {
        "type": disclaimer.type.value,
        "language": disclaimer.language,
        "text": disclaimer.text,
        "requires_acknowledgment": disclaimer.requires_acknowledgment,
        "priority": disclaimer.priority,
    }


@router.post("/turn", response_model=TurnResponse)
async def run_turn(
    request: TurnRequest,
    controller: PipelineController = Depends(get_pipeline),
):
    try:
        result = await controller.handle_turn(request.session_id, request.query, request.language)
    except HealthAgentError as err:
        return {"success": False, "data": {}, "error": build_turn_error_payload(err)}
    return {"success": True, "data": _turn_payload(result), "error": None}
