"""Per-turn orchestration: emergency gate, generate/validate loop, disclaimers."""
from __future__ import annotations

import asyncio
import time
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from ..core.errors import (
    GenerationFailedError,
    HealthAgentError,
    InputError,
    InternalTurnError,
    InvalidTransitionError,
    KnowledgeBaseUnavailableError,
    SessionCorruptedError,
    SessionExpiredError,
    SessionNotFoundError,
    UpstreamTimeoutError,
)
from ..core.logging_utils import (
    duration_to_ms,
    log_context,
    log_event,
    log_latency_event,
    pop_session_metrics_summary,
    set_turn_id,
    text_digest,
)
from ..core.models import (
    CandidateResponse,
    ConversationMessage,
    EmergencyCheck,
    EmergencyLog,
    KnowledgeFact,
    MessageMetadata,
    Query,
    QueryMetrics,
    SafetyLog,
    SafetyValidation,
    SafetyViolation,
    Session,
    TurnResult,
)
from ..core.types import DisclaimerType, Role, Severity, TurnState
from ..safety.constraints import merge_constraints
from ..safety.content_filter import ContentFilterPolicy, ContentSafetyFilter
from ..safety.disclaimers import DisclaimerManager
from ..safety.emergency import EmergencyDetector
from ..safety.fallback import detect_topic, fallback_response
from ..safety.rules import RuleSetRegistry
from ..services.analytics import AuditTrail
from ..services.generation import GenerationGateway
from ..services.knowledge import BaseKnowledgeBase
from ..services.stores import BaseSessionStore
from .config import PipelineSettings
from .session_gate import SessionTurnGate

TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.RECEIVED: frozenset({TurnState.EMERGENCY_CHECKED}),
    TurnState.EMERGENCY_CHECKED: frozenset({TurnState.EMERGENCY_RESPONSE, TurnState.GENERATING}),
    TurnState.GENERATING: frozenset({TurnState.VALIDATING, TurnState.FALLBACK}),
    TurnState.VALIDATING: frozenset(
        {TurnState.DISCLAIMED, TurnState.REGENERATING, TurnState.FALLBACK}
    ),
    TurnState.REGENERATING: frozenset({TurnState.VALIDATING, TurnState.FALLBACK}),
    TurnState.EMERGENCY_RESPONSE: frozenset(),
    TurnState.DISCLAIMED: frozenset(),
    TurnState.FALLBACK: frozenset(),
}

TERMINAL_STATES = frozenset(state for state, targets in TRANSITIONS.items() if not targets)

_STATE_HANDLERS: dict[TurnState, str] = {
    TurnState.RECEIVED: "_on_received",
    TurnState.EMERGENCY_CHECKED: "_on_emergency_checked",
    TurnState.GENERATING: "_on_generating",
    TurnState.VALIDATING: "_on_validating",
    TurnState.REGENERATING: "_on_regenerating",
}

_TERMINAL_HANDLERS: dict[TurnState, str] = {
    TurnState.EMERGENCY_RESPONSE: "_finish_emergency",
    TurnState.DISCLAIMED: "_finish_disclaimed",
    TurnState.FALLBACK: "_finish_fallback",
}

MEDICATION_TOPIC = "medication"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TurnContext:
    """Mutable per-turn scratch state. Discarded when the turn ends."""

    query: Query
    turn_id: int
    topic: str
    deadline: float
    state: TurnState = TurnState.RECEIVED
    trail: list[TurnState] = field(default_factory=lambda: [TurnState.RECEIVED])
    emergency: EmergencyCheck | None = None
    facts: tuple[KnowledgeFact, ...] = ()
    constraints: tuple[str, ...] = ()
    attempts: int = 0
    candidate: CandidateResponse | None = None
    validations: list[SafetyValidation] = field(default_factory=list)
    fallback_reason: str | None = None
    content: str = ""
    sources: tuple[str, ...] = ()

    @property
    def last_validation(self) -> SafetyValidation | None:
        return self.validations[-1] if self.validations else None

    def remaining_s(self) -> float:
        return self.deadline - time.perf_counter()

    def transition(self, target: TurnState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"illegal transition {self.state.value} -> {target.value}")
        log_event(
            component="pipeline_controller",
            event="state_transition",
            level="DEBUG",
            details={"from": self.state.value, "to": target.value, "attempts": self.attempts},
        )
        self.state = target
        self.trail.append(target)


def _violation_record(violation: SafetyViolation) -> dict[str, object]:
    return {
        "type": violation.type.value,
        "severity": violation.severity.value,
        "rule_id": violation.rule_id,
        "description": violation.description,
        "location": list(violation.location),
    }


class PipelineController:
    """
    Runs one user turn through the safety pipeline.

    Every turn ends in exactly one terminal state: EMERGENCY_RESPONSE,
    DISCLAIMED or FALLBACK. Turns for the same session are serialized by a
    SessionTurnGate; turns for different sessions run concurrently.
    """

    def __init__(
        self,
        *,
        registry: RuleSetRegistry,
        sessions: BaseSessionStore,
        disclaimers: DisclaimerManager,
        gateway: GenerationGateway,
        knowledge_base: BaseKnowledgeBase,
        audit: AuditTrail,
        settings: PipelineSettings | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.settings = settings or PipelineSettings()
        self.registry = registry
        self.sessions = sessions
        self.disclaimers = disclaimers
        self.gateway = gateway
        self.knowledge_base = knowledge_base
        self.audit = audit
        self.clock = clock
        self.detector = EmergencyDetector(
            registry,
            confidence_threshold=self.settings.emergency_confidence_threshold,
        )
        self.content_filter = ContentSafetyFilter(
            registry,
            ContentFilterPolicy(
                max_reading_grade=self.settings.max_reading_grade,
                readability_min_words=self.settings.readability_min_words,
                medium_checks_to_block=self.settings.medium_checks_to_block,
            ),
        )
        self.gate = SessionTurnGate(reject_when_busy=self.settings.reject_concurrent_turns)
        self._next_sweep_at: datetime | None = None

    # ---- sessions -------------------------------------------------------

    def _validate_language(self, language: str | None) -> str:
        normalized = (language or "en").strip().lower()
        if normalized not in self.settings.supported_languages:
            raise InputError(f"unsupported language {normalized!r}")
        return normalized

    def _validate_input(self, query_text: str | None, language: str | None) -> tuple[str, str]:
        if not isinstance(query_text, str) or not query_text.strip():
            raise InputError("query text is empty")
        text = query_text.strip()
        if len(text) > self.settings.max_query_chars:
            raise InputError(
                f"query is {len(text)} characters, the limit is {self.settings.max_query_chars}"
            )
        return text, self._validate_language(language)

    def _create_session(
        self,
        session_id: str,
        language: str,
        now: datetime,
        user_id: str | None = None,
    ) -> Session:
        subject = user_id or session_id
        session = self.sessions.create(
            session_id,
            now=now,
            language=language,
            user_id=user_id,
            disclaimer_acknowledged=self.disclaimers.has_acknowledged(
                subject, DisclaimerType.INITIAL
            ),
        )
        log_event(
            component="pipeline_controller",
            event="session_created",
            session_id=session_id,
            details={"language": language, "has_user_id": user_id is not None},
        )
        return session

    def open_session(
        self,
        session_id: str | None = None,
        *,
        user_id: str | None = None,
        language: str = "en",
    ) -> Session:
        resolved_language = self._validate_language(language)
        now = self.clock()
        self._sweep_stale_sessions(now)
        return self._create_session(session_id or uuid4().hex, resolved_language, now, user_id)

    def acknowledge(
        self,
        session_id: str,
        disclaimer_type: DisclaimerType | str = DisclaimerType.INITIAL,
    ) -> Session:
        try:
            resolved_type = DisclaimerType(disclaimer_type)
        except ValueError as err:
            raise InputError(f"unknown disclaimer type {disclaimer_type!r}") from err
        now = self.clock()
        try:
            session = self.sessions.get(session_id)
        except (SessionNotFoundError, SessionCorruptedError):
            session = self._create_session(session_id, "en", now)
        if not session.is_usable(now):
            session = self._create_session(session_id, session.language, now, session.user_id)

        self.disclaimers.record_acknowledgment(session.acknowledgment_subject, resolved_type)
        if resolved_type is DisclaimerType.INITIAL:
            session = self.sessions.mark_acknowledged(session_id)
        session = self.sessions.touch(session_id, now)
        log_event(
            component="pipeline_controller",
            event="disclaimer_acknowledged",
            session_id=session_id,
            details={"disclaimer_type": resolved_type.value},
        )
        return session

    def _load_session(self, session_id: str, language: str, now: datetime) -> Session:
        try:
            session = self.sessions.get(session_id)
        except SessionNotFoundError:
            return self._create_session(session_id, language, now)
        except SessionCorruptedError as err:
            log_event(
                component="pipeline_controller",
                event="session_corrupted_replaced",
                level="WARNING",
                details={"error": str(err)},
            )
            return self._create_session(session_id, language, now)

        if session.expired:
            log_event(
                component="pipeline_controller",
                event="expired_session_replaced",
                details={"previous_messages": len(session.messages)},
            )
            return self._create_session(session_id, language, now, session.user_id)
        if not session.is_usable(now):
            self._expire_session(session_id)
            log_event(
                component="pipeline_controller",
                event="session_expired",
                level="WARNING",
                details={"last_activity_at": session.last_activity_at.isoformat()},
            )
            raise SessionExpiredError(f"session {session_id} expired")
        return session

    def _release_session_metrics(self, session_id: str) -> None:
        metrics_summary = pop_session_metrics_summary(session_id)
        if metrics_summary["stages"]:
            log_event(
                component="pipeline_controller",
                event="session_metrics_summary",
                session_id=session_id,
                details=metrics_summary,
            )

    def _expire_session(self, session_id: str) -> None:
        self.sessions.expire(session_id)
        self._release_session_metrics(session_id)

    def _sweep_stale_sessions(self, now: datetime) -> None:
        """
        Forget abandoned sessions.

        A session stays in the store for one more expiry window after it
        lapses so its next turn can still be rejected as expired; after that
        it is evicted together with its latency metrics.
        """
        if self._next_sweep_at is not None and now < self._next_sweep_at:
            return
        self._next_sweep_at = now + timedelta(seconds=self.settings.session_sweep_interval_s)
        evicted = self.sessions.evict_stale(
            now, grace=timedelta(seconds=self.settings.session_expiry_s)
        )
        for session_id in evicted:
            self._release_session_metrics(session_id)
        if evicted:
            log_event(
                component="pipeline_controller",
                event="stale_sessions_evicted",
                details={"count": len(evicted)},
            )

    # ---- turn entry -----------------------------------------------------

    async def handle_turn(
        self,
        session_id: str,
        query_text: str,
        language: str = "en",
    ) -> TurnResult:
        with log_context(session_id):
            try:
                text, resolved_language = self._validate_input(query_text, language)
                async with self.gate.hold(session_id):
                    return await self._run_turn(session_id, text, resolved_language)
            except HealthAgentError as err:
                log_event(
                    component="pipeline_controller",
                    event="turn_rejected",
                    level="WARNING",
                    details={"code": err.code, "error": str(err)},
                )
                raise
            except Exception as err:
                log_event(
                    component="pipeline_controller",
                    event="turn_failed",
                    level="ERROR",
                    details={"error": str(err), "traceback": traceback.format_exc()},
                )
                raise InternalTurnError("turn failed unexpectedly") from err

    def _acknowledgment_required(self, session: Session, started_at: float) -> TurnResult:
        disclaimer = self.disclaimers.get_disclaimer(DisclaimerType.INITIAL, session.language)
        log_event(
            component="pipeline_controller",
            event="acknowledgment_required",
            level="WARNING",
        )
        return TurnResult(
            session_id=session.session_id,
            content=disclaimer.text,
            is_emergency=False,
            has_disclaimer=True,
            response_time_ms=duration_to_ms(time.perf_counter() - started_at),
            terminal_state=None,
            requires_acknowledgment=True,
        )

    async def _run_turn(self, session_id: str, text: str, language: str) -> TurnResult:
        started_at = time.perf_counter()
        now = self.clock()
        self._sweep_stale_sessions(now)
        session = self._load_session(session_id, language, now)

        if not (
            session.disclaimer_acknowledged
            or self.disclaimers.has_acknowledged(
                session.acknowledgment_subject, DisclaimerType.INITIAL
            )
        ):
            return self._acknowledgment_required(session, started_at)

        turn_id = sum(1 for message in session.messages if message.role is Role.USER) + 1
        set_turn_id(turn_id)
        query = Query(text=text, language=language, session_id=session_id, history=session.messages)
        ctx = TurnContext(
            query=query,
            turn_id=turn_id,
            topic=detect_topic(text, self.registry),
            deadline=started_at + self.settings.turn_timeout_s,
        )
        log_event(
            component="pipeline_controller",
            event="turn_started",
            details={
                "query_chars": len(text),
                "query_sha256_12": text_digest(text),
                "language": language,
                "topic": ctx.topic,
                "history_messages": len(session.messages),
            },
        )

        await self._run_state_machine(ctx)

        elapsed_s = time.perf_counter() - started_at
        response_time_ms = duration_to_ms(elapsed_s)
        finished_at = max(self.clock(), now)
        is_emergency = ctx.state is TurnState.EMERGENCY_RESPONSE

        self.sessions.append(
            session_id,
            ConversationMessage(
                message_id=uuid4().hex,
                role=Role.USER,
                content=text,
                timestamp=now,
                language=language,
            ),
        )
        self.sessions.append(
            session_id,
            ConversationMessage(
                message_id=uuid4().hex,
                role=Role.ASSISTANT,
                content=ctx.content,
                timestamp=finished_at,
                language=language,
                metadata=MessageMetadata(
                    has_disclaimer=True,
                    is_emergency=is_emergency,
                    safety_checked=not is_emergency,
                    response_time_ms=response_time_ms,
                ),
            ),
        )

        self.audit.submit(
            QueryMetrics(
                session_id=session_id,
                timestamp=finished_at,
                terminal_state=ctx.state,
                attempts=ctx.attempts,
                response_time_ms=response_time_ms,
                language=language,
            )
        )
        log_latency_event(
            component="pipeline_controller",
            event="turn_latency",
            stage="turn",
            duration_s=elapsed_s,
            status=ctx.state.value,
            details={"attempts": ctx.attempts, "trail": [state.value for state in ctx.trail]},
        )
        # The window lapsed during the turn: deliver it, then close the session.
        if finished_at >= session.expires_at:
            log_event(
                component="pipeline_controller",
                event="session_expired_mid_turn",
                level="WARNING",
            )
            self._expire_session(session_id)
        return TurnResult(
            session_id=session_id,
            content=ctx.content,
            is_emergency=is_emergency,
            has_disclaimer=True,
            response_time_ms=response_time_ms,
            terminal_state=ctx.state,
            sources=ctx.sources,
            attempts=ctx.attempts,
        )

    async def _run_state_machine(self, ctx: TurnContext) -> None:
        while ctx.state not in TERMINAL_STATES:
            handler = getattr(self, _STATE_HANDLERS[ctx.state])
            ctx.transition(await handler(ctx))
        finisher = getattr(self, _TERMINAL_HANDLERS[ctx.state])
        await finisher(ctx)

    # ---- non-terminal states --------------------------------------------

    async def _on_received(self, ctx: TurnContext) -> TurnState:
        started_at = time.perf_counter()
        ctx.emergency = self.detector.check(ctx.query)
        log_latency_event(
            component="pipeline_controller",
            event="emergency_check_latency",
            stage="emergency_check",
            duration_s=time.perf_counter() - started_at,
            status="emergency" if ctx.emergency.is_emergency else "clear",
            details={
                "indicators": [indicator.rule_id for indicator in ctx.emergency.indicators],
                "urgency": ctx.emergency.urgency_level,
                "category": ctx.emergency.category,
            },
        )
        return TurnState.EMERGENCY_CHECKED

    async def _on_emergency_checked(self, ctx: TurnContext) -> TurnState:
        emergency = ctx.emergency
        if emergency is not None and emergency.is_emergency:
            await self.audit.write_emergency_log(
                EmergencyLog(
                    session_id=ctx.query.session_id,
                    timestamp=self.clock(),
                    urgency_level=emergency.urgency_level,
                    category=emergency.category,
                    indicators=tuple(asdict(indicator) for indicator in emergency.indicators),
                )
            )
            return TurnState.EMERGENCY_RESPONSE

        ctx.facts = self._lookup_facts(ctx)
        return TurnState.GENERATING

    def _lookup_facts(self, ctx: TurnContext) -> tuple[KnowledgeFact, ...]:
        try:
            return tuple(self.knowledge_base.lookup(ctx.topic, ctx.query.language))
        except KnowledgeBaseUnavailableError as err:
            log_event(
                component="pipeline_controller",
                event="knowledge_base_unavailable",
                level="WARNING",
                details={"topic": ctx.topic, "error": str(err)},
            )
            return ()

    async def _attempt_generation(self, ctx: TurnContext) -> TurnState:
        remaining = ctx.remaining_s()
        if remaining <= 0:
            ctx.fallback_reason = "turn_timeout"
            return TurnState.FALLBACK

        ctx.attempts += 1
        ctx.candidate = None
        try:
            ctx.candidate = await asyncio.wait_for(
                self.gateway.generate(
                    ctx.query,
                    attempt=ctx.attempts,
                    timeout_s=min(self.settings.attempt_timeout_s, remaining),
                    constraints=ctx.constraints,
                    facts=ctx.facts,
                ),
                timeout=remaining,
            )
        except (UpstreamTimeoutError, GenerationFailedError, asyncio.TimeoutError) as err:
            log_event(
                component="pipeline_controller",
                event="generation_attempt_failed",
                level="WARNING",
                details={
                    "attempt": ctx.attempts,
                    "error_type": type(err).__name__,
                    "error": str(err),
                },
            )
        return TurnState.VALIDATING

    async def _on_generating(self, ctx: TurnContext) -> TurnState:
        return await self._attempt_generation(ctx)

    async def _on_regenerating(self, ctx: TurnContext) -> TurnState:
        validation = ctx.last_validation
        if validation is not None and not validation.is_valid:
            ctx.constraints = merge_constraints(ctx.constraints, validation.suggested_fixes)
        return await self._attempt_generation(ctx)

    def _after_failed_attempt(self, ctx: TurnContext) -> TurnState:
        if ctx.remaining_s() <= 0:
            ctx.fallback_reason = "turn_timeout"
            return TurnState.FALLBACK
        if ctx.attempts >= self.settings.max_generation_attempts:
            ctx.fallback_reason = "attempts_exhausted"
            return TurnState.FALLBACK
        return TurnState.REGENERATING

    async def _on_validating(self, ctx: TurnContext) -> TurnState:
        if ctx.remaining_s() <= 0:
            ctx.fallback_reason = "turn_timeout"
            return TurnState.FALLBACK
        if ctx.candidate is None:
            return self._after_failed_attempt(ctx)

        started_at = time.perf_counter()
        validation = self.content_filter.validate(ctx.candidate.text, ctx.query.text)
        ctx.validations.append(validation)
        log_latency_event(
            component="pipeline_controller",
            event="validation_latency",
            stage="validation",
            duration_s=time.perf_counter() - started_at,
            status="valid" if validation.is_valid else "invalid",
            details={
                "attempt": ctx.attempts,
                "violations": [v.rule_id or v.type.value for v in validation.violations],
                "readability_grade": validation.readability_grade,
            },
        )
        if validation.is_valid:
            return TurnState.DISCLAIMED

        severity = validation.max_severity or Severity.MEDIUM
        self.audit.submit(
            SafetyLog(
                session_id=ctx.query.session_id,
                timestamp=self.clock(),
                action="blocked",
                severity=severity,
                violations=tuple(_violation_record(v) for v in validation.violations),
                attempt=ctx.attempts,
            )
        )
        if validation.is_critical:
            log_event(
                component="pipeline_controller",
                event="critical_violation_blocked",
                level="ERROR",
                details={
                    "attempt": ctx.attempts,
                    "rules": [
                        v.rule_id for v in validation.violations if v.severity is Severity.CRITICAL
                    ],
                },
            )
            ctx.fallback_reason = "critical_violation"
            return TurnState.FALLBACK
        return self._after_failed_attempt(ctx)

    # ---- terminal states ------------------------------------------------

    def _with_disclaimers(self, text: str, ctx: TurnContext) -> str:
        language = ctx.query.language
        content = self.disclaimers.inject_inline(
            text, self.disclaimers.get_disclaimer(DisclaimerType.INLINE, language)
        )
        if ctx.topic == MEDICATION_TOPIC:
            content = self.disclaimers.inject_inline(
                content, self.disclaimers.get_disclaimer(DisclaimerType.MEDICATION, language)
            )
        return content

    async def _finish_emergency(self, ctx: TurnContext) -> None:
        emergency = ctx.emergency
        assert emergency is not None
        disclaimer = self.disclaimers.get_disclaimer(
            DisclaimerType.EMERGENCY,
            ctx.query.language,
            {"category": emergency.category},
        )
        ctx.content = f"{disclaimer.text}\n\n{emergency.recommended_action}"
        log_event(
            component="pipeline_controller",
            event="emergency_response_delivered",
            level="WARNING",
            details={"urgency": emergency.urgency_level, "category": emergency.category},
        )

    async def _finish_disclaimed(self, ctx: TurnContext) -> None:
        assert ctx.candidate is not None
        ctx.content = self._with_disclaimers(ctx.candidate.text, ctx)
        ctx.sources = tuple(dict.fromkeys(fact.source for fact in ctx.facts))
        log_event(
            component="pipeline_controller",
            event="turn_completed",
            details={"terminal_state": ctx.state.value, "attempts": ctx.attempts},
        )

    async def _finish_fallback(self, ctx: TurnContext) -> None:
        ctx.content = self._with_disclaimers(
            fallback_response(ctx.topic, ctx.query.language), ctx
        )
        last = ctx.last_validation
        severities = [v.max_severity for v in ctx.validations if v.max_severity is not None]
        severity = max([Severity.MEDIUM, *severities], key=lambda item: item.rank)
        self.audit.submit(
            SafetyLog(
                session_id=ctx.query.session_id,
                timestamp=self.clock(),
                action="modified",
                severity=severity,
                violations=tuple(_violation_record(v) for v in (last.violations if last else ())),
                attempt=ctx.attempts,
                reason=ctx.fallback_reason,
            )
        )
        log_event(
            component="pipeline_controller",
            event="fallback_delivered",
            level="ERROR" if severity is Severity.CRITICAL else "WARNING",
            details={
                "reason": ctx.fallback_reason,
                "attempts": ctx.attempts,
                "topic": ctx.topic,
                "severity": severity.value,
            },
        )

    async def close(self) -> None:
        await self.audit.close()


def _check_handler_coverage() -> None:
    if set(TRANSITIONS) != set(TurnState):
        raise RuntimeError("transition table does not cover every turn state")
    if set(_STATE_HANDLERS) != set(TurnState) - TERMINAL_STATES:
        raise RuntimeError("every non-terminal turn state needs exactly one handler")
    if set(_TERMINAL_HANDLERS) != TERMINAL_STATES:
        raise RuntimeError("every terminal turn state needs exactly one finisher")
    for name in (*_STATE_HANDLERS.values(), *_TERMINAL_HANDLERS.values()):
        if not callable(getattr(PipelineController, name, None)):
            raise RuntimeError(f"PipelineController is missing handler {name}")


_check_handler_coverage()