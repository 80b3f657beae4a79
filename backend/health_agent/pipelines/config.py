"""Runtime settings for the turn pipeline."""
from __future__ import annotations

from dataclasses import dataclass

from ..core.env import get_bool_env, get_float_env, get_int_env, get_str_env

ENV_PREFIX = "HEALTH_AGENT_"


@dataclass(frozen=True)
class PipelineSettings:
    emergency_confidence_threshold: float = 0.7
    max_generation_attempts: int = 3
    attempt_timeout_s: float = 5.0
    turn_timeout_s: float = 10.0
    max_reading_grade: float = 12.0
    readability_min_words: int = 12
    medium_checks_to_block: int = 2
    max_query_chars: int = 2000
    supported_languages: tuple[str, ...] = ("en", "es")
    session_expiry_s: float = 1800.0
    session_sweep_interval_s: float = 60.0
    reject_concurrent_turns: bool = False
    upstream_max_retries: int = 3
    upstream_backoff_s: float = 0.25
    emergency_log_retries: int = 3
    analytics_backoff_s: float = 0.05
    analytics_max_requeues: int = 3
    emergency_rules_path: str | None = None
    content_rules_path: str | None = None
    topic_rules_path: str | None = None
    analytics_path: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.emergency_confidence_threshold < 1.0:
            raise ValueError("emergency_confidence_threshold must be within [0, 1)")
        if self.max_generation_attempts < 1:
            raise ValueError("max_generation_attempts must be at least 1")
        if self.attempt_timeout_s <= 0 or self.turn_timeout_s <= 0:
            raise ValueError("timeouts must be positive")
        if self.max_query_chars < 1:
            raise ValueError("max_query_chars must be positive")
        if not self.supported_languages:
            raise ValueError("supported_languages must not be empty")

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        languages_raw = get_str_env(f"{ENV_PREFIX}LANGUAGES", "en,es") or "en,es"
        languages = tuple(
            code.strip().lower() for code in languages_raw.split(",") if code.strip()
        )
        return cls(
            emergency_confidence_threshold=get_float_env(
                f"{ENV_PREFIX}EMERGENCY_THRESHOLD", 0.7, allow_zero=True
            ),
            max_generation_attempts=get_int_env(f"{ENV_PREFIX}MAX_ATTEMPTS", 3),
            attempt_timeout_s=get_float_env(f"{ENV_PREFIX}ATTEMPT_TIMEOUT_SECONDS", 5.0),
            turn_timeout_s=get_float_env(f"{ENV_PREFIX}TURN_TIMEOUT_SECONDS", 10.0),
            max_reading_grade=get_float_env(f"{ENV_PREFIX}MAX_READING_GRADE", 12.0),
            readability_min_words=get_int_env(f"{ENV_PREFIX}READABILITY_MIN_WORDS", 12),
            medium_checks_to_block=get_int_env(f"{ENV_PREFIX}MEDIUM_CHECKS_TO_BLOCK", 2),
            max_query_chars=get_int_env(f"{ENV_PREFIX}MAX_QUERY_CHARS", 2000),
            supported_languages=languages,
            session_expiry_s=get_float_env(f"{ENV_PREFIX}SESSION_EXPIRY_SECONDS", 1800.0),
            session_sweep_interval_s=get_float_env(
                f"{ENV_PREFIX}SESSION_SWEEP_SECONDS", 60.0, allow_zero=True
            ),
            reject_concurrent_turns=get_bool_env(f"{ENV_PREFIX}REJECT_CONCURRENT_TURNS", False),
            upstream_max_retries=get_int_env(f"{ENV_PREFIX}UPSTREAM_MAX_RETRIES", 3),
            upstream_backoff_s=get_float_env(
                f"{ENV_PREFIX}UPSTREAM_BACKOFF_SECONDS", 0.25, allow_zero=True
            ),
            emergency_log_retries=get_int_env(f"{ENV_PREFIX}EMERGENCY_LOG_RETRIES", 3),
            analytics_backoff_s=get_float_env(
                f"{ENV_PREFIX}ANALYTICS_BACKOFF_SECONDS", 0.05, allow_zero=True
            ),
            analytics_max_requeues=get_int_env(f"{ENV_PREFIX}ANALYTICS_MAX_REQUEUES", 3),
            emergency_rules_path=get_str_env(f"{ENV_PREFIX}EMERGENCY_RULES_PATH"),
            content_rules_path=get_str_env(f"{ENV_PREFIX}CONTENT_RULES_PATH"),
            topic_rules_path=get_str_env(f"{ENV_PREFIX}TOPIC_RULES_PATH"),
            analytics_path=get_str_env(f"{ENV_PREFIX}ANALYTICS_PATH"),
        )
