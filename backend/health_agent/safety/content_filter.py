"""Safety validation of candidate responses before delivery."""
from __future__ import annotations

from dataclasses import dataclass

from ..core.models import SafetyValidation, SafetyViolation
from ..core.types import Severity, ViolationType
from .constraints import constraints_for_violations
from .fallback import detect_topic, topic_label
from .matcher import match_normalized
from .readability import flesch_kincaid_grade
from .rules import RuleSetRegistry
from .text_utils import NormalizedText, normalize_with_offsets, words

CONTENT_RULE_SET = "content"

CONTENT_CHECKS: tuple[ViolationType, ...] = (
    ViolationType.DIAGNOSIS,
    ViolationType.PRESCRIPTION,
    ViolationType.TREATMENT,
    ViolationType.BIAS,
)


@dataclass(frozen=True)
class ContentFilterPolicy:
    max_reading_grade: float = 12.0
    readability_min_words: int = 12
    medium_checks_to_block: int = 2


class ContentSafetyFilter:
    """
    Judge a candidate response against diagnosis, prescription, treatment and
    bias rules plus a readability ceiling.

    The filter only reports; it never rewrites the candidate.
    """

    def __init__(
        self,
        registry: RuleSetRegistry,
        policy: ContentFilterPolicy | None = None,
    ) -> None:
        self._registry = registry
        self.policy = policy or ContentFilterPolicy()

    def _run_check(self, normalized: NormalizedText, check: ViolationType, rules) -> list[SafetyViolation]:
        violations: list[SafetyViolation] = []
        for found in match_normalized(normalized.text, rules):
            violations.append(
                SafetyViolation(
                    type=check,
                    severity=Severity(found.rule.level),
                    description=found.rule.description,
                    # Locations index the candidate as delivered, not its normalized form.
                    location=normalized.source_span(found.span),
                    matched_text=found.matched_text,
                    rule_id=found.rule.rule_id,
                    confidence=found.confidence,
                )
            )
        return violations

    def _readability_violation(self, candidate_text: str) -> tuple[float | None, SafetyViolation | None]:
        if len(words(candidate_text)) < self.policy.readability_min_words:
            return None, None
        grade = flesch_kincaid_grade(candidate_text)
        if grade <= self.policy.max_reading_grade:
            return grade, None
        return grade, SafetyViolation(
            type=ViolationType.READABILITY,
            severity=Severity.MEDIUM,
            description=(
                f"Reading grade {grade:.1f} exceeds the maximum of "
                f"{self.policy.max_reading_grade:.1f}"
            ),
            location=(0, len(candidate_text)),
        )

    def validate(self, candidate_text: str, original_query: str) -> SafetyValidation:
        rule_set = self._registry.get(CONTENT_RULE_SET)
        normalized = normalize_with_offsets(candidate_text)

        violations: list[SafetyViolation] = []
        for check in CONTENT_CHECKS:
            violations.extend(
                self._run_check(normalized, check, rule_set.for_category(check.value))
            )

        grade, readability_violation = self._readability_violation(candidate_text)

        blocking: list[SafetyViolation] = [
            v for v in violations if v.severity.rank >= Severity.HIGH.rank
        ]
        medium_checks = {v.type for v in violations if v.severity is Severity.MEDIUM}
        if len(medium_checks) >= self.policy.medium_checks_to_block:
            blocking.extend(v for v in violations if v.severity is Severity.MEDIUM)
        if readability_violation is not None:
            violations.append(readability_violation)
            blocking.append(readability_violation)

        is_valid = not blocking
        if is_valid:
            advisory = max((v.confidence for v in violations), default=0.0)
            confidence = round(1.0 - advisory / 2, 3)
        else:
            confidence = max(v.confidence for v in blocking)

        topic = detect_topic(original_query, self._registry)
        return SafetyValidation(
            is_valid=is_valid,
            violations=tuple(violations),
            confidence=confidence,
            suggested_fixes=constraints_for_violations(blocking, topic_label(topic)),
            readability_grade=grade,
        )
