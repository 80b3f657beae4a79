"""Translate safety violations into negative constraints for regeneration."""
from __future__ import annotations

from typing import Iterable, Sequence

from ..core.models import SafetyViolation
from ..core.types import ViolationType

_CONSTRAINT_TEMPLATES: dict[ViolationType, str] = {
    ViolationType.DIAGNOSIS: (
        "Do not use diagnostic framing for {topic}: never tell the user which condition they "
        "have; describe general information instead."
    ),
    ViolationType.PRESCRIPTION: (
        "Do not name doses, schedules or specific medicines to take for {topic}; suggest asking "
        "a pharmacist or clinician instead."
    ),
    ViolationType.TREATMENT: (
        "Do not direct the user to start, stop or change any treatment for {topic}."
    ),
    ViolationType.BIAS: (
        "Do not use stigmatizing or generalizing language about the user or any group."
    ),
    ViolationType.READABILITY: (
        "Use short sentences and everyday words that a general reader can follow."
    ),
}


def constraints_for_violations(
    violations: Iterable[SafetyViolation],
    topic_label: str,
) -> tuple[str, ...]:
    """Build ordered, de-duplicated constraints for one validation result."""
    constraints: list[str] = []
    for violation in violations:
        constraints.append(_CONSTRAINT_TEMPLATES[violation.type].format(topic=topic_label))
        if violation.matched_text and violation.type is not ViolationType.READABILITY:
            constraints.append(f'Do not use wording like "{violation.matched_text.strip()}".')
    return merge_constraints((), constraints)


def merge_constraints(existing: Sequence[str], additional: Iterable[str]) -> tuple[str, ...]:
    """Append new constraints after existing ones, keeping first occurrences only."""
    merged = list(existing)
    seen = set(merged)
    for constraint in additional:
        if constraint in seen:
            continue
        seen.add(constraint)
        merged.append(constraint)
    return tuple(merged)
