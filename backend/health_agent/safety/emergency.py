"""Rule-based emergency detection that gates every turn."""
from __future__ import annotations

from ..core.models import EmergencyCheck, EmergencyIndicator, Query
from ..core.types import UrgencyLevel
from .matcher import match
from .rules import RuleSetRegistry

EMERGENCY_RULE_SET = "emergency"

RECOMMENDED_ACTIONS: dict[UrgencyLevel, str] = {
    UrgencyLevel.IMMEDIATE: (
        "Call your local emergency number now, or have someone take you to the nearest "
        "emergency department. Do not wait to see if symptoms improve."
    ),
    UrgencyLevel.URGENT: (
        "Get medical care within the next few hours: contact an urgent care clinic, your "
        "doctor's out-of-hours line, or an emergency department if symptoms get worse."
    ),
    UrgencyLevel.SOON: (
        "Contact a doctor or nurse within the next day. If symptoms get worse, seek care sooner."
    ),
}


class EmergencyDetector:
    """Classify a query against the active emergency rule set.

    The check is a pure in-process scan (no model calls), so it can run ahead
    of generation on every turn.
    """

    def __init__(self, registry: RuleSetRegistry, confidence_threshold: float = 0.7) -> None:
        if not 0.0 <= confidence_threshold < 1.0:
            raise ValueError("confidence_threshold must be within [0, 1)")
        self._registry = registry
        self.confidence_threshold = confidence_threshold

    def check(self, query: Query) -> EmergencyCheck:
        rule_set = self._registry.get(EMERGENCY_RULE_SET)
        declaration_order = {rule.rule_id: index for index, rule in enumerate(rule_set.rules)}

        qualifying = [
            found for found in match(query.text, rule_set)
            if found.confidence > self.confidence_threshold
        ]
        if not qualifying:
            return EmergencyCheck(is_emergency=False)

        # One indicator per rule, highest urgency first, then declaration order.
        indicators: list[EmergencyIndicator] = []
        seen_rules: set[str] = set()
        for found in qualifying:
            if found.rule.rule_id in seen_rules:
                continue
            seen_rules.add(found.rule.rule_id)
            indicators.append(
                EmergencyIndicator(
                    keyword=found.matched_text,
                    category=found.rule.category,
                    confidence=found.confidence,
                    urgency=UrgencyLevel(found.rule.level),
                    rule_id=found.rule.rule_id,
                )
            )
        indicators.sort(key=lambda item: (-item.urgency.rank, declaration_order[item.rule_id]))

        top = indicators[0]
        return EmergencyCheck(
            is_emergency=True,
            indicators=tuple(indicators),
            urgency_level=top.urgency,
            category=top.category,
            recommended_action=RECOMMENDED_ACTIONS[top.urgency],
        )
