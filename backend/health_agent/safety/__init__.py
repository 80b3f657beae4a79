"""Rule-driven safety checks: emergency detection, content filtering, disclaimers."""
from .content_filter import ContentFilterPolicy, ContentSafetyFilter
from .disclaimers import DisclaimerManager, get_disclaimer, inject_inline
from .emergency import EmergencyDetector
from .fallback import detect_topic, fallback_response
from .matcher import Match, match
from .rule_data import DEFAULT_RULE_SETS
from .rules import Rule, RuleSet, RuleSetRegistry, load_rule_set, load_rule_set_file

__all__ = [
    "ContentFilterPolicy",
    "ContentSafetyFilter",
    "DisclaimerManager",
    "get_disclaimer",
    "inject_inline",
    "EmergencyDetector",
    "detect_topic",
    "fallback_response",
    "Match",
    "match",
    "DEFAULT_RULE_SETS",
    "Rule",
    "RuleSet",
    "RuleSetRegistry",
    "load_rule_set",
    "load_rule_set_file",
]
