"""Deterministic pattern matching of free text against a rule set."""
from __future__ import annotations

import re
from dataclasses import dataclass

from .rules import Rule, RuleSet
from .text_utils import normalize_text

NEGATION_TERMS: tuple[str, ...] = (
    "no",
    "not",
    "without",
    "denies",
    "deny",
    "never",
    "don't",
    "doesn't",
    "didn't",
    "isn't",
    "haven't",
    "hasn't",
)

_NEGATION_WINDOW_WORDS = 3
# A clause boundary between the negation and the match cancels the negation.
_NEGATION_RE = re.compile(
    rf"(?:^|\s)(?:{'|'.join(re.escape(term) for term in NEGATION_TERMS)})"
    rf"(?:\s+[^\s.!?,;:]+){{0,{_NEGATION_WINDOW_WORDS - 1}}}\s*$"
)


@dataclass(frozen=True)
class Match:
    rule: Rule
    span: tuple[int, int]
    matched_text: str

    @property
    def confidence(self) -> float:
        return self.rule.confidence


def _is_negated(normalized_text: str, match_start: int) -> bool:
    window_start = max(0, match_start - 48)
    context = normalized_text[window_start:match_start]
    return bool(_NEGATION_RE.search(context))


def match_normalized(normalized_text: str, rules: tuple[Rule, ...]) -> tuple[Match, ...]:
    """Match already-normalized text; spans index into ``normalized_text``."""
    if not normalized_text:
        return ()

    matches: list[Match] = []
    seen: set[tuple[str, int, int]] = set()
    for rule in rules:
        for found in rule.regex.finditer(normalized_text):
            start, end = found.span()
            if start == end:
                continue
            key = (rule.rule_id, start, end)
            if key in seen:
                continue
            if rule.negatable and _is_negated(normalized_text, start):
                continue
            seen.add(key)
            matches.append(Match(rule=rule, span=(start, end), matched_text=found.group(0)))
    return tuple(matches)


def match(text: str, rule_set: RuleSet) -> tuple[Match, ...]:
    """
    Classify ``text`` against every rule of ``rule_set``.

    Results behave as a set (one entry per rule and span) and are ordered by
    rule declaration order, then by span start. Pure and deterministic.
    """
    return match_normalized(normalize_text(text), rule_set.rules)
