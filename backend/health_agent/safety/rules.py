"""Versioned, immutable rule sets and the registry that swaps them."""
from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from ..core.errors import RuleSetError
from .text_utils import normalize_text

RULE_KINDS = ("keyword", "phrase", "pattern")


@dataclass(frozen=True)
class Rule:
    """One keyword, phrase or pattern with its classification."""

    rule_id: str
    kind: str
    value: str
    category: str
    level: str
    confidence: float
    description: str
    negatable: bool
    regex: re.Pattern[str]


@dataclass(frozen=True)
class RuleSet:
    name: str
    version: str
    rules: tuple[Rule, ...]
    allowed_levels: tuple[str, ...]

    @property
    def label(self) -> str:
        return f"{self.name}@{self.version}"

    def for_category(self, category: str) -> tuple[Rule, ...]:
        return tuple(rule for rule in self.rules if rule.category == category)


def _compile_rule_regex(kind: str, value: str) -> re.Pattern[str]:
    if kind == "keyword":
        if len(value.split()) != 1:
            raise RuleSetError(f"keyword rule must be a single token: {value!r}")
        return re.compile(rf"(?<!\w){re.escape(value)}(?!\w)")
    if kind == "phrase":
        token_pattern = r"\s+".join(re.escape(token) for token in value.split())
        return re.compile(rf"(?<!\w){token_pattern}(?!\w)")
    try:
        return re.compile(value)
    except re.error as err:
        raise RuleSetError(f"invalid pattern {value!r}: {err}") from err


def _build_rule(raw: Mapping[str, Any], allowed_levels: tuple[str, ...], index: int) -> Rule:
    rule_id = str(raw.get("id", "")).strip()
    if not rule_id:
        raise RuleSetError(f"rule #{index} has no id")

    kind = str(raw.get("kind", "")).strip().lower()
    if kind not in RULE_KINDS:
        raise RuleSetError(f"rule {rule_id!r} has unsupported kind {kind!r}")

    value = str(raw.get("value", "")).strip()
    if not value:
        raise RuleSetError(f"rule {rule_id!r} has an empty value")
    if kind != "pattern":
        value = normalize_text(value)

    category = str(raw.get("category", "")).strip()
    if not category:
        raise RuleSetError(f"rule {rule_id!r} has no category")

    level = str(raw.get("level", "")).strip().lower()
    if level not in allowed_levels:
        raise RuleSetError(
            f"rule {rule_id!r} level {level!r} not in {', '.join(allowed_levels)}"
        )

    try:
        confidence = float(raw.get("confidence", 0.9))
    except (TypeError, ValueError) as err:
        raise RuleSetError(f"rule {rule_id!r} confidence must be a number") from err
    if not 0.0 <= confidence <= 1.0:
        raise RuleSetError(f"rule {rule_id!r} confidence must be within [0, 1]")

    return Rule(
        rule_id=rule_id,
        kind=kind,
        value=value,
        category=category,
        level=level,
        confidence=confidence,
        description=str(raw.get("description", "")).strip() or rule_id,
        negatable=bool(raw.get("negatable", False)),
        regex=_compile_rule_regex(kind, value),
    )


def load_rule_set(data: Mapping[str, Any]) -> RuleSet:
    """Validate and compile rule-set data. Raises RuleSetError on bad input."""
    if not isinstance(data, Mapping):
        raise RuleSetError("rule set must be a mapping")

    name = str(data.get("name", "")).strip()
    version = str(data.get("version", "")).strip()
    if not name or not version:
        raise RuleSetError("rule set requires a name and a version")

    levels_raw = data.get("levels")
    if not levels_raw or not isinstance(levels_raw, (list, tuple)):
        raise RuleSetError(f"rule set {name!r} requires a non-empty levels list")
    allowed_levels = tuple(str(level).strip().lower() for level in levels_raw)

    rules_raw = data.get("rules")
    if not rules_raw or not isinstance(rules_raw, (list, tuple)):
        raise RuleSetError(f"rule set {name!r} has no rules")

    rules: list[Rule] = []
    seen_ids: set[str] = set()
    for index, raw_rule in enumerate(rules_raw):
        if not isinstance(raw_rule, Mapping):
            raise RuleSetError(f"rule #{index} in {name!r} must be a mapping")
        rule = _build_rule(raw_rule, allowed_levels, index)
        if rule.rule_id in seen_ids:
            raise RuleSetError(f"duplicate rule id {rule.rule_id!r} in {name!r}")
        seen_ids.add(rule.rule_id)
        rules.append(rule)

    return RuleSet(
        name=name,
        version=version,
        rules=tuple(rules),
        allowed_levels=allowed_levels,
    )


def load_rule_set_file(path: str | Path) -> RuleSet:
    """Load a rule set from a JSON document."""
    file_path = Path(path)
    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except FileNotFoundError as err:
        raise RuleSetError(f"rule set file does not exist: {file_path}") from err
    except json.JSONDecodeError as err:
        raise RuleSetError(f"rule set file is not valid JSON: {file_path}: {err}") from err
    return load_rule_set(data)


class RuleSetRegistry:
    """Holds the active rule set per name.

    Rule sets are never edited in place; ``swap`` replaces the reference, so a
    caller that already fetched a rule set keeps matching against it.
    """

    def __init__(self, rule_sets: tuple[RuleSet, ...] = ()) -> None:
        self._lock = threading.Lock()
        self._active: dict[str, RuleSet] = {}
        for rule_set in rule_sets:
            self._active[rule_set.name] = rule_set

    def get(self, name: str) -> RuleSet:
        with self._lock:
            try:
                return self._active[name]
            except KeyError:
                raise KeyError(f"no rule set named {name!r} is loaded") from None

    def swap(self, rule_set: RuleSet) -> RuleSet | None:
        """Activate a new rule set version and return the one it replaced."""
        with self._lock:
            previous = self._active.get(rule_set.name)
            self._active[rule_set.name] = rule_set
            return previous

    def versions(self) -> list[str]:
        with self._lock:
            return [rule_set.label for rule_set in self._active.values()]
