"""Flesch-Kincaid grade-level estimate."""
import re

from .text_utils import words

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+(?:\s+|$)")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")


def count_syllables(word: str) -> int:
    cleaned = word.lower().strip("'")
    if not cleaned:
        return 0
    if len(cleaned) <= 3:
        return 1
    if cleaned.endswith("e") and not cleaned.endswith("le"):
        cleaned = cleaned[:-1]
    return max(1, len(_VOWEL_GROUP_RE.findall(cleaned)))


def count_sentences(text: str) -> int:
    parts = [part for part in _SENTENCE_SPLIT_RE.split(text.strip()) if part.strip()]
    return max(1, len(parts))


def flesch_kincaid_grade(text: str) -> float:
    """Return the U.S. school grade needed to follow ``text`` (0.0 for empty text)."""
    tokens = words(text)
    if not tokens:
        return 0.0
    sentences = count_sentences(text)
    syllables = sum(count_syllables(token) for token in tokens)
    grade = 0.39 * (len(tokens) / sentences) + 11.8 * (syllables / len(tokens)) - 15.59
    return round(max(0.0, grade), 2)
