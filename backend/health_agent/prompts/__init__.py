"""Prompt templates for answer generation."""
from .answer import HEALTH_EDUCATION_PROMPT, LANGUAGE_NAMES

__all__ = [
    "HEALTH_EDUCATION_PROMPT",
    "LANGUAGE_NAMES",
]
