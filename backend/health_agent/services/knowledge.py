"""Read-only medical knowledge base consulted before generation."""
from __future__ import annotations

import abc
from typing import Iterable, Mapping

from ..core.models import KnowledgeFact


class BaseKnowledgeBase(abc.ABC):
    @abc.abstractmethod
    def lookup(self, topic: str, language: str = "en") -> tuple[KnowledgeFact, ...]:
        """
        Return sourced facts for a topic.

        :raises KnowledgeBaseUnavailableError: when the backing store cannot be read
        """


DEFAULT_FACTS: dict[str, tuple[KnowledgeFact, ...]] = {
    "diabetes": (
        KnowledgeFact(
            topic="diabetes",
            text=(
                "Diabetes is a long-term condition in which blood sugar stays higher than "
                "normal because the body does not make or use insulin well."
            ),
            source="World Health Organization, Diabetes fact sheet",
        ),
        KnowledgeFact(
            topic="diabetes",
            text=(
                "Regular physical activity, a balanced diet and routine check-ups help many "
                "people manage blood sugar."
            ),
            source="Centers for Disease Control and Prevention, Diabetes basics",
        ),
    ),
    "heart": (
        KnowledgeFact(
            topic="heart",
            text=(
                "High blood pressure, smoking and physical inactivity raise the risk of heart "
                "disease."
            ),
            source="World Health Organization, Cardiovascular diseases fact sheet",
        ),
    ),
    "respiratory": (
        KnowledgeFact(
            topic="respiratory",
            text=(
                "Asthma causes the airways to narrow, which can lead to wheezing, coughing "
                "and a tight chest."
            ),
            source="World Health Organization, Asthma fact sheet",
        ),
    ),
    "mental_health": (
        KnowledgeFact(
            topic="mental_health",
            text=(
                "Mental health conditions are common and treatable, and talking with a trusted "
                "professional is a helpful first step."
            ),
            source="World Health Organization, Mental health fact sheet",
        ),
    ),
    "infection": (
        KnowledgeFact(
            topic="infection",
            text="Washing hands with soap and water is one of the best ways to prevent many infections.",
            source="Centers for Disease Control and Prevention, Handwashing guidance",
        ),
    ),
    "nutrition": (
        KnowledgeFact(
            topic="nutrition",
            text=(
                "A healthy diet includes plenty of fruit and vegetables and limits salt, sugar "
                "and saturated fat."
            ),
            source="World Health Organization, Healthy diet fact sheet",
        ),
    ),
    "sleep": (
        KnowledgeFact(
            topic="sleep",
            text="Most adults need seven or more hours of sleep each night.",
            source="Centers for Disease Control and Prevention, Sleep and sleep disorders",
        ),
    ),
    "medication": (
        KnowledgeFact(
            topic="medication",
            text=(
                "Pharmacists can explain how a medicine works, its common side effects and "
                "how it may interact with other medicines."
            ),
            source="U.S. Food and Drug Administration, Buying and using medicine safely",
        ),
    ),
}


class InMemoryKnowledgeBase(BaseKnowledgeBase):
    """Static fact table keyed by topic. Facts are English-only."""

    def __init__(self, facts: Mapping[str, Iterable[KnowledgeFact]] | None = None) -> None:
        source = DEFAULT_FACTS if facts is None else facts
        self._facts = {topic: tuple(items) for topic, items in source.items()}

    def lookup(self, topic: str, language: str = "en") -> tuple[KnowledgeFact, ...]:
        return self._facts.get(topic, ())
