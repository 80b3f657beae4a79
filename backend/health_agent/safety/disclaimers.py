"""Disclaimer text generation and acknowledgment tracking."""
from __future__ import annotations

from typing import Any, Mapping

from ..core.models import Disclaimer
from ..core.types import DisclaimerType
from ..services.stores import BaseAcknowledgmentStore

DEFAULT_LANGUAGE = "en"

# Every template embeds the three negative assertions through {base}.
_BASE_ASSERTIONS: dict[str, str] = {
    "en": (
        "This assistant does not diagnose medical conditions, does not prescribe medication "
        "or treatment, and does not replace advice from a qualified healthcare professional."
    ),
    "es": (
        "Este asistente no diagnostica enfermedades, no receta medicamentos ni tratamientos "
        "y no sustituye el consejo de un profesional de la salud cualificado."
    ),
}

_TEMPLATES: dict[str, dict[DisclaimerType, str]] = {
    "en": {
        DisclaimerType.INITIAL: (
            "Welcome. This service shares general health education only. {base} "
            "In an emergency, call your local emergency number. Please confirm that you "
            "understand this before asking a question."
        ),
        DisclaimerType.INLINE: "Disclaimer: this is general health information. {base}",
        DisclaimerType.EMERGENCY: (
            "EMERGENCY WARNING: your message describes symptoms that may need urgent medical "
            "help{category_clause}. Call your local emergency number (such as 911 or 112) or "
            "go to the nearest emergency department now. {base}"
        ),
        DisclaimerType.MEDICATION: (
            "Medicine note: always check with a pharmacist or doctor before starting, stopping "
            "or changing any medicine. {base}"
        ),
    },
    "es": {
        DisclaimerType.INITIAL: (
            "Bienvenido. Este servicio ofrece solo educación general sobre salud. {base} "
            "En una emergencia, llame a su número local de emergencias. Confirme que entiende "
            "esto antes de hacer una pregunta."
        ),
        DisclaimerType.INLINE: "Aviso: esta es información general de salud. {base}",
        DisclaimerType.EMERGENCY: (
            "AVISO DE EMERGENCIA: su mensaje describe síntomas que pueden requerir ayuda médica "
            "urgente{category_clause}. Llame a su número local de emergencias (como el 112 o el "
            "911) o vaya ahora al servicio de urgencias más cercano. {base}"
        ),
        DisclaimerType.MEDICATION: (
            "Nota sobre medicamentos: consulte siempre a un farmacéutico o médico antes de "
            "empezar, dejar o cambiar cualquier medicamento. {base}"
        ),
    },
}

_CATEGORY_CLAUSES: dict[str, str] = {
    "en": " (possible {category} emergency)",
    "es": " (posible emergencia: {category})",
}

_PRIORITIES: dict[DisclaimerType, int] = {
    DisclaimerType.EMERGENCY: 100,
    DisclaimerType.INITIAL: 80,
    DisclaimerType.MEDICATION: 50,
    DisclaimerType.INLINE: 10,
}


def supported_languages() -> tuple[str, ...]:
    return tuple(_TEMPLATES)


def _resolve_language(language: str | None) -> str:
    normalized = (language or DEFAULT_LANGUAGE).strip().lower().split("-")[0]
    return normalized if normalized in _TEMPLATES else DEFAULT_LANGUAGE


def get_disclaimer(
    disclaimer_type: DisclaimerType | str,
    language: str | None = DEFAULT_LANGUAGE,
    context: Mapping[str, Any] | None = None,
) -> Disclaimer:
    """Pure mapping of (type, language, context) to disclaimer text."""
    resolved_type = DisclaimerType(disclaimer_type)
    resolved_language = _resolve_language(language)

    category_clause = ""
    category = (context or {}).get("category")
    if resolved_type is DisclaimerType.EMERGENCY and category:
        readable = str(category).replace("_", " ")
        category_clause = _CATEGORY_CLAUSES[resolved_language].format(category=readable)

    text = _TEMPLATES[resolved_language][resolved_type].format(
        base=_BASE_ASSERTIONS[resolved_language],
        category_clause=category_clause,
    )
    return Disclaimer(
        type=resolved_type,
        language=resolved_language,
        text=text,
        requires_acknowledgment=resolved_type is DisclaimerType.INITIAL,
        priority=_PRIORITIES[resolved_type],
    )


def inject_inline(text: str, disclaimer: Disclaimer) -> str:
    """Append ``disclaimer`` to ``text`` unless its exact text is already there."""
    if disclaimer.text in text:
        return text
    body = text.rstrip()
    if not body:
        return disclaimer.text
    return f"{body}\n\n{disclaimer.text}"


class DisclaimerManager:
    """Disclaimer lookup plus the acknowledgment state kept in an external store."""

    def __init__(self, acknowledgments: BaseAcknowledgmentStore) -> None:
        self._acknowledgments = acknowledgments

    @staticmethod
    def get_disclaimer(
        disclaimer_type: DisclaimerType | str,
        language: str | None = DEFAULT_LANGUAGE,
        context: Mapping[str, Any] | None = None,
    ) -> Disclaimer:
        return get_disclaimer(disclaimer_type, language, context)

    @staticmethod
    def inject_inline(text: str, disclaimer: Disclaimer) -> str:
        return inject_inline(text, disclaimer)

    def record_acknowledgment(self, subject_id: str, disclaimer_type: DisclaimerType | str) -> None:
        self._acknowledgments.record(subject_id, DisclaimerType(disclaimer_type))

    def has_acknowledged(self, subject_id: str, disclaimer_type: DisclaimerType | str) -> bool:
        return self._acknowledgments.has(subject_id, DisclaimerType(disclaimer_type))
