"""Topic detection and the pre-validated fallback answers."""
from __future__ import annotations

from .matcher import match
from .rules import RuleSetRegistry

TOPIC_RULE_SET = "topics"
GENERAL_TOPIC = "general"

TOPIC_LABELS: dict[str, str] = {
    "medication": "medicines",
    "diabetes": "diabetes",
    "heart": "heart health",
    "respiratory": "breathing and lung health",
    "mental_health": "mental health",
    "infection": "common infections",
    "pain": "pain",
    "nutrition": "nutrition",
    "sleep": "sleep",
    GENERAL_TOPIC: "this topic",
}

# Each template must pass ContentSafetyFilter.validate; tests enforce it.
FALLBACK_TEMPLATES: dict[str, dict[str, str]] = {
    "en": {
        "medication": (
            "I can share general facts about medicines, but I can't say which medicine or "
            "amount is right for you. A pharmacist or doctor can check your health history "
            "and other medicines to find a safe plan. Reading the label and the leaflet that "
            "comes with a medicine is also a good habit."
        ),
        "diabetes": (
            "Diabetes is a long-term condition that affects how the body uses sugar from food. "
            "Healthy meals, regular activity, and regular check-ups are common parts of living "
            "well with it. A doctor or diabetes nurse can explain what fits your own situation."
        ),
        "heart": (
            "Heart health is shaped by many things, such as activity, food, sleep, and not "
            "smoking. Blood pressure and cholesterol checks help track how the heart is doing. "
            "A doctor can talk with you about your own results and next steps."
        ),
        "respiratory": (
            "Breathing problems have many possible causes, from colds to long-term lung "
            "conditions. Clean air and avoiding smoke help protect the lungs. If breathing gets "
            "hard, please get medical help right away."
        ),
        "mental_health": (
            "Mental health matters just as much as physical health. Talking with people you "
            "trust, keeping a routine, and getting enough rest can help many people. A doctor "
            "or counselor can offer support that fits you."
        ),
        "infection": (
            "Many common infections, like colds, get better on their own with rest and fluids. "
            "Washing your hands helps stop germs from spreading. A doctor can check you if you "
            "feel very unwell or do not get better."
        ),
        "pain": (
            "Pain can have many causes, and the same feeling can mean different things for "
            "different people. Noting when it starts and what makes it better or worse can help "
            "a doctor understand it. Please get checked if the pain is strong or keeps coming back."
        ),
        "nutrition": (
            "A varied diet with plenty of vegetables, fruit, whole grains, and water supports "
            "good health. Needs differ from person to person. A dietitian or doctor can help you "
            "plan meals that suit you."
        ),
        "sleep": (
            "Most adults feel best with regular sleep at about the same times each day. A dark, "
            "quiet room and less screen time before bed can help. A doctor can help if tiredness "
            "keeps getting in the way of daily life."
        ),
        GENERAL_TOPIC: (
            "I can share general health information, but I can't give a personal answer to this "
            "question. A doctor, nurse, or pharmacist can look at your situation and help you "
            "decide what to do next."
        ),
    },
    "es": {
        GENERAL_TOPIC: (
            "Puedo compartir información general de salud, pero no puedo dar una respuesta "
            "personal a esta pregunta. Un médico, una enfermera o un farmacéutico puede revisar "
            "su situación y ayudarle a decidir qué hacer."
        ),
    },
}


def detect_topic(text: str, registry: RuleSetRegistry) -> str:
    """Return the first topic (in rule declaration order) mentioned in ``text``."""
    found = match(text, registry.get(TOPIC_RULE_SET))
    if not found:
        return GENERAL_TOPIC
    return found[0].rule.category


def topic_label(topic: str) -> str:
    return TOPIC_LABELS.get(topic, TOPIC_LABELS[GENERAL_TOPIC])


def fallback_response(topic: str, language: str) -> str:
    templates = FALLBACK_TEMPLATES.get(language) or FALLBACK_TEMPLATES["en"]
    if topic in templates:
        return templates[topic]
    if language in FALLBACK_TEMPLATES and GENERAL_TOPIC in templates:
        return templates[GENERAL_TOPIC]
    return FALLBACK_TEMPLATES["en"].get(topic, FALLBACK_TEMPLATES["en"][GENERAL_TOPIC])
