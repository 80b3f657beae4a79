import pytest

from health_agent.core.models import SafetyViolation
from health_agent.core.types import Severity, ViolationType
from health_agent.safety import (
    DEFAULT_RULE_SETS,
    ContentFilterPolicy,
    ContentSafetyFilter,
    RuleSetRegistry,
    detect_topic,
    fallback_response,
    load_rule_set,
)
from health_agent.safety.constraints import constraints_for_violations, merge_constraints
from health_agent.safety.fallback import FALLBACK_TEMPLATES, topic_label
from health_agent.safety.readability import count_sentences, count_syllables, flesch_kincaid_grade
from health_agent.safety.text_utils import normalize_text, normalize_with_offsets


def _registry() -> RuleSetRegistry:
    return RuleSetRegistry(tuple(load_rule_set(data) for data in DEFAULT_RULE_SETS))


def _filter(policy: ContentFilterPolicy | None = None) -> ContentSafetyFilter:
    return ContentSafetyFilter(_registry(), policy)


def test_dose_advice_is_blocked_as_prescription():
    result = _filter().validate(
        "Take 400mg of ibuprofen every 6 hours.",
        "How much ibuprofen should I take for a headache?",
    )

    assert result.is_valid is False
    assert result.max_severity is Severity.HIGH
    assert {v.type for v in result.violations} == {ViolationType.PRESCRIPTION}
    assert {v.rule_id for v in result.violations} == {
        "prescription_dose_amount",
        "prescription_dose_schedule",
        "prescription_take_medicine",
    }
    assert result.confidence == pytest.approx(0.9)


def test_dose_advice_suggests_topic_specific_constraints():
    result = _filter().validate(
        "Take 400mg of ibuprofen every 6 hours.",
        "How much ibuprofen should I take?",
    )

    assert any(fix.startswith("Do not name doses") and "medicines" in fix for fix in result.suggested_fixes)
    assert 'Do not use wording like "400mg".' in result.suggested_fixes
    assert len(result.suggested_fixes) == len(set(result.suggested_fixes))


def test_violation_locations_index_the_original_candidate():
    candidate = "Hi.   You    should   take 400MG ibuprofen\n every  6 hours"

    result = _filter().validate(candidate, "How much ibuprofen should I take?")

    located = {
        v.rule_id: candidate[v.location[0]:v.location[1]]
        for v in result.violations
        if v.type is ViolationType.PRESCRIPTION
    }
    assert located["prescription_dose_amount"] == "400MG"
    assert located["prescription_dose_schedule"] == "every  6 hours"
    for violation in result.violations:
        start, end = violation.location
        assert normalize_text(candidate[start:end]) == violation.matched_text


def test_normalized_offsets_survive_nfkc_and_collapsed_whitespace():
    source = "  Don’t\t\ttake ５００mg  "

    normalized = normalize_with_offsets(source)

    assert normalized.text == "don't take 500mg"
    start = normalized.text.index("500mg")
    span = normalized.source_span((start, start + len("500mg")))
    assert source[span[0]:span[1]] == "５００mg"


def test_general_education_answer_passes():
    result = _filter().validate(
        "Diabetes is a condition where blood sugar stays high. Eating well and staying "
        "active can help. A doctor can explain more about it.",
        "What is diabetes?",
    )

    assert result.is_valid is True
    assert result.violations == ()
    assert result.confidence == 1.0
    assert result.suggested_fixes == ()
    assert result.readability_grade is not None


def test_single_medium_violation_is_advisory():
    result = _filter().validate("It is probably a viral infection.", "Why do I have a fever?")

    assert result.is_valid is True
    assert [v.rule_id for v in result.violations] == ["diagnosis_probably_infection"]
    assert result.violations[0].severity is Severity.MEDIUM
    assert result.confidence == pytest.approx(0.65)
    assert result.suggested_fixes == ()


def test_repeated_medium_hits_in_one_check_stay_advisory():
    result = _filter().validate(
        "It is probably an infection or likely a virus.",
        "Why do I have a fever?",
    )

    assert result.is_valid is True
    assert len(result.violations) == 2


def test_medium_violations_in_two_checks_block():
    result = _filter().validate(
        "It is probably a viral infection, and I suggest you rest.",
        "Why do I have a fever?",
    )

    assert result.is_valid is False
    assert {v.type for v in result.violations} == {ViolationType.DIAGNOSIS, ViolationType.TREATMENT}
    assert result.confidence == pytest.approx(0.7)


def test_medium_block_threshold_comes_from_policy():
    result = _filter(ContentFilterPolicy(medium_checks_to_block=3)).validate(
        "It is probably a viral infection, and I suggest you rest.",
        "Why do I have a fever?",
    )

    assert result.is_valid is True


def test_stopping_medication_is_critical():
    result = _filter().validate(
        "You can stop taking your insulin once you feel better.",
        "Can I stop my diabetes medicine?",
    )

    assert result.is_valid is False
    assert result.is_critical is True
    assert result.max_severity is Severity.CRITICAL


def test_group_generalization_is_flagged_as_bias():
    result = _filter().validate("Women are naturally dramatic about pain.", "Why does my back hurt?")

    assert result.is_valid is False
    assert [v.type for v in result.violations] == [ViolationType.BIAS]


def test_hard_to_read_answer_is_blocked():
    text = (
        "Cardiovascular complications associated with uncontrolled hyperglycemia necessitate "
        "comprehensive multidisciplinary evaluation, pharmacological optimization, and continuous "
        "longitudinal monitoring by experienced practitioners."
    )

    result = _filter().validate(text, "What is diabetes?")

    assert result.is_valid is False
    assert [v.type for v in result.violations] == [ViolationType.READABILITY]
    assert result.violations[0].severity is Severity.MEDIUM
    assert result.readability_grade > 12.0
    assert any("short sentences" in fix for fix in result.suggested_fixes)


def test_short_answers_skip_readability_scoring():
    result = _filter().validate("Hyperglycemia necessitates multidisciplinary evaluation.", "What is diabetes?")

    assert result.is_valid is True
    assert result.readability_grade is None


def test_validate_does_not_modify_candidate():
    text = "Take 400mg of ibuprofen every 6 hours."
    _filter().validate(text, "headache")

    assert text == "Take 400mg of ibuprofen every 6 hours."


@pytest.mark.parametrize("topic", sorted(FALLBACK_TEMPLATES["en"]))
def test_english_fallback_templates_pass_the_filter(topic: str):
    result = _filter().validate(fallback_response(topic, "en"), "question")

    assert result.is_valid is True, result.violations


def test_spanish_fallback_template_passes_content_checks():
    result = _filter().validate(fallback_response("general", "es"), "pregunta")

    assert not [v for v in result.violations if v.type is not ViolationType.READABILITY]


def test_fallback_response_language_resolution():
    assert fallback_response("diabetes", "es") == FALLBACK_TEMPLATES["es"]["general"]
    assert fallback_response("sleep", "fr") == FALLBACK_TEMPLATES["en"]["sleep"]
    assert fallback_response("unknown", "en") == FALLBACK_TEMPLATES["en"]["general"]


def test_detect_topic_uses_declaration_order():
    registry = _registry()

    assert detect_topic("What should people with diabetes know about blood pressure?", registry) == "diabetes"
    assert detect_topic("Is ibuprofen safe with diabetes?", registry) == "medication"
    assert detect_topic("Hello there", registry) == "general"
    assert topic_label("not-a-topic") == "this topic"


def test_readability_helpers():
    assert count_syllables("cat") == 1
    assert count_syllables("table") == 2
    assert count_syllables("made") == 1
    assert count_syllables("beautiful") == 3
    assert count_sentences("One. Two! Three?") == 3
    assert count_sentences("") == 1
    assert flesch_kincaid_grade("") == 0.0
    assert flesch_kincaid_grade("The cat sat.") == 0.0


def test_constraints_are_ordered_and_deduplicated():
    violation = SafetyViolation(
        type=ViolationType.DIAGNOSIS,
        severity=Severity.HIGH,
        description="Tells the user which condition they have",
        location=(0, 10),
        matched_text="you have diabetes",
    )

    constraints = constraints_for_violations([violation, violation], "diabetes")

    assert constraints == (
        "Do not use diagnostic framing for diabetes: never tell the user which condition they "
        "have; describe general information instead.",
        'Do not use wording like "you have diabetes".',
    )


def test_merge_constraints_keeps_first_occurrence():
    assert merge_constraints(("a",), ["b", "a", "c", "b"]) == ("a", "b", "c")


def test_dose_directive_with_should_take_is_prescription():
    result = _filter().validate("You should take 400mg ibuprofen every 6 hours", "headache")

    assert result.is_valid is False
    prescription = [v for v in result.violations if v.type is ViolationType.PRESCRIPTION]
    assert prescription
    assert max(v.severity.rank for v in prescription) >= Severity.HIGH.rank
