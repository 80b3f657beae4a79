"""Built-in rule-set data loaded at startup.

Each mapping is the same shape accepted by ``load_rule_set`` and by the JSON
files that ``HEALTH_AGENT_*_RULES_PATH`` may point at.
"""
from typing import Any

_MEDICINES = (
    "ibuprofen|acetaminophen|paracetamol|aspirin|naproxen|antibiotics?|amoxicillin"
    "|metformin|insulin|prednisone|codeine|tramadol|antihistamines?|melatonin"
)

EMERGENCY_RULES: dict[str, Any] = {
    "name": "emergency",
    "version": "2024.06.1",
    "levels": ["immediate", "urgent", "soon"],
    "rules": [
        # cardiac
        {
            "id": "cardiac_severe_chest_pain",
            "kind": "pattern",
            "value": r"\b(?:severe|crushing|intense|squeezing|worst|sharp)\s+(?:\w+\s+){0,2}?chest\s+(?:pain|pressure|tightness)\b",
            "category": "cardiac",
            "level": "immediate",
            "confidence": 0.95,
            "negatable": True,
            "description": "Severe chest pain",
        },
        {
            "id": "cardiac_heart_attack",
            "kind": "pattern",
            "value": r"\b(?:having|had|think i'?m having)\s+a\s+heart\s+attack\b",
            "category": "cardiac",
            "level": "immediate",
            "confidence": 0.95,
            "description": "Reported heart attack",
        },
        {
            "id": "cardiac_radiating_pain",
            "kind": "pattern",
            "value": r"\bchest\s+(?:pain|pressure)[^.!?]{0,60}\b(?:left arm|jaw|shoulder|sweating)\b",
            "category": "cardiac",
            "level": "immediate",
            "confidence": 0.93,
            "negatable": True,
            "description": "Chest pain radiating or with sweating",
        },
        {
            "id": "cardiac_chest_pain",
            "kind": "phrase",
            "value": "chest pain",
            "category": "cardiac",
            "level": "urgent",
            "confidence": 0.8,
            "negatable": True,
            "description": "Chest pain",
        },
        {
            "id": "cardiac_chest_pressure",
            "kind": "phrase",
            "value": "chest pressure",
            "category": "cardiac",
            "level": "urgent",
            "confidence": 0.8,
            "negatable": True,
            "description": "Chest pressure",
        },
        # respiratory
        {
            "id": "respiratory_cannot_breathe",
            "kind": "pattern",
            "value": r"\b(?:can'?t|cannot|can not|unable to)\s+breathe\b",
            "category": "respiratory",
            "level": "immediate",
            "confidence": 0.97,
            "description": "Unable to breathe",
        },
        {
            "id": "respiratory_choking",
            "kind": "keyword",
            "value": "choking",
            "category": "respiratory",
            "level": "immediate",
            "confidence": 0.9,
            "negatable": True,
            "description": "Choking",
        },
        {
            "id": "respiratory_blue_lips",
            "kind": "pattern",
            "value": r"\b(?:lips|face)\s+(?:are\s+|is\s+)?(?:turning\s+)?(?:blue|grey|gray)\b",
            "category": "respiratory",
            "level": "immediate",
            "confidence": 0.93,
            "description": "Cyanosis",
        },
        {
            "id": "respiratory_shortness_of_breath",
            "kind": "phrase",
            "value": "shortness of breath",
            "category": "respiratory",
            "level": "urgent",
            "confidence": 0.8,
            "negatable": True,
            "description": "Shortness of breath",
        },
        {
            "id": "respiratory_difficulty_breathing",
            "kind": "pattern",
            "value": r"\b(?:difficulty|trouble|struggling)\s+breathing\b",
            "category": "respiratory",
            "level": "urgent",
            "confidence": 0.82,
            "negatable": True,
            "description": "Difficulty breathing",
        },
        # neurological
        {
            "id": "neuro_stroke_signs",
            "kind": "pattern",
            "value": r"\b(?:face\s+(?:is\s+)?droop(?:ing|s)?|slurred\s+speech|one[- ]sided\s+weakness|sudden\s+numbness|having\s+a\s+stroke)\b",
            "category": "neurological",
            "level": "immediate",
            "confidence": 0.95,
            "negatable": True,
            "description": "Possible stroke signs",
        },
        {
            "id": "neuro_unresponsive",
            "kind": "pattern",
            "value": r"\b(?:unconscious|unresponsive|passed out|lost consciousness|won'?t wake up)\b",
            "category": "neurological",
            "level": "immediate",
            "confidence": 0.95,
            "negatable": True,
            "description": "Loss of consciousness",
        },
        {
            "id": "neuro_seizure",
            "kind": "pattern",
            "value": r"\b(?:having|had)\s+a\s+seizure\b|\bseizing\b",
            "category": "neurological",
            "level": "immediate",
            "confidence": 0.92,
            "negatable": True,
            "description": "Seizure",
        },
        {
            "id": "neuro_thunderclap_headache",
            "kind": "phrase",
            "value": "worst headache of my life",
            "category": "neurological",
            "level": "immediate",
            "confidence": 0.92,
            "description": "Sudden severe headache",
        },
        {
            "id": "neuro_sudden_confusion",
            "kind": "phrase",
            "value": "sudden confusion",
            "category": "neurological",
            "level": "urgent",
            "confidence": 0.85,
            "negatable": True,
            "description": "Sudden confusion",
        },
        # bleeding
        {
            "id": "bleeding_severe",
            "kind": "pattern",
            "value": r"\b(?:severe|heavy|uncontrolled)\s+bleeding\b|\bbleeding\s+heavily\b|\b(?:won'?t|can'?t|cannot)\s+stop\s+(?:the\s+)?bleeding\b",
            "category": "bleeding",
            "level": "immediate",
            "confidence": 0.95,
            "negatable": True,
            "description": "Severe bleeding",
        },
        {
            "id": "bleeding_internal_signs",
            "kind": "pattern",
            "value": r"\b(?:coughing|vomiting|throwing)\s+(?:up\s+)?blood\b",
            "category": "bleeding",
            "level": "urgent",
            "confidence": 0.88,
            "negatable": True,
            "description": "Coughing or vomiting blood",
        },
        # allergic
        {
            "id": "allergic_airway_swelling",
            "kind": "pattern",
            "value": r"\b(?:throat|tongue|lips?)\s+(?:is\s+|are\s+)?(?:swelling|swollen|closing)\b",
            "category": "allergic",
            "level": "immediate",
            "confidence": 0.93,
            "negatable": True,
            "description": "Airway swelling",
        },
        {
            "id": "allergic_anaphylaxis",
            "kind": "pattern",
            "value": r"\b(?:going into|having)\s+anaphyla(?:xis|ctic shock)\b",
            "category": "allergic",
            "level": "immediate",
            "confidence": 0.95,
            "description": "Anaphylaxis",
        },
        # mental health
        {
            "id": "mental_health_self_harm",
            "kind": "pattern",
            "value": r"\b(?:kill|hurt|harm)\s+myself\b|\bsuicid(?:e|al)\b|\bend\s+my\s+life\b|\bwant\s+to\s+die\b",
            "category": "mental_health",
            "level": "immediate",
            "confidence": 0.95,
            "description": "Self-harm or suicidal intent",
        },
        # poisoning
        {
            "id": "poisoning_overdose",
            "kind": "pattern",
            "value": r"\b(?:took|swallowed|taken)\s+(?:way\s+)?too\s+many\b|\boverdosed\b|\btook\s+an\s+overdose\b",
            "category": "poisoning",
            "level": "immediate",
            "confidence": 0.93,
            "description": "Overdose",
        },
        {
            "id": "poisoning_ingestion",
            "kind": "pattern",
            "value": r"\b(?:drank|swallowed|ate)\s+(?:some\s+)?(?:bleach|poison|antifreeze|detergent|drain cleaner|batteries|a battery)\b",
            "category": "poisoning",
            "level": "immediate",
            "confidence": 0.92,
            "description": "Toxic ingestion",
        },
        # obstetric
        {
            "id": "obstetric_bleeding",
            "kind": "pattern",
            "value": r"\bpregnant\b[^.!?]{0,60}\bbleeding\b|\bbleeding\b[^.!?]{0,60}\bpregnan(?:t|cy)\b",
            "category": "obstetric",
            "level": "urgent",
            "confidence": 0.85,
            "negatable": True,
            "description": "Bleeding during pregnancy",
        },
        # trauma
        {
            "id": "trauma_head_injury",
            "kind": "phrase",
            "value": "head injury",
            "category": "trauma",
            "level": "urgent",
            "confidence": 0.78,
            "negatable": True,
            "description": "Head injury",
        },
        {
            "id": "trauma_broken_bone",
            "kind": "pattern",
            "value": r"\b(?:broken|fractured)\s+(?:my\s+)?(?:arm|leg|wrist|ankle|bone)\b",
            "category": "trauma",
            "level": "soon",
            "confidence": 0.75,
            "negatable": True,
            "description": "Possible fracture",
        },
        # other
        {
            "id": "other_fever_stiff_neck",
            "kind": "pattern",
            "value": r"\bstiff\s+neck\b[^.!?]{0,60}\bfever\b|\bfever\b[^.!?]{0,60}\bstiff\s+neck\b",
            "category": "other",
            "level": "urgent",
            "confidence": 0.85,
            "negatable": True,
            "description": "Fever with stiff neck",
        },
        {
            "id": "other_blood_in_urine",
            "kind": "pattern",
            "value": r"\bblood\s+in\s+(?:my\s+)?(?:urine|pee|stool)\b",
            "category": "other",
            "level": "soon",
            "confidence": 0.72,
            "negatable": True,
            "description": "Blood in urine or stool",
        },
        {
            "id": "other_dizziness",
            "kind": "pattern",
            "value": r"\b(?:dizzy|lightheaded|light-headed|feel faint)\b",
            "category": "other",
            "level": "soon",
            "confidence": 0.55,
            "negatable": True,
            "description": "Dizziness",
        },
    ],
}

CONTENT_RULES: dict[str, Any] = {
    "name": "content",
    "version": "2024.06.1",
    "levels": ["low", "medium", "high", "critical"],
    "rules": [
        # diagnosis
        {
            "id": "diagnosis_you_have_condition",
            "kind": "pattern",
            "value": (
                r"(?<!\bif )(?<!\bwhen )(?<!\bwhether )(?<!\bunless )(?<!\bdo )"
                r"\byou (?:definitely |probably |likely |most likely |clearly |may |might )?"
                r"(?:have|'ve got) (?:a |an )?(?:case of )?"
                r"(?:diabetes|cancer|pneumonia|covid(?:-19)?|the flu|asthma|depression|anxiety|hypertension"
                r"|a tumou?r|an? infection|migraines?|[a-z]+itis|[a-z]+ disease|[a-z]+ syndrome|[a-z]+ disorder)\b"
            ),
            "category": "diagnosis",
            "level": "high",
            "confidence": 0.9,
            "negatable": True,
            "description": "Tells the user which condition they have",
        },
        {
            "id": "diagnosis_sounds_like",
            "kind": "pattern",
            "value": r"\b(?:sounds|looks|seems) like you (?:have|are suffering from|'ve got)\b",
            "category": "diagnosis",
            "level": "high",
            "confidence": 0.88,
            "description": "Inferential diagnosis of the user",
        },
        {
            "id": "diagnosis_symptoms_indicate",
            "kind": "pattern",
            "value": r"\byour symptoms (?:indicate|suggest|mean|confirm|point to)\b",
            "category": "diagnosis",
            "level": "high",
            "confidence": 0.85,
            "description": "Interprets the user's symptoms as a diagnosis",
        },
        {
            "id": "diagnosis_first_person",
            "kind": "pattern",
            "value": r"\bi (?:can |would )?diagnose\b|\bmy diagnosis\b|\byour diagnosis is\b",
            "category": "diagnosis",
            "level": "high",
            "confidence": 0.95,
            "description": "Assistant claims to diagnose",
        },
        {
            "id": "diagnosis_suffering_from",
            "kind": "phrase",
            "value": "you are suffering from",
            "category": "diagnosis",
            "level": "high",
            "confidence": 0.85,
            "description": "States what the user suffers from",
        },
        {
            "id": "diagnosis_probably_infection",
            "kind": "pattern",
            "value": r"\b(?:probably|likely) (?:just )?an? (?:[a-z]+ )?(?:infection|virus|allergy)\b",
            "category": "diagnosis",
            "level": "medium",
            "confidence": 0.7,
            "description": "Speculative diagnosis",
        },
        # prescription
        {
            "id": "prescription_dose_amount",
            "kind": "pattern",
            "value": r"\b\d+(?:\.\d+)?\s?(?:mg|mcg|ml|iu|units?|tablets?|pills?|capsules?)\b(?!\s?/)",
            "category": "prescription",
            "level": "high",
            "confidence": 0.9,
            "description": "Specific dose amount",
        },
        {
            "id": "prescription_dose_schedule",
            "kind": "pattern",
            "value": r"\bevery\s+\d+(?:\s*(?:-|to)\s*\d+)?\s+hours?\b|\b(?:once|twice|three times|four times|\d+ times) (?:a|per|each) day\b",
            "category": "prescription",
            "level": "high",
            "confidence": 0.85,
            "description": "Dosing schedule",
        },
        {
            "id": "prescription_take_medicine",
            "kind": "pattern",
            "value": (
                r"(?:^|[.!?]\s+|\byou (?:should|can|could|need to|must) )"
                r"(?:take|start taking|switch to|try taking|try)\s+(?:\w+\s+){0,2}?"
                rf"(?:{_MEDICINES})\b"
            ),
            "category": "prescription",
            "level": "high",
            "confidence": 0.9,
            "negatable": True,
            "description": "Directs the user to take a named medicine",
        },
        {
            "id": "prescription_first_person",
            "kind": "pattern",
            "value": r"\bi (?:would )?(?:prescribe|recommend taking)\b",
            "category": "prescription",
            "level": "high",
            "confidence": 0.9,
            "description": "Assistant prescribes",
        },
        {
            "id": "prescription_stop_medication",
            "kind": "pattern",
            "value": r"\b(?:stop|quit|skip|discontinue)\s+(?:taking\s+)?(?:your\s+)?(?:medications?|medicines?|meds|insulin|antidepressants?|blood thinners?|pills)\b",
            "category": "prescription",
            "level": "critical",
            "confidence": 0.95,
            "negatable": True,
            "description": "Tells the user to stop prescribed medication",
        },
        {
            "id": "prescription_double_dose",
            "kind": "pattern",
            "value": r"\b(?:double|triple)\s+(?:your|the)\s+dose\b|\btake\s+(?:an\s+)?extra\s+(?:doses?|pills|tablets)\b",
            "category": "prescription",
            "level": "critical",
            "confidence": 0.95,
            "negatable": True,
            "description": "Dangerous dose escalation",
        },
        {
            "id": "prescription_should_take",
            "kind": "phrase",
            "value": "you should take",
            "category": "prescription",
            "level": "medium",
            "confidence": 0.6,
            "negatable": True,
            "description": "Medication directive wording",
        },
        # treatment
        {
            "id": "treatment_directive",
            "kind": "pattern",
            "value": r"\byou (?:should|must|need to) (?:undergo|have|get|start|begin) (?:surgery|chemotherapy|chemo|radiation|an operation|physical therapy|treatment|therapy)\b",
            "category": "treatment",
            "level": "high",
            "confidence": 0.88,
            "negatable": True,
            "description": "Directs a specific treatment",
        },
        {
            "id": "treatment_topical_regimen",
            "kind": "pattern",
            "value": r"\bapply\s+(?:\w+\s+){0,3}?(?:cream|ointment|gel)\b[^.!?]{0,40}\b(?:times|daily|hours)\b",
            "category": "treatment",
            "level": "high",
            "confidence": 0.8,
            "description": "Topical treatment regimen",
        },
        {
            "id": "treatment_cure_claim",
            "kind": "pattern",
            "value": r"\b(?:will|can|is guaranteed to) cure (?:your|the|it)\b",
            "category": "treatment",
            "level": "high",
            "confidence": 0.85,
            "negatable": True,
            "description": "Cure claim",
        },
        {
            "id": "treatment_discourage_care",
            "kind": "pattern",
            "value": r"\b(?:no need|don'?t need|do not need) to (?:see|visit|call) (?:a|your|the) (?:doctor|physician|clinician|nurse|hospital)\b",
            "category": "treatment",
            "level": "critical",
            "confidence": 0.9,
            "description": "Discourages professional care",
        },
        {
            "id": "treatment_first_person_advice",
            "kind": "pattern",
            "value": r"\bi (?:recommend|suggest|advise) (?:that )?you\b",
            "category": "treatment",
            "level": "medium",
            "confidence": 0.65,
            "description": "Personal treatment advice",
        },
        {
            "id": "treatment_treat_it",
            "kind": "pattern",
            "value": r"\b(?:treat|cure) (?:it|this|your [a-z]+) (?:by|with)\b",
            "category": "treatment",
            "level": "medium",
            "confidence": 0.7,
            "description": "Treatment instruction",
        },
        # bias
        {
            "id": "bias_group_generalization",
            "kind": "pattern",
            "value": (
                r"\b(?:women|men|old people|the elderly|elderly people|black people|white people|asian people"
                r"|hispanic people|immigrants|fat people|obese people|poor people)\s+(?:are|tend to be)\s+"
                r"(?:always\s+|naturally\s+|just\s+|too\s+|more\s+|less\s+)?"
                r"(?:hysterical|lazy|weak|dramatic|emotional|exaggerating|non-?compliant|less intelligent|stupid)\b"
            ),
            "category": "bias",
            "level": "high",
            "confidence": 0.85,
            "description": "Group generalization",
        },
        {
            "id": "bias_weight_blame",
            "kind": "pattern",
            "value": r"\bbecause you(?:'re| are) (?:fat|overweight|obese|old|lazy)\b",
            "category": "bias",
            "level": "high",
            "confidence": 0.85,
            "description": "Blames a personal characteristic",
        },
        {
            "id": "bias_stigmatizing_terms",
            "kind": "pattern",
            "value": r"\b(?:hysterical|drug[- ]seeking|junkie|addict|lunatic|hypochondriac|crazy)\b",
            "category": "bias",
            "level": "medium",
            "confidence": 0.7,
            "description": "Stigmatizing term",
        },
        {
            "id": "bias_dismissive",
            "kind": "pattern",
            "value": r"\bit'?s (?:all )?in your head\b|\byou (?:brought this on yourself|only have yourself to blame)\b",
            "category": "bias",
            "level": "medium",
            "confidence": 0.7,
            "description": "Dismissive or blaming language",
        },
    ],
}

TOPIC_RULES: dict[str, Any] = {
    "name": "topics",
    "version": "2024.06.1",
    "levels": ["topic"],
    "rules": [
        {
            "id": "topic_medication",
            "kind": "pattern",
            "value": rf"\b(?:{_MEDICINES}|medications?|medicines?|pills?|dose|dosage|drugs?|prescriptions?)\b",
            "category": "medication",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_diabetes",
            "kind": "pattern",
            "value": r"\b(?:diabet\w*|blood sugar|glucose|a1c)\b",
            "category": "diabetes",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_heart",
            "kind": "pattern",
            "value": r"\b(?:heart|cardiac|cholesterol|blood pressure|hypertension)\b",
            "category": "heart",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_respiratory",
            "kind": "pattern",
            "value": r"\b(?:asthma|cough\w*|lungs?|breath\w*|wheez\w*)\b",
            "category": "respiratory",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_mental_health",
            "kind": "pattern",
            "value": r"\b(?:stress\w*|anxi\w*|depress\w*|mood|mental health|panic)\b",
            "category": "mental_health",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_infection",
            "kind": "pattern",
            "value": r"\b(?:cold|flu|fever|infection|virus|sore throat)\b",
            "category": "infection",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_pain",
            "kind": "pattern",
            "value": r"\b(?:pain|ache|aches|headache|migraine|sore)\b",
            "category": "pain",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_nutrition",
            "kind": "pattern",
            "value": r"\b(?:diet|nutrition|food|eating|vitamins?|weight)\b",
            "category": "nutrition",
            "level": "topic",
            "confidence": 1.0,
        },
        {
            "id": "topic_sleep",
            "kind": "pattern",
            "value": r"\b(?:sleep\w*|insomnia|tired|fatigue)\b",
            "category": "sleep",
            "level": "topic",
            "confidence": 1.0,
        },
    ],
}

DEFAULT_RULE_SETS: tuple[dict[str, Any], ...] = (EMERGENCY_RULES, CONTENT_RULES, TOPIC_RULES)
