from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from skinconsult.application.utils.auto_extraction import (
    AGE_BANDS,
    SKIN_TYPES,
    extract_main_issue,
    match_age_answer,
    match_skin_type_answer,
)
from skinconsult.application.utils.text_rules import normalize_text
from skinconsult.domain.entities.dialogue import DialogueStep

PROBLEM_CHOICES = (
    "Acne/Brufoli",
    "Macchie scure",
    "Rughe/Invecchiamento",
    "Rosacea",
    "Pori dilatati",
    "Pelle sensibile",
)

ADVICE_CHOICES = (
    "Routine completa",
    "Detergente",
    "Siero",
    "Crema viso",
    "Contorno occhi",
    "Protezione solare",
    "Esfoliante",
    "Maschera",
    "Prodotti corpo",
)

ADDITIONAL_INFO_CHOICES = (
    "Nessuna informazione aggiuntiva",
    "Gravidanza o allattamento",
    "Allergie o intolleranze",
    "Preferisco prodotti senza profumo",
)

ADVICE_ALIASES = (
    ("Routine completa", ("routine", "completa", "tutto")),
    ("Detergente", ("detergent", "struccant", "pulizia", "cleanser")),
    ("Siero", ("siero", "sieri", "serum")),
    ("Contorno occhi", ("occhi", "occhiaie", "borse")),
    ("Protezione solare", ("solare", "spf", "sole")),
    ("Esfoliante", ("esfoli", "peeling", "scrub")),
    ("Maschera", ("maschera", "mask")),
    ("Prodotti corpo", ("corpo", "body")),
    ("Crema viso", ("crema", "idratante", "moisturizer")),
)


@dataclass(frozen=True)
class QuestionSpec:
    step: DialogueStep
    slot: str
    question: str
    choices: tuple[str, ...]
    pattern: re.Pattern[str]
    matcher: Callable[[str, bool], str | None]
    acknowledgement: str

    def match_answer(self, text: str, allow_free_text: bool = True) -> str | None:
        return self.matcher(text, allow_free_text)

    def acknowledge(self, value: str) -> str:
        shown = value.lower() if self.slot == "skin_type" else value
        return self.acknowledgement.format(value=shown)


def _choice_by_position(text: str, choices: tuple[str, ...]) -> str | None:
    """'B', 'b)', '2' -> second choice."""
    stripped = text.strip().lower().rstrip(").:")
    if len(stripped) == 1 and stripped.isalpha():
        index = ord(stripped) - ord("a")
    elif stripped.isdigit() and len(stripped) == 1:
        index = int(stripped) - 1
    else:
        return None
    if 0 <= index < len(choices):
        return choices[index]
    return None


def _exact_choice(text: str, choices: tuple[str, ...]) -> str | None:
    normalized = normalize_text(text)
    for choice in choices:
        if normalize_text(choice) == normalized:
            return choice
    return _choice_by_position(text, choices)


def _match_skin_type(text: str, allow_free_text: bool = True) -> str | None:
    return _exact_choice(text, SKIN_TYPES) or match_skin_type_answer(text)


def _match_age(text: str, allow_free_text: bool = True) -> str | None:
    return _exact_choice(text, AGE_BANDS) or match_age_answer(text)


def _match_problem(text: str, allow_free_text: bool = True) -> str | None:
    exact = _exact_choice(text, PROBLEM_CHOICES)
    if exact:
        return exact
    issue = extract_main_issue(text)
    if issue:
        return issue
    if not allow_free_text:
        return None
    free_text = text.strip()
    return free_text if len(normalize_text(free_text)) >= 3 else None


def _match_advice(text: str, allow_free_text: bool = True) -> str | None:
    exact = _exact_choice(text, ADVICE_CHOICES)
    if exact:
        return exact
    normalized = normalize_text(text)
    for canonical, aliases in ADVICE_ALIASES:
        if any(alias in normalized for alias in aliases):
            return canonical
    return None


def _match_additional_info(text: str, allow_free_text: bool = True) -> str | None:
    exact = _exact_choice(text, ADDITIONAL_INFO_CHOICES)
    if exact:
        return exact
    if not allow_free_text:
        return None
    free_text = text.strip()
    return free_text or None


QUESTION_TABLE: tuple[QuestionSpec, ...] = (
    QuestionSpec(
        step=DialogueStep.awaiting_skin_type,
        slot="skin_type",
        question="Che tipo di pelle hai?",
        choices=SKIN_TYPES,
        pattern=re.compile(r"tipo di pelle", re.IGNORECASE),
        matcher=_match_skin_type,
        acknowledgement="Ho capito che hai la pelle {value}.",
    ),
    QuestionSpec(
        step=DialogueStep.awaiting_age,
        slot="age",
        question="Quanti anni hai?",
        choices=AGE_BANDS,
        pattern=re.compile(r"quanti anni|fascia d.et|la tua et", re.IGNORECASE),
        matcher=_match_age,
        acknowledgement="Ho preso nota della tua fascia d'età: {value}.",
    ),
    QuestionSpec(
        step=DialogueStep.awaiting_problem,
        slot="main_issue",
        question="Qual è la problematica principale che vorresti risolvere?",
        choices=PROBLEM_CHOICES,
        pattern=re.compile(r"problematic|preoccupazione principale|problema principale", re.IGNORECASE),
        matcher=_match_problem,
        acknowledgement="Ho capito che la tua preoccupazione principale è: {value}.",
    ),
    QuestionSpec(
        step=DialogueStep.awaiting_advice_type,
        slot="advice_type",
        question="Che tipo di consiglio stai cercando?",
        choices=ADVICE_CHOICES,
        pattern=re.compile(r"tipo di consiglio|che consiglio", re.IGNORECASE),
        matcher=_match_advice,
        acknowledgement="Perfetto, cerchi: {value}.",
    ),
    QuestionSpec(
        step=DialogueStep.awaiting_additional_info,
        slot="additional_info",
        question="C'è qualche informazione aggiuntiva sulla tua pelle che vuoi condividere?",
        choices=ADDITIONAL_INFO_CHOICES,
        pattern=re.compile(r"informazion[ei] aggiuntiv|altro da aggiungere", re.IGNORECASE),
        matcher=_match_additional_info,
        acknowledgement="Grazie per l'informazione.",
    ),
)

QUESTIONS_BY_STEP = {spec.step: spec for spec in QUESTION_TABLE}


def question_for(step: DialogueStep) -> QuestionSpec | None:
    return QUESTIONS_BY_STEP.get(step)


def is_complete_routine(advice_type: str | None) -> bool:
    return advice_type is None or "routine" in advice_type.lower()


def asked_questions(text: str) -> list[QuestionSpec]:
    """Question specs whose pattern appears in generated text."""
    return [spec for spec in QUESTION_TABLE if spec.pattern.search(text)]
