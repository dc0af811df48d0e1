from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

from skinconsult.application.utils.text_rules import normalize_text
from skinconsult.domain.entities.skin_analysis import SKIN_PARAMETERS, SkinAnalysisReport

logger = logging.getLogger(__name__)

SKIN_TYPES = ("Mista", "Secca", "Grassa", "Normale", "Asfittica")

AGE_BANDS = ("16-25", "26-35", "36-45", "46-55", "56+")

SKIN_TYPE_ALIASES = (
    ("Mista", ("mista", "combinata", "combination")),
    ("Secca", ("secca", "secchissima", "dry")),
    ("Grassa", ("grassa", "oleosa", "lucida", "oily")),
    ("Normale", ("normale", "normal")),
    ("Asfittica", ("asfittica",)),
)

# Order is priority when a message names several concerns. Aliases are regex fragments
# matched from the start of a word, so "macchina" or "vapori" never count.
ISSUE_ALIASES = (
    ("Acne/Brufoli", ("acne", "brufol", "punti neri", "imperfezion", "comedon")),
    ("Macchie scure", (r"macchi(?:a|e|ett|olin)", "discrom", "(?:iper)?pigment", "melasma")),
    ("Rosacea", ("rosacea", "couperose")),
    ("Rughe/Invecchiamento", ("rugh", "invecchiament", "anti-?age", "segni del tempo", "cediment")),
    ("Pori dilatati", (r"pori\b", "punti neri")),
    ("Pelle sensibile", ("sensibil", "reattiv", "atopic", "arrossament", "rossori", "irritat")),
)

ANALYSIS_MARKER = re.compile(r"analisi ai della pelle\s*:?\s*(\{.*\})", re.IGNORECASE | re.DOTALL)
JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

# (parameter, resulting main issue); table order breaks ties between equal scores.
ANALYSIS_ISSUES = (
    ("acne", "Acne/Brufoli"),
    ("pigmentazione", "Macchie scure"),
    ("danni_solari", "Macchie scure"),
    ("rossori", "Pelle sensibile"),
    ("rughe", "Rughe/Invecchiamento"),
    ("elasticita", "Rughe/Invecchiamento"),
    ("pori_dilatati", "Pori dilatati"),
    ("oleosita", "Pori dilatati"),
)

CONCERN_THRESHOLD = 61
ROSACEA_THRESHOLD = 81


def extract_skin_type(text: str) -> str | None:
    normalized = normalize_text(text)
    if "pelle" not in normalized and "skin" not in normalized:
        return None
    for canonical, aliases in SKIN_TYPE_ALIASES:
        for alias in aliases:
            if re.search(rf"\b(pelle|skin)\s+(e\s+|molto\s+|abbastanza\s+|un po\s+|piuttosto\s+)?{alias}\b", normalized):
                return canonical
            if re.search(rf"\b{alias}\s+skin\b", normalized):
                return canonical
    return None


def match_skin_type_answer(text: str) -> str | None:
    normalized = normalize_text(text)
    for canonical, aliases in SKIN_TYPE_ALIASES:
        if any(re.search(rf"\b{alias}\b", normalized) for alias in aliases):
            return canonical
    return None


def age_band(age: int) -> str | None:
    if age < 10 or age > 110:
        return None
    if age <= 25:
        return "16-25"
    if age <= 35:
        return "26-35"
    if age <= 45:
        return "36-45"
    if age <= 55:
        return "46-55"
    return "56+"


def extract_age(text: str) -> str | None:
    normalized = normalize_text(text)
    match = re.search(r"\b(\d{2})\s*anni\b", normalized) or re.search(r"\bho\s+(\d{2})\b", normalized)
    if not match:
        return None
    return age_band(int(match.group(1)))


def match_age_answer(text: str) -> str | None:
    normalized = normalize_text(text).replace(" ", "")
    for band in AGE_BANDS:
        if band.replace(" ", "") in normalized:
            return band
    match = re.fullmatch(r"(\d{2})(anni)?", normalized)
    if match:
        return age_band(int(match.group(1)))
    return extract_age(text)


def extract_skin_problems(text: str) -> list[str]:
    normalized = normalize_text(text)
    found: list[str] = []
    for canonical, aliases in ISSUE_ALIASES:
        if canonical not in found and any(re.search(rf"\b{alias}", normalized) for alias in aliases):
            found.append(canonical)
    return found


def extract_main_issue(text: str) -> str | None:
    problems = extract_skin_problems(text)
    return problems[0] if problems else None


def parse_skin_analysis(payload: Any) -> SkinAnalysisReport | None:
    """
    Accept a score report as a dict, a JSON string, or message text carrying
    'Analisi AI della pelle: {...}'. Returns None when nothing usable is found.
    """
    data = payload
    if isinstance(payload, str):
        match = ANALYSIS_MARKER.search(payload)
        if not match:
            return None
        try:
            data = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            logger.warning("Skin analysis payload is not valid JSON", extra={"reason": str(e)})
            return None

    if not isinstance(data, dict):
        return None

    scores: dict[str, int] = {}
    for key in SKIN_PARAMETERS:
        value = data.get(key)
        if value is None:
            continue
        score = _finite_score(value)
        if score is None:
            logger.warning("Skin analysis score is not a finite number", extra={"reason": key})
            continue
        scores[key] = max(0, min(100, score))

    if not scores:
        return None

    overall = data.get("punteggio_generale")
    overall_score = _finite_score(overall) if overall is not None else None
    return SkinAnalysisReport(scores=scores, overall_score=overall_score)


def parse_analysis_reply(text: str) -> SkinAnalysisReport | None:
    """Score report from a model reply that should be a bare JSON object, fenced or not."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parse_skin_analysis(data)


def _finite_score(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return int(round(number))


def analysis_concerns(report: SkinAnalysisReport) -> list[tuple[str, int]]:
    """(issue, level) for every parameter past the concern threshold, strongest first."""
    concerns: list[tuple[str, int]] = []
    for parameter, issue in ANALYSIS_ISSUES:
        level = report.concern_level(parameter)
        if level < CONCERN_THRESHOLD:
            continue
        if parameter == "rossori" and level >= ROSACEA_THRESHOLD:
            issue = "Rosacea"
        concerns.append((issue, level))
    concerns.sort(key=lambda item: item[1], reverse=True)
    return concerns


def main_issue_from_analysis(report: SkinAnalysisReport) -> str | None:
    concerns = analysis_concerns(report)
    return concerns[0][0] if concerns else None


def problems_from_analysis(report: SkinAnalysisReport) -> list[str]:
    out: list[str] = []
    for issue, _ in analysis_concerns(report):
        if issue not in out:
            out.append(issue)
    return out
