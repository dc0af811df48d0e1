from __future__ import annotations

import re

from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.use_cases.resolve_recommendation import SHOP_DOMAIN
from skinconsult.application.utils.routine_steps import EVENING_STEPS, MORNING_STEPS, STEP_LABELS, routine_step_of
from skinconsult.application.utils.text_rules import word_tokens
from skinconsult.domain.entities.validation import IssueKind, ValidationIssue

# Lowercased, separator-stripped names of products that do not exist.
FORBIDDEN_PRODUCT_TOKENS = frozenset(
    {
        "swr",
        "defense",
        "defence",
        "cremadefense",
        "cremadefence",
        "defensecrema",
        "defencecrema",
        "defensecream",
        "defencecream",
    }
)

MAX_TOKEN_WINDOW = 3

URL_PATTERN = re.compile(r"(?:https?://|www\.)[^\s<>()\[\]\"'`]+", re.IGNORECASE)
URL_TRAILING = ".,;:!?*_"

GENERIC_TERMS = r"detergente|crema|siero|tonico|maschera|esfoliante|contorno occhi|protezione solare"

MORNING_HEADER = re.compile(r"mattin[oa]|morning|🌅", re.IGNORECASE)
EVENING_HEADER = re.compile(r"\bsera\b|serale|evening|notte|🌙", re.IGNORECASE)
HEADER_PREFIXES = ("#", "**", "🌅", "🌙", "☀")
SECTION_BREAK_PREFIXES = ("#", "💫")


def find_forbidden_names(text: str) -> list[str]:
    """Denylisted tokens found in text, tolerant of casing and separators ('S.W.R', 'Crema_Defense')."""
    tokens = word_tokens(text)
    found: list[str] = []
    for start in range(len(tokens)):
        joined = ""
        for token in tokens[start : start + MAX_TOKEN_WINDOW]:
            joined += token
            if joined in FORBIDDEN_PRODUCT_TOKENS and joined not in found:
                found.append(joined)
    return found


def find_urls(text: str) -> list[str]:
    return [match.rstrip(URL_TRAILING) for match in URL_PATTERN.findall(text)]


def _is_header(line: str, pattern: re.Pattern[str], other: re.Pattern[str]) -> bool:
    stripped = line.strip()
    if not stripped or not pattern.search(stripped) or other.search(stripped):
        return False
    return "routine" in stripped.lower() or stripped.startswith(HEADER_PREFIXES)


def split_routine_sections(text: str) -> tuple[str, str] | None:
    """(morning, evening) section texts, or None unless both sections are present."""
    lines = text.splitlines()
    morning_at = next((i for i, line in enumerate(lines) if _is_header(line, MORNING_HEADER, EVENING_HEADER)), None)
    evening_at = next((i for i, line in enumerate(lines) if _is_header(line, EVENING_HEADER, MORNING_HEADER)), None)
    if morning_at is None or evening_at is None:
        return None

    def section(start: int, stop: int | None) -> str:
        end = len(lines) if stop is None else stop
        body = []
        for line in lines[start + 1 : end]:
            if stop is None and line.strip().startswith(SECTION_BREAK_PREFIXES):
                break
            body.append(line)
        return "\n".join(body)

    if morning_at < evening_at:
        return section(morning_at, evening_at), section(evening_at, None)
    return section(morning_at, None), section(evening_at, morning_at)


class ResponseValidator:
    """
    Side-effect free checks of generated text against the product catalog.

    Blocking kinds: forbidden-product, missing-link, foreign-url, incomplete-routine-step.
    generic-reference is reported but never blocks.
    """

    def __init__(self, catalog: ProductCatalogPort, approved_domain: str = SHOP_DOMAIN, brand_name: str = "Beautycology") -> None:
        self._catalog = catalog
        self._approved_domain = approved_domain
        brand = re.escape(brand_name.lower())
        self._generic_reference = re.compile(
            rf"\b(?:{brand}\s+(?:{GENERIC_TERMS})|(?:{GENERIC_TERMS})\s+(?:di\s+)?{brand})\b",
            re.IGNORECASE,
        )

    def validate(self, text: str) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        issues += self._forbidden_names(text)
        issues += self._missing_links(text)
        issues += self._foreign_urls(text)
        issues += self._generic_references(text)
        issues += self._incomplete_routine(text)
        return issues

    def blocking_issues(self, text: str) -> list[ValidationIssue]:
        return [issue for issue in self.validate(text) if issue.blocking]

    def _forbidden_names(self, text: str) -> list[ValidationIssue]:
        return [ValidationIssue(IssueKind.forbidden_product, token) for token in find_forbidden_names(text)]

    def _missing_links(self, text: str) -> list[ValidationIssue]:
        return [
            ValidationIssue(IssueKind.missing_link, f"{product.name} -> {product.url}")
            for product in self._catalog.find_mentioned(text)
            if product.url not in text
        ]

    def _foreign_urls(self, text: str) -> list[ValidationIssue]:
        return [
            ValidationIssue(IssueKind.foreign_url, url)
            for url in find_urls(text)
            if not url.startswith(self._approved_domain)
        ]

    def _generic_references(self, text: str) -> list[ValidationIssue]:
        issues = []
        for line in text.splitlines():
            match = self._generic_reference.search(line)
            if match and not self._catalog.find_mentioned(line):
                issues.append(ValidationIssue(IssueKind.generic_reference, match.group(0)))
        return issues

    def _incomplete_routine(self, text: str) -> list[ValidationIssue]:
        sections = split_routine_sections(text)
        if sections is None:
            return []
        issues = []
        for label, body, required in (
            ("mattina", sections[0], MORNING_STEPS),
            ("sera", sections[1], EVENING_STEPS),
        ):
            covered = {
                routine_step_of(product)
                for product in self._catalog.find_mentioned(body)
                if product.url in text
            }
            for step in required:
                if step not in covered:
                    issues.append(ValidationIssue(IssueKind.incomplete_routine_step, f"{label}: {STEP_LABELS[step]}"))
        return issues
