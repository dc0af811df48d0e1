from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from skinconsult.application.exceptions import LLMRequestError, LLMUpstreamError
from skinconsult.application.ports.llm import TextCompletionPort
from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.use_cases.validate_response import ResponseValidator
from skinconsult.application.utils.attempts import attempt
from skinconsult.application.utils.prompts import build_repair_prompt
from skinconsult.application.utils.templates import ensure_closing, inject_routine_kit
from skinconsult.domain.entities.completion import CompletionRequest
from skinconsult.domain.entities.product import RecommendationBundle
from skinconsult.domain.entities.session import ChatTurn
from skinconsult.domain.entities.validation import ValidationIssue

REPAIR_SYSTEM_INSTRUCTION = "Sei un revisore di testi. Correggi solo i riferimenti ai prodotti."


@dataclass(frozen=True)
class RepairOutcome:
    text: str
    issues: tuple[ValidationIssue, ...]
    attempts: int
    used_fallback: bool


class ResponseRepairUseCase:
    """
    Validate a draft, allow a bounded number of correction passes, then fall back to a template.

    The returned text always ends with the closing sentence, and carries the routine kit
    link whenever a bundle is given.
    """

    def __init__(
        self,
        llm: TextCompletionPort,
        catalog: ProductCatalogPort,
        validator: ResponseValidator,
        max_repairs: int = 1,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
    ) -> None:
        self._llm = llm
        self._catalog = catalog
        self._validator = validator
        self._max_repairs = max_repairs
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._logger = logging.getLogger(__name__)

    def finalize(
        self,
        draft: str,
        fallback: Callable[[], str],
        bundle: RecommendationBundle | None = None,
        generic_bundle: bool = False,
        session_id: str | None = None,
        deadline: float | None = None,
    ) -> RepairOutcome:
        draft = (draft or "").strip()
        if not draft:
            self._logger.info("Empty draft, using fallback", extra={"session_id": session_id})
            return self._finish(fallback(), (), 0, True, bundle, generic_bundle)

        initial_issues = tuple(self._validator.validate(draft))
        issues_by_text: dict[str, list[ValidationIssue]] = {draft: [i for i in initial_issues if i.blocking]}
        previous = [draft]

        def blocking(text: str) -> list[ValidationIssue]:
            if text not in issues_by_text:
                issues_by_text[text] = self._validator.blocking_issues(text)
            return issues_by_text[text]

        def candidate(index: int) -> str | None:
            if index == 0:
                return draft
            source = previous[-1]
            corrected = self._request_correction(source, blocking(source), index, session_id, deadline)
            if corrected:
                previous.append(corrected)
            return corrected

        result = attempt(candidate, self._max_repairs, accept=lambda text: not blocking(text))

        if result.exhausted or result.value is None:
            remaining = blocking(previous[-1])
            self._logger.warning(
                "Response still invalid after repair, using fallback",
                extra={
                    "session_id": session_id,
                    "attempt": result.attempts,
                    "issues": ",".join(sorted({i.kind.value for i in remaining})),
                },
            )
            return self._finish(fallback(), initial_issues, result.attempts, True, bundle, generic_bundle)

        if result.attempts > 1:
            self._logger.info("Response repaired", extra={"session_id": session_id, "attempt": result.attempts})
        return self._finish(result.value, initial_issues, result.attempts, False, bundle, generic_bundle)

    def _request_correction(
        self,
        text: str,
        issues: list[ValidationIssue],
        index: int,
        session_id: str | None,
        deadline: float | None,
    ) -> str | None:
        request = CompletionRequest(
            turns=(ChatTurn(speaker="user", text=build_repair_prompt(text, issues, self._catalog.all_products())),),
            system_instruction=REPAIR_SYSTEM_INSTRUCTION,
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
            deadline=deadline,
        )
        try:
            corrected = self._llm.complete(request).strip()
        except (LLMUpstreamError, LLMRequestError) as e:
            self._logger.warning(
                "Repair pass failed",
                extra={"session_id": session_id, "attempt": index, "reason": str(e)},
            )
            return None
        return corrected or None

    @staticmethod
    def _finish(
        text: str,
        issues: tuple[ValidationIssue, ...],
        attempts: int,
        used_fallback: bool,
        bundle: RecommendationBundle | None,
        generic_bundle: bool,
    ) -> RepairOutcome:
        if bundle is not None:
            text = inject_routine_kit(text, bundle, generic=generic_bundle)
        return RepairOutcome(
            text=ensure_closing(text),
            issues=issues,
            attempts=attempts,
            used_fallback=used_fallback,
        )
