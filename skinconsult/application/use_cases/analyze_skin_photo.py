from __future__ import annotations

import logging

from skinconsult.application.exceptions import LLMRequestError, LLMUpstreamError
from skinconsult.application.ports.llm import TextCompletionPort
from skinconsult.application.utils.attempts import attempt
from skinconsult.application.utils.auto_extraction import parse_analysis_reply
from skinconsult.application.utils.prompts import SKIN_PHOTO_INSTRUCTION, SKIN_PHOTO_REQUEST
from skinconsult.domain.entities.completion import CompletionRequest
from skinconsult.domain.entities.session import ChatTurn, InlineImage
from skinconsult.domain.entities.skin_analysis import SkinAnalysisReport


class SkinPhotoAnalysisUseCase:
    """
    Score a face photo on the skin parameters with the vision model.

    An unreadable reply is asked for again up to `max_retries` times. When no usable report
    comes back the result is None and the caller keeps the generic acknowledgement.
    """

    def __init__(
        self,
        llm: TextCompletionPort,
        max_retries: int = 1,
        temperature: float = 0.2,
        max_output_tokens: int = 512,
    ) -> None:
        self._llm = llm
        self._max_retries = max_retries
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._logger = logging.getLogger(__name__)

    def analyze(
        self,
        image: InlineImage,
        session_id: str | None = None,
        deadline: float | None = None,
    ) -> SkinAnalysisReport | None:
        request = CompletionRequest(
            turns=(ChatTurn(speaker="user", text=SKIN_PHOTO_REQUEST, image=image),),
            system_instruction=SKIN_PHOTO_INSTRUCTION,
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
            deadline=deadline,
        )

        def score(index: int) -> SkinAnalysisReport | None:
            try:
                reply = self._llm.complete(request)
            except (LLMUpstreamError, LLMRequestError) as e:
                self._logger.warning(
                    "Skin photo analysis failed",
                    extra={"session_id": session_id, "attempt": index + 1, "reason": str(e)},
                )
                return None
            report = parse_analysis_reply(reply)
            if report is None:
                self._logger.warning(
                    "Skin photo analysis reply is not a score report",
                    extra={"session_id": session_id, "attempt": index + 1},
                )
            return report

        result = attempt(score, self._max_retries)
        if result.value is None:
            self._logger.warning("No skin scores for photo", extra={"session_id": session_id, "attempt": result.attempts})
            return None

        self._logger.info(
            "Skin photo analysed",
            extra={"session_id": session_id, "reason": ",".join(f"{k}={v}" for k, v in result.value.scores.items())},
        )
        return result.value
