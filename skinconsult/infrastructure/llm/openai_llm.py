from __future__ import annotations

import logging
import time
from typing import Any

import openai
from openai import OpenAI
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential_jitter,
)

from skinconsult.application.exceptions import LLMRequestError, LLMUpstreamError
from skinconsult.application.ports.llm import TextCompletionPort
from skinconsult.domain.entities.completion import CompletionRequest
from skinconsult.domain.entities.session import ChatTurn

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient LLM error, retrying",
        extra={"attempt": retry_state.attempt_number, "reason": type(error).__name__ if error else None},
    )


def _to_message(turn: ChatTurn) -> dict[str, Any]:
    role = "assistant" if turn.speaker == "model" else "user"
    if turn.image is None or role != "user":
        return {"role": role, "content": turn.text}
    parts: list[dict[str, Any]] = []
    if turn.text:
        parts.append({"type": "text", "text": turn.text})
    parts.append(
        {
            "type": "image_url",
            "image_url": {"url": f"data:{turn.image.mime_type};base64,{turn.image.base64}"},
        }
    )
    return {"role": role, "content": parts}


class OpenAILLM(TextCompletionPort):
    """
    OpenAI-backed adapter implementing TextCompletionPort.

    Contract guarantees:
    - complete returns the generated text, "" when the provider sends none
    - Transient failures are retried with exponential backoff, bounded by attempts and total time
    - Total time is the request deadline when one is set (the rest of the chat turn), otherwise
      `default_budget_seconds`; each HTTP call gets at most what is left of it
    - Raises:
        LLMUpstreamError: transient failures after retries are exhausted
        LLMRequestError: any other provider error, not retried
    """

    def __init__(
        self,
        api_key: str | None,
        model: str,
        timeout_seconds: float = 30.0,
        max_attempts: int = 4,
        default_budget_seconds: float = 60.0,
        wait_initial: float = 1.0,
        wait_max: float = 8.0,
        client: Any | None = None,
    ) -> None:
        self.client = client or OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self._model = model
        self._max_attempts = max_attempts
        self._timeout_seconds = timeout_seconds
        self._default_budget_seconds = default_budget_seconds
        self._wait_initial = wait_initial
        self._wait_max = wait_max

    def complete(self, request: CompletionRequest) -> str:
        messages: list[dict[str, Any]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.extend(_to_message(turn) for turn in request.turns)

        deadline = request.deadline
        if deadline is None:
            deadline = time.monotonic() + self._default_budget_seconds

        def create() -> Any:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LLMUpstreamError("Turn time budget exhausted before calling OpenAI")
            return self.client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=request.temperature,
                max_tokens=request.max_output_tokens,
                timeout=min(self._timeout_seconds, remaining),
            )

        retrying = Retrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            stop=stop_after_attempt(self._max_attempts) | stop_after_delay(max(0.0, deadline - time.monotonic())),
            wait=wait_exponential_jitter(initial=self._wait_initial, max=self._wait_max, jitter=self._wait_initial),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            response = retrying(create)
        except TRANSIENT_ERRORS as e:
            raise LLMUpstreamError(f"OpenAI unavailable: {type(e).__name__}: {e}") from e
        except openai.APIError as e:
            raise LLMRequestError(f"OpenAI rejected request: {type(e).__name__}: {e}") from e

        if not response.choices:
            return ""
        content = response.choices[0].message.content
        return (content or "").strip()
