from abc import ABC, abstractmethod

from skinconsult.domain.entities.completion import CompletionRequest


class TextCompletionPort(ABC):
    @abstractmethod
    def complete(self, request: CompletionRequest) -> str:
        """
        Generate a reply for an ordered conversation.

        Requirements:
        - Turns are sent in order; speaker is "user" or "model"
        - Transient provider failures are retried by the adapter with backoff
        - Return "" when the provider answers without text (not an error)
        - Never keep calling the provider past request.deadline, retries included

        Raises:
            LLMUpstreamError: transient failures after retries are exhausted
            LLMRequestError: non-transient failures (not retried)
        """
        raise NotImplementedError
