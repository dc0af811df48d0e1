from skinconsult.application.ports.llm import TextCompletionPort
from skinconsult.domain.entities.completion import CompletionRequest


class MockLLM(TextCompletionPort):
    """Offline adapter: an empty generation sends every turn down the deterministic path."""

    def complete(self, request: CompletionRequest) -> str:
        return ""
