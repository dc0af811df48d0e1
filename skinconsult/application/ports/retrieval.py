from abc import ABC, abstractmethod

from skinconsult.domain.entities.retrieval import RetrievedSnippet


class RetrievalPort(ABC):
    @abstractmethod
    def search(self, query: str, limit: int = 3) -> list[RetrievedSnippet]:
        """Return up to `limit` snippets ordered by relevance. An empty list is valid."""
        raise NotImplementedError
