from abc import ABC, abstractmethod

from skinconsult.domain.entities.product import ProductRecord, ScoredProduct


class ProductCatalogPort(ABC):
    @abstractmethod
    def find_exact(self, name: str) -> ProductRecord | None:
        raise NotImplementedError

    @abstractmethod
    def find_by_category_or_keyword(self, term: str) -> list[ProductRecord]:
        """
        Map category synonyms ("detergente", "cleanser", "struccante", ...) to catalog entries.
        Falls back to substring search over name and description.
        """
        raise NotImplementedError

    @abstractmethod
    def score_by_problem(self, problems: list[str], skin_type: str | None = None) -> list[ScoredProduct]:
        """
        Rank products for the given problems, descending by score.
        Ties keep catalog order. Products with no signal are omitted.
        """
        raise NotImplementedError

    @abstractmethod
    def find_mentioned(self, text: str) -> list[ProductRecord]:
        """Products whose canonical name appears in free text, in order of appearance."""
        raise NotImplementedError

    @abstractmethod
    def all_names(self) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def all_products(self) -> list[ProductRecord]:
        raise NotImplementedError
