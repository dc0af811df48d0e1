from dataclasses import dataclass


@dataclass(frozen=True)
class ProductRecord:
    name: str
    url: str
    price: str
    category: str
    description: str
    ingredients: tuple[str, ...] = ()
    properties: tuple[str, ...] = ()


@dataclass(frozen=True)
class RecommendationBundle:
    """Routine kit: a named, linked product collection."""

    name: str
    url: str


@dataclass(frozen=True)
class ScoredProduct:
    product: ProductRecord
    score: int
    reason: str
