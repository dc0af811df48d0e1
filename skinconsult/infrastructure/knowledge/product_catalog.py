from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.utils.text_rules import compact, normalize_text
from skinconsult.domain.entities.product import ProductRecord, ScoredProduct

logger = logging.getLogger(__name__)

CATEGORY_SYNONYMS: dict[str, tuple[str, ...]] = {
    "Detergenti": ("detergente", "detergenti", "cleanser", "struccante", "mousse", "pulizia"),
    "Sieri": ("siero", "sieri", "serum"),
    "Trattamenti": ("trattamento", "trattamenti", "gel", "azelaico"),
    "Creme": ("crema viso", "crema", "creme", "idratante", "moisturizer"),
    "Contorno occhi": ("contorno occhi", "occhi", "occhiaie", "borse"),
    "Protezione solare": ("protezione solare", "solare", "spf", "sole"),
    "Esfolianti": ("esfoliante", "esfolianti", "peeling", "scrub"),
    "Maschere": ("maschera", "maschere", "mask"),
    "Corpo": ("corpo", "body", "prodotti corpo"),
    "Routine": ("routine", "kit"),
}

# problem keyword -> (ingredient/description signal, weight)
PROBLEM_SIGNALS: tuple[tuple[tuple[str, ...], tuple[tuple[str, int], ...]], ...] = (
    (
        ("acne", "brufol", "imperfezion", "tardiva", "punti neri"),
        (("acido azelaico", 30), ("acido salicilico", 25), ("niacinamide", 15), ("sebo", 10), ("imperfezion", 10)),
    ),
    (
        ("macchi", "discrom", "pigment", "melasma"),
        (("vitamina c", 30), ("acido azelaico", 25), ("acido tranexamico", 25), ("niacinamide", 15), ("spf", 10), ("macchi", 10)),
    ),
    (
        ("rugh", "invecchiament", "anti-age", "antiage", "elasticit"),
        (("retinaldeide", 30), ("peptid", 25), ("vitamina c", 15), ("acido ialuronico", 10), ("rugh", 10)),
    ),
    (
        ("rosacea", "couperose", "rossor"),
        (("acido azelaico", 30), ("niacinamide", 15), ("lenitiv", 15), ("rossor", 10)),
    ),
    (
        ("pori", "oleos", "lucid", "sebo"),
        (("acido salicilico", 30), ("niacinamide", 25), ("sebo", 15), ("pori", 10)),
    ),
    (
        ("sensibil", "reattiv", "atopic", "irritat"),
        (("ceramid", 25), ("lenitiv", 20), ("acido lattobionico", 15), ("pelli sensibili", 15)),
    ),
    (
        ("secc", "disidrat", "idrataz"),
        (("acido ialuronico", 25), ("ceramid", 20), ("acido lattobionico", 15), ("idrat", 10)),
    ),
    (
        ("occhiai", "borse", "contorno occhi"),
        (("peptid", 25), ("caffeina", 20), ("occhi", 15)),
    ),
)

SKIN_TYPE_BONUS = 5

SKIN_TYPE_MARKERS = {
    "grassa": ("pelle grassa", "pelli grasse"),
    "mista": ("pelle mista", "pelli miste"),
    "secca": ("pelle secca", "pelli secche"),
    "normale": ("pelle normale", "pelli normali"),
    "asfittica": ("pelle asfittica", "pelli asfittiche"),
}


def _record_from_dict(item: dict[str, Any]) -> ProductRecord | None:
    name = str(item.get("name") or "").strip()
    url = str(item.get("url") or "").strip()
    if not name or not url:
        return None
    return ProductRecord(
        name=name,
        url=url,
        price=str(item.get("price") or ""),
        category=str(item.get("category") or ""),
        description=str(item.get("description") or ""),
        ingredients=tuple(str(i) for i in item.get("ingredients") or ()),
        properties=tuple(str(p) for p in item.get("properties") or ()),
    )


def load_catalog_records(path: str | Path) -> list[ProductRecord]:
    """Read catalog records from a JSON file. Missing or unparseable files yield an empty list."""
    file_path = Path(path)
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("Product catalog file not found", extra={"reason": str(file_path)})
        return []
    except (json.JSONDecodeError, OSError) as e:
        logger.error("Product catalog could not be loaded", extra={"reason": str(e)})
        return []

    items = data.get("products", []) if isinstance(data, dict) else data
    if not isinstance(items, list):
        logger.error("Product catalog has no product list", extra={"reason": str(file_path)})
        return []

    records: list[ProductRecord] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        record = _record_from_dict(item)
        if record is not None:
            records.append(record)
    return records


class ProductCatalog(ProductCatalogPort):
    """
    Read-only product index, loaded once per process.

    Matching is case-insensitive; display keeps the canonical casing.
    An empty catalog is valid and every lookup returns empty results.
    """

    def __init__(self, products: list[ProductRecord] | None = None) -> None:
        self._products: tuple[ProductRecord, ...] = tuple(products or ())
        self._by_name = {p.name.lower(): p for p in self._products}
        self._by_compact = {compact(p.name): p for p in self._products if len(compact(p.name)) >= 5}

    @classmethod
    def from_file(cls, path: str | Path) -> "ProductCatalog":
        records = load_catalog_records(path)
        logger.info("Product catalog loaded: %s products", len(records))
        return cls(records)

    def find_exact(self, name: str) -> ProductRecord | None:
        if not name:
            return None
        return self._by_name.get(name.strip().lower())

    def find_by_category_or_keyword(self, term: str) -> list[ProductRecord]:
        normalized = normalize_text(term or "")
        if not normalized:
            return []

        categories = [
            category
            for category, synonyms in CATEGORY_SYNONYMS.items()
            if any(re.search(rf"\b{re.escape(s)}\b", normalized) for s in synonyms)
        ]
        if categories:
            # The most specific synonym wins: "crema contorno occhi" is eye care, not a face cream.
            categories.sort(key=lambda c: -max(len(s) for s in CATEGORY_SYNONYMS[c] if s in normalized))
            wanted = categories[0]
            matches = [p for p in self._products if p.category == wanted]
            if matches:
                return matches

        matches = [p for p in self._products if normalized in self._haystack(p)]
        if matches:
            return matches
        words = [w for w in normalized.split() if len(w) >= 4]
        return [p for p in self._products if any(w in self._haystack(p) for w in words)]

    def score_by_problem(self, problems: list[str], skin_type: str | None = None) -> list[ScoredProduct]:
        problem_text = normalize_text(" ".join(problems or []))
        if not problem_text:
            return []
        signal_sets = [signals for markers, signals in PROBLEM_SIGNALS if any(m in problem_text for m in markers)]
        skin_markers = SKIN_TYPE_MARKERS.get(normalize_text(skin_type or ""), ())

        scored: list[ScoredProduct] = []
        for product in self._products:
            haystack = self._haystack(product)
            score = 0
            reasons: list[str] = []
            for signals in signal_sets:
                for signal, weight in signals:
                    if signal in haystack:
                        score += weight
                        reasons.append(signal)
            if score == 0:
                continue
            if any(marker in haystack for marker in skin_markers):
                score += SKIN_TYPE_BONUS
                reasons.append(skin_markers[0])
            scored.append(ScoredProduct(product=product, score=score, reason=", ".join(dict.fromkeys(reasons))))

        scored.sort(key=lambda s: s.score, reverse=True)
        return scored

    def find_mentioned(self, text: str) -> list[ProductRecord]:
        if not text or not self._products:
            return []
        squashed = compact(text)
        hits: list[tuple[int, ProductRecord]] = []
        # Longest names first so "Routine Pelle Mista" is not also counted as a shorter name.
        for key in sorted(self._by_compact, key=len, reverse=True):
            position = squashed.find(key)
            if position < 0:
                continue
            squashed = squashed[:position] + "#" * len(key) + squashed[position + len(key):]
            hits.append((position, self._by_compact[key]))
        hits.sort(key=lambda h: h[0])
        return [product for _, product in hits]

    def all_names(self) -> list[str]:
        return [p.name for p in self._products]

    def all_products(self) -> list[ProductRecord]:
        return list(self._products)

    @staticmethod
    def _haystack(product: ProductRecord) -> str:
        return normalize_text(
            " ".join((product.name, product.description, *product.ingredients, *product.properties))
        )
