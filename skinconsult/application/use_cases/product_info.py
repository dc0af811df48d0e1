from __future__ import annotations

import logging

from skinconsult.application.ports.product_catalog import ProductCatalogPort
from skinconsult.application.use_cases.resolve_recommendation import SHOP_DOMAIN
from skinconsult.application.utils.auto_extraction import extract_skin_problems
from skinconsult.application.utils.templates import ensure_closing, no_product_found, product_card
from skinconsult.application.utils.text_rules import extract_product_query, is_price_question
from skinconsult.domain.entities.product import ProductRecord


class ProductInfoUseCase:
    """Answers product questions straight from the catalog, without the LLM."""

    def __init__(self, catalog: ProductCatalogPort, shop_url: str = SHOP_DOMAIN, limit: int = 3) -> None:
        self._catalog = catalog
        self._shop_url = shop_url
        self._limit = limit
        self._logger = logging.getLogger(__name__)

    def answer(self, text: str, session_id: str | None = None) -> str:
        mentioned = self._catalog.find_mentioned(text)
        if mentioned:
            products = mentioned[: self._limit]
            if len(products) == 1:
                intro = f"Ecco le informazioni su **{products[0].name}**:"
                if is_price_question(text) and products[0].price:
                    intro = f"**{products[0].name}** costa {products[0].price}."
            else:
                intro = "Ecco le informazioni sui prodotti che mi hai chiesto:"
        else:
            products = self._search(text)
            intro = "Ecco i prodotti che ti consiglio:"

        self._logger.info(
            "Product info answered",
            extra={"session_id": session_id, "intent": "product_info", "reason": f"products={len(products)}"},
        )
        if not products:
            return ensure_closing(no_product_found(self._shop_url))

        cards = "\n\n".join(product_card(p) for p in products)
        return ensure_closing(f"{intro}\n\n{cards}")

    def _search(self, text: str) -> list[ProductRecord]:
        query = extract_product_query(text) or text
        candidates = self._catalog.find_by_category_or_keyword(query)
        problems = extract_skin_problems(text)
        if problems:
            ranked = [s.product for s in self._catalog.score_by_problem(problems)]
            if candidates:
                order = {p.name: i for i, p in enumerate(ranked)}
                candidates = sorted(candidates, key=lambda p: order.get(p.name, len(order)))
            else:
                candidates = ranked
        return candidates[: self._limit]
