"""
Tests for the product catalog index.
"""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

from fakes import load_catalog

from skinconsult.application.utils.routine_steps import CLEANSE, PROTECT, TREAT, is_evening_only, routine_step_of
from skinconsult.infrastructure.knowledge.product_catalog import ProductCatalog, load_catalog_records


def test_find_exact_is_case_insensitive_and_keeps_display_casing():
    catalog = load_catalog()
    product = catalog.find_exact("m-eye secret")
    assert product.name == "M-Eye Secret"
    assert product.price == "€32,90"
    assert product.url == "https://beautycology.it/prodotto/m-eye-secret-contorno-occhi-multipeptide/"
    assert catalog.find_exact("Crema Defense") is None
    assert catalog.find_exact("") is None


def test_category_synonyms():
    """Category words resolve to the whole category before falling back to keywords."""
    catalog = load_catalog()
    assert {p.name for p in catalog.find_by_category_or_keyword("Siero")} == {"C-Boost", "Let's Glow", "Retinal Bomb"}
    assert [p.name for p in catalog.find_by_category_or_keyword("una crema contorno occhi")] == ["M-Eye Secret"]
    assert [p.name for p in catalog.find_by_category_or_keyword("spf")] == ["Invisible Shield"]
    assert [p.name for p in catalog.find_by_category_or_keyword("Prodotti corpo")] == ["Bodylicious"]


def test_keyword_search_over_ingredients():
    catalog = load_catalog()
    names = {p.name for p in catalog.find_by_category_or_keyword("retinaldeide")}
    assert "Retinal Bomb" in names
    assert catalog.find_by_category_or_keyword("   ") == []


def test_score_by_problem_orders_by_relevance():
    """Acne signals rank the azelaic acid treatment first; the skin type breaks near-ties."""
    catalog = load_catalog()
    scored = catalog.score_by_problem(["Acne/Brufoli"], skin_type="Grassa")
    assert scored[0].product.name == "Perfect & Pure"
    assert [s.score for s in scored] == sorted((s.score for s in scored), reverse=True)
    assert "acido azelaico" in scored[0].reason
    assert catalog.score_by_problem([]) == []


def test_find_mentioned_ignores_separators_and_prefers_longer_names():
    catalog = load_catalog()
    text = "Usa la MOUSSE-AWAY e poi la Routine Pelle Mista con C Boost."
    assert [p.name for p in catalog.find_mentioned(text)] == ["Mousse Away", "Routine Pelle Mista", "C-Boost"]
    assert catalog.find_mentioned("Nessun prodotto qui") == []


def test_all_names_and_products():
    catalog = load_catalog()
    assert len(catalog.all_products()) == len(catalog.all_names())
    assert "Bionic HydraLift" in catalog.all_names()


def test_missing_or_malformed_file_gives_empty_catalog():
    """An empty catalog is valid: every lookup comes back empty."""
    with tempfile.TemporaryDirectory() as tmpdir:
        assert load_catalog_records(Path(tmpdir) / "missing.json") == []

        bad = Path(tmpdir) / "bad.json"
        bad.write_text("{oops", encoding="utf-8")
        catalog = ProductCatalog.from_file(bad)
        assert catalog.all_products() == []
        assert catalog.find_exact("Hydra Gel") is None
        assert catalog.find_by_category_or_keyword("siero") == []
        assert catalog.score_by_problem(["acne"]) == []
        assert catalog.find_mentioned("Hydra Gel") == []


def test_records_without_name_or_url_are_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "products.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(
                [
                    {"name": "Solo Nome"},
                    {"name": "Completo", "url": "https://beautycology.it/prodotto/completo/", "category": "Sieri"},
                    "not a record",
                ],
                f,
            )
        assert [p.name for p in load_catalog_records(path)] == ["Completo"]


def test_routine_steps_from_categories():
    catalog = load_catalog()
    assert routine_step_of(catalog.find_exact("Mousse Away")) == CLEANSE
    assert routine_step_of(catalog.find_exact("Multipod Gel")) == TREAT
    assert routine_step_of(catalog.find_exact("Invisible Shield")) == PROTECT
    assert routine_step_of(catalog.find_exact("Routine Pelle Mista")) is None
    assert routine_step_of(catalog.find_exact("Bodylicious")) is None
    assert is_evening_only(catalog.find_exact("Retinal Bomb"))
    assert not is_evening_only(catalog.find_exact("C-Boost"))
