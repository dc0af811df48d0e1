"""
Tests for the knowledge-base keyword retriever.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from skinconsult.infrastructure.retrieval.keyword_retriever import (
    KeywordRetriever,
    jaccard,
    split_into_chunks,
    tokenize,
)

KNOWLEDGE_BASE = Path(__file__).resolve().parents[1] / "data" / "knowledge-base"


def test_tokenize_drops_short_words_and_accents():
    assert tokenize("L'acido è più forte") == frozenset({"acido", "piu", "forte"})


def test_jaccard_similarity():
    assert jaccard(frozenset({"a", "b"}), frozenset({"b", "c"})) == 1 / 3
    assert jaccard(frozenset(), frozenset({"a"})) == 0.0


def test_split_into_chunks_merges_paragraphs_up_to_limit():
    text = "uno\n\ndue\n\n" + "x" * 30
    assert split_into_chunks(text, max_chars=12) == ["uno\n\ndue", "x" * 30]
    assert split_into_chunks("   \n\n  ") == []


def test_search_ranks_by_overlap_and_respects_limit():
    retriever = KeywordRetriever()
    retriever.add_document("La retinaldeide riduce le rughe e migliora la texture.", source_label="ingredienti")
    retriever.add_document("La vitamina C illumina e attenua le macchie.", source_label="ingredienti")
    retriever.add_document("Spedizione gratuita sopra i 49 euro.", source_label="faq")

    results = retriever.search("retinaldeide per le rughe")
    assert results[0].source_label == "ingredienti"
    assert "retinaldeide" in results[0].text
    assert all(r.relevance_score > 0.05 for r in results)
    assert len(retriever.search("retinaldeide rughe macchie vitamina", limit=1)) == 1


def test_search_without_matches_or_query():
    retriever = KeywordRetriever()
    retriever.add_document("La vitamina C illumina.", source_label="ingredienti")
    assert retriever.search("spedizione") == []
    assert retriever.search("") == []
    assert retriever.search("vitamina", limit=0) == []


def test_from_directory_loads_markdown_documents():
    retriever = KeywordRetriever.from_directory(KNOWLEDGE_BASE, max_chars=200)
    results = retriever.search("come si usa la retinaldeide la sera")
    assert results
    assert {r.source_label for r in results} <= {"ingredienti", "routine", "faq"}


def test_from_missing_directory_is_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        retriever = KeywordRetriever.from_directory(Path(tmpdir) / "nope")
        assert retriever.search("retinaldeide") == []
