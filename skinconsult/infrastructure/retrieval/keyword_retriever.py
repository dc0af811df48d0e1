from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from skinconsult.application.ports.retrieval import RetrievalPort
from skinconsult.application.utils.text_rules import strip_accents
from skinconsult.domain.entities.retrieval import RetrievedSnippet

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIXES = (".md", ".txt")
MIN_SIMILARITY = 0.05


@dataclass(frozen=True)
class DocumentChunk:
    text: str
    source_label: str
    words: frozenset[str]


def tokenize(text: str) -> frozenset[str]:
    return frozenset(w for w in re.findall(r"[a-z0-9]+", strip_accents(text.lower())) if len(w) > 2)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def split_into_chunks(text: str, max_chars: int = 1000) -> list[str]:
    """Paragraph chunks, merged up to max_chars."""
    chunks: list[str] = []
    current = ""
    for paragraph in re.split(r"\n\s*\n", text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if current and len(current) + len(paragraph) + 2 > max_chars:
            chunks.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph
    if current:
        chunks.append(current)
    return chunks


class KeywordRetriever(RetrievalPort):
    def __init__(self, chunks: list[DocumentChunk] | None = None) -> None:
        self._chunks = list(chunks or [])

    @classmethod
    def from_directory(cls, directory: str | Path, max_chars: int = 1000) -> "KeywordRetriever":
        root = Path(directory)
        if not root.is_dir():
            logger.warning("Knowledge base directory not found", extra={"reason": str(root)})
            return cls()
        retriever = cls()
        for path in sorted(root.rglob("*")):
            if path.suffix.lower() not in DOCUMENT_SUFFIXES or not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable document", extra={"reason": f"{path.name}: {e}"})
                continue
            retriever.add_document(content, source_label=path.stem, max_chars=max_chars)
        logger.info("Knowledge base loaded: %s chunks", len(retriever._chunks))
        return retriever

    def add_document(self, content: str, source_label: str, max_chars: int = 1000) -> None:
        for chunk in split_into_chunks(content, max_chars=max_chars):
            self._chunks.append(DocumentChunk(text=chunk, source_label=source_label, words=tokenize(chunk)))

    def search(self, query: str, limit: int = 3) -> list[RetrievedSnippet]:
        query_words = tokenize(query or "")
        if not query_words or limit <= 0:
            return []
        scored = [
            (jaccard(query_words, chunk.words), chunk)
            for chunk in self._chunks
        ]
        scored = [(score, chunk) for score, chunk in scored if score > MIN_SIMILARITY]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            RetrievedSnippet(text=chunk.text, source_label=chunk.source_label, relevance_score=round(score, 4))
            for score, chunk in scored[:limit]
        ]
