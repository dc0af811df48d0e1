from __future__ import annotations

import re
import unicodedata

SKIN_COMPLAINT_PATTERNS = (
    "ho la pelle",
    "la mia pelle",
    "mia pelle",
    "pelle mi",
    "ho problemi",
    "ho un problema",
    "soffro di",
    "ho brufoli",
    "ho i brufoli",
    "ho l acne",
    "ho acne",
    "mi escono",
    "ho macchie",
    "ho delle macchie",
    "ho le rughe",
    "ho rughe",
    "ho i pori",
    "ho rossori",
    "ho la rosacea",
    "analisi",
    "analizza",
    "consulenza",
    "routine",
    "my skin",
)

PRODUCT_REQUEST_PATTERNS = (
    "cerco un prodotto",
    "cerco una crema",
    "cerco un siero",
    "cerco un detergente",
    "cerco un contorno",
    "cerco una protezione",
    "avete un prodotto",
    "avete una crema",
    "avete un siero",
    "avete qualcosa per",
    "mi consigli un prodotto",
    "mi consigliate un prodotto",
    "che prodotto",
    "quale prodotto",
    "un prodotto per",
    "quanto costa",
    "quanto costano",
    "prezzo",
    "looking for a product",
)

PRICE_PATTERNS = ("quanto costa", "quanto costano", "prezzo", "costo", "price")


def normalize_text(text: str) -> str:
    normalized = strip_accents(text.lower()).replace("'", " ").replace("’", " ")
    normalized = re.sub(r"[^a-z0-9+/\s-]", " ", normalized)
    normalized = re.sub(r"\s+", " ", normalized).strip()
    return normalized


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def compact(text: str) -> str:
    """Lowercase, accent-free, separators removed: 'S.W-R' -> 'swr'."""
    return re.sub(r"[^a-z0-9]", "", strip_accents(text.lower()))


def word_tokens(text: str) -> list[str]:
    return re.findall(r"[a-z0-9]+", strip_accents(text.lower()))


def contains_any(normalized: str, markers: tuple[str, ...]) -> bool:
    return any(marker in normalized for marker in markers)


def is_skin_complaint(text: str) -> bool:
    return contains_any(normalize_text(text), SKIN_COMPLAINT_PATTERNS)


def is_product_request(text: str) -> bool:
    return contains_any(normalize_text(text), PRODUCT_REQUEST_PATTERNS)


def is_price_question(text: str) -> bool:
    return contains_any(normalize_text(text), PRICE_PATTERNS)


def extract_product_query(text: str) -> str | None:
    """Tail of a "looking for a product for X" request: 'cerco un prodotto per le macchie' -> 'le macchie'."""
    normalized = normalize_text(text)
    for pattern in PRODUCT_REQUEST_PATTERNS:
        if pattern in normalized:
            tail = normalized.split(pattern, 1)[-1].strip()
            tail = re.sub(r"^(per|contro|adatto a|adatta a)\s+", "", tail)
            return tail or None
    return None
