from dataclasses import dataclass


@dataclass(frozen=True)
class RetrievedSnippet:
    text: str
    source_label: str
    relevance_score: float
