"""Lexical re-ranking of vector search results.

The blended relevance is ``0.7 * cosine + 0.3 * overlap`` where overlap is
the share of the query's key terms (lower-cased, stopwords removed) that
appear in the chunk text or its title.  Both parts are bounded, so the
blended score stays within ``[-1, 1]``.  Ties go to the lower chunk id.
"""

from __future__ import annotations

from kbcopilot.models.rag import SearchResult
from kbcopilot.utils.text import key_terms

VECTOR_WEIGHT = 0.7
LEXICAL_WEIGHT = 0.3


def lexical_overlap(query: str, text: str) -> float:
    terms = key_terms(query)
    if not terms:
        return 0.0
    return len(terms & key_terms(text)) / len(terms)


class Reranker:
    """Re-orders search results by blended vector + lexical relevance."""

    def __init__(self, vector_weight: float = VECTOR_WEIGHT, lexical_weight: float = LEXICAL_WEIGHT) -> None:
        self._vector_weight = vector_weight
        self._lexical_weight = lexical_weight

    def score(self, query: str, result: SearchResult) -> float:
        chunk = result.chunk
        overlap = lexical_overlap(query, f"{chunk.title} {chunk.section} {chunk.text}")
        blended = self._vector_weight * result.score + self._lexical_weight * overlap
        return max(-1.0, min(1.0, blended))

    def rerank(self, query: str, results: list[SearchResult]) -> list[SearchResult]:
        rescored = [r.model_copy(update={"score": self.score(query, r)}) for r in results]
        return sorted(rescored, key=lambda r: (-r.score, r.chunk.id))
