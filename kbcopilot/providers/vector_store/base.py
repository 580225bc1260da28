"""Helpers shared by every vector-store backend.

The ranking rules of the search contract live here once: exact cosine with
numpy, best score per chunk, ``min_score`` floor, ``(-score, chunk_id)``
ordering, ``top_k`` cut.  Backends that get candidates from an approximate
index re-score them with :func:`cosine_scores` and pass them through
:func:`rank_candidates`, so all four stores order ties the same way.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import numpy as np

from kbcopilot.models.rag import Chunk, Embedding, SearchResult
from kbcopilot.utils.errors import DimensionMismatchError, ValidationError


def cosine_scores(matrix: Any, query: Any) -> np.ndarray:
    """Cosine similarity of every row of *matrix* with *query*.

    Zero vectors score 0.0.  Results are clipped to ``[-1, 1]`` to absorb
    floating-point overshoot.
    """
    m = np.asarray(matrix, dtype=np.float64)
    q = np.asarray(query, dtype=np.float64)
    if m.ndim == 1:
        m = m.reshape(1, -1)
    if m.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    norms = np.linalg.norm(m, axis=1) * np.linalg.norm(q)
    dots = m @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / norms, 0.0)
    return np.clip(scores, -1.0, 1.0)


def rank_candidates(
    candidates: Iterable[tuple[Chunk, float]],
    top_k: int,
    min_score: float,
) -> list[SearchResult]:
    """Apply the search contract to raw ``(chunk, score)`` candidates."""
    if top_k <= 0:
        return []
    best: dict[str, tuple[Chunk, float]] = {}
    for chunk, score in candidates:
        current = best.get(chunk.id)
        if current is None or score > current[1]:
            best[chunk.id] = (chunk, float(score))

    kept = [(c, s) for c, s in best.values() if s >= min_score]
    kept.sort(key=lambda item: (-item[1], item[0].id))
    return [
        SearchResult(chunk=c, score=max(-1.0, min(1.0, s)))
        for c, s in kept[:top_k]
    ]


def check_dimension(
    expected: int | None,
    actual: int,
    provider_name: str,
    model: str,
) -> None:
    """Raise :class:`DimensionMismatchError` when *actual* differs from *expected*."""
    if expected is not None and expected != actual:
        raise DimensionMismatchError(
            message=(
                f"Vector length {actual} does not match the {expected} dimensions "
                f"stored for model '{model}'"
            ),
            provider_name=provider_name,
            expected=expected,
            actual=actual,
        )


def check_pairing(chunk: Chunk, embedding: Embedding, provider_name: str) -> None:
    """Raise :class:`ValidationError` when *embedding* belongs to another chunk."""
    if embedding.chunk_id != chunk.id:
        raise ValidationError(
            message=f"Embedding for chunk {embedding.chunk_id} given with chunk {chunk.id}",
            provider_name=provider_name,
        )


# ---------------------------------------------------------------------------
# Flat metadata encoding (ChromaDB and Pinecone metadata only take scalars)
# ---------------------------------------------------------------------------

def chunk_to_metadata(chunk: Chunk, model: str) -> dict[str, str]:
    return {
        "chunk_id": chunk.id,
        "model": model,
        "title": chunk.title,
        "section": chunk.section,
        "source_path": chunk.source_path,
        "hash": chunk.hash,
        "created_at": chunk.created_at.isoformat(),
        "metadata_json": json.dumps(chunk.metadata, sort_keys=True),
    }


def metadata_to_chunk(meta: dict[str, Any], text: str) -> Chunk:
    return Chunk(
        id=str(meta["chunk_id"]),
        text=text,
        title=str(meta.get("title", "")),
        section=str(meta.get("section", "")),
        source_path=str(meta.get("source_path", "")),
        hash=str(meta.get("hash", "")),
        created_at=datetime.fromisoformat(str(meta["created_at"])),
        metadata=json.loads(meta.get("metadata_json") or "{}"),
    )
