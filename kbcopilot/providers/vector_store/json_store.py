"""In-process vector store persisted to a JSON file.

Exact search: every query scores every stored vector with numpy.  Meant
for local use, tests and small corpora.  All state is guarded by one
``asyncio.Lock``; file writes run in a worker thread and replace the file
atomically.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import numpy as np
import structlog

from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.models.rag import Chunk, Embedding, SearchResult
from kbcopilot.providers.vector_store.base import (
    check_dimension,
    check_pairing,
    cosine_scores,
    rank_candidates,
)
from kbcopilot.utils.errors import DimensionMismatchError, StoreUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class JsonVectorStore(IVectorStoreProvider):
    """Exact cosine store kept in memory and mirrored to *path*.

    Parameters
    ----------
    path:
        JSON file to load from and persist to.  ``None`` keeps the store
        purely in memory.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = asyncio.Lock()
        self._chunks: dict[str, Chunk] = {}
        # chunk_id -> model -> vector
        self._vectors: dict[str, dict[str, list[float]]] = {}
        # model -> vector length
        self._dimensions: dict[str, int] = {}
        self._loaded = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        async with self._lock:
            await self._ensure_loaded()

    async def health_check(self) -> bool:
        try:
            await self.initialize()
        except StoreUnavailableError:
            return False
        return True

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._path is not None and self._path.exists():
            try:
                raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
                payload = json.loads(raw)
            except (OSError, ValueError) as exc:
                raise StoreUnavailableError(
                    message=f"Cannot read vector store file {self._path}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc
            self._chunks = {
                cid: Chunk.model_validate(data) for cid, data in payload.get("chunks", {}).items()
            }
            self._vectors = payload.get("vectors", {})
            self._dimensions = {k: int(v) for k, v in payload.get("dimensions", {}).items()}
            logger.info("json_store_loaded", path=str(self._path), chunks=len(self._chunks))
        self._loaded = True

    async def _persist(self) -> None:
        if self._path is None:
            return
        payload = {
            "chunks": {cid: c.model_dump(mode="json") for cid, c in self._chunks.items()},
            "vectors": self._vectors,
            "dimensions": self._dimensions,
        }
        try:
            await asyncio.to_thread(_atomic_write, self._path, payload)
        except OSError as exc:
            raise StoreUnavailableError(
                message=f"Cannot write vector store file {self._path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _stage(self, chunk: Chunk, embedding: Embedding) -> None:
        check_pairing(chunk, embedding, self.get_provider_name())
        dim = embedding.dimension
        check_dimension(self._dimensions.get(embedding.model), dim, self.get_provider_name(), embedding.model)
        self._dimensions.setdefault(embedding.model, dim)
        self._chunks[chunk.id] = chunk
        self._vectors.setdefault(chunk.id, {})[embedding.model] = list(embedding.vector)

    async def upsert(self, chunk: Chunk, embedding: Embedding) -> None:
        async with self._lock:
            await self._ensure_loaded()
            self._stage(chunk, embedding)
            await self._persist()

    async def upsert_batch(self, items: list[tuple[Chunk, Embedding]]) -> int:
        if not items:
            return 0
        async with self._lock:
            await self._ensure_loaded()
            # Validate the whole batch first so a bad vector leaves no partial write.
            pending: dict[str, int] = {}
            for chunk, embedding in items:
                expected = self._dimensions.get(embedding.model, pending.get(embedding.model))
                check_dimension(expected, embedding.dimension, self.get_provider_name(), embedding.model)
                pending.setdefault(embedding.model, embedding.dimension)
            for chunk, embedding in items:
                self._stage(chunk, embedding)
            await self._persist()
        logger.debug("json_store_upsert_batch", count=len(items))
        return len(items)

    async def delete(self, chunk_id: str) -> bool:
        async with self._lock:
            await self._ensure_loaded()
            if self._chunks.pop(chunk_id, None) is None:
                return False
            self._vectors.pop(chunk_id, None)
            await self._persist()
            return True

    async def clear(self) -> int:
        async with self._lock:
            await self._ensure_loaded()
            removed = len(self._chunks)
            self._chunks.clear()
            self._vectors.clear()
            self._dimensions.clear()
            await self._persist()
        logger.info("json_store_cleared", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, chunk_id: str) -> Chunk | None:
        async with self._lock:
            await self._ensure_loaded()
            return self._chunks.get(chunk_id)

    async def count(self) -> int:
        async with self._lock:
            await self._ensure_loaded()
            return len(self._chunks)

    async def list_hashes(self) -> set[str]:
        async with self._lock:
            await self._ensure_loaded()
            return {c.hash for c in self._chunks.values()}

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        min_score: float = 0.0,
        model: str | None = None,
    ) -> list[SearchResult]:
        if top_k <= 0:
            return []
        async with self._lock:
            await self._ensure_loaded()
            models = self._searchable_models(len(query_vector), model)
            candidates: list[tuple[Chunk, float]] = []
            for m in models:
                ids = [cid for cid, by_model in self._vectors.items() if m in by_model]
                if not ids:
                    continue
                matrix = np.array([self._vectors[cid][m] for cid in ids], dtype=np.float64)
                scores = cosine_scores(matrix, query_vector)
                candidates.extend(
                    (self._chunks[cid], float(s)) for cid, s in zip(ids, scores, strict=True)
                )

        results = rank_candidates(candidates, top_k, min_score)
        logger.debug(
            "json_store_search",
            candidates=len(candidates),
            results=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    def _searchable_models(self, dim: int, model: str | None) -> list[str]:
        if model is not None:
            check_dimension(self._dimensions.get(model), dim, self.get_provider_name(), model)
            return [model] if model in self._dimensions else []
        if not self._dimensions:
            return []
        matching = [m for m, d in self._dimensions.items() if d == dim]
        if not matching:
            raise DimensionMismatchError(
                message=f"No stored model has {dim}-dimensional vectors",
                provider_name=self.get_provider_name(),
                expected=next(iter(self._dimensions.values())),
                actual=dim,
            )
        return matching

    def get_provider_name(self) -> str:
        return "json"

    def is_available(self) -> bool:
        # The parent directory is created on first write.
        return True


def _atomic_write(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
