"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement :class:`IVectorStoreProvider`.
Each embedding model gets its own cosine-space HNSW collection (a Chroma
collection holds one vector length), tagged with the model name and
dimension in its metadata.  Fully local, no external service required.

HNSW is approximate: candidates come from the index, then every candidate
is re-scored exactly from its returned vector and re-sorted, so scores and
tie ordering match the exact stores.  Only recall can differ.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  A version mismatch
# between ChromaDB's bundled PostHog client and the installed one raises
# "capture() takes 1 positional argument but 3 were given" on every call.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.models.rag import Chunk, Embedding, SearchResult
from kbcopilot.providers.vector_store.base import (
    check_dimension,
    check_pairing,
    chunk_to_metadata,
    cosine_scores,
    metadata_to_chunk,
    rank_candidates,
)
from kbcopilot.utils.errors import (
    DimensionMismatchError,
    KnowledgeBaseError,
    StoreUnavailableError,
)

logger = structlog.get_logger(logger_name=__name__)

_PAGE_SIZE = 5000
# Extra candidates pulled from HNSW before exact re-scoring.
_OVERFETCH = 2


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """Keeps ChromaDB from loading its default ONNX model.

    Vectors are always computed by an :class:`IEmbeddingProvider` and passed
    explicitly, so Chroma's own embedding is never invoked.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError("kbcopilot passes pre-computed embeddings to ChromaDB")

    def name(self) -> str:
        return "noop_precomputed"


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store backed by ChromaDB with local persistence.

    Parameters
    ----------
    persist_directory:
        Where ChromaDB keeps its SQLite + HNSW files.
    collection_name:
        Prefix for the per-model collections.
    client:
        Pre-built Chroma client (tests pass ``chromadb.EphemeralClient()``).
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "kbcopilot",
        client: Any | None = None,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._client = client
        self._lock = asyncio.Lock()
        # model -> collection, filled by initialize() and first upserts
        self._collections: dict[str, Any] = {}
        self._dimensions: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        async with self._lock:
            await self._run(self._load_collections)
        logger.info(
            "chromadb_initialized",
            persist_directory=self._persist_directory,
            models=sorted(self._collections),
        )

    async def health_check(self) -> bool:
        try:
            await self._run(lambda: self._get_client().heartbeat())
        except StoreUnavailableError as exc:
            logger.warning("chromadb_health_check_failed", error=str(exc))
            return False
        return True

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = chromadb.PersistentClient(
                path=self._persist_directory,
                settings=chromadb.config.Settings(anonymized_telemetry=False),
            )
        return self._client

    def _load_collections(self) -> None:
        client = self._get_client()
        prefix = f"{self._collection_name}_"
        for item in client.list_collections():
            # Older chromadb returns Collection objects, 0.6 returns names.
            name = item if isinstance(item, str) else item.name
            if not name.startswith(prefix):
                continue
            try:
                collection = client.get_collection(name=name, embedding_function=_NoopEmbeddingFunction())
            except ValueError:
                # Collection persisted with another embedding function; the
                # vectors are always supplied explicitly, so open it as-is.
                collection = client.get_collection(name=name)
            meta = collection.metadata or {}
            model = meta.get("kb_model")
            if model:
                self._collections[model] = collection
                self._dimensions[model] = int(meta["kb_dimension"])

    def _collection_for(self, model: str, dimension: int) -> Any:
        collection = self._collections.get(model)
        if collection is not None:
            return collection
        digest = hashlib.sha256(model.encode("utf-8")).hexdigest()[:12]
        name = f"{self._collection_name}_{digest}"
        metadata = {"hnsw:space": "cosine", "kb_model": model, "kb_dimension": dimension}
        try:
            collection = self._get_client().get_or_create_collection(
                name=name, metadata=metadata, embedding_function=_NoopEmbeddingFunction()
            )
        except ValueError:
            collection = self._get_client().get_or_create_collection(name=name, metadata=metadata)
        self._collections[model] = collection
        self._dimensions[model] = dimension
        return collection

    async def _run(self, fn: Any, *args: Any) -> Any:
        """Run a blocking Chroma call in a worker thread, wrapping its errors."""
        try:
            return await asyncio.to_thread(fn, *args)
        except KnowledgeBaseError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(
                message=f"ChromaDB call failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, chunk: Chunk, embedding: Embedding) -> None:
        await self.upsert_batch([(chunk, embedding)])

    async def upsert_batch(self, items: list[tuple[Chunk, Embedding]]) -> int:
        if not items:
            return 0
        by_model: dict[str, list[tuple[Chunk, Embedding]]] = {}
        for chunk, embedding in items:
            check_pairing(chunk, embedding, self.get_provider_name())
            by_model.setdefault(embedding.model, []).append((chunk, embedding))

        async with self._lock:
            for model, pairs in by_model.items():
                expected = self._dimensions.get(model, pairs[0][1].dimension)
                for _, embedding in pairs:
                    check_dimension(expected, embedding.dimension, self.get_provider_name(), model)

            for model, pairs in by_model.items():
                await self._run(self._upsert_sync, model, pairs)

        logger.info("chromadb_upsert_batch", count=len(items), models=sorted(by_model))
        return len(items)

    def _upsert_sync(self, model: str, pairs: list[tuple[Chunk, Embedding]]) -> None:
        collection = self._collection_for(model, pairs[0][1].dimension)
        collection.upsert(
            ids=[c.id for c, _ in pairs],
            embeddings=[list(e.vector) for _, e in pairs],
            documents=[c.text for c, _ in pairs],
            metadatas=[chunk_to_metadata(c, model) for c, _ in pairs],
        )

    async def delete(self, chunk_id: str) -> bool:
        async with self._lock:
            return await self._run(self._delete_sync, chunk_id)

    def _delete_sync(self, chunk_id: str) -> bool:
        removed = False
        for collection in self._collections.values():
            existing = collection.get(ids=[chunk_id], include=[])
            if existing["ids"]:
                collection.delete(ids=[chunk_id])
                removed = True
        return removed

    async def clear(self) -> int:
        async with self._lock:
            removed = len(await self._run(self._all_ids))
            await self._run(self._drop_collections)
        logger.info("chromadb_cleared", removed=removed)
        return removed

    def _drop_collections(self) -> None:
        client = self._get_client()
        for collection in self._collections.values():
            client.delete_collection(name=collection.name)
        self._collections.clear()
        self._dimensions.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, chunk_id: str) -> Chunk | None:
        return await self._run(self._get_sync, chunk_id)

    def _get_sync(self, chunk_id: str) -> Chunk | None:
        for collection in self._collections.values():
            found = collection.get(ids=[chunk_id], include=["documents", "metadatas"])
            if found["ids"]:
                return metadata_to_chunk(found["metadatas"][0], found["documents"][0])
        return None

    async def count(self) -> int:
        return len(await self._run(self._all_ids))

    def _all_ids(self) -> set[str]:
        ids: set[str] = set()
        for collection in self._collections.values():
            for page in self._pages(collection, include=[]):
                ids.update(page["ids"])
        return ids

    async def list_hashes(self) -> set[str]:
        return await self._run(self._hashes_sync)

    def _hashes_sync(self) -> set[str]:
        hashes: set[str] = set()
        for collection in self._collections.values():
            for page in self._pages(collection, include=["metadatas"]):
                hashes.update(m["hash"] for m in page["metadatas"] or [] if m.get("hash"))
        return hashes

    @staticmethod
    def _pages(collection: Any, include: list[str]) -> Any:
        offset = 0
        while True:
            page = collection.get(include=include, limit=_PAGE_SIZE, offset=offset)
            if not page["ids"]:
                return
            yield page
            if len(page["ids"]) < _PAGE_SIZE:
                return
            offset += _PAGE_SIZE

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        min_score: float = 0.0,
        model: str | None = None,
    ) -> list[SearchResult]:
        if top_k <= 0:
            return []
        dim = len(query_vector)
        if model is not None:
            check_dimension(self._dimensions.get(model), dim, self.get_provider_name(), model)
            models = [model] if model in self._collections else []
        else:
            models = [m for m, d in self._dimensions.items() if d == dim]
            if self._dimensions and not models:
                raise DimensionMismatchError(
                    message=f"No stored model has {dim}-dimensional vectors",
                    provider_name=self.get_provider_name(),
                    expected=next(iter(self._dimensions.values())),
                    actual=dim,
                )

        candidates: list[tuple[Chunk, float]] = []
        for m in models:
            candidates.extend(await self._run(self._query_sync, m, query_vector, top_k))

        results = rank_candidates(candidates, top_k, min_score)
        logger.info(
            "chromadb_query",
            models=models,
            candidates=len(candidates),
            results_count=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    def _query_sync(self, model: str, query_vector: list[float], top_k: int) -> list[tuple[Chunk, float]]:
        collection = self._collections[model]
        total = collection.count()
        if total == 0:
            return []
        raw = collection.query(
            query_embeddings=[list(query_vector)],
            n_results=min(total, top_k * _OVERFETCH),
            include=["documents", "metadatas", "embeddings"],
        )
        ids = raw["ids"][0] if raw["ids"] else []
        if not ids:
            return []
        documents = raw["documents"][0]
        metadatas = raw["metadatas"][0]
        scores = cosine_scores(raw["embeddings"][0], query_vector)
        return [
            (metadata_to_chunk(meta, doc), float(score))
            for meta, doc, score in zip(metadatas, documents, scores, strict=True)
        ]

    @property
    def score_tolerance(self) -> float:
        # Scores are exact after re-scoring; the bound covers HNSW recall misses
        # on near-tied candidates.
        return 0.01

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        return True
