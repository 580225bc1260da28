"""Pinecone vector store provider.

Managed, approximate cosine index.  Each embedding model lives in its own
namespace; record ids are ``{chunk_id}#{model}`` and the chunk fields travel
as record metadata (``text`` included), so a fetch rebuilds the full chunk
without a second store.

The index dimension is fixed when the index is created; vectors of any
other length raise :class:`DimensionMismatchError` before reaching Pinecone.
The Pinecone client is synchronous, so calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from pinecone import Pinecone, ServerlessSpec

from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.models.rag import Chunk, Embedding, SearchResult
from kbcopilot.providers.vector_store.base import (
    check_dimension,
    check_pairing,
    chunk_to_metadata,
    metadata_to_chunk,
    rank_candidates,
)
from kbcopilot.utils.errors import KnowledgeBaseError, StoreUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_UPSERT_BATCH = 100
_FETCH_BATCH = 100
_OVERFETCH = 2


def record_id(chunk_id: str, model: str) -> str:
    return f"{chunk_id}#{model}"


class PineconeProvider(IVectorStoreProvider):
    """Vector store backed by a Pinecone serverless index.

    Parameters
    ----------
    api_key:
        Pinecone API key.
    index_name:
        Index to use; created on :meth:`initialize` when missing.
    dimension:
        Vector length of the index.
    cloud, region:
        Serverless placement for a newly created index.
    client:
        Pre-built ``Pinecone`` client (tests pass a mock).
    """

    def __init__(
        self,
        api_key: str = "",
        index_name: str = "kbcopilot",
        dimension: int = 1536,
        cloud: str = "aws",
        region: str = "us-east-1",
        client: Any | None = None,
    ) -> None:
        self._api_key = api_key
        self._index_name = index_name
        self._dimension = dimension
        self._cloud = cloud
        self._region = region
        self._client = client
        self._index: Any | None = None

    def _get_client(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise StoreUnavailableError(
                    message="PINECONE_API_KEY is not configured",
                    provider_name=self.get_provider_name(),
                )
            self._client = Pinecone(api_key=self._api_key)
        return self._client

    def _get_index(self) -> Any:
        if self._index is None:
            self._index = self._get_client().Index(self._index_name)
        return self._index

    async def _run(self, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except KnowledgeBaseError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(
                message=f"Pinecone call failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        await self._run(self._initialize_sync)
        logger.info("pinecone_initialized", index=self._index_name, dimension=self._dimension)

    def _initialize_sync(self) -> None:
        client = self._get_client()
        if self._index_name not in client.list_indexes().names():
            client.create_index(
                name=self._index_name,
                dimension=self._dimension,
                metric="cosine",
                spec=ServerlessSpec(cloud=self._cloud, region=self._region),
            )
            logger.info("pinecone_index_created", index=self._index_name)
        self._index = client.Index(self._index_name)

    async def health_check(self) -> bool:
        try:
            await self._run(lambda: self._get_index().describe_index_stats())
        except StoreUnavailableError as exc:
            logger.warning("pinecone_health_check_failed", error=str(exc))
            return False
        return True

    def _namespaces(self) -> list[str]:
        stats = self._get_index().describe_index_stats()
        return sorted((stats.namespaces or {}).keys())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, chunk: Chunk, embedding: Embedding) -> None:
        await self.upsert_batch([(chunk, embedding)])

    async def upsert_batch(self, items: list[tuple[Chunk, Embedding]]) -> int:
        if not items:
            return 0
        by_model: dict[str, list[dict[str, Any]]] = {}
        for chunk, embedding in items:
            check_pairing(chunk, embedding, self.get_provider_name())
            check_dimension(self._dimension, embedding.dimension, self.get_provider_name(), embedding.model)
            by_model.setdefault(embedding.model, []).append(
                {
                    "id": record_id(chunk.id, embedding.model),
                    "values": list(embedding.vector),
                    "metadata": {**chunk_to_metadata(chunk, embedding.model), "text": chunk.text},
                }
            )

        def _upsert() -> None:
            index = self._get_index()
            for model, vectors in by_model.items():
                for start in range(0, len(vectors), _UPSERT_BATCH):
                    index.upsert(vectors=vectors[start:start + _UPSERT_BATCH], namespace=model)

        await self._run(_upsert)
        logger.info("pinecone_upsert_batch", count=len(items), models=sorted(by_model))
        return len(items)

    async def delete(self, chunk_id: str) -> bool:
        def _delete() -> bool:
            index = self._get_index()
            removed = False
            for ns in self._namespaces():
                rid = record_id(chunk_id, ns)
                if index.fetch(ids=[rid], namespace=ns).vectors:
                    index.delete(ids=[rid], namespace=ns)
                    removed = True
            return removed

        return await self._run(_delete)

    async def clear(self) -> int:
        removed = await self.count()

        def _clear() -> None:
            index = self._get_index()
            for ns in self._namespaces():
                index.delete(delete_all=True, namespace=ns)

        await self._run(_clear)
        logger.info("pinecone_cleared", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _all_records(self) -> list[tuple[str, dict[str, Any]]]:
        """Every ``(namespace, metadata)`` pair; pages ids then fetches metadata."""
        index = self._get_index()
        records: list[tuple[str, dict[str, Any]]] = []
        for ns in self._namespaces():
            ids: list[str] = []
            for page in index.list(namespace=ns):
                ids.extend(page)
            for start in range(0, len(ids), _FETCH_BATCH):
                fetched = index.fetch(ids=ids[start:start + _FETCH_BATCH], namespace=ns)
                records.extend((ns, dict(v.metadata or {})) for v in fetched.vectors.values())
        return records

    async def get_by_id(self, chunk_id: str) -> Chunk | None:
        def _get() -> Chunk | None:
            index = self._get_index()
            for ns in self._namespaces():
                fetched = index.fetch(ids=[record_id(chunk_id, ns)], namespace=ns)
                for vector in fetched.vectors.values():
                    meta = dict(vector.metadata or {})
                    return metadata_to_chunk(meta, str(meta.get("text", "")))
            return None

        return await self._run(_get)

    async def count(self) -> int:
        records = await self._run(self._all_records)
        return len({meta["chunk_id"] for _, meta in records})

    async def list_hashes(self) -> set[str]:
        records = await self._run(self._all_records)
        return {str(meta["hash"]) for _, meta in records if meta.get("hash")}

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        min_score: float = 0.0,
        model: str | None = None,
    ) -> list[SearchResult]:
        if top_k <= 0:
            return []
        check_dimension(self._dimension, len(query_vector), self.get_provider_name(), model or "*")

        def _query() -> list[tuple[Chunk, float]]:
            index = self._get_index()
            namespaces = [model] if model is not None else self._namespaces()
            candidates: list[tuple[Chunk, float]] = []
            for ns in namespaces:
                response = index.query(
                    vector=list(query_vector),
                    top_k=top_k * _OVERFETCH,
                    include_metadata=True,
                    namespace=ns,
                )
                for match in response.matches:
                    meta = dict(match.metadata or {})
                    candidates.append((metadata_to_chunk(meta, str(meta.get("text", ""))), float(match.score)))
            return candidates

        candidates = await self._run(_query)
        results = rank_candidates(candidates, top_k, min_score)
        logger.info(
            "pinecone_query",
            candidates=len(candidates),
            results_count=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    @property
    def score_tolerance(self) -> float:
        return 0.01

    def get_provider_name(self) -> str:
        return "pinecone"

    def is_available(self) -> bool:
        return bool(self._api_key) or self._client is not None
