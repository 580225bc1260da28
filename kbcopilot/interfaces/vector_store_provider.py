"""Abstract base class for vector-store providers.

Defines the contract for storing embedded chunks and searching them by
cosine similarity.  Four backends implement it (JSON file, ChromaDB,
PostgreSQL + pgvector, Pinecone); the retrieval and ingestion layers only
ever see this interface, and every backend must return the same results
for the same data (exact backends) or stay within :attr:`score_tolerance`
of them (approximate backends).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbcopilot.models.rag import Chunk, Embedding, SearchResult


# Concrete implementations: JsonVectorStore, ChromaDBProvider,
# PgVectorProvider, PineconeProvider (kbcopilot/providers/vector_store/).
# Selected once at startup by VectorStoreFactory from ``vector_store.type``.
class IVectorStoreProvider(ABC):
    """Contract for vector stores used by ingestion and retrieval.

    Vectors are keyed by ``(chunk_id, model)``: a chunk may hold one
    embedding per embedding model.  Every vector stored under one model has
    the same length; a query or upsert with another length raises
    :class:`~kbcopilot.utils.errors.DimensionMismatchError`.

    **Search contract** (all backends):

    * results in descending cosine similarity, each score in ``[-1, 1]``;
    * results with ``score < min_score`` are excluded;
    * equal scores are ordered by ascending chunk id;
    * at most one result per chunk;
    * ``top_k <= 0`` returns an empty list.

    A write is visible to the next read on the same instance.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create the collection / table / index when missing.  Called at startup.

        Raises
        ------
        kbcopilot.utils.errors.StoreUnavailableError
            If the backend cannot be reached.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` when a trivial round trip to the backend succeeds."""

    @abstractmethod
    async def upsert(self, chunk: Chunk, embedding: Embedding) -> None:
        """Insert or overwrite *chunk* and its vector under ``embedding.model``.

        Parameters
        ----------
        chunk:
            The chunk to store; ``chunk.id`` is the key.
        embedding:
            Its vector.  ``embedding.chunk_id`` must equal ``chunk.id``.

        Raises
        ------
        kbcopilot.utils.errors.DimensionMismatchError
            If the vector length differs from vectors already stored for the
            same model.
        kbcopilot.utils.errors.StoreUnavailableError
            If the backend cannot be reached.
        """

    @abstractmethod
    async def upsert_batch(self, items: list[tuple[Chunk, Embedding]]) -> int:
        """Upsert many ``(chunk, embedding)`` pairs.

        Returns
        -------
        int
            The number of pairs written.
        """

    @abstractmethod
    async def get_by_id(self, chunk_id: str) -> Chunk | None:
        """Return the stored chunk, or ``None`` when absent."""

    @abstractmethod
    async def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        min_score: float = 0.0,
        model: str | None = None,
    ) -> list[SearchResult]:
        """Return up to *top_k* chunks most similar to *query_vector*.

        Parameters
        ----------
        query_vector:
            The embedded query.
        top_k:
            Maximum number of results.
        min_score:
            Cosine similarity floor; results below it are dropped.
        model:
            Restrict the search to vectors of this embedding model.  ``None``
            searches every model whose dimension matches the query and keeps
            each chunk's best score.

        Raises
        ------
        kbcopilot.utils.errors.DimensionMismatchError
            If *model* is given and its stored dimension differs from the
            query length, or if no stored model matches the query length.
        """

    @abstractmethod
    async def count(self) -> int:
        """Return the number of distinct chunks stored."""

    @abstractmethod
    async def delete(self, chunk_id: str) -> bool:
        """Delete a chunk with every embedding it has.

        Returns
        -------
        bool
            ``True`` when something was removed.
        """

    @abstractmethod
    async def clear(self) -> int:
        """Remove everything; return the number of chunks removed."""

    @abstractmethod
    async def list_hashes(self) -> set[str]:
        """Return the content hashes of every stored chunk."""

    @property
    def score_tolerance(self) -> float:
        """Documented bound on score error versus an exact search.

        ``0.0`` for exact backends.  Approximate indexes override it.
        """
        return 0.0

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the backend identifier, e.g. ``"json"`` or ``"pgvector"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials, paths)."""
