"""PostgreSQL + pgvector vector store provider.

Two tables: ``kb_chunks`` (one row per chunk) and ``kb_embeddings`` (one
row per ``(chunk_id, model)``, cascading on chunk delete).  The vector
column is untyped so several models with different lengths can coexist;
the length is kept in ``dimension`` and checked on every write and query.

Search runs in SQL with the cosine distance operator ``<=>``: best model
per chunk via ``DISTINCT ON``, then ``ORDER BY score DESC, id ASC``.  With
no ANN index on the untyped column the scan is exact.  ``<=>`` yields NaN
for a zero vector, which PostgreSQL sorts above every number, so such a
distance scores 0.0.

SQLAlchemy's engine is synchronous (psycopg 3 driver); every call runs in a
worker thread and the connection pool provides per-call serialization.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Table,
    Text,
    bindparam,
    create_engine,
    delete,
    func,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.models.rag import Chunk, Embedding, SearchResult
from kbcopilot.providers.vector_store.base import check_dimension, check_pairing
from kbcopilot.utils.errors import DimensionMismatchError, KnowledgeBaseError, StoreUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_metadata = MetaData()

chunks_table = Table(
    "kb_chunks",
    _metadata,
    Column("id", Text, primary_key=True),
    Column("text", Text, nullable=False),
    Column("title", Text, nullable=False, server_default=""),
    Column("section", Text, nullable=False, server_default=""),
    Column("source_path", Text, nullable=False, server_default=""),
    Column("hash", Text, nullable=False, index=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("metadata", JSONB, nullable=False, server_default="{}"),
)

embeddings_table = Table(
    "kb_embeddings",
    _metadata,
    Column("chunk_id", Text, ForeignKey("kb_chunks.id", ondelete="CASCADE"), primary_key=True),
    Column("model", Text, primary_key=True),
    Column("dimension", Integer, nullable=False),
    Column("embedding", Vector(), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

_SEARCH_SQL = """
    SELECT id, text, title, section, source_path, hash, created_at, metadata, score
    FROM (
        SELECT DISTINCT ON (c.id)
               c.id, c.text, c.title, c.section, c.source_path, c.hash,
               c.created_at, c.metadata,
               CASE WHEN (e.embedding <=> :query_vec) = 'NaN'::float8 THEN 0.0
                    ELSE 1 - (e.embedding <=> :query_vec) END AS score
        FROM kb_embeddings e
        JOIN kb_chunks c ON c.id = e.chunk_id
        WHERE e.dimension = :dim {model_filter}
        ORDER BY c.id, score DESC
    ) best
    WHERE score >= :min_score
    ORDER BY score DESC, id ASC
    LIMIT :top_k
"""


class PgVectorProvider(IVectorStoreProvider):
    """Vector store backed by PostgreSQL with the pgvector extension.

    Parameters
    ----------
    database_url:
        SQLAlchemy URL, e.g. ``postgresql+psycopg://user:pw@host/db``.
    engine:
        Pre-built engine (overrides *database_url*).
    """

    def __init__(self, database_url: str = "", engine: Engine | None = None) -> None:
        self._database_url = database_url
        self._engine = engine

    def _get_engine(self) -> Engine:
        if self._engine is None:
            if not self._database_url:
                raise StoreUnavailableError(
                    message="DATABASE_URL is not configured",
                    provider_name=self.get_provider_name(),
                )
            self._engine = create_engine(
                self._database_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        return self._engine

    async def _run(self, fn: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except KnowledgeBaseError:
            raise
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(
                message=f"PostgreSQL call failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        await self._run(self._initialize_sync)
        logger.info("pgvector_initialized")

    def _initialize_sync(self) -> None:
        engine = self._get_engine()
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        _metadata.create_all(engine)

    async def health_check(self) -> bool:
        try:
            await self._run(self._ping)
        except StoreUnavailableError as exc:
            logger.warning("pgvector_health_check_failed", error=str(exc))
            return False
        return True

    def _ping(self) -> None:
        with self._get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, chunk: Chunk, embedding: Embedding) -> None:
        await self.upsert_batch([(chunk, embedding)])

    async def upsert_batch(self, items: list[tuple[Chunk, Embedding]]) -> int:
        if not items:
            return 0
        for chunk, embedding in items:
            check_pairing(chunk, embedding, self.get_provider_name())
        await self._run(self._upsert_sync, items)
        logger.info("pgvector_upsert_batch", count=len(items))
        return len(items)

    def _upsert_sync(self, items: list[tuple[Chunk, Embedding]]) -> None:
        with self._get_engine().begin() as conn:
            stored = self._dimensions(conn)
            for _, embedding in items:
                check_dimension(
                    stored.get(embedding.model), embedding.dimension,
                    self.get_provider_name(), embedding.model,
                )
                stored.setdefault(embedding.model, embedding.dimension)

            chunk_rows = [
                {
                    "id": c.id,
                    "text": c.text,
                    "title": c.title,
                    "section": c.section,
                    "source_path": c.source_path,
                    "hash": c.hash,
                    "created_at": c.created_at,
                    "metadata": c.metadata,
                }
                for c, _ in items
            ]
            stmt = pg_insert(chunks_table).values(chunk_rows)
            conn.execute(
                stmt.on_conflict_do_update(
                    index_elements=[chunks_table.c.id],
                    set_={
                        col: stmt.excluded[col]
                        for col in ("text", "title", "section", "source_path", "hash", "created_at", "metadata")
                    },
                )
            )

            embedding_rows = [
                {
                    "chunk_id": e.chunk_id,
                    "model": e.model,
                    "dimension": e.dimension,
                    "embedding": list(e.vector),
                    "created_at": e.created_at,
                }
                for _, e in items
            ]
            stmt = pg_insert(embeddings_table).values(embedding_rows)
            conn.execute(
                stmt.on_conflict_do_update(
                    index_elements=[embeddings_table.c.chunk_id, embeddings_table.c.model],
                    set_={
                        "dimension": stmt.excluded.dimension,
                        "embedding": stmt.excluded.embedding,
                        "created_at": stmt.excluded.created_at,
                    },
                )
            )

    @staticmethod
    def _dimensions(conn: Any) -> dict[str, int]:
        rows = conn.execute(
            select(embeddings_table.c.model, embeddings_table.c.dimension).distinct()
        ).all()
        return {row.model: int(row.dimension) for row in rows}

    async def delete(self, chunk_id: str) -> bool:
        def _delete() -> bool:
            with self._get_engine().begin() as conn:
                result = conn.execute(delete(chunks_table).where(chunks_table.c.id == chunk_id))
                return result.rowcount > 0

        return await self._run(_delete)

    async def clear(self) -> int:
        def _clear() -> int:
            with self._get_engine().begin() as conn:
                removed = conn.execute(select(func.count()).select_from(chunks_table)).scalar_one()
                conn.execute(delete(embeddings_table))
                conn.execute(delete(chunks_table))
                return int(removed)

        removed = await self._run(_clear)
        logger.info("pgvector_cleared", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, chunk_id: str) -> Chunk | None:
        def _get() -> Chunk | None:
            with self._get_engine().connect() as conn:
                row = conn.execute(
                    select(chunks_table).where(chunks_table.c.id == chunk_id)
                ).mappings().first()
            return _row_to_chunk(row) if row is not None else None

        return await self._run(_get)

    async def count(self) -> int:
        def _count() -> int:
            with self._get_engine().connect() as conn:
                return int(conn.execute(select(func.count()).select_from(chunks_table)).scalar_one())

        return await self._run(_count)

    async def list_hashes(self) -> set[str]:
        def _hashes() -> set[str]:
            with self._get_engine().connect() as conn:
                return set(conn.execute(select(chunks_table.c.hash).distinct()).scalars())

        return await self._run(_hashes)

    async def search(
        self,
        query_vector: list[float],
        top_k: int = 10,
        min_score: float = 0.0,
        model: str | None = None,
    ) -> list[SearchResult]:
        if top_k <= 0:
            return []
        results = await self._run(self._search_sync, list(query_vector), top_k, min_score, model)
        logger.info(
            "pgvector_query",
            results_count=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    def _search_sync(
        self,
        query_vector: list[float],
        top_k: int,
        min_score: float,
        model: str | None,
    ) -> list[SearchResult]:
        dim = len(query_vector)
        with self._get_engine().connect() as conn:
            stored = self._dimensions(conn)
            if model is not None:
                check_dimension(stored.get(model), dim, self.get_provider_name(), model)
            elif stored and dim not in stored.values():
                raise DimensionMismatchError(
                    message=f"No stored model has {dim}-dimensional vectors",
                    provider_name=self.get_provider_name(),
                    expected=next(iter(stored.values())),
                    actual=dim,
                )

            sql = _SEARCH_SQL.format(model_filter="AND e.model = :model" if model is not None else "")
            params: dict[str, Any] = {
                "query_vec": query_vector,
                "dim": dim,
                "min_score": min_score,
                "top_k": top_k,
            }
            if model is not None:
                params["model"] = model
            stmt = text(sql).bindparams(bindparam("query_vec", type_=Vector()))
            rows = conn.execute(stmt, params).mappings().all()

        return [
            SearchResult(chunk=_row_to_chunk(row), score=max(-1.0, min(1.0, float(row["score"]))))
            for row in rows
        ]

    def get_provider_name(self) -> str:
        return "pgvector"

    def is_available(self) -> bool:
        return bool(self._database_url) or self._engine is not None


def _row_to_chunk(row: Any) -> Chunk:
    return Chunk(
        id=row["id"],
        text=row["text"],
        title=row["title"] or "",
        section=row["section"] or "",
        source_path=row["source_path"] or "",
        hash=row["hash"],
        created_at=row["created_at"],
        metadata={str(k): str(v) for k, v in (row["metadata"] or {}).items()},
    )
