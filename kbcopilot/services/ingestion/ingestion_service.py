"""Orchestrator for the document ingestion pipeline.

Pipeline stages: **enumerate -> parse -> chunk -> dedup -> embed -> store**.

:class:`IngestionService` coordinates its collaborators (parser registry,
chunking engine, deduplicator, embedding provider, vector store) without
any of them knowing about each other:

    1. Enumeration -- a directory (recursive, sorted), a ``.zip`` archive
       (extracted to a temporary directory) or a single file
    2. ParserRegistry -- picks a parser by extension
    3. ChunkingEngine -- overlapping character windows
    4. ChunkDeduplicator -- drops chunks whose content hash is already
       claimed in this run or already stored
    5. IEmbeddingProvider + IVectorStoreProvider -- embed and upsert in
       batches, falling back to one chunk at a time when a batch fails

Files run concurrently under a semaphore.  A file that fails is reported
in the :class:`~kbcopilot.models.rag.IngestReport` and never aborts the
run; the report keeps enumeration order.
"""

from __future__ import annotations

import asyncio
import tempfile
import time
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from kbcopilot.models.rag import (
    Chunk,
    ChunkingOptions,
    Embedding,
    FileReport,
    FileStatus,
    IngestReport,
    IngestStatus,
)
from kbcopilot.models.requests import IngestRequest
from kbcopilot.services.ingestion.chunker import ChunkingEngine
from kbcopilot.services.ingestion.deduplicator import ChunkDeduplicator
from kbcopilot.utils.concurrency import throttled_gather
from kbcopilot.utils.errors import (
    EmbeddingError,
    KnowledgeBaseError,
    UnsupportedOperationError,
    ValidationError,
)

if TYPE_CHECKING:
    from kbcopilot.interfaces.embedding_provider import IEmbeddingProvider
    from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
    from kbcopilot.providers.parsers.registry import ParserRegistry

logger = structlog.get_logger(logger_name=__name__)


class _FileOutcome:
    """Per-file result plus the candidate hashes it produced."""

    __slots__ = ("report", "hashes")

    def __init__(self, report: FileReport, hashes: set[str]) -> None:
        self.report = report
        self.hashes = hashes


class IngestionService:
    """Runs ingestion requests against one vector store.

    Parameters
    ----------
    parsers:
        Extension-keyed parser lookup.
    embedding_provider:
        Generates vectors for chunk text.
    vector_store:
        Destination store.
    max_parallel_files:
        Upper bound on files processed at the same time.
    batch_size:
        Chunks embedded and upserted per batch.
    boundary_tolerance:
        Passed to the chunking engine; the request sets size and overlap.
    """

    def __init__(
        self,
        parsers: ParserRegistry,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        max_parallel_files: int = 4,
        batch_size: int = 10,
        boundary_tolerance: int = 100,
    ) -> None:
        self._parsers = parsers
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._max_parallel_files = max(1, max_parallel_files)
        self._batch_size = max(1, batch_size)
        self._boundary_tolerance = boundary_tolerance

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(self, request: IngestRequest) -> IngestReport:
        """Ingest every supported file under ``request.path``.

        Raises
        ------
        ValidationError
            If the path does not exist.
        UnsupportedOperationError
            If the path is a single file of an unsupported type.
        ConfigurationError
            If ``chunk_size <= chunk_overlap``.
        """
        start = time.monotonic()
        engine = ChunkingEngine(
            ChunkingOptions(
                chunk_size=request.chunk_size,
                chunk_overlap=request.chunk_overlap,
                boundary_tolerance=self._boundary_tolerance,
            )
        )
        root = Path(request.path)
        if not root.exists():
            raise ValidationError(message=f"Path not found: {request.path}")
        extensions = {ext.lower() for ext in request.supported_extensions}

        await self._vector_store.initialize()
        dedup = ChunkDeduplicator()

        # The input is enumerated before the store is touched, so a rejected
        # path never wipes an existing index.
        with self._enumerate(root, extensions) as files:
            if request.rebuild_index:
                removed = await self._vector_store.clear()
                logger.info("vector_store_cleared", removed=removed)
            else:
                await dedup.seed(await self._vector_store.list_hashes())

            logger.info("ingest_started", path=request.path, files=len(files), rebuild=request.rebuild_index)
            semaphore = asyncio.Semaphore(self._max_parallel_files)
            results = await throttled_gather(
                [self._ingest_file(path, display, engine, dedup) for path, display in files],
                semaphore,
                return_exceptions=False,
            )

        report = self._build_report(results, start)
        logger.info(
            "ingest_complete",
            status=report.status.value,
            processed=report.processed_files,
            failed=report.failed_files,
            generated=report.generated_chunks,
            skipped=report.skipped_duplicates,
            elapsed_ms=round(report.processing_time_ms, 1),
        )
        return report

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    @contextmanager
    def _enumerate(self, root: Path, extensions: set[str]) -> Iterator[list[tuple[Path, str]]]:
        """Yield ``(path_on_disk, display_path)`` pairs in a stable order.

        For archives the display path is ``archive.zip/inner/path`` since the
        extraction directory is removed when the context exits.
        """
        if root.is_dir():
            yield [(p, str(p)) for p in self._walk(root, extensions)]
            return

        if root.suffix.lower() == ".zip":
            with tempfile.TemporaryDirectory(prefix="kbcopilot-ingest-") as tmp:
                try:
                    with zipfile.ZipFile(root) as archive:
                        archive.extractall(tmp)
                except zipfile.BadZipFile as exc:
                    raise ValidationError(message=f"Invalid zip archive: {root}") from exc
                tmp_root = Path(tmp)
                yield [
                    (p, str(root / p.relative_to(tmp_root)))
                    for p in self._walk(tmp_root, extensions)
                ]
            return

        if root.suffix.lower() not in extensions or not self._parsers.supports(root):
            raise UnsupportedOperationError(
                message=f"Unsupported file type: {root.suffix or '<none>'}",
                provider_name="ingestion",
            )
        yield [(root, str(root))]

    @staticmethod
    def _walk(root: Path, extensions: set[str]) -> list[Path]:
        return sorted(
            p for p in root.rglob("*")
            if p.is_file() and p.suffix.lower() in extensions
        )

    # ------------------------------------------------------------------
    # Per-file pipeline
    # ------------------------------------------------------------------

    async def _ingest_file(
        self,
        path: Path,
        display: str,
        engine: ChunkingEngine,
        dedup: ChunkDeduplicator,
    ) -> _FileOutcome:
        claimed: list[str] = []
        hashes: set[str] = set()
        try:
            parser = self._parsers.parser_for(path)
            parsed = await parser.parse(path)
            candidates = engine.build_chunks(parsed, display)
            hashes = {c.hash for c in candidates}

            fresh: list[Chunk] = []
            for chunk in candidates:
                if await dedup.claim(chunk.hash):
                    fresh.append(chunk)
                    claimed.append(chunk.hash)
            skipped = len(candidates) - len(fresh)

            stored, failed_hashes, last_error = await self._embed_and_store(fresh)
            await dedup.release_all(failed_hashes)
            if fresh and stored == 0:
                raise last_error or EmbeddingError(message="No chunk could be stored")

            logger.debug("file_ingested", path=display, chunks=stored, skipped=skipped)
            return _FileOutcome(
                FileReport(
                    file_name=path.name,
                    file_path=display,
                    chunk_count=stored,
                    skipped_duplicates=skipped,
                ),
                hashes,
            )
        except Exception as exc:  # noqa: BLE001
            await dedup.release_all(claimed)
            message = exc.message if isinstance(exc, KnowledgeBaseError) else str(exc)
            logger.warning("file_ingest_failed", path=display, error=message, error_type=type(exc).__name__)
            return _FileOutcome(
                FileReport(
                    file_name=path.name,
                    file_path=display,
                    status=FileStatus.FAILED,
                    error=message,
                ),
                hashes,
            )

    async def _embed_and_store(
        self, chunks: list[Chunk]
    ) -> tuple[int, list[str], KnowledgeBaseError | None]:
        """Embed and upsert *chunks* in batches.

        Returns the number stored, the hashes of chunks that could not be
        stored, and the last error seen.
        """
        stored = 0
        failed: list[str] = []
        last_error: KnowledgeBaseError | None = None
        model = self._embedding_provider.get_model_name()

        for offset in range(0, len(chunks), self._batch_size):
            batch = chunks[offset : offset + self._batch_size]
            try:
                vectors = await self._embedding_provider.embed([c.text for c in batch])
                if len(vectors) != len(batch):
                    raise EmbeddingError(
                        message=f"Expected {len(batch)} vectors, got {len(vectors)}",
                        provider_name=self._embedding_provider.get_provider_name(),
                    )
                pairs = [
                    (chunk, Embedding(chunk_id=chunk.id, vector=vector, model=model))
                    for chunk, vector in zip(batch, vectors)
                ]
                stored += await self._vector_store.upsert_batch(pairs)
                continue
            except KnowledgeBaseError as exc:
                logger.error("batch_store_failed", chunks=len(batch), error=str(exc))
                last_error = exc

            for chunk in batch:
                try:
                    vector = await self._embedding_provider.embed_single(chunk.text)
                    await self._vector_store.upsert(
                        chunk, Embedding(chunk_id=chunk.id, vector=vector, model=model)
                    )
                    stored += 1
                except KnowledgeBaseError as exc:
                    logger.warning("chunk_store_failed", chunk_id=chunk.id, error=str(exc))
                    failed.append(chunk.hash)
                    last_error = exc

        return stored, failed, last_error

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _build_report(results: list[_FileOutcome], start: float) -> IngestReport:
        per_file = [r.report for r in results]
        succeeded = [f for f in per_file if f.status is FileStatus.SUCCESS]
        failed = [f for f in per_file if f.status is FileStatus.FAILED]

        if not failed:
            status = IngestStatus.SUCCESS
        elif succeeded:
            status = IngestStatus.PARTIAL_SUCCESS
        else:
            status = IngestStatus.FAILED

        unique: set[str] = set()
        for r in results:
            unique.update(r.hashes)

        return IngestReport(
            status=status,
            processed_files=len(succeeded),
            failed_files=len(failed),
            generated_chunks=sum(f.chunk_count for f in succeeded),
            unique_hashes=len(unique),
            skipped_duplicates=sum(f.skipped_duplicates for f in succeeded),
            processing_time_ms=(time.monotonic() - start) * 1000,
            errors=[f"File {f.file_path}: {f.error}" for f in failed],
            per_file=per_file,
        )
