"""Pydantic v2 models for the ingestion / retrieval layer.

Defines the retrieval unit (:class:`Chunk`), its vector (:class:`Embedding`),
search hits, the parser hand-off format (:class:`ParsedDocument`), chunking
options and the ingestion report.  All models are frozen; "changing" one
means ``model_copy(update={...})``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from kbcopilot.utils.text import content_hash


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Chunk - the content-addressed retrieval unit.
# ---------------------------------------------------------------------------
class Chunk(BaseModel):
    """A bounded unit of document text stored and indexed for retrieval.

    Created by the chunking engine, owned by the vector store once upserted.
    ``hash`` is the SHA-256 of the normalized text and is the dedup identity;
    ``id`` is a random uuid so two documents can never collide on it.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique chunk identifier (uuid4 string).")
    text: str = Field(description="Chunk text as stored and shown in citations.")
    title: str = Field(default="", description="Title of the source document.")
    section: str = Field(default="", description="Section heading the text came from.")
    source_path: str = Field(default="", description="Path of the ingested file.")
    hash: str = Field(description="SHA-256 hex digest of the normalized text.")
    created_at: datetime = Field(default_factory=_utcnow)
    # Flat string map so every backend (JSON, Chroma, Postgres JSONB,
    # Pinecone metadata) can store it without type juggling.
    metadata: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def create(
        cls,
        text: str,
        title: str = "",
        section: str = "",
        source_path: str = "",
        metadata: dict[str, str] | None = None,
    ) -> Chunk:
        """Build a new chunk with a fresh id and the content hash of *text*."""
        return cls(
            id=str(uuid.uuid4()),
            text=text,
            title=title,
            section=section,
            source_path=source_path,
            hash=content_hash(text),
            metadata=dict(metadata or {}),
        )


class Embedding(BaseModel):
    """A vector for one chunk under one embedding model.

    One embedding exists per ``(chunk_id, model)`` pair; re-embedding a
    chunk under another model adds a second embedding next to the first.
    """

    model_config = ConfigDict(frozen=True)

    chunk_id: str
    vector: list[float]
    model: str
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def dimension(self) -> int:
        return len(self.vector)


class SearchResult(BaseModel):
    """A chunk returned by a similarity search with its cosine score."""

    model_config = ConfigDict(frozen=True)

    chunk: Chunk
    # Cosine similarity in [-1, 1]; re-ranking may replace it with the
    # blended relevance score (still within [-1, 1]).
    score: float = Field(ge=-1.0, le=1.0)

    @property
    def chunk_id(self) -> str:
        return self.chunk.id


# ---------------------------------------------------------------------------
# Parser hand-off
# ---------------------------------------------------------------------------
class ParsedSection(BaseModel):
    """One titled section of a parsed document."""

    model_config = ConfigDict(frozen=True)

    title: str
    content: str
    level: int = 1


class ParsedDocument(BaseModel):
    """What a document parser returns for one file."""

    model_config = ConfigDict(frozen=True)

    title: str
    sections: list[ParsedSection] = Field(default_factory=list)
    raw_text: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
class ChunkingOptions(BaseModel):
    """Window settings for the chunking engine.  Unit: characters."""

    model_config = ConfigDict(frozen=True)

    chunk_size: int = 1000
    chunk_overlap: int = 200
    # How far (in characters) the window end may move back to land on a
    # paragraph, sentence or word boundary.
    boundary_tolerance: int = 100


class ChunkSpan(BaseModel):
    """One chunk of a document before it becomes a :class:`Chunk` entity."""

    model_config = ConfigDict(frozen=True)

    text: str
    section: str
    index: int
    total_chunks: int
    section_level: int = 1


# ---------------------------------------------------------------------------
# Ingestion report
# ---------------------------------------------------------------------------
class FileStatus(str, Enum):  # noqa: UP042
    """Outcome of ingesting one file."""

    SUCCESS = "success"
    FAILED = "failed"


class IngestStatus(str, Enum):  # noqa: UP042
    """Outcome of an ingestion batch.

    ``PARTIAL_SUCCESS`` is the degraded-success case: some files failed but
    the report still reflects every file that made it into the store.
    """

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


class FileReport(BaseModel):
    """Per-file line of the ingestion report."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    file_path: str
    # New chunks stored for this file.
    chunk_count: int = 0
    # Candidates dropped because their hash was already seen or stored.
    skipped_duplicates: int = 0
    status: FileStatus = FileStatus.SUCCESS
    error: str | None = None


class IngestReport(BaseModel):
    """Summary of one ingestion batch."""

    model_config = ConfigDict(frozen=True)

    status: IngestStatus = IngestStatus.SUCCESS
    processed_files: int = 0
    failed_files: int = 0
    generated_chunks: int = 0
    unique_hashes: int = 0
    skipped_duplicates: int = 0
    processing_time_ms: float = 0.0
    errors: list[str] = Field(default_factory=list)
    per_file: list[FileReport] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        """True for full and degraded success."""
        return self.status is not IngestStatus.FAILED
