"""Request shapes for the ingest, ask, draft and evaluation operations.

Field constraints are validated by pydantic at construction; entry points
convert pydantic's own error into :class:`~kbcopilot.utils.errors.ValidationError`
so callers only ever catch kbcopilot exceptions.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_EXTENSIONS: tuple[str, ...] = (".pdf", ".html", ".htm", ".md", ".markdown", ".txt")


class IngestRequest(BaseModel):
    """Ingest a directory, a ``.zip`` archive or a single file."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(min_length=1, max_length=500)
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    rebuild_index: bool = False
    supported_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))


class AskRequest(BaseModel):
    """Ask a question against the knowledge base."""

    model_config = ConfigDict(frozen=True)

    question: str = Field(min_length=1, max_length=2000)
    conversation_id: str | None = Field(default=None, max_length=100)
    user_id: str | None = Field(default=None, max_length=100)
    # Prompt token budget for this request (context + memory + question).
    max_tokens: int = Field(default=2000, gt=0)
    top_k: int = Field(default=10, ge=1, le=100)
    enable_rerank: bool = False


class DraftLetterRequest(BaseModel):
    """Draft a letter grounded in the knowledge base."""

    model_config = ConfigDict(frozen=True)

    purpose: str = Field(min_length=1, max_length=500)
    points: list[str] = Field(min_length=1)
    case_id: str | None = Field(default=None, max_length=100)
    conversation_id: str | None = Field(default=None, max_length=100)
    user_id: str | None = Field(default=None, max_length=100)
    max_tokens: int = Field(default=2000, gt=0)
    top_k: int = Field(default=10, ge=1, le=100)
    enable_rerank: bool = False


class EvaluationRequest(BaseModel):
    """Run the golden dataset through the ask pipeline."""

    model_config = ConfigDict(frozen=True)

    dataset_path: str = Field(min_length=1, max_length=500)
    report_path: str | None = Field(default=None, max_length=500)
    max_concurrent: int = Field(default=5, ge=1, le=50)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_tokens: int = Field(default=500, gt=0)
    top_k: int = Field(default=10, ge=1, le=100)
