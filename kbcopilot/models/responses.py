"""Response shapes returned by the agent pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from kbcopilot.models.answer import Answer, CitationCoverage
from kbcopilot.models.governance import ModerationResult
from kbcopilot.models.pipeline import TraceEntry


class ResponseMetadata(BaseModel):
    """Everything about a completed request except the answer itself."""

    model_config = ConfigDict(frozen=True)

    correlation_id: str
    audit_id: str | None = None
    prompt_sha: str = ""
    model: str = ""
    input_tokens: int | None = None
    output_tokens: int | None = None
    processing_time_ms: float = 0.0
    vector_store: str = ""
    retrieved_chunks: int = 0
    traces: list[TraceEntry] = Field(default_factory=list)
    input_moderation: ModerationResult | None = None
    output_moderation: ModerationResult | None = None
    low_confidence: bool = False
    blocked: bool = False
    citation_coverage: CitationCoverage | None = None


class AskResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    answer: Answer
    conversation_id: str | None = None
    metadata: ResponseMetadata


class DraftLetterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    body: str
    placeholders: list[str] = Field(default_factory=list)
    policy_references: list[str] = Field(default_factory=list)
    conversation_id: str | None = None
    metadata: ResponseMetadata
