"""State models for the agent pipeline.

Defines the stage enum, the tagged trace-entry variants, the per-request
token budget, and :class:`OrchestrationContext`, the immutable value every
agent receives and returns.

Architecture note:
    OrchestrationContext is the single source of truth for one request.
    Agents never mutate it; each returns a NEW context built with
    ``model_copy(update={...})`` and appends exactly one trace entry.  The
    orchestrator (kbcopilot/pipeline/orchestrator.py) holds the latest
    context, so whatever happens (success, failure, cancellation) it always
    has the trace up to the last completed step and can audit it.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from kbcopilot.models.answer import Answer, CitationCoverage, LetterDraft
from kbcopilot.models.governance import ModerationAction, ModerationResult, RedactionResult
from kbcopilot.models.memory import ConversationMemory, PersonaMemory
from kbcopilot.models.rag import SearchResult
from kbcopilot.models.requests import AskRequest, DraftLetterRequest


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# PipelineStage - the state machine.
# ---------------------------------------------------------------------------
class PipelineStage(str, Enum):  # noqa: UP042
    """Stages of one request.

        CREATED → ROUTED → RETRIEVED → DRAFTED → VALIDATED → COMPLETED
                                                           ↘ FAILED (from any non-terminal stage)

    Transitions only move forward.  Jumping ahead is allowed (an input
    blocked by moderation goes ROUTED → COMPLETED), going back never is.
    """

    CREATED = "created"
    ROUTED = "routed"
    RETRIEVED = "retrieved"
    DRAFTED = "drafted"
    VALIDATED = "validated"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STAGE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.COMPLETED, PipelineStage.FAILED)


_STAGE_RANK: dict[PipelineStage, int] = {
    PipelineStage.CREATED: 0,
    PipelineStage.ROUTED: 1,
    PipelineStage.RETRIEVED: 2,
    PipelineStage.DRAFTED: 3,
    PipelineStage.VALIDATED: 4,
    PipelineStage.COMPLETED: 5,
    PipelineStage.FAILED: 5,
}


class RequestIntent(str, Enum):  # noqa: UP042
    ASK = "ask"
    DRAFT = "draft"
    INGEST = "ingest"


# ---------------------------------------------------------------------------
# Trace entries - a closed set of tagged variants.
# ---------------------------------------------------------------------------
class _TraceBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent: str
    action: str
    duration_ms: float = Field(ge=0.0)
    timestamp: datetime = Field(default_factory=_utcnow)


class RouteTrace(_TraceBase):
    kind: Literal["route"] = "route"
    intent: RequestIntent
    # What the keyword classifier said; only advisory when the endpoint
    # pinned the intent.
    advisory_intent: RequestIntent
    overridden: bool = False
    memory_turns_loaded: int = 0
    persona_loaded: bool = False
    input_action: ModerationAction = ModerationAction.ALLOW


class RetrieveTrace(_TraceBase):
    kind: Literal["retrieve"] = "retrieve"
    retrieved_count: int = 0
    reranked: bool = False
    top_score: float | None = None
    cache_hit: bool = False


class DraftTrace(_TraceBase):
    kind: Literal["draft"] = "draft"
    prompt_sha: str = ""
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    context_chunks: int = 0
    dropped_memory_turns: int = 0
    dropped_chunks: int = 0
    unresolved_markers: int = 0


class ValidateTrace(_TraceBase):
    kind: Literal["validate"] = "validate"
    citations_kept: int = 0
    citations_dropped: int = 0
    low_confidence: bool = False
    moderation_action: ModerationAction = ModerationAction.ALLOW
    redactions: int = 0


class ErrorTrace(_TraceBase):
    kind: Literal["error"] = "error"
    error_type: str
    message: str = ""


TraceEntry = Annotated[
    Union[RouteTrace, RetrieveTrace, DraftTrace, ValidateTrace, ErrorTrace],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# TokenBudget - per-request prompt accounting.
# ---------------------------------------------------------------------------
class TokenBudget(BaseModel):
    """Prompt budget for one request; never shared between requests.

    ``reserved_tokens`` is held back for the generated answer, so the
    prompt may use at most ``max_tokens - reserved_tokens``.
    """

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=4096, gt=0)
    reserved_tokens: int = Field(default=300, ge=0)
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def prompt_limit(self) -> int:
        return max(0, self.max_tokens - self.reserved_tokens)

    def fits(self, prompt_tokens: int) -> bool:
        return prompt_tokens <= self.prompt_limit

    def record(self, input_tokens: int, output_tokens: int) -> TokenBudget:
        return self.model_copy(
            update={
                "input_tokens": self.input_tokens + input_tokens,
                "output_tokens": self.output_tokens + output_tokens,
            }
        )


# ---------------------------------------------------------------------------
# OrchestrationContext - the immutable per-request value.
# ---------------------------------------------------------------------------
class OrchestrationContext(BaseModel):
    """Everything one request has accumulated so far.

    Immutable - agents return ``context.advance(stage, **updates)`` or
    ``context.with_trace(entry)``, never a mutated self.
    """

    model_config = ConfigDict(frozen=True)

    correlation_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    operation: str = "ask"
    ask: AskRequest | None = None
    draft: DraftLetterRequest | None = None
    conversation_id: str | None = None
    user_id: str | None = None
    # Intent fixed by the entry point; wins over the classifier.
    pinned_intent: RequestIntent | None = None
    intent: RequestIntent | None = None
    stage: PipelineStage = PipelineStage.CREATED
    budget: TokenBudget = Field(default_factory=TokenBudget)
    traces: list[TraceEntry] = Field(default_factory=list)
    # Frozen once the retriever returns; the grounding check compares
    # citations against exactly this list.
    retrieved: list[SearchResult] = Field(default_factory=list)
    conversation: ConversationMemory | None = None
    persona: PersonaMemory | None = None
    prompt_sha: str = ""
    model: str = ""
    answer: Answer | None = None
    letter: LetterDraft | None = None
    policy_references: list[str] = Field(default_factory=list)
    coverage: CitationCoverage | None = None
    input_moderation: ModerationResult | None = None
    output_moderation: ModerationResult | None = None
    redaction: RedactionResult | None = None
    blocked: bool = False
    error: str | None = None
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None

    # -- Derived values ---------------------------------------------------

    @property
    def retrieved_ids(self) -> frozenset[str]:
        return frozenset(r.chunk.id for r in self.retrieved)

    @property
    def query_text(self) -> str:
        """Text used for retrieval: the question, or the letter purpose + points."""
        if self.ask is not None:
            return self.ask.question
        if self.draft is not None:
            return " ".join([self.draft.purpose, *self.draft.points])
        return ""

    @property
    def top_k(self) -> int:
        request = self.ask or self.draft
        return request.top_k if request is not None else 10

    @property
    def enable_rerank(self) -> bool:
        request = self.ask or self.draft
        return bool(request.enable_rerank) if request is not None else False

    @property
    def duration_ms(self) -> float:
        end = self.completed_at or _utcnow()
        return (end - self.started_at).total_seconds() * 1000

    # -- Transitions --------------------------------------------------------

    def with_trace(self, entry: TraceEntry) -> OrchestrationContext:
        """Return a copy with *entry* appended to the trace."""
        return self.model_copy(update={"traces": [*self.traces, entry]})

    def advance(self, stage: PipelineStage, **updates: object) -> OrchestrationContext:
        """Move to *stage* (strictly forward) applying *updates* in the same copy."""
        if self.stage.is_terminal:
            raise ValueError(f"context already {self.stage.value}; cannot move to {stage.value}")
        if stage is not PipelineStage.FAILED and stage.rank <= self.stage.rank:
            raise ValueError(f"invalid transition {self.stage.value} -> {stage.value}")
        changes: dict[str, object] = {"stage": stage, **updates}
        if stage.is_terminal:
            changes.setdefault("completed_at", _utcnow())
        return self.model_copy(update=changes)

    def fail(self, message: str) -> OrchestrationContext:
        """Terminal failure; no-op when the context already failed."""
        if self.stage is PipelineStage.FAILED:
            return self
        if self.stage.is_terminal:
            return self.model_copy(update={"error": message})
        return self.advance(PipelineStage.FAILED, error=message)
