"""kbcopilot domain models - re-exports the public model classes.

Grouped by concern:
    - rag.py         - chunks, embeddings, search hits, parser output, ingest report
    - answer.py      - citations, answers, letter drafts
    - governance.py  - moderation and redaction records
    - memory.py      - conversation, persona and policy memory
    - pipeline.py    - orchestration state machine and trace entries
    - requests.py / responses.py - operation inputs and outputs
    - audit.py       - the per-request audit record
    - evaluation.py  - golden dataset items, results, metrics and report
"""

from __future__ import annotations

from kbcopilot.models.answer import Answer, Citation, CitationCoverage, LetterDraft
from kbcopilot.models.audit import AuditLogEntry, AuditStatus
from kbcopilot.models.evaluation import (
    EvaluationMetrics,
    EvaluationReport,
    EvaluationResult,
    EvaluationTargets,
    GoldenItem,
)
from kbcopilot.models.governance import (
    ModerationAction,
    ModerationCategory,
    ModerationResult,
    RedactionMatch,
    RedactionOptions,
    RedactionResult,
    RedactionRule,
    SeverityLevel,
)
from kbcopilot.models.memory import (
    ConversationMemory,
    ConversationTurn,
    PersonaMemory,
    PersonaType,
    PolicyMemory,
)
from kbcopilot.models.pipeline import (
    DraftTrace,
    ErrorTrace,
    OrchestrationContext,
    PipelineStage,
    RequestIntent,
    RetrieveTrace,
    RouteTrace,
    TokenBudget,
    TraceEntry,
    ValidateTrace,
)
from kbcopilot.models.rag import (
    Chunk,
    ChunkingOptions,
    ChunkSpan,
    Embedding,
    FileReport,
    FileStatus,
    IngestReport,
    IngestStatus,
    ParsedDocument,
    ParsedSection,
    SearchResult,
)
from kbcopilot.models.requests import AskRequest, DraftLetterRequest, EvaluationRequest, IngestRequest
from kbcopilot.models.responses import AskResponse, DraftLetterResponse, ResponseMetadata

__all__ = [
    "Answer",
    "AskRequest",
    "AskResponse",
    "AuditLogEntry",
    "AuditStatus",
    "Chunk",
    "ChunkSpan",
    "ChunkingOptions",
    "Citation",
    "CitationCoverage",
    "ConversationMemory",
    "ConversationTurn",
    "DraftLetterRequest",
    "DraftLetterResponse",
    "DraftTrace",
    "Embedding",
    "ErrorTrace",
    "EvaluationMetrics",
    "EvaluationReport",
    "EvaluationRequest",
    "EvaluationResult",
    "EvaluationTargets",
    "FileReport",
    "FileStatus",
    "GoldenItem",
    "IngestReport",
    "IngestRequest",
    "IngestStatus",
    "LetterDraft",
    "ModerationAction",
    "ModerationCategory",
    "ModerationResult",
    "OrchestrationContext",
    "ParsedDocument",
    "ParsedSection",
    "PersonaMemory",
    "PersonaType",
    "PipelineStage",
    "PolicyMemory",
    "RedactionMatch",
    "RedactionOptions",
    "RedactionResult",
    "RedactionRule",
    "RequestIntent",
    "ResponseMetadata",
    "RetrieveTrace",
    "RouteTrace",
    "SearchResult",
    "SeverityLevel",
    "TokenBudget",
    "TraceEntry",
    "ValidateTrace",
]
