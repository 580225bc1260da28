"""Audit log record written once per pipeline request."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from kbcopilot.models.governance import ModerationResult
from kbcopilot.models.pipeline import OrchestrationContext, PipelineStage, TraceEntry


class AuditStatus(str, Enum):  # noqa: UP042
    COMPLETED = "completed"
    BLOCKED = "blocked"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AuditLogEntry(BaseModel):
    """Append-only record of one request.

    Frozen: once a provider has stored an entry, nothing rewrites it.
    ``inputs`` and ``outputs`` hold what was sent and returned after the
    governance policy applied its audit redaction.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: str
    user_id: str | None = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    operation: str
    status: AuditStatus
    prompt_sha: str = ""
    model: str = ""
    inputs: str = ""
    outputs: str = ""
    citation_ids: list[str] = Field(default_factory=list)
    traces: list[TraceEntry] = Field(default_factory=list)
    input_moderation: ModerationResult | None = None
    output_moderation: ModerationResult | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    duration_ms: float = 0.0
    error: str | None = None

    @classmethod
    def from_context(
        cls,
        context: OrchestrationContext,
        inputs: str,
        outputs: str,
        cancelled: bool = False,
    ) -> AuditLogEntry:
        """Snapshot *context* into an audit entry."""
        if cancelled:
            status = AuditStatus.CANCELLED
        elif context.stage is PipelineStage.FAILED:
            status = AuditStatus.FAILED
        elif context.blocked:
            status = AuditStatus.BLOCKED
        else:
            status = AuditStatus.COMPLETED

        citation_ids = context.answer.citation_ids if context.answer is not None else []
        return cls(
            correlation_id=context.correlation_id,
            user_id=context.user_id,
            operation=context.operation,
            status=status,
            prompt_sha=context.prompt_sha,
            model=context.model,
            inputs=inputs,
            outputs=outputs,
            citation_ids=citation_ids,
            traces=list(context.traces),
            input_moderation=context.input_moderation,
            output_moderation=context.output_moderation,
            input_tokens=context.budget.input_tokens,
            output_tokens=context.budget.output_tokens,
            duration_ms=context.duration_ms,
            error=context.error,
        )
