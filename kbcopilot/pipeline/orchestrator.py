"""Central orchestrator for the ask and draft-letter pipelines.

Sequences Router -> Retriever -> Drafter -> CiteChecker over one frozen
:class:`OrchestrationContext` per request.  Each agent returns a NEW
context via ``model_copy``; nothing is mutated, so the context at the
moment of a failure still holds every trace entry written so far.

Guarantees per request:

* stages run strictly in order and every stage leaves exactly one trace
  entry (the agent's own on success, an ``error`` entry on failure);
* exactly one audit record is written, whether the request completes, is
  blocked, fails or is cancelled (the cancellation write is shielded);
* a stage failure aborts the remaining stages and reaches the caller as
  :class:`RequestFailedError` with a generic message and the correlation
  id; the detail stays in the server log and the audit record;
* ``correlation_id`` is bound into the structlog context for the request.

Independent requests share no mutable state here and may run concurrently.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING

import structlog

from kbcopilot.agents.base_agent import BaseAgent
from kbcopilot.models.answer import Answer
from kbcopilot.models.audit import AuditLogEntry
from kbcopilot.models.pipeline import (
    ErrorTrace,
    OrchestrationContext,
    PipelineStage,
    RequestIntent,
    TokenBudget,
)
from kbcopilot.models.requests import AskRequest, DraftLetterRequest
from kbcopilot.models.responses import AskResponse, DraftLetterResponse, ResponseMetadata
from kbcopilot.utils.errors import AgentExecutionError, KnowledgeBaseError, RequestFailedError
from kbcopilot.utils.logging import bind_request_context, clear_request_context

if TYPE_CHECKING:
    from kbcopilot.interfaces.audit_provider import IAuditProvider
    from kbcopilot.interfaces.memory_provider import IMemoryProvider
    from kbcopilot.services.governance.governance_gate import GovernanceGate

logger = structlog.get_logger(logger_name=__name__)


class AgentPipeline:
    """Runs requests through the four agents and audits each one.

    Parameters
    ----------
    router, retriever, drafter, cite_checker:
        The four stages, in execution order.
    audit:
        Append-only audit store.
    memory:
        Conversation memory updated after each completed request.
    gate:
        Governance gate; decides what the audit record may contain.
    vector_store_name:
        Reported in response metadata.
    reserved_tokens:
        Part of each request's ``max_tokens`` held back for the answer.
    """

    def __init__(
        self,
        router: BaseAgent,
        retriever: BaseAgent,
        drafter: BaseAgent,
        cite_checker: BaseAgent,
        audit: IAuditProvider,
        memory: IMemoryProvider,
        gate: GovernanceGate,
        vector_store_name: str = "",
        reserved_tokens: int = 300,
    ) -> None:
        self._stages = [router, retriever, drafter, cite_checker]
        self._audit = audit
        self._memory = memory
        self._gate = gate
        self._vector_store_name = vector_store_name
        self._reserved_tokens = reserved_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ask(self, request: AskRequest) -> AskResponse:
        """Answer a question.

        Raises
        ------
        RequestFailedError
            If any stage fails.  Blocked content is not a failure.
        """
        context = OrchestrationContext(
            operation="ask",
            ask=request,
            conversation_id=request.conversation_id or str(uuid.uuid4()),
            user_id=request.user_id,
            pinned_intent=RequestIntent.ASK,
            budget=TokenBudget(max_tokens=request.max_tokens, reserved_tokens=self._reserved_tokens),
        )
        context, audit_id = await self.run(context)
        return AskResponse(
            answer=context.answer or Answer(content="", low_confidence=True),
            conversation_id=context.conversation_id,
            metadata=self._metadata(context, audit_id),
        )

    async def draft_letter(self, request: DraftLetterRequest) -> DraftLetterResponse:
        """Draft a letter grounded in the knowledge base."""
        context = OrchestrationContext(
            operation="draft",
            draft=request,
            conversation_id=request.conversation_id or str(uuid.uuid4()),
            user_id=request.user_id,
            pinned_intent=RequestIntent.DRAFT,
            budget=TokenBudget(max_tokens=request.max_tokens, reserved_tokens=self._reserved_tokens),
        )
        context, audit_id = await self.run(context)
        if context.letter is not None:
            subject, body, placeholders = context.letter.subject, context.letter.body, context.letter.placeholders
        else:
            # Input was blocked before drafting.
            subject, body, placeholders = "", context.answer.content if context.answer else "", []
        return DraftLetterResponse(
            subject=subject,
            body=body,
            placeholders=list(placeholders),
            policy_references=list(context.policy_references),
            conversation_id=context.conversation_id,
            metadata=self._metadata(context, audit_id),
        )

    async def run(self, context: OrchestrationContext) -> tuple[OrchestrationContext, str]:
        """Drive *context* to a terminal stage; return it with the audit id."""
        bind_request_context(correlation_id=context.correlation_id)
        logger.info("request_started", operation=context.operation, user_id=context.user_id)
        current = ""
        stage_start = time.monotonic()
        try:
            try:
                for agent in self._stages:
                    current, stage_start = agent.name, time.monotonic()
                    context = await agent.run(context)
                    if context.blocked and context.stage is PipelineStage.ROUTED:
                        break
                current, stage_start = "memory", time.monotonic()
                await self._remember(context)
                context = context.advance(PipelineStage.COMPLETED)
            except asyncio.CancelledError:
                context = context.with_trace(
                    ErrorTrace(
                        agent=current,
                        action="cancelled",
                        duration_ms=(time.monotonic() - stage_start) * 1000,
                        error_type="CancelledError",
                        message="Request cancelled",
                    )
                ).fail("Request cancelled")
                logger.warning("request_cancelled", stage=context.stage.value, traces=len(context.traces))
                await asyncio.shield(self._write_audit(context, cancelled=True))
                raise
            except AgentExecutionError as exc:
                cause = exc.__cause__ or exc
                context = context.with_trace(
                    ErrorTrace(
                        agent=exc.agent_name,
                        action="failed",
                        duration_ms=exc.duration_ms,
                        error_type=type(cause).__name__,
                        message=exc.message,
                    )
                ).fail(exc.message)
                logger.error(
                    "request_failed",
                    agent=exc.agent_name,
                    error_type=type(cause).__name__,
                    error=exc.message,
                )
                await self._write_audit(context)
                raise RequestFailedError(context.correlation_id) from exc

            audit_id = await self._write_audit(context)
            logger.info(
                "request_completed",
                operation=context.operation,
                blocked=context.blocked,
                duration_ms=round(context.duration_ms, 1),
            )
            return context, audit_id
        finally:
            clear_request_context("correlation_id")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _remember(self, context: OrchestrationContext) -> None:
        """Append the completed exchange to conversation memory."""
        if context.blocked or context.answer is None or not context.conversation_id:
            return
        try:
            await self._memory.append_turn(
                context.conversation_id,
                context.query_text,
                context.answer.content,
                context.answer.citation_ids,
                user_id=context.user_id,
            )
        except KnowledgeBaseError as exc:
            raise AgentExecutionError(
                message=exc.message,
                agent_name="memory",
                provider_name=exc.provider_name,
            ) from exc

    async def _write_audit(self, context: OrchestrationContext, cancelled: bool = False) -> str:
        outputs = ""
        if context.letter is not None:
            outputs = f"{context.letter.subject}\n\n{context.letter.body}"
        elif context.answer is not None:
            outputs = context.answer.content
        entry = AuditLogEntry.from_context(
            context,
            inputs=self._gate.for_audit(context.query_text),
            outputs=self._gate.for_audit(outputs),
            cancelled=cancelled,
        )
        try:
            entry_id = await self._audit.append(entry)
        except KnowledgeBaseError as exc:
            logger.error("audit_write_failed", error=str(exc), status=entry.status.value)
            raise RequestFailedError(context.correlation_id) from exc
        logger.debug("audit_written", audit_id=entry_id, status=entry.status.value)
        return entry_id

    def _metadata(self, context: OrchestrationContext, audit_id: str | None) -> ResponseMetadata:
        return ResponseMetadata(
            correlation_id=context.correlation_id,
            audit_id=audit_id,
            prompt_sha=context.prompt_sha,
            model=context.model,
            input_tokens=context.budget.input_tokens or None,
            output_tokens=context.budget.output_tokens or None,
            processing_time_ms=context.duration_ms,
            vector_store=self._vector_store_name,
            retrieved_chunks=len(context.retrieved),
            traces=list(context.traces),
            input_moderation=context.input_moderation,
            output_moderation=context.output_moderation,
            low_confidence=context.answer.low_confidence if context.answer else True,
            blocked=context.blocked,
            citation_coverage=context.coverage,
        )
