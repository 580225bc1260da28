"""Router: resolve the intent, load memory, screen the input."""

from __future__ import annotations

import re

from kbcopilot.agents.base_agent import BaseAgent
from kbcopilot.interfaces.memory_provider import IMemoryProvider
from kbcopilot.models.answer import Answer
from kbcopilot.models.pipeline import (
    OrchestrationContext,
    PipelineStage,
    RequestIntent,
    RouteTrace,
)
from kbcopilot.services.governance.governance_gate import GovernanceGate
from kbcopilot.utils.errors import UnsupportedOperationError

_DRAFT_PATTERN = re.compile(r"\b(draft|letter|compose|write (?:a|an|the) (?:letter|notice|memo))\b", re.IGNORECASE)
_INGEST_PATTERN = re.compile(r"\b(ingest|upload|index (?:this|these|the) (?:file|files|document|documents))\b", re.IGNORECASE)


def classify_text(text: str) -> RequestIntent:
    """Keyword classifier used for free text."""
    if _INGEST_PATTERN.search(text):
        return RequestIntent.INGEST
    if _DRAFT_PATTERN.search(text):
        return RequestIntent.DRAFT
    return RequestIntent.ASK


class RouterAgent(BaseAgent):
    """Classifies the request and prepares memory for the drafter.

    The request type decides first (a draft request is a draft); free text
    goes through :func:`classify_text`.  An intent pinned by the entry point
    always wins and the trace records whether it overrode the classifier.
    A block from input moderation finishes the request with the refusal
    message; the caller still gets a normal (blocked) response.
    """

    name = "router"

    def __init__(self, memory: IMemoryProvider, gate: GovernanceGate) -> None:
        super().__init__()
        self._memory = memory
        self._gate = gate

    async def execute(self, context: OrchestrationContext, start: float) -> OrchestrationContext:
        if context.draft is not None:
            advisory = RequestIntent.DRAFT
        else:
            advisory = classify_text(context.query_text)
        intent = context.pinned_intent or advisory
        overridden = context.pinned_intent is not None and context.pinned_intent is not advisory

        if intent is RequestIntent.INGEST:
            raise UnsupportedOperationError(
                message="Ingest requests are served by the ingestion service",
                provider_name=self.name,
            )

        conversation = None
        if context.conversation_id:
            conversation = await self._memory.get_conversation(context.conversation_id)
        persona = None
        if context.user_id:
            persona = await self._memory.get_persona(context.user_id)

        moderation = await self._gate.moderate(context.query_text)
        self._gate.enforce(moderation, "input")

        updates: dict[str, object] = {
            "intent": intent,
            "conversation": conversation,
            "persona": persona,
            "input_moderation": moderation,
        }
        if moderation.blocked:
            updates["blocked"] = True
            updates["answer"] = Answer(content=self._gate.refusal_message, low_confidence=True)
            self._logger.warning("input_blocked", reason=moderation.reason)

        trace = RouteTrace(
            agent=self.name,
            action="blocked" if moderation.blocked else "classified",
            duration_ms=self.elapsed_ms(start),
            intent=intent,
            advisory_intent=advisory,
            overridden=overridden,
            memory_turns_loaded=len(conversation.turns) if conversation else 0,
            persona_loaded=persona is not None,
            input_action=moderation.action,
        )
        self._logger.info(
            "request_routed",
            intent=intent.value,
            overridden=overridden,
            memory_turns=trace.memory_turns_loaded,
        )
        return context.advance(PipelineStage.ROUTED, **updates).with_trace(trace)
