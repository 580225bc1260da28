"""Unit tests for RouterAgent and the free-text intent classifier."""

from __future__ import annotations

import pytest

from kbcopilot.agents.router_agent import RouterAgent, classify_text
from kbcopilot.models.governance import ModerationAction
from kbcopilot.models.memory import PersonaType
from kbcopilot.models.pipeline import OrchestrationContext, PipelineStage, RequestIntent
from kbcopilot.models.requests import AskRequest, DraftLetterRequest
from kbcopilot.providers.memory.in_memory_memory_provider import InMemoryMemoryProvider
from kbcopilot.services.governance.governance_gate import GovernanceGate
from kbcopilot.utils.errors import AgentExecutionError, UnsupportedOperationError


def _ask(question: str, pinned: RequestIntent | None = RequestIntent.ASK, **kwargs) -> OrchestrationContext:
    return OrchestrationContext(ask=AskRequest(question=question), pinned_intent=pinned, **kwargs)


class TestClassifyText:
    def test_plain_question_is_ask(self) -> None:
        assert classify_text("What gloves are required for solvents?") is RequestIntent.ASK

    def test_letter_words_mean_draft(self) -> None:
        assert classify_text("Please draft a notice about ladders") is RequestIntent.DRAFT
        assert classify_text("Write a letter to the site manager") is RequestIntent.DRAFT

    def test_ingest_wins_over_draft(self) -> None:
        assert classify_text("Upload and draft") is RequestIntent.INGEST


class TestRouterAgent:
    """Intent resolution, memory loading and input screening."""

    @pytest.mark.asyncio
    async def test_pinned_intent_overrides_classifier(
        self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate
    ) -> None:
        router = RouterAgent(memory_provider, gate)
        context = await router.run(_ask("Can you draft something about ladders?"))

        assert context.stage is PipelineStage.ROUTED
        assert context.intent is RequestIntent.ASK
        trace = context.traces[-1]
        assert trace.kind == "route"
        assert trace.advisory_intent is RequestIntent.DRAFT
        assert trace.overridden is True

    @pytest.mark.asyncio
    async def test_unpinned_question_uses_classifier(
        self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate
    ) -> None:
        context = await RouterAgent(memory_provider, gate).run(_ask("Where are the eyewash stations?", pinned=None))
        assert context.intent is RequestIntent.ASK
        assert context.traces[-1].overridden is False

    @pytest.mark.asyncio
    async def test_draft_request_is_draft(self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate) -> None:
        context = OrchestrationContext(
            operation="draft",
            draft=DraftLetterRequest(purpose="Remind staff", points=["Wear helmets"]),
        )
        routed = await RouterAgent(memory_provider, gate).run(context)
        assert routed.intent is RequestIntent.DRAFT

    @pytest.mark.asyncio
    async def test_ingest_intent_fails_the_stage(
        self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate
    ) -> None:
        with pytest.raises(AgentExecutionError) as info:
            await RouterAgent(memory_provider, gate).run(_ask("Please ingest the new manual", pinned=None))
        assert info.value.agent_name == "router"
        assert isinstance(info.value.__cause__, UnsupportedOperationError)

    @pytest.mark.asyncio
    async def test_loads_conversation_and_persona(
        self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate
    ) -> None:
        await memory_provider.append_turn("conv-1", "Hi", "Hello")
        await memory_provider.append_turn("conv-1", "Gloves?", "Nitrile [#1]")
        await memory_provider.create_persona("user-1", PersonaType.POLICY_ANALYST)

        context = await RouterAgent(memory_provider, gate).run(
            _ask("And boots?", conversation_id="conv-1", user_id="user-1")
        )

        assert context.conversation is not None
        assert len(context.conversation.turns) == 2
        assert context.persona is not None
        assert context.persona.role == "Policy Analyst"
        trace = context.traces[-1]
        assert trace.memory_turns_loaded == 2
        assert trace.persona_loaded is True

    @pytest.mark.asyncio
    async def test_blocked_input_sets_refusal(
        self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate
    ) -> None:
        context = await RouterAgent(memory_provider, gate).run(_ask("How do I make an explosive device?"))

        assert context.blocked is True
        assert context.stage is PipelineStage.ROUTED
        assert context.answer is not None
        assert context.answer.content == gate.refusal_message
        assert context.answer.low_confidence is True
        assert context.traces[-1].action == "blocked"
        assert context.traces[-1].input_action is ModerationAction.BLOCK

    @pytest.mark.asyncio
    async def test_warning_does_not_block(
        self, memory_provider: InMemoryMemoryProvider, gate: GovernanceGate
    ) -> None:
        context = await RouterAgent(memory_provider, gate).run(_ask("Is this area unsafe?"))
        assert context.blocked is False
        assert context.input_moderation is not None
        assert context.input_moderation.action is ModerationAction.WARN
