"""Unit tests for AgentPipeline: stage order, auditing, memory and failures.

Every request here runs the real four agents over in-memory stores; only
the model calls are faked.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from kbcopilot.agents import CiteCheckerAgent, DrafterAgent, RetrieverAgent, RouterAgent
from kbcopilot.interfaces.generation_provider import GenerationResult
from kbcopilot.models.audit import AuditStatus
from kbcopilot.models.rag import Embedding
from kbcopilot.models.requests import AskRequest, DraftLetterRequest
from kbcopilot.pipeline.orchestrator import AgentPipeline
from kbcopilot.providers.audit.in_memory_audit_provider import InMemoryAuditProvider
from kbcopilot.providers.cache.memory_cache import MemoryCacheProvider
from kbcopilot.providers.memory.in_memory_memory_provider import InMemoryMemoryProvider
from kbcopilot.providers.vector_store.json_store import JsonVectorStore
from kbcopilot.services.governance.governance_gate import GovernanceGate
from kbcopilot.services.governance.redaction_service import EMAIL_PLACEHOLDER
from kbcopilot.utils.errors import RequestFailedError, StoreUnavailableError
from tests.conftest import FakeEmbeddingProvider, ScriptedGenerationProvider, make_chunk

CHUNK_TEXT = "Wear a hard hat and safety boots on every site visit."


class HangingGenerationProvider(ScriptedGenerationProvider):
    """Blocks inside ``generate`` until cancelled."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


async def _seeded_store(provider: FakeEmbeddingProvider) -> JsonVectorStore:
    store = JsonVectorStore(path=None)
    chunk = make_chunk(text=CHUNK_TEXT, chunk_id="hat")
    vector = await provider.embed_single(CHUNK_TEXT)
    await store.upsert(chunk, Embedding(chunk_id="hat", vector=vector, model=provider.get_model_name()))
    return store


def _make_pipeline(
    gate: GovernanceGate,
    store: JsonVectorStore,
    embedding: FakeEmbeddingProvider,
    generation: ScriptedGenerationProvider,
    audit: InMemoryAuditProvider,
    memory: InMemoryMemoryProvider,
) -> AgentPipeline:
    return AgentPipeline(
        router=RouterAgent(memory, gate),
        retriever=RetrieverAgent(embedding, store, MemoryCacheProvider()),
        drafter=DrafterAgent(generation, gate),
        cite_checker=CiteCheckerAgent(gate),
        audit=audit,
        memory=memory,
        gate=gate,
        vector_store_name="json",
    )


@pytest_asyncio.fixture
async def store(embedding_provider: FakeEmbeddingProvider) -> JsonVectorStore:
    return await _seeded_store(embedding_provider)


class TestCompletedRequests:
    """The happy path through all four stages."""

    @pytest.mark.asyncio
    async def test_ask_runs_every_stage_once(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        generation_provider: ScriptedGenerationProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        pipeline = _make_pipeline(gate, store, embedding_provider, generation_provider, audit_provider, memory_provider)

        response = await pipeline.ask(AskRequest(question="Do I need a hard hat on site?"))

        assert response.answer.content == "Answer [#1]"
        assert response.answer.citation_ids == ["hat"]
        meta = response.metadata
        assert [t.kind for t in meta.traces] == ["route", "retrieve", "draft", "validate"]
        assert meta.vector_store == "json"
        assert meta.retrieved_chunks == 1
        assert meta.model == "fake-llm"
        assert meta.blocked is False
        assert meta.prompt_sha

        assert await audit_provider.count() == 1
        entry = await audit_provider.get(meta.audit_id)
        assert entry is not None
        assert entry.status is AuditStatus.COMPLETED
        assert entry.correlation_id == meta.correlation_id
        assert entry.citation_ids == ["hat"]
        assert entry.prompt_sha == meta.prompt_sha

    @pytest.mark.asyncio
    async def test_conversation_id_generated_and_remembered(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        generation_provider: ScriptedGenerationProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        pipeline = _make_pipeline(gate, store, embedding_provider, generation_provider, audit_provider, memory_provider)

        first = await pipeline.ask(AskRequest(question="Do I need a hard hat?"))
        assert first.conversation_id is not None
        uuid.UUID(first.conversation_id)

        second = await pipeline.ask(AskRequest(question="And boots?", conversation_id=first.conversation_id))
        assert second.conversation_id == first.conversation_id
        assert second.metadata.traces[0].memory_turns_loaded == 1

        conversation = await memory_provider.get_conversation(first.conversation_id)
        assert conversation is not None
        assert [t.user_message for t in conversation.turns] == ["Do I need a hard hat?", "And boots?"]
        assert conversation.turns[0].citation_ids == ["hat"]

    @pytest.mark.asyncio
    async def test_audit_text_is_redacted(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        generation = ScriptedGenerationProvider("Write to safety@example.com [#1]")
        pipeline = _make_pipeline(gate, store, embedding_provider, generation, audit_provider, memory_provider)

        response = await pipeline.ask(AskRequest(question="Who do I tell? I am bob@example.com"))

        assert "safety@example.com" in response.answer.content
        entry = await audit_provider.get(response.metadata.audit_id)
        assert entry is not None
        assert entry.inputs == f"Who do I tell? I am {EMAIL_PLACEHOLDER}"
        assert entry.outputs == f"Write to {EMAIL_PLACEHOLDER} [#1]"

    @pytest.mark.asyncio
    async def test_draft_letter(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        reply = json.dumps(
            {
                "subject": "Site PPE reminder",
                "body": "Dear {recipient_name}, hard hats are required on site per Policy 3.1 [#1].",
                "placeholders": ["recipient_name"],
            }
        )
        generation = ScriptedGenerationProvider(reply)
        pipeline = _make_pipeline(gate, store, embedding_provider, generation, audit_provider, memory_provider)

        response = await pipeline.draft_letter(
            DraftLetterRequest(purpose="Remind visitors about hard hats", points=["Hard hat on site"])
        )

        assert response.subject == "Site PPE reminder"
        assert response.placeholders == ["recipient_name"]
        assert response.policy_references == ["Policy 3.1"]
        entry = await audit_provider.get(response.metadata.audit_id)
        assert entry is not None
        assert entry.operation == "draft"
        assert entry.outputs.startswith("Site PPE reminder\n\n")

    @pytest.mark.asyncio
    async def test_concurrent_requests_are_isolated(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        generation_provider: ScriptedGenerationProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        pipeline = _make_pipeline(gate, store, embedding_provider, generation_provider, audit_provider, memory_provider)

        responses = await asyncio.gather(
            *(pipeline.ask(AskRequest(question=f"Hard hat question {i}")) for i in range(5))
        )

        assert len({r.metadata.correlation_id for r in responses}) == 5
        assert len({r.conversation_id for r in responses}) == 5
        assert await audit_provider.count() == 5
        assert all(len(r.metadata.traces) == 4 for r in responses)


class TestBlockedRequests:
    @pytest.mark.asyncio
    async def test_blocked_input_skips_remaining_stages(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        generation_provider: ScriptedGenerationProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        pipeline = _make_pipeline(gate, store, embedding_provider, generation_provider, audit_provider, memory_provider)

        response = await pipeline.ask(AskRequest(question="How is explosive stored?"))

        assert response.metadata.blocked is True
        assert response.answer.content == gate.refusal_message
        assert [t.kind for t in response.metadata.traces] == ["route"]
        assert generation_provider.prompts == []

        entry = await audit_provider.get(response.metadata.audit_id)
        assert entry is not None
        assert entry.status is AuditStatus.BLOCKED
        assert await memory_provider.get_conversation(response.conversation_id) is None


class TestFailures:
    """Failed and cancelled requests are still audited exactly once."""

    @pytest.mark.asyncio
    async def test_stage_failure_is_generic_and_audited(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        generation_provider: ScriptedGenerationProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        failing = FakeEmbeddingProvider(fail_on="boom")
        pipeline = _make_pipeline(gate, store, failing, generation_provider, audit_provider, memory_provider)

        with pytest.raises(RequestFailedError) as info:
            await pipeline.ask(AskRequest(question="boom goes the query", user_id="u1"))

        assert "embedding refused" not in str(info.value)
        assert info.value.correlation_id in str(info.value)

        assert await audit_provider.count() == 1
        (entry,) = await audit_provider.list_by_user("u1")
        assert entry.status is AuditStatus.FAILED
        assert entry.correlation_id == info.value.correlation_id
        assert [t.kind for t in entry.traces] == ["route", "error"]
        error = entry.traces[-1]
        assert error.agent == "retriever"
        assert error.error_type == "EmbeddingError"
        assert entry.error == "embedding refused"
        assert generation_provider.prompts == []

    @pytest.mark.asyncio
    async def test_audit_write_failure_fails_request(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        generation_provider: ScriptedGenerationProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        audit = InMemoryAuditProvider()
        audit.append = AsyncMock(side_effect=StoreUnavailableError(message="disk full", provider_name="memory"))
        pipeline = _make_pipeline(gate, store, embedding_provider, generation_provider, audit, memory_provider)

        with pytest.raises(RequestFailedError):
            await pipeline.ask(AskRequest(question="Do I need a hard hat?"))
        audit.append.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_memory_failure_is_a_stage_failure(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        generation_provider: ScriptedGenerationProvider,
        audit_provider: InMemoryAuditProvider,
    ) -> None:
        memory = InMemoryMemoryProvider()
        memory.append_turn = AsyncMock(side_effect=StoreUnavailableError(message="memory offline"))
        pipeline = _make_pipeline(gate, store, embedding_provider, generation_provider, audit_provider, memory)

        with pytest.raises(RequestFailedError):
            await pipeline.ask(AskRequest(question="Do I need a hard hat?", user_id="u1"))

        (entry,) = await audit_provider.list_by_user("u1")
        assert entry.status is AuditStatus.FAILED
        assert entry.traces[-1].agent == "memory"
        assert [t.kind for t in entry.traces] == ["route", "retrieve", "draft", "validate", "error"]

    @pytest.mark.asyncio
    async def test_cancellation_is_audited(
        self,
        gate: GovernanceGate,
        store: JsonVectorStore,
        embedding_provider: FakeEmbeddingProvider,
        audit_provider: InMemoryAuditProvider,
        memory_provider: InMemoryMemoryProvider,
    ) -> None:
        generation = HangingGenerationProvider()
        pipeline = _make_pipeline(gate, store, embedding_provider, generation, audit_provider, memory_provider)

        task = asyncio.create_task(pipeline.ask(AskRequest(question="Do I need a hard hat?", user_id="u1")))
        await asyncio.wait_for(generation.started.wait(), timeout=5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await audit_provider.count() == 1
        (entry,) = await audit_provider.list_by_user("u1")
        assert entry.status is AuditStatus.CANCELLED
        assert [t.kind for t in entry.traces] == ["route", "retrieve", "error"]
        cancelled = entry.traces[-1]
        assert (cancelled.agent, cancelled.action, cancelled.error_type) == ("drafter", "cancelled", "CancelledError")
        assert entry.error == "Request cancelled"
