"""Unit tests for conversation, persona and policy memory."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from kbcopilot.models.memory import (
    MAX_CONVERSATION_TURNS,
    ConversationMemory,
    PersonaType,
    PolicyMemory,
)
from kbcopilot.providers.memory.in_memory_memory_provider import InMemoryMemoryProvider


class TestConversationMemory:
    """Turn capping and recency helpers on the frozen model."""

    def test_add_turn_returns_new_instance(self) -> None:
        empty = ConversationMemory(conversation_id="c1")
        one = empty.add_turn("Q", "A", ["a"])
        assert empty.turns == []
        assert one.turns[0].citation_ids == ["a"]

    def test_capped_to_last_ten(self) -> None:
        memory = ConversationMemory(conversation_id="c1")
        for i in range(MAX_CONVERSATION_TURNS + 3):
            memory = memory.add_turn(f"q{i}", f"a{i}")
        assert len(memory.turns) == MAX_CONVERSATION_TURNS
        assert memory.turns[0].user_message == "q3"

    def test_recent_context(self) -> None:
        memory = ConversationMemory(conversation_id="c1").add_turn("q1", "a1").add_turn("q2", "a2")
        assert memory.recent_context(1) == "User: q2\nAssistant: a2"
        assert memory.recent_turns(0) == []


class TestInMemoryMemoryProvider:
    @pytest.mark.asyncio
    async def test_append_creates_conversation(self, memory_provider: InMemoryMemoryProvider) -> None:
        updated = await memory_provider.append_turn("c1", "Q", "A", ["x"], user_id="u1")
        assert updated.user_id == "u1"
        stored = await memory_provider.get_conversation("c1")
        assert stored is not None
        assert len(stored.turns) == 1

    @pytest.mark.asyncio
    async def test_concurrent_appends_all_land(self, memory_provider: InMemoryMemoryProvider) -> None:
        await asyncio.gather(*(memory_provider.append_turn("c1", f"q{i}", f"a{i}") for i in range(8)))
        stored = await memory_provider.get_conversation("c1")
        assert stored is not None
        assert len(stored.turns) == 8

    @pytest.mark.asyncio
    async def test_delete_conversation(self, memory_provider: InMemoryMemoryProvider) -> None:
        await memory_provider.append_turn("c1", "Q", "A")
        assert await memory_provider.delete_conversation("c1") is True
        assert await memory_provider.delete_conversation("c1") is False

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, memory_provider: InMemoryMemoryProvider) -> None:
        stale = ConversationMemory(
            conversation_id="old",
            last_activity=datetime.now(tz=timezone.utc) - timedelta(days=2),  # noqa: UP017
        )
        await memory_provider.save_conversation(stale)
        await memory_provider.append_turn("fresh", "Q", "A")

        assert await memory_provider.cleanup_expired(timedelta(hours=24)) == 1
        assert await memory_provider.get_conversation("old") is None
        assert await memory_provider.get_conversation("fresh") is not None

    @pytest.mark.asyncio
    async def test_persona_defaults_and_facts(self, memory_provider: InMemoryMemoryProvider) -> None:
        persona = await memory_provider.create_persona("u1", PersonaType.INSPECTOR)
        assert persona.role == "Field Inspector"
        assert "Quick answers" in persona.preferences

        updated = await memory_provider.update_persona_facts("u1", {"region": "North"})
        assert updated is not None
        assert updated.profile["region"] == "North"
        assert updated.role == "Field Inspector"
        assert await memory_provider.update_persona_facts("nobody", {"x": "y"}) is None

    @pytest.mark.asyncio
    async def test_administrator_persona_uses_generic_role(self, memory_provider: InMemoryMemoryProvider) -> None:
        persona = await memory_provider.create_persona("admin", PersonaType.ADMINISTRATOR)
        assert persona.role == "professional"

    @pytest.mark.asyncio
    async def test_policies_search_and_access_counts(self, memory_provider: InMemoryMemoryProvider) -> None:
        await memory_provider.save_policy(
            PolicyMemory(key="p1", title="Ladder use", content="Three points of contact", tags=["heights"])
        )
        await memory_provider.save_policy(
            PolicyMemory(key="p2", title="Harness checks", content="Inspect before use", category="heights")
        )
        await memory_provider.save_policy(PolicyMemory(key="p3", title="Noise", content="Wear ear defenders"))

        accessed = await memory_provider.get_policy("p2")
        assert accessed is not None
        assert accessed.access_count == 1

        found = await memory_provider.search_policies("HEIGHTS")
        assert [p.key for p in found] == ["p2", "p1"]
        assert [p.key for p in await memory_provider.list_policies()] == ["p2", "p1", "p3"]
        assert [p.key for p in await memory_provider.list_policies(category="Heights")] == ["p2"]
        assert await memory_provider.get_policy("missing") is None
