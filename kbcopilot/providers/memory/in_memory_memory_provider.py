"""In-memory conversation, persona and policy memory.

Each of the three maps has its own asyncio lock; every operation reads and
swaps whole frozen records under that lock, so concurrent appends to one
conversation never lose a turn.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog

from kbcopilot.interfaces.memory_provider import IMemoryProvider
from kbcopilot.models.memory import (
    ConversationMemory,
    PersonaMemory,
    PersonaType,
    PolicyMemory,
)

logger = structlog.get_logger(logger_name=__name__)


class InMemoryMemoryProvider(IMemoryProvider):
    """Process-local memory store."""

    def __init__(self) -> None:
        self._conversations: dict[str, ConversationMemory] = {}
        self._personas: dict[str, PersonaMemory] = {}
        self._policies: dict[str, PolicyMemory] = {}
        self._conversation_lock = asyncio.Lock()
        self._persona_lock = asyncio.Lock()
        self._policy_lock = asyncio.Lock()

    # -- Conversation memory -----------------------------------------------

    async def get_conversation(self, conversation_id: str) -> ConversationMemory | None:
        async with self._conversation_lock:
            return self._conversations.get(conversation_id)

    async def save_conversation(self, conversation: ConversationMemory) -> None:
        async with self._conversation_lock:
            self._conversations[conversation.conversation_id] = conversation

    async def append_turn(
        self,
        conversation_id: str,
        user_message: str,
        assistant_response: str,
        citation_ids: list[str] | None = None,
        user_id: str | None = None,
    ) -> ConversationMemory:
        async with self._conversation_lock:
            current = self._conversations.get(conversation_id) or ConversationMemory(
                conversation_id=conversation_id, user_id=user_id
            )
            updated = current.add_turn(user_message, assistant_response, citation_ids)
            self._conversations[conversation_id] = updated
        logger.debug("conversation_turn_added", conversation_id=conversation_id, turns=len(updated.turns))
        return updated

    async def delete_conversation(self, conversation_id: str) -> bool:
        async with self._conversation_lock:
            return self._conversations.pop(conversation_id, None) is not None

    # -- Persona memory ----------------------------------------------------

    async def get_persona(self, user_id: str) -> PersonaMemory | None:
        async with self._persona_lock:
            return self._personas.get(user_id)

    async def save_persona(self, persona: PersonaMemory) -> None:
        async with self._persona_lock:
            self._personas[persona.user_id] = persona

    async def create_persona(self, user_id: str, persona_type: PersonaType) -> PersonaMemory:
        persona = PersonaMemory.create(user_id, persona_type)
        await self.save_persona(persona)
        logger.info("persona_created", user_id=user_id, type=persona_type.value)
        return persona

    async def update_persona_facts(self, user_id: str, facts: dict[str, str]) -> PersonaMemory | None:
        async with self._persona_lock:
            current = self._personas.get(user_id)
            if current is None:
                return None
            updated = current.with_facts(facts)
            self._personas[user_id] = updated
            return updated

    # -- Policy memory -----------------------------------------------------

    async def save_policy(self, policy: PolicyMemory) -> None:
        async with self._policy_lock:
            self._policies[policy.key] = policy

    async def get_policy(self, key: str) -> PolicyMemory | None:
        async with self._policy_lock:
            current = self._policies.get(key)
            if current is None:
                return None
            updated = current.record_access()
            self._policies[key] = updated
            return updated

    async def search_policies(self, term: str) -> list[PolicyMemory]:
        async with self._policy_lock:
            found = [p for p in self._policies.values() if p.matches(term)]
        return sorted(found, key=lambda p: (-p.access_count, p.title))

    async def list_policies(self, category: str | None = None) -> list[PolicyMemory]:
        async with self._policy_lock:
            policies = [
                p for p in self._policies.values()
                if category is None or p.category.lower() == category.lower()
            ]
        return sorted(policies, key=lambda p: p.title)

    # -- Maintenance -------------------------------------------------------

    async def cleanup_expired(self, ttl: timedelta) -> int:
        cutoff = datetime.now(tz=timezone.utc) - ttl  # noqa: UP017
        async with self._conversation_lock:
            expired = [cid for cid, c in self._conversations.items() if c.last_activity < cutoff]
            for cid in expired:
                del self._conversations[cid]
        if expired:
            logger.info("conversation_cleanup", removed=len(expired))
        return len(expired)
