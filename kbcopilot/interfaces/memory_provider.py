"""Abstract base class for conversation, persona and policy memory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta

from kbcopilot.models.memory import (
    ConversationMemory,
    PersonaMemory,
    PersonaType,
    PolicyMemory,
)


# Concrete implementation: InMemoryMemoryProvider (kbcopilot/providers/memory/)
class IMemoryProvider(ABC):
    """Contract for the memory store shared by concurrent requests.

    Implementations must make each operation atomic: two requests appending
    to the same conversation at once both land, in some order.
    """

    # -- Conversation memory -----------------------------------------------

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> ConversationMemory | None:
        """Return the conversation, or ``None`` if unknown."""

    @abstractmethod
    async def save_conversation(self, conversation: ConversationMemory) -> None:
        """Store *conversation*, replacing any previous version."""

    @abstractmethod
    async def append_turn(
        self,
        conversation_id: str,
        user_message: str,
        assistant_response: str,
        citation_ids: list[str] | None = None,
        user_id: str | None = None,
    ) -> ConversationMemory:
        """Append one exchange, creating the conversation when missing.

        Returns the updated conversation (capped to its last ten turns).
        """

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """Remove a conversation; ``True`` when it existed."""

    # -- Persona memory ----------------------------------------------------

    @abstractmethod
    async def get_persona(self, user_id: str) -> PersonaMemory | None:
        """Return the user's persona, or ``None``."""

    @abstractmethod
    async def save_persona(self, persona: PersonaMemory) -> None:
        """Store *persona*, replacing any previous version."""

    @abstractmethod
    async def create_persona(self, user_id: str, persona_type: PersonaType) -> PersonaMemory:
        """Create and store a persona with the defaults for *persona_type*."""

    @abstractmethod
    async def update_persona_facts(self, user_id: str, facts: dict[str, str]) -> PersonaMemory | None:
        """Merge *facts* into the persona profile; ``None`` when no persona exists."""

    # -- Policy memory -----------------------------------------------------

    @abstractmethod
    async def save_policy(self, policy: PolicyMemory) -> None:
        """Store *policy* under its key."""

    @abstractmethod
    async def get_policy(self, key: str) -> PolicyMemory | None:
        """Return the policy and record the access, or ``None``."""

    @abstractmethod
    async def search_policies(self, term: str) -> list[PolicyMemory]:
        """Return policies matching *term*, most accessed first."""

    @abstractmethod
    async def list_policies(self, category: str | None = None) -> list[PolicyMemory]:
        """Return every policy (optionally of one category), sorted by title."""

    # -- Maintenance -------------------------------------------------------

    @abstractmethod
    async def cleanup_expired(self, ttl: timedelta) -> int:
        """Drop conversations idle longer than *ttl*; return how many."""
