"""Conversation, persona and policy memory records.

All three are frozen.  ``add_turn`` and ``record_access`` return new
instances, so the memory provider can swap a record under its lock without
any reader ever seeing a half-updated object.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

MAX_CONVERSATION_TURNS = 10


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Conversation memory
# ---------------------------------------------------------------------------
class ConversationTurn(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_message: str
    assistant_response: str
    citation_ids: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_utcnow)

    def render(self) -> str:
        return f"User: {self.user_message}\nAssistant: {self.assistant_response}"


class ConversationMemory(BaseModel):
    """The last :data:`MAX_CONVERSATION_TURNS` exchanges of one conversation."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    user_id: str | None = None
    turns: list[ConversationTurn] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)

    def add_turn(
        self,
        user_message: str,
        assistant_response: str,
        citation_ids: list[str] | None = None,
    ) -> ConversationMemory:
        turn = ConversationTurn(
            user_message=user_message,
            assistant_response=assistant_response,
            citation_ids=list(citation_ids or []),
        )
        turns = [*self.turns, turn][-MAX_CONVERSATION_TURNS:]
        return self.model_copy(update={"turns": turns, "last_activity": turn.timestamp})

    def recent_turns(self, max_turns: int = 3) -> list[ConversationTurn]:
        if max_turns <= 0:
            return []
        return list(self.turns[-max_turns:])

    def recent_context(self, max_turns: int = 3) -> str:
        return "\n\n".join(t.render() for t in self.recent_turns(max_turns))


# ---------------------------------------------------------------------------
# Persona memory
# ---------------------------------------------------------------------------
class PersonaType(str, Enum):  # noqa: UP042
    INSPECTOR = "inspector"
    CLAIMS_ADJUDICATOR = "claims_adjudicator"
    POLICY_ANALYST = "policy_analyst"
    ADMINISTRATOR = "administrator"


_DEFAULT_PROFILES: dict[PersonaType, dict[str, str]] = {
    PersonaType.INSPECTOR: {
        "role": "Field Inspector",
        "response_style": "Concise and direct",
        "preferred_sources": "Policy documents, field guides",
        "typical_questions": "Equipment requirements, compliance checks",
    },
    PersonaType.CLAIMS_ADJUDICATOR: {
        "role": "Claims Adjudicator",
        "response_style": "Detailed and neutral",
        "preferred_sources": "Policies, medical guidelines, case precedents",
        "typical_questions": "Return-to-work, medical assessments, claim decisions",
    },
    PersonaType.POLICY_ANALYST: {
        "role": "Policy Analyst",
        "response_style": "Comprehensive with multiple sources",
        "preferred_sources": "Research, policy analysis, regulatory documents",
        "typical_questions": "Policy interpretation, regulatory compliance, analysis",
    },
    PersonaType.ADMINISTRATOR: {},
}

_DEFAULT_PREFERENCES: dict[PersonaType, list[str]] = {
    PersonaType.INSPECTOR: ["Quick answers", "Field-ready information", "Equipment focus"],
    PersonaType.CLAIMS_ADJUDICATOR: ["Neutral tone", "Template usage", "Policy references"],
    PersonaType.POLICY_ANALYST: ["Multiple citations", "Detailed analysis", "Nuanced explanations"],
    PersonaType.ADMINISTRATOR: [],
}


class PersonaMemory(BaseModel):
    """Who the user is, used to adapt answer style."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    type: PersonaType = PersonaType.INSPECTOR
    profile: dict[str, str] = Field(default_factory=dict)
    preferences: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)

    @classmethod
    def create(cls, user_id: str, persona_type: PersonaType) -> PersonaMemory:
        """New persona pre-filled with the defaults for *persona_type*."""
        return cls(
            user_id=user_id,
            type=persona_type,
            profile=dict(_DEFAULT_PROFILES[persona_type]),
            preferences=list(_DEFAULT_PREFERENCES[persona_type]),
        )

    def with_facts(self, facts: dict[str, str]) -> PersonaMemory:
        return self.model_copy(
            update={"profile": {**self.profile, **facts}, "last_updated": _utcnow()}
        )

    @property
    def role(self) -> str:
        return self.profile.get("role", "professional")

    @property
    def response_style(self) -> str:
        return self.profile.get("response_style", "professional")


# ---------------------------------------------------------------------------
# Policy memory
# ---------------------------------------------------------------------------
class PolicyMemory(BaseModel):
    """A frequently used policy excerpt kept outside the vector store."""

    model_config = ConfigDict(frozen=True)

    key: str
    title: str
    content: str
    tags: list[str] = Field(default_factory=list)
    category: str = "general"
    created_at: datetime = Field(default_factory=_utcnow)
    last_accessed: datetime = Field(default_factory=_utcnow)
    access_count: int = 0

    def record_access(self) -> PolicyMemory:
        return self.model_copy(
            update={"access_count": self.access_count + 1, "last_accessed": _utcnow()}
        )

    def matches(self, term: str) -> bool:
        """Case-insensitive match on title, content, tags or category."""
        needle = term.lower()
        return (
            needle in self.title.lower()
            or needle in self.content.lower()
            or needle in self.category.lower()
            or any(needle in tag.lower() for tag in self.tags)
        )
