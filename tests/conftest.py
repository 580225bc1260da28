"""Shared pytest fixtures and fakes for the kbcopilot test suite."""

from __future__ import annotations

import hashlib
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any

import pytest

from kbcopilot.interfaces.embedding_provider import IEmbeddingProvider
from kbcopilot.interfaces.generation_provider import GenerationResult, IGenerationProvider
from kbcopilot.models.rag import Chunk, SearchResult
from kbcopilot.providers.audit.in_memory_audit_provider import InMemoryAuditProvider
from kbcopilot.providers.memory.in_memory_memory_provider import InMemoryMemoryProvider
from kbcopilot.providers.moderation.keyword_provider import KeywordModerationProvider
from kbcopilot.providers.vector_store.json_store import JsonVectorStore
from kbcopilot.services.governance import (
    ContentModerationService,
    GovernanceGate,
    RedactionService,
)
from kbcopilot.services.governance.policy import GovernancePolicy
from kbcopilot.utils.errors import EmbeddingError

_EMBEDDING_DIM = 32
_TOKEN = re.compile(r"[a-z0-9]+")


# ---------------------------------------------------------------------------
# Deterministic embedding
# ---------------------------------------------------------------------------


def hash_to_vector(text: str, dim: int = _EMBEDDING_DIM) -> list[float]:
    """Bag-of-words hashing: texts sharing words get similar vectors."""
    vector = [0.0] * dim
    for token in _TOKEN.findall(text.lower()):
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        vector[digest[0] % dim] += 1.0
    if not any(vector):
        vector[0] = 1.0
    return vector


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Offline embedding provider.

    ``overrides`` maps exact texts to fixed vectors so a test can place a
    query at a known cosine distance from stored chunks.  ``fail_on``
    makes any text containing that marker raise :class:`EmbeddingError`.
    """

    def __init__(
        self,
        dim: int = _EMBEDDING_DIM,
        overrides: dict[str, list[float]] | None = None,
        fail_on: str | None = None,
        model: str = "fake-embed",
    ) -> None:
        self._dim = dim
        self._overrides = dict(overrides or {})
        self._fail_on = fail_on
        self._model = model
        self.embed_calls = 0
        self.single_calls = 0

    def _vector(self, text: str) -> list[float]:
        if self._fail_on and self._fail_on in text:
            raise EmbeddingError(message="embedding refused", provider_name="fake")
        if text in self._overrides:
            return list(self._overrides[text])
        return hash_to_vector(text, self._dim)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls += 1
        return [self._vector(t) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        self.single_calls += 1
        return self._vector(text)

    def get_dimension(self) -> int:
        return self._dim

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return "fake-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Scripted generation
# ---------------------------------------------------------------------------


class ScriptedGenerationProvider(IGenerationProvider):
    """Returns canned completions and records every prompt it receives.

    ``reply`` is either a fixed string or a callable taking the prompt.
    """

    def __init__(self, reply: str | Callable[[str], str] = "Answer [#1]", model: str = "fake-llm") -> None:
        self._reply = reply
        self._model = model
        self.prompts: list[str] = []
        self.max_tokens: list[int] = []

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        self.prompts.append(prompt)
        self.max_tokens.append(max_tokens)
        text = self._reply(prompt) if callable(self._reply) else self._reply
        return GenerationResult(text=text, input_tokens=len(prompt.split()), output_tokens=len(text.split()), model=self._model)

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return "scripted"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_chunk(
    text: str = "Wear a hard hat on site.",
    chunk_id: str | None = None,
    title: str = "Site Safety",
    section: str = "PPE",
    source_path: str = "docs/safety.md",
    created_at: datetime | None = None,
    metadata: dict[str, str] | None = None,
) -> Chunk:
    chunk = Chunk.create(text=text, title=title, section=section, source_path=source_path, metadata=metadata)
    updates: dict[str, Any] = {}
    if chunk_id is not None:
        updates["id"] = chunk_id
    if created_at is not None:
        updates["created_at"] = created_at
    return chunk.model_copy(update=updates) if updates else chunk


def make_result(score: float = 0.9, **chunk_kwargs: Any) -> SearchResult:
    return SearchResult(chunk=make_chunk(**chunk_kwargs), score=score)


def make_gate(policy: GovernancePolicy | None = None, rules: dict[str, tuple[str, float]] | None = None) -> GovernanceGate:
    policy = policy or GovernancePolicy()
    return GovernanceGate(
        policy=policy,
        redaction=RedactionService(enabled=policy.redaction_enabled),
        moderation=ContentModerationService(
            KeywordModerationProvider(rules),
            threshold=policy.moderation_threshold,
            enabled=policy.moderation_enabled,
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def generation_provider() -> ScriptedGenerationProvider:
    return ScriptedGenerationProvider()


@pytest.fixture
def json_store() -> JsonVectorStore:
    """Memory-only JSON store (no file)."""
    return JsonVectorStore(path=None)


@pytest.fixture
def memory_provider() -> InMemoryMemoryProvider:
    return InMemoryMemoryProvider()


@pytest.fixture
def audit_provider() -> InMemoryAuditProvider:
    return InMemoryAuditProvider()


@pytest.fixture
def gate() -> GovernanceGate:
    """Default policy; ``dangerous`` / ``unsafe`` warn, ``explosive`` blocks."""
    rules = {
        "unsafe": ("Violence", 4.0),
        "dangerous": ("Violence", 4.0),
        "explosive": ("Violence", 6.0),
    }
    return make_gate(rules=rules)

