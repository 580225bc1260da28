"""Custom exception hierarchy for kbcopilot.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
backend (e.g. "openai", "chromadb", "pgvector") caused the failure.

The hierarchy is organized by where the error surfaces:

    KnowledgeBaseError  (base -- catch-all for any kbcopilot error)
    +-- ValidationError            (malformed request input)
    +-- ConfigurationError         (bad settings, chunk_size <= overlap, unknown backend)
    +-- UnsupportedOperationError  (unhandled file extension, unserved intent)
    +-- StoreUnavailableError      (vector store / audit store unreachable)
    +-- DimensionMismatchError     (query vector length != stored vector length)
    +-- EmbeddingError             (embedding API call failure)
    +-- DocumentParseError         (a parser could not read a file)
    +-- GenerationError            (text-generation call error or timeout)
    +-- ModerationBlockedError     (moderation Block configured as a hard failure)
    +-- GroundingError             (ungrounded citations configured as a hard failure)
    +-- AgentExecutionError        (one pipeline stage raised)
    +-- RequestFailedError         (what the caller sees: generic text + correlation id)

Per-file ingestion errors never escape the ingestion service; they end up
in the :class:`~kbcopilot.models.rag.IngestReport`.  Moderation blocks and
grounding failures downgrade the answer instead of raising unless the
governance policy turns them into hard failures.
"""

from __future__ import annotations


class KnowledgeBaseError(Exception):
    """Base exception for all kbcopilot errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[pgvector] connection refused``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        # Private attributes behind read-only properties.
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input / configuration errors
# ---------------------------------------------------------------------------

class ValidationError(KnowledgeBaseError):
    """Raised when a request is malformed (empty question, missing path, ...)."""

    def __init__(
        self,
        message: str = "Invalid request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedOperationError(KnowledgeBaseError):
    """Raised for file types, store types or intents the system does not handle."""

    def __init__(
        self,
        message: str = "Unsupported operation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------

class StoreUnavailableError(KnowledgeBaseError):
    """Raised when a backing store cannot be reached or refuses the operation."""

    def __init__(
        self,
        message: str = "Store is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DimensionMismatchError(KnowledgeBaseError):
    """Raised when a vector's length differs from the length stored for its model."""

    def __init__(
        self,
        message: str = "Embedding dimension mismatch",
        provider_name: str | None = None,
        expected: int | None = None,
        actual: int | None = None,
    ) -> None:
        self._expected = expected
        self._actual = actual
        super().__init__(message=message, provider_name=provider_name)

    @property
    def expected(self) -> int | None:
        return self._expected

    @property
    def actual(self) -> int | None:
        return self._actual


# ---------------------------------------------------------------------------
# External capability errors
# ---------------------------------------------------------------------------

class EmbeddingError(KnowledgeBaseError):
    """Raised when an embedding API call fails."""

    def __init__(
        self,
        message: str = "Embedding call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentParseError(KnowledgeBaseError):
    """Raised when a document parser cannot extract text from a file."""

    def __init__(
        self,
        message: str = "Document parsing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GenerationError(KnowledgeBaseError):
    """Raised when a text-generation call fails, times out, or returns nothing."""

    def __init__(
        self,
        message: str = "Generation call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Governance errors (only raised when the policy makes them hard failures)
# ---------------------------------------------------------------------------

class ModerationBlockedError(KnowledgeBaseError):
    """Raised when moderation blocks content and the policy treats it as fatal."""

    def __init__(
        self,
        message: str = "Content blocked by moderation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class GroundingError(KnowledgeBaseError):
    """Raised when citations reference chunks outside the retrieved set."""

    def __init__(
        self,
        message: str = "Citation is not grounded in the retrieved set",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class AgentExecutionError(KnowledgeBaseError):
    """Raised by an agent when its stage fails.

    Carries the agent name and how long the stage ran before failing so the
    orchestrator can append an accurate error trace entry.  The original
    exception is chained via ``__cause__``.
    """

    def __init__(
        self,
        message: str = "Agent stage failed",
        agent_name: str = "unknown",
        duration_ms: float = 0.0,
        provider_name: str | None = None,
    ) -> None:
        self._agent_name = agent_name
        self._duration_ms = duration_ms
        super().__init__(message=message, provider_name=provider_name)

    @property
    def agent_name(self) -> str:
        return self._agent_name

    @property
    def duration_ms(self) -> float:
        return self._duration_ms


class RequestFailedError(KnowledgeBaseError):
    """The only pipeline error a caller sees.

    The message is deliberately generic; the detail lives in the server-side
    log and the audit record, both keyed by ``correlation_id``.
    """

    def __init__(
        self,
        correlation_id: str,
        message: str = "The request could not be completed",
    ) -> None:
        self._correlation_id = correlation_id
        super().__init__(message=f"{message} (reference: {correlation_id})")

    @property
    def correlation_id(self) -> str:
        return self._correlation_id
