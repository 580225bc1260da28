"""Utility modules for kbcopilot.

- **errors** -- exception hierarchy rooted at KnowledgeBaseError; each layer
  raises its own subclass so callers can branch on failure type.
- **logging** -- structlog setup with a dual-renderer pattern (console in
  development, JSON in production) and request-context binding helpers.
- **concurrency** -- semaphore-bounded ``asyncio.gather`` used for parallel
  file ingestion.
- **text** -- normalization, content hashing, token estimation and term
  extraction shared by chunking, dedup, prompts and re-ranking.
"""

from kbcopilot.utils.errors import (
    AgentExecutionError,
    ConfigurationError,
    DimensionMismatchError,
    DocumentParseError,
    EmbeddingError,
    GenerationError,
    GroundingError,
    KnowledgeBaseError,
    ModerationBlockedError,
    RequestFailedError,
    StoreUnavailableError,
    UnsupportedOperationError,
    ValidationError,
)
from kbcopilot.utils.logging import configure_logging, get_logger
from kbcopilot.utils.text import content_hash, estimate_tokens, normalize_text

__all__ = [
    "AgentExecutionError",
    "ConfigurationError",
    "DimensionMismatchError",
    "DocumentParseError",
    "EmbeddingError",
    "GenerationError",
    "GroundingError",
    "KnowledgeBaseError",
    "ModerationBlockedError",
    "RequestFailedError",
    "StoreUnavailableError",
    "UnsupportedOperationError",
    "ValidationError",
    "configure_logging",
    "content_hash",
    "estimate_tokens",
    "get_logger",
    "normalize_text",
]
