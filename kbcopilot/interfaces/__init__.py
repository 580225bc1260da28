"""Public interface definitions for every pluggable collaborator.

Business logic (ingestion, agents, orchestrator) only depends on these
ABCs.  Concrete adapters live in ``kbcopilot/providers/`` and are wired up
in ``kbcopilot/main.py``.

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations
    ─────────────────────────────────────────────────────────────────────
    IVectorStoreProvider       →  JsonVectorStore, ChromaDBProvider,
                                  PgVectorProvider, PineconeProvider
    IEmbeddingProvider         →  OpenAIEmbeddingProvider,
                                  FastEmbedEmbeddingProvider
    IGenerationProvider        →  OpenAIGenerationProvider,
                                  AnthropicGenerationProvider
    IModerationProvider        →  KeywordModerationProvider,
                                  OpenAIModerationProvider
    IDocumentParser            →  TextParser, MarkdownParser, HtmlParser,
                                  PdfParser
    IAuditProvider             →  InMemoryAuditProvider, SQLiteAuditProvider
    IMemoryProvider            →  InMemoryMemoryProvider
    ICacheProvider             →  MemoryCacheProvider
"""

from kbcopilot.interfaces.audit_provider import IAuditProvider
from kbcopilot.interfaces.cache_provider import ICacheProvider
from kbcopilot.interfaces.document_parser import IDocumentParser
from kbcopilot.interfaces.embedding_provider import IEmbeddingProvider
from kbcopilot.interfaces.generation_provider import GenerationResult, IGenerationProvider
from kbcopilot.interfaces.memory_provider import IMemoryProvider
from kbcopilot.interfaces.moderation_provider import IModerationProvider
from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "GenerationResult",
    "IAuditProvider",
    "ICacheProvider",
    "IDocumentParser",
    "IEmbeddingProvider",
    "IGenerationProvider",
    "IMemoryProvider",
    "IModerationProvider",
    "IVectorStoreProvider",
]
