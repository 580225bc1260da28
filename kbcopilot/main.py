"""kbcopilot composition root.

Wires providers, services, agents and the pipeline together via explicit
constructor injection.  Nothing here is a module-level singleton: every
call to :func:`build_services` returns a fresh, independent object graph,
which is what the CLI and the tests rely on.

Provider selection:
    Generation -- ``providers.generation_priority`` order, first provider
                  with an API key wins (Anthropic, OpenAI).
    Embedding  -- OpenAI when a key is set, otherwise FastEmbed (local).
    Vector     -- :class:`VectorStoreFactory` from ``vector_store.type``.
    Audit      -- SQLite (aiosqlite) or in-memory, ``audit.backend``.
    Moderation -- keyword rules or the OpenAI moderation endpoint.
"""

from __future__ import annotations

from typing import Any

import structlog

from kbcopilot.agents import CiteCheckerAgent, DrafterAgent, RetrieverAgent, RouterAgent
from kbcopilot.config.loader import (
    chunking_options,
    evaluation_targets,
    governance_policy,
    load_config,
    redaction_options,
    retrieval_settings,
)
from kbcopilot.config.settings import Settings
from kbcopilot.interfaces.audit_provider import IAuditProvider
from kbcopilot.interfaces.embedding_provider import IEmbeddingProvider
from kbcopilot.interfaces.generation_provider import IGenerationProvider
from kbcopilot.interfaces.moderation_provider import IModerationProvider
from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.pipeline.orchestrator import AgentPipeline
from kbcopilot.providers.audit import InMemoryAuditProvider, SQLiteAuditProvider
from kbcopilot.providers.cache.memory_cache import MemoryCacheProvider
from kbcopilot.providers.memory import InMemoryMemoryProvider
from kbcopilot.providers.moderation import KeywordModerationProvider, OpenAIModerationProvider
from kbcopilot.providers.parsers import ParserRegistry
from kbcopilot.providers.vector_store.factory import VectorStoreFactory
from kbcopilot.services.evaluation import EvaluationService
from kbcopilot.services.governance import (
    ContentModerationService,
    GovernanceGate,
    RedactionService,
)
from kbcopilot.services.ingestion import IngestionService
from kbcopilot.services.retrieval import Reranker
from kbcopilot.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_embedding_provider(config: dict[str, Any]) -> IEmbeddingProvider:
    """OpenAI when a key is configured, otherwise the local FastEmbed model."""
    providers = config.get("providers", {}) or {}
    if providers.get("openai_api_key"):
        from kbcopilot.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        return OpenAIEmbeddingProvider(
            api_key=providers["openai_api_key"],
            model=providers.get("openai_embedding_model", ""),
            base_url=providers.get("openai_base_url", ""),
        )

    from kbcopilot.providers.embedding.fastembed_embedding_provider import (
        FastEmbedEmbeddingProvider,
    )

    return FastEmbedEmbeddingProvider(model_name=providers.get("fastembed_model") or None)


def _build_generation_provider(config: dict[str, Any]) -> IGenerationProvider | None:
    """First provider in ``generation_priority`` that has an API key."""
    providers = config.get("providers", {}) or {}
    priority = providers.get("generation_priority") or ["anthropic", "openai"]
    for name in priority:
        if name == "anthropic" and providers.get("anthropic_api_key"):
            from kbcopilot.providers.generation.anthropic_provider import (
                AnthropicGenerationProvider,
            )

            return AnthropicGenerationProvider(
                api_key=providers["anthropic_api_key"],
                model=providers.get("anthropic_model", ""),
            )
        if name == "openai" and providers.get("openai_api_key"):
            from kbcopilot.providers.generation.openai_provider import OpenAIGenerationProvider

            return OpenAIGenerationProvider(
                api_key=providers["openai_api_key"],
                model=providers.get("openai_generation_model", ""),
                base_url=providers.get("openai_base_url", ""),
                timeout_seconds=float(providers.get("generation_timeout_seconds", 60)),
            )
    return None


def _build_vector_store(config: dict[str, Any], embedding: IEmbeddingProvider) -> IVectorStoreProvider:
    return VectorStoreFactory.create(config.get("vector_store", {}) or {}, dimension=embedding.get_dimension())


def _build_audit_provider(config: dict[str, Any]) -> IAuditProvider:
    section = config.get("audit", {}) or {}
    backend = str(section.get("backend", "sqlite")).lower()
    if backend == "memory":
        return InMemoryAuditProvider()
    if backend == "sqlite":
        return SQLiteAuditProvider(db_path=section.get("db_path", "data/audit.db"))
    raise ConfigurationError(message=f"Unknown audit backend '{backend}'", provider_name="audit")


def _keyword_rules(section: dict[str, Any]) -> dict[str, tuple[str, float]] | None:
    """``keywords: {word: [category, severity]}`` from the moderation section."""
    keywords = section.get("keywords")
    if not keywords:
        return None
    try:
        return {str(word).lower(): (str(rule[0]), float(rule[1])) for word, rule in keywords.items()}
    except (AttributeError, IndexError, TypeError, ValueError) as exc:
        raise ConfigurationError(
            message="governance.moderation.keywords must map words to [category, severity]",
            provider_name="moderation",
        ) from exc


def _build_moderation_provider(config: dict[str, Any]) -> IModerationProvider:
    governance = config.get("governance", {}) or {}
    section = governance.get("moderation", {}) or {}
    name = str(section.get("provider", "keyword")).lower()
    if name == "openai":
        api_key = (config.get("providers", {}) or {}).get("openai_api_key", "")
        if not api_key:
            raise ConfigurationError(
                message="governance.moderation.provider=openai requires OPENAI_API_KEY",
                provider_name="openai_moderation",
            )
        return OpenAIModerationProvider(api_key=api_key)
    if name == "keyword":
        return KeywordModerationProvider(_keyword_rules(section))
    raise ConfigurationError(message=f"Unknown moderation provider '{name}'", provider_name="moderation")


def _build_gate(config: dict[str, Any], moderation_provider: IModerationProvider) -> GovernanceGate:
    policy = governance_policy(config)
    return GovernanceGate(
        policy=policy,
        redaction=RedactionService(redaction_options(config), enabled=policy.redaction_enabled),
        moderation=ContentModerationService(
            moderation_provider,
            threshold=policy.moderation_threshold,
            enabled=policy.moderation_enabled,
        ),
    )


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def build_services(
    config: dict[str, Any] | None = None,
    settings: Settings | None = None,
    embedding_provider: IEmbeddingProvider | None = None,
    generation_provider: IGenerationProvider | None = None,
    vector_store: IVectorStoreProvider | None = None,
    audit_provider: IAuditProvider | None = None,
) -> dict[str, Any]:
    """Build the full object graph.

    Any provider passed in replaces the one the config would select, which
    is how tests run the real pipeline over fakes.

    Returns
    -------
    dict[str, Any]
        ``ingestion``, ``pipeline`` and ``evaluation`` (both ``None``
        without a generation provider), ``vector_store``, ``audit``, ``memory``, ``gate``,
        ``embedding``, ``generation`` and the resolved ``config``.
    """
    config = config if config is not None else load_config(settings=settings)

    embedding = embedding_provider or _build_embedding_provider(config)
    generation = generation_provider or _build_generation_provider(config)
    store = vector_store or _build_vector_store(config, embedding)
    audit = audit_provider or _build_audit_provider(config)
    memory = InMemoryMemoryProvider()
    gate = _build_gate(config, _build_moderation_provider(config))

    ingestion_section = config.get("ingestion", {}) or {}
    chunking = chunking_options(config)
    ingestion = IngestionService(
        parsers=ParserRegistry.default(),
        embedding_provider=embedding,
        vector_store=store,
        max_parallel_files=int(ingestion_section.get("max_parallel_files", 4)),
        batch_size=int(ingestion_section.get("embed_batch_size", 10)),
        boundary_tolerance=chunking.boundary_tolerance,
    )

    pipeline: AgentPipeline | None = None
    evaluation: EvaluationService | None = None
    if generation is not None:
        retrieval = retrieval_settings(config)
        drafting = config.get("drafting", {}) or {}
        providers = config.get("providers", {}) or {}
        pipeline = AgentPipeline(
            router=RouterAgent(memory=memory, gate=gate),
            retriever=RetrieverAgent(
                embedding_provider=embedding,
                vector_store=store,
                cache=MemoryCacheProvider(
                    max_size=retrieval["cache_max_size"],
                    ttl=retrieval["cache_ttl_seconds"],
                ),
                reranker=Reranker(),
                min_score=retrieval["min_score"],
            ),
            drafter=DrafterAgent(
                generation_provider=generation,
                gate=gate,
                max_memory_turns=int(drafting.get("max_memory_turns", 3)),
                temperature=float(providers.get("temperature", 0.3)),
            ),
            cite_checker=CiteCheckerAgent(gate=gate),
            audit=audit,
            memory=memory,
            gate=gate,
            vector_store_name=store.get_provider_name(),
            reserved_tokens=int(drafting.get("reserved_tokens", 300)),
        )
        evaluation = EvaluationService(
            pipeline=pipeline,
            refusal_message=gate.refusal_message,
            targets=evaluation_targets(config),
        )
    else:
        logger.warning("generation_unavailable", hint="set ANTHROPIC_API_KEY or OPENAI_API_KEY")

    logger.info(
        "services_built",
        vector_store=store.get_provider_name(),
        embedding=embedding.get_provider_name(),
        generation=generation.get_provider_name() if generation else None,
        audit=audit.get_provider_name(),
    )
    return {
        "config": config,
        "ingestion": ingestion,
        "pipeline": pipeline,
        "evaluation": evaluation,
        "vector_store": store,
        "audit": audit,
        "memory": memory,
        "gate": gate,
        "embedding": embedding,
        "generation": generation,
    }
