"""Retriever: embed the query, search, optionally re-rank, freeze the set."""

from __future__ import annotations

from kbcopilot.agents.base_agent import BaseAgent
from kbcopilot.interfaces.cache_provider import ICacheProvider
from kbcopilot.interfaces.embedding_provider import IEmbeddingProvider
from kbcopilot.interfaces.vector_store_provider import IVectorStoreProvider
from kbcopilot.models.pipeline import OrchestrationContext, PipelineStage, RetrieveTrace
from kbcopilot.services.retrieval.reranker import Reranker
from kbcopilot.utils.text import sha256_hex


class RetrieverAgent(BaseAgent):
    """Finds the chunks the answer may cite.

    Query vectors are cached by ``(model, sha256(query))`` so repeated
    questions skip the embedding call.  The returned list becomes the
    request's frozen retrieved set; citations outside it are dropped later.
    """

    name = "retriever"

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        cache: ICacheProvider,
        reranker: Reranker | None = None,
        min_score: float = 0.0,
    ) -> None:
        super().__init__()
        self._embedding_provider = embedding_provider
        self._vector_store = vector_store
        self._cache = cache
        self._reranker = reranker or Reranker()
        self._min_score = min_score

    async def execute(self, context: OrchestrationContext, start: float) -> OrchestrationContext:
        query = context.query_text
        model = self._embedding_provider.get_model_name()
        key = f"query_embedding:{model}:{sha256_hex(query)}"

        vector = await self._cache.get(key)
        cache_hit = vector is not None
        if vector is None:
            vector = await self._embedding_provider.embed_single(query)
            await self._cache.set(key, vector)

        results = await self._vector_store.search(
            vector,
            top_k=context.top_k,
            min_score=self._min_score,
            model=model,
        )
        if context.enable_rerank and results:
            results = self._reranker.rerank(query, results)

        trace = RetrieveTrace(
            agent=self.name,
            action="searched",
            duration_ms=self.elapsed_ms(start),
            retrieved_count=len(results),
            reranked=context.enable_rerank,
            top_score=results[0].score if results else None,
            cache_hit=cache_hit,
        )
        self._logger.info(
            "chunks_retrieved",
            results=len(results),
            top_k=context.top_k,
            min_score=self._min_score,
            cache_hit=cache_hit,
        )
        return context.advance(PipelineStage.RETRIEVED, retrieved=list(results)).with_trace(trace)
