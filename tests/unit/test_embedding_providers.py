"""Unit tests for the embedding adapters and the OpenAI moderation adapter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import numpy as np
import openai
import pytest

from kbcopilot.models.governance import SeverityLevel
from kbcopilot.providers.embedding.fastembed_embedding_provider import FastEmbedEmbeddingProvider
from kbcopilot.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from kbcopilot.providers.moderation.openai_moderation_provider import OpenAIModerationProvider
from kbcopilot.utils.errors import EmbeddingError, KnowledgeBaseError


def _embedding_response(vectors: list[list[float]]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=v) for v in vectors]
    response.usage = MagicMock(total_tokens=10)
    return response


# ======================================================================
# OpenAI embeddings
# ======================================================================


class TestOpenAIEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_embed_batch(self) -> None:
        client = AsyncMock()
        client.embeddings.create = AsyncMock(return_value=_embedding_response([[0.1, 0.2], [0.3, 0.4]]))
        provider = OpenAIEmbeddingProvider(api_key="sk-test", client=client)

        vectors = await provider.embed(["a", "b"])

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        assert client.embeddings.create.call_args.kwargs["model"] == "text-embedding-3-small"

    @pytest.mark.asyncio
    async def test_empty_input_skips_the_api(self) -> None:
        client = AsyncMock()
        provider = OpenAIEmbeddingProvider(api_key="sk-test", client=client)
        assert await provider.embed([]) == []
        client.embeddings.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_count_mismatch(self) -> None:
        client = AsyncMock()
        client.embeddings.create = AsyncMock(return_value=_embedding_response([[0.1]]))
        provider = OpenAIEmbeddingProvider(api_key="sk-test", client=client)

        with pytest.raises(EmbeddingError, match="expected 2"):
            await provider.embed(["a", "b"])

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self) -> None:
        client = AsyncMock()
        client.embeddings.create = AsyncMock(
            side_effect=openai.APIError(message="quota", request=MagicMock(), body=None)
        )
        provider = OpenAIEmbeddingProvider(api_key="sk-test", client=client)

        with pytest.raises(EmbeddingError, match="quota"):
            await provider.embed_single("a")

    def test_dimensions_by_model(self) -> None:
        assert OpenAIEmbeddingProvider(api_key="k", client=AsyncMock()).get_dimension() == 1536
        large = OpenAIEmbeddingProvider(api_key="k", model="text-embedding-3-large", client=AsyncMock())
        assert large.get_dimension() == 3072
        assert large.get_provider_name() == "openai_embedding"


# ======================================================================
# FastEmbed
# ======================================================================


class TestFastEmbedEmbeddingProvider:
    """The ONNX model is replaced by a mock, so nothing is downloaded."""

    @pytest.mark.asyncio
    async def test_numpy_vectors_become_lists(self) -> None:
        provider = FastEmbedEmbeddingProvider()
        model = MagicMock()
        model.embed = MagicMock(side_effect=lambda batch: (np.array([0.5, 0.25]) for _ in batch))
        provider._model = model

        vectors = await provider.embed(["x", "y"])

        assert vectors == [[0.5, 0.25], [0.5, 0.25]]

    @pytest.mark.asyncio
    async def test_inference_error_wrapped(self) -> None:
        provider = FastEmbedEmbeddingProvider()
        provider._model = MagicMock()
        provider._model.embed = MagicMock(side_effect=RuntimeError("onnx failure"))

        with pytest.raises(EmbeddingError, match="onnx failure"):
            await provider.embed(["x"])

    def test_names(self) -> None:
        provider = FastEmbedEmbeddingProvider("BAAI/bge-base-en-v1.5")
        assert provider.get_dimension() == 768
        assert provider.get_provider_name() == "fastembed_bge-base-en-v1.5"


# ======================================================================
# OpenAI moderation
# ======================================================================


class TestOpenAIModerationProvider:
    @staticmethod
    def _client(scores: dict[str, float | None]) -> AsyncMock:
        result = MagicMock()
        result.category_scores.model_dump = MagicMock(return_value=scores)
        client = AsyncMock()
        client.moderations.create = AsyncMock(return_value=MagicMock(results=[result]))
        return client

    @pytest.mark.asyncio
    async def test_scores_scaled_to_severity(self) -> None:
        client = self._client({"violence": 0.9, "harassment": 0.5, "self-harm": 0.01, "illicit": None})
        provider = OpenAIModerationProvider(api_key="sk-test", client=client)

        categories = await provider.classify("text")

        by_name = {c.name: c for c in categories}
        assert set(by_name) == {"harassment", "violence"}
        assert by_name["violence"].level is SeverityLevel.MEDIUM
        assert by_name["harassment"].level is SeverityLevel.LOW

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self) -> None:
        client = AsyncMock()
        client.moderations.create = AsyncMock(
            side_effect=openai.APIError(message="down", request=MagicMock(), body=None)
        )
        provider = OpenAIModerationProvider(api_key="sk-test", client=client)

        with pytest.raises(KnowledgeBaseError) as info:
            await provider.classify("text")
        assert info.value.provider_name == "openai_moderation"
