"""Embedding provider implementations.

    1. FastEmbedEmbeddingProvider - local ONNX model (default, 384 dims).
    2. OpenAIEmbeddingProvider    - text-embedding-3-small (1536 dims),
       requires an API key.
"""

from kbcopilot.providers.embedding.fastembed_embedding_provider import FastEmbedEmbeddingProvider
from kbcopilot.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["FastEmbedEmbeddingProvider", "OpenAIEmbeddingProvider"]
