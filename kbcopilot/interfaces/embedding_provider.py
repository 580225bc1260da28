"""Abstract base class for text-embedding providers.

Implementations wrap OpenAI ``text-embedding-3-small`` or a local FastEmbed
ONNX model.  Every vector a provider returns has :meth:`get_dimension`
entries, and is stored under :meth:`get_model_name` in the vector store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   FastEmbedEmbeddingProvider  - local ONNX model, no API key
#   OpenAIEmbeddingProvider     - text-embedding-3-small (requires API key)
# Located in: kbcopilot/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for embedding services used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts.

        Returns
        -------
        list[list[float]]
            Vectors in the order of *texts*.

        Raises
        ------
        kbcopilot.utils.errors.EmbeddingError
            If the backend call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Embed one text (typically a query)."""

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the vector length; constant for the provider's lifetime."""

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier vectors are stored under."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai-text-embedding-3-small"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if credentials / model files are present."""
