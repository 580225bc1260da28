"""Abstract base class for cache providers.

Used by the retriever to keep query embeddings for a short time, so a
follow-up question with the same wording skips the embedding call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ICacheProvider(ABC):
    """Contract for key-value caches.  All operations are async."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` when missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store *value* under *key*.

        Parameters
        ----------
        ttl:
            Time-to-live in seconds.  ``None`` uses the provider's default.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove *key*; no-op when absent."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return ``True`` if *key* is present and not expired."""
