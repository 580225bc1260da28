"""Abstract base class for content-moderation providers.

A provider only classifies: it reports named categories with a 0-6
severity.  Thresholds and the allow / warn / block decision belong to
:class:`~kbcopilot.services.governance.moderation_service.ContentModerationService`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kbcopilot.models.governance import ModerationCategory


# Concrete implementations: KeywordModerationProvider, OpenAIModerationProvider
# Located in: kbcopilot/providers/moderation/
class IModerationProvider(ABC):
    """Contract for content classifiers."""

    @abstractmethod
    async def classify(self, text: str) -> list[ModerationCategory]:
        """Return the risk categories found in *text* (empty when clean).

        Raises
        ------
        kbcopilot.utils.errors.KnowledgeBaseError
            If the backend call fails.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the provider identifier."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider can be called."""
