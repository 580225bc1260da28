"""Abstract base class for text-generation (LLM) providers.

The drafter hands a fully assembled prompt to :meth:`IGenerationProvider.generate`
and gets back the text plus token counts for the audit record.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, ConfigDict


class GenerationResult(BaseModel):
    """Generated text and the usage the backend reported."""

    model_config = ConfigDict(frozen=True)

    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""


# Concrete implementations: OpenAIGenerationProvider, AnthropicGenerationProvider
# Located in: kbcopilot/providers/generation/
class IGenerationProvider(ABC):
    """Contract for LLM completion used by the drafter agent."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        """Generate a completion for *prompt*.

        Parameters
        ----------
        prompt:
            The full user prompt (instructions, context, memory, question).
        max_tokens:
            Upper bound on generated tokens.
        temperature:
            Sampling temperature.
        system_prompt:
            Optional system message.

        Raises
        ------
        kbcopilot.utils.errors.GenerationError
            If the API call fails or returns no text.
        """

    @abstractmethod
    def get_model_name(self) -> str:
        """Return the model identifier used for generation."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
