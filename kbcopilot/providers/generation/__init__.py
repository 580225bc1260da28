"""Generation (LLM) provider implementations."""

from kbcopilot.providers.generation.anthropic_provider import AnthropicGenerationProvider
from kbcopilot.providers.generation.openai_provider import OpenAIGenerationProvider

__all__ = ["AnthropicGenerationProvider", "OpenAIGenerationProvider"]
