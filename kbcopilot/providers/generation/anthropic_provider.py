"""Anthropic generation provider adapter.

Wraps the ``anthropic`` async client to implement :class:`IGenerationProvider`.

Differences from the OpenAI adapter:
    - Messages API instead of chat.completions
    - the system prompt is a top-level parameter, not a message
    - the response is a list of content blocks; text blocks are joined
"""

from __future__ import annotations

import anthropic
import structlog

from kbcopilot.interfaces.generation_provider import GenerationResult, IGenerationProvider
from kbcopilot.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MODEL = "claude-sonnet-4-20250514"
_DEFAULT_SYSTEM_PROMPT = "You are a careful assistant that answers only from the provided sources."


class AnthropicGenerationProvider(IGenerationProvider):
    """Generation provider backed by the Anthropic Claude API."""

    def __init__(
        self,
        api_key: str,
        model: str = "",
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key)
        self._model = model or _DEFAULT_MODEL

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=system_prompt or _DEFAULT_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
            )
        except anthropic.APIError as exc:
            raise GenerationError(
                message=f"Anthropic API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        text_blocks = [block.text for block in response.content if block.type == "text"]
        if not text_blocks:
            raise GenerationError(
                message="Anthropic returned no text content",
                provider_name=self.get_provider_name(),
            )
        result = GenerationResult(
            text="\n".join(text_blocks),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=response.model or self._model,
        )
        logger.info(
            "anthropic_completion",
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return result

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return "anthropic"

    def is_available(self) -> bool:
        return bool(self._api_key)
