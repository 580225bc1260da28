"""OpenAI-compatible generation provider adapter.

Wraps the ``openai`` async client to implement :class:`IGenerationProvider`.
When ``base_url`` is set, the same adapter talks to any OpenAI-compatible
endpoint (TogetherAI, Fireworks, Groq, a local vLLM server).
"""

from __future__ import annotations

import openai
import structlog

from kbcopilot.interfaces.generation_provider import GenerationResult, IGenerationProvider
from kbcopilot.utils.errors import GenerationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_SYSTEM_PROMPT = "You are a careful assistant that answers only from the provided sources."


class OpenAIGenerationProvider(IGenerationProvider):
    """Generation provider backed by the chat completions API.

    Uses ``gpt-4o-mini`` unless *model* overrides it.  The client timeout
    keeps one slow completion from holding a request forever.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "",
        base_url: str = "",
        timeout_seconds: float = 60.0,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        client_kwargs: dict = {
            "api_key": api_key,
            "timeout": openai.Timeout(timeout_seconds, connect=5.0),
        }
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = client or openai.AsyncOpenAI(**client_kwargs)
        self._model = model or "gpt-4o-mini"
        self._provider_label = "openai-compatible" if base_url else "openai"

    async def generate(
        self,
        prompt: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt or _DEFAULT_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIError as exc:
            raise GenerationError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise GenerationError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        usage = response.usage
        result = GenerationResult(
            text=content,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=response.model or self._model,
        )
        logger.info(
            "openai_completion",
            model=result.model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return result

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        return bool(self._api_key)
