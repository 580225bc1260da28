"""OpenAI moderation API adapter.

The API scores each category in ``[0, 1]``; scores are scaled onto the
shared 0-6 severity scale so thresholds work the same for every provider.
"""

from __future__ import annotations

import openai
import structlog

from kbcopilot.interfaces.moderation_provider import IModerationProvider
from kbcopilot.models.governance import ModerationCategory, SeverityLevel
from kbcopilot.utils.errors import KnowledgeBaseError

logger = structlog.get_logger(logger_name=__name__)

_SCALE = 6.0


class OpenAIModerationProvider(IModerationProvider):
    """Moderation backed by ``client.moderations.create``."""

    def __init__(
        self,
        api_key: str,
        model: str = "omni-moderation-latest",
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._client = client or openai.AsyncOpenAI(api_key=api_key)

    async def classify(self, text: str) -> list[ModerationCategory]:
        try:
            response = await self._client.moderations.create(model=self._model, input=text)
        except openai.APIError as exc:
            raise KnowledgeBaseError(
                message=f"OpenAI moderation error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.results:
            return []
        scores = response.results[0].category_scores.model_dump(by_alias=True)
        categories = [
            ModerationCategory(
                name=name,
                severity=min(_SCALE, float(score) * _SCALE),
                level=SeverityLevel.from_score(float(score) * _SCALE),
            )
            for name, score in sorted(scores.items())
            if score is not None and float(score) * _SCALE >= SeverityLevel.LOW
        ]
        logger.debug("openai_moderation", categories=[c.name for c in categories])
        return categories

    def get_provider_name(self) -> str:
        return "openai_moderation"

    def is_available(self) -> bool:
        return bool(self._api_key)
