from kbcopilot.providers.moderation.keyword_provider import KeywordModerationProvider
from kbcopilot.providers.moderation.openai_moderation_provider import OpenAIModerationProvider

__all__ = ["KeywordModerationProvider", "OpenAIModerationProvider"]
