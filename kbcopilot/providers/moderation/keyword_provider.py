"""Rule-based moderation provider.

Flags text containing configured keywords (whole-word, case-insensitive).
With no rules given it uses two demo keywords, ``unsafe`` and
``dangerous``, both mapped to Violence at medium severity.  Runs offline
and deterministically, which makes it the default for local use and tests.
"""

from __future__ import annotations

import re

from kbcopilot.interfaces.moderation_provider import IModerationProvider
from kbcopilot.models.governance import ModerationCategory, SeverityLevel

# keyword -> (category, severity on the 0-6 scale)
DEFAULT_RULES: dict[str, tuple[str, float]] = {
    "unsafe": ("Violence", 4.0),
    "dangerous": ("Violence", 4.0),
}


class KeywordModerationProvider(IModerationProvider):
    """Keyword matcher reporting the highest severity per category."""

    def __init__(self, rules: dict[str, tuple[str, float]] | None = None) -> None:
        self._rules = dict(DEFAULT_RULES if rules is None else rules)
        self._patterns = {
            keyword: re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
            for keyword in self._rules
        }

    async def classify(self, text: str) -> list[ModerationCategory]:
        worst: dict[str, float] = {}
        for keyword, pattern in self._patterns.items():
            if pattern.search(text):
                category, severity = self._rules[keyword]
                worst[category] = max(worst.get(category, 0.0), severity)
        return [
            ModerationCategory(name=name, severity=sev, level=SeverityLevel.from_score(sev))
            for name, sev in sorted(worst.items())
        ]

    def get_provider_name(self) -> str:
        return "keyword"

    def is_available(self) -> bool:
        return True
