"""Threshold-based moderation on top of a classifying provider.

Categories at or above the configured threshold flag the content.  The
action follows the highest flagged level: high blocks, medium and low warn.
Unflagged content is allowed even when lower-severity categories were
reported; they stay on the result for the audit trail.
"""

from __future__ import annotations

import structlog

from kbcopilot.interfaces.moderation_provider import IModerationProvider
from kbcopilot.models.governance import (
    ModerationAction,
    ModerationResult,
    SeverityLevel,
)
from kbcopilot.utils.text import sha256_hex

logger = structlog.get_logger(logger_name=__name__)


def action_for(level: SeverityLevel) -> ModerationAction:
    if level >= SeverityLevel.HIGH:
        return ModerationAction.BLOCK
    if level >= SeverityLevel.LOW:
        return ModerationAction.WARN
    return ModerationAction.ALLOW


class ContentModerationService:
    """Turns provider categories into a :class:`ModerationResult`."""

    def __init__(
        self,
        provider: IModerationProvider,
        threshold: str = "medium",
        enabled: bool = True,
    ) -> None:
        self._provider = provider
        self._threshold = SeverityLevel.parse_threshold(threshold)
        self._enabled = enabled

    @property
    def threshold(self) -> SeverityLevel:
        return self._threshold

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def moderate(self, text: str) -> ModerationResult:
        """Classify *text* and decide allow / warn / block."""
        digest = sha256_hex(text)
        if not self._enabled or not text.strip():
            return ModerationResult(content_sha=digest)

        categories = await self._provider.classify(text)
        flagged = [c for c in categories if c.level >= self._threshold]
        if not flagged:
            return ModerationResult(content_sha=digest, categories=categories)

        overall = max(c.level for c in flagged)
        action = action_for(overall)
        result = ModerationResult(
            content_sha=digest,
            flagged=True,
            overall_severity=overall,
            categories=categories,
            action=action,
            reason="Content flagged for: " + ", ".join(c.name for c in flagged),
        )
        logger.info(
            "content_flagged",
            provider=self._provider.get_provider_name(),
            action=action.value,
            severity=int(overall),
            categories=[c.name for c in flagged],
        )
        return result
