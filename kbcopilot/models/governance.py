"""Typed records for redaction and moderation.

These replace loose key/value maps: a moderation result always has the
same fields, and every redaction is a :class:`RedactionMatch` with a type,
the original value, its placeholder and where it was found.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------
class SeverityLevel(IntEnum):
    """Severity scale shared by every moderation provider."""

    SAFE = 0
    LOW = 2
    MEDIUM = 4
    HIGH = 6

    @classmethod
    def from_score(cls, score: float) -> SeverityLevel:
        """Map a numeric severity (0-6 scale) onto the nearest level at or below it."""
        if score >= cls.HIGH:
            return cls.HIGH
        if score >= cls.MEDIUM:
            return cls.MEDIUM
        if score >= cls.LOW:
            return cls.LOW
        return cls.SAFE

    @classmethod
    def parse_threshold(cls, value: str) -> SeverityLevel:
        """``"low" | "medium" | "high"`` (case-insensitive); anything else is medium."""
        return {
            "low": cls.LOW,
            "medium": cls.MEDIUM,
            "high": cls.HIGH,
        }.get(value.strip().lower(), cls.MEDIUM)


class ModerationAction(str, Enum):  # noqa: UP042
    """Gating decision taken on moderated content."""

    ALLOW = "allow"
    WARN = "warn"
    BLOCK = "block"


class ModerationCategory(BaseModel):
    """One named risk category reported by a moderation provider."""

    model_config = ConfigDict(frozen=True)

    name: str
    severity: float = Field(ge=0.0, le=6.0)
    level: SeverityLevel = SeverityLevel.SAFE


class ModerationResult(BaseModel):
    """Outcome of moderating one piece of content.

    Stores a digest of the content rather than the content itself so the
    record can go into the audit log without re-leaking what was blocked.
    """

    model_config = ConfigDict(frozen=True)

    content_sha: str = ""
    flagged: bool = False
    overall_severity: SeverityLevel = SeverityLevel.SAFE
    categories: list[ModerationCategory] = Field(default_factory=list)
    action: ModerationAction = ModerationAction.ALLOW
    reason: str | None = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @property
    def blocked(self) -> bool:
        return self.action is ModerationAction.BLOCK


# ---------------------------------------------------------------------------
# Redaction
# ---------------------------------------------------------------------------
class RedactionMatch(BaseModel):
    """One replaced span: ``start`` indexes into the text the rule ran on."""

    model_config = ConfigDict(frozen=True)

    type: str
    original_value: str
    redacted_value: str
    start: int = 0

    @property
    def length(self) -> int:
        return len(self.original_value)


class RedactionResult(BaseModel):
    """Original text, redacted text and the list of replacements made."""

    model_config = ConfigDict(frozen=True)

    original_content: str
    redacted_content: str
    redactions: list[RedactionMatch] = Field(default_factory=list)

    @property
    def has_redactions(self) -> bool:
        return bool(self.redactions)

    @classmethod
    def unchanged(cls, content: str) -> RedactionResult:
        return cls(original_content=content, redacted_content=content)


class RedactionRule(BaseModel):
    """A caller-supplied regex rule; matched case-insensitively."""

    model_config = ConfigDict(frozen=True)

    name: str
    pattern: str
    replacement: str
    enabled: bool = True


class RedactionOptions(BaseModel):
    """Which built-in PII patterns run, plus any custom rules."""

    model_config = ConfigDict(frozen=True)

    redact_email_addresses: bool = True
    redact_credit_card_numbers: bool = True
    redact_identifiers: bool = True
    redact_phone_numbers: bool = True
    redact_addresses: bool = False
    redact_names: bool = False
    custom_rules: list[RedactionRule] = Field(default_factory=list)

    @classmethod
    def default(cls) -> RedactionOptions:
        return cls()

    @classmethod
    def conservative(cls) -> RedactionOptions:
        """Contact details and identifiers only; free text is left alone."""
        return cls(redact_addresses=False, redact_names=False)

    @classmethod
    def aggressive(cls) -> RedactionOptions:
        """Everything in ``conservative`` plus street addresses and titled names."""
        return cls(redact_addresses=True, redact_names=True)
