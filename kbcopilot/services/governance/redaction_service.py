"""PII redaction with typed placeholders.

Patterns run in a fixed order (email, credit card, SSN-like identifier,
phone, then the optional address and name patterns, then custom rules).
Each pass works on the output of the previous one, and a match that
overlaps an existing ``[...-REDACTED]`` placeholder is left alone, so
redacting already-redacted text is a no-op.
"""

from __future__ import annotations

import asyncio
import re

import structlog

from kbcopilot.models.governance import (
    RedactionMatch,
    RedactionOptions,
    RedactionResult,
    RedactionRule,
)
from kbcopilot.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

EMAIL_PLACEHOLDER = "[EMAIL-REDACTED]"
CC_PLACEHOLDER = "[CC-REDACTED]"
SSN_PLACEHOLDER = "[SSN-REDACTED]"
PHONE_PLACEHOLDER = "[PHONE-REDACTED]"
ADDRESS_PLACEHOLDER = "[ADDRESS-REDACTED]"
NAME_PLACEHOLDER = "[NAME-REDACTED]"

_EMAIL = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", re.IGNORECASE)
_CREDIT_CARD = re.compile(
    r"\b(?:4[0-9]{12}(?:[0-9]{3})?|5[1-5][0-9]{14}|3[47][0-9]{13}|3[0-9]{13}"
    r"|6(?:011|5[0-9]{2})[0-9]{12})\b"
)
_SSN = re.compile(r"\b(?!000)(?!666)(?!9)\d{3}[-.\s]?(?!00)\d{2}[-.\s]?(?!0000)\d{4}\b")
_PHONE = re.compile(r"(\+?1[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})")
_ADDRESS = re.compile(
    r"\b\d{1,5}\s+(?:[A-Z][a-z]+\s+){1,3}"
    r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Court|Ct|Way)\b\.?"
)
_NAME = re.compile(r"\b(?:Mr|Mrs|Ms|Dr)\.?\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)?")
_PLACEHOLDER = re.compile(r"\[[A-Z]+(?:-[A-Z]+)*-REDACTED\]")


class RedactionService:
    """Replaces personal data with placeholders and records each replacement."""

    def __init__(self, options: RedactionOptions | None = None, enabled: bool = True) -> None:
        self._options = options or RedactionOptions.default()
        self._enabled = enabled
        self._custom = [self._compile(rule) for rule in self._options.custom_rules if rule.enabled]

    @property
    def enabled(self) -> bool:
        return self._enabled

    def redact(self, content: str, options: RedactionOptions | None = None) -> RedactionResult:
        """Redact *content*; *options* overrides the service defaults for this call."""
        if not self._enabled or not content:
            return RedactionResult.unchanged(content)

        opts = options or self._options
        custom = self._custom if options is None else [
            self._compile(rule) for rule in opts.custom_rules if rule.enabled
        ]

        passes: list[tuple[str, re.Pattern[str], str]] = []
        if opts.redact_email_addresses:
            passes.append(("email", _EMAIL, EMAIL_PLACEHOLDER))
        if opts.redact_credit_card_numbers:
            passes.append(("credit_card", _CREDIT_CARD, CC_PLACEHOLDER))
        if opts.redact_identifiers:
            passes.append(("ssn", _SSN, SSN_PLACEHOLDER))
        if opts.redact_phone_numbers:
            passes.append(("phone", _PHONE, PHONE_PLACEHOLDER))
        if opts.redact_addresses:
            passes.append(("address", _ADDRESS, ADDRESS_PLACEHOLDER))
        if opts.redact_names:
            passes.append(("name", _NAME, NAME_PLACEHOLDER))
        passes.extend(custom)

        text = content
        matches: list[RedactionMatch] = []
        for kind, pattern, replacement in passes:
            text, found = _apply(text, kind, pattern, replacement)
            matches.extend(found)

        if matches:
            logger.debug("content_redacted", redactions=len(matches), types=sorted({m.type for m in matches}))
        return RedactionResult(original_content=content, redacted_content=text, redactions=matches)

    def redact_text(self, content: str) -> str:
        """Shorthand returning only the redacted string."""
        return self.redact(content).redacted_content

    async def redact_batch(
        self, contents: list[str], options: RedactionOptions | None = None
    ) -> list[RedactionResult]:
        """Redact several texts; result order matches input order."""
        return await asyncio.gather(
            *(asyncio.to_thread(self.redact, content, options) for content in contents)
        )

    @staticmethod
    def _compile(rule: RedactionRule) -> tuple[str, re.Pattern[str], str]:
        try:
            return rule.name, re.compile(rule.pattern, re.IGNORECASE), rule.replacement
        except re.error as exc:
            raise ConfigurationError(
                message=f"Invalid redaction rule '{rule.name}': {exc}",
                provider_name="redaction",
            ) from exc


def _apply(
    text: str, kind: str, pattern: re.Pattern[str], replacement: str
) -> tuple[str, list[RedactionMatch]]:
    protected = [(m.start(), m.end()) for m in _PLACEHOLDER.finditer(text)]
    pieces: list[str] = []
    found: list[RedactionMatch] = []
    cursor = 0
    for match in pattern.finditer(text):
        start, end = match.span()
        if start == end or any(start < p_end and end > p_start for p_start, p_end in protected):
            continue
        pieces.append(text[cursor:start])
        pieces.append(replacement)
        found.append(
            RedactionMatch(type=kind, original_value=match.group(0), redacted_value=replacement, start=start)
        )
        cursor = end
    if not found:
        return text, []
    pieces.append(text[cursor:])
    return "".join(pieces), found
