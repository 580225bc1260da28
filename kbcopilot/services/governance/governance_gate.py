"""Single entry point the agents use for redaction, moderation and policy.

The gate owns the :class:`GovernancePolicy` so agents never branch on raw
config.  Moderation results are returned, not raised; only
:meth:`GovernanceGate.enforce` turns a block into
:class:`~kbcopilot.utils.errors.ModerationBlockedError`, and only when the
policy says a block is a hard failure.
"""

from __future__ import annotations

from kbcopilot.models.governance import ModerationResult, RedactionResult
from kbcopilot.services.governance.moderation_service import ContentModerationService
from kbcopilot.services.governance.policy import GovernancePolicy
from kbcopilot.services.governance.redaction_service import RedactionService
from kbcopilot.utils.errors import ModerationBlockedError
from kbcopilot.utils.text import sha256_hex


class GovernanceGate:
    """Redaction + moderation + policy, shared by every pipeline request.

    Stateless apart from its collaborators, so one instance serves
    concurrent requests.
    """

    def __init__(
        self,
        policy: GovernancePolicy,
        redaction: RedactionService,
        moderation: ContentModerationService,
    ) -> None:
        self._policy = policy
        self._redaction = redaction
        self._moderation = moderation

    @property
    def policy(self) -> GovernancePolicy:
        return self._policy

    @property
    def refusal_message(self) -> str:
        return self._policy.refusal_message

    # -- Moderation --------------------------------------------------------

    async def moderate(self, text: str) -> ModerationResult:
        if not self._policy.moderation_enabled:
            return ModerationResult(content_sha=sha256_hex(text))
        return await self._moderation.moderate(text)

    def enforce(self, result: ModerationResult, stage: str) -> None:
        """Raise when *result* is a block and blocks are configured as failures."""
        if result.blocked and self._policy.block_is_failure:
            raise ModerationBlockedError(
                message=f"{stage} blocked: {result.reason or 'policy violation'}",
                provider_name="governance",
            )

    # -- Redaction ---------------------------------------------------------

    def redact(self, text: str) -> RedactionResult:
        if not self._policy.redaction_enabled:
            return RedactionResult.unchanged(text)
        return self._redaction.redact(text)

    def for_prompt(self, text: str) -> str:
        """Memory text as it may appear inside a prompt."""
        if not self._policy.redact_prompt_memory:
            return text
        return self.redact(text).redacted_content

    def for_audit(self, text: str) -> str:
        """Text as it may be persisted in the audit log."""
        if not self._policy.redact_audit:
            return text
        return self.redact(text).redacted_content

    def for_response(self, text: str) -> RedactionResult:
        """Redaction applied to what the caller receives."""
        if not self._policy.redact_response:
            return RedactionResult.unchanged(text)
        return self.redact(text)
