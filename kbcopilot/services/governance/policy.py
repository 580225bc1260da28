"""Governance policy: which safety measures run and how strictly.

Loaded from the ``governance.policy`` section of the YAML config.  By
default a moderation block and ungrounded citations *downgrade* the
response (refusal text, dropped citations, low-confidence flag); the two
``*_is_*`` switches turn them into hard request failures instead.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

DEFAULT_REFUSAL_MESSAGE = (
    "I can't help with that request. The content was withheld by the "
    "content safety policy."
)


class GovernancePolicy(BaseModel):
    """Frozen switches consumed by :class:`GovernanceGate` and the agents."""

    model_config = ConfigDict(frozen=True)

    redaction_enabled: bool = True
    # Redact answer text, prompt payload and question before the audit write.
    redact_audit: bool = True
    # Redact the answer returned to the caller.
    redact_response: bool = False
    # Redact conversation turns before they are placed in a prompt.
    redact_prompt_memory: bool = True

    moderation_enabled: bool = True
    moderation_threshold: str = "medium"

    block_is_failure: bool = False
    grounding_failure_is_error: bool = False

    refusal_message: str = DEFAULT_REFUSAL_MESSAGE
