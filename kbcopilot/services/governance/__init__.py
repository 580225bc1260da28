from kbcopilot.services.governance.governance_gate import GovernanceGate
from kbcopilot.services.governance.moderation_service import ContentModerationService
from kbcopilot.services.governance.policy import GovernancePolicy
from kbcopilot.services.governance.redaction_service import RedactionService

__all__ = [
    "ContentModerationService",
    "GovernanceGate",
    "GovernancePolicy",
    "RedactionService",
]
