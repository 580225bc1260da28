from kbcopilot.providers.audit.in_memory_audit_provider import InMemoryAuditProvider
from kbcopilot.providers.audit.sqlite_audit_provider import SQLiteAuditProvider

__all__ = ["InMemoryAuditProvider", "SQLiteAuditProvider"]
