"""Abstract base class for audit-log persistence.

The log is append-only: providers offer no update operation, and an entry
read back equals the entry written.  Retention cleanup is the only delete.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from kbcopilot.models.audit import AuditLogEntry


# Concrete implementations: InMemoryAuditProvider, SQLiteAuditProvider
# Located in: kbcopilot/providers/audit/
class IAuditProvider(ABC):
    """Contract for audit-log stores.  Safe for concurrent appends."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they don't exist.  Called at startup."""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> str:
        """Persist *entry* and return its id.

        Raises
        ------
        kbcopilot.utils.errors.ValidationError
            If an entry with the same id already exists.
        """

    @abstractmethod
    async def get(self, entry_id: str) -> AuditLogEntry | None:
        """Return the entry with *entry_id*, or ``None``."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored entries."""

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[AuditLogEntry]:
        """Return the user's entries in chronological order, optionally windowed."""

    @abstractmethod
    async def cleanup_expired(self, retention: timedelta) -> int:
        """Delete entries older than *retention*; return how many were removed."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the provider identifier."""
