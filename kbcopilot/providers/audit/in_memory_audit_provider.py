"""In-memory audit log guarded by an asyncio lock."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import structlog

from kbcopilot.interfaces.audit_provider import IAuditProvider
from kbcopilot.models.audit import AuditLogEntry
from kbcopilot.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)


class InMemoryAuditProvider(IAuditProvider):
    """Append-only audit store for tests and single-process runs.

    Entries are frozen pydantic models, so handing them out by reference
    cannot alter what was logged.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[str, AuditLogEntry] = {}

    async def initialize(self) -> None:
        return None

    async def append(self, entry: AuditLogEntry) -> str:
        async with self._lock:
            if entry.id in self._entries:
                raise ValidationError(
                    message=f"Audit entry {entry.id} already exists",
                    provider_name=self.get_provider_name(),
                )
            self._entries[entry.id] = entry
        logger.debug("audit_appended", audit_id=entry.id, status=entry.status.value)
        return entry.id

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        async with self._lock:
            return self._entries.get(entry_id)

    async def count(self) -> int:
        async with self._lock:
            return len(self._entries)

    async def list_by_user(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[AuditLogEntry]:
        async with self._lock:
            entries = [
                e for e in self._entries.values()
                if e.user_id == user_id
                and (since is None or e.timestamp >= since)
                and (until is None or e.timestamp <= until)
            ]
        return sorted(entries, key=lambda e: e.timestamp)

    async def cleanup_expired(self, retention: timedelta) -> int:
        cutoff = datetime.now(tz=timezone.utc) - retention  # noqa: UP017
        async with self._lock:
            expired = [eid for eid, e in self._entries.items() if e.timestamp < cutoff]
            for eid in expired:
                del self._entries[eid]
        if expired:
            logger.info("audit_cleanup", removed=len(expired))
        return len(expired)

    def get_provider_name(self) -> str:
        return "memory"
