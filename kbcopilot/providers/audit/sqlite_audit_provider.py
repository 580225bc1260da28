"""SQLite-backed audit log.

Persists one row per request to ``data/audit.db`` through ``aiosqlite``.
The full entry is stored as JSON next to the indexed columns, so a read
returns exactly what was written.  There is no UPDATE statement anywhere
in this module; retention cleanup is the only DELETE.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
import structlog

from kbcopilot.interfaces.audit_provider import IAuditProvider
from kbcopilot.models.audit import AuditLogEntry
from kbcopilot.utils.errors import StoreUnavailableError, ValidationError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/audit.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS audit_log (
    id              TEXT PRIMARY KEY,
    correlation_id  TEXT NOT NULL,
    user_id         TEXT,
    timestamp       TEXT NOT NULL,
    operation       TEXT NOT NULL,
    status          TEXT NOT NULL,
    entry_json      TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_audit_user_ts ON audit_log(user_id, timestamp);",
    "CREATE INDEX IF NOT EXISTS idx_audit_correlation ON audit_log(correlation_id);",
    "CREATE INDEX IF NOT EXISTS idx_audit_ts ON audit_log(timestamp);",
]

_INSERT_SQL = """\
INSERT INTO audit_log (id, correlation_id, user_id, timestamp, operation, status, entry_json)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""


def _ts(value: datetime) -> str:
    # ISO-8601 in UTC sorts lexically in time order.
    return value.astimezone(timezone.utc).isoformat()  # noqa: UP017


class SQLiteAuditProvider(IAuditProvider):
    """Append-only audit persistence in SQLite."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create the audit table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("audit_db_initialized", path=str(self._db_path))

    async def append(self, entry: AuditLogEntry) -> str:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(
                    _INSERT_SQL,
                    (
                        entry.id,
                        entry.correlation_id,
                        entry.user_id,
                        _ts(entry.timestamp),
                        entry.operation,
                        entry.status.value,
                        entry.model_dump_json(),
                    ),
                )
                await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise ValidationError(
                message=f"Audit entry {entry.id} already exists",
                provider_name=self.get_provider_name(),
            ) from exc
        except aiosqlite.Error as exc:
            raise StoreUnavailableError(
                message=f"Audit write failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("audit_appended", audit_id=entry.id, status=entry.status.value)
        return entry.id

    async def get(self, entry_id: str) -> AuditLogEntry | None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT entry_json FROM audit_log WHERE id = ?", (entry_id,))
            row = await cursor.fetchone()
        return AuditLogEntry.model_validate_json(row[0]) if row else None

    async def count(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("SELECT COUNT(*) FROM audit_log")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def list_by_user(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[AuditLogEntry]:
        sql = "SELECT entry_json FROM audit_log WHERE user_id = ?"
        params: list[str] = [user_id]
        if since is not None:
            sql += " AND timestamp >= ?"
            params.append(_ts(since))
        if until is not None:
            sql += " AND timestamp <= ?"
            params.append(_ts(until))
        sql += " ORDER BY timestamp ASC"

        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(sql, params)
            rows = await cursor.fetchall()
        return [AuditLogEntry.model_validate_json(r["entry_json"]) for r in rows]

    async def cleanup_expired(self, retention: timedelta) -> int:
        cutoff = _ts(datetime.now(tz=timezone.utc) - retention)  # noqa: UP017
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM audit_log WHERE timestamp < ?", (cutoff,))
            await db.commit()
            removed = cursor.rowcount
        if removed:
            logger.info("audit_cleanup", removed=removed)
        return removed

    def get_provider_name(self) -> str:
        return "sqlite"
