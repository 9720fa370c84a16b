"""Session persistence."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiosqlite

from stepwise.errors import ConcurrentUpdateError, SessionNotFoundError
from stepwise.planner.models import utc_now
from stepwise.session.models import ExecutionSession
from stepwise.utils.logging import get_logger

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    plan_id TEXT NOT NULL,
    base_plan_id TEXT NOT NULL,
    status TEXT NOT NULL,
    platform TEXT NOT NULL,
    data TEXT NOT NULL,
    version INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_plan ON sessions(plan_id);
CREATE INDEX IF NOT EXISTS idx_sessions_base_plan ON sessions(base_plan_id);
CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
"""


def _json_default(value: Any) -> str:
    """Fallback for step values JSON cannot hold (datetime, Decimal, ...).

    They are stored as ``str(value)``, so a resumed or retried session sees
    the string form rather than the original object.
    """
    log.warning("session_value_not_json", type=type(value).__name__)
    return str(value)


class SessionStorage(ABC):
    @abstractmethod
    async def save_session(self, session: ExecutionSession) -> ExecutionSession: ...

    @abstractmethod
    async def load_session(self, session_id: str) -> ExecutionSession | None: ...

    @abstractmethod
    async def update_session(
        self, session_id: str, expected_version: int | None = None, **changes: Any
    ) -> ExecutionSession: ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool: ...

    @abstractmethod
    async def list_sessions(
        self,
        plan_id: str | None = None,
        base_plan_id: str | None = None,
        status: str | None = None,
        platform: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionSession]: ...


class SqliteSessionStorage(SessionStorage):
    """aiosqlite-backed store.

    Every write bumps ``version``; a write whose in-memory version no longer
    matches the row raises :class:`ConcurrentUpdateError`. Sessions are
    stored as JSON; values it cannot represent are written as their string
    form with a ``session_value_not_json`` warning.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self._db_path))
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def save_session(self, session: ExecutionSession) -> ExecutionSession:
        """Insert ``session`` or overwrite it if its version is current."""
        async with self._lock:
            return await self._write(session)

    async def load_session(self, session_id: str) -> ExecutionSession | None:
        assert self._db is not None
        cursor = await self._db.execute("SELECT data FROM sessions WHERE id = ?", (session_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return ExecutionSession.from_dict(json.loads(row[0]))

    async def update_session(
        self, session_id: str, expected_version: int | None = None, **changes: Any
    ) -> ExecutionSession:
        """Apply ``changes`` to the stored session and return the new record.

        With ``expected_version`` the update only succeeds if nobody wrote the
        session since the caller read it.
        """
        async with self._lock:
            current = await self.load_session(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            if expected_version is not None and current.version != expected_version:
                raise ConcurrentUpdateError(session_id, expected_version)
            updated = dataclasses.replace(current, **changes)
            return await self._write(updated)

    async def delete_session(self, session_id: str) -> bool:
        assert self._db is not None
        async with self._lock:
            cursor = await self._db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            await self._db.commit()
        return cursor.rowcount > 0

    async def list_sessions(
        self,
        plan_id: str | None = None,
        base_plan_id: str | None = None,
        status: str | None = None,
        platform: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ExecutionSession]:
        """Newest first, filtered by any combination of the given columns."""
        assert self._db is not None
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("plan_id", plan_id),
            ("base_plan_id", base_plan_id),
            ("status", status),
            ("platform", platform),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        cursor = await self._db.execute(
            f"SELECT data FROM sessions {where}ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        rows = await cursor.fetchall()
        return [ExecutionSession.from_dict(json.loads(row[0])) for row in rows]

    async def _write(self, session: ExecutionSession) -> ExecutionSession:
        assert self._db is not None
        stored = dataclasses.replace(session, version=session.version + 1, updated_at=utc_now())
        data = json.dumps(stored.to_dict(), default=_json_default)
        row = (
            stored.plan_id,
            stored.base_plan_id,
            stored.status,
            stored.platform,
            data,
            stored.version,
            stored.updated_at.isoformat(),
        )
        cursor = await self._db.execute(
            "UPDATE sessions SET plan_id = ?, base_plan_id = ?, status = ?, platform = ?, "
            "data = ?, version = ?, updated_at = ? WHERE id = ? AND version = ?",
            (*row, stored.id, session.version),
        )
        if cursor.rowcount == 0:
            exists = await self._db.execute("SELECT version FROM sessions WHERE id = ?", (stored.id,))
            if await exists.fetchone() is not None:
                raise ConcurrentUpdateError(stored.id, session.version)
            await self._db.execute(
                "INSERT INTO sessions (plan_id, base_plan_id, status, platform, data, version, "
                "updated_at, id, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (*row, stored.id, stored.created_at.isoformat()),
            )
        await self._db.commit()
        log.debug("session_saved", session_id=stored.id, status=stored.status, version=stored.version)
        return stored
