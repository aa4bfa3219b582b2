"""SQLite store for extension-scoped state (mementos) surviving restarts."""

import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS memos (
    scope       TEXT NOT NULL,
    key         TEXT NOT NULL,
    value       TEXT NOT NULL,
    PRIMARY KEY (scope, key)
);
"""


class Memos:
    """One connection per instance, opened lazily."""

    def __init__(self, db_path: Path, busy_timeout: int = 5000) -> None:
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None

    async def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute(f"PRAGMA busy_timeout={self._busy_timeout}")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        return self._conn

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def create_memento(self, scope: str) -> "Memento":
        return Memento(self, scope)

    async def get(self, scope: str, key: str) -> tuple[bool, Any]:
        """(found, value)."""
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            "SELECT value FROM memos WHERE scope = ? AND key = ?", (scope, key)
        )
        row = await cursor.fetchone()
        if row is None:
            return False, None
        return True, json.loads(row[0])

    async def set(self, scope: str, key: str, value: Any) -> None:
        conn = await self._ensure_conn()
        if value is None:
            await conn.execute(
                "DELETE FROM memos WHERE scope = ? AND key = ?", (scope, key)
            )
        else:
            await conn.execute(
                """
                INSERT INTO memos (scope, key, value) VALUES (?, ?, ?)
                ON CONFLICT(scope, key) DO UPDATE SET value = excluded.value
                """,
                (scope, key, json.dumps(value, ensure_ascii=False)),
            )
        await conn.commit()

    async def keys(self, scope: str) -> list[str]:
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            "SELECT key FROM memos WHERE scope = ? ORDER BY key", (scope,)
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]


class Memento:
    """Key-value view over one scope, e.g. "<id>|global" or "<id>|<workspace root>"."""

    def __init__(self, memos: Memos, scope: str) -> None:
        self._memos = memos
        self.scope = scope

    async def get(self, key: str, default: Any = None) -> Any:
        found, value = await self._memos.get(self.scope, key)
        return value if found else default

    async def update(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value. None deletes the key."""
        await self._memos.set(self.scope, key, value)

    async def keys(self) -> list[str]:
        return await self._memos.keys(self.scope)
