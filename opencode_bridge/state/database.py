"""SQLite file holding persisted chat sessions."""
import aiosqlite
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

SCHEMA_VERSION = "1.0.0"


class DatabaseManager:
    """Opens connections to the bridge database and creates its schema.

    Each operation opens its own short-lived connection; the HTTP
    routes, the Telegram poller and the idle reaper may write at the
    same time, so connections wait on a locked database instead of
    failing immediately.
    """

    def __init__(self, db_path: Path, busy_timeout_ms: int = 5000) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout_ms = busy_timeout_ms
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create the database file and the session tables if missing."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self.connection() as conn:
            await conn.executescript(_SCHEMA)
            await conn.execute(
                "INSERT OR IGNORE INTO schema_versions (version, applied_at) VALUES (?, datetime('now'))",
                (SCHEMA_VERSION,),
            )
            await conn.commit()
        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout_ms)}")
            yield conn
        finally:
            await conn.close()

    async def schema_version(self) -> Optional[str]:
        """Latest applied schema version, or None before initialization."""
        async with self.connection() as conn:
            cursor = await conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_versions'"
            )
            if await cursor.fetchone() is None:
                return None
            cursor = await conn.execute(
                "SELECT version FROM schema_versions ORDER BY applied_at DESC, version DESC LIMIT 1"
            )
            row = await cursor.fetchone()
        return row["version"] if row else None

    async def close(self) -> None:
        self._initialized = False


_SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_versions (version TEXT PRIMARY KEY, applied_at TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS chat_sessions (
    conversation_id TEXT PRIMARY KEY,
    record          TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_sessions_updated ON chat_sessions(updated_at);
"""
