"""Durable session records, one JSON document per conversation."""
import json
from datetime import datetime, timezone
from typing import Optional

import aiosqlite

from opencode_bridge.errors import CorruptRecordError
from opencode_bridge.sessions.models import SessionSnapshot


class SessionRecordRepository:
    """Stores session snapshots keyed by conversation id.

    Writing a snapshot replaces any previous record for the same
    conversation.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert(self, snapshot: SessionSnapshot) -> None:
        """Insert or replace the record for ``snapshot.conversation_id``."""
        await self._conn.execute(
            "INSERT OR REPLACE INTO chat_sessions "
            "(conversation_id, record, updated_at) VALUES (?, ?, ?)",
            (
                snapshot.conversation_id,
                json.dumps(snapshot.to_dict()),
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        await self._conn.commit()

    async def get(self, conversation_id: str) -> Optional[SessionSnapshot]:
        """Load the record for a conversation.

        Returns:
            The snapshot, or None if nothing is stored.

        Raises:
            CorruptRecordError: The stored document cannot be decoded.
        """
        cursor = await self._conn.execute(
            "SELECT record FROM chat_sessions WHERE conversation_id = ?",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._decode(row["record"])

    async def delete(self, conversation_id: str) -> bool:
        """Remove a conversation's record.

        Returns:
            True if a record was deleted.
        """
        cursor = await self._conn.execute(
            "DELETE FROM chat_sessions WHERE conversation_id = ?",
            (conversation_id,),
        )
        await self._conn.commit()
        return cursor.rowcount > 0

    async def list_all(self) -> list[SessionSnapshot]:
        """Return every decodable record, most recently written first.

        Corrupt rows are skipped.
        """
        cursor = await self._conn.execute(
            "SELECT record FROM chat_sessions ORDER BY updated_at DESC"
        )
        snapshots = []
        for row in await cursor.fetchall():
            try:
                snapshots.append(self._decode(row["record"]))
            except CorruptRecordError:
                continue
        return snapshots

    @staticmethod
    def _decode(raw: str) -> SessionSnapshot:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptRecordError(f"Session record is not valid JSON: {e}") from e
        return SessionSnapshot.from_dict(data)
