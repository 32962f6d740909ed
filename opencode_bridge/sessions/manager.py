"""Registry of live chat sessions with persistence and idle eviction."""
import asyncio
import contextlib
import inspect
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Union

import aiosqlite

from opencode_bridge.agent.base import AgentClient
from opencode_bridge.config import SessionConfig
from opencode_bridge.errors import CorruptRecordError, PersistenceError, SessionNotFoundError
from opencode_bridge.sessions.models import utcnow
from opencode_bridge.sessions.session import Session
from opencode_bridge.state.database import DatabaseManager
from opencode_bridge.state.repositories.sessions import SessionRecordRepository

logger = logging.getLogger(__name__)

SessionFactory = Callable[[str, str, str], Union[Session, Awaitable[Session]]]

_STORAGE_ERRORS = (aiosqlite.Error, OSError, PersistenceError)


class SessionManager:
    """Maps conversation ids to Sessions.

    The registry is only mutated here.  Construction for a given id is
    serialized by a per-id lock so concurrent first messages share one
    Session; lookups take no lock.

    Storage failures never escape this class: they are logged and
    reported through return values.
    """

    def __init__(
        self,
        agent_client: AgentClient,
        db_manager: DatabaseManager,
        config: Optional[SessionConfig] = None,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self._client = agent_client
        self._db = db_manager
        self._config = config or SessionConfig()
        self._session_factory = session_factory or self._default_factory
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._reaper_task: Optional[asyncio.Task] = None

    def _default_factory(self, conversation_id: str, owner_user_id: str, project_path: str) -> Session:
        return Session(conversation_id, owner_user_id, project_path, self._client)

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        return self._locks.setdefault(conversation_id, asyncio.Lock())

    @property
    def config(self) -> SessionConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._sessions

    def get(self, conversation_id: str) -> Optional[Session]:
        return self._sessions.get(conversation_id)

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    async def get_or_create(
        self,
        conversation_id: str,
        owner_user_id: str,
        project_path: Optional[str] = None,
    ) -> Session:
        """Return the live session for a conversation, creating it if needed.

        Args:
            conversation_id: Chat conversation key.
            owner_user_id: User creating the session.
            project_path: Working directory; defaults to the configured
                default project.
        """
        session = self._sessions.get(conversation_id)
        if session is not None:
            return session
        async with self._lock_for(conversation_id):
            session = self._sessions.get(conversation_id)
            if session is not None:
                return session
            path = str(project_path or self._config.default_project)
            created = self._session_factory(conversation_id, owner_user_id, path)
            if inspect.isawaitable(created):
                created = await created
            self._sessions[conversation_id] = created
            logger.info("Created session %s for user %s in %s", conversation_id, owner_user_id, path)
            return created

    async def restore(self, conversation_id: str) -> Optional[Session]:
        """Rehydrate a persisted session into the registry.

        Returns the live session if one exists.  A missing record, a
        corrupt record (which is deleted) or a storage failure yields
        None and registers nothing.
        """
        session = self._sessions.get(conversation_id)
        if session is not None:
            return session
        async with self._lock_for(conversation_id):
            session = self._sessions.get(conversation_id)
            if session is not None:
                return session
            try:
                async with self._db.connection() as conn:
                    repo = SessionRecordRepository(conn)
                    try:
                        snapshot = await repo.get(conversation_id)
                    except CorruptRecordError as e:
                        logger.warning(
                            "Discarding corrupt session record for %s: %s", conversation_id, e,
                        )
                        await repo.delete(conversation_id)
                        return None
            except _STORAGE_ERRORS as e:
                logger.error("Failed to load session record for %s: %s", conversation_id, e)
                return None
            if snapshot is None:
                return None
            session = Session.from_snapshot(snapshot, self._client)
            self._sessions[conversation_id] = session
            logger.info(
                "Restored session %s (project=%s, agent_session=%s)",
                conversation_id, snapshot.project_path, snapshot.agent_session_id,
            )
            return session

    async def resolve(
        self,
        conversation_id: str,
        owner_user_id: str,
        project_path: Optional[str] = None,
    ) -> Session:
        """Live session, else restored session, else a new one."""
        session = self._sessions.get(conversation_id)
        if session is None:
            session = await self.restore(conversation_id)
        if session is None:
            session = await self.get_or_create(conversation_id, owner_user_id, project_path)
        return session

    async def persist(self, conversation_id: str) -> bool:
        """Write the session's snapshot to storage.

        Returns:
            True if the record was written, False if there is no such
            session or the write failed.
        """
        session = self._sessions.get(conversation_id)
        if session is None:
            return False
        return await self._save(session)

    async def _save(self, session: Session) -> bool:
        try:
            async with self._db.connection() as conn:
                await SessionRecordRepository(conn).upsert(session.snapshot())
        except _STORAGE_ERRORS as e:
            logger.error("Failed to persist session %s: %s", session.conversation_id, e)
            return False
        logger.debug("Persisted session %s", session.conversation_id)
        return True

    async def switch_project(self, conversation_id: str, project_path: str) -> Session:
        """Switch a live session's project and persist the result.

        The record is written even when the new binding fails to start,
        so the chosen project survives a restart.

        Raises:
            SessionNotFoundError: No live session for the conversation.
            StartupError: The new binding could not be started.
        """
        session = self._sessions.get(conversation_id)
        if session is None:
            raise SessionNotFoundError(f"No session for conversation {conversation_id}")
        try:
            await session.switch_project(project_path)
        finally:
            await self._save(session)
        return session

    async def clear(self, conversation_id: str) -> bool:
        """Stop and forget a conversation's session, including its record.

        Returns:
            True if a live session or a stored record existed.
        """
        session = self._sessions.pop(conversation_id, None)
        self._locks.pop(conversation_id, None)
        if session is not None:
            await session.stop("Session cleared")
        deleted = False
        try:
            async with self._db.connection() as conn:
                deleted = await SessionRecordRepository(conn).delete(conversation_id)
        except _STORAGE_ERRORS as e:
            logger.error("Failed to delete session record for %s: %s", conversation_id, e)
        if session is not None or deleted:
            logger.info("Cleared session %s", conversation_id)
        return session is not None or deleted

    async def reap_idle(self, now: Optional[datetime] = None) -> list[str]:
        """Persist, stop and evict sessions idle past the timeout.

        Args:
            now: Reference time; defaults to the current UTC time.

        Returns:
            Conversation ids that were evicted.
        """
        now = now or utcnow()
        cutoff = now - timedelta(minutes=self._config.idle_timeout_minutes)
        stale = [s for s in self._sessions.values() if s.last_activity_at < cutoff]
        reaped = []
        for session in stale:
            conversation_id = session.conversation_id
            if self._sessions.get(conversation_id) is not session:
                continue
            await self._save(session)
            await session.stop("Session closed after inactivity")
            if self._sessions.get(conversation_id) is session:
                del self._sessions[conversation_id]
                self._locks.pop(conversation_id, None)
            reaped.append(conversation_id)
        if reaped:
            logger.info("Reaped %d idle session(s): %s", len(reaped), ", ".join(reaped))
        return reaped

    def start_reaper(self) -> None:
        """Start the periodic idle sweep on the running event loop."""
        if self._reaper_task is None or self._reaper_task.done():
            self._reaper_task = asyncio.create_task(self._reap_loop(), name="session-reaper")

    async def stop_reaper(self) -> None:
        task, self._reaper_task = self._reaper_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _reap_loop(self) -> None:
        interval = self._config.reap_interval_seconds
        logger.info(
            "Session reaper running every %.0fs (timeout %d min)",
            interval, self._config.idle_timeout_minutes,
        )
        while True:
            await asyncio.sleep(interval)
            try:
                await self.reap_idle()
            except Exception:
                logger.exception("Idle session sweep failed")

    async def shutdown(self) -> None:
        """Stop the reaper, then persist and stop every live session."""
        await self.stop_reaper()
        sessions = list(self._sessions.values())
        for session in sessions:
            await self._save(session)
            await session.stop("Bridge shutting down")
        self._sessions.clear()
        self._locks.clear()
        logger.info("Session manager shut down (%d session(s) persisted)", len(sessions))
