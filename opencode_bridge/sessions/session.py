"""Chat session bound to one OpenCode agent session."""
import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Optional, Union

from opencode_bridge.agent.base import AgentClient, EventStream
from opencode_bridge.agent.events import AgentEvent, PermissionDecision, PermissionRequest
from opencode_bridge.errors import (
    AgentClientError,
    BridgeError,
    BusyError,
    NoPendingPermissionError,
    NotRunningError,
    StartupError,
    StreamDisconnected,
)
from opencode_bridge.sessions.models import SessionSnapshot, SessionStatus, TurnOutput, utcnow
from opencode_bridge.sessions.notifications import (
    ErrorNotification,
    NotificationCallback,
    NotificationHub,
    OutputNotification,
    PermissionNotification,
    TerminatedNotification,
)
from opencode_bridge.sessions.reconciler import (
    Effect,
    EventReconciler,
    OutputReady,
    PermissionAsked,
    TurnFailed,
    TurnFinished,
    TurnStarted,
)

logger = logging.getLogger(__name__)

_RUNNING = (SessionStatus.IDLE, SessionStatus.BUSY)
_STARTABLE = (SessionStatus.UNINITIALIZED, SessionStatus.ERROR, SessionStatus.TERMINATED)


class Session:
    """One conversation's binding to the agent server.

    The binding is the agent session id, the open event stream and the
    task consuming it.  Status only changes through the methods below and
    the consumer task; ``start``, ``switch_project`` and ``stop`` are
    serialized by a lifecycle lock.
    """

    def __init__(
        self,
        conversation_id: str,
        owner_user_id: str,
        project_path: str,
        agent_client: AgentClient,
        agent_session_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        last_activity_at: Optional[datetime] = None,
    ) -> None:
        now = utcnow()
        self._conversation_id = conversation_id
        self._owner_user_id = owner_user_id
        self._project_path = str(project_path)
        self._client = agent_client
        self._agent_session_id = agent_session_id
        # A restored id is offered to the server once, on the first start.
        self._resume_pending = agent_session_id is not None
        self._status = SessionStatus.UNINITIALIZED
        self._created_at = created_at or now
        self._last_activity_at = last_activity_at or now

        self._stream: Optional[EventStream] = None
        self._consumer: Optional[asyncio.Task] = None
        self._pending_permission: Optional[PermissionRequest] = None
        self._reconciler = EventReconciler()
        self._observers = NotificationHub()
        self._lifecycle_lock = asyncio.Lock()

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot, agent_client: AgentClient) -> "Session":
        """Hydrate a session from a stored snapshot; it starts uninitialized."""
        return cls(
            conversation_id=snapshot.conversation_id,
            owner_user_id=snapshot.owner_user_id,
            project_path=snapshot.project_path,
            agent_client=agent_client,
            agent_session_id=snapshot.agent_session_id,
            created_at=snapshot.created_at,
            last_activity_at=snapshot.last_activity_at,
        )

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def owner_user_id(self) -> str:
        return self._owner_user_id

    @property
    def project_path(self) -> str:
        return self._project_path

    @property
    def agent_session_id(self) -> Optional[str]:
        return self._agent_session_id

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def last_activity_at(self) -> datetime:
        return self._last_activity_at

    @property
    def pending_permission(self) -> Optional[PermissionRequest]:
        return self._pending_permission

    @property
    def is_running(self) -> bool:
        return self._status in _RUNNING

    def touch(self) -> None:
        self._last_activity_at = utcnow()

    def subscribe(self, callback: NotificationCallback):
        """Register an observer; returns a function that unregisters it."""
        return self._observers.add(callback)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            conversation_id=self._conversation_id,
            owner_user_id=self._owner_user_id,
            project_path=self._project_path,
            agent_session_id=self._agent_session_id,
            status=self._status,
            created_at=self._created_at,
            last_activity_at=self._last_activity_at,
        )

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self._status:
            logger.debug(
                "Session %s: %s -> %s",
                self._conversation_id, self._status.value, status.value,
            )
            self._status = status

    # Lifecycle

    async def start(self) -> str:
        """Bind to an agent session and begin consuming its events.

        Returns:
            The agent session id. Calling this on a running session
            returns the current id without side effects.

        Raises:
            StartupError: The agent server could not be reached or refused.
        """
        async with self._lifecycle_lock:
            if self._status in _RUNNING and self._agent_session_id:
                return self._agent_session_id
            await self._start_locked()
            return self._agent_session_id

    async def _start_locked(self) -> None:
        await self._teardown()
        self._set_status(SessionStatus.STARTING)
        resume_id = self._agent_session_id if self._resume_pending else None
        self._resume_pending = False
        self._agent_session_id = None
        self.touch()
        try:
            self._agent_session_id = await self._client.start(
                self._project_path, resume_session_id=resume_id,
            )
            stream = await self._client.subscribe_events(self._agent_session_id)
        except StartupError:
            self._set_status(SessionStatus.ERROR)
            raise
        except BridgeError as e:
            self._set_status(SessionStatus.ERROR)
            raise StartupError(f"Failed to start agent session: {e.message}") from e

        self._stream = stream
        self._consumer = asyncio.create_task(
            self._consume(stream), name=f"session-events-{self._conversation_id}",
        )
        self._set_status(SessionStatus.IDLE)
        logger.info(
            "Session %s bound to agent session %s (%s)",
            self._conversation_id, self._agent_session_id, self._project_path,
        )

    async def switch_project(self, project_path: str) -> str:
        """Rebind the conversation to a fresh agent session in another project.

        Identity and creation time are kept; the agent session id,
        pending permission and buffered output are discarded.
        """
        async with self._lifecycle_lock:
            if self._status is SessionStatus.BUSY and self._agent_session_id:
                try:
                    await self._client.interrupt(self._agent_session_id)
                except BridgeError as e:
                    logger.warning(
                        "Interrupt before switch failed for %s: %s", self._conversation_id, e,
                    )
            await self._teardown()
            self._agent_session_id = None
            self._resume_pending = False
            self._project_path = str(project_path)
            logger.info("Session %s switching to %s", self._conversation_id, self._project_path)
            await self._start_locked()
            return self._agent_session_id

    async def stop(self, reason: str = "Session stopped") -> None:
        """Tear down the binding and move to ``terminated``."""
        async with self._lifecycle_lock:
            already_terminated = self._status is SessionStatus.TERMINATED
            await self._teardown()
            self._set_status(SessionStatus.TERMINATED)
        if not already_terminated:
            logger.info("Session %s stopped: %s", self._conversation_id, reason)
            await self._observers.publish(TerminatedNotification(self._conversation_id, reason))

    async def _teardown(self) -> None:
        stream, consumer = self._stream, self._consumer
        self._stream = None
        self._consumer = None
        self._pending_permission = None
        self._reconciler.reset()
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        if stream is not None:
            try:
                await stream.aclose()
            except Exception:
                logger.warning(
                    "Error closing event stream for %s", self._conversation_id, exc_info=True,
                )

    # Conversation operations

    async def send_message(self, text: str) -> None:
        """Forward a user message as a new turn.

        Raises:
            BusyError: A turn is already in progress; nothing is forwarded.
            NotRunningError: The session has no live binding.
            StartupError: Restarting an errored session failed.
            AgentClientError: The agent server rejected the message.
        """
        if self._status is SessionStatus.BUSY:
            raise BusyError()
        if self._status is SessionStatus.ERROR:
            logger.info("Restarting errored session %s before sending", self._conversation_id)
            await self.start()
            if self._status is SessionStatus.BUSY:
                raise BusyError()
        if self._status is not SessionStatus.IDLE:
            raise NotRunningError(
                f"Session is {self._status.value}; start it before sending messages"
            )

        self._set_status(SessionStatus.BUSY)
        self.touch()
        logger.info("Session %s <- %.50s", self._conversation_id, text)
        try:
            await self._client.send_message(self._agent_session_id, text)
        except AgentClientError:
            if self._status is SessionStatus.BUSY:
                self._set_status(SessionStatus.IDLE)
            raise

    async def interrupt(self) -> None:
        """Abort the turn in progress and deliver whatever output arrived."""
        if self._status is not SessionStatus.BUSY:
            raise NotRunningError("No operation in progress to interrupt")
        try:
            await self._client.interrupt(self._agent_session_id)
        except NotRunningError:
            logger.info("Agent had nothing to abort for %s", self._conversation_id)
        self._reconciler.close_open_messages()
        output = self._reconciler.flush()
        if self._status is SessionStatus.BUSY:
            self._set_status(SessionStatus.IDLE)
        self.touch()
        if output is not None:
            await self._emit_output(output)

    async def reply_to_latest_permission(
        self, decision: Union[PermissionDecision, str],
    ) -> None:
        """Answer the pending permission request.

        Raises:
            NoPendingPermissionError: Nothing is waiting for an answer.
            AgentClientError: The answer could not be delivered; the request
                stays pending.
        """
        decision = PermissionDecision(decision)
        request = self._pending_permission
        if request is None or self._agent_session_id is None:
            raise NoPendingPermissionError()
        await self._client.respond_to_permission(self._agent_session_id, request.id, decision)
        if self._pending_permission is request:
            self._pending_permission = None
        self.touch()
        logger.info(
            "Session %s answered permission %s with %s",
            self._conversation_id, request.id, decision.value,
        )

    async def send_confirmation(self, confirmed: bool) -> None:
        await self.reply_to_latest_permission(
            PermissionDecision.ONCE if confirmed else PermissionDecision.REJECT
        )

    # Event consumption

    async def _consume(self, stream: EventStream) -> None:
        reason = "Agent event stream ended"
        try:
            async for event in stream:
                self.touch()
                await self._handle_event(event)
        except StreamDisconnected as e:
            logger.warning("Event stream for %s disconnected: %s", self._conversation_id, e)
            reason = e.message
        except Exception as e:
            logger.exception("Event processing failed for %s", self._conversation_id)
            reason = f"Event processing failed: {e}"
        if self._stream is not stream:
            return
        await self._on_stream_closed(stream, reason)

    async def _on_stream_closed(self, stream: EventStream, reason: str) -> None:
        # No await before the status change: stop() and start() must see
        # this binding as already terminated.
        self._stream = None
        self._consumer = None
        self._pending_permission = None
        output = self._reconciler.flush()
        self._reconciler.reset()
        self._set_status(SessionStatus.TERMINATED)
        if output is not None:
            await self._emit_output(output)
        await self._observers.publish(TerminatedNotification(self._conversation_id, reason))
        try:
            await stream.aclose()
        except Exception:
            logger.debug("Error closing ended stream for %s", self._conversation_id, exc_info=True)

    async def _handle_event(self, event: AgentEvent) -> None:
        for effect in self._reconciler.apply(event):
            await self._apply_effect(effect)

    async def _apply_effect(self, effect: Effect) -> None:
        if isinstance(effect, OutputReady):
            await self._emit_output(effect.output)
        elif isinstance(effect, TurnStarted):
            if self._status is SessionStatus.IDLE:
                self._set_status(SessionStatus.BUSY)
        elif isinstance(effect, TurnFinished):
            if self._status is SessionStatus.BUSY:
                self._set_status(SessionStatus.IDLE)
            if effect.output is not None:
                await self._emit_output(effect.output)
        elif isinstance(effect, TurnFailed):
            if effect.output is not None:
                await self._emit_output(effect.output)
            self._set_status(SessionStatus.ERROR)
            logger.warning("Agent error in %s: %s", self._conversation_id, effect.message)
            await self._observers.publish(ErrorNotification(self._conversation_id, effect.message))
        elif isinstance(effect, PermissionAsked):
            self._pending_permission = effect.request
            await self._observers.publish(PermissionNotification(self._conversation_id, effect.request))
        else:
            raise TypeError(f"Unhandled reconciler effect: {type(effect).__name__}")

    async def _emit_output(self, output: TurnOutput) -> None:
        self.touch()
        await self._observers.publish(OutputNotification(self._conversation_id, output))

    def __repr__(self) -> str:
        return (
            f"Session(conversation_id={self._conversation_id!r}, "
            f"status={self._status.value}, project_path={self._project_path!r})"
        )
