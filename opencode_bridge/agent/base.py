"""Agent client contract consumed by the session layer."""
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from opencode_bridge.agent.events import AgentEvent, PermissionDecision


@runtime_checkable
class EventStream(Protocol):
    """An open, ordered subscription to one agent session's events.

    Iteration ends when the server closes the stream; a dropped
    connection raises ``StreamDisconnected``.  There is no replay, so
    events published while disconnected are lost.
    """

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        ...

    async def aclose(self) -> None:
        ...


@runtime_checkable
class AgentClient(Protocol):
    """Asynchronous interface to a coding-agent server.

    Core logic depends only on this interface, never on the concrete
    OpenCode client.
    """

    async def start(self, project_path: str, resume_session_id: Optional[str] = None) -> str:
        """Open (or resume) a working session rooted at ``project_path``.

        Raises:
            StartupError: The server is unreachable or refused the request.
        """
        ...

    async def send_message(self, agent_session_id: str, text: str) -> None:
        """Enqueue a user turn; the reply arrives on the event stream."""
        ...

    async def interrupt(self, agent_session_id: str) -> None:
        """Ask the server to cancel the in-flight turn.

        Raises:
            NotRunningError: Nothing is in flight.
        """
        ...

    async def respond_to_permission(
        self, agent_session_id: str, permission_id: str, decision: PermissionDecision,
    ) -> None:
        ...

    async def subscribe_events(self, agent_session_id: str) -> EventStream:
        """Connect to the event stream and return the open subscription."""
        ...

    async def aclose(self) -> None:
        ...
