"""Shared fixtures: an in-memory agent client and event builders."""
import asyncio
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio

from opencode_bridge.agent.events import (
    AgentStatus,
    MessageUpdated,
    PartUpdated,
    PermissionDecision,
    PermissionRequest,
    PermissionRequested,
    SessionErrored,
    StatusChanged,
    StepFinishPart,
    TextPart,
)
from opencode_bridge.config import SessionConfig
from opencode_bridge.errors import StreamDisconnected
from opencode_bridge.sessions.manager import SessionManager
from opencode_bridge.state.database import DatabaseManager

_END = object()


class FakeEventStream:
    """Queue-backed event stream.

    ``drain()`` returns once every pushed item has been fully handled by
    the consumer (it has asked for the next item).
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def push(self, *events: Any) -> None:
        for event in events:
            self._queue.put_nowait(event)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    def disconnect(self, message: str = "connection reset") -> None:
        self._queue.put_nowait(StreamDisconnected(message))

    async def drain(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self._queue.join(), timeout)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._queue.get()
            try:
                if item is _END:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
            finally:
                self._queue.task_done()

    async def aclose(self) -> None:
        self.closed = True


class FakeAgentClient:
    """Records every call; each started session gets a FakeEventStream."""

    def __init__(self) -> None:
        self.started: list[tuple[str, Optional[str]]] = []
        self.sent: list[tuple[str, str]] = []
        self.interrupted: list[str] = []
        self.permission_replies: list[tuple[str, str, PermissionDecision]] = []
        self.streams: dict[str, FakeEventStream] = {}
        self.known_sessions: set[str] = set()
        self.start_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.interrupt_error: Optional[Exception] = None
        self.permission_error: Optional[Exception] = None
        self.closed = False
        self._counter = 0

    async def start(self, project_path: str, resume_session_id: Optional[str] = None) -> str:
        await asyncio.sleep(0)
        self.started.append((project_path, resume_session_id))
        if self.start_error is not None:
            raise self.start_error
        if resume_session_id and resume_session_id in self.known_sessions:
            return resume_session_id
        self._counter += 1
        agent_session_id = f"ses_{self._counter}"
        self.known_sessions.add(agent_session_id)
        return agent_session_id

    async def send_message(self, agent_session_id: str, text: str) -> None:
        await asyncio.sleep(0)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((agent_session_id, text))

    async def interrupt(self, agent_session_id: str) -> None:
        await asyncio.sleep(0)
        if self.interrupt_error is not None:
            raise self.interrupt_error
        self.interrupted.append(agent_session_id)

    async def respond_to_permission(
        self, agent_session_id: str, permission_id: str, decision: PermissionDecision,
    ) -> None:
        await asyncio.sleep(0)
        if self.permission_error is not None:
            raise self.permission_error
        self.permission_replies.append((agent_session_id, permission_id, decision))

    async def subscribe_events(self, agent_session_id: str) -> FakeEventStream:
        stream = FakeEventStream()
        self.streams[agent_session_id] = stream
        return stream

    async def aclose(self) -> None:
        self.closed = True


# Event builders


def text(session_id: str, part_id: str, value: str, delta: Optional[str] = None,
         message_id: str = "msg_a") -> PartUpdated:
    return PartUpdated(
        session_id=session_id,
        part=TextPart(id=part_id, message_id=message_id, text=value),
        delta=delta,
    )


def chunk(session_id: str, part_id: str, delta: str, so_far: str = "",
          message_id: str = "msg_a") -> PartUpdated:
    """A streamed text fragment whose snapshot is ``so_far + delta``."""
    return text(session_id, part_id, so_far + delta, delta=delta, message_id=message_id)


def step_finish(session_id: str, message_id: str = "msg_a") -> PartUpdated:
    return PartUpdated(
        session_id=session_id,
        part=StepFinishPart(id=f"step_{message_id}", message_id=message_id, reason="stop"),
    )


def idle(session_id: str) -> StatusChanged:
    return StatusChanged(session_id=session_id, status=AgentStatus.IDLE)


def busy(session_id: str) -> StatusChanged:
    return StatusChanged(session_id=session_id, status=AgentStatus.BUSY)


def user_message(session_id: str, message_id: str) -> MessageUpdated:
    return MessageUpdated(session_id=session_id, message_id=message_id, role="user")


def permission(session_id: str, permission_id: str = "perm_1",
               title: str = "Run `rm -rf build`?") -> PermissionRequested:
    return PermissionRequested(
        session_id=session_id,
        request=PermissionRequest(id=permission_id, title=title, type="bash"),
    )


def errored(session_id: str, message: str = "Model overloaded",
            name: Optional[str] = "APIError") -> SessionErrored:
    return SessionErrored(session_id=session_id, message=message, name=name)


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


class Recorder:
    """Notification observer that keeps everything it receives."""

    def __init__(self) -> None:
        self.notifications: list[Any] = []

    async def __call__(self, notification: Any) -> None:
        self.notifications.append(notification)

    def kinds(self) -> list[str]:
        return [n.kind.value for n in self.notifications]

    def of_kind(self, kind: str) -> list[Any]:
        return [n for n in self.notifications if n.kind.value == kind]


@pytest.fixture
def agent() -> FakeAgentClient:
    return FakeAgentClient()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def projects_dir(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    for name in ("alpha", "beta"):
        (root / name).mkdir(parents=True)
    return root


@pytest.fixture
def session_config(projects_dir: Path) -> SessionConfig:
    return SessionConfig(
        idle_timeout_minutes=30,
        reap_interval_seconds=300.0,
        projects_dir=projects_dir,
        default_project_path=projects_dir / "alpha",
    )


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> DatabaseManager:
    db_manager = DatabaseManager(tmp_path / "bridge.db")
    await db_manager.initialize()
    return db_manager


@pytest_asyncio.fixture
async def manager(agent: FakeAgentClient, db: DatabaseManager, session_config: SessionConfig):
    session_manager = SessionManager(agent, db, session_config)
    yield session_manager
    await session_manager.shutdown()
