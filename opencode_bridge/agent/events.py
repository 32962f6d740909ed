"""Typed events and message parts pushed by the OpenCode server.

The server publishes a single SSE stream (``GET /event``) carrying JSON
objects of the form ``{"type": "...", "properties": {...}}``.  Only the
event and part kinds the session layer acts on are modelled; everything
else is dropped at parse time.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


class ToolStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class AgentStatus(Enum):
    """Status values carried by ``StatusChanged``."""
    BUSY = "busy"
    IDLE = "idle"
    ERROR = "error"


class PermissionDecision(Enum):
    ONCE = "once"
    ALWAYS = "always"
    REJECT = "reject"


@dataclass(frozen=True)
class ToolState:
    status: ToolStatus
    input: dict[str, Any] = field(default_factory=dict)
    title: Optional[str] = None
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class TextPart:
    id: str
    message_id: str
    text: str = ""


@dataclass(frozen=True)
class ToolPart:
    id: str
    message_id: str
    tool: str
    state: ToolState


@dataclass(frozen=True)
class FilePart:
    id: str
    message_id: str
    filename: Optional[str] = None
    mime: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class ReasoningPart:
    id: str
    message_id: str
    text: str = ""


@dataclass(frozen=True)
class StepStartPart:
    id: str
    message_id: str


@dataclass(frozen=True)
class StepFinishPart:
    id: str
    message_id: str
    reason: Optional[str] = None


Part = Union[TextPart, ToolPart, FilePart, ReasoningPart, StepStartPart, StepFinishPart]


@dataclass(frozen=True)
class PermissionRequest:
    """A privileged action the agent wants the user to approve."""

    id: str
    title: str
    type: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PartUpdated:
    session_id: str
    part: Part
    delta: Optional[str] = None


@dataclass(frozen=True)
class MessageUpdated:
    session_id: str
    message_id: str
    role: str


@dataclass(frozen=True)
class StatusChanged:
    session_id: str
    status: AgentStatus
    message: Optional[str] = None


@dataclass(frozen=True)
class PermissionRequested:
    session_id: str
    request: PermissionRequest


@dataclass(frozen=True)
class SessionErrored:
    session_id: str
    message: str
    name: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.name == "MessageAbortedError"


AgentEvent = Union[PartUpdated, MessageUpdated, StatusChanged, PermissionRequested, SessionErrored]


def parse_part(data: dict[str, Any]) -> Optional[Part]:
    """Build a typed part from its wire form, or None for unmodelled kinds."""
    kind = data.get("type")
    part_id = str(data.get("id", ""))
    message_id = str(data.get("messageID", ""))
    if kind == "text":
        return TextPart(id=part_id, message_id=message_id, text=data.get("text") or "")
    if kind == "tool":
        return ToolPart(
            id=part_id,
            message_id=message_id,
            tool=str(data.get("tool", "")),
            state=_parse_tool_state(data.get("state") or {}),
        )
    if kind == "file":
        return FilePart(
            id=part_id,
            message_id=message_id,
            filename=data.get("filename"),
            mime=data.get("mime"),
            url=data.get("url"),
        )
    if kind == "reasoning":
        return ReasoningPart(id=part_id, message_id=message_id, text=data.get("text") or "")
    if kind == "step-start":
        return StepStartPart(id=part_id, message_id=message_id)
    if kind == "step-finish":
        return StepFinishPart(id=part_id, message_id=message_id, reason=data.get("reason"))
    logger.debug("Dropping unmodelled part type %r", kind)
    return None


def _parse_tool_state(data: dict[str, Any]) -> ToolState:
    try:
        status = ToolStatus(data.get("status", "pending"))
    except ValueError:
        status = ToolStatus.PENDING
    output = data.get("output")
    return ToolState(
        status=status,
        input=data.get("input") or {},
        title=data.get("title"),
        output=output if isinstance(output, str) else None,
        error=data.get("error"),
    )


def _error_message(error: Any) -> tuple[str, Optional[str]]:
    """Extract (message, name) from an OpenCode error object."""
    if not isinstance(error, dict):
        return (str(error) if error else "Unknown error"), None
    name = error.get("name")
    payload = error.get("data") or {}
    message = payload.get("message") if isinstance(payload, dict) else None
    return message or name or "Unknown error", name


def event_session_id(data: dict[str, Any]) -> Optional[str]:
    """Return the agent session an event belongs to, if it names one."""
    props = data.get("properties") or {}
    if "sessionID" in props:
        return props["sessionID"]
    for key in ("part", "info"):
        nested = props.get(key)
        if isinstance(nested, dict) and "sessionID" in nested:
            return nested["sessionID"]
    return None


def parse_event(data: dict[str, Any]) -> Optional[AgentEvent]:
    """Convert one decoded SSE payload into an AgentEvent.

    Returns None for event kinds the bridge does not act on
    (``server.connected``, ``todo.updated``, ``file.edited``...) and for
    part kinds outside the modelled set.
    """
    kind = data.get("type")
    props = data.get("properties") or {}
    session_id = event_session_id(data) or ""

    if kind == "message.part.updated":
        part = parse_part(props.get("part") or {})
        if part is None:
            return None
        return PartUpdated(session_id=session_id, part=part, delta=props.get("delta"))

    if kind == "message.updated":
        info = props.get("info") or {}
        return MessageUpdated(
            session_id=session_id,
            message_id=str(info.get("id", "")),
            role=str(info.get("role", "")),
        )

    if kind == "session.status":
        status = props.get("status")
        if isinstance(status, dict):
            status = status.get("type")
        if status in ("busy", "retry"):
            return StatusChanged(session_id=session_id, status=AgentStatus.BUSY)
        if status == "idle":
            return StatusChanged(session_id=session_id, status=AgentStatus.IDLE)
        logger.debug("Dropping unknown session status %r", status)
        return None

    if kind == "session.idle":
        return StatusChanged(session_id=session_id, status=AgentStatus.IDLE)

    if kind == "session.error":
        message, name = _error_message(props.get("error"))
        return SessionErrored(session_id=session_id, message=message, name=name)

    if kind == "permission.updated":
        return PermissionRequested(
            session_id=session_id,
            request=PermissionRequest(
                id=str(props.get("id", "")),
                title=props.get("title") or "The agent is asking for permission",
                type=props.get("type"),
                metadata=props.get("metadata") or {},
            ),
        )

    logger.debug("Dropping event type %r", kind)
    return None
