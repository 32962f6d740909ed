"""Session status, persisted snapshot and turn output models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from opencode_bridge.agent.events import FilePart, ToolPart
from opencode_bridge.errors import CorruptRecordError


class SessionStatus(Enum):
    """Chat session states."""
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    TERMINATED = "terminated"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionSnapshot:
    """Durable view of a session, everything except the live agent binding.

    Attributes:
        conversation_id: Chat conversation that owns the session.
        owner_user_id: User who created it.
        project_path: Working directory of the agent session.
        agent_session_id: Server-side session id, None until first start.
        status: Status at the time of the snapshot.
        created_at: When the session object was first created.
        last_activity_at: Last inbound or outbound activity.
    """

    conversation_id: str
    owner_user_id: str
    project_path: str
    agent_session_id: Optional[str] = None
    status: SessionStatus = SessionStatus.UNINITIALIZED
    created_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "owner_user_id": self.owner_user_id,
            "project_path": self.project_path,
            "agent_session_id": self.agent_session_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SessionSnapshot":
        """Decode a stored record.

        Raises:
            CorruptRecordError: Required fields are missing or malformed.
        """
        if not isinstance(data, dict):
            raise CorruptRecordError("Session record is not an object")
        try:
            now = utcnow()
            return cls(
                conversation_id=str(data["conversation_id"]),
                owner_user_id=str(data.get("owner_user_id") or ""),
                project_path=str(data["project_path"]),
                agent_session_id=data.get("agent_session_id"),
                status=SessionStatus(data.get("status", SessionStatus.UNINITIALIZED.value)),
                created_at=_parse_timestamp(data.get("created_at"), now),
                last_activity_at=_parse_timestamp(data.get("last_activity_at"), now),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise CorruptRecordError(f"Corrupted session record: {e}") from e


def _parse_timestamp(value: Optional[str], default: datetime) -> datetime:
    if value is None:
        return default
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class TurnOutput:
    """Everything the agent produced between two flushes.

    ``text`` is the concatenation of the text parts in the order they
    first appeared; tool, file and reasoning parts are kept alongside it
    for the adapter to render.
    """

    text: str = ""
    tools: tuple[ToolPart, ...] = ()
    files: tuple[FilePart, ...] = ()
    reasoning: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.text or self.tools or self.files or self.reasoning)
