"""Response models for API endpoints."""
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field

from opencode_bridge.sessions.session import Session


class PermissionInfo(BaseModel):
    id: str
    title: str
    type: Optional[str] = None


class SessionResponse(BaseModel):
    conversation_id: str
    owner_user_id: str
    project_path: str
    agent_session_id: Optional[str] = None
    status: Literal["uninitialized", "starting", "idle", "busy", "error", "terminated"]
    created_at: str
    last_activity_at: str
    pending_permission: Optional[PermissionInfo] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        snapshot = session.snapshot()
        request = session.pending_permission
        return cls(
            conversation_id=snapshot.conversation_id,
            owner_user_id=snapshot.owner_user_id,
            project_path=snapshot.project_path,
            agent_session_id=snapshot.agent_session_id,
            status=snapshot.status.value,
            created_at=snapshot.created_at.isoformat(),
            last_activity_at=snapshot.last_activity_at.isoformat(),
            pending_permission=(
                PermissionInfo(id=request.id, title=request.title, type=request.type)
                if request is not None else None
            ),
        )


class SessionListResponse(BaseModel):
    count: int
    sessions: list[SessionResponse]


class ClearSessionResponse(BaseModel):
    conversation_id: str
    cleared: bool


class MessageAcceptedResponse(BaseModel):
    status: Literal["accepted"] = "accepted"
    conversation_id: str


class HealthResponse(BaseModel):
    status: Annotated[Literal["healthy"], Field()]
    sessions: Annotated[int, Field(ge=0)]
    agent_server: Annotated[str, Field()]
    timestamp: Annotated[str, Field()]


class ErrorDetail(BaseModel):
    code: Annotated[str, Field()]
    message: Annotated[str, Field()]
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
